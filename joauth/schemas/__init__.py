"""
Schema package.

- errors.py: Pydantic models for structured failure payloads.
- documents/: JSON-schema documents loaded by ``SchemaRegistry``
  (``/User``, ``/UserPreRegister``, ``/Password``, ``/UserEdit``, ``/Query``).
"""
