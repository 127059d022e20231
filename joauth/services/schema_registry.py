"""
Schema Registry

Loads the JSON-schema documents describing users, passwords, queries and
edits, validates data against them and hands out default objects.

Validation normalizes the data first, in place where it can:
- properties not declared by an object schema with
  ``additionalProperties: false`` are removed
- scalars are coerced to the declared scalar ``type`` when lossless

Callers must treat validated data as mutated, and read top-level scalars
back from ``ValidationResult.data``.
"""

import copy
import json
import math
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Union

from jsonschema import Draft7Validator
from referencing import Registry, Resource
from referencing.exceptions import Unresolvable
from referencing.jsonschema import DRAFT7

from joauth.utils.exceptions import SchemaNotFoundError
from joauth.utils.logger import get_logger

logger = get_logger(__name__)

SCHEMA_DIR = Path(__file__).resolve().parent.parent / "schemas" / "documents"

_MISSING = object()


@dataclass
class ValidationResult:
    """Outcome of ``SchemaRegistry.validate``. Truthy when the data is valid."""
    valid: bool
    errors: List[Dict[str, Any]] = field(default_factory=list)
    data: Any = None

    def __bool__(self) -> bool:
        return self.valid

    @property
    def properties(self) -> List[str]:
        """Top-level property names that failed, in error order."""
        names = []
        for error in self.errors:
            name = error.get("property")
            if name and name not in names:
                names.append(name)
        return names


class SchemaRegistry:
    """Named JSON schemas with cached defaults and a shared ref registry."""

    def __init__(self):
        self._schemas: Dict[str, Dict[str, Any]] = {}
        self._defaults: Dict[str, Any] = {}
        self._validators: Dict[str, Draft7Validator] = {}
        self._resources: Registry = Registry()
        self._last_errors: List[Dict[str, Any]] = []
        self._init_done = False

    @property
    def ids(self) -> List[str]:
        return sorted(self._schemas)

    def schema(self, schema_id: str) -> Dict[str, Any]:
        try:
            return self._schemas[schema_id]
        except KeyError:
            raise SchemaNotFoundError(schema_id)

    def add_schema(self, schema: Mapping[str, Any]) -> None:
        """Register a schema by its ``$id``, then compute its defaults."""
        schema_id = schema.get("$id")
        if not schema_id:
            raise ValueError("Schema is missing its '$id'")
        Draft7Validator.check_schema(schema)

        schema = dict(schema)
        self._schemas[schema_id] = schema
        self._resources = self._resources.with_resource(
            uri=schema_id,
            resource=Resource.from_contents(schema, default_specification=DRAFT7),
        )
        # Earlier validators were built against the old ref registry.
        self._validators.clear()
        self._defaults.pop(schema_id, None)
        try:
            self._compute_defaults(schema_id)
        except Unresolvable:
            # Refers to a schema not loaded yet; computed on first defaults() call.
            pass
        logger.debug(f"[SchemaRegistry] Registered schema {schema_id}")

    def init(self, source: Union[None, str, Path, Iterable[Mapping[str, Any]]] = None) -> None:
        """
        Load every schema from ``source`` once; later calls do nothing.

        Args:
            source: Directory of ``*.json`` documents, or an iterable of
                schema mappings. Defaults to the packaged documents.
        """
        if self._init_done:
            return

        if source is None or isinstance(source, (str, Path)):
            directory = Path(source) if source is not None else SCHEMA_DIR
            documents = []
            for path in sorted(directory.glob("*.json")):
                with path.open(encoding="utf-8") as fh:
                    documents.append(json.load(fh))
        else:
            documents = list(source)

        for document in documents:
            self.add_schema(document)

        self._init_done = True
        logger.info(f"[SchemaRegistry] Loaded {len(documents)} schema(s)")

    def defaults(self, schema_id: str) -> Any:
        """Return a fresh copy of the default object for ``schema_id``."""
        if schema_id in self._defaults:
            value = self._defaults[schema_id]
        else:
            value = self._compute_defaults(schema_id)
        return copy.deepcopy(value)

    def validate(self, schema_id: str, data: Any) -> ValidationResult:
        """Normalize ``data`` and validate it, collecting every error."""
        schema = self.schema(schema_id)
        data = self._normalize(schema, data, self._resolver(schema_id))

        validator = self._validators.get(schema_id)
        if validator is None:
            validator = Draft7Validator(schema, registry=self._resources)
            self._validators[schema_id] = validator

        errors = []
        seen = set()
        for error in sorted(validator.iter_errors(data), key=lambda e: [str(part) for part in e.absolute_path]):
            for described in _describe_error(error):
                key = (described["path"], described["keyword"])
                if key not in seen:
                    seen.add(key)
                    errors.append(described)

        self._last_errors = errors
        return ValidationResult(valid=not errors, errors=errors, data=data)

    def errors(self) -> List[Dict[str, Any]]:
        """Errors of the most recent ``validate`` call."""
        return list(self._last_errors)

    def fields_safe_private(self, schema_id: str) -> List[str]:
        """Fields of ``schema_id`` that may be shown to the owning user."""
        return list(self.schema(schema_id).get("safePrivate", []))

    def _compute_defaults(self, schema_id: str) -> Any:
        value = self._derive_defaults(self.schema(schema_id), self._resolver(schema_id))
        if value is _MISSING:
            value = None
        self._defaults[schema_id] = value
        return value

    def _resolver(self, schema_id: str):
        return self._resources.resolver(base_uri=schema_id)

    def _derive_defaults(self, schema: Any, resolver) -> Any:
        if not isinstance(schema, Mapping):
            return _MISSING
        if "default" in schema:
            return copy.deepcopy(schema["default"])
        if "$ref" in schema:
            resolved = resolver.lookup(schema["$ref"])
            return self._derive_defaults(resolved.contents, resolved.resolver)

        if "allOf" in schema:
            merged = {}
            for sub in schema["allOf"]:
                value = self._derive_defaults(sub, resolver)
                if isinstance(value, dict):
                    merged.update(value)
            if merged:
                return merged

        if schema.get("type") == "object" or "properties" in schema:
            result = {}
            for name, sub in schema.get("properties", {}).items():
                value = self._derive_defaults(sub, resolver)
                if value is not _MISSING:
                    result[name] = value
            return result

        return _MISSING

    def _normalize(self, schema: Any, data: Any, resolver) -> Any:
        if not isinstance(schema, Mapping):
            return data
        if "$ref" in schema:
            resolved = resolver.lookup(schema["$ref"])
            return self._normalize(resolved.contents, data, resolved.resolver)

        declared = schema.get("type")
        if isinstance(declared, str):
            data = _coerce(data, declared)

        if isinstance(data, dict):
            properties = schema.get("properties", {})
            if schema.get("additionalProperties") is False:
                patterns = schema.get("patternProperties", {})
                for key in list(data):
                    if key not in properties and not _matches_any(key, patterns):
                        del data[key]
            for key, sub in properties.items():
                if key in data:
                    data[key] = self._normalize(sub, data[key], resolver)
        elif isinstance(data, list) and isinstance(schema.get("items"), Mapping):
            for i, item in enumerate(data):
                data[i] = self._normalize(schema["items"], item, resolver)

        return data


def _matches_any(key: str, patterns: Mapping[str, Any]) -> bool:
    return any(re.search(pattern, key) for pattern in patterns)


def _coerce(value: Any, target: str) -> Any:
    """Coerce a scalar to ``target``; unconvertible values come back untouched."""
    if isinstance(value, (dict, list)):
        return value

    if target == "string":
        if value is None:
            return ""
        if isinstance(value, bool):
            return "true" if value else "false"
        if isinstance(value, (int, float)):
            return str(value)
        return value

    if target in ("number", "integer"):
        if isinstance(value, bool):
            return int(value)
        if value is None:
            return 0
        if isinstance(value, str):
            try:
                number = float(value)
            except ValueError:
                return value
            if not math.isfinite(number):
                return value
            if number.is_integer():
                return int(number)
            return value if target == "integer" else number
        if target == "integer" and isinstance(value, float) and value.is_integer():
            return int(value)
        return value

    if target == "boolean":
        if value in ("true", 1) and not isinstance(value, float):
            return True
        if value in ("false", 0, None) and not isinstance(value, float):
            return False
        return value

    if target == "null":
        if value in ("", 0, False) and not isinstance(value, float):
            return None
        return value

    return value


def _describe_error(error) -> List[Dict[str, Any]]:
    path = list(error.absolute_path)
    if error.validator == "required" and isinstance(error.instance, Mapping):
        missing = [name for name in error.validator_value if name not in error.instance]
        prefix = "".join(f"/{part}" for part in path)
        return [
            {
                "property": path[0] if path else name,
                "path": f"{prefix}/{name}",
                "keyword": "required",
                "message": f"{name!r} is a required property",
            }
            for name in missing
        ]

    return [{
        "property": path[0] if path else None,
        "path": "".join(f"/{part}" for part in path),
        "keyword": error.validator,
        "message": error.message,
    }]
