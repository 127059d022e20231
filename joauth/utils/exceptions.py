"""
Exception types used across joauth.
"""

from typing import Any, Dict, Optional

from joauth.schemas.errors import ErrorResponse


class AccountError(Exception):
    """
    Structured failure of an account operation.

    Handed to ``failure`` callbacks instead of being raised across the
    public API. ``to_dict`` gives the ``{errorName, errorNameFull, errorData}``
    shape.
    """

    def __init__(self, error_name: str, error_name_full: str, error_data: Optional[Dict[str, Any]] = None):
        super().__init__(error_name_full)
        self.error_name = error_name
        self.error_name_full = error_name_full
        self.error_data = error_data

    def to_dict(self) -> Dict[str, Any]:
        return ErrorResponse(
            error_name=self.error_name,
            error_name_full=self.error_name_full,
            error_data=self.error_data,
        ).model_dump(by_alias=True, exclude_none=True)

    def __repr__(self) -> str:
        return f"AccountError({self.error_name_full!r})"


class ChainExhaustedError(RuntimeError):
    """Raised when a chain is advanced past its last step."""


class SchemaNotFoundError(KeyError):
    """Raised when a schema id is not registered."""
