"""
joauth: user accounts stored in MongoDB.

Registration, lookup, password authentication, editing and removal, with
JSON-schema validation and bcrypt hashing.
"""

from joauth.services.password_service import PasswordService
from joauth.services.schema_registry import SchemaRegistry, ValidationResult
from joauth.services.user_accounts import UserAccounts
from joauth.utils.chain import Chain
from joauth.utils.exceptions import AccountError, ChainExhaustedError, SchemaNotFoundError

__version__ = "1.0.0"

__all__ = [
    "AccountError",
    "Chain",
    "ChainExhaustedError",
    "PasswordService",
    "SchemaNotFoundError",
    "SchemaRegistry",
    "UserAccounts",
    "ValidationResult",
]
