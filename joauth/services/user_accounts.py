"""
User Accounts

Find, register, authenticate, edit and remove users kept in a MongoDB
collection.

Every public operation reports through the ``success`` / ``failure``
callbacks it is given: exactly one of them is called, once. Failures are
``AccountError`` instances and are never raised to the caller. Multi-step
operations run their steps through a ``Chain`` (lookup -> hash -> persist).
"""

import json
import logging
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from bson import ObjectId
from pymongo.collection import Collection
from pymongo.errors import DuplicateKeyError, PyMongoError

from joauth.config import AuthConfig, LOG_LEVELS
from joauth.db.mongo import ensure_user_indexes, fields_to_projection, to_object_id
from joauth.services.password_service import MAX_PASSWORD_BYTES, PasswordService
from joauth.services.schema_registry import SchemaRegistry, ValidationResult
from joauth.utils.chain import Chain
from joauth.utils.datetime_utils import format_iso_utc, get_now_utc
from joauth.utils.exceptions import AccountError
from joauth.utils.logger import get_logger

logger = get_logger(__name__)

Callback = Optional[Callable[[Any], Any]]
Fields = Union[None, bool, Iterable[str], Mapping[str, Any]]
LogFunction = Callable[[str, Dict[str, Any]], Any]

_LOGGING_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "error": logging.ERROR,
    "fatal": logging.CRITICAL,
}


def _once(success: Callback, failure: Callback) -> Tuple[Callable, Callable]:
    """Wrap a callback pair so that only the first outcome is reported."""
    settled = False

    def on_success(result=None):
        nonlocal settled
        if settled:
            return
        settled = True
        if success:
            success(result)

    def on_failure(error: AccountError):
        nonlocal settled
        if settled:
            return
        settled = True
        if failure:
            failure(error)

    return on_success, on_failure


def _error(operation: str, name: str, data: Optional[Dict[str, Any]] = None) -> AccountError:
    return AccountError(name, f"UserAccounts.{operation}.{name}", data)


def _first_of(errors: List[AccountError]) -> AccountError:
    """Report the first collected error, carrying all of them in its data."""
    first = errors[0]
    data = dict(first.error_data or {})
    data["errors"] = [error.to_dict() for error in errors]
    return AccountError(first.error_name, first.error_name_full, data)


def _lower(value: Any) -> Any:
    # Usernames and emails are stored lowercase so that "FooBar" and "foobar"
    # are the same account.
    return value.lower() if isinstance(value, str) else value


def _as_str(value: Any) -> Optional[str]:
    return str(value) if value is not None else None


class UserAccounts:
    """User account operations over one MongoDB collection"""

    def __init__(
        self,
        collection: Collection,
        config: Optional[AuthConfig] = None,
        registry: Optional[SchemaRegistry] = None,
        password_service: Optional[PasswordService] = None,
        log_function: Optional[LogFunction] = None,
    ):
        self.collection = collection
        self.config = config or AuthConfig()
        self.registry = registry or SchemaRegistry()
        self.password_service = password_service or PasswordService(self.config.salt_rounds)
        self._log_function = log_function

        self.registry.init()
        ensure_user_indexes(self.collection)

    def _log(self, level: str, data: Dict[str, Any]) -> None:
        level = (level or "").lower()
        if LOG_LEVELS.index(level) < LOG_LEVELS.index(self.config.log_level):
            return

        if self._log_function is not None:
            self._log_function(level, data)
            return

        logger.log(_LOGGING_LEVELS[level], f"[UserAccounts] {json.dumps(data, default=str)}")

    # ── Lookup ─────────────────────────────────────────────────────────

    def find(
        self,
        id: Any = None,
        username: Optional[str] = None,
        email: Optional[str] = None,
        fields: Fields = None,
        success: Callback = None,
        failure: Callback = None,
    ) -> None:
        """Find one user by id, or by username and/or email."""
        success, failure = _once(success, failure)

        def fail_intercept(error: AccountError):
            self._log("debug", {
                "message": "Could not find user.",
                "error": error.to_dict(),
                "idString": _as_str(id),
            })
            failure(error)

        if id is not None:
            self._find_by_id(id, fields, success, fail_intercept)
        else:
            self._find_by_user_details(username, email, fields, success, fail_intercept)

    def _find_by_user_details(self, username, email, fields, success, failure) -> None:
        clauses = []
        if username:
            clauses.append({"username": _lower(username)})
        if email:
            clauses.append({"email": _lower(email)})

        self.find_query(
            {"filter": {"$or": clauses}, "fields": fields},
            success=success,
            failure=failure,
        )

    def _find_by_id(self, id, fields, success, failure) -> None:
        oid = to_object_id(id)
        if oid is None:
            failure(_error("find", "queryValidity", {"id": str(id)}))
            return

        self.find_query(
            {"filter": {"_id": oid}, "fields": fields},
            success=success,
            failure=failure,
        )

    def _find_conflict(self, field: str, value: str, exclude_id: ObjectId, success, failure) -> None:
        """Look for another user already holding ``value`` in ``field``."""
        self.find_query(
            {"filter": {field: value, "_id": {"$ne": exclude_id}}, "fields": ["_id"]},
            success=success,
            failure=failure,
        )

    def find_query(self, query: Mapping[str, Any], success: Callback = None, failure: Callback = None) -> None:
        """
        Run a validated single-document lookup.

        Args:
            query: ``{"filter": <mongo filter>, "fields": <selection>}``.
                ``fields`` may be omitted or True (whole document), a list of
                field names, or a projection mapping.
        """
        success, failure = _once(success, failure)

        def fail_intercept(error: AccountError):
            self._log("debug", {
                "message": "Could not process query.",
                "error": error.to_dict(),
            })
            failure(error)

        if not isinstance(query, Mapping):
            fail_intercept(_error("find_query", "queryValidity", {"schemaErrors": []}))
            return

        query = {key: value for key, value in query.items() if value is not None}
        validity = self.registry.validate("/Query", query)
        if not validity:
            fail_intercept(_error("find_query", "queryValidity", {"schemaErrors": validity.errors}))
            return

        try:
            user = self.collection.find_one(query["filter"], fields_to_projection(query.get("fields")))
        except PyMongoError as e:
            fail_intercept(_error("find_query", "notFound", {"errorFind": str(e)}))
            return
        except Exception as e:
            logger.error(f"[UserAccounts] Unexpected error while querying users: {str(e)}", exc_info=True)
            fail_intercept(_error("find_query", "exception", {"exception": str(e)}))
            return

        if user is None:
            fail_intercept(_error("find_query", "notFound"))
            return

        self._log("debug", {"message": "Found user.", "filter": query["filter"]})
        success(user)

    # ── Hashing ────────────────────────────────────────────────────────

    def _hash_password(self, password: str, success: Callable, failure: Callable) -> None:
        try:
            password_hash = self.password_service.hash_password(password)
        except (ValueError, TypeError, AttributeError) as e:
            self._log("warn", {"message": "Failed to hash password.", "error": str(e)})
            failure(_error("hash_password", "hash", {"errorHash": str(e)}))
            return
        success(password_hash)

    def _validate_password(self, password: Any) -> ValidationResult:
        """Validate against /Password, then check the hashing limit in bytes."""
        validity = self.registry.validate("/Password", password)
        if validity and not self.password_service.fits(validity.data):
            validity.valid = False
            validity.errors.append({
                "property": None,
                "path": "",
                "keyword": "maxBytes",
                "message": f"password is longer than {MAX_PASSWORD_BYTES} bytes",
            })
        return validity

    # ── Registration ───────────────────────────────────────────────────

    def register(
        self,
        username: Optional[str] = None,
        email: Optional[str] = None,
        password: Optional[str] = None,
        success: Callback = None,
        failure: Callback = None,
    ) -> None:
        """
        Create a new user.

        On success the callback receives the new user's ObjectId. Shape
        problems with the user and the password are reported together.
        """
        success, failure = _once(success, failure)

        def fail_intercept(error: AccountError):
            self._log("debug", {"message": "Failed to register user.", "error": error.to_dict()})
            failure(error)

        new_user = self.registry.defaults("/User")
        if username is not None:
            new_user["username"] = _lower(username)
        if email is not None:
            new_user["email"] = _lower(email)
        new_user["creation"] = format_iso_utc(get_now_utc())

        # Everything cheap is checked before the lookup and the hashing.
        errors = []
        user_validity = self.registry.validate("/UserPreRegister", new_user)
        if not user_validity:
            errors.append(_error("register", "validity", {
                "validityErrors": user_validity.errors,
                "properties": user_validity.properties,
            }))
        password_validity = self._validate_password(password)
        if not password_validity:
            errors.append(_error("register", "passwordValidity", {
                "validityErrors": password_validity.errors,
            }))
        if errors:
            fail_intercept(_first_of(errors))
            return
        password = password_validity.data

        chain = Chain()

        def find_existing():
            self._find_by_user_details(
                new_user["username"],
                new_user["email"],
                ["_id"],
                success=lambda existing: fail_intercept(_error("register", "taken")),
                failure=lambda error: chain.advance(),
            )

        def hash_password():
            self._hash_password(
                password,
                success=chain.advance,
                failure=lambda error: fail_intercept(_error("register", "hash", error.error_data)),
            )

        def insert(password_hash):
            new_user["passwordHash"] = password_hash
            try:
                result = self.collection.insert_one(new_user)
            except PyMongoError as e:
                chain.advance(e, None)
                return
            chain.advance(None, result)

        def finish(error_save, result):
            if isinstance(error_save, DuplicateKeyError):
                # Lost a race with another registration for the same name.
                fail_intercept(_error("register", "taken", {"errorSave": str(error_save)}))
                return
            if error_save is not None or not result.acknowledged:
                fail_intercept(_error("register", "save", {"errorSave": _as_str(error_save)}))
                return

            user_id = result.inserted_id
            self._log("debug", {
                "message": "Successfully registered new user.",
                "username": new_user["username"],
                "email": new_user["email"],
                "idString": str(user_id),
            })
            success(user_id)

        chain.run(find_existing, hash_password, insert, finish)

    # ── Authentication ─────────────────────────────────────────────────

    def authenticate(
        self,
        id: Any = None,
        username: Optional[str] = None,
        password: Optional[str] = None,
        fields: Fields = None,
        email: Optional[str] = None,
        success: Callback = None,
        failure: Callback = None,
    ) -> None:
        """
        Check ``password`` against the stored hash of the user found by id,
        username or email. On success the callback receives ``{"user": user}``.
        """
        success, failure = _once(success, failure)

        def fail_intercept(error: AccountError):
            self._log("debug", {
                "message": "Authentication failed.",
                "username": username,
                "idString": _as_str(id),
                "error": error.to_dict(),
            })
            failure(error)

        lookup_fields, strip_hash = _with_password_hash(fields)

        def compare(user):
            stored_hash = user.get("passwordHash")
            if not isinstance(password, str) or not stored_hash or \
                    not self.password_service.verify_password(password, stored_hash):
                fail_intercept(_error("authenticate", "password"))
                return

            if strip_hash:
                user.pop("passwordHash", None)
            self._log("debug", {
                "message": "Authentication successful.",
                "idString": _as_str(user.get("_id")),
            })
            success({"user": user})

        self.find(
            id=id,
            username=username,
            email=email,
            fields=lookup_fields,
            success=compare,
            failure=lambda error: fail_intercept(_error("authenticate", "username", {"errorFind": error.to_dict()})),
        )

    # ── Editing ────────────────────────────────────────────────────────

    def edit(
        self,
        id: Any = None,
        username: Optional[str] = None,
        password: Optional[str] = None,
        new_data: Optional[Mapping[str, Any]] = None,
        success: Callback = None,
        failure: Callback = None,
    ) -> None:
        """
        Change the username, email and/or password of a user.

        The current credentials are always checked first. Only fields that
        actually change are written; a new email marks the user unverified.
        On success the callback receives ``{"id": ObjectId, "changed": [...]}``.
        """
        success, failure = _once(success, failure)

        def fail_intercept(error: AccountError):
            self._log("debug", {
                "message": "Failed to edit user.",
                "username": username,
                "idString": _as_str(id),
                "error": error.to_dict(),
            })
            failure(error)

        if not new_data or not isinstance(new_data, Mapping):
            fail_intercept(_error("edit", "noNewData"))
            return

        edit = {}
        if new_data.get("email"):
            edit["email"] = _lower(new_data["email"])
        if new_data.get("username"):
            edit["username"] = _lower(new_data["username"])
        new_password = new_data.get("password")

        if not edit and new_password is None:
            fail_intercept(_error("edit", "noNewData"))
            return

        state = {}
        chain = Chain()

        def reauthenticate():
            self.authenticate(
                id=id,
                username=username,
                password=password,
                fields=True,
                success=lambda result: chain.advance(result["user"]),
                failure=lambda error: fail_intercept(_error("edit", "authenticate", {"errorAuthenticate": error.to_dict()})),
            )

        def validate(user):
            state["user"] = user
            for key in list(edit):
                if edit[key] == user.get(key):
                    del edit[key]
            if "email" in edit:
                edit["verified"] = False

            if not edit and new_password is None:
                fail_intercept(_error("edit", "noNewData"))
                return

            errors = []
            password_validity = None
            if new_password is not None:
                password_validity = self._validate_password(new_password)
                if not password_validity:
                    errors.append(_error("edit", "passwordValidity", {
                        "validityErrors": password_validity.errors,
                    }))
            edit_validity = self.registry.validate("/UserEdit", edit)
            if not edit_validity:
                errors.append(_error("edit", "editValidity", {"schemaErrors": edit_validity.errors}))
            if errors:
                fail_intercept(_first_of(errors))
                return

            if password_validity is None:
                chain.advance(None)
                return
            self._hash_password(
                password_validity.data,
                success=chain.advance,
                failure=lambda error: fail_intercept(_error("edit", "hash", error.error_data)),
            )

        def check_conflicts(password_hash):
            if password_hash is not None:
                edit["passwordHash"] = password_hash
            user_id = state["user"]["_id"]

            done = chain.join(2)

            def not_taken(field):
                def on_failure(error):
                    # Anything but a plain miss means the lookup itself failed.
                    if error.error_name != "notFound" or error.error_data:
                        self._log("warn", {
                            "message": "Conflict check failed, relying on the unique index.",
                            "field": field,
                            "idString": str(user_id),
                            "error": error.to_dict(),
                        })
                    done()
                return on_failure

            if "email" in edit:
                self._find_conflict(
                    "email", edit["email"], user_id,
                    success=lambda other: fail_intercept(_error("edit", "emailTaken")),
                    failure=not_taken("email"),
                )
            else:
                done()

            if "username" in edit:
                self._find_conflict(
                    "username", edit["username"], user_id,
                    success=lambda other: fail_intercept(_error("edit", "usernameTaken")),
                    failure=not_taken("username"),
                )
            else:
                done()

        def write():
            try:
                result = self.collection.update_one({"_id": state["user"]["_id"]}, {"$set": edit})
            except PyMongoError as e:
                chain.advance(e, None)
                return
            chain.advance(None, result)

        def finish(error_update, result):
            if isinstance(error_update, DuplicateKeyError):
                # Another user took the name between the conflict check and the write.
                fail_intercept(_error("edit", _taken_error_name(error_update), {
                    "errorUpdate": str(error_update),
                }))
                return
            if error_update is not None or not result.acknowledged or result.matched_count != 1:
                fail_intercept(_error("edit", "write", {
                    "errorUpdate": _as_str(error_update),
                    "matchedCount": getattr(result, "matched_count", None),
                }))
                return

            user_id = state["user"]["_id"]
            self._log("debug", {
                "message": "Successfully edited user.",
                "idString": str(user_id),
                "changed": sorted(edit),
            })
            success({"id": user_id, "changed": sorted(edit)})

        chain.run(reauthenticate, validate, check_conflicts, write, finish)

    # ── Removal ────────────────────────────────────────────────────────

    def remove(
        self,
        id: Any = None,
        username: Optional[str] = None,
        password: Optional[str] = None,
        success: Callback = None,
        failure: Callback = None,
    ) -> None:
        """Delete the authenticated user. On success the callback receives its ObjectId."""
        success, failure = _once(success, failure)

        def fail_intercept(error: AccountError):
            self._log("debug", {
                "message": "Failed to remove user.",
                "username": username,
                "idString": _as_str(id),
                "error": error.to_dict(),
            })
            failure(error)

        chain = Chain()

        def authenticate():
            self.authenticate(
                id=id,
                username=username,
                password=password,
                fields=["_id"],
                success=lambda result: chain.advance(result["user"]),
                failure=lambda error: fail_intercept(_error("remove", "authenticate", {"errorFind": error.to_dict()})),
            )

        def delete(user):
            try:
                result = self.collection.delete_one({"_id": user["_id"]})
            except PyMongoError as e:
                chain.advance(user, e, None)
                return
            chain.advance(user, None, result)

        def finish(user, error, result):
            # The user was just found by authenticate, so this only happens
            # when the database goes away or another caller removed it first.
            if error is not None or not result.acknowledged or result.deleted_count != 1:
                fail_intercept(_error("remove", "unknown1", {"errorFind": _as_str(error)}))
                return

            self._log("debug", {
                "message": "Removed user successfully.",
                "username": username,
                "idString": str(user["_id"]),
            })
            success(user["_id"])

        chain.run(authenticate, delete, finish)


def _with_password_hash(fields: Fields) -> Tuple[Fields, bool]:
    """
    Make sure a field selection fetches ``passwordHash``.

    Returns the selection to query with and whether the hash has to be
    stripped again before the user is handed back.
    """
    if fields is None or fields is True:
        return True, False

    if isinstance(fields, Mapping):
        projection = dict(fields)
        if "passwordHash" in projection and not projection["passwordHash"]:
            del projection["passwordHash"]
            return projection, True
        inclusive = any(value for key, value in projection.items() if key != "_id")
        if inclusive and "passwordHash" not in projection:
            projection["passwordHash"] = 1
            return projection, True
        return projection, False

    names = list(fields)
    if "passwordHash" in names:
        return names, False
    return names + ["passwordHash"], True


def _taken_error_name(error: DuplicateKeyError) -> str:
    """Map a unique-index violation on update to the field that clashed."""
    details = error.details or {}
    keys = set(details.get("keyPattern") or details.get("keyValue") or {})
    message = str(error)
    if "email" in keys or "email_1" in message:
        return "emailTaken"
    if "username" in keys or "username_1" in message:
        return "usernameTaken"
    return "write"
