"""
MongoDB database connection and helpers.
"""

from typing import Any, Dict, Iterable, Mapping, Optional, Union

from bson import ObjectId
from pymongo import ASCENDING, MongoClient
from pymongo.collection import Collection
from pymongo.database import Database

from joauth.config import Config
from joauth.utils.logger import get_logger

logger = get_logger(__name__)

_client: Optional[MongoClient] = None


def get_database(config: Config) -> Database:
    """Get MongoDB database instance. Uses MONGODB_DB_NAME, else 'joauth'."""
    global _client
    if _client is None:
        _client = MongoClient(
            config.mongo.uri,
            serverSelectionTimeoutMS=5000,
        )
    return _client.get_database(config.mongo.db_name or "joauth")


def get_users_collection(config: Config) -> Collection:
    return get_database(config)[config.mongo.users_collection]


def ensure_user_indexes(collection: Collection) -> None:
    """Create the unique lookup indexes on username and email."""
    collection.create_index([("username", ASCENDING)], unique=True)
    collection.create_index([("email", ASCENDING)], unique=True)
    logger.debug(f"[Mongo] Ensured username/email indexes on '{collection.name}'")


def to_object_id(id_val: Any) -> Optional[ObjectId]:
    """Return an ObjectId for a valid id (ObjectId, 24-char hex or 12 bytes); else None."""
    if id_val is None:
        return None
    if isinstance(id_val, ObjectId):
        return id_val
    if ObjectId.is_valid(id_val):
        return ObjectId(id_val)
    return None


def fields_to_projection(
    fields: Union[None, bool, Iterable[str], Mapping[str, Any]],
) -> Optional[Dict[str, Any]]:
    """
    Turn a field selection into a find projection.

    None or True select the whole document; a list of names selects those
    fields; a mapping is used as-is.
    """
    if fields is None or fields is True:
        return None
    if isinstance(fields, Mapping):
        return dict(fields)
    return {name: 1 for name in fields}
