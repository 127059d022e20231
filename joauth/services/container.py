"""
Service wiring.

Builds a ready ``UserAccounts`` from configuration: connects to MongoDB,
loads the schema documents and creates the user indexes.
"""

from typing import Optional

from joauth.config import Config, get_config
from joauth.db.mongo import get_users_collection
from joauth.services.password_service import PasswordService
from joauth.services.schema_registry import SchemaRegistry
from joauth.services.user_accounts import LogFunction, UserAccounts
from joauth.utils.logger import get_logger, setup_logging

logger = get_logger(__name__)


def build_user_accounts(config: Optional[Config] = None, log_function: Optional[LogFunction] = None) -> UserAccounts:
    config = config or get_config()
    setup_logging(config.LOG_LEVEL, config.LOG_FORMAT)

    registry = SchemaRegistry()
    registry.init()

    accounts = UserAccounts(
        get_users_collection(config),
        config=config.auth,
        registry=registry,
        password_service=PasswordService(config.auth.salt_rounds),
        log_function=log_function,
    )
    logger.info(f"[Container] UserAccounts ready on collection '{config.mongo.users_collection}'")
    return accounts
