"""
Tests for building a UserAccounts from configuration.
"""

from unittest.mock import patch

import mongomock

from joauth.config import AuthConfig, Config, MongoConfig
from joauth.services import container


def test_build_user_accounts():
    collection = mongomock.MongoClient().db.people
    config = Config(
        mongo=MongoConfig(uri="mongodb://localhost:27017", users_collection="people"),
        auth=AuthConfig(salt_rounds=4),
    )

    with patch.object(container, "get_users_collection", return_value=collection) as get_collection:
        accounts = container.build_user_accounts(config)

    get_collection.assert_called_once_with(config)
    assert accounts.collection is collection
    assert accounts.password_service.salt_rounds == 4
    assert "/User" in accounts.registry.ids
