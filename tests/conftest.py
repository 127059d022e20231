"""
Shared fixtures: an in-memory users collection and a cheap bcrypt cost.
"""

import mongomock
import pytest

from joauth.config import AuthConfig
from joauth.services.schema_registry import SchemaRegistry
from joauth.services.user_accounts import UserAccounts


class Outcome:
    """Records what an operation reported through its callbacks."""

    def __init__(self):
        self.successes = []
        self.failures = []

    def success(self, result=None):
        self.successes.append(result)

    def failure(self, error):
        self.failures.append(error)

    @property
    def callbacks(self) -> dict:
        return {"success": self.success, "failure": self.failure}

    @property
    def result(self):
        assert self.failures == [], f"unexpected failure: {self.failures!r}"
        assert len(self.successes) == 1
        return self.successes[0]

    @property
    def error(self):
        assert self.successes == [], f"unexpected success: {self.successes!r}"
        assert len(self.failures) == 1
        return self.failures[0]


@pytest.fixture
def outcome() -> Outcome:
    return Outcome()


@pytest.fixture
def make_outcome():
    return Outcome


@pytest.fixture
def collection():
    return mongomock.MongoClient().db.users


@pytest.fixture
def registry() -> SchemaRegistry:
    registry = SchemaRegistry()
    registry.init()
    return registry


@pytest.fixture
def accounts(collection, registry) -> UserAccounts:
    return UserAccounts(collection, config=AuthConfig(salt_rounds=4), registry=registry)


@pytest.fixture
def registered(accounts):
    """Register alice and return her ObjectId."""
    outcome = Outcome()
    accounts.register(username="Alice", email="Alice@Example.com", password="correct horse", **outcome.callbacks)
    return outcome.result
