"""
Tests for environment-driven configuration.
"""

import pytest

from joauth.config import AuthConfig, Config


def test_from_env(monkeypatch):
    monkeypatch.setenv("MONGODB_URI", "mongodb://localhost:27017")
    monkeypatch.setenv("MONGODB_DB_NAME", "accounts")
    monkeypatch.setenv("MONGODB_USERS_COLLECTION", "people")
    monkeypatch.setenv("BCRYPT_SALT_ROUNDS", "6")
    monkeypatch.setenv("ACCOUNT_LOG_LEVEL", "WARN")

    config = Config.from_env()

    assert config.mongo.uri == "mongodb://localhost:27017"
    assert config.mongo.db_name == "accounts"
    assert config.mongo.users_collection == "people"
    assert config.auth.salt_rounds == 6
    assert config.auth.log_level == "warn"


def test_defaults(monkeypatch):
    monkeypatch.setenv("MONGODB_URI", "mongodb://localhost:27017")
    for name in ("MONGODB_DB_NAME", "MONGODB_USERS_COLLECTION", "BCRYPT_SALT_ROUNDS", "ACCOUNT_LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)

    config = Config.from_env()

    assert config.mongo.db_name is None
    assert config.mongo.users_collection == "users"
    assert config.auth.salt_rounds == 12
    assert config.auth.log_level == "debug"


def test_missing_uri(monkeypatch):
    monkeypatch.delenv("MONGODB_URI", raising=False)
    with pytest.raises(ValueError, match="MONGODB_URI"):
        Config.from_env()


def test_bad_salt_rounds(monkeypatch):
    monkeypatch.setenv("MONGODB_URI", "mongodb://localhost:27017")
    monkeypatch.setenv("BCRYPT_SALT_ROUNDS", "lots")
    with pytest.raises(ValueError, match="BCRYPT_SALT_ROUNDS"):
        Config.from_env()


@pytest.mark.parametrize("rounds", [3, 32])
def test_salt_rounds_bounds(rounds):
    with pytest.raises(ValueError, match="salt_rounds"):
        AuthConfig(salt_rounds=rounds)


def test_unknown_log_level():
    with pytest.raises(ValueError, match="log_level"):
        AuthConfig(log_level="verbose")
