"""Tests for Fernet-encrypted credential storage."""
from unittest.mock import patch

import pytest
from cryptography.fernet import Fernet, InvalidToken
from sqlalchemy import text

from billing.connectors.configuration import ConfigurationStore
from billing.db import encryption
from billing.db.encryption import (
    MissingEncryptionKeyError,
    decrypt_mapping,
    encrypt_mapping,
    get_fernet,
)


@pytest.fixture(name="fresh_fernet")
def fresh_fernet_fixture():
    """Reset the cached Fernet instance around a test."""
    saved = encryption._fernet
    encryption._fernet = None
    yield
    encryption._fernet = saved


def test_roundtrip():
    token = encrypt_mapping({"api_key": "secret123"})
    assert "secret123" not in token
    assert decrypt_mapping(token) == {"api_key": "secret123"}


def test_ciphertext_stored_in_database(engine, make_registry, make_connector):
    store = ConfigurationStore(engine, registry=make_registry(make_connector("example")))
    store.merge_credentials("example", {"api_key": "secret123"})

    with engine.connect() as conn:
        raw = conn.execute(
            text("SELECT credentials FROM connectorconfiguration WHERE connector_name = 'example'")
        ).scalar_one()

    assert "secret123" not in raw
    assert decrypt_mapping(raw) == {"api_key": "secret123"}


def test_empty_credentials_stored_as_null(engine, make_registry, make_connector):
    store = ConfigurationStore(engine, registry=make_registry(make_connector("example")))
    store.enable("example")

    with engine.connect() as conn:
        raw = conn.execute(text("SELECT credentials FROM connectorconfiguration")).scalar_one()
    assert raw is None


def test_wrong_key_raises(fresh_fernet):
    token = Fernet(Fernet.generate_key()).encrypt(b"{}").decode()
    with pytest.raises(InvalidToken):
        decrypt_mapping(token)


def test_missing_key(fresh_fernet):
    with patch("billing.db.encryption.get_settings") as mock_settings:
        mock_settings.return_value.credential_encryption_key = ""
        with pytest.raises(MissingEncryptionKeyError):
            get_fernet()
