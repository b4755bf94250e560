"""Tests for keyring backed password storage."""

import keyring
import pytest
from keyring.errors import KeyringError, PasswordSetError

from logshades.credentials import CredentialStore
from logshades.errors import NoSecretError, SecretFetchError, SecretStoreError


@pytest.fixture
def vault(monkeypatch):
    secrets = {}

    def get_password(service, user):
        return secrets.get((service, user))

    def set_password(service, user, secret):
        secrets[(service, user)] = secret

    monkeypatch.setattr(keyring, "get_password", get_password)
    monkeypatch.setattr(keyring, "set_password", set_password)
    return secrets


def test_set_then_get(vault):
    store = CredentialStore()

    store.set("prod", "admin", "hunter2")

    assert vault == {("logshades:prod", "admin"): "hunter2"}
    assert store.get("prod", "admin") == "hunter2"


def test_missing_secret(vault):
    with pytest.raises(NoSecretError) as e:
        CredentialStore().get("prod", "admin")
    assert "logshades --node prod login" in str(e.value)


def test_fetch_failure(monkeypatch):
    def broken(service, user):
        raise KeyringError("locked")

    monkeypatch.setattr(keyring, "get_password", broken)

    with pytest.raises(SecretFetchError):
        CredentialStore().get("prod", "admin")


def test_store_failure(monkeypatch):
    def broken(service, user, secret):
        raise PasswordSetError("read only")

    monkeypatch.setattr(keyring, "set_password", broken)

    with pytest.raises(SecretStoreError):
        CredentialStore().set("prod", "admin", "x")
