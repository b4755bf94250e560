"""
Password storage in the system keyring.

Secrets live under the service name "logshades:<node>" with the node's
user as the account. A missing secret is fatal: the caller is told to run
the login command instead of being prompted in the middle of a query.
"""

import logging

import keyring
from keyring.errors import KeyringError

from .errors import NoSecretError, SecretFetchError, SecretStoreError

logger = logging.getLogger(__name__)


SERVICE_PREFIX = "logshades"


class CredentialStore:
    """get/set node passwords."""

    def __init__(self, service_prefix: str = SERVICE_PREFIX):
        self.service_prefix = service_prefix

    def service(self, node: str) -> str:
        return f"{self.service_prefix}:{node}"

    def get(self, node: str, user: str) -> str:
        try:
            secret = keyring.get_password(self.service(node), user)
        except KeyringError as e:
            raise SecretFetchError(str(e)) from e

        if secret is None:
            raise NoSecretError(node)
        return secret

    def set(self, node: str, user: str, secret: str) -> None:
        try:
            keyring.set_password(self.service(node), user, secret)
        except KeyringError as e:
            raise SecretStoreError(str(e)) from e
        logger.info(f"Stored password for {user} at {node}")
