"""
Error taxonomy for logshades.

Every failure raised by the package derives from LogShadesError so the CLI
can report it uniformly. Query failures share the ErrorEnvelope base and
carry an ErrorKind tag:

- AuthenticationFailure: the backend rejected our credentials
- TransportError: connection, TLS, DNS or timeout problems
- DecodeError: the response body does not have the expected shape
- UnexpectedStatus: any other non-success status, with best-effort details
"""

from enum import Enum
from typing import Optional, Union


NO_DETAILS = "No details given"


class LogShadesError(Exception):
    """Base class for all logshades errors."""


class ErrorKind(Enum):
    """Tag of an ErrorEnvelope."""
    AUTHENTICATION = "authentication"
    TRANSPORT = "transport"
    DECODE = "decode"
    UNEXPECTED_STATUS = "unexpected_status"


class ErrorEnvelope(LogShadesError):
    """A failed backend request, classified."""

    kind: ErrorKind

    def __init__(self, detail: str = ""):
        super().__init__(detail)
        self.detail = detail


class AuthenticationFailure(ErrorEnvelope):
    kind = ErrorKind.AUTHENTICATION

    def __init__(self, node: Optional[str] = None):
        super().__init__("Authentication failed")
        self.node = node

    def __str__(self) -> str:
        if self.node:
            return (
                f"Authentication failed for node {self.node}. "
                f"Run `logshades --node {self.node} login` to update the stored password."
            )
        return "Authentication failed"


class TransportError(ErrorEnvelope):
    kind = ErrorKind.TRANSPORT

    def __str__(self) -> str:
        return f"Transport error: {self.detail}"


class DecodeError(ErrorEnvelope):
    kind = ErrorKind.DECODE

    def __str__(self) -> str:
        return f"Could not decode response: {self.detail}"


class UnexpectedStatus(ErrorEnvelope):
    kind = ErrorKind.UNEXPECTED_STATUS

    def __init__(self, code: Union[int, str], detail: str = NO_DETAILS):
        super().__init__(detail or NO_DETAILS)
        self.code = code

    def __str__(self) -> str:
        return f"{self.code}: {self.detail}"


class DateParseError(LogShadesError):
    def __init__(self, timestamp: str, reason: str):
        super().__init__(f"Could not interpret timestamp {timestamp}: {reason}")
        self.timestamp = timestamp
        self.reason = reason


class LocalTimeZoneError(LogShadesError):
    """Local wall time maps to zero or two UTC instants."""

    def __init__(self, timestamp: str):
        super().__init__(
            f"Could not determine local timezone offset for {timestamp} "
            f"(ambiguous or nonexistent local time)"
        )
        self.timestamp = timestamp


class ConfigError(LogShadesError):
    """Problems with the configuration file or its contents."""


class NoConfigError(ConfigError):
    def __init__(self, path: str):
        super().__init__(
            f"Could not find configuration file at {path}. "
            f"Run `logshades init` to create one."
        )
        self.path = path


class ConfigFileExistsError(ConfigError):
    def __init__(self, path: str):
        super().__init__(f"Config file {path} does already exist. Not overwriting.")
        self.path = path


class MissingNodeError(ConfigError):
    def __init__(self, name: str):
        super().__init__(f"Node {name} is not configured")
        self.name = name


class MissingTemplateError(ConfigError):
    def __init__(self, name: str):
        super().__init__(f"Template {name} is not configured")
        self.name = name


class NodeTypeError(ConfigError):
    def __init__(self, node_type: str):
        super().__init__(f"Unsupported node type: {node_type}")
        self.node_type = node_type


class NoUserError(ConfigError):
    def __init__(self, node: str):
        super().__init__(f"No username set for node {node}")
        self.node = node


class CredentialError(LogShadesError):
    """Credential storage failures."""


class NoSecretError(CredentialError):
    def __init__(self, node: str):
        super().__init__(
            f"No password found for node {node}.\n\n"
            f"Please invoke `logshades --node {node} login` to fix this issue."
        )
        self.node = node


class SecretFetchError(CredentialError):
    def __init__(self, reason: str):
        super().__init__(f"Could not obtain password: {reason}")


class SecretStoreError(CredentialError):
    def __init__(self, reason: str):
        super().__init__(f"Could not store password: {reason}")


class RenderError(LogShadesError):
    """Template could not be compiled or a record could not be rendered."""
