"""
logshades Backend System

One backend per node type, selected once from configuration:
- GraylogBackend: Graylog universal search REST API
- ElasticBackend: Elasticsearch document search
- GoogleLoggingBackend: Google Cloud Logging over gRPC (paged and streaming)
"""

from typing import TYPE_CHECKING

from .base import LogBackend, BackendCapabilities, BackendType
from .elastic import ElasticBackend, ELASTIC_CAPABILITIES
from .google import GoogleLoggingBackend, GOOGLE_CAPABILITIES
from .graylog import GraylogBackend, GRAYLOG_CAPABILITIES

if TYPE_CHECKING:
    from ..config import NodeConfig
    from ..credentials import CredentialStore


BACKENDS = {
    BackendType.GRAYLOG: GraylogBackend,
    BackendType.ELASTIC: ElasticBackend,
    BackendType.GOOGLE: GoogleLoggingBackend,
}

CAPABILITIES = {
    BackendType.GRAYLOG: GRAYLOG_CAPABILITIES,
    BackendType.ELASTIC: ELASTIC_CAPABILITIES,
    BackendType.GOOGLE: GOOGLE_CAPABILITIES,
}


def capabilities_for(backend_type: BackendType) -> BackendCapabilities:
    return CAPABILITIES[backend_type]


def create_backend(node: "NodeConfig", credentials: "CredentialStore") -> LogBackend:
    """
    Build the backend for a configured node.

    Credentials are looked up here, before any request is sent, so a
    missing password fails fast.
    """
    return BACKENDS[node.type].from_node(node, credentials)


__all__ = [
    "LogBackend",
    "BackendCapabilities",
    "BackendType",
    "GraylogBackend",
    "ElasticBackend",
    "GoogleLoggingBackend",
    "capabilities_for",
    "create_backend"
]
