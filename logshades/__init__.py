"""
logshades - Query and tail logs from heterogeneous log backends

Supported backends:
- Graylog (universal search REST API)
- Elasticsearch (_search document queries)
- Google Cloud Logging (ListLogEntries / TailLogEntries over gRPC)

Features:
- Human time ranges ("10 minutes ago", "yesterday", ISO-8601 literals)
- One normalized, oldest-first record stream for every backend
- Follow mode with an advancing window and latency buffer, or native
  streaming where the backend supports it
- Jinja2 output templates
- Passwords kept in the system keyring
- One error taxonomy across backends (authentication, transport, decode,
  unexpected status)
"""

__version__ = "1.0.0"
__author__ = "logshades"

from .config import Config, NodeConfig
from .credentials import CredentialStore
from .executor import QueryExecutor
from .follow import FollowEngine
from .models import GenericQuery, Page, FollowState
from .render import TemplateRenderer
from .timerange import TimeRange, resolve
from .backends import (
    LogBackend,
    BackendType,
    BackendCapabilities,
    GraylogBackend,
    ElasticBackend,
    GoogleLoggingBackend,
    create_backend
)

__all__ = [
    "Config",
    "NodeConfig",
    "CredentialStore",
    "QueryExecutor",
    "FollowEngine",
    "GenericQuery",
    "Page",
    "FollowState",
    "TemplateRenderer",
    "TimeRange",
    "resolve",
    "LogBackend",
    "BackendType",
    "BackendCapabilities",
    "GraylogBackend",
    "ElasticBackend",
    "GoogleLoggingBackend",
    "create_backend"
]
