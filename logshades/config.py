"""
Configuration for logshades.

Supports loading from a JSON config file and environment variables.

Example config.json:

    {
      "nodes": {
        "default": {"type": "graylog", "url": "https://graylog.example.com/api", "user": "admin"},
        "es": {"type": "elastic", "url": "http://localhost:9200/logs-*"},
        "gcp": {"type": "google", "resources": ["projects/my-project"]}
      },
      "templates": {
        "short": "{{ timestamp }} {{ message }}"
      }
    }
"""

import os
import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

import click

from .backends.base import BackendType
from .backends.transport import grpc_target
from .errors import ConfigError, MissingNodeError, MissingTemplateError, NoConfigError, NodeTypeError
from .render import DEFAULT_TEMPLATE

APP_NAME = "logshades"
CONFIG_FILE = "config.json"


@dataclass
class NodeConfig:
    """One configured backend instance."""

    name: str
    type: BackendType
    url: Optional[str] = None
    user: Optional[str] = None

    # Google Cloud Logging: projects/..., organizations/..., etc.
    resources: List[str] = field(default_factory=list)

    # Elasticsearch field used for sorting and the time range
    timestamp_field: str = "@timestamp"

    # Transport
    timeout: float = 30.0
    verify_tls: bool = True
    ca_bundle: Optional[str] = None

    @classmethod
    def from_dict(cls, name: str, data: Dict[str, Any]) -> "NodeConfig":
        node_type = data.get("type", "")
        try:
            backend_type = BackendType(node_type)
        except ValueError:
            raise NodeTypeError(str(node_type))

        return cls(
            name=name,
            type=backend_type,
            url=data.get("url"),
            user=data.get("user") or None,
            resources=list(data.get("resources", [])),
            timestamp_field=data.get("timestamp_field", "@timestamp"),
            timeout=float(data.get("timeout", 30.0)),
            verify_tls=bool(data.get("verify_tls", True)),
            ca_bundle=data.get("ca_bundle"),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary, leaving out unset optional values."""
        data: Dict[str, Any] = {"type": self.type.value}
        if self.url:
            data["url"] = self.url
        if self.user:
            data["user"] = self.user
        if self.resources:
            data["resources"] = list(self.resources)
        if self.type == BackendType.ELASTIC:
            data["timestamp_field"] = self.timestamp_field
        if self.timeout != 30.0:
            data["timeout"] = self.timeout
        if not self.verify_tls:
            data["verify_tls"] = False
        if self.ca_bundle:
            data["ca_bundle"] = self.ca_bundle
        return data

    def validate(self) -> List[str]:
        """Validate node settings, returns list of errors."""
        errors = []

        if self.type in (BackendType.GRAYLOG, BackendType.ELASTIC):
            parsed = urlparse(self.url or "")
            if parsed.scheme not in ("http", "https") or not parsed.netloc:
                errors.append(f"node {self.name}: url must be an http(s) URL")
        if self.type == BackendType.GRAYLOG and not self.user:
            errors.append(f"node {self.name}: user is required for graylog nodes")
        if self.type == BackendType.GOOGLE and not self.resources:
            errors.append(f"node {self.name}: at least one resource is required for google nodes")
        if self.type == BackendType.GOOGLE and self.url:
            try:
                grpc_target(self.url)
            except ConfigError:
                errors.append(f"node {self.name}: url must be host:port or an https URL without a path")
        if self.timeout <= 0:
            errors.append(f"node {self.name}: timeout must be > 0")

        return errors


@dataclass
class Config:
    """
    logshades configuration with sensible defaults.

    Follow timings are tuned for backends that index within a few seconds.
    """

    nodes: Dict[str, NodeConfig] = field(default_factory=dict)
    templates: Dict[str, str] = field(default_factory=lambda: {"default": DEFAULT_TEMPLATE})

    default_node: str = "default"
    default_template: str = "default"

    # Follow mode
    latency: float = 10.0  # Seconds subtracted from now
    poll_interval: float = 1.0  # Seconds between polls

    # Logging
    log_level: str = "WARNING"
    log_file: Optional[str] = None

    @staticmethod
    def default_path() -> Path:
        """Config file location: $LOGSHADES_CONFIG or the platform config dir."""
        env_path = os.getenv("LOGSHADES_CONFIG")
        if env_path:
            return Path(env_path)
        return Path(click.get_app_dir(APP_NAME)) / CONFIG_FILE

    @classmethod
    def from_env(cls, path: Optional[Path] = None) -> "Config":
        """Load the config file (default location unless given), then apply environment overrides."""
        config = cls.from_file(path or cls.default_path())
        config.default_node = os.getenv("LOGSHADES_NODE", config.default_node)
        config.log_level = os.getenv("LOGSHADES_LOG_LEVEL", config.log_level)
        return config

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Config":
        templates = {"default": DEFAULT_TEMPLATE}
        templates.update(data.get("templates", {}))

        return cls(
            nodes={
                name: NodeConfig.from_dict(name, node)
                for name, node in data.get("nodes", {}).items()
            },
            templates=templates,
            default_node=data.get("default_node", "default"),
            default_template=data.get("default_template", "default"),
            latency=float(data.get("latency", 10.0)),
            poll_interval=float(data.get("poll_interval", 1.0)),
            log_level=data.get("log_level", "WARNING"),
            log_file=data.get("log_file"),
        )

    @classmethod
    def from_file(cls, path: Path) -> "Config":
        """Load configuration from a JSON file."""
        try:
            with open(path) as f:
                data = json.load(f)
        except FileNotFoundError:
            raise NoConfigError(str(path))
        except json.JSONDecodeError as e:
            raise ConfigError(f"Couldn't load configuration file: {e}")

        if not isinstance(data, dict):
            raise ConfigError("Couldn't load configuration file: expected a JSON object")
        return cls.from_dict(data)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "nodes": {name: node.to_dict() for name, node in self.nodes.items()},
            "templates": dict(self.templates),
            "default_node": self.default_node,
            "default_template": self.default_template,
            "latency": self.latency,
            "poll_interval": self.poll_interval,
            "log_level": self.log_level,
            "log_file": self.log_file,
        }

    def to_file(self, path: Path) -> None:
        """Save configuration to a JSON file."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)

    def node(self, name: Optional[str] = None) -> NodeConfig:
        name = name or self.default_node
        try:
            return self.nodes[name]
        except KeyError:
            raise MissingNodeError(name)

    def template(self, name: Optional[str] = None) -> str:
        name = name or self.default_template
        try:
            return self.templates[name]
        except KeyError:
            raise MissingTemplateError(name)

    def validate(self) -> List[str]:
        """Validate configuration, returns list of errors."""
        errors = []

        for node in self.nodes.values():
            errors.extend(node.validate())
        if self.latency < 0:
            errors.append("latency must be >= 0")
        if self.poll_interval <= 0:
            errors.append("poll_interval must be > 0")

        return errors
