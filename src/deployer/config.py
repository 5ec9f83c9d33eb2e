"""Configuration management with validation.

Connection settings and template variables are read once from the
environment at startup. Missing or invalid settings are reported together
before any contact with the cluster is attempted.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field


class ConfigurationError(Exception):
    """Raised when configuration validation fails."""

    pass


# Configuration constants with documented bounds
DEFAULT_SETTLE_TIMEOUT_SECONDS = 120
MIN_SETTLE_TIMEOUT_SECONDS = 1
MAX_SETTLE_TIMEOUT_SECONDS = 3600

# Environment prefixes harvested into template variables. Later prefixes
# win when the same key appears under both.
TEMPLATE_VARIABLE_PREFIXES: tuple[str, ...] = ("DRONE_", "PLUGIN_")


@dataclass(frozen=True)
class TemplateVariables:
    """Substitution variables available to the manifest template.

    Built once from the process environment. Keys are the environment
    variable names with their prefix stripped, lower-cased
    (``PLUGIN_IMAGE_TAG`` becomes ``image_tag``).
    """

    values: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_environ(cls, environ: Mapping[str, str] | None = None) -> TemplateVariables:
        """Harvest ``DRONE_*`` and ``PLUGIN_*`` variables.

        Args:
            environ: Environment mapping. Defaults to ``os.environ``.

        Returns:
            TemplateVariables with prefix-stripped, lower-cased keys.
        """
        source = os.environ if environ is None else environ
        values: dict[str, str] = {}

        for prefix in TEMPLATE_VARIABLE_PREFIXES:
            for key, value in source.items():
                if key.startswith(prefix) and len(key) > len(prefix):
                    values[key[len(prefix) :].lower()] = value

        return cls(values=values)

    def as_context(self) -> dict[str, str]:
        """Return a copy suitable for passing to the template renderer."""
        return dict(self.values)


@dataclass(frozen=True)
class PluginConfig:
    """Plugin configuration loaded from environment variables.

    All fields are validated at construction time. Invalid configurations
    raise ConfigurationError immediately rather than failing mid-run.
    """

    # Required fields
    server: str
    token: str
    ca: str
    template: str

    # Optional namespace override; None means use each document's namespace
    namespace: str | None = None

    skip_tls_verify: bool = False
    settle_timeout_seconds: int = DEFAULT_SETTLE_TIMEOUT_SECONDS

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        errors: list[str] = []

        if not self.server:
            errors.append("PLUGIN_SERVER is not defined")
        elif not self.server.startswith(("https://", "http://")):
            errors.append(f"PLUGIN_SERVER must be an http(s) URL: {self.server}")

        if not self.token:
            errors.append("PLUGIN_TOKEN is not defined")

        if not self.ca:
            errors.append("PLUGIN_CA is not defined")

        if not self.template:
            errors.append("PLUGIN_TEMPLATE, or template must be defined")

        if not (
            MIN_SETTLE_TIMEOUT_SECONDS
            <= self.settle_timeout_seconds
            <= MAX_SETTLE_TIMEOUT_SECONDS
        ):
            errors.append(
                f"PLUGIN_SETTLE_TIMEOUT must be between {MIN_SETTLE_TIMEOUT_SECONDS} "
                f"and {MAX_SETTLE_TIMEOUT_SECONDS} seconds"
            )

        if errors:
            error_msg = "Configuration validation failed:\n  - " + "\n  - ".join(errors)
            raise ConfigurationError(error_msg)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> PluginConfig:
        """Load configuration from environment variables.

        Environment Variables:
            PLUGIN_SERVER: Kubernetes API server URL
            PLUGIN_TOKEN: Bearer token for the API server
            PLUGIN_CA: CA certificate, PEM or base64-encoded PEM
            PLUGIN_SKIP_TLS_VERIFY: If "true", skip TLS verification (default: false)
            PLUGIN_NAMESPACE: Namespace override for every document (optional)
            PLUGIN_TEMPLATE: Path to the manifest template
            PLUGIN_SETTLE_TIMEOUT: Seconds to wait for a Deployment to settle (default: 120)
        """
        source = os.environ if environ is None else environ

        def get_int(key: str, default: int) -> int:
            value = source.get(key)
            if not value:
                return default
            try:
                return int(value)
            except ValueError as e:
                raise ConfigurationError(f"{key} must be an integer: {value}") from e

        def get_bool(key: str, default: bool) -> bool:
            value = source.get(key, "").lower()
            if not value:
                return default
            return value in ("true", "1", "yes")

        return cls(
            server=source.get("PLUGIN_SERVER", ""),
            token=source.get("PLUGIN_TOKEN", ""),
            ca=source.get("PLUGIN_CA", ""),
            template=source.get("PLUGIN_TEMPLATE", ""),
            namespace=source.get("PLUGIN_NAMESPACE") or None,
            skip_tls_verify=get_bool("PLUGIN_SKIP_TLS_VERIFY", False),
            settle_timeout_seconds=get_int(
                "PLUGIN_SETTLE_TIMEOUT", DEFAULT_SETTLE_TIMEOUT_SECONDS
            ),
        )
