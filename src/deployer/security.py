"""Cluster credentials and API client construction.

This is the only place an authenticated Kubernetes API client is built.

SECURITY INVARIANTS:
1. The bearer token is never logged
2. The CA certificate is written to a private temporary file that is
   removed when the client is released
3. TLS verification is only disabled when explicitly requested
"""

from __future__ import annotations

import base64
import binascii
import logging
import os
import tempfile
from collections.abc import Generator
from contextlib import contextmanager

from kubernetes.client import ApiClient, Configuration

from .config import ConfigurationError, PluginConfig

logger = logging.getLogger(__name__)

PEM_MARKER = b"-----BEGIN"


def decode_ca_certificate(value: str) -> bytes:
    """Decode a CA certificate given as PEM text or base64-encoded PEM.

    Args:
        value: Certificate as supplied by the pipeline.

    Returns:
        PEM-encoded certificate bytes.

    Raises:
        ConfigurationError: If the value is neither PEM nor base64 PEM.
    """
    raw = value.strip().encode("utf-8")
    if raw.startswith(PEM_MARKER):
        return raw + b"\n"

    try:
        decoded = base64.b64decode(raw, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ConfigurationError("PLUGIN_CA must be PEM or base64-encoded PEM") from e

    if not decoded.lstrip().startswith(PEM_MARKER):
        raise ConfigurationError("PLUGIN_CA does not contain a PEM certificate")

    return decoded


def build_configuration(config: PluginConfig, ca_cert_path: str) -> Configuration:
    """Build a client Configuration using bearer token authentication.

    Args:
        config: Validated plugin configuration.
        ca_cert_path: Path to the PEM CA certificate on disk.
    """
    configuration = Configuration()
    configuration.host = config.server.rstrip("/")
    configuration.api_key = {"authorization": config.token}
    configuration.api_key_prefix = {"authorization": "Bearer"}
    configuration.ssl_ca_cert = ca_cert_path
    configuration.verify_ssl = not config.skip_tls_verify
    return configuration


@contextmanager
def kube_api_client(config: PluginConfig) -> Generator[ApiClient, None, None]:
    """Yield an authenticated API client for the configured cluster.

    The client and the temporary CA file are released on exit.

    Raises:
        ConfigurationError: If the CA certificate cannot be decoded.
    """
    ca_pem = decode_ca_certificate(config.ca)

    fd, ca_cert_path = tempfile.mkstemp(prefix="kube-deployer-ca-", suffix=".pem")
    try:
        with os.fdopen(fd, "wb") as ca_file:
            ca_file.write(ca_pem)

        if config.skip_tls_verify:
            logger.warning(
                "TLS verification disabled for API server",
                extra={"server": config.server},
            )

        api_client = ApiClient(build_configuration(config, ca_cert_path))
        logger.info(
            "Connecting to Kubernetes API server",
            extra={"server": config.server, "verify_ssl": not config.skip_tls_verify},
        )
        try:
            yield api_client
        finally:
            api_client.close()
    finally:
        os.unlink(ca_cert_path)
