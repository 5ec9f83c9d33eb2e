"""Main entry point for the Kubernetes deployer plugin.

Runs once per pipeline step:
- Reads connection settings and template variables from the environment
- Renders the manifest template and splits it into documents
- Creates or replaces each resource in order, waiting on Deployment rollouts

Any error stops the run and is reported with a non-zero exit code.
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from datetime import UTC, datetime
from typing import TextIO

from kubernetes.client.exceptions import ApiException

from .config import ConfigurationError, PluginConfig, TemplateVariables
from .dispatch import deploy
from .models import DecodeError, UnsupportedKindError
from .settlement import SettlementError, SettlementTimeoutError
from .template_loader import TemplateError

# Attributes every LogRecord carries; anything else came in through extra=
_RESERVED_RECORD_ATTRS = frozenset(
    (
        "name",
        "msg",
        "args",
        "created",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "module",
        "msecs",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "stack_info",
        "exc_info",
        "exc_text",
        "thread",
        "threadName",
        "taskName",
        "message",
    )
)


class JsonFormatter(logging.Formatter):
    """Format logs as JSON for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(UTC).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "message": record.getMessage(),
            "logger": record.name,
        }

        for key, value in record.__dict__.items():
            if key not in _RESERVED_RECORD_ATTRS:
                log_data[key] = value

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def setup_logging(level: int = logging.INFO, stream: TextIO | None = None) -> None:
    """Configure structured logging with JSON output (stdout by default)."""
    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(JsonFormatter())

    root_logger = logging.getLogger()
    root_logger.addHandler(handler)
    root_logger.setLevel(level)

    # Reduce noise from the Kubernetes client
    logging.getLogger("kubernetes").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)


async def run_deploy(config: PluginConfig, variables: TemplateVariables) -> int:
    """Apply the configured manifest and map failures to an exit code."""
    logger = logging.getLogger(__name__)

    try:
        applied = await deploy(config, variables)
    except TemplateError as e:
        logger.error("Error reading template file", extra={"error": str(e)})
        return 1
    except UnsupportedKindError as e:
        logger.error("This plugin doesn't support that resource type", extra={"error": str(e)})
        return 1
    except DecodeError as e:
        logger.error(
            "Error decoding template into valid Kubernetes object",
            extra={"error": str(e)},
        )
        return 1
    except ConfigurationError as e:
        logger.error("Configuration error", extra={"error": str(e)})
        return 1
    except SettlementTimeoutError as e:
        logger.error(
            "Deployment did not settle in time",
            extra={"error": str(e), "status": e.outcome.label},
        )
        return 1
    except SettlementError as e:
        logger.error(
            "Deployment failed to settle",
            extra={"error": str(e), "status": e.outcome.label},
        )
        return 1
    except ApiException as e:
        logger.error(
            "Kubernetes API error",
            extra={"error": e.reason, "status_code": e.status, "body": e.body},
        )
        return 1
    except Exception as e:
        logger.exception("Deploy failed unexpectedly", extra={"error": str(e)})
        return 1

    logger.info(
        "Deploy completed successfully",
        extra={
            "resources": [
                {
                    "kind": item.kind.value,
                    "namespace": item.namespace,
                    "name": item.name,
                    "action": item.action.value,
                    "status": item.settlement.label if item.settlement else None,
                }
                for item in applied
            ]
        },
    )
    return 0


async def main() -> int:
    """Run the plugin.

    Returns:
        Exit code (0 for success, non-zero for failure).
    """
    setup_logging()
    logger = logging.getLogger(__name__)

    try:
        config = PluginConfig.from_env()
    except ConfigurationError as e:
        logger.error("Configuration error", extra={"error": str(e)})
        return 1

    variables = TemplateVariables.from_environ()

    logger.info(
        "Starting Kubernetes deployer",
        extra={
            "server": config.server,
            "namespace": config.namespace,
            "template": config.template,
            "variable_count": len(variables.values),
        },
    )

    return await run_deploy(config, variables)


def run() -> None:
    """Entry point for the plugin container."""
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
