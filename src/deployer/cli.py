"""Kubernetes deployer CLI (kubedeploy).

Usage:
    kubedeploy render --template deploy.yaml     # Print rendered documents
    kubedeploy apply --template deploy.yaml ...  # Apply to a cluster

Every option also reads the PLUGIN_* variable the plugin entry point uses,
so the same pipeline settings work for both.
"""

from __future__ import annotations

import asyncio
import logging
import sys

import click

from .config import (
    DEFAULT_SETTLE_TIMEOUT_SECONDS,
    ConfigurationError,
    PluginConfig,
    TemplateVariables,
)
from .main import run_deploy, setup_logging
from .template_loader import TemplateError, load_template, render_template, split_documents

DOCUMENT_SEPARATOR = "---"


def parse_variables(values: tuple[str, ...]) -> dict[str, str]:
    """Parse ``KEY=VALUE`` pairs given on the command line.

    Keys are lower-cased to match harvested environment variables.

    Raises:
        click.BadParameter: If a pair has no ``=`` or an empty key.
    """
    parsed: dict[str, str] = {}
    for item in values:
        key, sep, value = item.partition("=")
        if not sep or not key:
            raise click.BadParameter(f"expected KEY=VALUE, got {item!r}", param_hint="--var")
        parsed[key.lower()] = value
    return parsed


def build_variables(extra: tuple[str, ...]) -> TemplateVariables:
    """Harvest environment variables, then overlay ``--var`` values."""
    harvested = TemplateVariables.from_environ()
    return TemplateVariables(values={**harvested.values, **parse_variables(extra)})


# =============================================================================
# Main CLI Group
# =============================================================================


@click.group()
@click.version_option(version="0.1.0", prog_name="kubedeploy")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
def cli(verbose: bool) -> None:
    """Kubernetes deployer CLI (kubedeploy).

    Render a manifest template and create or update its resources.

    \b
    Templates use Jinja2 syntax. Handlebars blocks need rewriting:
        {{#if x}}...{{/if}}  ->  {% if x %}...{% endif %}

    \b
    Quick Start:
        kubedeploy render -t deploy.yaml --var image_tag=1.2.3
        kubedeploy apply -t deploy.yaml --server https://k8s:6443 ...
    """
    setup_logging(logging.DEBUG if verbose else logging.INFO, stream=sys.stderr)


@cli.command()
@click.option(
    "--template",
    "-t",
    envvar="PLUGIN_TEMPLATE",
    required=True,
    type=click.Path(dir_okay=False),
    help="Manifest template path",
)
@click.option("--var", "variables", multiple=True, help="Extra template variable KEY=VALUE")
def render(template: str, variables: tuple[str, ...]) -> None:
    """Render the template and print its documents without applying them."""
    context = build_variables(variables)
    try:
        documents = split_documents(render_template(load_template(template), context.as_context()))
    except TemplateError as e:
        raise click.ClickException(str(e)) from e

    click.echo(f"\n{DOCUMENT_SEPARATOR}\n".join(documents))


@cli.command()
@click.option("--server", envvar="PLUGIN_SERVER", default="", help="Kubernetes API server URL")
@click.option("--token", envvar="PLUGIN_TOKEN", default="", help="Bearer token")
@click.option("--ca", envvar="PLUGIN_CA", default="", help="CA certificate, PEM or base64 PEM")
@click.option(
    "--skip-tls-verify",
    envvar="PLUGIN_SKIP_TLS_VERIFY",
    is_flag=True,
    help="Skip TLS verification of the API server",
)
@click.option("--namespace", "-n", envvar="PLUGIN_NAMESPACE", default=None, help="Namespace override")
@click.option(
    "--template",
    "-t",
    envvar="PLUGIN_TEMPLATE",
    default="",
    help="Manifest template path",
)
@click.option(
    "--settle-timeout",
    envvar="PLUGIN_SETTLE_TIMEOUT",
    type=int,
    default=DEFAULT_SETTLE_TIMEOUT_SECONDS,
    show_default=True,
    help="Seconds to wait for Deployments to settle",
)
@click.option("--var", "variables", multiple=True, help="Extra template variable KEY=VALUE")
def apply(
    server: str,
    token: str,
    ca: str,
    skip_tls_verify: bool,
    namespace: str | None,
    template: str,
    settle_timeout: int,
    variables: tuple[str, ...],
) -> None:
    """Render the template and create or update every resource in it."""
    try:
        config = PluginConfig(
            server=server,
            token=token,
            ca=ca,
            template=template,
            namespace=namespace or None,
            skip_tls_verify=skip_tls_verify,
            settle_timeout_seconds=settle_timeout,
        )
    except ConfigurationError as e:
        raise click.ClickException(str(e)) from e

    exit_code = asyncio.run(run_deploy(config, build_variables(variables)))
    if exit_code != 0:
        raise click.exceptions.Exit(exit_code)

    click.secho("✓ Manifest applied", fg="green", err=True)


if __name__ == "__main__":
    cli()
