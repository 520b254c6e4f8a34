"""
CLI interface for the cluster installer.

    cluster-installer create cluster.yaml --tenant-api-tokens tokens.yaml

Collaborators (cloud provisioning, kubernetes appliers) are loaded from
`--providers module:attr`, a callable returning ClusterCreateDeps. The
default is the simulated set, which touches no real infrastructure.
"""
from __future__ import annotations

import asyncio
import importlib
import logging
import sys
from typing import Any, Dict, Optional

import click

import installer.common.bootstrap_env  # noqa: F401  (loads .env)
from installer.cluster_config import load_cluster_config, load_tenant_api_tokens
from installer.common.errors import ConfigInvalidError, die
from installer.common.tracing import setup_logging
from installer.config import Settings
from installer.orchestrator.context import (
    ClusterCreateConfig,
    ClusterCreateDeps,
    WorkflowContext,
    build_workflow_context,
)
from installer.orchestrator.create import create_cluster

log = logging.getLogger("installer.cli")

DEFAULT_PROVIDERS = "installer.providers.simulated:build_deps"


def load_deps(ref: str) -> ClusterCreateDeps:
    """Resolve `module:attr` to a ClusterCreateDeps factory and call it."""
    mod_name, _, attr = ref.partition(":")
    if not mod_name or not attr:
        raise click.BadParameter(f"expected module:attr, got {ref!r}", param_hint="--providers")
    try:
        factory = getattr(importlib.import_module(mod_name), attr)
    except (ImportError, AttributeError) as e:
        raise click.BadParameter(f"cannot load {ref}: {e}", param_hint="--providers") from e
    deps = factory()
    if not isinstance(deps, ClusterCreateDeps):
        raise click.BadParameter(f"{ref} did not return ClusterCreateDeps", param_hint="--providers")
    return deps


def _on_fatal_error(exc: BaseException, detail: Dict[str, Any]) -> None:
    log.error("❌ fatal: %s (%s)", exc, detail.get("message", "-"))


def run_create(ctx: WorkflowContext, deps: ClusterCreateDeps, settings: Settings) -> None:
    asyncio.run(create_cluster(ctx, deps, _on_fatal_error, settings))


@click.group()
def main():
    """cluster-installer - bring up a cluster and verify it serves traffic."""


@main.command()
@click.argument("cluster_config", type=click.Path(exists=True, dir_okay=False))
@click.option("--tenant-api-tokens", type=click.Path(exists=True, dir_okay=False), default=None,
              help="YAML map of tenant name to data API token.")
@click.option("--hold-controller", is_flag=True, default=False,
              help="Stop after applying config; do not deploy the controller.")
@click.option("--skip-image-check", is_flag=True, default=False,
              help="Do not check the controller image on docker hub.")
@click.option("--providers", default=DEFAULT_PROVIDERS, show_default=True,
              help="module:attr returning the collaborator set.")
def create(
    cluster_config: str,
    tenant_api_tokens: Optional[str],
    hold_controller: bool,
    skip_image_check: bool,
    providers: str,
):
    """Create a cluster from CLUSTER_CONFIG."""
    settings = Settings()
    setup_logging(getattr(logging, settings.INSTALLER_LOG_LEVEL.upper(), logging.INFO))

    try:
        ccfg = load_cluster_config(cluster_config)
        tokens = load_tenant_api_tokens(tenant_api_tokens) if tenant_api_tokens else {}
        ctx = build_workflow_context(
            ccfg,
            ClusterCreateConfig(
                hold_controller=hold_controller,
                tenant_api_tokens=tokens,
                skip_image_check=skip_image_check,
            ),
            gcp_credentials_path=settings.GOOGLE_APPLICATION_CREDENTIALS,
            dns_domain=settings.DNS_DOMAIN,
        )
    except ConfigInvalidError as e:
        die(str(e))

    deps = load_deps(providers)
    log.info("🚀 creating cluster %s (%s)", ccfg.cluster_name, ccfg.cloud_provider)
    try:
        run_create(ctx, deps, settings)
    except Exception:
        # already logged per attempt and reported via the fatal error handler
        sys.exit(1)
    log.info("✅ cluster %s is up", ccfg.cluster_name)


if __name__ == "__main__":
    main()
