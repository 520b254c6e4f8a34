# installer/orchestrator/create.py
from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Dict, Optional

from installer.cluster_config import (
    SYSTEM_TENANT,
    AWSControllerConfig,
    ControllerConfig,
    build_controller_config,
    get_tenants_config,
)
from installer.common.errors import ConfigInvalidError, ErrorKind, KubeConfigMissingError
from installer.common.tasks import attached
from installer.config import Settings, settings as default_settings
from installer.docker_image import check_if_docker_image_exists_or_error_out
from installer.orchestrator.context import ClusterCreateDeps, WorkflowContext
from installer.orchestrator.race import run_with_timeout
from installer.orchestrator.readiness import build_probe_urls
from installer.orchestrator.retry import retry_upon_any_error

log = logging.getLogger("installer.create")

FatalErrorHandler = Callable[[BaseException, Dict[str, Any]], None]

# stored when data API authentication is disabled, so the secret always exists
SYSTEM_TOKEN_PLACEHOLDER = "not-required"


def derive_controller_config(ctx: WorkflowContext) -> ControllerConfig:
    return build_controller_config(
        ctx.cluster_config, ctx.gcp_auth_options, dns_domain=ctx.dns_domain
    )


async def create_cluster_core(
    ctx: WorkflowContext, deps: ClusterCreateDeps, settings: Settings
) -> None:
    """One attempt of the creation workflow, from config derivation to verified endpoints."""
    ccfg = ctx.cluster_config
    hold_controller = ctx.create_config.hold_controller

    controller_config = derive_controller_config(ctx)

    if not hold_controller and not ctx.create_config.skip_image_check:
        await asyncio.to_thread(
            check_if_docker_image_exists_or_error_out,
            ccfg.controller_image,
            api_url=settings.DOCKER_HUB_API_URL,
        )

    kubeconfig_string = ""
    if ccfg.cloud_provider == "gcp":
        kubeconfig_string = await deps.ensure_gcp_infra_exists(ctx.gcp_auth_options)
    elif ccfg.cloud_provider == "aws":
        kubeconfig_string = await deps.ensure_aws_infra_exists()
        role_arn = await deps.get_cert_manager_role_arn()
        controller_config = controller_config.model_copy(
            update={"aws": AWSControllerConfig(cert_manager_role_arn=role_arn)}
        )

    if not kubeconfig_string:
        raise KubeConfigMissingError("couldn't compute a kubeconfig")

    kube_config = deps.get_kube_config(kubeconfig_string)

    # debugging aid only
    try:
        await deps.list_namespaces_or_error(kube_config)
    except Exception as err:
        log.warning("problem when interacting with the k8s cluster: %s", err)

    tenants_config = get_tenants_config(ccfg.tenants)
    await deps.update_controller_config(controller_config, kube_config)
    await deps.update_tenants_config(tenants_config, kube_config)

    system_token = ctx.tenant_api_token(SYSTEM_TENANT)
    if system_token is None:
        if not ccfg.data_api_authentication_disabled:
            raise ConfigInvalidError("no API token for the system tenant")
        system_token = SYSTEM_TOKEN_PLACEHOLDER
    await deps.store_system_tenant_api_auth_token_as_secret(system_token, kube_config)

    if hold_controller:
        log.info(
            "Not deploying controller. Raw cluster creation finished: %s (%s)",
            ccfg.cluster_name, ccfg.cloud_provider,
        )
        return

    log.info("deploying controller")
    await deps.deploy_controller_resources(
        controller_image=ccfg.controller_image,
        cluster_name=ccfg.cluster_name,
        kube_config=kube_config,
    )

    log.info("starting k8s informers")
    async with attached(deps.run_informers(kube_config), name="informers"):
        await deps.wait_for_controller_deployment(kube_config)
        await deps.installation_progress_reporter(kube_config)
    log.info("k8s informers stopped")

    if ccfg.cloud_provider == "aws":
        await deps.wait_until_dns_entries_are_available(ccfg.cluster_name, list(ccfg.tenants))

    await deps.wait_until_reachable(
        build_probe_urls(ccfg.cluster_name, ccfg.tenants, ctx.dns_domain),
        ctx.tenant_api_token,
        interval=settings.PROBE_INTERVAL_SECONDS,
        connect_timeout=settings.PROBE_CONNECT_TIMEOUT_SECONDS,
        request_timeout=settings.PROBE_REQUEST_TIMEOUT_SECONDS,
    )

    log.info("cluster creation finished: %s (%s)", ccfg.cluster_name, ccfg.cloud_provider)


async def create_cluster_attempt_with_timeout(
    ctx: WorkflowContext, deps: ClusterCreateDeps, settings: Settings
) -> None:
    log.debug("create_cluster_attempt_with_timeout")
    await run_with_timeout(
        lambda: create_cluster_core(ctx, deps, settings),
        settings.CREATE_ATTEMPT_TIMEOUT_SECONDS,
        name="cluster creation attempt",
    )


async def create_cluster(
    ctx: WorkflowContext,
    deps: ClusterCreateDeps,
    on_fatal_error: FatalErrorHandler,
    settings: Optional[Settings] = None,
) -> None:
    """
    Entry point for cluster creation, to be called by the CLI.

    Unhandled faults reported by the event loop while this runs, and the
    final error after the last attempt, are passed to `on_fatal_error`.
    """
    settings = settings or default_settings
    loop = asyncio.get_running_loop()
    previous_handler = loop.get_exception_handler()

    def _loop_exception_handler(_loop: asyncio.AbstractEventLoop, context: Dict[str, Any]) -> None:
        exc = context.get("exception") or RuntimeError(context.get("message", "unhandled event loop fault"))
        on_fatal_error(exc, context)

    loop.set_exception_handler(_loop_exception_handler)
    try:
        await retry_upon_any_error(
            task=lambda: create_cluster_attempt_with_timeout(ctx, deps, settings),
            max_attempts=settings.CREATE_ATTEMPTS,
            delay_seconds=settings.CREATE_RETRY_DELAY_SECONDS,
            do_not_log_detail_for={ErrorKind.ATTEMPT_TIMED_OUT},
            action_name="cluster creation",
        )
    except Exception as e:
        on_fatal_error(e, {"message": "cluster creation failed", "exception": e})
        raise
    finally:
        loop.set_exception_handler(previous_handler)

    # helpful when the runtime is supposed to crash but doesn't
    log.debug("end of create_cluster()")
