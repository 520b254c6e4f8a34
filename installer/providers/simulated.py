# installer/providers/simulated.py
"""
Dev-mode collaborators: no cloud, no cluster. Every call logs what it would
do and sleeps a little, so the whole creation workflow can be run locally.
"""
from __future__ import annotations

import asyncio
import json
import logging
import os
from typing import Any, Callable, Dict, List, Optional

from installer.cluster_config import ControllerConfig, TenantRecord
from installer.credentials import GCPAuthOptions
from installer.orchestrator.context import ClusterCreateDeps

log = logging.getLogger("installer.providers.simulated")

STEP_DELAY_SECONDS = float(os.getenv("SIMULATED_STEP_DELAY_SECONDS", "0.5"))
INFORMER_TICK_SECONDS = float(os.getenv("SIMULATED_INFORMER_TICK_SECONDS", "1.0"))

FAKE_KUBECONFIG = """\
apiVersion: v1
kind: Config
clusters:
- name: simulated
  cluster: {server: "https://127.0.0.1:6443"}
"""


async def ensure_gcp_infra_exists(auth_options: GCPAuthOptions) -> str:
    log.info("[GCP] Mock ensure infra in project %s", auth_options.project_id)
    await asyncio.sleep(STEP_DELAY_SECONDS)
    return FAKE_KUBECONFIG


async def ensure_aws_infra_exists() -> str:
    log.info("[AWS] Mock ensure VPC / EKS cluster")
    await asyncio.sleep(STEP_DELAY_SECONDS)
    return FAKE_KUBECONFIG


async def get_cert_manager_role_arn() -> str:
    return "arn:aws:iam::000000000000:role/simulated-cert-manager"


def get_kube_config(kubeconfig: str) -> Dict[str, Any]:
    return {"kubeconfig": kubeconfig, "load_from_cluster": False}


async def list_namespaces_or_error(kube_config: Dict[str, Any]) -> List[str]:
    await asyncio.sleep(0)
    namespaces = ["default", "kube-system"]
    log.info("[K8S] Mock namespaces: %s", namespaces)
    return namespaces


async def update_controller_config(cfg: ControllerConfig, kube_config: Dict[str, Any]) -> None:
    log.info(
        "[K8S] Mock apply controller config: %s",
        json.dumps(cfg.model_dump(exclude={"gcp_auth_options", "authentication_cookie"})),
    )
    await asyncio.sleep(STEP_DELAY_SECONDS)


async def update_tenants_config(tenants: List[TenantRecord], kube_config: Dict[str, Any]) -> None:
    log.info("[K8S] Mock apply tenants: %s", [t.name for t in tenants])
    await asyncio.sleep(STEP_DELAY_SECONDS)


async def store_system_tenant_api_auth_token_as_secret(token: str, kube_config: Dict[str, Any]) -> None:
    log.info("[K8S] Mock store system tenant token secret (%d chars)", len(token))
    await asyncio.sleep(STEP_DELAY_SECONDS)


async def deploy_controller_resources(
    *, controller_image: str, cluster_name: str, kube_config: Dict[str, Any]
) -> None:
    log.info("[K8S] Mock deploy controller %s for %s", controller_image, cluster_name)
    await asyncio.sleep(STEP_DELAY_SECONDS)


async def run_informers(kube_config: Dict[str, Any]) -> None:
    tick = 0
    try:
        while True:
            tick += 1
            log.debug("[K8S] Mock informer tick %d", tick)
            await asyncio.sleep(INFORMER_TICK_SECONDS)
    except asyncio.CancelledError:
        log.info("[K8S] Mock informers cancelled after %d tick(s)", tick)
        raise


async def wait_for_controller_deployment(kube_config: Dict[str, Any]) -> None:
    log.info("[K8S] Mock wait for controller deployment")
    await asyncio.sleep(STEP_DELAY_SECONDS)


async def installation_progress_reporter(kube_config: Dict[str, Any]) -> None:
    for pct in (25, 50, 75, 100):
        log.info("[K8S] Mock installation progress: %d%%", pct)
        await asyncio.sleep(STEP_DELAY_SECONDS / 4)


async def wait_until_dns_entries_are_available(cluster_name: str, tenants: List[str]) -> None:
    log.info("[DNS] Mock wait for route53 entries of %s (%d tenants)", cluster_name, len(tenants))
    await asyncio.sleep(STEP_DELAY_SECONDS)


async def wait_until_reachable(
    probe_urls: Dict[str, str], token_for: Callable[[str], Optional[str]], **_kw: Any
) -> None:
    for url, tenant in probe_urls.items():
        log.info("[HTTP] Mock probe %s (auth=%s)", url, token_for(tenant) is not None)
    await asyncio.sleep(STEP_DELAY_SECONDS)


def build_deps() -> ClusterCreateDeps:
    return ClusterCreateDeps(
        ensure_gcp_infra_exists=ensure_gcp_infra_exists,
        ensure_aws_infra_exists=ensure_aws_infra_exists,
        get_cert_manager_role_arn=get_cert_manager_role_arn,
        get_kube_config=get_kube_config,
        list_namespaces_or_error=list_namespaces_or_error,
        update_controller_config=update_controller_config,
        update_tenants_config=update_tenants_config,
        store_system_tenant_api_auth_token_as_secret=store_system_tenant_api_auth_token_as_secret,
        deploy_controller_resources=deploy_controller_resources,
        run_informers=run_informers,
        wait_for_controller_deployment=wait_for_controller_deployment,
        installation_progress_reporter=installation_progress_reporter,
        wait_until_dns_entries_are_available=wait_until_dns_entries_are_available,
        wait_until_reachable=wait_until_reachable,
    )
