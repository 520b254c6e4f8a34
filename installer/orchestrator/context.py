# installer/orchestrator/context.py
from __future__ import annotations

import logging
from types import MappingProxyType
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional

from installer.cluster_config import (
    SYSTEM_TENANT,
    ClusterConfig,
    ControllerConfig,
    TenantRecord,
)
from installer.common.errors import ConfigInvalidError
from installer.credentials import GCPAuthOptions, get_validated_gcp_auth_options_from_file
from installer.orchestrator import readiness

log = logging.getLogger("installer.context")

# Whatever the kubernetes client factory returns; opaque to the workflow.
KubeConfig = Any


# -------- Types --------
@dataclass(frozen=True)
class ClusterCreateConfig:
    """Settings of the creation run that are not part of the cluster config itself."""
    hold_controller: bool = False
    tenant_api_tokens: Mapping[str, str] = field(default_factory=dict)
    skip_image_check: bool = False


@dataclass(frozen=True)
class WorkflowContext:
    """Resolved once per process; shared read-only by every attempt."""
    cluster_config: ClusterConfig
    create_config: ClusterCreateConfig
    gcp_auth_options: Optional[GCPAuthOptions] = None
    dns_domain: str = "opstrace.io"

    @property
    def gcp_project_id(self) -> Optional[str]:
        return self.gcp_auth_options.project_id if self.gcp_auth_options else None

    def tenant_api_token(self, tenant_name: str) -> Optional[str]:
        return self.create_config.tenant_api_tokens.get(tenant_name)


@dataclass(frozen=True)
class ClusterCreateDeps:
    """
    External collaborators of the creation workflow. Each callable talks to
    the cloud provider or the kubernetes API and raises an InstallerError
    subclass on rejection.
    """
    ensure_gcp_infra_exists: Callable[[GCPAuthOptions], Awaitable[str]]
    ensure_aws_infra_exists: Callable[[], Awaitable[str]]
    get_cert_manager_role_arn: Callable[[], Awaitable[str]]
    get_kube_config: Callable[[str], KubeConfig]
    list_namespaces_or_error: Callable[[KubeConfig], Awaitable[Any]]
    update_controller_config: Callable[[ControllerConfig, KubeConfig], Awaitable[None]]
    update_tenants_config: Callable[[List[TenantRecord], KubeConfig], Awaitable[None]]
    store_system_tenant_api_auth_token_as_secret: Callable[[str, KubeConfig], Awaitable[None]]
    deploy_controller_resources: Callable[..., Awaitable[None]]
    run_informers: Callable[[KubeConfig], Awaitable[None]]
    wait_for_controller_deployment: Callable[[KubeConfig], Awaitable[None]]
    installation_progress_reporter: Callable[[KubeConfig], Awaitable[None]]
    wait_until_dns_entries_are_available: Callable[[str, List[str]], Awaitable[None]]
    # dev mode swaps this out; the real poller probes public endpoints
    wait_until_reachable: Callable[..., Awaitable[None]] = readiness.wait_until_reachable


def build_workflow_context(
    cluster_config: ClusterConfig,
    create_config: ClusterCreateConfig,
    *,
    gcp_credentials_path: Optional[str] = None,
    dns_domain: str = "opstrace.io",
) -> WorkflowContext:
    """Resolve credentials and check the token map against the auth mode."""
    gcp_auth_options: Optional[GCPAuthOptions] = None
    if cluster_config.cloud_provider == "gcp":
        if not gcp_credentials_path:
            raise ConfigInvalidError("GOOGLE_APPLICATION_CREDENTIALS must be set for a gcp cluster")
        gcp_auth_options = get_validated_gcp_auth_options_from_file(gcp_credentials_path)

    tokens: Dict[str, str] = dict(create_config.tenant_api_tokens)
    if not cluster_config.data_api_authentication_disabled:
        missing = [t for t in [SYSTEM_TENANT, *cluster_config.tenants] if t not in tokens]
        if missing:
            raise ConfigInvalidError(f"missing tenant API tokens for: {', '.join(missing)}")

    return WorkflowContext(
        cluster_config=cluster_config,
        create_config=ClusterCreateConfig(
            hold_controller=create_config.hold_controller,
            skip_image_check=create_config.skip_image_check,
            tenant_api_tokens=MappingProxyType(tokens),
        ),
        gcp_auth_options=gcp_auth_options,
        dns_domain=dns_domain,
    )
