# installer/cluster_config.py
from __future__ import annotations

import logging
import secrets
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from installer.common.errors import ConfigInvalidError
from installer.credentials import GCPAuthOptions

log = logging.getLogger("installer.cluster_config")

CloudProvider = Literal["gcp", "aws"]

SYSTEM_TENANT = "system"


# -----------------------------------------------------------------------------
# User-given cluster config
# -----------------------------------------------------------------------------

class GCPConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    region: str
    zone_suffix: str = "a"


class AWSConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    region: str
    zone_suffix: str = "a"


class ClusterConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    cluster_name: str = Field(pattern=r"^[a-z][a-z0-9-]{1,22}$")
    cloud_provider: CloudProvider
    tenants: List[str] = Field(default_factory=list)
    gcp: Optional[GCPConfig] = None
    aws: Optional[AWSConfig] = None

    log_retention_days: int = Field(default=7, ge=1)
    metric_retention_days: int = Field(default=7, ge=1)
    cert_issuer: Literal["letsencrypt-prod", "letsencrypt-staging"] = "letsencrypt-staging"

    data_api_authorized_ip_ranges: List[str] = Field(default_factory=lambda: ["0.0.0.0/0"])
    data_api_authentication_disabled: bool = False
    data_api_authn_pubkey_pem: str = ""

    controller_image: str

    @field_validator("tenants")
    @classmethod
    def _tenant_names(cls, v: List[str]) -> List[str]:
        if SYSTEM_TENANT in v:
            raise ValueError(f"tenant name '{SYSTEM_TENANT}' is reserved")
        if len(set(v)) != len(v):
            raise ValueError("tenant names must be unique")
        return v


def load_cluster_config(path: Union[str, Path]) -> ClusterConfig:
    """Load a cluster config YAML document. Problems raise ConfigInvalidError."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            doc = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise ConfigInvalidError(f"cannot read cluster config {path}: {e}") from e

    if not isinstance(doc, dict):
        raise ConfigInvalidError(f"cluster config {path}: expected a mapping at top level")

    try:
        return ClusterConfig.model_validate(doc)
    except ValidationError as e:
        raise ConfigInvalidError(f"invalid cluster config {path}:\n{e}") from e


def load_tenant_api_tokens(path: Union[str, Path]) -> Dict[str, str]:
    """tenant name -> API token map from a YAML file (can be empty)."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            doc = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigInvalidError(f"cannot read tenant API tokens {path}: {e}") from e

    if not isinstance(doc, dict) or not all(
        isinstance(k, str) and isinstance(v, str) for k, v in doc.items()
    ):
        raise ConfigInvalidError(f"tenant API tokens {path}: expected a tenant name -> token mapping")
    return doc


# -----------------------------------------------------------------------------
# Derived config
# -----------------------------------------------------------------------------

class FirewallConfig(BaseModel):
    ui: List[str]
    api: List[str]


class DnsConfig(BaseModel):
    dns_name: str
    provider: CloudProvider


class TenantRecord(BaseModel):
    name: str
    type: Literal["SYSTEM", "USER"]


def get_firewall_config(api: Optional[List[str]] = None, ui: Optional[List[str]] = None) -> FirewallConfig:
    return FirewallConfig(ui=ui or ["0.0.0.0/0"], api=api or ["0.0.0.0/0"])


def get_dns_config(cloud_provider: CloudProvider, domain: str = "opstrace.io") -> DnsConfig:
    return DnsConfig(dns_name=f"{domain}.", provider=cloud_provider)


def get_tenants_config(tenant_names: List[str]) -> List[TenantRecord]:
    records = [TenantRecord(name=SYSTEM_TENANT, type="SYSTEM")]
    records.extend(TenantRecord(name=n, type="USER") for n in tenant_names if n != SYSTEM_TENANT)
    return records


# -----------------------------------------------------------------------------
# Controller config
# -----------------------------------------------------------------------------

class AWSControllerConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", strict=True)

    cert_manager_role_arn: str


class ControllerConfig(BaseModel):
    """What the in-cluster controller reads. Validated strictly: no coercion, no unknown keys."""
    model_config = ConfigDict(extra="forbid", strict=True)

    name: str
    target: CloudProvider
    region: str
    cert_issuer: str
    infrastructure_name: str
    log_retention: int
    metric_retention: int
    dns_name: str
    authentication_cookie: str
    terminate: bool = False
    controller_terminated: bool = False
    tls_certificate_issuer: str
    ui_source_ip_firewall_rules: List[str]
    api_source_ip_firewall_rules: List[str]
    data_api_authn_pubkey_pem: str
    disable_data_api_authentication: bool
    gcp_auth_options: Optional[GCPAuthOptions] = None
    aws: Optional[AWSControllerConfig] = None


def validate_controller_config(data: Dict[str, Any]) -> ControllerConfig:
    log.debug("validate controller config")
    try:
        return ControllerConfig.model_validate(data, strict=True)
    except ValidationError as e:
        raise ConfigInvalidError(f"invalid controller config:\n{e}") from e


def build_controller_config(
    ccfg: ClusterConfig,
    gcp_auth_options: Optional[GCPAuthOptions] = None,
    dns_domain: str = "opstrace.io",
) -> ControllerConfig:
    """Derive the controller config from the cluster config and validate it."""
    if ccfg.cloud_provider == "gcp":
        if ccfg.gcp is None:
            raise ConfigInvalidError("`gcp` property expected")
        if gcp_auth_options is None:
            raise ConfigInvalidError("GCP auth options expected for a gcp cluster")
        region = ccfg.gcp.region
    else:
        if ccfg.aws is None:
            raise ConfigInvalidError("`aws` property expected")
        region = ccfg.aws.region

    firewall = get_firewall_config(api=ccfg.data_api_authorized_ip_ranges)
    dns = get_dns_config(ccfg.cloud_provider, dns_domain)

    return validate_controller_config({
        "name": ccfg.cluster_name,
        "target": ccfg.cloud_provider,
        "region": region,
        "cert_issuer": ccfg.cert_issuer,
        "infrastructure_name": ccfg.cluster_name,
        "log_retention": ccfg.log_retention_days,
        "metric_retention": ccfg.metric_retention_days,
        "dns_name": dns.dns_name,
        "authentication_cookie": secrets.token_urlsafe(16),
        "terminate": False,
        "controller_terminated": False,
        "tls_certificate_issuer": ccfg.cert_issuer,
        "ui_source_ip_firewall_rules": firewall.ui,
        "api_source_ip_firewall_rules": firewall.api,
        "data_api_authn_pubkey_pem": ccfg.data_api_authn_pubkey_pem,
        "disable_data_api_authentication": ccfg.data_api_authentication_disabled,
        "gcp_auth_options": gcp_auth_options,
    })
