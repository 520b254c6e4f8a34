# installer/common/errors.py
from __future__ import annotations

import logging
import sys
from enum import Enum
from typing import NoReturn, Optional

log = logging.getLogger("installer.errors")


class ErrorKind(str, Enum):
    CONFIG_INVALID = "config_invalid"
    INFRA_PROVISIONING_FAILED = "infra_provisioning_failed"
    KUBECONFIG_MISSING = "kubeconfig_missing"
    CONTROLLER_DEPLOY_FAILED = "controller_deploy_failed"
    ATTEMPT_TIMED_OUT = "attempt_timed_out"
    PROBE_UNREACHABLE = "probe_unreachable"


# ---- Canonical error classes ------------------------------------------------

class InstallerError(Exception):
    kind: Optional[ErrorKind] = None

    def __init__(self, message: str = ""):
        super().__init__(message or self.__class__.__name__)


class ConfigInvalidError(InstallerError):
    kind = ErrorKind.CONFIG_INVALID


class InfraProvisioningError(InstallerError):
    kind = ErrorKind.INFRA_PROVISIONING_FAILED


class KubeConfigMissingError(InstallerError):
    kind = ErrorKind.KUBECONFIG_MISSING


class ControllerDeployError(InstallerError):
    kind = ErrorKind.CONTROLLER_DEPLOY_FAILED


class AttemptTimedOutError(InstallerError):
    kind = ErrorKind.ATTEMPT_TIMED_OUT

    def __init__(self, timeout_seconds: float = 0):
        super().__init__(f"attempt timed out after {timeout_seconds} seconds")
        self.timeout_seconds = timeout_seconds


class ProbeUnreachableError(InstallerError):
    """Transient probe failure. Never propagates out of a probe loop."""
    kind = ErrorKind.PROBE_UNREACHABLE


# ---- Helpers ----------------------------------------------------------------

def kind_of(exc: BaseException) -> Optional[ErrorKind]:
    return exc.kind if isinstance(exc, InstallerError) else None


def die(message: str) -> NoReturn:
    """Log and terminate the process. Not an attempt-level failure."""
    log.error(message)
    sys.exit(1)
