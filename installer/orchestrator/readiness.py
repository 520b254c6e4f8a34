# installer/orchestrator/readiness.py
"""
Confirm DNS reachability and readiness of the per-tenant data API endpoints.

Cluster-internal readiness (a Deployment reporting ready) does not imply that
the public DNS / TLS / ingress path serves traffic, so every tenant's cortex
and loki endpoints are probed from the outside until they answer as expected.
"""
from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional

import httpx

from installer.cluster_config import SYSTEM_TENANT
from installer.common.errors import ProbeUnreachableError
from installer.common.tasks import TaskOutcome, spawn

log = logging.getLogger("installer.readiness")

# log "still waiting" on INFO only every n-th consecutive failure
TRANSPORT_ERROR_LOG_EVERY = 5
UNEXPECTED_RESPONSE_LOG_EVERY = 2

TokenLookup = Callable[[str], Optional[str]]


@dataclass(frozen=True)
class ProbeTarget:
    url: str
    group_key: str  # tenant name, used for the auth token lookup


@dataclass
class ProbeState:
    attempt: int = 0
    last_error: Optional[ProbeUnreachableError] = None


def build_probe_urls(
    cluster_name: str, tenant_names: Iterable[str], dns_domain: str = "opstrace.io"
) -> Dict[str, str]:
    """Map each unique probe URL to its tenant name. The system tenant is always included."""
    tnames: List[str] = [t for t in tenant_names if t != SYSTEM_TENANT]
    tnames.append(SYSTEM_TENANT)

    probe_urls: Dict[str, str] = {}
    for tname in tnames:
        mid = f"{tname}.{cluster_name}.{dns_domain}"
        probe_urls[f"https://cortex.{mid}/api/v1/labels"] = tname
        probe_urls[f"https://loki.{mid}/loki/api/v1/labels"] = tname
    return probe_urls


def response_signals_ready(url: str, status_code: int, body: str) -> bool:
    """True for HTTP 200 with a JSON document whose `status` is "success"."""
    if status_code != 200:
        return False

    try:
        data = json.loads(body)
    except ValueError as err:
        log.debug("%s: JSON deserialization err: %s", url, err)
        return False

    if isinstance(data, dict) and "status" in data:
        if data["status"] == "success":
            return True
        log.info("%s: JSON doc 'status': %s", url, data["status"])
    return False


async def wait_for_probe_target(
    client: httpx.AsyncClient,
    target: ProbeTarget,
    token_for: TokenLookup,
    *,
    interval: float = 5.0,
) -> ProbeState:
    """Poll one target until it signals readiness. There is no attempt cap."""
    state = ProbeState()
    while True:
        state.attempt += 1

        headers: Dict[str, str] = {}
        token = token_for(target.group_key)
        if token is not None:
            headers["Authorization"] = f"Bearer {token}"

        try:
            resp = await client.get(target.url, headers=headers)
        except httpx.RequestError as e:
            # most of the waiting time is expected to be spent here (DNS, connect timeout)
            state.last_error = ProbeUnreachableError(f"{e.__class__.__name__}: {e}")
            log.debug("%s: HTTP request failed with: %s", target.url, state.last_error)
            if state.attempt % TRANSPORT_ERROR_LOG_EVERY == 0:
                log.info(
                    "%s: still waiting for expected signal. Last error: %s",
                    target.url, state.last_error,
                )
            await asyncio.sleep(interval)
            continue

        if response_signals_ready(target.url, resp.status_code, resp.text):
            log.info("%s: got expected HTTP response", target.url)
            return state

        state.last_error = ProbeUnreachableError(f"unexpected HTTP response ({resp.status_code})")
        log.debug(
            "HTTP response details:\n  status: %s\n  body[:500]: %s",
            resp.status_code, resp.text[:500],
        )
        if state.attempt % UNEXPECTED_RESPONSE_LOG_EVERY == 0:
            log.info("%s: still waiting, unexpected HTTP response", target.url)

        await asyncio.sleep(interval)


async def wait_until_reachable(
    probe_urls: Dict[str, str],
    token_for: TokenLookup,
    *,
    interval: float = 5.0,
    connect_timeout: float = 3.0,
    request_timeout: float = 10.0,
) -> None:
    """
    Run one polling loop per URL concurrently and return once all of them
    succeeded. Bounded only by whatever deadline the caller runs under.
    """
    targets = [ProbeTarget(url=u, group_key=k) for u, k in probe_urls.items()]
    log.info(
        "waiting for expected HTTP responses at these URLs: %s",
        json.dumps(probe_urls, indent=2),
    )

    # the endpoints may still serve a self-signed / staging certificate
    timeout = httpx.Timeout(request_timeout, connect=connect_timeout)
    async with httpx.AsyncClient(verify=False, timeout=timeout) as client:
        handles = [
            spawn(
                wait_for_probe_target(client, t, token_for, interval=interval),
                name=f"probe {t.url}",
            )
            for t in targets
        ]
        pending = {h.task for h in handles}
        try:
            while pending:
                done, pending = await asyncio.wait(pending, return_when=asyncio.FIRST_EXCEPTION)
                for task in done:
                    TaskOutcome.of(task).unwrap()
        finally:
            # request all cancellations first so a second interrupt cannot strand a probe
            for h in handles:
                h.task.cancel()
            await asyncio.gather(*(h.join() for h in handles))

    log.info("All probe URLs returned expected HTTP responses, continue")
