# installer/docker_image.py
from __future__ import annotations

import logging
from typing import Optional

import requests
from requests.adapters import HTTPAdapter

from installer.common.errors import die

log = logging.getLogger("installer.docker_image")

DOCKER_HUB_API_URL = "https://hub.docker.com/v2/repositories"

# (connect, read) seconds
REQUEST_TIMEOUT = (3.0, 10.0)
REQUEST_RETRIES = 3


def check_if_docker_image_exists_or_error_out(
    image_name: str, *, api_url: Optional[str] = None
) -> None:
    """
    Check if a docker image exists on docker hub. `image_name` must be
    `<repository>:<tag>`.

    Exits the process when the name is malformed or the image is confirmed
    missing (HTTP 404). Any other outcome (transport error, unexpected status)
    is ambiguous and does not block.
    """
    log.info("check if docker image exists on docker hub: %s", image_name)
    splits = image_name.split(":")
    if len(splits) != 2:
        die(f"unexpected controller image name: {image_name}")
    repo, image_tag = splits

    probe_url = f"{(api_url or DOCKER_HUB_API_URL).rstrip('/')}/{repo}/tags/{image_tag}/"

    with requests.Session() as session:
        session.mount("https://", HTTPAdapter(max_retries=REQUEST_RETRIES))
        try:
            resp = session.get(probe_url, timeout=REQUEST_TIMEOUT)
        except requests.RequestException as e:
            log.info("could not detect presence of docker image: %s -- ignored, proceed", e)
            return

    if resp.status_code == 404:
        die("docker image not present on docker hub: you might want to push that first")

    if resp.status_code == 200:
        log.info("docker image present on docker hub, continue")
        return

    log.info("unexpected response, ignore")
    log.debug("response status code: %s", resp.status_code)
    if resp.text:
        log.debug("response body, first 500 chars: %s", resp.text[:500])
