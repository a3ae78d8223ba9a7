"""
registry.py

Responsibility: Isolate Docker Hub REST API interaction and the image preflight.

This module must be the only place that:
- Constructs Docker Hub endpoints
- Sends HTTP requests to hub.docker.com
- Interprets Docker Hub responses / error payloads

The preflight fails a run before any container starts when a pinned image tag exists
neither in the local image store nor on the registry.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable

import requests
import structlog

from snosgen.config import ToolImage
from snosgen.docker import DockerClient

logger = structlog.get_logger(__name__)

DOCKER_HUB_API = "https://hub.docker.com/v2"


class RegistryError(RuntimeError):
    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ImageNotFound(RegistryError):
    pass


@dataclass(frozen=True)
class TagInfo:
    repository: str
    tag: str
    digest: str
    last_updated: str


def hub_repository(image: ToolImage) -> str | None:
    """
    Return the Docker Hub `namespace/name` for an image, or None when the image lives
    on another registry. Official images live under the `library` namespace.
    """
    parts = image.name.split("/")
    if len(parts) > 1 and ("." in parts[0] or ":" in parts[0] or parts[0] == "localhost"):
        if parts[0] not in ("docker.io", "index.docker.io", "registry-1.docker.io"):
            return None
        parts = parts[1:]
    if len(parts) == 1:
        return f"library/{parts[0]}"
    return "/".join(parts)


class DockerHubClient:
    def __init__(self, api_base: str = DOCKER_HUB_API, timeout: float = 30) -> None:
        self._api_base = api_base.rstrip("/")
        self._timeout = timeout

    def _headers(self) -> dict[str, str]:
        return {
            "Accept": "application/json",
            "User-Agent": "snosgen",
        }

    def _request(self, method: str, path: str) -> Any:
        url = f"{self._api_base}{path}"
        try:
            r = requests.request(method, url, headers=self._headers(), timeout=self._timeout)
        except requests.RequestException as e:
            raise RegistryError(f"Docker Hub request failed {method} {path}: {e}") from e
        if r.status_code >= 400:
            try:
                payload = r.json()
            except ValueError:
                payload = {"message": r.text}
            message = payload.get("message", payload) if isinstance(payload, dict) else payload
            raise RegistryError(
                f"Docker Hub API error {r.status_code} {method} {path}: {message}",
                status_code=r.status_code,
            )
        try:
            return r.json()
        except ValueError as e:
            raise RegistryError(
                f"Docker Hub returned a non-JSON body {r.status_code} {method} {path}",
                status_code=r.status_code,
            ) from e

    def get_tag(self, image: ToolImage) -> TagInfo | None:
        """
        Return TagInfo if the tag is published on Docker Hub; otherwise None.
        """
        repository = hub_repository(image)
        if repository is None:
            raise RegistryError(f"{image.name} is not hosted on Docker Hub")
        try:
            data = self._request("GET", f"/repositories/{repository}/tags/{image.tag}")
        except RegistryError as e:
            if e.status_code == 404:
                return None
            raise
        if not isinstance(data, dict):
            raise RegistryError(f"Unexpected Docker Hub tag payload for {image.reference}")
        return TagInfo(
            repository=repository,
            tag=str(data.get("name") or image.tag),
            digest=str(data.get("digest") or ""),
            last_updated=str(data.get("last_updated") or ""),
        )


def verify_images(
    images: Iterable[ToolImage],
    *,
    docker: DockerClient,
    hub: DockerHubClient,
) -> None:
    """
    Check that every image is available locally or on Docker Hub.

    Images are checked once each, in the order given. Raises ImageNotFound for the
    first one that cannot be found.
    """
    seen: set[str] = set()
    for image in images:
        if image.reference in seen:
            continue
        seen.add(image.reference)

        if docker.image_exists(image):
            logger.info("image_verified", image=image.reference, source="local")
            continue
        if hub_repository(image) is None:
            raise ImageNotFound(f"Image {image.reference} is not available locally")
        info = hub.get_tag(image)
        if info is None:
            raise ImageNotFound(f"Image {image.reference} was not found locally or on Docker Hub")
        logger.info("image_verified", image=image.reference, source="registry", digest=info.digest)
