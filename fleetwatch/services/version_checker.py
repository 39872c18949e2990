import asyncio
import logging
from typing import Dict, Iterable, Optional, Tuple

import requests

from ..config import settings
from ..models.container_models import ImageVersion
from .docker_inventory import split_image_ref

logger = logging.getLogger("fleetwatch.version_checker")

GITHUB_RELEASE_URL = "https://api.github.com/repos/{repo}/releases/latest"
DOCKER_HUB_TAGS_URL = "https://hub.docker.com/v2/repositories/{name}/tags?page_size=100"
USER_AGENT = "fleetwatch"

# image name -> ("github", owner/repo) | ("dockerhub", namespace/name)
UPSTREAMS: Dict[str, Tuple[str, str]] = {
    "kaspad": ("github", "kaspanet/rusty-kaspa"),
    "rusty-kaspa": ("github", "kaspanet/rusty-kaspa"),
    "execution-layer": ("github", "paradigmxyz/reth"),
    "reth": ("github", "paradigmxyz/reth"),
    "block-builder": ("dockerhub", "igranetwork/block-builder"),
    "viaduct": ("dockerhub", "igranetwork/viaduct"),
    "rpc-provider": ("dockerhub", "igranetwork/rpc-provider"),
    "kaswallet": ("dockerhub", "igranetwork/kaswallet"),
}


def _is_release_tag(tag: str) -> bool:
    return len(tag) > 1 and tag[0] == "v" and tag[1].isdigit()


def github_latest(repo: str) -> str:
    resp = requests.get(
        GITHUB_RELEASE_URL.format(repo=repo),
        headers={"User-Agent": USER_AGENT},
        timeout=settings.HTTP_TIMEOUT,
    )
    resp.raise_for_status()
    return resp.json()["tag_name"]


def docker_hub_latest(name: str) -> str:
    """First vN... tag in the listing, "latest" when none look like releases."""
    resp = requests.get(DOCKER_HUB_TAGS_URL.format(name=name), timeout=settings.HTTP_TIMEOUT)
    resp.raise_for_status()
    for tag in resp.json().get("results") or []:
        tag_name = tag.get("name") or ""
        if _is_release_tag(tag_name):
            return tag_name
    return "latest"


def lookup_latest(image_name: str) -> Optional[str]:
    """None for images with no known upstream. Lookup errors propagate."""
    upstream = UPSTREAMS.get(image_name)
    if upstream is None:
        return None
    kind, ref = upstream
    if kind == "github":
        return github_latest(ref)
    return docker_hub_latest(ref)


def current_images(images: Iterable[str]) -> Dict[str, str]:
    """Full image refs -> {image name: current tag}."""
    out: Dict[str, str] = {}
    for image in images:
        name, tag = split_image_ref(image)
        out[name] = tag
    return out


async def _check_one(name: str, current: str) -> Tuple[str, ImageVersion]:
    latest: Optional[str] = None
    try:
        latest = await asyncio.to_thread(lookup_latest, name)
    except Exception as exc:  # noqa: BLE001
        logger.warning("Version lookup failed for %s: %s", name, exc)

    update_available = latest is not None and current != "latest" and current != latest
    return name, ImageVersion(current=current, latest=latest, update_available=update_available)


async def check_versions(images: Dict[str, str]) -> Dict[str, ImageVersion]:
    """
    {image name: current tag} -> {image name: ImageVersion}

    Lookups run in parallel. A failed lookup leaves that image's latest
    unset and never affects the others.
    """
    results = await asyncio.gather(*(_check_one(n, t) for n, t in images.items()))
    return dict(results)
