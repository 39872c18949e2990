from __future__ import annotations

from typing import Any, Dict, List

from fastapi import APIRouter

from ..services import runtime

router = APIRouter(tags=["containers"])


@router.get("/containers", summary="Latest container inventory with log-derived status.")
def list_containers() -> List[Dict[str, Any]]:
    return [c.model_dump(mode="json") for c in runtime.view.containers]


@router.get("/stats", summary="Latest resource sample per running container.")
def container_stats() -> Dict[str, Any]:
    return {name: s.model_dump() for name, s in runtime.view.stats.items()}


@router.get("/versions", summary="Current vs latest upstream version per image.")
def image_versions() -> Dict[str, Any]:
    return {name: v.model_dump() for name, v in runtime.view.versions.items()}
