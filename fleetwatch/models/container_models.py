from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .log_models import ServiceMetrics


class RunState(str, Enum):
    RUNNING = "running"
    STOPPED = "stopped"
    PAUSED = "paused"
    RESTARTING = "restarting"
    DEAD = "dead"
    UNKNOWN = "unknown"

    @classmethod
    def from_status(cls, status: str) -> "RunState":
        """
        Map a runtime state/status string ("running", "Up 3 hours",
        "exited", ...) to a RunState. First matching keyword wins.
        """
        s = (status or "").lower()
        if "up" in s or "running" in s:
            return cls.RUNNING
        if "paused" in s:
            return cls.PAUSED
        if "restarting" in s:
            return cls.RESTARTING
        if "dead" in s or "removing" in s:
            return cls.DEAD
        if "exited" in s or "stopped" in s:
            return cls.STOPPED
        return cls.UNKNOWN

    @property
    def is_running(self) -> bool:
        return self is RunState.RUNNING


class ContainerRecord(BaseModel):
    """
    One managed container as seen by a single inventory poll.

    Rebuilt wholesale every poll, never patched in place.
    """
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    image: str
    status: str = Field("", description="Declared runtime status string.")
    state: RunState = RunState.UNKNOWN
    health: Optional[str] = None
    created: int = Field(0, description="Creation time, unix seconds.")
    ports: List[str] = Field(default_factory=list)
    metrics: ServiceMetrics = Field(default_factory=ServiceMetrics)


class ContainerStats(BaseModel):
    model_config = ConfigDict(frozen=True)

    cpu_percent: float = 0.0
    memory_usage: int = 0
    memory_limit: int = 0
    network_rx: int = 0
    network_tx: int = 0


class ImageVersion(BaseModel):
    model_config = ConfigDict(frozen=True)

    current: str
    latest: Optional[str] = None
    update_available: bool = False
