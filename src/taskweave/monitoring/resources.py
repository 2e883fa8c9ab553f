"""Resource usage sampling for admission control."""

import logging
from abc import ABC, abstractmethod

import psutil
from pydantic import BaseModel, Field


logger = logging.getLogger(__name__)


class ResourceSnapshot(BaseModel):
    """Point-in-time system usage, both values on a 0-100 scale."""

    cpu_percent: float = Field(default=0.0, ge=0)
    memory_percent: float = Field(default=0.0, ge=0)


class ResourceSampler(ABC):
    """Source of usage snapshots, consulted once per scheduling iteration."""

    @abstractmethod
    async def get_resource_usage(self) -> ResourceSnapshot:
        pass


class PsutilResourceSampler(ResourceSampler):
    """
    System-wide sampler backed by psutil.

    cpu_percent(interval=None) compares against the previous call, so the
    first sample after construction is primed in __init__.
    """

    def __init__(self) -> None:
        psutil.cpu_percent(interval=None)

    async def get_resource_usage(self) -> ResourceSnapshot:
        try:
            cpu = psutil.cpu_percent(interval=None)
            memory = psutil.virtual_memory().percent
        except (OSError, AttributeError) as e:
            logger.warning(f"Resource sampling failed, reporting idle: {e}")
            return ResourceSnapshot()

        return ResourceSnapshot(cpu_percent=cpu, memory_percent=memory)


class StaticResourceSampler(ResourceSampler):
    """Fixed values; mutate the attributes to simulate load."""

    def __init__(self, cpu_percent: float = 0.0, memory_percent: float = 0.0):
        self.cpu_percent = cpu_percent
        self.memory_percent = memory_percent
        self.calls = 0

    async def get_resource_usage(self) -> ResourceSnapshot:
        self.calls += 1
        return ResourceSnapshot(
            cpu_percent=self.cpu_percent,
            memory_percent=self.memory_percent,
        )
