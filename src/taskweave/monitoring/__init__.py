"""Resource telemetry consumed by the scheduler."""

from .resources import (
    ResourceSnapshot,
    ResourceSampler,
    PsutilResourceSampler,
    StaticResourceSampler,
)

__all__ = [
    "ResourceSnapshot",
    "ResourceSampler",
    "PsutilResourceSampler",
    "StaticResourceSampler",
]
