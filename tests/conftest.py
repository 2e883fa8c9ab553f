"""Shared fixtures for taskweave tests."""

import pytest

from taskweave.config.scheduler_config import SchedulerConfig
from taskweave.monitoring.resources import StaticResourceSampler


@pytest.fixture
def fast_config():
    """Scheduler config with short wait bounds so tests finish quickly."""
    return SchedulerConfig(
        max_concurrent_tasks=2,
        default_priority=3,
        default_max_attempts=3,
        max_cpu_percent=90.0,
        max_memory_percent=90.0,
        concurrency_backoff=0.01,
        resource_backoff=0.01,
        dependency_poll_interval=0.01,
        max_concurrent_workflows=5,
    )


@pytest.fixture
def idle_sampler():
    """Resource sampler reporting an idle machine."""
    return StaticResourceSampler(cpu_percent=5.0, memory_percent=20.0)
