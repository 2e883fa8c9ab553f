"""Scheduler and storage configuration with environment variable loading."""

import os

from dotenv import load_dotenv
from pydantic import BaseModel, Field

# Load environment variables from .env file
load_dotenv()


class SchedulerConfig(BaseModel):
    """Configuration for the task manager and workflow coordinator."""

    # Admission control
    max_concurrent_tasks: int = Field(
        default_factory=lambda: int(os.getenv("TASKWEAVE_MAX_CONCURRENT_TASKS", "4")),
        ge=1,
        description="Maximum tasks running at once",
    )
    max_cpu_percent: float = Field(
        default_factory=lambda: float(os.getenv("TASKWEAVE_MAX_CPU_PERCENT", "90")),
        description="CPU usage above which admission is deferred",
    )
    max_memory_percent: float = Field(
        default_factory=lambda: float(os.getenv("TASKWEAVE_MAX_MEMORY_PERCENT", "90")),
        description="Memory usage above which admission is deferred",
    )

    # Task defaults
    default_priority: int = Field(
        default_factory=lambda: int(os.getenv("TASKWEAVE_DEFAULT_PRIORITY", "3")),
        ge=1,
        le=5,
        description="Priority for tasks submitted without one (1 = most urgent)",
    )
    default_max_attempts: int = Field(
        default_factory=lambda: int(os.getenv("TASKWEAVE_DEFAULT_MAX_ATTEMPTS", "3")),
        ge=1,
        description="Retry budget for tasks submitted without one",
    )

    # Wait bounds (seconds)
    concurrency_backoff: float = Field(
        default_factory=lambda: float(os.getenv("TASKWEAVE_CONCURRENCY_BACKOFF", "0.1")),
        gt=0,
        description="Longest wait for a free slot before re-checking",
    )
    resource_backoff: float = Field(
        default_factory=lambda: float(os.getenv("TASKWEAVE_RESOURCE_BACKOFF", "1.0")),
        gt=0,
        description="Longest wait for resources to recover before re-sampling",
    )
    dependency_poll_interval: float = Field(
        default_factory=lambda: float(os.getenv("TASKWEAVE_DEPENDENCY_POLL_INTERVAL", "0.5")),
        gt=0,
        description="Longest park while every queued task is dependency-blocked",
    )

    # Workflows
    max_concurrent_workflows: int = Field(
        default_factory=lambda: int(os.getenv("TASKWEAVE_MAX_CONCURRENT_WORKFLOWS", "5")),
        ge=1,
        description="Ceiling on concurrently active workflows",
    )


class StorageConfig(BaseModel):
    """Configuration for the optional persistent store."""

    redis_url: str = Field(
        default_factory=lambda: os.getenv("REDIS_URL", "redis://localhost:6379/0"),
        description="Redis connection URL",
    )
    connection_pool_size: int = Field(
        default_factory=lambda: int(os.getenv("TASKWEAVE_REDIS_POOL_SIZE", "10")),
        description="Redis connection pool size",
    )
    key_prefix: str = Field(
        default_factory=lambda: os.getenv("TASKWEAVE_STORE_PREFIX", "taskweave"),
        description="Namespace for store keys",
    )
