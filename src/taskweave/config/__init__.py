"""Configuration for the scheduling engine."""

from .scheduler_config import SchedulerConfig, StorageConfig

__all__ = ["SchedulerConfig", "StorageConfig"]
