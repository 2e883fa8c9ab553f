"""Task decomposition subsystem.

Strategies decide, per task type, whether a task is split into independent
children plus one consolidation task; the decomposer validates the split.
"""

from .base import DecompositionStrategy
from .decomposer import TaskDecomposer
from .strategies import DocumentAnalysisStrategy, DocumentSummarizationStrategy

__all__ = [
    "DecompositionStrategy",
    "TaskDecomposer",
    "DocumentAnalysisStrategy",
    "DocumentSummarizationStrategy",
]
