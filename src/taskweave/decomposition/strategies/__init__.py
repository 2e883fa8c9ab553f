"""Decomposition strategies for different task types."""

from .document_strategy import (
    DocumentAnalysisStrategy,
    DocumentSummarizationStrategy,
    split_into_chunks,
)

__all__ = [
    "DocumentAnalysisStrategy",
    "DocumentSummarizationStrategy",
    "split_into_chunks",
]
