"""Tests for the built-in document decomposition strategies."""

import pytest

from taskweave.decomposition.decomposer import TaskDecomposer
from taskweave.decomposition.strategies.document_strategy import (
    DocumentAnalysisStrategy,
    DocumentSummarizationStrategy,
    split_into_chunks,
)
from taskweave.errors import DecompositionError
from taskweave.models.task_models import Task


def test_split_into_chunks_packs_paragraphs():
    """Test small paragraphs are packed up to the limit."""
    text = "alpha\n\nbeta\n\ngamma"
    assert split_into_chunks(text, 12) == ["alpha\n\nbeta", "gamma"]
    assert split_into_chunks(text, 100) == ["alpha\n\nbeta\n\ngamma"]


def test_split_into_chunks_cuts_long_sentences():
    """Test oversized text is split on sentences, then hard cut."""
    chunks = split_into_chunks("x" * 25, 10)
    assert chunks == ["x" * 10, "x" * 10, "x" * 5]
    assert all(len(c) <= 10 for c in split_into_chunks("One two. Three four five. Six.", 12))


def test_split_into_chunks_empty():
    assert split_into_chunks("  \n\n  ", 10) == []


class TestDocumentAnalysisStrategy:
    """Test suite for DocumentAnalysisStrategy."""

    def test_should_decompose(self):
        """Test the size, pdf and page-count triggers."""
        strategy = DocumentAnalysisStrategy()

        small = Task(type="document_analysis", input={"content": "short"})
        large = Task(type="document_analysis", input={"content": "x" * 10001})
        pdf = Task(type="document_analysis", input={"content": "a", "metadata": {"type": "pdf"}})
        paged = Task(
            type="document_analysis", input={"content": "a", "metadata": {"page_count": 6}}
        )

        assert strategy.should_decompose(small) is False
        assert strategy.should_decompose(large) is True
        assert strategy.should_decompose(pdf) is True
        assert strategy.should_decompose(paged) is True
        assert strategy.should_decompose(Task(type="document_analysis", input=None)) is False

    @pytest.mark.asyncio
    async def test_decompose_pages(self):
        """Test explicit pages become one section task each."""
        strategy = DocumentAnalysisStrategy()
        task = Task(
            id="doc",
            type="document_analysis",
            input={
                "content": "ignored",
                "pages": ["page one", "page two", "  "],
                "metadata": {"type": "pdf"},
            },
        )

        subtasks = await strategy.decompose(task)

        assert [t.id for t in subtasks] == ["doc-section-0", "doc-section-1", "doc-consolidate"]
        assert subtasks[0].type == "document_section_analysis"
        assert subtasks[0].input["content"] == "page one"
        assert subtasks[0].input["metadata"]["section"] == 1
        assert subtasks[0].input["metadata"]["total_sections"] == 2
        assert subtasks[-1].type == "document_analysis_consolidation"
        assert subtasks[-1].input == {"task_id": "doc", "section_count": 2}

        TaskDecomposer({"document_analysis": strategy}).validate_split(task, subtasks)

    @pytest.mark.asyncio
    async def test_decompose_headings(self):
        """Test markdown headings split the content."""
        strategy = DocumentAnalysisStrategy()
        content = "# Intro\nhello\n# Body\nworld\n# End\nbye"
        task = Task(id="md", type="document_analysis", input={"content": content})

        subtasks = await strategy.decompose(task)

        sections = [t.input["content"] for t in subtasks[:-1]]
        assert sections == ["# Intro\nhello", "# Body\nworld", "# End\nbye"]

    @pytest.mark.asyncio
    async def test_decompose_form_feeds(self):
        """Test form feeds act as page breaks."""
        strategy = DocumentAnalysisStrategy()
        task = Task(id="ff", type="document_analysis", input={"content": "one\ftwo"})

        subtasks = await strategy.decompose(task)

        assert [t.input["content"] for t in subtasks[:-1]] == ["one", "two"]

    @pytest.mark.asyncio
    async def test_decompose_rejects_bad_input(self):
        """Test non-document input raises DecompositionError."""
        strategy = DocumentAnalysisStrategy()
        with pytest.raises(DecompositionError):
            await strategy.decompose(Task(type="document_analysis", input="plain text"))


class TestDocumentSummarizationStrategy:
    """Test suite for DocumentSummarizationStrategy."""

    def test_should_decompose(self):
        strategy = DocumentSummarizationStrategy()
        assert not strategy.should_decompose(Task(type="s", input={"content": "x" * 5000}))
        assert strategy.should_decompose(Task(type="s", input={"content": "x" * 5001}))

    @pytest.mark.asyncio
    async def test_decompose_chunks(self):
        """Test long content becomes chunk tasks plus a consolidation."""
        strategy = DocumentSummarizationStrategy(max_content_chars=10, chunk_chars=10)
        task = Task(
            id="sum",
            type="document_summarization",
            priority=1,
            input={"content": "aaaa\n\nbbbb\n\ncccc"},
        )

        subtasks = await strategy.decompose(task)

        assert [t.id for t in subtasks] == ["sum-chunk-0", "sum-chunk-1", "sum-consolidate"]
        assert subtasks[0].input["content"] == "aaaa\n\nbbbb"
        assert subtasks[1].input["metadata"] == {"chunk_index": 1, "total_chunks": 2}
        assert subtasks[-1].type == "summary_consolidation"
        assert all(t.priority == 1 for t in subtasks)
