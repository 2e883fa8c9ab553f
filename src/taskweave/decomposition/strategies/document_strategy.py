"""Decomposition strategies for document analysis and summarization tasks."""

import re
from typing import Any, Dict, List

from ...errors import DecompositionError
from ...models.task_models import Task
from ..base import DecompositionStrategy

_HEADING = re.compile(r"^(?:#{1,6}\s|\d+(?:\.\d+)*\s+[A-Z])", re.MULTILINE)
_SENTENCE_END = re.compile(r"(?<=[.!?])\s+")


def _document(task: Task) -> Dict[str, Any]:
    document = task.input
    if not isinstance(document, dict) or not isinstance(document.get("content"), str):
        raise DecompositionError(
            f"Task {task.id} input must be a document with string content",
            task_id=task.id,
        )
    return document


def split_into_chunks(text: str, max_chars: int) -> List[str]:
    """
    Split text on paragraph boundaries, then sentences, then hard cuts.

    Adjacent small pieces are packed together up to max_chars.
    """
    pieces: List[str] = []
    for paragraph in re.split(r"\n\s*\n", text):
        paragraph = paragraph.strip()
        if not paragraph:
            continue
        if len(paragraph) <= max_chars:
            pieces.append(paragraph)
            continue
        for sentence in _SENTENCE_END.split(paragraph):
            while len(sentence) > max_chars:
                pieces.append(sentence[:max_chars])
                sentence = sentence[max_chars:]
            if sentence:
                pieces.append(sentence)

    chunks: List[str] = []
    current = ""
    for piece in pieces:
        candidate = f"{current}\n\n{piece}" if current else piece
        if len(candidate) <= max_chars:
            current = candidate
        else:
            chunks.append(current)
            current = piece
    if current:
        chunks.append(current)
    return chunks


class DocumentAnalysisStrategy(DecompositionStrategy):
    """
    Split large or paged documents into per-section analysis tasks.

    PATTERN: sections come from explicit pages, then form feeds, then
    headings; oversized sections are chunked further
    """

    task_type = "document_analysis"
    section_type = "document_section_analysis"
    consolidation_type = "document_analysis_consolidation"

    def __init__(
        self,
        max_content_chars: int = 10000,
        max_pages: int = 5,
        max_section_chars: int = 10000,
    ):
        super().__init__()
        self.max_content_chars = max_content_chars
        self.max_pages = max_pages
        self.max_section_chars = max_section_chars

    def should_decompose(self, task: Task) -> bool:
        document = task.input if isinstance(task.input, dict) else {}
        content = document.get("content") or ""
        metadata = document.get("metadata") or {}
        return (
            len(content) > self.max_content_chars
            or metadata.get("type") == "pdf"
            or (metadata.get("page_count") or 0) > self.max_pages
        )

    async def decompose(self, task: Task) -> List[Task]:
        document = _document(task)
        metadata = document.get("metadata") or {}
        sections = self.split_document(document)
        if not sections:
            raise DecompositionError(f"Document of task {task.id} has no content", task_id=task.id)

        children = [
            self.create_subtask(
                parent_task=task,
                subtask_id=f"{task.id}-section-{i}",
                task_type=self.section_type,
                payload={
                    "content": section,
                    "metadata": {**metadata, "section": i + 1, "total_sections": len(sections)},
                },
            )
            for i, section in enumerate(sections)
        ]
        consolidation = self.create_consolidation_task(
            parent_task=task,
            children=children,
            task_type=self.consolidation_type,
            payload={"task_id": task.id, "section_count": len(sections)},
        )
        self.logger.debug(f"Split document task {task.id} into {len(sections)} sections")
        return children + [consolidation]

    def split_document(self, document: Dict[str, Any]) -> List[str]:
        pages = document.get("pages")
        if isinstance(pages, list) and pages:
            sections = [str(page) for page in pages if str(page).strip()]
        elif "\f" in document["content"]:
            sections = [p for p in document["content"].split("\f") if p.strip()]
        else:
            sections = self._split_on_headings(document["content"])

        result: List[str] = []
        for section in sections:
            if len(section) > self.max_section_chars:
                result.extend(split_into_chunks(section, self.max_section_chars))
            else:
                result.append(section.strip())
        return [s for s in result if s]

    @staticmethod
    def _split_on_headings(content: str) -> List[str]:
        starts = [m.start() for m in _HEADING.finditer(content)]
        if not starts or starts[0] != 0:
            starts.insert(0, 0)
        bounds = starts + [len(content)]
        return [content[a:b] for a, b in zip(bounds, bounds[1:]) if content[a:b].strip()]


class DocumentSummarizationStrategy(DecompositionStrategy):
    """Split long documents into chunk summaries plus a merge step."""

    task_type = "document_summarization"
    chunk_type = "chunk_summarization"
    consolidation_type = "summary_consolidation"

    def __init__(self, max_content_chars: int = 5000, chunk_chars: int = 4000):
        super().__init__()
        self.max_content_chars = max_content_chars
        self.chunk_chars = chunk_chars

    def should_decompose(self, task: Task) -> bool:
        document = task.input if isinstance(task.input, dict) else {}
        return len(document.get("content") or "") > self.max_content_chars

    async def decompose(self, task: Task) -> List[Task]:
        document = _document(task)
        chunks = split_into_chunks(document["content"], self.chunk_chars)
        if not chunks:
            raise DecompositionError(f"Document of task {task.id} has no content", task_id=task.id)

        children = [
            self.create_subtask(
                parent_task=task,
                subtask_id=f"{task.id}-chunk-{i}",
                task_type=self.chunk_type,
                payload={
                    "content": chunk,
                    "metadata": {"chunk_index": i, "total_chunks": len(chunks)},
                },
            )
            for i, chunk in enumerate(chunks)
        ]
        consolidation = self.create_consolidation_task(
            parent_task=task,
            children=children,
            task_type=self.consolidation_type,
            payload={"task_id": task.id, "chunk_count": len(chunks)},
        )
        return children + [consolidation]
