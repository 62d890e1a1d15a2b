"""
Heading-aware overlapping text chunker for indexing.

Implements chunking that:
- Respects paragraph boundaries (\\n\\n)
- Starts a new section at every Markdown heading and prefixes each chunk with
  its heading breadcrumb
- Maintains configurable overlap between chunks of the same section
- Handles token counting via tiktoken

chunk_size bounds the body of a chunk; the context line and breadcrumb come on top.
"""

import re
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

import tiktoken

from rag.config import ChunkingConfig

logger = logging.getLogger(__name__)


@dataclass
class TextChunk:
    """One indexable piece of a page."""
    text: str
    index: int
    headings: List[str] = field(default_factory=list)
    token_count: int = 0


class OverlappingChunker:
    """
    Paragraph-aware chunker with overlapping windows.

    Breaks text into chunks while respecting:
    - Markdown headings (# ## ###) as hard section boundaries
    - Paragraph boundaries (\\n\\n)
    - Sentence boundaries (. ! ?) when trimming the overlap
    """

    def __init__(self, config: Optional[ChunkingConfig] = None):
        self.config = config or ChunkingConfig()
        # cl100k_base matches the OpenAI embedding models
        self.encoding = tiktoken.get_encoding("cl100k_base")
        self.heading_pattern = re.compile(r'^(#{1,6})\s+(.+)$')

    def chunk_text(self, text: str, context: Optional[str] = None) -> List[TextChunk]:
        """
        Chunk text into overlapping segments.

        Args:
            text: Markdown or plain text
            context: Optional description of the source, prepended to every chunk

        Returns:
            List of TextChunk objects in document order
        """
        if not text.strip():
            logger.warning("Empty text provided for chunking")
            return []

        chunks: List[TextChunk] = []
        for headings, paragraphs in self._split_into_sections(text):
            for body in self._pack(paragraphs):
                chunks.append(self._create_chunk(body, len(chunks), headings, context))

        logger.info(f"Created {len(chunks)} chunks")
        return chunks

    def _split_into_sections(self, text: str) -> List[Tuple[List[str], List[str]]]:
        """
        Group paragraphs under their heading path.

        Returns:
            List of (breadcrumb_lines, paragraphs) tuples
        """
        sections: List[Tuple[List[str], List[str]]] = []
        stack: List[Tuple[int, str]] = []
        current: List[str] = []

        for para_text in re.split(r'\n\s*\n', text):
            para_text = para_text.strip()
            if not para_text:
                continue

            first_line, _, rest = para_text.partition("\n")
            heading_match = (
                self.heading_pattern.match(first_line.strip())
                if self.config.markdown_heading_aware else None
            )
            if heading_match is None:
                current.append(para_text)
                continue

            if current:
                sections.append((self._breadcrumb(stack), current))
                current = []

            level = len(heading_match.group(1))
            while stack and stack[-1][0] >= level:
                stack.pop()
            stack.append((level, heading_match.group(2).strip()))

            if rest.strip():
                current.append(rest.strip())

        if current:
            sections.append((self._breadcrumb(stack), current))

        return sections

    @staticmethod
    def _breadcrumb(stack: List[Tuple[int, str]]) -> List[str]:
        return [f"{'#' * level} {heading}" for level, heading in stack]

    def _pack(self, paragraphs: List[str]) -> List[str]:
        """Greedily pack paragraphs into bodies of at most chunk_size tokens."""
        bodies: List[str] = []
        current = ""

        for para_text in paragraphs:
            if self._count_tokens(para_text) > self.config.chunk_size:
                if current:
                    bodies.append(current)
                    current = ""
                bodies.extend(self._split_long(para_text))
                continue

            combined = current + "\n\n" + para_text if current else para_text
            if current and self._count_tokens(combined) > self.config.chunk_size:
                bodies.append(current)
                overlap_text = self._get_overlap_text(current)
                current = overlap_text + "\n\n" + para_text if overlap_text else para_text
            else:
                current = combined

        if current:
            bodies.append(current)
        return bodies

    def _split_long(self, text: str) -> List[str]:
        """Token windows over a paragraph that alone exceeds chunk_size."""
        tokens = self.encoding.encode(text)
        step = self.config.chunk_size - self.config.chunk_overlap
        windows = []
        for start in range(0, len(tokens), step):
            windows.append(self.encoding.decode(tokens[start:start + self.config.chunk_size]).strip())
            if start + self.config.chunk_size >= len(tokens):
                break
        return [window for window in windows if window]

    def _get_overlap_text(self, text: str) -> str:
        """
        Extract overlap text from end of previous chunk.

        Returns the last chunk_overlap tokens, trimmed to start at a sentence.
        """
        tokens = self.encoding.encode(text)
        overlap_token_count = min(self.config.chunk_overlap, len(tokens))

        if overlap_token_count == 0:
            return ""

        overlap_text = self.encoding.decode(tokens[-overlap_token_count:])

        sentence_breaks = [m.end() for m in re.finditer(r'[.!?]\s+', overlap_text)]
        if sentence_breaks:
            overlap_text = overlap_text[sentence_breaks[-1]:]

        return overlap_text.strip()

    def _count_tokens(self, text: str) -> int:
        """Count tokens in text using tiktoken."""
        return len(self.encoding.encode(text))

    def _create_chunk(
        self,
        body: str,
        index: int,
        headings: List[str],
        context: Optional[str]
    ) -> TextChunk:
        lines = []
        if context:
            lines.append(f"Context: {context}\n---")
        lines.extend(headings)
        lines.append(body)
        text = "\n".join(lines)

        return TextChunk(
            text=text,
            index=index,
            headings=list(headings),
            token_count=self._count_tokens(text)
        )
