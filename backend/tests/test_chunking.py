"""
Tests for the heading-aware overlapping chunker.
"""
import pytest

from domain.errors import ConfigurationError
from rag.chunking import OverlappingChunker
from rag.config import ChunkingConfig


@pytest.fixture
def chunker():
    return OverlappingChunker(ChunkingConfig(chunk_size=60, chunk_overlap=20))


def paragraphs(count):
    return "\n\n".join(
        f"Paragraph {n} explains how the command line tool reads its configuration files. Short end {n}."
        for n in range(count)
    )


class TestChunking:
    """Packing and overlap."""

    def test_empty_text(self, chunker):
        assert chunker.chunk_text("   \n\n ") == []

    def test_short_text_is_one_chunk(self, chunker):
        chunks = chunker.chunk_text("Hello world.")
        assert len(chunks) == 1
        assert chunks[0].text == "Hello world."
        assert chunks[0].index == 0
        assert chunks[0].token_count > 0

    def test_long_text_splits_with_overlap(self, chunker):
        chunks = chunker.chunk_text(paragraphs(8))

        assert len(chunks) > 1
        assert [chunk.index for chunk in chunks] == list(range(len(chunks)))
        last_sentence = chunks[0].text.rsplit(". ", 1)[-1]
        assert last_sentence.startswith("Short end")
        assert chunks[1].text.startswith(last_sentence + "\n\n")

    def test_every_paragraph_is_kept(self, chunker):
        text = paragraphs(8)
        joined = "\n".join(chunk.text for chunk in chunker.chunk_text(text))
        for n in range(8):
            assert f"Paragraph {n} explains" in joined

    def test_oversized_paragraph_is_windowed(self, chunker):
        text = " ".join(f"word{n}" for n in range(200))
        chunks = chunker.chunk_text(text)

        assert len(chunks) > 1
        assert chunks[0].text.startswith("word0")
        assert "word199" in chunks[-1].text


class TestHeadings:
    """Markdown headings start sections and form the breadcrumb."""

    def test_breadcrumb_prefixes_chunks(self, chunker):
        text = "# Guide\n\nIntro text.\n\n## Install\n\nRun the installer.\n\n## Usage\n\nCall the tool."
        chunks = chunker.chunk_text(text)

        assert [chunk.headings for chunk in chunks] == [
            ["# Guide"],
            ["# Guide", "## Install"],
            ["# Guide", "## Usage"],
        ]
        assert chunks[1].text == "# Guide\n## Install\nRun the installer."

    def test_heading_with_body_in_same_paragraph(self, chunker):
        chunks = chunker.chunk_text("# Title\nBody line right under the heading.")
        assert chunks[0].headings == ["# Title"]
        assert chunks[0].text == "# Title\nBody line right under the heading."

    def test_headings_ignored_when_disabled(self):
        chunker = OverlappingChunker(ChunkingConfig(markdown_heading_aware=False))
        chunks = chunker.chunk_text("# Guide\n\nIntro text.")
        assert len(chunks) == 1
        assert chunks[0].headings == []
        assert chunks[0].text == "# Guide\n\nIntro text."

    def test_context_prefix(self, chunker):
        chunks = chunker.chunk_text("# Guide\n\nHello world.", context="Acme CLI documentation")
        assert chunks[0].text == "Context: Acme CLI documentation\n---\n# Guide\nHello world."


class TestChunkingConfig:
    """Validation."""

    def test_overlap_must_be_smaller_than_size(self):
        with pytest.raises(ConfigurationError):
            ChunkingConfig(chunk_size=50, chunk_overlap=50)

    def test_size_must_be_positive(self):
        with pytest.raises(ConfigurationError):
            ChunkingConfig(chunk_size=0, chunk_overlap=0)
