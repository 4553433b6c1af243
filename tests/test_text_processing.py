"""
Unit tests for text processing: clean_text and chunk_text.
"""

from smart_dairy.services.text_processing import chunk_text, clean_text


class TestCleanText:
    """Tests for clean_text()."""

    def test_empty_returns_empty(self) -> None:
        assert clean_text("") == ""
        assert clean_text("   ") == ""
        assert clean_text("\n\n") == ""

    def test_strips_outer_whitespace(self) -> None:
        assert clean_text("  hello  ") == "hello"
        assert clean_text("\n  hello  \n") == "hello"

    def test_normalizes_inner_lines_and_dedupes(self) -> None:
        # Consecutive duplicate lines become one; blank lines preserved between paragraphs
        assert clean_text("  hello   \n\n  world  ") == "hello\n\nworld"
        assert clean_text("line1\n  line1  \nline2") == "line1\nline2"

    def test_collapses_runs_of_blank_lines(self) -> None:
        assert clean_text("Feed.\n\n\n\nWater.") == "Feed.\n\nWater."

    def test_nfkc_normalization(self) -> None:
        # Fullwidth letters fold to ASCII
        assert clean_text("ｍｉｌｋ") == "milk"


class TestChunkText:
    """Tests for chunk_text()."""

    def test_empty_returns_empty_list(self) -> None:
        assert chunk_text("") == []
        assert chunk_text("   ") == []

    def test_text_within_one_window_returns_single_chunk(self) -> None:
        text = "Cows need clean water, balanced rations, and a dry place to rest every day."
        assert chunk_text(text) == [text]

    def test_chunks_of_fifty_chars_or_fewer_are_dropped(self) -> None:
        assert chunk_text("Short note about feed.") == []
        assert chunk_text("x" * 50) == []
        assert chunk_text("x" * 51) == ["x" * 51]

    def test_breaks_at_period_past_midpoint(self) -> None:
        text = "A" * 600 + "." + "B" * 600
        chunks = chunk_text(text, chunk_size=1000, overlap=200)
        assert chunks == ["A" * 600 + ".", "A" * 199 + "." + "B" * 600]

    def test_hard_cut_when_no_boundary_past_midpoint(self) -> None:
        chunks = chunk_text("x" * 2500, chunk_size=1000, overlap=200)
        assert [len(c) for c in chunks] == [1000, 1000, 900]

    def test_consecutive_chunks_overlap(self) -> None:
        text = "".join(f"{i:04d}" for i in range(600))
        chunks = chunk_text(text, chunk_size=1000, overlap=200)
        assert len(chunks) >= 2
        assert chunks[1][:200] == chunks[0][-200:]

    def test_every_chunk_fits_the_window(self) -> None:
        sentences = " ".join(f"Cow number {i} produced milk today." for i in range(200))
        for chunk in chunk_text(sentences, chunk_size=300, overlap=50):
            assert 50 < len(chunk) <= 300
