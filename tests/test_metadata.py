"""
Tests for .aux metadata parsing
===============================
"""

from paradiff import Citation, Metadata, parse_citations, parse_references


class TestParseCitations:
    """Tests for \\bibcite parsing."""

    def test_author_and_year(self, metadata):
        """Tilde becomes a space and the spacefactor trailer is removed."""
        assert metadata.citations["zhang2023"] == Citation("Zhang et al.", "2023")
        assert metadata.citations["smith2020"] == Citation("Smith and Jones", "2020")

    def test_short_line_skipped(self, metadata):
        """A line with fewer than four fields is left out."""
        assert "broken" not in metadata.citations
        assert len(metadata.citations) == 2

    def test_other_lines_ignored(self):
        text = "\\relax\n\\newlabel{fig:a}{{1}{2}}\n  \\bibcite{x}{{1}{2000}{{X}}{{}}}\n"
        assert parse_citations(text) == {}


class TestParseReferences:
    """Tests for \\newlabel parsing."""

    def test_numbers(self, metadata):
        assert metadata.references == {"fig:map": "7", "sec:intro": "1"}

    def test_malformed_line_does_not_stop_parsing(self):
        text = "\\newlabel{bad}\n\\newlabel{tab:x}{{3}{4}}\n"
        assert parse_references(text) == {"tab:x": "3"}

    def test_number_kept_verbatim(self):
        text = "\\newlabel{sec:a@cref}{{[section][2][]2.1}{[1][3][]3}}\n"
        assert parse_references(text) == {"sec:a@cref": "[section][2][]2.1"}


class TestMetadata:
    """Tests for the Metadata container."""

    def test_empty(self):
        metadata = Metadata.from_text("")
        assert metadata.citations == {}
        assert metadata.references == {}
