"""
Unit Tests for Text Normalization

Tests whitespace cleanup, numeric-artifact repair and heading reduction.
"""

import pytest
from formulary.utils.text import (
    compact_spaces,
    normalize_header_text,
    normalize_whitespace,
    repair_numeric_artifacts,
)


class TestNormalizeWhitespace:
    """Test line-preserving whitespace normalization"""

    def test_nbsp_and_tabs_become_single_spaces(self):
        """Test: NBSP and tab runs collapse to one space"""
        assert normalize_whitespace("Adults:\t\t500 mg") == "Adults: 500 mg"

    def test_lines_are_trimmed(self):
        """Test: every line is stripped"""
        assert normalize_whitespace("  Dosage:  \n   500 mg   ") == "Dosage:\n500 mg"

    def test_blank_runs_collapse(self):
        """Test: three or more newlines become one blank line"""
        assert normalize_whitespace("A\n\n\n\n\nB") == "A\n\nB"

    def test_carriage_returns_removed(self):
        """Test: CRLF input normalizes like LF"""
        assert normalize_whitespace("Line one\r\nLine two") == "Line one\nLine two"

    def test_empty_input(self):
        """Test: empty and None-like input returns empty string"""
        assert normalize_whitespace("") == ""
        assert normalize_whitespace(None) == ""

    def test_idempotent(self):
        """Test: normalizing twice changes nothing"""
        once = normalize_whitespace("  A\t\tB \n\n\n\n 80\n-\n85 mg ")
        assert normalize_whitespace(once) == once


class TestNumericArtifactRepair:
    """Test repair of numbers split across lines"""

    def test_split_range(self):
        """Test: 80\\n-\\n85 → 80-85"""
        assert repair_numeric_artifacts("80\n-\n85 mg") == "80-85 mg"

    def test_break_before_delimiter(self):
        """Test: 10\\n-20 → 10-20"""
        assert repair_numeric_artifacts("10\n-20 mg/kg") == "10-20 mg/kg"

    def test_break_after_delimiter(self):
        """Test: 10-\\n20 → 10-20"""
        assert repair_numeric_artifacts("10-\n20 mg/kg") == "10-20 mg/kg"

    def test_split_unit(self):
        """Test: 500\\nmg → 500 mg"""
        assert repair_numeric_artifacts("500\nmg every 6 hours") == "500 mg every 6 hours"

    def test_prose_lines_untouched(self):
        """Test: ordinary line breaks are kept"""
        text = "Take with food.\nAvoid alcohol."
        assert repair_numeric_artifacts(text) == text


class TestHeaderText:
    """Test reduction of body lines to heading candidates"""

    @pytest.mark.parametrize("line,expected", [
        ("Adverse Reactions:", "Adverse Reactions"),
        ("  Side   Effects. ", "Side Effects"),
        ("Dose: 500 mg every 6 h", "Dose"),
        ("CONTRAINDICATIONS -", "CONTRAINDICATIONS"),
        ("Take with food", "Take with food"),
    ])
    def test_normalize_header_text(self, line, expected):
        """Test heading candidate reduction"""
        assert normalize_header_text(line) == expected

    def test_compact_spaces(self):
        """Test: all whitespace, newlines included, collapses"""
        assert compact_spaces(" a \n b\t c ") == "a b c"
