"""
Unit Tests for Formulary Loaders
"""

import pypdf
import pytest
from formulary.ingestion.loaders import (
    load_formulary,
    load_pdf,
    load_text,
    split_text_segments,
)
from formulary.utils.hashing import compute_file_hash


ENTRY_A = "Rx\nPARACETAMOL\nIndications: Relief of mild to moderate pain and fever in adults and children."
ENTRY_B = "OTC IBUPROFEN\nIndications: Mild to moderate pain, dysmenorrhoea, fever and inflammatory conditions."


class TestSplitTextSegments:
    """Test page and divider splitting"""

    def test_form_feed_pages(self):
        """Test: form feeds delimit 1-indexed pages"""
        segments = split_text_segments(f"{ENTRY_A}\f{ENTRY_B}")
        assert segments == [(ENTRY_A, 1), (ENTRY_B, 2)]

    def test_divider_lines(self):
        """Test: '---' lines delimit entries when there are no form feeds"""
        segments = split_text_segments(f"{ENTRY_A}\n-----\n{ENTRY_B}\n")
        assert [index for _, index in segments] == [1, 2]
        assert segments[1][0] == ENTRY_B

    def test_short_segments_dropped_indices_kept(self):
        """Test: running headers vanish, later indices unchanged"""
        segments = split_text_segments(f"Page 1 header\f{ENTRY_A}\f\f{ENTRY_B}")
        assert [index for _, index in segments] == [2, 4]

    def test_crlf_normalized(self):
        """Test: Windows line endings are handled"""
        segments = split_text_segments(f"{ENTRY_A}\n---\n{ENTRY_B}".replace("\n", "\r\n"))
        assert len(segments) == 2
        assert "\r" not in segments[0][0]

    def test_single_segment(self):
        """Test: no delimiters → one segment"""
        assert split_text_segments(ENTRY_A) == [(ENTRY_A, 1)]


class TestLoadText:
    """Test text loading"""

    def test_load_text(self, tmp_path):
        """Test: hash and segments returned"""
        path = tmp_path / "formulary.txt"
        path.write_text(f"{ENTRY_A}\f{ENTRY_B}", encoding="utf-8")

        file_hash, segments = load_text(path)

        assert file_hash == compute_file_hash(path)
        assert len(segments) == 2

    def test_missing_file(self, tmp_path):
        """Test: missing file raises FileNotFoundError"""
        with pytest.raises(FileNotFoundError):
            load_text(tmp_path / "missing.txt")


class TestLoadPdf:
    """Test PDF loading"""

    def test_blank_pages_skipped(self, tmp_path):
        """Test: pages without text produce no segments"""
        path = tmp_path / "blank.pdf"
        writer = pypdf.PdfWriter()
        writer.add_blank_page(width=595, height=842)
        with open(path, "wb") as f:
            writer.write(f)

        file_hash, segments = load_pdf(path)

        assert len(file_hash) == 64
        assert segments == []

    def test_corrupt_pdf(self, tmp_path):
        """Test: unreadable PDF raises PdfReadError"""
        path = tmp_path / "broken.pdf"
        path.write_bytes(b"this is not a pdf")

        with pytest.raises(pypdf.errors.PdfReadError):
            load_pdf(path)

    def test_missing_pdf(self, tmp_path):
        """Test: missing PDF raises FileNotFoundError"""
        with pytest.raises(FileNotFoundError):
            load_pdf(tmp_path / "missing.pdf")


class TestLoadFormulary:
    """Test suffix dispatch"""

    def test_txt_dispatch(self, tmp_path):
        """Test: .TXT (any case) goes to the text loader"""
        path = tmp_path / "formulary.TXT"
        path.write_text(ENTRY_A, encoding="utf-8")
        _, segments = load_formulary(path)
        assert segments == [(ENTRY_A, 1)]

    @pytest.mark.parametrize("name", ["formulary.csv", "formulary.docx", "formulary"])
    def test_unsupported(self, tmp_path, name):
        """Test: other suffixes raise ValueError"""
        with pytest.raises(ValueError):
            load_formulary(tmp_path / name)
