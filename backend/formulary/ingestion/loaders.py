"""
Formulary loaders with file fingerprinting.

Both loaders return (file_hash, segments) where segments is an ordered list
of (text, source_index) pairs ready for FormularyParser.parse().

- Text exports: split on form feeds (one segment per page) or, failing
  that, on "---" divider lines (one segment per entry)
- PDF exports: one segment per non-empty page via pypdf
"""
import logging
import re
from pathlib import Path
from typing import List, Tuple, Union

import pypdf

from formulary.utils.hashing import compute_file_hash

logger = logging.getLogger(__name__)

Segment = Tuple[str, int]

MIN_SEGMENT_LENGTH = 80

_DIVIDER = re.compile(r"\n\s*-{3,}\s*\n")
SUPPORTED_SUFFIXES = (".txt", ".pdf")


def split_text_segments(raw: str, min_length: int = MIN_SEGMENT_LENGTH) -> List[Segment]:
    """
    Slice a text export into indexed segments.

    Segments shorter than min_length (trailing dividers, running headers)
    are dropped; indices stay those of the original position, from 1.
    """
    text = raw.replace("\r\n", "\n").replace("\r", "\n")

    if "\f" in text:
        parts = text.split("\f")
    else:
        parts = _DIVIDER.split(f"\n{text}\n")

    segments: List[Segment] = []
    for index, part in enumerate(parts, start=1):
        part = part.strip()
        if len(part) < min_length:
            continue
        segments.append((part, index))

    return segments


def load_text(file_path: Union[str, Path], min_length: int = MIN_SEGMENT_LENGTH) -> Tuple[str, List[Segment]]:
    """
    Load a plain-text formulary export.

    Raises:
        FileNotFoundError: If the file doesn't exist
    """
    path = Path(file_path)
    if not path.exists():
        raise FileNotFoundError(f"Formulary text not found: {path}")

    file_hash = compute_file_hash(path)
    raw = path.read_text(encoding="utf-8", errors="replace")
    segments = split_text_segments(raw, min_length=min_length)

    logger.info(f"Loaded {len(segments)} text segments from {path.name}")
    return file_hash, segments


def load_pdf(file_path: Union[str, Path]) -> Tuple[str, List[Segment]]:
    """
    Load a PDF formulary, one segment per page (1-indexed page numbers).

    Raises:
        FileNotFoundError: If the PDF doesn't exist
        pypdf.errors.PdfReadError: If the PDF is corrupted
    """
    path = Path(file_path)
    if not path.exists():
        raise FileNotFoundError(f"PDF not found: {path}")

    file_hash = compute_file_hash(path)

    try:
        reader = pypdf.PdfReader(str(path))
    except Exception as e:
        raise pypdf.errors.PdfReadError(f"Failed to read PDF {path}: {e}")

    segments: List[Segment] = []
    for page_num, page in enumerate(reader.pages, start=1):
        try:
            text = page.extract_text() or ""
        except Exception as e:
            # One bad page does not sink the document
            logger.warning(f"Failed to extract page {page_num} from {path.name}: {e}")
            continue

        if text.strip():
            segments.append((text, page_num))

    logger.info(f"Loaded {len(segments)} pages from {path.name}")
    return file_hash, segments


def load_formulary(file_path: Union[str, Path]) -> Tuple[str, List[Segment]]:
    """
    Dispatch on file suffix.

    Raises:
        ValueError: For unsupported file types
    """
    suffix = Path(file_path).suffix.lower()
    if suffix == ".pdf":
        return load_pdf(file_path)
    if suffix == ".txt":
        return load_text(file_path)
    raise ValueError(f"Unsupported formulary file type: {suffix or '(none)'}")
