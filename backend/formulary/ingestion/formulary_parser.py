"""
Formulary parser: raw reference text -> DrugEntry list.

Entries are bounded by an anchor (an "Rx"/"OTC" classification marker
followed within a few lines by an upper-case drug heading). Body lines are
routed into typed section buffers by the heading table in
section_patterns.py, and pregnancy category / ATC code are captured wherever
they appear.

Anomalies (marker without heading, heading-only sections, table-of-contents
noise) are dropped locally; a document without anchors yields no entries.
"""
import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple

from formulary.models import Classification, DrugEntry, SectionKey, SourceRange
from formulary.utils.text import compact_spaces, normalize_header_text, normalize_whitespace
from formulary.ingestion.section_patterns import (
    ANCHOR_LOOKAHEAD,
    ANCHOR_MARKER,
    ATC_CODE,
    CLASSIFICATION_TOKEN,
    DEFAULT_MIN_ENTRY_LENGTH,
    DEFAULT_MIN_SECTION_LENGTH,
    DRUG_HEADING,
    PARENTHETICAL,
    PREGNANCY_CATEGORY,
    SECTION_MINIMUM_LENGTHS,
    detect_section,
)

logger = logging.getLogger(__name__)

MAX_HEADING_LENGTH = 80

# (text, source_index) as handed over by loaders
PageText = Tuple[str, int]


@dataclass
class _DraftEntry:
    drug_name: str
    classification: Classification
    start: int
    end: int
    raw_lines: List[str] = field(default_factory=list)
    general_lines: List[str] = field(default_factory=list)
    section_lines: Dict[SectionKey, List[str]] = field(default_factory=dict)
    current_section: Optional[SectionKey] = None
    pregnancy_category: Optional[str] = None
    atc_code: Optional[str] = None

    def push(self, line: str):
        if self.current_section is None:
            self.general_lines.append(line)
        else:
            self.section_lines.setdefault(self.current_section, []).append(line)


class FormularyParser:
    """
    Split formulary pages into DrugEntry monographs.

    Usage:
        parser = FormularyParser()
        entries = parser.parse([(page_text, 1), (page_text_2, 2)])
    """

    def __init__(
        self,
        min_section_length: int = DEFAULT_MIN_SECTION_LENGTH,
        min_entry_length: int = DEFAULT_MIN_ENTRY_LENGTH,
        section_minimums: Optional[Dict[SectionKey, int]] = None,
    ):
        """
        Args:
            min_section_length: Threshold for sections missing from section_minimums
            min_entry_length: Entries with no sections and no metadata must reach this length
            section_minimums: Per-section thresholds (defaults to SECTION_MINIMUM_LENGTHS)
        """
        self.min_section_length = min_section_length
        self.min_entry_length = min_entry_length
        self.section_minimums = dict(SECTION_MINIMUM_LENGTHS if section_minimums is None else section_minimums)

    def parse(self, pages: Iterable[PageText]) -> List[DrugEntry]:
        """
        Parse an ordered sequence of (text, source_index) pairs.

        Returns:
            DrugEntry list in document order. Entries sharing a drug name
            are kept separate.
        """
        entries: List[DrugEntry] = []
        current: Optional[_DraftEntry] = None
        orphan_lines = 0

        for text, source_index in pages:
            lines = normalize_whitespace(text or "").split("\n")
            index = 0

            while index < len(lines):
                anchor = self._match_anchor(lines, index)

                if anchor is not None:
                    if current is not None:
                        self._push(entries, current)

                    drug_name, classification, next_index = anchor
                    current = _DraftEntry(
                        drug_name=drug_name,
                        classification=classification,
                        start=source_index,
                        end=source_index,
                    )
                    index = next_index
                    continue

                if current is None:
                    if lines[index].strip():
                        orphan_lines += 1
                else:
                    self._consume_line(current, lines[index], source_index)

                index += 1

        if current is not None:
            self._push(entries, current)

        if orphan_lines:
            logger.debug(f"Skipped {orphan_lines} lines before the first entry anchor")

        logger.info(f"Parsed {len(entries)} drug entries")
        return entries

    def parse_text(self, text: str, source_index: int = 1) -> List[DrugEntry]:
        """Parse a single block of text as one page."""
        return self.parse([(text, source_index)])

    # ========================================================================
    # ANCHORS
    # ========================================================================

    def _match_anchor(self, lines: List[str], index: int) -> Optional[Tuple[str, Classification, int]]:
        """
        Detect an entry anchor starting at lines[index].

        Returns:
            (drug_name, classification, index of first body line) or None
        """
        match = ANCHOR_MARKER.match(lines[index].strip())
        if not match:
            return None

        classification = Classification.parse(match.group("marker"))
        rest = match.group("rest").strip()
        rest_without_notes = compact_spaces(PARENTHETICAL.sub(" ", rest)).strip(" -:;,.")

        if rest_without_notes:
            # "OTC PARACETAMOL" carries its heading inline; prose after the
            # marker means this is body text, not an anchor
            if self._is_drug_heading(rest):
                return self._clean_heading(rest), classification, index + 1
            return None

        seen = 0
        cursor = index + 1
        while cursor < len(lines) and seen < ANCHOR_LOOKAHEAD:
            candidate = lines[cursor].strip()
            cursor += 1
            if not candidate:
                continue
            seen += 1
            if self._is_drug_heading(candidate):
                return self._clean_heading(candidate), classification, cursor

        logger.debug(f"Classification marker without drug heading: '{lines[index].strip()}'")
        return None

    @staticmethod
    def _is_drug_heading(text: str) -> bool:
        stripped = compact_spaces(PARENTHETICAL.sub(" ", text))
        if not stripped or len(stripped) > MAX_HEADING_LENGTH:
            return False
        if not DRUG_HEADING.match(stripped):
            return False
        if not any(ch.isalpha() for ch in stripped):
            return False
        # Upper-case section headings ("ADVERSE REACTIONS") are not drugs
        return detect_section(normalize_header_text(stripped)) is None

    @staticmethod
    def _clean_heading(text: str) -> str:
        """
        Canonical drug name from a heading.

        Examples:
            "PARACETAMOL (Acetaminophen)" -> "PARACETAMOL"
            "Rx AMOXICILLIN"              -> "AMOXICILLIN"
        """
        cleaned = PARENTHETICAL.sub(" ", text)
        cleaned = CLASSIFICATION_TOKEN.sub(" ", cleaned)
        cleaned = compact_spaces(cleaned).strip(" -:;,.")
        return cleaned.upper()

    # ========================================================================
    # BODY
    # ========================================================================

    def _consume_line(self, draft: _DraftEntry, line: str, source_index: int):
        stripped = line.strip()
        draft.raw_lines.append(stripped)

        if not stripped:
            draft.push("")
            return

        draft.end = source_index

        if self._capture_metadata(draft, stripped):
            return

        section = detect_section(normalize_header_text(stripped))
        if section is not None:
            draft.current_section = section
            if ":" in stripped:
                remainder = stripped.split(":", 1)[1].strip()
                if remainder:
                    draft.push(remainder)
            return

        draft.push(stripped)

    @staticmethod
    def _capture_metadata(draft: _DraftEntry, line: str) -> bool:
        """
        Capture pregnancy category / ATC code (first match wins).

        Returns:
            True when the line is a metadata line and should not be routed
            into a section buffer
        """
        consumed = False

        pregnancy = PREGNANCY_CATEGORY.search(line)
        if pregnancy:
            if draft.pregnancy_category is None:
                draft.pregnancy_category = compact_spaces(pregnancy.group(1)).replace(" ", "").upper()
            consumed = consumed or pregnancy.start() == 0

        atc = ATC_CODE.search(line)
        if atc:
            if draft.atc_code is None:
                draft.atc_code = atc.group(1).strip(" .-").upper()
            consumed = consumed or atc.start() == 0

        return consumed

    # ========================================================================
    # FINALIZATION
    # ========================================================================

    def _push(self, entries: List[DrugEntry], draft: _DraftEntry):
        entry = self._finalize(draft)
        if entry is not None:
            entries.append(entry)

    def _finalize(self, draft: _DraftEntry) -> Optional[DrugEntry]:
        sections: Dict[SectionKey, str] = {}

        for key in SectionKey:
            lines = draft.section_lines.get(key)
            if not lines:
                continue
            normalized = normalize_whitespace("\n".join(lines))
            threshold = self.section_minimums.get(key, self.min_section_length)
            if len(normalized) >= threshold:
                sections[key] = normalized
            else:
                logger.debug(
                    f"Dropped {key.value} for {draft.drug_name}: "
                    f"{len(normalized)} chars < {threshold}"
                )

        raw_content = "\n".join([draft.drug_name] + draft.raw_lines).strip()
        normalized_content = normalize_whitespace(raw_content)

        has_metadata = bool(draft.pregnancy_category or draft.atc_code)
        if not sections and not has_metadata and len(normalized_content) < self.min_entry_length:
            logger.debug(
                f"Discarded entry '{draft.drug_name}' "
                f"({len(normalized_content)} chars, no sections or metadata)"
            )
            return None

        return DrugEntry(
            drug_name=draft.drug_name,
            classification=draft.classification,
            raw_content=raw_content,
            normalized_content=normalized_content,
            sections=sections,
            pregnancy_category=draft.pregnancy_category,
            atc_code=draft.atc_code,
            source_range=SourceRange(start=draft.start, end=draft.end),
        )
