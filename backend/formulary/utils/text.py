"""
Text normalization shared by every parsing path.

PDF and plain-text formulary exports carry non-breaking spaces, tab runs,
ragged blank lines and numbers split from their ranges or units. Everything
the parser, chunker and resolver compare goes through these helpers first.
"""
import re


_HORIZONTAL_WS = re.compile(r"[\t\f\r\v \u00a0]+")
_BLANK_RUNS = re.compile(r"\n{3,}")
_ANY_WS = re.compile(r"\s+")

# "80\n-\n85" -> "80-85"
_SPLIT_RANGE = re.compile(r"(\d+)\s*\n+\s*([–-])\s*\n+\s*(\d+)")
_BREAK_BEFORE_DELIMITER = re.compile(r"(\d+)\s*\n+\s*([–-])")
_BREAK_AFTER_DELIMITER = re.compile(r"([–-])\s*\n+\s*(\d+)")
# "100\nmg" -> "100 mg"
_SPLIT_UNIT = re.compile(
    r"(\d+)\s*\n+\s*(mg|mcg|g|kg|iu|units?|drops?|ml|l|hours?|hrs?|times|tablets?|capsules?)\b",
    re.IGNORECASE,
)

_HEADING_TRAILING_PUNCT = re.compile(r"[\s\.:;,\-–]+$")


def normalize_whitespace(value: str) -> str:
    """
    Normalize whitespace while keeping line structure.

    Steps:
        1. NBSP, tabs, form feeds and carriage returns become spaces
        2. Runs of spaces collapse to one
        3. Every line is trimmed
        4. Three or more newlines collapse to a single blank line
        5. Numeric artifacts from PDF extraction are repaired

    Examples:
        "Adults:\\t500\\nmg" -> "Adults: 500 mg"
        "80\\n-\\n85 mg"      -> "80-85 mg"
    """
    if not value:
        return ""

    text = _HORIZONTAL_WS.sub(" ", value)
    text = "\n".join(line.strip() for line in text.split("\n"))
    text = _BLANK_RUNS.sub("\n\n", text).strip()

    return repair_numeric_artifacts(text)


def repair_numeric_artifacts(text: str) -> str:
    """Join numeric ranges and unit annotations split across lines."""
    result = _SPLIT_RANGE.sub(r"\1\2\3", text)
    result = _BREAK_BEFORE_DELIMITER.sub(r"\1\2", result)
    result = _BREAK_AFTER_DELIMITER.sub(r"\1\2", result)
    result = _SPLIT_UNIT.sub(r"\1 \2", result)
    return result


def compact_spaces(value: str) -> str:
    """Collapse all whitespace, newlines included, to single spaces."""
    return _ANY_WS.sub(" ", value or "").strip()


def normalize_header_text(line: str) -> str:
    """
    Reduce a body line to its heading-candidate form.

    Everything after the first colon is dropped so "Dose: 500 mg" is tested
    as "Dose".

    Examples:
        "Adverse Reactions:"      -> "Adverse Reactions"
        "  Side   Effects. "      -> "Side Effects"
        "Dose: 500 mg every 6 h"  -> "Dose"
    """
    head = line.split(":", 1)[0]
    head = compact_spaces(head)
    return _HEADING_TRAILING_PUNCT.sub("", head)
