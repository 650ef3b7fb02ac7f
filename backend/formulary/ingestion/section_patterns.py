"""
Static tables for formulary section detection.

New formulary editions extend these tables; the parser's control flow does
not change. Patterns are matched against a body line reduced by
`normalize_header_text` (text after the first colon dropped), and must match
the whole candidate.
"""
import re
from typing import Dict, List, Pattern, Tuple

from formulary.models import SectionKey


# ============================================================================
# SECTION HEADINGS (surface form -> canonical key)
# ============================================================================

# Order matters: the first key whose pattern matches wins, so more specific
# headings ("Dosage Forms", "Dose Adjustment") come before broader ones.
SECTION_PATTERNS: List[Tuple[SectionKey, List[str]]] = [
    (SectionKey.FORMULATIONS, [
        r"formulations?(?:\s+available)?",
        r"dosage\s+forms?(?:\s+and\s+strengths?)?",
        r"available\s+formulations?",
        r"presentations?",
    ]),
    (SectionKey.DOSE_ADJUSTMENT, [
        r"dose\s*adjustments?",
        r"dosage\s+adjustments?",
        r"dose\s+modifications?",
        r"renal(?:\s+impairment)?(?:\s+dos(?:e|ing|age))?",
        r"hepatic(?:\s+impairment)?(?:\s+dos(?:e|ing|age))?",
    ]),
    (SectionKey.INDICATIONS, [
        r"indications?(?:\s+and\s+uses?)?",
        r"therapeutic\s+indications?",
        r"clinical\s+uses?",
        r"uses",
    ]),
    (SectionKey.CONTRAINDICATIONS, [
        r"contra\s*-?\s*indications?",
        r"when\s+not\s+to\s+use",
    ]),
    (SectionKey.DOSAGE, [
        r"dosage(?:\s+and\s+administration)?",
        r"doses?",
        r"dosing",
        r"recommended\s+dos(?:e|age)",
    ]),
    (SectionKey.PRECAUTIONS, [
        r"precautions?",
        r"special\s+precautions?",
        r"warnings?(?:\s+and\s+precautions?)?",
    ]),
    (SectionKey.ADVERSE_REACTIONS, [
        r"adverse\s+(?:drug\s+)?reactions?",
        r"adverse\s+effects?",
        r"side\s+effects?",
        r"undesirable\s+effects?",
    ]),
    (SectionKey.DRUG_INTERACTIONS, [
        r"drug\s+interactions?",
        r"interactions?",
    ]),
    (SectionKey.ADMINISTRATION, [
        r"administration",
        r"route(?:\s+of\s+administration)?",
        r"how\s+to\s+take",
        r"directions?\s+for\s+use",
    ]),
]

COMPILED_SECTION_PATTERNS: List[Tuple[SectionKey, List[Pattern[str]]]] = [
    (key, [re.compile(rf"^{expr}$", re.IGNORECASE) for expr in expressions])
    for key, expressions in SECTION_PATTERNS
]


# ============================================================================
# FINALIZATION THRESHOLDS
# ============================================================================

# Terse fields get shorter minimums than prose fields. Anything shorter is a
# heading-only false positive.
SECTION_MINIMUM_LENGTHS: Dict[SectionKey, int] = {
    SectionKey.INDICATIONS: 60,
    SectionKey.CONTRAINDICATIONS: 60,
    SectionKey.DOSAGE: 40,
    SectionKey.DOSE_ADJUSTMENT: 40,
    SectionKey.PRECAUTIONS: 60,
    SectionKey.ADVERSE_REACTIONS: 60,
    SectionKey.DRUG_INTERACTIONS: 60,
    SectionKey.ADMINISTRATION: 40,
    SectionKey.FORMULATIONS: 60,
}

DEFAULT_MIN_SECTION_LENGTH = 120
DEFAULT_MIN_ENTRY_LENGTH = 80


# ============================================================================
# ENTRY ANCHORS AND SCALAR METADATA
# ============================================================================

# Classification marker at the start of a line: "Rx", "OTC", "Rx (Prescription)"
ANCHOR_MARKER = re.compile(r"^(?P<marker>Rx|OTC)\b(?P<rest>.*)$", re.IGNORECASE)

# How many non-blank lines after the marker may hold the drug-name heading
ANCHOR_LOOKAHEAD = 3

# Upper-case drug heading: "PARACETAMOL", "CO-AMOXICLAV (AMOXICILLIN + CLAVULANIC ACID)"
DRUG_HEADING = re.compile(r"^[A-Z0-9][A-Z0-9\s\-\(\)\/\+,\.']*$")

PARENTHETICAL = re.compile(r"\([^)]*\)")
CLASSIFICATION_TOKEN = re.compile(r"\b(?:OTC|Rx)\b", re.IGNORECASE)

PREGNANCY_CATEGORY = re.compile(r"pregnancy\s*category\s*[:\-]?\s*([A-Z](?:\s*/\s*[A-Z])*)\b", re.IGNORECASE)
# ATC codes open with an anatomical group letter and two digits: "N02BE01"
ATC_CODE = re.compile(r"ATC\s*code\s*[:\-]?\s*([A-Z]\d{2}[0-9A-Z\.\-]*)", re.IGNORECASE)


def detect_section(candidate: str):
    """
    Map a heading candidate to its SectionKey.

    Returns:
        SectionKey or None

    Examples:
        "Adverse Reactions"       -> SectionKey.ADVERSE_REACTIONS
        "Undesirable effects"     -> SectionKey.ADVERSE_REACTIONS
        "Dosage and Administration" -> SectionKey.DOSAGE
        "Take with food"          -> None
    """
    if not candidate:
        return None

    for key, expressions in COMPILED_SECTION_PATTERNS:
        if any(expression.match(candidate) for expression in expressions):
            return key

    return None
