"""
Heuristic drug-hint extraction.

Pulls a candidate drug name out of a question (or one history line) with an
ordered trigger table, and rejects candidates that are really formulary
topics: "how about the dosage?" must not produce a drug named "the dosage".

Also hosts the comparison detector ("A vs B"), the follow-up detector
("side effects?" after a turn about paracetamol) and the intent detector
("how much?" is after the dosage sections).
"""
import re
from typing import Iterable, List, Optional, Tuple

from formulary.models import SectionKey
from formulary.resolver.hint_patterns import (
    CANDIDATE_CUT,
    COMPARISON_LEFT_BOUNDARY,
    COMPARISON_PATTERNS,
    EDGE_PUNCTUATION,
    FILLER_WORDS,
    FOLLOW_UP_LEADS,
    INTENT_RULES,
    INTERROGATIVES,
    MAX_HINT_WORDS,
    QUESTION_WORDS,
    REFERENTIAL_WORDS,
    STOP_TERMS,
    TOPIC_TERMS,
    TRAILING_QUALIFIER,
    TRIGGER_PATTERNS,
)

_NAME_NOISE = re.compile(r"[^a-z0-9\s+\-]")
_WHITESPACE = re.compile(r"\s+")
_WORD = re.compile(r"[a-z0-9'\-\+]+")


# ============================================================================
# NAME NORMALIZATION
# ============================================================================

def normalize_drug_name(name: Optional[str]) -> str:
    """
    Canonical comparison form of a drug name.

    Examples:
        "Paracetamol (Acetaminophen)" -> "paracetamol acetaminophen"
        "  CO-AMOXICLAV  "            -> "co-amoxiclav"
    """
    if not name:
        return ""
    text = _NAME_NOISE.sub("", name.lower())
    return _WHITESPACE.sub(" ", text).strip()


def names_match(first: Optional[str], second: Optional[str]) -> bool:
    """
    True when two names are normalized-equal or one contains the other.

    The substring rule lets "amoxicillin" match "AMOXICILLIN TRIHYDRATE".
    """
    left = normalize_drug_name(first)
    right = normalize_drug_name(second)
    if not left or not right:
        return False
    return left == right or left in right or right in left


def is_stop_term(candidate: Optional[str]) -> bool:
    """True when the candidate, or its filler-stripped form, is a topic word."""
    if not candidate:
        return False
    lowered = _WHITESPACE.sub(" ", candidate.lower()).strip(EDGE_PUNCTUATION)
    if lowered in STOP_TERMS:
        return True
    stripped = " ".join(_strip_leading_fillers(lowered.split()))
    return stripped in STOP_TERMS


# ============================================================================
# SINGLE-DRUG HINTS
# ============================================================================

def extract_drug_hint(
    text: Optional[str],
    previous_drug: Optional[str] = None,
    known_drugs: Iterable[str] = (),
) -> Optional[str]:
    """
    Extract a candidate drug name from free text.

    Args:
        text: Question or history line
        previous_drug: Drug of the previous turn, if any
        known_drugs: Drug names present in the corpus

    Returns:
        Candidate name as written in the text, the previous drug for
        follow-up questions, a corpus drug named in the text, or None

    Examples:
        "Tell me about Paracetamol"            -> "Paracetamol"
        "what are the side effects of ibuprofen?" -> "ibuprofen"
        "how about the dosage?"                -> None
        "side effects?" (previous "Paracetamol") -> "Paracetamol"
        "does ibuprofen cause drowsiness?" (known ["IBUPROFEN"]) -> "IBUPROFEN"
    """
    if not text or not text.strip():
        return None

    known_drugs = list(known_drugs or ())
    if previous_drug and previous_drug.strip() and is_follow_up(text, known_drugs):
        return previous_drug

    return _match_trigger(text) or match_known_drug(text, known_drugs)


def match_known_drug(text: Optional[str], known_drugs: Iterable[str]) -> Optional[str]:
    """
    Longest corpus drug name occurring as whole words in the text.

    Returns the name as stored in the corpus.
    """
    haystack = f" {normalize_drug_name(text)} "
    if not haystack.strip():
        return None

    for name in sorted(set(known_drugs or ()), key=len, reverse=True):
        needle = normalize_drug_name(name)
        if len(needle) >= 3 and f" {needle} " in haystack:
            return name
    return None


def _match_trigger(text: str) -> Optional[str]:
    for pattern in TRIGGER_PATTERNS:
        match = pattern.search(text)
        if match:
            return clean_candidate(match.group("drug"))
    return None


def clean_candidate(raw: Optional[str]) -> Optional[str]:
    """
    Turn a captured span into a candidate drug name.

    Cuts at sentence punctuation and trailing qualifiers, strips leading
    filler words, truncates to MAX_HINT_WORDS and rejects stop terms.
    """
    if not raw:
        return None

    text = CANDIDATE_CUT.split(raw, maxsplit=1)[0]
    text = TRAILING_QUALIFIER.sub("", text)
    text = _WHITESPACE.sub(" ", text).strip(EDGE_PUNCTUATION)

    if not text or is_stop_term(text):
        return None

    words = _strip_leading_fillers(text.split())[:MAX_HINT_WORDS]
    candidate = " ".join(words).strip(EDGE_PUNCTUATION)

    if len(candidate) < 2 or candidate.isdigit() or is_stop_term(candidate):
        return None

    return candidate


def _strip_leading_fillers(words: List[str]) -> List[str]:
    index = 0
    while index < len(words) and words[index].lower() in FILLER_WORDS:
        index += 1
    return words[index:]


# ============================================================================
# COMPARISONS
# ============================================================================

def detect_comparison(text: Optional[str]) -> Optional[Tuple[str, str]]:
    """
    Detect a two-drug comparison question.

    Returns:
        (first_drug, second_drug) or None

    Examples:
        "Paracetamol vs Ibuprofen"                      -> ("Paracetamol", "Ibuprofen")
        "compare amoxicillin and cefalexin for otitis"  -> ("amoxicillin", "cefalexin")
        "what is the difference between X and Y?"       -> ("X", "Y")
    """
    if not text or not text.strip():
        return None

    for pattern in COMPARISON_PATTERNS:
        match = pattern.search(text)
        if not match:
            continue

        first = _clean_left_name(match.group("a"))
        second = clean_candidate(match.group("b"))

        if not first or not second:
            continue
        if normalize_drug_name(first) == normalize_drug_name(second):
            continue

        return first, second

    return None


def _clean_left_name(raw: str) -> Optional[str]:
    """
    Left-hand comparison name: walk back from the connector until a
    boundary word ("which is better paracetamol" -> "paracetamol").
    """
    text = _WHITESPACE.sub(" ", CANDIDATE_CUT.split(raw)[-1]).strip(EDGE_PUNCTUATION)
    kept: List[str] = []

    for word in reversed(text.split()):
        if word.lower() in COMPARISON_LEFT_BOUNDARY or len(kept) >= MAX_HINT_WORDS:
            break
        kept.insert(0, word)

    candidate = " ".join(kept).strip(EDGE_PUNCTUATION)
    if len(candidate) < 2 or is_stop_term(candidate):
        return None
    return candidate


# ============================================================================
# FOLLOW-UPS
# ============================================================================

def is_follow_up(text: Optional[str], known_drugs: Iterable[str] = ()) -> bool:
    """
    True when the question only makes sense with a prior drug in context.

    Matches a bare topic ("dosage?", "and side effects?", "what about
    pregnancy?") or an interrogative question that refers back through a
    pronoun or names no drug of its own ("how should it be taken?",
    "what is the dose for children?"). A question carrying a corpus drug
    name, or any word outside QUESTION_WORDS, names its own drug.
    """
    if not text or not text.strip():
        return False

    lowered = _WHITESPACE.sub(" ", text.lower()).strip(EDGE_PUNCTUATION)
    bare = _strip_follow_up_lead(lowered)

    if bare in TOPIC_TERMS or is_stop_term(bare):
        return True

    words = _WORD.findall(lowered)
    if not words:
        return False
    if words[0] not in INTERROGATIVES and not lowered.startswith(("and ", "also ")):
        return False

    if any(word in REFERENTIAL_WORDS for word in words):
        return True

    if match_known_drug(text, known_drugs):
        return False
    if detect_comparison(text) is not None or _match_trigger(text) is not None:
        return False

    return all(word in QUESTION_WORDS or any(ch.isdigit() for ch in word) for word in words)


def _strip_follow_up_lead(lowered: str) -> str:
    for lead in FOLLOW_UP_LEADS:
        if lowered.startswith(lead + " "):
            return lowered[len(lead):].strip(EDGE_PUNCTUATION)
    return lowered


# ============================================================================
# INTENT
# ============================================================================

def detect_intent(text: Optional[str]) -> Tuple[SectionKey, ...]:
    """
    Sections a question asks about, in rule order; () when none match.

    Examples:
        "side effects?"                 -> (ADVERSE_REACTIONS,)
        "renal dose of amoxicillin"     -> (DOSAGE, DOSE_ADJUSTMENT, ADMINISTRATION)
        "tell me about paracetamol"     -> ()
    """
    if not text or not text.strip():
        return ()

    sections: List[SectionKey] = []
    for rule in INTENT_RULES:
        if not any(pattern.search(text) for pattern in rule.patterns):
            continue
        for value in rule.sections:
            section = SectionKey.parse(value)
            if section is not None and section not in sections:
                sections.append(section)
    return tuple(sections)
