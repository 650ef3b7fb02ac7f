"""
Static tables for drug-hint extraction.

Trigger patterns, comparison patterns, filler words and stop terms live here
so vocabulary can be extended without touching the extractor's control flow.
Every pattern exposes a named group: "drug" for single hints, "a"/"b" for
comparisons.
"""
import re
from dataclasses import dataclass
from enum import Enum
from typing import Dict, FrozenSet, List, Pattern, Tuple


MAX_HINT_WORDS = 4


class StopTermGroup(str, Enum):
    TOPIC = "topic"
    COMPARISON = "comparison"
    PRONOUN = "pronoun"
    GENERIC = "generic"


# ============================================================================
# STOP TERMS (topic words that look like drug names)
# ============================================================================

STOP_TERM_GROUPS: Dict[StopTermGroup, FrozenSet[str]] = {
    StopTermGroup.TOPIC: frozenset({
        "dosage", "dose", "doses", "dosing", "dosage forms", "dose adjustment",
        "renal dose", "renal dosing", "hepatic dose", "maximum dose", "max dose",
        "side effects", "side effect", "adverse effects", "adverse effect",
        "adverse reactions", "adverse reaction", "undesirable effects",
        "contraindications", "contraindication", "indications", "indication",
        "uses", "use", "usage", "interactions", "interaction", "drug interactions",
        "precautions", "precaution", "warnings", "warning",
        "pregnancy", "pregnancy category", "breastfeeding", "lactation",
        "mechanism", "mechanism of action", "action", "actions", "moa", "storage", "administration",
        "route", "formulations", "formulation", "strengths", "strength",
        "overdose", "overdosage", "price", "cost", "availability",
        "atc code", "atc", "classification", "brand names", "brands",
        "children", "pediatric dose", "paediatric dose", "adults", "elderly",
        "alternatives", "alternative", "generic",
    }),
    StopTermGroup.COMPARISON: frozenset({
        "comparison", "compare", "difference", "differences", "the difference",
        "versus", "vs", "better", "which is better", "both", "the other", "other",
    }),
    StopTermGroup.PRONOUN: frozenset({
        "that", "it", "this", "them", "they", "these", "those", "one",
        "the same", "same", "same drug", "the same drug", "that one", "this one",
    }),
    StopTermGroup.GENERIC: frozenset({
        "drug", "drugs", "the drug", "this drug", "that drug",
        "medicine", "medicines", "medication", "medications", "tablet", "tablets",
        "something", "anything", "everything",
    }),
}

STOP_TERMS: FrozenSet[str] = frozenset().union(*STOP_TERM_GROUPS.values())

TOPIC_TERMS: FrozenSet[str] = STOP_TERM_GROUPS[StopTermGroup.TOPIC]


# ============================================================================
# WORD LISTS
# ============================================================================

FILLER_WORDS: FrozenSet[str] = frozenset({
    "its", "it's", "the", "their", "this", "these", "those", "a", "an",
    "his", "her", "my", "our", "your", "some", "any", "drug", "medicine",
})

INTERROGATIVES: FrozenSet[str] = frozenset({
    "what", "what's", "whats", "how", "when", "why", "which", "who", "where",
    "can", "could", "should", "is", "are", "does", "do", "will", "would", "may",
})

REFERENTIAL_WORDS: FrozenSet[str] = frozenset({
    "it", "its", "it's", "this", "that", "they", "them", "their", "same",
})

# Words a drug-less question is made of. A word outside this set (and not a
# number) may be a drug name, so the question is not a follow-up.
QUESTION_WORDS: FrozenSet[str] = (
    INTERROGATIVES | FILLER_WORDS | REFERENTIAL_WORDS
    | frozenset(word for term in TOPIC_TERMS for word in term.split())
    | frozenset({
        "for", "in", "of", "with", "to", "on", "by", "at", "from", "during", "while",
        "and", "or", "also", "then", "than", "if", "not", "be", "been", "there",
        "i", "me", "we", "you", "he", "she", "patient", "patients", "someone",
        "take", "taken", "taking", "give", "given", "giving", "used", "using",
        "safe", "safely", "cause", "causes", "interact", "stored", "store",
        "child", "kids", "infants", "infant", "neonates", "pregnant", "renal", "hepatic",
        "daily", "day", "days", "per", "mg", "kg", "ml", "usual", "recommended",
        "normal", "much", "many", "often", "long", "times", "about",
    })
)

# Leading connectors that keep a bare topic a follow-up: "and dosage?"
FOLLOW_UP_LEADS: List[str] = [
    "and what about", "and how about", "what about", "how about",
    "and also", "and", "also", "then", "ok", "okay",
]

# Words that end the left-hand name of a comparison when walking backwards
COMPARISON_LEFT_BOUNDARY: FrozenSet[str] = (
    INTERROGATIVES | FILLER_WORDS | frozenset({"better", "between", "or", "of", "compare", "comparing", "safer"})
)


# ============================================================================
# PATTERNS
# ============================================================================

_TOPIC_WORDS = (
    r"(?:dosage|doses?|dosing|side\s+effects?|adverse\s+(?:effects?|reactions?)|"
    r"contra\s*-?\s*indications?|indications?|interactions?|precautions?|warnings?|"
    r"uses?|formulations?|strengths?|administration|pregnancy\s+category|atc\s+code|"
    r"mechanism(?:\s+of\s+action)?|storage)"
)

# Ordered: the first pattern that matches decides the candidate
TRIGGER_PATTERNS: List[Pattern[str]] = [
    re.compile(rf"\b{_TOPIC_WORDS}\s+(?:of|for|with)\s+(?P<drug>.+)", re.IGNORECASE),
    re.compile(r"\btell\s+me\s+(?:more\s+)?about\s+(?P<drug>.+)", re.IGNORECASE),
    re.compile(r"\b(?:information|info|details)\s+(?:on|about|for|regarding)\s+(?P<drug>.+)", re.IGNORECASE),
    re.compile(r"\bregarding\s+(?P<drug>.+)", re.IGNORECASE),
    re.compile(r"\bwhat\s+(?:is|are)\s+(?P<drug>.+?)\s+(?:used|prescribed|indicated|given)\s+for\b", re.IGNORECASE),
    re.compile(r"\bdifferences?\s+between\s+(?P<drug>.+?)\s+(?:and|&|vs\.?|versus)\s+", re.IGNORECASE),
    re.compile(r"\bcompar(?:e|ing)\s+(?P<drug>.+?)\s+(?:and|with|to|vs\.?|versus|&)\s+", re.IGNORECASE),
    re.compile(r"^\s*(?P<drug>[\w\-\+]+(?:\s+[\w\-\+]+){0,3}?)\s+(?:vs\.?|versus)\s+", re.IGNORECASE),
    re.compile(r"\b(?:what|how)\s+about\s+(?P<drug>.+)", re.IGNORECASE),
    re.compile(r"\babout\s+(?P<drug>.+)", re.IGNORECASE),
    re.compile(r"\b(?:is|are|can)\s+(?P<drug>.+?)\s+(?:safe|used|given|taken|prescribed)\b", re.IGNORECASE),
    re.compile(
        r"\b(?:take|taking|give|giving|use|using)\s+(?P<drug>.+?)\s+(?:with|while|during|in|for|if|when|after|before)\b",
        re.IGNORECASE,
    ),
    re.compile(r"\bwhat(?:\s+is|\s+are|'s)\s+(?P<drug>.+)", re.IGNORECASE),
]

COMPARISON_PATTERNS: List[Pattern[str]] = [
    re.compile(r"\bdifferences?\s+between\s+(?P<a>.+?)\s+(?:and|&|vs\.?|versus)\s+(?P<b>.+)", re.IGNORECASE),
    re.compile(r"\bcompar(?:e|ing)\s+(?P<a>.+?)\s+(?:and|with|to|vs\.?|versus|&)\s+(?P<b>.+)", re.IGNORECASE),
    re.compile(r"(?P<a>[\w\-\+][\w\-\+ ]*?)\s+(?:vs\.?|versus)\s+(?P<b>.+)", re.IGNORECASE),
    re.compile(r"(?P<a>[\w\-\+][\w\-\+ ]*?)\s+(?:and|&)\s+(?P<b>[\w\-\+ ]+?)\s+comparison\b", re.IGNORECASE),
]

# Sentence end inside a captured span
CANDIDATE_CUT = re.compile(r"[?!;:,]|\.(?:\s|$)")

# "paracetamol for children" -> "paracetamol"
TRAILING_QUALIFIER = re.compile(
    r"\s+(?:for|in|during|when|among|regarding|with|while|if|after|before|on|to|and\s+its?)\b.*$",
    re.IGNORECASE,
)

EDGE_PUNCTUATION = " \t\"'`()[]{}.?!,;:"


# ============================================================================
# QUESTION INTENT (which monograph sections a question is after)
# ============================================================================

@dataclass(frozen=True)
class IntentRule:
    name: str
    patterns: Tuple[Pattern[str], ...]
    sections: Tuple[str, ...]


def _rule(name: str, sections: Tuple[str, ...], *patterns: str) -> IntentRule:
    return IntentRule(name, tuple(re.compile(p, re.IGNORECASE) for p in patterns), sections)


# Section values are chunk-metadata wire names
INTENT_RULES: List[IntentRule] = [
    _rule(
        "dosage", ("dosage", "doseAdjustment", "administration"),
        r"\b(?:dosage|dose|doses|dosing|posology)\b",
        r"\bhow\s+(?:many|much)\s+(?:mg|milligrams?|tablets?)\b",
    ),
    _rule(
        "dose_adjustment", ("doseAdjustment", "dosage"),
        r"\b(?:renal|hepatic|liver|kidney)\s+(?:dose|dosing|adjustment|impairment)\b",
        r"\b(?:adjust|modify|reduce)\s+(?:the\s+)?dose\b",
    ),
    _rule(
        "indications", ("indications",),
        r"\b(?:indications?|uses?|used\s+for|treat|treating|therapy\s+for)\b",
        r"\bwhat\s+is\s+it\s+for\b",
    ),
    _rule(
        "contraindications", ("contraindications",),
        r"\bcontra[\s\-]?indications?\b",
        r"\bshould\s+not\s+(?:be\s+)?(?:use|used|take|taken)\b",
        r"\bwhen\s+not\s+(?:to\s+)?(?:use|give|take)\b",
    ),
    _rule(
        "adverse_reactions", ("adverseReactions",),
        r"\bside\s+effects?\b",
        r"\badverse\s+(?:reactions?|effects?)\b",
    ),
    _rule(
        "precautions", ("precautions",),
        r"\b(?:precautions?|warnings?|cautions?)\b",
    ),
    _rule(
        "interactions", ("drugInteractions",),
        r"\binteract(?:ion|ions|s)?\b",
        r"\bcompatible\s+with\b",
    ),
    _rule(
        "formulations", ("formulations",),
        r"\b(?:formulations?|available\s+forms?|presentations?|strengths?|dosage\s+forms?)\b",
    ),
    _rule(
        "administration", ("administration",),
        r"\badminist(?:er|ered|ration)\b",
        r"\bhow\s+(?:is\s+it\s+|to\s+)?(?:give|given|take|taken)\b",
        r"\broute\b",
    ),
]
