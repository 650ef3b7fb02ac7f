"""
Prompt templates for the drug classifier.

Critical constraints:
- Answer with a drug name or null, nothing else
- Prefer the previous drug on follow-ups
- Never name a drug the conversation does not imply
"""
from typing import List, Optional, Sequence

CLASSIFIER_SYSTEM_PROMPT = """You identify which drug a pharmacy chat question is about.

RULES:
1. Return JSON only: {"drug": "<drug name>"} or {"drug": null}
2. If the question names a drug, return that drug exactly as written
3. If the question is a follow-up that does not name a drug (e.g. "side effects?", "what about the dose for children?"), return the previous drug
4. NEVER invent a drug that is not mentioned in the question, the recent conversation or the previous drug
5. If you are not sure, return {"drug": null}
6. For comparisons, return the first drug named"""

CLASSIFIER_USER_TEMPLATE = """Previous drug: {previous_drug}

Recent conversation:
{history}

Question: {question}

Which drug is the question about?"""


def format_history(turns: Sequence[dict]) -> str:
    """Render chat turns as "role: content" lines."""
    lines: List[str] = []
    for turn in turns:
        role = str(turn.get("role", "user")).strip() or "user"
        content = " ".join(str(turn.get("content", "")).split())
        if content:
            lines.append(f"{role}: {content}")
    return "\n".join(lines) if lines else "(none)"


def format_classifier_prompt(question: str, previous_drug: Optional[str], history: Sequence[dict]) -> str:
    """Format the classifier user prompt."""
    return CLASSIFIER_USER_TEMPLATE.format(
        previous_drug=previous_drug or "(none)",
        history=format_history(history),
        question=question.strip(),
    )
