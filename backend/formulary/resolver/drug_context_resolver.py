"""
Drug context resolver.

Decides which drug (or pair of drugs) a question is about, then checks that
decision against what retrieval actually returned.

States:
    NO_CONTEXT -> HEURISTIC_CANDIDATE -> CLASSIFIER_CANDIDATE -> VALIDATED -> FINAL

Every transition is a pure function over ResolvedContext; the
DrugContextResolver class only sequences them around the async calls to the
classifier and the retrieval orchestrator.

Guardrails:
1. Classifier failure is "no opinion", never an error
2. A candidate is only trusted if retrieval returns chunks for it
3. Nothing validates -> unfiltered retrieval, the caller still gets chunks
"""
import asyncio
import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Dict, FrozenSet, List, Optional, Sequence, Tuple

from formulary.core.config import settings
from formulary.models import Chunk
from formulary.resolver.drug_hints import (
    detect_comparison,
    extract_drug_hint,
    names_match,
    normalize_drug_name,
)
from formulary.retrieval.orchestrator import RetrievalOrchestrator, collect_drug_names
from formulary.utils.deduplication import deduplicate_chunks

logger = logging.getLogger(__name__)


class ResolutionState(str, Enum):
    NO_CONTEXT = "no_context"
    HEURISTIC_CANDIDATE = "heuristic_candidate"
    CLASSIFIER_CANDIDATE = "classifier_candidate"
    VALIDATED = "validated"
    FINAL = "final"


@dataclass(frozen=True)
class ResolvedContext:
    """
    Per-request working state. Never shared between requests.

    Attributes:
        question: The question being resolved
        previous_drug: Drug carried over from the previous turn
        heuristic_drug: Candidate from the hint extractor
        classifier_drug: Candidate from the classifier (None = no opinion)
        initial_candidate: First candidate chosen by priority
        active_drug_hint: Candidate used for the latest retrieval
        attempted: Candidates already retrieved for, in order
        normalized_matches: Normalized drug names in the latest result
        validated_drug: Candidate confirmed by its own result set
        chunks: Final ranked chunks (set on FINAL)
    """
    question: str
    previous_drug: Optional[str] = None
    heuristic_drug: Optional[str] = None
    classifier_drug: Optional[str] = None
    initial_candidate: Optional[str] = None
    active_drug_hint: Optional[str] = None
    attempted: Tuple[str, ...] = ()
    normalized_matches: FrozenSet[str] = frozenset()
    validated_drug: Optional[str] = None
    state: ResolutionState = ResolutionState.NO_CONTEXT
    chunks: Tuple[Chunk, ...] = ()


@dataclass
class ResolutionResult:
    """Outcome of one resolution, single-drug or comparison."""
    validated_drug: Optional[str]
    chunks: List[Chunk]
    contexts: List[ResolvedContext] = field(default_factory=list)
    comparison: Optional[Tuple[str, str]] = None

    @property
    def initial_candidate(self) -> Optional[str]:
        return self.contexts[0].initial_candidate if self.contexts else None


# ============================================================================
# PURE TRANSITIONS
# ============================================================================

def with_heuristic(context: ResolvedContext, heuristic_drug: Optional[str]) -> ResolvedContext:
    """NO_CONTEXT -> HEURISTIC_CANDIDATE"""
    return replace(context, heuristic_drug=heuristic_drug, state=ResolutionState.HEURISTIC_CANDIDATE)


def with_classifier(context: ResolvedContext, classifier_drug: Optional[str]) -> ResolvedContext:
    """HEURISTIC_CANDIDATE -> CLASSIFIER_CANDIDATE, fixing the initial candidate."""
    initial = select_initial_candidate(classifier_drug, context.heuristic_drug, context.previous_drug)
    return replace(
        context,
        classifier_drug=classifier_drug,
        initial_candidate=initial,
        state=ResolutionState.CLASSIFIER_CANDIDATE,
    )


def select_initial_candidate(
    classifier_drug: Optional[str],
    heuristic_drug: Optional[str],
    previous_drug: Optional[str],
) -> Optional[str]:
    """Priority: classifier -> heuristic -> previous turn."""
    for candidate in (classifier_drug, heuristic_drug, previous_drug):
        if candidate and candidate.strip():
            return candidate.strip()
    return None


def collect_normalized_matches(chunks: Sequence[Chunk]) -> FrozenSet[str]:
    return frozenset(collect_drug_names(chunks))


def is_validated(candidate: Optional[str], normalized_matches: FrozenSet[str]) -> bool:
    """True when the candidate matches any drug present in the result set."""
    if not candidate:
        return False
    return any(names_match(candidate, match) for match in normalized_matches)


def validate(context: ResolvedContext, candidate: str, chunks: Sequence[Chunk]) -> ResolvedContext:
    """
    Check one candidate against its own retrieval result.

    Returns:
        Context in VALIDATED state when the candidate is confirmed, otherwise
        the same state with the attempt recorded
    """
    matches = collect_normalized_matches(chunks)
    attempted = context.attempted + (candidate,)

    if is_validated(candidate, matches):
        return replace(
            context,
            active_drug_hint=candidate,
            attempted=attempted,
            normalized_matches=matches,
            validated_drug=candidate,
            state=ResolutionState.VALIDATED,
        )

    return replace(
        context,
        active_drug_hint=candidate,
        attempted=attempted,
        normalized_matches=matches,
        validated_drug=None,
    )


def fallback_candidates(context: ResolvedContext) -> List[str]:
    """Heuristic then previous drug, skipping anything already attempted."""
    tried = {normalize_drug_name(name) for name in context.attempted}
    remaining: List[str] = []

    for candidate in (context.heuristic_drug, context.previous_drug):
        key = normalize_drug_name(candidate)
        if key and key not in tried:
            tried.add(key)
            remaining.append(candidate.strip())

    return remaining


def finalize(context: ResolvedContext, chunks: Sequence[Chunk]) -> ResolvedContext:
    """-> FINAL. An unvalidated context clears its drug and keeps unfiltered chunks."""
    if context.state is ResolutionState.VALIDATED:
        return replace(context, chunks=tuple(chunks), state=ResolutionState.FINAL)

    return replace(
        context,
        active_drug_hint=None,
        validated_drug=None,
        normalized_matches=collect_normalized_matches(chunks),
        chunks=tuple(chunks),
        state=ResolutionState.FINAL,
    )


def drug_from_history(chat_history: Sequence[dict]) -> Optional[str]:
    """Most recent drug named by a user turn, scanning newest-first."""
    for turn in reversed(list(chat_history or [])):
        if str(turn.get("role", "")).lower() != "user":
            continue
        comparison = detect_comparison(turn.get("content"))
        if comparison:
            return comparison[0]
        hint = extract_drug_hint(turn.get("content"))
        if hint:
            return hint
    return None


# ============================================================================
# RESOLVER
# ============================================================================

class DrugContextResolver:
    """
    Resolve the drug context of a question and retrieve for it.

    Usage:
        resolver = DrugContextResolver(RetrievalOrchestrator(store), classifier)
        result = await resolver.resolve("side effects?", history, "Paracetamol")
    """

    def __init__(
        self,
        orchestrator: RetrievalOrchestrator,
        classifier=None,
        classifier_timeout: Optional[float] = None,
        history_turns: Optional[int] = None,
        default_limit: Optional[int] = None,
        comparison_limit: Optional[int] = None,
    ):
        """
        Args:
            orchestrator: Retrieval orchestrator over the corpus
            classifier: Object with async classify(question, previous_drug, recent_history), or None
            classifier_timeout: Upper bound on one classifier call
            history_turns: Recent turns handed to the classifier
            default_limit: Chunk limit when the caller passes none
            comparison_limit: Per-drug cap in comparison mode
        """
        self.orchestrator = orchestrator
        self.classifier = classifier
        self.classifier_timeout = classifier_timeout if classifier_timeout is not None else settings.CLASSIFIER_TIMEOUT_SECONDS
        self.history_turns = history_turns if history_turns is not None else settings.CLASSIFIER_HISTORY_TURNS
        self.default_limit = default_limit or settings.RETRIEVAL_LIMIT
        self.comparison_limit = comparison_limit or settings.COMPARISON_PER_DRUG_LIMIT

    async def resolve(
        self,
        question: str,
        chat_history: Sequence[dict] = (),
        previous_drug: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> ResolutionResult:
        """
        Resolve and retrieve for one question.

        Args:
            question: Current question (already validated as non-empty)
            chat_history: Ordered [{role, content}] turns before the question
            previous_drug: Drug of the previous turn; recovered from history when None
            limit: Maximum chunks returned

        Returns:
            ResolutionResult with validated drug (or None) and ranked chunks
        """
        limit = limit or self.default_limit
        history = list(chat_history or [])

        comparison = detect_comparison(question)
        if comparison:
            return await self._resolve_comparison(question, comparison)

        if not previous_drug:
            previous_drug = drug_from_history(history)

        context = ResolvedContext(question=question, previous_drug=previous_drug)
        context = with_heuristic(context, extract_drug_hint(question, previous_drug, self.orchestrator.known_drugs()))

        # Speculative retrieval for the non-classifier candidate overlaps the classifier call
        retrievals: Dict[str, "asyncio.Task"] = {}
        speculative = select_initial_candidate(None, context.heuristic_drug, context.previous_drug)
        if speculative and self.classifier is not None:
            self._retrieval_task(retrievals, question, speculative, limit)

        classifier_drug = await self._classify(question, previous_drug, history)
        context = with_classifier(context, classifier_drug)

        logger.info(
            f"Initial candidate: {context.initial_candidate!r} "
            f"(classifier={classifier_drug!r}, heuristic={context.heuristic_drug!r}, previous={previous_drug!r})",
            extra={"drug_name": context.initial_candidate, "state": context.state.value},
        )

        context, chunks = await self._validate_candidates(context, question, limit, retrievals)

        for task in retrievals.values():
            if not task.done():
                task.cancel()

        return ResolutionResult(validated_drug=context.validated_drug, chunks=list(chunks), contexts=[context])

    async def _validate_candidates(
        self,
        context: ResolvedContext,
        question: str,
        limit: int,
        retrievals: Dict[str, "asyncio.Task"],
    ) -> Tuple[ResolvedContext, List[Chunk]]:
        candidates = [context.initial_candidate] if context.initial_candidate else []

        while candidates:
            candidate = candidates.pop(0)
            chunks = await self._retrieval_task(retrievals, question, candidate, limit)
            context = validate(context, candidate, chunks)

            if context.state is ResolutionState.VALIDATED:
                logger.info(
                    f"Validated drug '{candidate}' ({len(chunks)} chunks)",
                    extra={"drug_name": candidate, "state": context.state.value},
                )
                context = finalize(context, chunks)
                return context, chunks

            logger.info(f"Candidate '{candidate}' not in results, trying fallbacks", extra={"drug_name": candidate})
            if not candidates:
                candidates = fallback_candidates(context)

        chunks = await self.orchestrator.retrieve(question, None, limit)
        context = finalize(context, chunks)
        logger.info(f"No candidate validated, unfiltered retrieval returned {len(chunks)} chunks")
        return context, chunks

    def _retrieval_task(self, retrievals: Dict[str, "asyncio.Task"], question: str, candidate: str, limit: int):
        key = normalize_drug_name(candidate)
        if key not in retrievals:
            retrievals[key] = asyncio.ensure_future(self.orchestrator.retrieve(question, candidate, limit))
        return retrievals[key]

    async def _classify(self, question: str, previous_drug: Optional[str], history: List[dict]) -> Optional[str]:
        if self.classifier is None:
            return None

        recent = history[-self.history_turns:] if self.history_turns > 0 else []
        try:
            return await asyncio.wait_for(
                self.classifier.classify(question, previous_drug, recent),
                timeout=self.classifier_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(f"Classifier exceeded {self.classifier_timeout}s, continuing without it")
        except Exception as e:
            logger.warning(f"Classifier failed, continuing without it: {e}")
        return None

    # ========================================================================
    # COMPARISON MODE
    # ========================================================================

    async def _resolve_comparison(self, question: str, comparison: Tuple[str, str]) -> ResolutionResult:
        """
        Resolve both drugs independently and concurrently.

        Each side keeps only chunks about its own drug, capped at the
        per-drug limit; blocks are concatenated, never ranked against each
        other.
        """
        logger.info(f"Comparison detected: {comparison[0]!r} vs {comparison[1]!r}")

        contexts = await asyncio.gather(*(self._resolve_side(question, drug) for drug in comparison))

        blocks: List[Chunk] = []
        for context in contexts:
            blocks.extend(context.chunks)
        chunks = deduplicate_chunks(blocks)

        if not chunks:
            chunks = await self.orchestrator.retrieve(question, None, self.comparison_limit * 2)
            logger.info(f"Neither compared drug validated, unfiltered retrieval returned {len(chunks)} chunks")

        validated = [context.validated_drug for context in contexts if context.validated_drug]
        return ResolutionResult(
            validated_drug=validated[0] if validated else None,
            chunks=chunks,
            contexts=list(contexts),
            comparison=comparison,
        )

    async def _resolve_side(self, question: str, drug: str) -> ResolvedContext:
        context = ResolvedContext(question=question)
        context = with_heuristic(context, drug)
        context = with_classifier(context, None)

        # Twice the cap; chunks about the other drug are filtered out below
        chunks = await self.orchestrator.retrieve(question, drug, self.comparison_limit * 2)
        context = validate(context, drug, chunks)

        if context.state is ResolutionState.VALIDATED:
            own = [chunk for chunk in chunks if names_match(drug, chunk.drug_name)][:self.comparison_limit]
            return finalize(context, own)

        logger.info(f"Compared drug '{drug}' has no supporting chunks", extra={"drug_name": drug})
        return finalize(context, [])
