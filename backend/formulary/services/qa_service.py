"""
Question-answering boundary.

Validates the request, consults the response cache, runs the drug context
resolver and hands ranked chunks to the (external) answer composer. Composed
answers come back through record_answer() and are cached under both the
request drug and the resolved drug.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Optional, Tuple

from pydantic import BaseModel, Field, field_validator

from formulary.cache.response_cache import ResponseCache
from formulary.core.config import settings
from formulary.models import Chunk
from formulary.resolver.drug_context_resolver import DrugContextResolver, drug_from_history
from formulary.retrieval.orchestrator import build_context, related_drugs

logger = logging.getLogger(__name__)


class ChatTurn(BaseModel):
    role: Literal["user", "assistant", "system"]
    content: str = ""


class QuestionRequest(BaseModel):
    question: str
    chat_history: List[ChatTurn] = Field(default_factory=list)
    previous_drug: Optional[str] = None
    limit: int = Field(default=settings.RETRIEVAL_LIMIT, ge=1, le=settings.RETRIEVAL_MAX_LIMIT)

    @field_validator("question")
    @classmethod
    def question_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("question must not be empty")
        return value

    @field_validator("previous_drug")
    @classmethod
    def blank_drug_is_none(cls, value: Optional[str]) -> Optional[str]:
        if value is None or not value.strip():
            return None
        return value.strip()

    def history_dicts(self) -> List[Dict[str, str]]:
        return [turn.model_dump() for turn in self.chat_history]

    def context_drug(self) -> Optional[str]:
        """Previous drug as the resolver will see it: explicit, else recovered from history."""
        return self.previous_drug or drug_from_history(self.history_dicts())


@dataclass
class QuestionResult:
    """Hand-off to answer composition."""
    validated_drug: Optional[str]
    chunks: List[Chunk]
    cache_hit: bool = False
    payload: Optional[Dict[str, Any]] = None
    comparison: Optional[Tuple[str, str]] = None
    related_drugs: List[str] = field(default_factory=list)

    @property
    def context(self) -> str:
        return build_context(self.chunks)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "validatedDrug": self.validated_drug,
            "chunks": [chunk.to_dict() for chunk in self.chunks],
            "cacheHit": self.cache_hit,
            "payload": self.payload,
            "comparison": list(self.comparison) if self.comparison else None,
            "relatedDrugs": self.related_drugs,
            "context": self.context,
        }


class FormularyQAService:
    """
    Usage:
        service = FormularyQAService(resolver, ResponseCache(ttl_seconds=300))
        result = await service.answer(QuestionRequest(question="side effects?", previous_drug="Paracetamol"))
        ...compose answer from result.context...
        service.record_answer(request, result, {"answer": text})
    """

    def __init__(self, resolver: DrugContextResolver, cache: Optional[ResponseCache] = None):
        self.resolver = resolver
        self.cache = cache if cache is not None else ResponseCache(ttl_seconds=settings.RESPONSE_CACHE_TTL_SECONDS)

    async def answer(self, request: QuestionRequest) -> QuestionResult:
        """
        Resolve drug context and retrieve chunks for one question.

        A cached payload for (question, context drug) short-circuits
        resolution when it was retrieved with the same limit.
        """
        previous_drug = request.context_drug()
        cached = self.cache.get(request.question, previous_drug)
        if cached is not None and cached.get("limit", request.limit) != request.limit:
            logger.debug(f"Cached answer built for limit={cached.get('limit')}, ignoring")
            cached = None
        if cached is not None:
            logger.info("Answer served from cache", extra={"drug_name": cached.get("validatedDrug")})
            return self._from_payload(cached)

        resolution = await self.resolver.resolve(
            request.question,
            chat_history=request.history_dicts(),
            previous_drug=previous_drug,
            limit=request.limit,
        )

        return QuestionResult(
            validated_drug=resolution.validated_drug,
            chunks=resolution.chunks,
            cache_hit=False,
            comparison=resolution.comparison,
            related_drugs=related_drugs(resolution.chunks),
        )

    def record_answer(self, request: QuestionRequest, result: QuestionResult, payload: Dict[str, Any]) -> List[str]:
        """
        Cache a composed answer under the request key and the resolved-drug key.

        Returns:
            Cache keys written
        """
        stored = dict(payload)
        stored.setdefault("validatedDrug", result.validated_drug)
        stored.setdefault("relatedDrugs", result.related_drugs)
        stored.setdefault("chunks", [chunk.to_dict() for chunk in result.chunks])
        stored.setdefault("limit", request.limit)
        if result.comparison:
            stored.setdefault("comparison", list(result.comparison))

        return self.cache.store(request.question, request.context_drug(), result.validated_drug, stored)

    @staticmethod
    def _from_payload(payload: Dict[str, Any]) -> QuestionResult:
        chunks = [Chunk.from_document(document) for document in payload.get("chunks") or []]
        comparison = payload.get("comparison")
        return QuestionResult(
            validated_drug=payload.get("validatedDrug"),
            chunks=chunks,
            cache_hit=True,
            payload=payload,
            comparison=tuple(comparison) if comparison else None,
            related_drugs=list(payload.get("relatedDrugs") or []),
        )
