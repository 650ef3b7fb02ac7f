"""
Unit Tests for the Question-Answering Service

Tests request validation, the resolve path, answer recording and cache hits.
"""

import asyncio

import pytest
from pydantic import ValidationError
from conftest import FakeSimilaritySearch, drug_chunks
from formulary.cache import ResponseCache
from formulary.resolver.drug_context_resolver import DrugContextResolver
from formulary.retrieval.orchestrator import RetrievalOrchestrator
from formulary.services.qa_service import FormularyQAService, QuestionRequest


class TestQuestionRequest:
    """Test request validation"""

    @pytest.mark.parametrize("question", ["", "   ", "\n\t"])
    def test_blank_question_rejected(self, question):
        """Test: empty or whitespace question is a validation error"""
        with pytest.raises(ValidationError):
            QuestionRequest(question=question)

    @pytest.mark.parametrize("limit", [0, -1, 1000])
    def test_limit_bounds(self, limit):
        """Test: limit outside [1, max] is rejected"""
        with pytest.raises(ValidationError):
            QuestionRequest(question="dose?", limit=limit)

    def test_bad_history_role_rejected(self):
        """Test: history turns need a known role"""
        with pytest.raises(ValidationError):
            QuestionRequest(question="dose?", chat_history=[{"role": "robot", "content": "hi"}])

    def test_normalization(self):
        """Test: question trimmed, blank previous drug becomes None"""
        request = QuestionRequest(question="  dose?  ", previous_drug="  ")
        assert request.question == "dose?"
        assert request.previous_drug is None
        assert request.limit == 6

    def test_history_dicts(self):
        """Test: turns become plain dicts for the resolver"""
        request = QuestionRequest(question="dose?", chat_history=[{"role": "user", "content": "Tell me about paracetamol"}])
        assert request.history_dicts() == [{"role": "user", "content": "Tell me about paracetamol"}]


class TestFormularyQAService:
    """Test answer and record flow"""

    def setup_method(self):
        self.store = FakeSimilaritySearch(
            drug_chunks("PARACETAMOL", 4, start=12) + drug_chunks("IBUPROFEN", 4, start=20)
        )
        resolver = DrugContextResolver(RetrievalOrchestrator(self.store))
        self.cache = ResponseCache(ttl_seconds=300)
        self.service = FormularyQAService(resolver, self.cache)

    def test_answer_resolves_and_retrieves(self):
        """Test: miss → resolver result with related drugs"""
        request = QuestionRequest(question="side effects?", previous_drug="Paracetamol")
        result = asyncio.run(self.service.answer(request))

        assert result.cache_hit is False
        assert result.validated_drug == "Paracetamol"
        assert result.related_drugs == ["PARACETAMOL", "IBUPROFEN"]
        assert result.context.startswith("[Source 1] PARACETAMOL")

    def test_recorded_answer_served_from_cache(self):
        """Test: second identical request is a hit with rebuilt chunks"""
        request = QuestionRequest(question="side effects?", previous_drug="Paracetamol")
        first = asyncio.run(self.service.answer(request))
        self.service.record_answer(request, first, {"answer": "Rash and hepatotoxicity."})
        query_count = len(self.store.queries)

        second = asyncio.run(self.service.answer(request))

        assert second.cache_hit is True
        assert second.payload["answer"] == "Rash and hepatotoxicity."
        assert second.validated_drug == "Paracetamol"
        assert [c.id for c in second.chunks] == [c.id for c in first.chunks]
        assert len(self.store.queries) == query_count

    def test_follow_up_answer_serves_explicit_drug(self):
        """Test: answer cached under the resolved drug key too"""
        history = [{"role": "user", "content": "Tell me about ibuprofen"}]
        follow_up = QuestionRequest(question="side effects?", chat_history=history)
        result = asyncio.run(self.service.answer(follow_up))
        keys = self.service.record_answer(follow_up, result, {"answer": "GI upset."})

        explicit = QuestionRequest(question="side effects?", previous_drug="IBUPROFEN")
        hit = asyncio.run(self.service.answer(explicit))

        assert len(keys) == 1
        assert hit.cache_hit is True
        assert hit.payload["answer"] == "GI upset."

    def test_history_drug_is_part_of_the_key(self):
        """Test: the same follow-up in two conversations about different drugs does not share an answer"""
        ibuprofen_chat = QuestionRequest(
            question="side effects?", chat_history=[{"role": "user", "content": "Tell me about ibuprofen"}]
        )
        result = asyncio.run(self.service.answer(ibuprofen_chat))
        self.service.record_answer(ibuprofen_chat, result, {"answer": "GI upset."})

        paracetamol_chat = QuestionRequest(
            question="side effects?", chat_history=[{"role": "user", "content": "Tell me about paracetamol"}]
        )
        second = asyncio.run(self.service.answer(paracetamol_chat))

        assert second.cache_hit is False
        assert second.validated_drug == "paracetamol"
        assert second.chunks[0].drug_name == "PARACETAMOL"

    def test_context_drug(self):
        """Test: explicit previous drug first, then the last user turn"""
        history = [{"role": "user", "content": "Tell me about ibuprofen"}]
        assert QuestionRequest(question="dose?", chat_history=history).context_drug() == "ibuprofen"
        assert QuestionRequest(question="dose?", chat_history=history, previous_drug="Paracetamol").context_drug() == "Paracetamol"
        assert QuestionRequest(question="dose?").context_drug() is None

    def test_limit_mismatch_is_a_miss(self):
        """Test: an answer cached for one chunk limit is not served for another"""
        request = QuestionRequest(question="side effects?", previous_drug="Paracetamol", limit=2)
        result = asyncio.run(self.service.answer(request))
        self.service.record_answer(request, result, {"answer": "Rash."})

        wider = asyncio.run(self.service.answer(QuestionRequest(question="side effects?", previous_drug="Paracetamol", limit=8)))
        same = asyncio.run(self.service.answer(request))

        assert wider.cache_hit is False
        assert len(wider.chunks) == 8
        assert same.cache_hit is True
        assert len(same.chunks) == 2

    def test_comparison_recorded(self):
        """Test: comparison pair survives the cache round trip"""
        request = QuestionRequest(question="Paracetamol vs Ibuprofen")
        result = asyncio.run(self.service.answer(request))
        self.service.record_answer(request, result, {"answer": "Both relieve pain."})

        hit = asyncio.run(self.service.answer(request))

        assert hit.comparison == ("Paracetamol", "Ibuprofen")
        assert hit.to_dict()["comparison"] == ["Paracetamol", "Ibuprofen"]

    def test_to_dict_shape(self):
        """Test: camelCase response with context"""
        request = QuestionRequest(question="side effects?", previous_drug="Paracetamol", limit=2)
        data = asyncio.run(self.service.answer(request)).to_dict()

        assert set(data) == {"validatedDrug", "chunks", "cacheHit", "payload", "comparison", "relatedDrugs", "context"}
        assert len(data["chunks"]) == 2
        assert data["chunks"][0]["metadata"]["drugName"] == "PARACETAMOL"
