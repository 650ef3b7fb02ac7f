"""
Unit Tests for the LLM Drug Classifier

Uses a fake chat-completions client; no network access.
"""

import asyncio
import time
from types import SimpleNamespace

import pytest
from formulary.resolver.drug_classifier import DrugClassifier
from formulary.resolver.prompt_template import format_classifier_prompt, format_history


class FakeCompletions:
    def __init__(self, content=None, error=None, delay=0.0):
        self.content = content
        self.error = error
        self.delay = delay
        self.calls = []

    def create(self, **kwargs):
        self.calls.append(kwargs)
        if self.delay:
            time.sleep(self.delay)
        if self.error is not None:
            raise self.error
        message = SimpleNamespace(content=self.content)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def make_classifier(content=None, error=None, delay=0.0, timeout_seconds=2.0, history_turns=6):
    completions = FakeCompletions(content, error, delay)
    client = SimpleNamespace(chat=SimpleNamespace(completions=completions))
    classifier = DrugClassifier(
        client=client,
        deployment="gpt-4o-mini",
        timeout_seconds=timeout_seconds,
        history_turns=history_turns,
    )
    return classifier, completions


class TestClassify:
    """Test classification outcomes"""

    def test_grounded_drug_returned(self):
        """Test: a drug named in the question is accepted"""
        classifier, completions = make_classifier('{"drug": "Ibuprofen"}')
        drug = asyncio.run(classifier.classify("is ibuprofen safe for kids?"))

        assert drug == "Ibuprofen"
        call = completions.calls[0]
        assert call["model"] == "gpt-4o-mini"
        assert call["response_format"] == {"type": "json_object"}
        assert call["temperature"] == 0

    def test_previous_drug_grounds_follow_up(self):
        """Test: follow-up answer grounded by the previous drug"""
        classifier, _ = make_classifier('{"drug": "Paracetamol"}')
        assert asyncio.run(classifier.classify("side effects?", "Paracetamol")) == "Paracetamol"

    def test_history_grounds_answer(self):
        """Test: a drug from recent history is accepted"""
        classifier, _ = make_classifier('{"drug": "amoxicillin"}')
        history = [{"role": "user", "content": "Tell me about Amoxicillin"}]
        assert asyncio.run(classifier.classify("and the dose?", None, history)) == "amoxicillin"

    def test_ungrounded_drug_rejected(self):
        """Test: invented drugs are discarded"""
        classifier, _ = make_classifier('{"drug": "Warfarin"}')
        assert asyncio.run(classifier.classify("side effects?", "Paracetamol")) is None

    @pytest.mark.parametrize("content", [
        '{"drug": null}',
        '{"drug": "none"}',
        '{"drug": "dosage"}',
        '{}',
        "Paracetamol",
        "",
        None,
    ])
    def test_no_opinion(self, content):
        """Test: null, topic words and malformed replies → None"""
        classifier, _ = make_classifier(content)
        assert asyncio.run(classifier.classify("paracetamol dosage?", "Paracetamol")) is None

    def test_transport_error(self):
        """Test: client exceptions become None"""
        classifier, _ = make_classifier(error=ConnectionError("deployment unreachable"))
        assert asyncio.run(classifier.classify("side effects?", "Paracetamol")) is None

    def test_timeout(self):
        """Test: a slow deployment becomes None"""
        classifier, _ = make_classifier('{"drug": "Paracetamol"}', delay=0.5, timeout_seconds=0.05)
        assert asyncio.run(classifier.classify("side effects?", "Paracetamol")) is None

    def test_history_truncated(self):
        """Test: only the last N turns reach the prompt"""
        classifier, completions = make_classifier('{"drug": null}', history_turns=1)
        history = [
            {"role": "user", "content": "Tell me about cetirizine"},
            {"role": "user", "content": "Tell me about loratadine"},
        ]
        asyncio.run(classifier.classify("dose?", None, history))

        prompt = completions.calls[0]["messages"][1]["content"]
        assert "loratadine" in prompt
        assert "cetirizine" not in prompt


class TestParseVerdict:
    """Test JSON reply parsing"""

    @pytest.mark.parametrize("raw,expected", [
        ('{"drug": "Paracetamol"}', "Paracetamol"),
        ('{"drug": "  Ibuprofen "}', "Ibuprofen"),
        ('{"drug": null}', None),
        ('{"drug": "unknown"}', None),
        ('{"drug": "side effects"}', None),
        ("not json", None),
    ])
    def test_parse_verdict(self, raw, expected):
        """Test verdict parsing and no-opinion filtering"""
        assert DrugClassifier.parse_verdict(raw) == expected


class TestPrompt:
    """Test prompt formatting"""

    def test_format_history(self):
        """Test: role-prefixed lines, blank turns skipped"""
        turns = [
            {"role": "user", "content": "Tell me   about paracetamol"},
            {"role": "assistant", "content": ""},
        ]
        assert format_history(turns) == "user: Tell me about paracetamol"
        assert format_history([]) == "(none)"

    def test_format_classifier_prompt(self):
        """Test: previous drug, history and question are all present"""
        prompt = format_classifier_prompt(" side effects? ", None, [])
        assert "Previous drug: (none)" in prompt
        assert "Question: side effects?" in prompt
