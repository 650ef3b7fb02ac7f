"""
LLM drug classifier (collaborator of the context resolver).

Asks an Azure OpenAI chat deployment which drug a question is about. The
contract is narrow: a drug name or None, within a time budget. Transport
errors, timeouts, malformed JSON and ungrounded answers all come back as
None and are only logged.
"""
import asyncio
import logging
from typing import Optional, Sequence

from openai import AzureOpenAI
from pydantic import BaseModel, ValidationError

from formulary.core.config import settings
from formulary.resolver.drug_hints import is_stop_term, normalize_drug_name
from formulary.resolver.prompt_template import (
    CLASSIFIER_SYSTEM_PROMPT,
    format_classifier_prompt,
    format_history,
)

logger = logging.getLogger(__name__)

_NO_OPINION = {"", "none", "null", "unknown", "n/a", "no drug"}


class ClassifierVerdict(BaseModel):
    drug: Optional[str] = None


class DrugClassifier:
    """
    Drug classifier backed by a chat-completion deployment.

    Usage:
        classifier = DrugClassifier()
        drug = await classifier.classify("side effects?", "Paracetamol", history)
    """

    def __init__(
        self,
        client=None,
        deployment: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        history_turns: Optional[int] = None,
    ):
        """
        Args:
            client: AzureOpenAI-compatible client (built from settings when omitted)
            deployment: Chat deployment name
            timeout_seconds: Budget for one classification
            history_turns: How many recent turns are sent along
        """
        self.deployment = deployment or settings.AZURE_OPENAI_CHAT_DEPLOYMENT
        self.timeout_seconds = timeout_seconds if timeout_seconds is not None else settings.CLASSIFIER_TIMEOUT_SECONDS
        self.history_turns = history_turns if history_turns is not None else settings.CLASSIFIER_HISTORY_TURNS

        if client is None:
            client = AzureOpenAI(
                api_key=settings.AZURE_OPENAI_API_KEY,
                api_version=settings.AZURE_OPENAI_API_VERSION,
                azure_endpoint=settings.AZURE_OPENAI_ENDPOINT,
            )
        self.client = client

        logger.info(f"DrugClassifier initialized (deployment={self.deployment}, timeout={self.timeout_seconds}s)")

    async def classify(
        self,
        question: str,
        previous_drug: Optional[str] = None,
        recent_history: Sequence[dict] = (),
    ) -> Optional[str]:
        """
        Classify the drug a question refers to.

        Returns:
            Drug name, or None for "no opinion" (including every failure)
        """
        history = list(recent_history)[-self.history_turns:] if self.history_turns > 0 else []
        loop = asyncio.get_running_loop()

        try:
            raw = await asyncio.wait_for(
                loop.run_in_executor(None, self._complete, question, previous_drug, history),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.warning(f"Drug classifier timed out after {self.timeout_seconds}s")
            return None
        except Exception as e:
            logger.warning(f"Drug classifier call failed: {e}")
            return None

        drug = self.parse_verdict(raw)
        if drug is None:
            return None

        if not self._is_grounded(drug, question, previous_drug, history):
            logger.warning(f"Classifier returned ungrounded drug '{drug}', ignoring")
            return None

        logger.info(f"Classifier drug: '{drug}'", extra={"drug_name": drug})
        return drug

    def _complete(self, question: str, previous_drug: Optional[str], history: Sequence[dict]) -> str:
        response = self.client.chat.completions.create(
            model=self.deployment,
            messages=[
                {"role": "system", "content": CLASSIFIER_SYSTEM_PROMPT},
                {"role": "user", "content": format_classifier_prompt(question, previous_drug, history)},
            ],
            response_format={"type": "json_object"},
            max_tokens=30,
            temperature=0,
        )
        return response.choices[0].message.content or ""

    @staticmethod
    def parse_verdict(raw: Optional[str]) -> Optional[str]:
        """
        Parse the classifier's JSON reply.

        Examples:
            '{"drug": "Paracetamol"}' -> "Paracetamol"
            '{"drug": null}'          -> None
            'Paracetamol'             -> None (malformed)
        """
        try:
            verdict = ClassifierVerdict.model_validate_json(raw or "")
        except ValidationError as e:
            logger.warning(f"Malformed classifier output: {e.errors()[:1]}")
            return None

        drug = (verdict.drug or "").strip()
        if drug.lower() in _NO_OPINION or is_stop_term(drug):
            return None
        return drug

    @staticmethod
    def _is_grounded(drug: str, question: str, previous_drug: Optional[str], history: Sequence[dict]) -> bool:
        """The drug must appear in the question, the history or the previous drug."""
        target = normalize_drug_name(drug)
        if not target:
            return False
        haystack = normalize_drug_name(" ".join([question, previous_drug or "", format_history(history)]))
        return target in haystack
