"""
Azure OpenAI embedder with TPM throttling.

Embeds chunk content for the FAISS store and questions at query time.
"""
import logging
import time
from typing import List, Optional, Sequence

import numpy as np
from openai import AzureOpenAI

from formulary.core.config import settings

logger = logging.getLogger(__name__)


class AzureEmbedder:
    """
    Azure OpenAI embedder with token-per-minute (TPM) throttling.

    Tracks token usage in a sliding 60-second window and sleeps if the next
    batch would exceed the limit.
    """

    def __init__(
        self,
        client=None,
        tpm_limit: int = 400_000,
        deployment: Optional[str] = None,
        dimension: Optional[int] = None,
        sleep=time.sleep,
    ):
        """
        Args:
            client: AzureOpenAI-compatible client (built from settings when omitted)
            tpm_limit: Tokens per minute limit
            deployment: Embedding deployment name
            dimension: Expected embedding dimension
            sleep: Sleep function (injectable for tests)
        """
        self.tpm_limit = tpm_limit
        self.deployment_name = deployment or settings.AZURE_OPENAI_EMBEDDING_DEPLOYMENT
        self.dimension = dimension or settings.EMBEDDING_DIMENSION
        self._sleep = sleep

        # [(timestamp, token_count), ...]
        self.tokens_used_window = []

        if client is None:
            client = AzureOpenAI(
                api_key=settings.AZURE_OPENAI_API_KEY,
                api_version=settings.AZURE_OPENAI_API_VERSION,
                azure_endpoint=settings.AZURE_OPENAI_ENDPOINT,
            )
        self.client = client

    @staticmethod
    def estimate_tokens(text: str) -> int:
        """Rough estimate: 1 token ≈ 4 characters."""
        return max(1, len(text) // 4)

    def _get_current_tpm(self) -> int:
        """Tokens used in the last 60 seconds."""
        now = time.time()
        self.tokens_used_window = [
            (ts, tokens) for ts, tokens in self.tokens_used_window
            if now - ts < 60
        ]
        return sum(tokens for _, tokens in self.tokens_used_window)

    def _wait_if_needed(self, token_count: int):
        current_tpm = self._get_current_tpm()

        if current_tpm + token_count > self.tpm_limit and self.tokens_used_window:
            oldest_ts = self.tokens_used_window[0][0]
            sleep_time = 60 - (time.time() - oldest_ts)

            if sleep_time > 0:
                logger.info(f"TPM limit approaching ({current_tpm}/{self.tpm_limit}), sleeping {sleep_time:.1f}s")
                self._sleep(sleep_time)
                self.tokens_used_window = []

    def embed_batch(self, texts: Sequence[str], max_retries: int = 3) -> np.ndarray:
        """
        Embed a batch of texts with retry logic.

        Returns:
            (N, dimension) float32 array

        Raises:
            ValueError: On a dimension mismatch from the deployment
            RuntimeError: If all retries fail
        """
        if not texts:
            return np.zeros((0, self.dimension), dtype="float32")

        total_tokens = sum(self.estimate_tokens(t) for t in texts)
        self._wait_if_needed(total_tokens)

        for attempt in range(max_retries):
            try:
                response = self.client.embeddings.create(input=list(texts), model=self.deployment_name)
                embeddings = np.array([e.embedding for e in response.data], dtype="float32")
            except Exception as e:
                if attempt == max_retries - 1:
                    raise RuntimeError(f"Embedding failed after {max_retries} attempts: {e}") from e

                wait_time = 2 ** attempt
                logger.warning(f"Embedding attempt {attempt + 1} failed: {e}, retrying in {wait_time}s")
                self._sleep(wait_time)
                continue

            if embeddings.ndim != 2 or embeddings.shape[1] != self.dimension:
                raise ValueError(f"Embedding dimension {embeddings.shape} != expected (N, {self.dimension})")

            self.tokens_used_window.append((time.time(), total_tokens))
            return embeddings

        raise RuntimeError("Embedding failed unexpectedly")

    def embed_texts(self, texts: Sequence[str], batch_size: int = 50) -> np.ndarray:
        """Embed any number of texts in batches."""
        batches: List[np.ndarray] = []
        for start in range(0, len(texts), batch_size):
            batch = texts[start:start + batch_size]
            batches.append(self.embed_batch(batch))
            logger.debug(f"Embedded {min(start + batch_size, len(texts))}/{len(texts)} texts")

        if not batches:
            return np.zeros((0, self.dimension), dtype="float32")
        return np.vstack(batches)

    def embed_single(self, text: str) -> np.ndarray:
        """Embed one text; returns a (dimension,) array."""
        return self.embed_batch([text])[0]
