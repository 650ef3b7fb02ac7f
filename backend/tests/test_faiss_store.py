"""
Unit Tests for FAISS Vector Store

Uses a keyword embedder so nearest neighbours are predictable.
"""

import json

import numpy as np
import pytest
from conftest import drug_chunks, make_chunk
from formulary.vectorstore.faiss_store import FAISSVectorStore


VOCABULARY = ["paracetamol", "ibuprofen", "amoxicillin", "dosage"]


class KeywordEmbedder:
    """One axis per vocabulary word, L2-normalized."""

    def __init__(self, dimension=len(VOCABULARY)):
        self.dimension = dimension

    def _vector(self, text):
        lowered = text.lower()
        vector = np.array([lowered.count(word) for word in VOCABULARY], dtype="float32")
        vector = np.pad(vector, (0, self.dimension - len(VOCABULARY)))
        norm = np.linalg.norm(vector)
        return vector / norm if norm else vector

    def embed_texts(self, texts):
        return np.vstack([self._vector(t) for t in texts]) if texts else np.zeros((0, self.dimension), dtype="float32")

    def embed_single(self, text):
        return self._vector(text)


class TestFAISSVectorStore:
    """Test indexing and search"""

    def setup_method(self):
        self.store = FAISSVectorStore(KeywordEmbedder(), dimension=len(VOCABULARY))
        self.chunks = [
            make_chunk("PARACETAMOL", "indications", start=12, content="PARACETAMOL - Indications\npain and fever"),
            make_chunk("IBUPROFEN", "indications", start=20, content="IBUPROFEN - Indications\ninflammation"),
            make_chunk("AMOXICILLIN", "indications", start=31, content="AMOXICILLIN - Indications\ninfections"),
        ]

    def test_empty_store(self):
        """Test: searching an empty index returns nothing"""
        assert self.store.count() == 0
        assert self.store.similarity_search("paracetamol", k=3) == []

    def test_replace_and_search(self):
        """Test: nearest chunk first"""
        self.store.replace(self.chunks)

        results = self.store.similarity_search("ibuprofen for pain", k=2)

        assert self.store.count() == 3
        assert results[0].drug_name == "IBUPROFEN"
        assert len(results) == 2

    def test_k_larger_than_corpus(self):
        """Test: k is capped at the corpus size"""
        self.store.replace(self.chunks)
        assert len(self.store.similarity_search("amoxicillin", k=50)) == 3

    def test_replace_discards_previous_corpus(self):
        """Test: re-ingest is a full replacement"""
        self.store.replace(self.chunks)
        self.store.replace(drug_chunks("IBUPROFEN", 2, start=40))

        assert self.store.count() == 2
        assert {c.drug_name for c in self.store.similarity_search("paracetamol", k=5)} == {"IBUPROFEN"}

    def test_replace_with_nothing(self):
        """Test: empty replace clears the store"""
        self.store.replace(self.chunks)
        self.store.replace([])
        assert self.store.count() == 0

    def test_add_vectors_dimension_mismatch(self):
        """Test: wrong vector width raises ValueError"""
        with pytest.raises(ValueError):
            self.store.add_vectors(np.zeros((1, 7), dtype="float32"), self.chunks[:1])

    def test_add_vectors_count_mismatch(self):
        """Test: vectors and chunks must pair up"""
        with pytest.raises(ValueError):
            self.store.add_vectors(np.zeros((2, len(VOCABULARY)), dtype="float32"), self.chunks[:1])


class TestPersistence:
    """Test save/load"""

    def setup_method(self):
        self.embedder = KeywordEmbedder()
        self.store = FAISSVectorStore(self.embedder, dimension=len(VOCABULARY))
        self.store.replace(drug_chunks("PARACETAMOL", 2, start=12) + drug_chunks("AMOXICILLIN", 2, start=31))

    def test_save_and_load(self, tmp_path):
        """Test: a reloaded store returns the same chunks"""
        self.store.save(tmp_path, {"fileName": "formulary.txt"})

        restored = FAISSVectorStore(self.embedder, dimension=len(VOCABULARY))
        assert restored.load(tmp_path) is True
        assert restored.count() == 4
        assert restored.chunks == self.store.chunks

        meta = json.loads((tmp_path / "chunks.json").read_text(encoding="utf-8"))["meta"]
        assert meta == {"fileName": "formulary.txt", "dimension": len(VOCABULARY), "count": 4}

    def test_load_missing(self, tmp_path):
        """Test: nothing saved → False"""
        store = FAISSVectorStore(self.embedder, dimension=len(VOCABULARY))
        assert store.load(tmp_path / "nowhere") is False

    def test_load_dimension_mismatch(self, tmp_path):
        """Test: saved index of another width is rejected"""
        self.store.save(tmp_path)
        other = FAISSVectorStore(KeywordEmbedder(dimension=8), dimension=8)
        with pytest.raises(ValueError):
            other.load(tmp_path)
