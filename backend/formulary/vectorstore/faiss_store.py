"""
FAISS vector store (similarity-search collaborator).

Design principles:
- Dimension validation (1536 for text-embedding-3-small)
- Chunks kept in a list parallel to the index positions
- Flat L2 index: formulary corpora are small, exact search is fine
- Whole-corpus replace on ingest, no incremental updates
"""
import json
import logging
import shutil
import tempfile
from pathlib import Path
from typing import List, Optional, Sequence, Union

import faiss
import numpy as np

from formulary.models import Chunk

logger = logging.getLogger(__name__)


class FAISSVectorStore:
    """FAISS index wrapper exposing similarity_search(query, k) -> List[Chunk]."""

    def __init__(self, embedder, dimension: int = 1536):
        """
        Args:
            embedder: Object with embed_texts(texts) and embed_single(text)
            dimension: Embedding dimension
        """
        self.embedder = embedder
        self.dimension = dimension
        self.index = faiss.IndexFlatL2(dimension)
        self.chunks: List[Chunk] = []

    def replace(self, chunks: Sequence[Chunk]):
        """
        Replace the whole corpus.

        Raises:
            ValueError: If embedding shape doesn't match chunk count or dimension
        """
        chunks = list(chunks)
        embeddings = self.embedder.embed_texts([chunk.content for chunk in chunks]) if chunks else None

        self.reset()
        if chunks:
            self.add_vectors(embeddings, chunks)

        logger.info(f"Vector store now holds {self.count()} chunks")

    def add_vectors(self, embeddings: np.ndarray, chunks: Sequence[Chunk]):
        """
        Add vectors to index.

        Raises:
            ValueError: If dimension mismatch or chunk count mismatch
        """
        if embeddings.ndim != 2 or embeddings.shape[1] != self.dimension:
            raise ValueError(f"Embedding dimension {embeddings.shape} != expected (N, {self.dimension})")

        if len(chunks) != embeddings.shape[0]:
            raise ValueError(f"Chunk count {len(chunks)} != embedding count {embeddings.shape[0]}")

        self.index.add(embeddings.astype("float32"))
        self.chunks.extend(chunks)

    def similarity_search(self, query: str, k: int = 6) -> List[Chunk]:
        """
        Best-first chunks for a query.

        Returns:
            Up to k chunks (fewer when the corpus is smaller)
        """
        if self.count() == 0 or k <= 0:
            return []

        query_embedding = np.asarray(self.embedder.embed_single(query), dtype="float32")
        if query_embedding.ndim == 1:
            query_embedding = query_embedding.reshape(1, -1)

        if query_embedding.shape[1] != self.dimension:
            raise ValueError(f"Query dimension {query_embedding.shape[1]} != expected {self.dimension}")

        _, indices = self.index.search(query_embedding, min(k, self.count()))
        return [self.chunks[i] for i in indices[0] if 0 <= i < len(self.chunks)]

    def count(self) -> int:
        """Return number of vectors in index."""
        return self.index.ntotal

    def drug_names(self) -> List[str]:
        """Distinct drug names in corpus order."""
        return list(dict.fromkeys(chunk.drug_name for chunk in self.chunks if chunk.drug_name))

    def reset(self):
        """Clear index and chunks."""
        self.index.reset()
        self.chunks = []

    # ========================================================================
    # PERSISTENCE
    # ========================================================================

    def save(self, index_dir: Union[str, Path], metadata: Optional[dict] = None):
        """Save index and chunks with atomic moves."""
        index_dir = Path(index_dir)
        index_dir.mkdir(parents=True, exist_ok=True)

        meta = dict(metadata or {})
        meta.update({"dimension": self.dimension, "count": self.count()})

        with tempfile.NamedTemporaryFile(delete=False, suffix=".faiss", dir=index_dir) as tmp_index:
            temp_index_path = tmp_index.name
        faiss.write_index(self.index, temp_index_path)

        with tempfile.NamedTemporaryFile(delete=False, suffix=".json", mode="w", encoding="utf-8", dir=index_dir) as tmp_chunks:
            temp_chunks_path = tmp_chunks.name
            json.dump({"meta": meta, "chunks": [chunk.to_dict() for chunk in self.chunks]}, tmp_chunks)

        shutil.move(temp_index_path, index_dir / "index.faiss")
        shutil.move(temp_chunks_path, index_dir / "chunks.json")
        logger.info(f"Saved {self.count()} vectors to {index_dir}")

    def load(self, index_dir: Union[str, Path]) -> bool:
        """
        Load a saved index.

        Returns:
            False when nothing is saved there

        Raises:
            ValueError: If the saved dimension or chunk count is inconsistent
        """
        index_dir = Path(index_dir)
        index_path = index_dir / "index.faiss"
        chunks_path = index_dir / "chunks.json"

        if not index_path.exists() or not chunks_path.exists():
            return False

        index = faiss.read_index(str(index_path))
        with open(chunks_path, "r", encoding="utf-8") as f:
            data = json.load(f)

        chunks = [Chunk.from_document(document) for document in data.get("chunks", [])]

        if index.d != self.dimension:
            raise ValueError(f"Saved index dimension {index.d} != expected {self.dimension}")
        if index.ntotal != len(chunks):
            raise ValueError(f"Saved index has {index.ntotal} vectors but {len(chunks)} chunks")

        self.index = index
        self.chunks = chunks
        logger.info(f"Loaded {self.count()} vectors from {index_dir}")
        return True
