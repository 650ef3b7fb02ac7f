"""
Retrieval orchestrator.

Expands one question into up to three similarity queries, runs them
concurrently against the store, merges and deduplicates the results, and
floats chunks about the hinted drug to the top. Inside each drug group the
sections the question asks about come first.
"""
import asyncio
import inspect
import logging
from typing import Any, List, Optional, Sequence

from formulary.models import Chunk, SectionKey
from formulary.resolver.drug_hints import detect_intent, normalize_drug_name
from formulary.utils.deduplication import deduplicate_chunks

logger = logging.getLogger(__name__)


def build_queries(question: str, hint: Optional[str] = None) -> List[str]:
    """
    Query expansion.

    Examples:
        ("side effects?", "Paracetamol") ->
            ["Paracetamol side effects?", "Paracetamol", "side effects?"]
        ("paracetamol dose", "Paracetamol") ->
            ["Paracetamol paracetamol dose", "paracetamol dose"]
        ("side effects?", None) -> ["side effects?"]
    """
    question = (question or "").strip()
    hint = (hint or "").strip()
    queries: List[str] = []

    if hint:
        queries.append(f"{hint} {question}".strip())
        if hint.lower() not in question.lower():
            queries.append(hint)

    if question:
        queries.append(question)

    unique: List[str] = []
    for query in queries:
        if query and query not in unique:
            unique.append(query)
    return unique


def rank_by_drug(chunks: Sequence[Chunk], hint: Optional[str]) -> List[Chunk]:
    """
    Stable partition: chunks whose drug equals the hint come first.

    Order inside each group is untouched (it reflects similarity rank).
    """
    target = normalize_drug_name(hint)
    if not target:
        return list(chunks)

    matching = [c for c in chunks if normalize_drug_name(c.drug_name) == target]
    others = [c for c in chunks if normalize_drug_name(c.drug_name) != target]
    return matching + others


def prioritize_sections(
    chunks: Sequence[Chunk],
    sections: Sequence[SectionKey],
    hint: Optional[str] = None,
) -> List[Chunk]:
    """
    Float the requested sections to the top of each drug group.

    Keeps one chunk per (drug, requested section), the best ranked. The
    hinted drug stays ahead of every other drug, and chunks of other
    sections are kept behind the requested ones.
    """
    if not sections:
        return list(chunks)

    wanted = set(sections)
    target = normalize_drug_name(hint)
    seen = set()
    kept: List[Chunk] = []
    for chunk in chunks:
        if chunk.section in wanted:
            key = (normalize_drug_name(chunk.drug_name), chunk.section)
            if key in seen:
                continue
            seen.add(key)
        kept.append(chunk)

    def rank(position: int) -> tuple:
        chunk = kept[position]
        other_drug = not (target and normalize_drug_name(chunk.drug_name) == target)
        return (other_drug, chunk.section not in wanted, position)

    return [kept[i] for i in sorted(range(len(kept)), key=rank)]


def collect_drug_names(chunks: Sequence[Chunk]) -> List[str]:
    """Distinct normalized drug names in result order."""
    names: List[str] = []
    for chunk in chunks:
        name = normalize_drug_name(chunk.drug_name)
        if name and name not in names:
            names.append(name)
    return names


def related_drugs(chunks: Sequence[Chunk]) -> List[str]:
    """Distinct drug names (as stored) in result order."""
    seen = set()
    names: List[str] = []
    for chunk in chunks:
        key = normalize_drug_name(chunk.drug_name)
        if key and key not in seen:
            seen.add(key)
            names.append(chunk.drug_name)
    return names


def build_context(chunks: Sequence[Chunk]) -> str:
    """
    Render chunks as a source-tagged context block for answer composition.

    Format:
        [Source 1] PARACETAMOL | Adverse Reactions | Rx | Pregnancy Category B
        <content>
    """
    blocks: List[str] = []

    for index, chunk in enumerate(chunks, start=1):
        metadata = chunk.metadata
        header = [f"[Source {index}] {metadata.drug_name or 'Unknown drug'}"]
        header.append(metadata.section.label if metadata.section else "Overview")
        header.append(metadata.classification.value)
        if metadata.pregnancy_category:
            header.append(f"Pregnancy Category {metadata.pregnancy_category}")
        if metadata.atc_code:
            header.append(f"ATC {metadata.atc_code}")
        blocks.append(" | ".join(header) + "\n" + chunk.content.strip())

    return "\n\n".join(blocks)


class RetrievalOrchestrator:
    """
    Multi-query retrieval over a similarity-search collaborator.

    The store must expose `similarity_search(query, k)` returning Chunk
    objects or documents shaped {content, metadata, id?}. Blocking stores
    run in the default executor.
    """

    def __init__(self, store, fetch_multiplier: int = 2):
        self.store = store
        self.fetch_multiplier = max(1, fetch_multiplier)

    def known_drugs(self) -> List[str]:
        """Drug names in the corpus, or [] when the store cannot list them."""
        lister = getattr(self.store, "drug_names", None)
        return list(lister()) if callable(lister) else []

    async def retrieve(self, question: str, hint: Optional[str] = None, limit: int = 6) -> List[Chunk]:
        """
        Retrieve, merge, deduplicate, rank and truncate.

        Args:
            question: User question
            hint: Drug to favour in ranking (None for unfiltered retrieval)
            limit: Maximum chunks returned

        Returns:
            Ranked chunk list, at most `limit` long (possibly empty)
        """
        if limit <= 0:
            return []

        queries = build_queries(question, hint)
        if not queries:
            return []

        fetch_k = limit * self.fetch_multiplier
        results = await asyncio.gather(
            *(self._search(query, fetch_k) for query in queries),
            return_exceptions=True,
        )

        merged: List[Chunk] = []
        for query, result in zip(queries, results):
            if isinstance(result, BaseException):
                logger.warning(f"Similarity search failed for '{query}': {result}")
                continue
            merged.extend(result)

        unique = deduplicate_chunks(merged)
        sections = detect_intent(question)
        ranked = prioritize_sections(rank_by_drug(unique, hint), sections, hint)[:limit]

        logger.debug(
            f"Retrieved {len(ranked)} chunks from {len(queries)} queries "
            f"(hint={hint!r}, sections={[s.value for s in sections]})",
            extra={"drug_name": hint},
        )
        return ranked

    async def _search(self, query: str, k: int) -> List[Chunk]:
        search = self.store.similarity_search

        if inspect.iscoroutinefunction(search):
            documents = await search(query, k)
        else:
            loop = asyncio.get_running_loop()
            documents = await loop.run_in_executor(None, search, query, k)

        return [_as_chunk(document) for document in documents or []]


def _as_chunk(document: Any) -> Chunk:
    if isinstance(document, Chunk):
        return document
    if isinstance(document, dict):
        return Chunk.from_document(document)
    # LangChain-style objects: page_content + metadata attributes
    return Chunk.from_document({
        "id": getattr(document, "id", None),
        "page_content": getattr(document, "page_content", ""),
        "metadata": getattr(document, "metadata", {}) or {},
    })
