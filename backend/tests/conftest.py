"""
Shared fixtures: a small formulary excerpt and an in-memory similarity search.
"""
import pytest

from formulary.models import Chunk, ChunkMetadata, Classification, SectionKey, SourceRange


SAMPLE_FORMULARY = """PHILIPPINE NATIONAL FORMULARY
Table of Contents
Paracetamol ........ 12

Rx
PARACETAMOL (Acetaminophen)
ATC Code: N02BE01
Indications: Relief of mild to moderate pain and fever in adults and children, including headache and musculoskeletal pain.
Contraindications: Severe hepatic impairment or active liver disease; known hypersensitivity to paracetamol or any excipient.
Dosage:
Adults: 500 mg to 1 g every 4 to 6 hours, maximum 4 g daily.
Adverse Reactions: Rare hypersensitivity reactions, skin rash, blood dyscrasias and hepatotoxicity after overdose or chronic excess use.
Pregnancy Category: B

OTC IBUPROFEN
Indications: Mild to moderate pain, dysmenorrhoea, fever and inflammatory conditions such as rheumatoid arthritis.
Dosage: Adults: 200 to 400 mg every 4 to 6 hours after food, maximum 1.2 g daily.
Side Effects: Gastrointestinal discomfort, nausea, dyspepsia, peptic ulceration and bleeding, dizziness and rash.
Drug Interactions: Increased bleeding risk with anticoagulants such as warfarin; reduced antihypertensive effect of ACE inhibitors.
Pregnancy Category: C/D
"""


def make_chunk(drug, section=None, start=1, end=None, content=None, chunk_id=None,
               classification=Classification.RX):
    """Build a chunk with predictable id/content."""
    section_key = SectionKey.parse(section) if isinstance(section, str) else section
    label = section_key.value if section_key else "overview"
    return Chunk(
        id=chunk_id if chunk_id is not None else f"{drug.lower()}-{label}-{start}",
        content=content or f"{drug} - {label} text for page {start}",
        metadata=ChunkMetadata(
            drug_name=drug,
            source_range=SourceRange(start, end if end is not None else start),
            section=section_key,
            classification=classification,
        ),
    )


def drug_chunks(drug, count, start=1):
    """`count` chunks for one drug, each a different section."""
    sections = list(SectionKey)[:count]
    return [make_chunk(drug, section=section, start=start) for section in sections]


class FakeSimilaritySearch:
    """
    Deterministic stand-in for the vector store.

    Chunks whose drug name occurs in the query come first (store order),
    then everything else; a query is recorded on every call.
    """

    def __init__(self, chunks=(), fail_on=None):
        self.chunks = list(chunks)
        self.queries = []
        self.fail_on = fail_on

    def similarity_search(self, query, k):
        self.queries.append(query)
        if self.fail_on is not None and query == self.fail_on:
            raise RuntimeError(f"search backend unavailable for '{query}'")
        lowered = query.lower()
        hits = [c for c in self.chunks if c.drug_name.lower() in lowered]
        rest = [c for c in self.chunks if c.drug_name.lower() not in lowered]
        return (hits + rest)[:k]

    def replace(self, chunks):
        self.chunks = list(chunks)

    def count(self):
        return len(self.chunks)

    def drug_names(self):
        return list(dict.fromkeys(c.drug_name for c in self.chunks))


class FakeClassifier:
    """Async classifier returning a fixed answer (or raising / stalling)."""

    def __init__(self, drug=None, error=None, delay=0.0):
        self.drug = drug
        self.error = error
        self.delay = delay
        self.calls = []

    async def classify(self, question, previous_drug=None, recent_history=()):
        import asyncio

        self.calls.append((question, previous_drug, list(recent_history)))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.drug


@pytest.fixture
def sample_text():
    return SAMPLE_FORMULARY


@pytest.fixture
def formulary_store():
    """Paracetamol, ibuprofen and amoxicillin chunks."""
    return FakeSimilaritySearch(
        drug_chunks("PARACETAMOL", 4, start=12)
        + drug_chunks("IBUPROFEN", 4, start=20)
        + drug_chunks("AMOXICILLIN", 3, start=31)
    )
