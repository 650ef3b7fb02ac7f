"""
FastAPI boundary for the formulary engine.

Endpoints:
    POST /api/ingest   - upload a .txt/.pdf formulary, rebuild the corpus
    POST /api/context  - resolve drug context and return ranked chunks
    POST /api/answers  - cache a composed answer for a question
    GET  /health
"""
import logging
import tempfile
import uuid
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, File, HTTPException, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field, ValidationError

from formulary.cache.response_cache import ResponseCache
from formulary.core.config import settings
from formulary.ingestion.ingest_pipeline import FormularyIngestor
from formulary.ingestion.loaders import SUPPORTED_SUFFIXES
from formulary.resolver.drug_context_resolver import DrugContextResolver
from formulary.retrieval.orchestrator import RetrievalOrchestrator
from formulary.services.qa_service import FormularyQAService, QuestionRequest, QuestionResult
from formulary.utils.logging import LogContext, setup_logging_from_settings

logger = logging.getLogger(__name__)

app = FastAPI(title="Formulary Context API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Singletons, wired by configure()
vector_store = None
ingestor: Optional[FormularyIngestor] = None
qa_service: Optional[FormularyQAService] = None


def configure(store, classifier=None, cache: Optional[ResponseCache] = None):
    """Wire the engine around a similarity-search store."""
    global vector_store, ingestor, qa_service

    vector_store = store
    ingestor = FormularyIngestor(store)
    resolver = DrugContextResolver(RetrievalOrchestrator(store), classifier=classifier)
    qa_service = FormularyQAService(resolver, cache or ResponseCache(ttl_seconds=settings.RESPONSE_CACHE_TTL_SECONDS))


@app.on_event("startup")
async def startup():
    """Initialize the engine from settings."""
    setup_logging_from_settings(settings)

    if not settings.azure_configured:
        logger.warning("Azure OpenAI credentials missing - engine not initialized")
        return

    from formulary.ingestion.embedder import AzureEmbedder
    from formulary.resolver.drug_classifier import DrugClassifier
    from formulary.vectorstore.faiss_store import FAISSVectorStore

    store = FAISSVectorStore(AzureEmbedder(), dimension=settings.EMBEDDING_DIMENSION)
    if not store.load(settings.INDEX_DIR):
        logger.warning("No saved index found - upload a formulary to /api/ingest")

    classifier = DrugClassifier() if settings.CLASSIFIER_ENABLED else None
    configure(store, classifier=classifier)
    logger.info(f"Formulary engine ready ({store.count()} chunks)")


class AnswerRecord(BaseModel):
    question: str
    chat_history: List[Dict[str, Any]] = Field(default_factory=list)
    previous_drug: Optional[str] = None
    limit: Optional[int] = None
    validated_drug: Optional[str] = None
    payload: Dict[str, Any] = Field(default_factory=dict)


def _corpus_size() -> int:
    if vector_store is None:
        return 0
    return vector_store.count()


@app.post("/api/ingest")
async def ingest(file: UploadFile = File(...)):
    """
    Replace the corpus with an uploaded formulary.

    Example:
        curl -F "file=@formulary.pdf" http://localhost:8000/api/ingest
    """
    if ingestor is None:
        raise HTTPException(status_code=503, detail="Formulary engine not initialized")

    suffix = Path(file.filename or "").suffix.lower()
    if suffix not in SUPPORTED_SUFFIXES:
        raise HTTPException(status_code=400, detail=f"Unsupported file type '{suffix}', expected .txt or .pdf")

    with tempfile.TemporaryDirectory() as tmp_dir:
        path = Path(tmp_dir) / Path(file.filename).name
        path.write_bytes(await file.read())
        report = await run_in_threadpool(ingestor.ingest_file, path)

    if hasattr(vector_store, "save"):
        await run_in_threadpool(vector_store.save, settings.INDEX_DIR, report.to_dict())

    qa_service.cache.clear()
    return report.to_dict()


@app.post("/api/context")
async def context(request: QuestionRequest):
    """
    Resolve drug context for a question.

    Example:
        POST /api/context
        {"question": "side effects?", "previous_drug": "Paracetamol", "chat_history": []}
    """
    if qa_service is None or _corpus_size() == 0:
        raise HTTPException(status_code=503, detail="No formulary ingested")

    with LogContext(correlation_id=uuid.uuid4().hex[:12]):
        result = await qa_service.answer(request)

    return result.to_dict()


@app.post("/api/answers")
async def record_answer(record: AnswerRecord):
    """Cache a composed answer under the request and resolved-drug keys."""
    if qa_service is None:
        raise HTTPException(status_code=503, detail="Formulary engine not initialized")

    try:
        fields = {"question": record.question, "chat_history": record.chat_history, "previous_drug": record.previous_drug}
        if record.limit is not None:
            fields["limit"] = record.limit
        request = QuestionRequest(**fields)
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=e.errors(include_context=False, include_url=False))

    result = QuestionResult(
        validated_drug=record.validated_drug,
        chunks=[],
        related_drugs=list(record.payload.get("relatedDrugs") or []),
    )
    keys = qa_service.record_answer(request, result, record.payload)
    return {"stored": len(keys)}


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "timestamp": datetime.now().isoformat(),
        "chunks": _corpus_size(),
        "environment": settings.ENVIRONMENT,
    }
