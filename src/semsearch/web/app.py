"""FastAPI application exposing search and indexing over HTTP."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, List

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from semsearch.config import AppConfig, load_config
from semsearch.errors import ConfigurationError, ProviderError, SemSearchError, StorageError
from semsearch.index.storage import SQLiteVectorStore
from semsearch.store import SemanticStore, collect_stats

LOGGER = logging.getLogger(__name__)

app = FastAPI(title="semsearch", version="0.1.0")
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


class SearchPayload(BaseModel):
    query: str
    db: Path | None = None
    top_k: int = 5
    min_similarity: float = Field(default=0.0, ge=0.0, le=1.0)
    min_score: float = Field(default=0.0, ge=0.0, le=100.0)


class IndexPayload(BaseModel):
    path: str
    db: Path | None = None
    concurrency: int | None = Field(default=None, ge=1)
    force: bool = False


_STATUS_BY_ERROR = (
    (ConfigurationError, 503),
    (ProviderError, 502),
    (StorageError, 500),
)


@app.exception_handler(SemSearchError)
async def semsearch_error_handler(request: Request, exc: SemSearchError) -> JSONResponse:
    status_code = next(
        (code for error_type, code in _STATUS_BY_ERROR if isinstance(exc, error_type)), 500
    )
    LOGGER.error("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=status_code, content={"detail": str(exc)})


def _load(db: Path | None) -> AppConfig:
    return load_config(db_path=db)


def _open_store(config: AppConfig) -> SemanticStore:
    return SemanticStore.from_config(config)


def _require_db(config: AppConfig) -> Path:
    resolved_db = config.resolve_db_path(Path.cwd())
    if not resolved_db.exists():
        raise HTTPException(
            status_code=404,
            detail=f"Database not found at {resolved_db}. Index some files first.",
        )
    return resolved_db


@app.on_event("startup")
async def startup_event() -> None:
    logging.basicConfig(level=logging.INFO, format="[%(levelname)s] %(message)s")


@app.post("/search")
async def search_documents(payload: SearchPayload) -> dict[str, List[dict[str, Any]]]:
    query = payload.query.strip()
    if not query:
        raise HTTPException(status_code=400, detail="Empty query")

    top_k = max(1, min(payload.top_k, 50))
    config = _load(payload.db)
    _require_db(config)

    store = _open_store(config)
    try:
        results = await store.search(
            query,
            top_k=top_k,
            min_similarity=payload.min_similarity,
            min_score=payload.min_score,
        )
    finally:
        await store.aclose()
    return {"results": [result.to_dict() for result in results]}


@app.post("/index")
async def index_documents(payload: IndexPayload) -> dict[str, Any]:
    clean_path = payload.path.strip().replace("\r", "").replace("\n", "")
    if not clean_path:
        raise HTTPException(status_code=400, detail="No path provided")
    if "\0" in clean_path:
        raise HTTPException(status_code=400, detail="Invalid path: contains null byte")

    target = Path(clean_path).expanduser().resolve()
    if not target.exists():
        raise HTTPException(status_code=404, detail=f"Path not found: {clean_path}")

    config = _load(payload.db)
    store = _open_store(config)
    try:
        stats = await store.index_path(
            target, concurrency=payload.concurrency, force=payload.force
        )
    finally:
        await store.aclose()

    return {
        "status": "ok",
        "db": str(config.resolve_db_path(Path.cwd())),
        "stats": stats.to_dict(),
    }


@app.get("/documents")
async def list_documents(db: Path | None = None) -> dict[str, Any]:
    """List all indexed documents in the database."""
    config = _load(db)
    resolved_db = config.resolve_db_path(Path.cwd())
    if not resolved_db.exists():
        return {"documents": [], "count": 0}

    store = SQLiteVectorStore(resolved_db)
    try:
        documents = [record.to_dict() for record in store.list_all()]
    finally:
        store.close()
    return {"documents": documents, "count": len(documents)}


@app.get("/documents/{record_id}")
async def get_document(record_id: str, db: Path | None = None) -> dict[str, Any]:
    resolved_db = _require_db(_load(db))
    store = SQLiteVectorStore(resolved_db)
    try:
        record = store.get_by_id(record_id)
    finally:
        store.close()

    if record is None:
        raise HTTPException(status_code=404, detail=f"Document with id {record_id} not found")
    return record.to_dict()


@app.get("/stats")
async def get_stats(db: Path | None = None) -> dict[str, Any]:
    config = _load(db)
    resolved_db = _require_db(config)
    store = SQLiteVectorStore(resolved_db)
    try:
        stats = collect_stats(store, endpoint=config.azure.endpoint)
    finally:
        store.close()
    return stats.to_dict()
