"""
LinkGraph FastAPI Application

A REST API server for the LinkGraph knowledge graph.
Provides endpoints for processing bookmarks, traversing the graph and
administering clusters, caches and the job queue.

Every request is scoped to the user named in the X-User-Id header.
"""

from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Header, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from linkgraph.config import Config
from linkgraph.models.graph import Bookmark, Cluster, Concept, Entity, EntityType
from linkgraph.models.jobs import Job, QueueMetrics
from linkgraph.models.query import (
    BookmarkPosition,
    CacheStats,
    ClusterDetails,
    EntityBookmark,
    ExtractAndSaveResult,
    GraphStats,
    MergeResult,
    RefreshResult,
    RelatedBookmark,
    RelatedConcept,
)
from linkgraph.services.engine import GraphEngine
from linkgraph.services.graph_service import GraphService
from linkgraph.utils.exceptions import (
    ConfigurationError,
    LinkGraphError,
    NotFoundError,
    ValidationError,
)
from linkgraph.utils.logger import get_logger, setup_logging

# Global engine instance
engine: GraphEngine | None = None
logger = get_logger(__name__)


# Pydantic models for API
class ProcessBookmarkRequest(BaseModel):
    """Request model for processing a bookmark into the graph."""

    id: str = Field(..., description="Bookmark ID")
    url: str = ""
    title: str = ""
    summary: str = ""
    domain: str = ""
    tags: list[str] = Field(default_factory=list)
    embedding: list[float] | None = None


class ProcessBookmarkResponse(BaseModel):
    bookmark_id: str
    jobs_enqueued: list[str]


class ExtractRequest(BaseModel):
    """Request model for synchronous entity and concept extraction."""

    content: str = Field(..., min_length=1, description="Text to extract from")


class MergeClustersRequest(BaseModel):
    source_cluster_id: str = Field(..., description="Cluster folded into the target")


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    engine_initialized: bool
    graph_store: str
    cache_backend: str
    llm_provider: str


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup/shutdown."""
    global engine

    # Load configuration from environment or use defaults
    config = Config.from_env()

    setup_logging(
        level=config.logging.level,
        log_to_file=config.logging.log_to_file,
        log_dir=config.logging.log_dir,
        file_rotation=config.logging.file_rotation,
        file_retention=config.logging.file_retention,
        compression=config.logging.compression,
        serialize=config.logging.serialize,
    )

    logger.info("Starting LinkGraph server")

    engine = GraphEngine.from_config(config)
    await engine.initialize()
    logger.info("LinkGraph engine initialized")

    yield

    logger.info("Shutting down LinkGraph server")
    await engine.close()
    engine = None
    logger.info("Cleanup complete")


app = FastAPI(
    title="LinkGraph API",
    description="Knowledge graph construction and queries over bookmarks",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return JSONResponse(status_code=404, content={"detail": exc.message, "context": exc.context})


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    return JSONResponse(status_code=400, content={"detail": exc.message, "context": exc.context})


@app.exception_handler(ConfigurationError)
async def configuration_error_handler(request: Request, exc: ConfigurationError):
    return JSONResponse(status_code=503, content={"detail": exc.message})


@app.exception_handler(LinkGraphError)
async def linkgraph_error_handler(request: Request, exc: LinkGraphError):
    logger.error(f"Request to {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=500, content={"detail": exc.message})


def get_engine() -> GraphEngine:
    if not engine:
        raise HTTPException(status_code=503, detail="Engine not initialized")
    return engine


def get_service() -> GraphService:
    return get_engine().service


# Health check endpoint
@app.get("/health", response_model=HealthResponse)
async def health_check():
    """Health check endpoint."""
    config = engine.config if engine else Config()
    return HealthResponse(
        status="healthy" if engine else "initializing",
        engine_initialized=engine is not None,
        graph_store=f"SQLite ({config.store.db_path})",
        cache_backend=config.cache.backend,
        llm_provider=f"{config.llm.provider}/{config.llm.model}",
    )


# Bookmark endpoints
@app.post("/bookmarks", response_model=ProcessBookmarkResponse)
async def process_bookmark(
    request: ProcessBookmarkRequest, x_user_id: str = Header(..., alias="X-User-Id")
):
    """
    Record a bookmark and queue entity, concept and similarity jobs for it.

    The similarity job is only queued when an embedding is supplied.
    """
    bookmark = Bookmark(user_id=x_user_id, **request.model_dump())
    job_ids = await get_service().process_bookmark(bookmark)
    return ProcessBookmarkResponse(bookmark_id=bookmark.id, jobs_enqueued=job_ids)


@app.post("/bookmarks/{bookmark_id}/extract", response_model=ExtractAndSaveResult)
async def extract_and_save(
    bookmark_id: str, request: ExtractRequest, x_user_id: str = Header(..., alias="X-User-Id")
):
    """Extract and save entities and concepts immediately, bypassing the queue."""
    return await get_service().extract_and_save(request.content, bookmark_id, x_user_id)


@app.post("/bookmarks/{bookmark_id}/refresh", response_model=RefreshResult)
async def refresh_bookmark_graph(bookmark_id: str, x_user_id: str = Header(..., alias="X-User-Id")):
    """Delete every relationship touching the bookmark and queue its jobs again."""
    return await get_service().refresh_bookmark_graph(bookmark_id, x_user_id)


@app.get("/bookmarks/{bookmark_id}/related", response_model=list[RelatedBookmark])
async def find_related_bookmarks(
    bookmark_id: str,
    depth: int = Query(default=2, description="Traversal depth, clamped into [1, 3]"),
    limit: int = Query(default=20, ge=1, le=100),
    x_user_id: str = Header(..., alias="X-User-Id"),
):
    """
    Find related bookmarks.

    - depth 1: direct similarity edges
    - depth 2: plus bookmarks sharing concepts or entities
    - depth 3: plus one more similarity hop
    """
    return await get_service().find_related_bookmarks(bookmark_id, x_user_id, depth, limit)


# Entity & concept endpoints
@app.get("/entities", response_model=list[Entity])
async def list_entities(
    entity_type: EntityType | None = Query(default=None, alias="type"),
    limit: int = Query(default=50, ge=1, le=500),
    x_user_id: str = Header(..., alias="X-User-Id"),
):
    return await get_service().list_entities(x_user_id, entity_type=entity_type, limit=limit)


@app.get("/entities/{entity_id}/bookmarks", response_model=list[EntityBookmark])
async def get_bookmarks_for_entity(
    entity_id: str,
    limit: int = Query(default=20, ge=1, le=100),
    x_user_id: str = Header(..., alias="X-User-Id"),
):
    return await get_service().get_bookmarks_for_entity(entity_id, x_user_id, limit=limit)


@app.get("/concepts", response_model=list[Concept])
async def list_concepts(
    limit: int = Query(default=100, ge=1, le=500),
    x_user_id: str = Header(..., alias="X-User-Id"),
):
    return await get_service().list_concepts(x_user_id, limit=limit)


@app.get("/concepts/{concept_id}/related", response_model=list[RelatedConcept])
async def find_related_concepts(
    concept_id: str,
    min_co_occurrence: int = Query(default=2, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    x_user_id: str = Header(..., alias="X-User-Id"),
):
    """Concepts that share at least min_co_occurrence bookmarks with the concept."""
    return await get_service().find_related_concepts(
        concept_id, x_user_id, min_co_occurrence=min_co_occurrence, limit=limit
    )


# Cluster endpoints
@app.get("/clusters", response_model=list[Cluster])
async def list_clusters(
    limit: int = Query(default=20, ge=1, le=200),
    x_user_id: str = Header(..., alias="X-User-Id"),
):
    return await get_service().list_clusters(x_user_id, limit=limit)


@app.post("/clusters/generate", response_model=list[Cluster])
async def generate_clusters(x_user_id: str = Header(..., alias="X-User-Id")):
    """Regroup the user's embedded bookmarks into named clusters."""
    return await get_service().generate_clusters(x_user_id)


@app.get("/clusters/{cluster_id}", response_model=ClusterDetails)
async def get_cluster_details(
    cluster_id: str,
    bookmark_limit: int = Query(default=50, ge=1, le=500),
    x_user_id: str = Header(..., alias="X-User-Id"),
):
    return await get_service().get_cluster_details(cluster_id, x_user_id, bookmark_limit)


@app.post("/clusters/{cluster_id}/merge", response_model=MergeResult)
async def merge_clusters(
    cluster_id: str,
    request: MergeClustersRequest,
    x_user_id: str = Header(..., alias="X-User-Id"),
):
    """Fold the source cluster into this one; the source is deleted."""
    return await get_service().merge_clusters(cluster_id, request.source_cluster_id, x_user_id)


# Graph-wide endpoints
@app.get("/stats", response_model=GraphStats)
async def get_graph_stats(x_user_id: str = Header(..., alias="X-User-Id")):
    return await get_service().get_graph_stats(x_user_id)


@app.get("/projection", response_model=list[BookmarkPosition])
async def compute_projection(x_user_id: str = Header(..., alias="X-User-Id")):
    """2D positions of every bookmark with an embedding."""
    return await get_service().compute_projection(x_user_id)


# Cache administration
@app.get("/cache/stats", response_model=CacheStats)
async def get_cache_stats():
    return await get_service().get_cache_stats()


@app.delete("/cache")
async def invalidate_all_caches(x_user_id: str = Header(..., alias="X-User-Id")):
    await get_service().invalidate_all_caches(x_user_id)
    return {"status": "invalidated", "user_id": x_user_id}


# Job queue administration
@app.get("/jobs/metrics", response_model=dict[str, QueueMetrics])
async def get_job_metrics():
    return await get_engine().pipeline.get_metrics()


@app.get("/jobs/{job_id}", response_model=Job)
async def get_job(job_id: str):
    job = await get_engine().pipeline.get_job(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail="Job not found")
    return job


@app.post("/jobs/{job_id}/retry", response_model=Job)
async def retry_job(job_id: str):
    """Queue a failed job again with fresh attempts."""
    return await get_engine().pipeline.retry_job(job_id)


@app.get("/")
async def root() -> dict[str, Any]:
    """API information."""
    return {
        "name": "LinkGraph API",
        "version": "0.1.0",
        "docs": "/docs",
        "health": "/health",
    }
