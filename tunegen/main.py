"""FastAPI application for Kie AI music generation with a rotating key pool."""

import logging
from contextlib import asynccontextmanager
from typing import Dict, Optional

import httpx
from fastapi import FastAPI, Request
from starlette.responses import JSONResponse

from tunegen.admin import admin_router
from tunegen.client import GenerationClient
from tunegen.collaborators import LoggingTrackSink, UnlimitedQuota
from tunegen.config import load_config
from tunegen.errors import GenerationRejected, StatusUnavailable, TransportError
from tunegen.jobs import JobRegistry, jobs_router
from tunegen.key_pool import KeyPool
from tunegen.models import GenerationParams

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifecycle: startup and shutdown."""
    config = load_config()

    logging.basicConfig(level=getattr(logging, config.log_level))

    http_client = httpx.AsyncClient(
        base_url=config.kie_base_url,
        timeout=httpx.Timeout(config.request_timeout_seconds),
        limits=httpx.Limits(max_keepalive_connections=20, max_connections=100),
    )

    key_pool = KeyPool.from_config(config)
    generation_client = GenerationClient(key_pool, http_client, config)

    app.state.config = config
    app.state.http_client = http_client
    app.state.key_pool = key_pool
    app.state.generation_client = generation_client
    app.state.quota = UnlimitedQuota()
    app.state.job_registry = JobRegistry(generation_client, config, LoggingTrackSink())

    logger.info("tunegen started with %d keys", len(config.api_keys))

    yield

    app.state.job_registry.cancel_all()
    await http_client.aclose()
    logger.info("tunegen stopped")


app = FastAPI(title="tunegen", lifespan=lifespan)

app.include_router(admin_router)
app.include_router(jobs_router)


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(
        content={"success": False, "error": message}, status_code=status_code
    )


@app.get("/")
async def root(request: Request) -> Dict[str, object]:
    status = request.app.state.key_pool.get_status()
    return {
        "service": "tunegen",
        "status": "running",
        "keys_available": status["available_keys"],
        "total_keys": status["total_keys"],
    }


@app.get("/health")
async def health_check(request: Request) -> Dict[str, object]:
    """Health check endpoint with key pool status."""
    status = request.app.state.key_pool.get_status()
    return {
        "status": "healthy",
        "keys_available": status["available_keys"],
        "total_keys": status["total_keys"],
        "total_available_generations": status["total_available_generations"],
    }


@app.post("/generate")
async def generate(request: Request) -> JSONResponse:
    """Start a generation and return the remote task id."""
    body = await request.json()
    prompt = str(body.get("prompt") or "")
    if not prompt.strip():
        return _error(400, "Prompt is required")

    options = body.get("options") or {}
    if not isinstance(options, dict):
        return _error(400, "Options must be an object")

    if await request.app.state.quota.remaining_generations() <= 0:
        return _error(402, "No generations remaining")

    params = GenerationParams.from_options(prompt, options)
    client: GenerationClient = request.app.state.generation_client
    try:
        task_id = await client.submit_generation(params)
    except GenerationRejected as e:
        return _error(400, f"Generation failed: {e.message}")
    except TransportError as e:
        logger.error("Generation error: %s", e)
        return _error(502, str(e))

    return JSONResponse(
        content={
            "success": True,
            "taskId": task_id,
            "message": "Generation started successfully",
        }
    )


@app.api_route("/check-generation", methods=["GET", "POST"])
async def check_generation(request: Request) -> JSONResponse:
    """Report the current state of a generation task."""
    task_id: Optional[str] = request.query_params.get("taskId")
    if task_id is None and request.method == "POST":
        body = await request.json()
        task_id = body.get("taskId")

    if not task_id:
        return _error(400, "Task ID is required")

    client: GenerationClient = request.app.state.generation_client
    try:
        job = await client.query_status(task_id)
    except (StatusUnavailable, TransportError) as e:
        logger.error("Status check error: %s", e)
        return _error(502, str(e))

    return JSONResponse(
        content={
            "success": True,
            "status": job.state.name,
            "terminal": job.is_terminal,
            "data": [track.to_dict() for track in job.tracks],
            "error": job.error,
        }
    )
