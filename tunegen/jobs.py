"""Tracked generation jobs polled in the background."""

import logging
from typing import Dict, List, Optional

from fastapi import APIRouter, HTTPException, Request
from starlette.responses import JSONResponse, Response

from tunegen.client import GenerationClient
from tunegen.collaborators import TrackSink
from tunegen.config import Config
from tunegen.errors import GenerationRejected, TransportError
from tunegen.models import GenerationJob, GenerationParams, Success
from tunegen.poller import JobPoller

logger = logging.getLogger(__name__)

jobs_router = APIRouter(prefix="/jobs", tags=["jobs"])


class JobRegistry:
    """Process-local table of pollers, keyed by task id.

    Finished pollers (terminal or cancelled) are kept for ``max_finished``
    entries so their results stay readable; older ones are evicted first.
    """

    def __init__(
        self,
        client: GenerationClient,
        config: Config,
        sink: TrackSink,
        max_finished: int = 100,
    ):
        self.client = client
        self.config = config
        self.sink = sink
        self.max_finished = max_finished
        self.pollers: Dict[str, JobPoller] = {}

    def track(self, task_id: str, params: Optional[GenerationParams] = None) -> JobPoller:
        poller = JobPoller.from_config(
            self.client,
            task_id,
            self.config,
            params=params,
            on_update=self._on_update,
        )
        self.pollers[task_id] = poller
        self._prune()
        poller.start()
        logger.info("Tracking task %s", task_id)
        return poller

    def get(self, task_id: str) -> Optional[JobPoller]:
        return self.pollers.get(task_id)

    def cancel(self, task_id: str) -> bool:
        poller = self.pollers.get(task_id)
        if poller is None:
            return False
        poller.cancel()
        self._prune()
        return True

    def cancel_all(self) -> None:
        for poller in self.pollers.values():
            poller.cancel()

    def jobs(self) -> List[GenerationJob]:
        return [poller.job for poller in self.pollers.values()]

    def _prune(self) -> None:
        finished = [
            task_id
            for task_id, poller in self.pollers.items()
            if poller.job.is_terminal or poller.cancelled
        ]
        for task_id in finished[: max(len(finished) - self.max_finished, 0)]:
            del self.pollers[task_id]

    async def _on_update(self, job: GenerationJob) -> None:
        if isinstance(job.state, Success):
            try:
                await self.sink.save_tracks(job)
            except Exception:
                logger.exception("Failed to save tracks for task %s", job.task_id)
        if job.is_terminal:
            self._prune()


def _job_payload(poller: JobPoller) -> Dict[str, object]:
    payload = poller.job.to_dict()
    payload["cancelled"] = poller.cancelled
    payload["checks"] = poller.checks
    return payload


@jobs_router.post("")
async def create_job(request: Request) -> JSONResponse:
    """Submit a generation and keep polling it in the background."""
    body = await request.json()
    prompt = str(body.get("prompt") or "")
    if not prompt.strip():
        raise HTTPException(status_code=400, detail="Prompt is required")

    options = body.get("options") or {}
    if not isinstance(options, dict):
        raise HTTPException(status_code=400, detail="Options must be an object")

    quota = request.app.state.quota
    if await quota.remaining_generations() <= 0:
        raise HTTPException(status_code=402, detail="No generations remaining")

    params = GenerationParams.from_options(prompt, options)
    client: GenerationClient = request.app.state.generation_client
    try:
        task_id = await client.submit_generation(params)
    except GenerationRejected as e:
        raise HTTPException(status_code=400, detail=f"Generation failed: {e.message}")
    except TransportError as e:
        raise HTTPException(status_code=502, detail=str(e))

    registry: JobRegistry = request.app.state.job_registry
    poller = registry.track(task_id, params)
    return JSONResponse(content=_job_payload(poller), status_code=201)


@jobs_router.get("")
async def list_jobs(request: Request) -> Dict[str, object]:
    registry: JobRegistry = request.app.state.job_registry
    return {"jobs": [_job_payload(poller) for poller in registry.pollers.values()]}


@jobs_router.get("/{task_id}")
async def get_job(request: Request, task_id: str) -> Dict[str, object]:
    registry: JobRegistry = request.app.state.job_registry
    poller = registry.get(task_id)
    if poller is None:
        raise HTTPException(status_code=404, detail=f"Job {task_id} not found")
    return _job_payload(poller)


@jobs_router.delete("/{task_id}")
async def cancel_job(request: Request, task_id: str) -> Response:
    registry: JobRegistry = request.app.state.job_registry
    if not registry.cancel(task_id):
        raise HTTPException(status_code=404, detail=f"Job {task_id} not found")
    return Response(status_code=204)
