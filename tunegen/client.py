"""Kie AI client that sends every request through the key pool."""

import logging
from typing import Dict, List, Mapping, Optional, Protocol, cast

import httpx

from tunegen.config import Config
from tunegen.errors import (
    GenerationRejected,
    GenerationTimeout,
    RemoteFailure,
    StatusUnavailable,
    TransportError,
)
from tunegen.models import (
    Credential,
    Failed,
    GenerationJob,
    GenerationParams,
    JobState,
    PartialSuccess,
    Pending,
    Success,
    TextReady,
    TimedOut,
    Track,
)
from tunegen.poller import JobPoller

logger = logging.getLogger(__name__)

ACCEPTED_CODE = 200

FAILURE_MARKERS = ("FAILED", "ERROR")
STATUS_SUCCESS = "SUCCESS"
STATUS_TEXT_SUCCESS = "TEXT_SUCCESS"
STATUS_FIRST_SUCCESS = "FIRST_SUCCESS"

EMPTY_SUCCESS_ERROR = "generation finished without any tracks"


class CredentialPool(Protocol):
    @property
    def size(self) -> int: ...

    async def select_credential(
        self, exclude: Optional[Credential] = None
    ) -> Credential: ...

    async def record_usage(self, credential: Credential) -> None: ...


def _parse_tracks(data: Mapping[str, object], fallback_title: str) -> List[Track]:
    response = data.get("response")
    items: object = None
    if isinstance(response, dict):
        items = cast(Dict[str, object], response).get("sunoData")
    if items is None:
        items = data.get("sunoData")
    if not isinstance(items, list):
        return []
    return [
        Track.from_payload(cast(Dict[str, object], item), fallback_title)
        for item in items
        if isinstance(item, dict)
    ]


def classify_status(data: Mapping[str, object], fallback_title: str = "") -> JobState:
    """Map the ``data`` object of a record-info response to a job state.

    Failure markers are matched by containment because the remote vocabulary
    keeps growing (CREATE_TASK_FAILED, GENERATE_AUDIO_FAILED,
    SENSITIVE_WORD_ERROR, ...). A missing status means the job is still
    being worked on.
    """
    raw_status = data.get("status")
    error_message = data.get("errorMessage")
    error_text = str(error_message).strip() if error_message else ""

    if not isinstance(raw_status, str) or not raw_status.strip():
        if error_text:
            return Failed(error_text)
        return Pending()

    status = raw_status.strip().upper()

    if any(marker in status for marker in FAILURE_MARKERS):
        return Failed(error_text or status)

    if status == STATUS_SUCCESS:
        tracks = _parse_tracks(data, fallback_title)
        if not tracks:
            return Failed(EMPTY_SUCCESS_ERROR)
        return Success(tuple(tracks))

    if error_text:
        return Failed(error_text)

    if status == STATUS_TEXT_SUCCESS:
        return TextReady()
    if status == STATUS_FIRST_SUCCESS:
        return PartialSuccess(tuple(_parse_tracks(data, fallback_title)))

    return Pending(status)


def _read_json(response: httpx.Response) -> Optional[Dict[str, object]]:
    try:
        body = response.json()
    except ValueError:
        return None
    if not isinstance(body, dict):
        return None
    return cast(Dict[str, object], body)


class GenerationClient:
    """Kie AI client that routes every call through a key pool."""

    def __init__(
        self,
        key_pool: CredentialPool,
        http_client: httpx.AsyncClient,
        config: Config,
    ):
        self.key_pool = key_pool
        self.http_client = http_client
        self.config = config

    async def dispatch(
        self,
        method: str,
        path: str,
        json: Optional[Mapping[str, object]] = None,
        params: Optional[Mapping[str, str]] = None,
    ) -> httpx.Response:
        """
        Send one request to the remote API with a pooled key.

        Flow:
        1. select_credential() from the key pool
        2. Send the request with ``Authorization: Bearer <key>``
        3. If the transport completed (any HTTP status): record_usage() and
           return the raw response
        4. If the transport failed and the pool has another key: retry once
           with a different key, recording usage only if that attempt completes
        5. Otherwise raise TransportError
        """
        credential = await self.key_pool.select_credential()

        try:
            response = await self._send(credential, method, path, json, params)
        except httpx.RequestError as exc:
            logger.warning(
                "Transport error calling %s %s (key=%s): %s",
                method,
                path,
                credential.key_prefix(),
                exc,
            )
            if self.key_pool.size < 2:
                raise TransportError(str(exc)) from exc

            fallback = await self.key_pool.select_credential(exclude=credential)
            try:
                response = await self._send(fallback, method, path, json, params)
            except httpx.RequestError as retry_exc:
                logger.error(
                    "Fallback request failed (key=%s): %s",
                    fallback.key_prefix(),
                    retry_exc,
                )
                raise TransportError(str(retry_exc)) from retry_exc

            await self.key_pool.record_usage(fallback)
            return response

        await self.key_pool.record_usage(credential)
        return response

    async def _send(
        self,
        credential: Credential,
        method: str,
        path: str,
        json: Optional[Mapping[str, object]],
        params: Optional[Mapping[str, str]],
    ) -> httpx.Response:
        return await self.http_client.request(
            method=method,
            url=path,
            json=json,
            params=params,
            headers={"Authorization": f"Bearer {credential.key}"},
        )

    async def _submit(self, path: str, payload: Mapping[str, object], action: str) -> str:
        response = await self.dispatch("POST", path, json=payload)
        body = _read_json(response)
        if body is None:
            raise GenerationRejected(
                f"{action} failed: unreadable response (HTTP {response.status_code})"
            )

        code = body.get("code")
        message = str(body.get("msg") or "")
        if code != ACCEPTED_CODE:
            logger.info("%s rejected (code=%s): %s", action, code, message)
            raise GenerationRejected(message, code if isinstance(code, int) else None)

        data = body.get("data")
        task_id = (
            cast(Dict[str, object], data).get("taskId")
            if isinstance(data, dict)
            else None
        )
        if not task_id:
            raise GenerationRejected(f"{action} failed: response has no taskId", code)

        logger.info("%s accepted (task=%s)", action, task_id)
        return str(task_id)

    async def submit_generation(self, params: GenerationParams) -> str:
        if not params.prompt.strip():
            raise ValueError("Prompt is required")
        payload = params.to_payload(self.config.default_model, self.config.callback_url)
        return await self._submit("/generate", payload, "Generation")

    async def extend_music(
        self,
        audio_id: str,
        prompt: Optional[str] = None,
        style: Optional[str] = None,
        title: Optional[str] = None,
        continue_at: Optional[float] = None,
        model: Optional[str] = None,
        default_param_flag: bool = False,
        callback_url: Optional[str] = None,
    ) -> str:
        payload = {
            "audioId": audio_id,
            "defaultParamFlag": default_param_flag,
            "model": model or self.config.default_model,
            "prompt": prompt,
            "style": style,
            "title": title,
            "continueAt": continue_at,
            "callBackUrl": callback_url or self.config.callback_url,
        }
        return await self._submit("/generate/extend", payload, "Extension")

    async def generate_lyrics(
        self, prompt: str, callback_url: Optional[str] = None
    ) -> str:
        if not prompt.strip():
            raise ValueError("Prompt is required")
        payload = {
            "prompt": prompt.strip(),
            "callBackUrl": callback_url or self.config.callback_url,
        }
        return await self._submit("/lyrics", payload, "Lyrics generation")

    async def query_status(
        self, task_id: str, params: Optional[GenerationParams] = None
    ) -> GenerationJob:
        response = await self.dispatch(
            "GET", "/generate/record-info", params={"taskId": task_id}
        )
        if response.status_code >= 400:
            raise StatusUnavailable(
                f"Status check for {task_id} returned HTTP {response.status_code}"
            )

        body = _read_json(response)
        if body is None:
            raise StatusUnavailable(f"Status check for {task_id} returned no JSON")

        code = body.get("code")
        if code is not None and code != ACCEPTED_CODE:
            raise StatusUnavailable(
                f"Status check for {task_id} failed (code={code}): {body.get('msg')}"
            )

        data = body.get("data")
        if not isinstance(data, dict):
            raise StatusUnavailable(f"Status check for {task_id} has no data")

        fallback_title = params.title if params else ""
        state = classify_status(cast(Dict[str, object], data), fallback_title)
        return GenerationJob(task_id=task_id, state=state, params=params)

    async def wait_for_completion(
        self, task_id: str, params: Optional[GenerationParams] = None
    ) -> GenerationJob:
        """Poll a job until it finishes, raising on failure or timeout."""
        poller = JobPoller.from_config(self, task_id, self.config, params=params)
        job = await poller.run()

        if isinstance(job.state, Failed):
            raise RemoteFailure(task_id, job.state.error)
        if isinstance(job.state, TimedOut):
            raise GenerationTimeout(task_id, job.state.elapsed)
        return job
