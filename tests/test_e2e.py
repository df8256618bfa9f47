"""End-to-end tests with the real Kie AI API."""

import os
import pytest
import httpx
from tunegen.client import GenerationClient
from tunegen.config import load_config
from tunegen.key_pool import KeyPool
from tunegen.models import GenerationParams


KIE_TEST_KEY = os.getenv("KIE_TEST_KEY", "")


@pytest.mark.e2e
@pytest.mark.asyncio
@pytest.mark.skipif(not KIE_TEST_KEY, reason="KIE_TEST_KEY not set")
async def test_e2e_submit_and_check(monkeypatch):
    """Smoke test: submit a real generation and read its status once."""
    monkeypatch.setenv("KIE_API_KEYS", KIE_TEST_KEY)

    config = load_config(use_dotenv=False)
    http_client = httpx.AsyncClient(
        base_url=config.kie_base_url,
        timeout=httpx.Timeout(30.0),
    )
    client = GenerationClient(KeyPool.from_config(config), http_client, config)

    try:
        task_id = await client.submit_generation(
            GenerationParams(prompt="A short calm piano melody", instrumental=True)
        )
        assert task_id

        job = await client.query_status(task_id)
        assert job.task_id == task_id
        assert job.state.name in {"PENDING", "TEXT_READY", "PARTIAL_SUCCESS", "SUCCESS"}
    finally:
        await http_client.aclose()
