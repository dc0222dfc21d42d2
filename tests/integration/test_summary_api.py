"""
Integration Tests — Summary API
════════════════════════════════
Full request-response cycle through FastAPI using the async_client fixture.

Infrastructure:
  🔲 Mock: status store      (in-memory backend)
  🔲 Mock: job dispatcher    (mock_dispatcher fixture, runs never execute)

Coverage:
  ✅ GET summary: 200 with stored state, 404 for unknown document
  ✅ GET summary on an absent summary → retriggered, status pending
  ✅ GET summary on an exhausted failure → returned as-is
  ✅ POST summary → 202, run dispatched; 404 for unknown document
  ✅ POST regenerate → 202, then 409 SUMMARY_IN_PROGRESS while in flight
  ✅ Invalid document id → 422 VALIDATION_ERROR envelope
  ✅ X-Request-ID echoed on every response
  ✅ /health liveness, /ready with the in-memory backend
  ✅ Unhandled exception → 500 INTERNAL_ERROR envelope, no internals leaked
"""

from __future__ import annotations

import uuid
from unittest.mock import AsyncMock

import pytest
from httpx import ASGITransport, AsyncClient

from docsummary.schemas.documents import SummaryStatus


@pytest.mark.integration
class TestReadSummary:

    async def test_completed_summary(self, async_client, memory_store, make_record, mock_dispatcher):
        record = memory_store.add(make_record(
            summary_status=SummaryStatus.COMPLETED,
            summary="• Purpose: supplier agreement",
        ))

        resp = await async_client.get(f"/api/v1/documents/{record.id}/summary")

        assert resp.status_code == 200
        body = resp.json()
        assert body["document_id"] == str(record.id)
        assert body["summary_status"] == "completed"
        assert body["summary"] == "• Purpose: supplier agreement"
        assert body["retriggered"] is False
        mock_dispatcher.dispatch.assert_not_awaited()

    async def test_absent_summary_is_retriggered(self, async_client, memory_store, make_record, mock_dispatcher):
        record = memory_store.add(make_record())

        resp = await async_client.get(f"/api/v1/documents/{record.id}/summary")

        body = resp.json()
        assert resp.status_code == 200
        assert body["summary_status"] == "pending"
        assert body["retriggered"] is True
        mock_dispatcher.dispatch.assert_awaited_once()

    async def test_exhausted_failure_is_returned(self, async_client, memory_store, make_record):
        record = memory_store.add(make_record(
            summary_status=SummaryStatus.FAILED,
            summary="Download failed: HTTP 503",
            summary_error="Download failed: HTTP 503",
            retry_count=1,
        ))

        body = (await async_client.get(f"/api/v1/documents/{record.id}/summary")).json()

        assert body["summary_status"] == "failed"
        assert body["summary_error"] == "Download failed: HTTP 503"
        assert body["retry_count"] == 1
        assert body["retriggered"] is False

    async def test_unknown_document_is_404(self, async_client):
        resp = await async_client.get(f"/api/v1/documents/{uuid.uuid4()}/summary")

        assert resp.status_code == 404
        assert resp.json()["detail"]["error_code"] == "DOCUMENT_NOT_FOUND"

    async def test_invalid_id_is_422(self, async_client):
        resp = await async_client.get("/api/v1/documents/not-a-uuid/summary")

        assert resp.status_code == 422
        assert resp.json()["error_code"] == "VALIDATION_ERROR"


@pytest.mark.integration
class TestTriggerEndpoints:

    async def test_trigger_returns_202(self, async_client, memory_store, make_record, mock_dispatcher):
        record = memory_store.add(make_record())

        resp = await async_client.post(f"/api/v1/documents/{record.id}/summary")

        assert resp.status_code == 202
        assert resp.json()["summary_status"] == "pending"
        mock_dispatcher.dispatch.assert_awaited_once_with(record.id)

    async def test_trigger_unknown_document(self, async_client):
        resp = await async_client.post(f"/api/v1/documents/{uuid.uuid4()}/summary")
        assert resp.status_code == 404

    async def test_regenerate_then_conflict(self, async_client, memory_store, make_record):
        record = memory_store.add(make_record(
            summary_status=SummaryStatus.COMPLETED, summary="• old",
        ))
        url = f"/api/v1/documents/{record.id}/summary/regenerate"

        first = await async_client.post(url)
        second = await async_client.post(url)

        assert first.status_code == 202
        assert first.json()["message"] == "Summary regeneration started"
        assert second.status_code == 409
        assert second.json()["detail"]["error_code"] == "SUMMARY_IN_PROGRESS"

        stored = await memory_store.load(record.id)
        assert stored.summary_status == SummaryStatus.PENDING
        assert stored.summary == ""

    async def test_regenerate_unknown_document(self, async_client):
        resp = await async_client.post(f"/api/v1/documents/{uuid.uuid4()}/summary/regenerate")
        assert resp.status_code == 404


@pytest.mark.integration
class TestOperations:

    async def test_request_id_is_echoed(self, async_client):
        resp = await async_client.get("/health", headers={"X-Request-ID": "req-123"})

        assert resp.status_code == 200
        assert resp.headers["X-Request-ID"] == "req-123"
        assert resp.json() == {"status": "ok", "service": "docsummary-api"}

    async def test_ready_with_memory_backend(self, async_client):
        resp = await async_client.get("/ready")

        assert resp.status_code == 200
        assert resp.json()["status"] == "ready"

    async def test_unhandled_error_returns_internal_error_envelope(self, app_with_overrides, triggers):
        triggers.read_status = AsyncMock(side_effect=RuntimeError("store unreachable"))
        transport = ASGITransport(app=app_with_overrides, raise_app_exceptions=False)

        async with AsyncClient(transport=transport, base_url="http://test") as client:
            resp = await client.get(
                f"/api/v1/documents/{uuid.uuid4()}/summary",
                headers={"X-Request-ID": "req-500"},
            )

        assert resp.status_code == 500
        body = resp.json()
        assert body["error_code"] == "INTERNAL_ERROR"
        assert body["request_id"] == "req-500"
        assert "store unreachable" not in resp.text
