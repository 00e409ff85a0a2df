"""Tests for the OrgX REST client using httpx.MockTransport."""
from __future__ import annotations

import json

import httpx
import pytest

from orgxclaw import __version__
from orgxclaw.integrations.orgx_client import OrgxApiError, OrgxClient


def _client(handler, **kwargs):
    kwargs.setdefault("api_key", "sk-test")
    return OrgxClient(base_url="https://orgx.test/", transport=httpx.MockTransport(handler), **kwargs)


class TestRequests:
    def test_headers(self):
        seen = {}

        def handler(request):
            seen.update(request.headers)
            return httpx.Response(200, json={"data": []})

        _client(handler, user_id="u-1").list_entities("initiative")
        assert seen["authorization"] == "Bearer sk-test"
        assert seen["x-orgx-user-id"] == "u-1"
        assert seen["user-agent"] == f"orgxclaw/{__version__}"

    def test_list_entities_unwraps_data(self):
        def handler(request):
            assert request.url.path == "/api/entities"
            assert request.url.params["type"] == "workstream"
            assert request.url.params["initiative_id"] == "i1"
            assert "status" not in request.url.params
            return httpx.Response(200, json={"data": [{"id": "w1"}, "junk"]})

        items = _client(handler).list_entities("workstream", initiative_id="i1", status=None)
        assert items == [{"id": "w1"}]

    def test_create_entity_body(self):
        def handler(request):
            assert request.method == "POST"
            assert json.loads(request.content) == {"type": "activity", "data": {"title": "x"}}
            return httpx.Response(201, json={"id": "a1"})

        assert _client(handler).create_entity("activity", {"title": "x"}) == {"id": "a1"}

    def test_update_entity(self):
        def handler(request):
            assert request.method == "PATCH"
            assert request.url.path == "/api/entities/ms-1"
            body = json.loads(request.content)
            assert body == {"type": "milestone", "updates": {"status": "completed"}}
            return httpx.Response(204)

        assert _client(handler).update_entity("milestone", "ms-1", {"status": "completed"}) is None

    def test_get_org_snapshot(self):
        def handler(request):
            assert request.url.path == "/api/client/sync"
            return httpx.Response(200, json={
                "initiatives": [{"id": "i1"}],
                "activeTasks": [{"id": "t1"}],
                "syncedAt": "2026-05-01T12:00:00Z",
            })

        snapshot = _client(handler).get_org_snapshot()
        assert snapshot.initiatives == [{"id": "i1"}]
        assert snapshot.active_tasks == [{"id": "t1"}]
        assert snapshot.synced_at == "2026-05-01T12:00:00Z"


class TestErrors:
    def test_missing_api_key(self):
        def handler(request):
            raise AssertionError("no request expected")

        with pytest.raises(OrgxApiError, match="ORGX_API_KEY"):
            _client(handler, api_key=None).list_entities("initiative")

    def test_http_error_status(self):
        def handler(request):
            return httpx.Response(503, text="down")

        with pytest.raises(OrgxApiError) as excinfo:
            _client(handler).create_entity("activity", {})
        assert excinfo.value.status_code == 503
        assert excinfo.value.body == "down"

    def test_transport_error(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(OrgxApiError, match="request failed"):
            _client(handler).emit_activity({"message": "x"})

    def test_invalid_json(self):
        def handler(request):
            return httpx.Response(200, text="<html>")

        with pytest.raises(OrgxApiError, match="invalid JSON"):
            _client(handler).apply_changeset({"operations": []})

    def test_snapshot_must_be_object(self):
        def handler(request):
            return httpx.Response(200, json=[1, 2])

        with pytest.raises(OrgxApiError):
            _client(handler).get_org_snapshot()
