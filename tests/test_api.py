"""Tests for the HTTP API: FastAPI TestClient with the cache store and auth overridden."""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import openpyxl
import pytest
from fastapi.testclient import TestClient

from vocab_tracker.api.deps import get_authenticator, get_store
from vocab_tracker.core.config import settings
from vocab_tracker.core.models import ServerState
from vocab_tracker.main import app
from tests.conftest import make_workbook_payload, make_worksheet

URL = "https://example.sharepoint.com/:x:/g/vocab"


@pytest.fixture
def authenticator():
    auth = MagicMock()
    auth.start = AsyncMock()
    auth.refresh = AsyncMock(return_value=None)
    auth.poll.return_value = None
    auth.user_code = None
    auth.verification_uri = None
    auth.last_error = None
    return auth


@pytest.fixture
def client(store, authenticator, tmp_path, monkeypatch):
    monkeypatch.setattr(settings, "upload_dir", str(tmp_path / "uploads"))
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_authenticator] = lambda: authenticator
    yield TestClient(app)
    app.dependency_overrides.clear()


def _signed_in(store, sheet_name: str = ""):
    store.save_state(ServerState(
        sheet_url=URL,
        sheet_name=sheet_name,
        token="tok",
        expires_on=datetime.now(timezone.utc) + timedelta(hours=1),
    ))


class TestHealth:
    def test_degraded_without_redis(self, client):
        with patch("vocab_tracker.api.health.redis_client.check_connection", return_value=False):
            resp = client.get("/api/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "degraded"


class TestAuthRoutes:
    def test_status_unauthenticated(self, client):
        resp = client.get("/api/auth/status")
        assert resp.json() == {"authenticated": False, "userCode": None, "verificationUri": None}

    def test_start_returns_user_code(self, client, store, authenticator):
        authenticator.user_code = "ABCD-1234"
        authenticator.verification_uri = "https://microsoft.com/devicelogin"
        resp = client.post("/api/auth/start")
        assert resp.status_code == 200
        assert resp.json()["userCode"] == "ABCD-1234"
        assert store.load_state().user_code == "ABCD-1234"

    def test_start_without_device_code_fails(self, client, authenticator):
        authenticator.last_error = "bad client id"
        resp = client.post("/api/auth/start")
        assert resp.status_code == 500
        assert resp.json()["detail"] == "bad client id"

    def test_poll_stores_token(self, client, store, authenticator):
        authenticator.poll.return_value = ("tok", datetime.now(timezone.utc) + timedelta(hours=1))
        resp = client.get("/api/auth/poll")
        assert resp.json() == {"authenticated": True}
        assert store.load_state().token == "tok"


class TestSheetUrl:
    def test_update_clears_old_cache(self, client, store):
        store.save_state(ServerState(sheet_url=URL))
        store.save_data(URL, {"worksheets": []})

        resp = client.post("/api/sheet/url", json={"sheetUrl": "https://new", "sheetName": "Week 1"})
        body = resp.json()
        assert body["success"] is True
        assert body["cacheCleared"] is True
        assert body["sheetUrl"] == "https://new"
        assert store.get_cached_data(URL) is None

        assert client.get("/api/sheet/url").json() == {"sheetUrl": "https://new", "sheetName": "Week 1"}

    def test_empty_url_rejected(self, client):
        resp = client.post("/api/sheet/url", json={"sheetUrl": ""})
        assert resp.status_code == 400


class TestSheetData:
    def test_cached_data_served_without_auth(self, client, store):
        store.save_state(ServerState(sheet_url=URL))
        store.save_data(URL, {"worksheets": [{"name": "Sheet1", "topics": []}]})
        resp = client.get("/api/sheet/data")
        assert resp.status_code == 200
        assert resp.json()["_cached"] is True

    def test_empty_sheet_name_uses_saved_selection(self, client, store):
        store.save_state(ServerState(sheet_url=URL, sheet_name="Week 1"))
        store.save_data(URL, {"worksheets": [{"name": "Week 1", "topics": []}]}, "Week 1")
        resp = client.get("/api/sheet/data", params={"sheetName": ""})
        assert resp.status_code == 200
        body = resp.json()
        assert body["_cached"] is True
        assert body["_sheets"] == ["Week 1"]
        assert store.load_state().sheet_name == "Week 1"

    def test_expiring_token_is_refreshed(self, client, store, authenticator):
        fresh_expiry = datetime.now(timezone.utc) + timedelta(hours=1)
        authenticator.refresh.return_value = ("fresh-token", fresh_expiry)
        store.save_state(ServerState(
            sheet_url=URL,
            token="old-token",
            expires_on=datetime.now(timezone.utc) + timedelta(minutes=8),
        ))
        store.save_data(URL, {"worksheets": [{"name": "Sheet1", "topics": []}]})

        resp = client.get("/api/sheet/data")
        assert resp.status_code == 200
        authenticator.refresh.assert_awaited_once()
        state = store.load_state()
        assert state.token == "fresh-token"
        assert state.expires_on == fresh_expiry

    def test_missing_sheet_requires_auth(self, client, store):
        store.save_state(ServerState(sheet_url=URL))
        resp = client.get("/api/sheet/data", params={"sheetName": "Week 1"})
        assert resp.status_code == 401
        assert resp.json()["detail"]["missingSheets"] == ["Week 1"]

    def test_no_url_configured(self, client):
        resp = client.get("/api/sheet/data")
        assert resp.status_code == 400

    def test_fetch_and_transform(self, client, store):
        _signed_in(store)
        payload = make_workbook_payload(make_worksheet([[1, "T1", "n", "apple"]], name="Week 1"))
        with patch("vocab_tracker.api.sheets.GraphClient") as graph_cls:
            graph = graph_cls.return_value
            graph.__aenter__ = AsyncMock(return_value=graph)
            graph.__aexit__ = AsyncMock(return_value=None)
            graph.read_workbook = AsyncMock(return_value=payload)
            resp = client.get("/api/sheet/data", params={"sheetName": "Week 1", "refresh": "true"})

        assert resp.status_code == 200
        body = resp.json()
        assert body["_cached"] is False
        assert body["worksheets"][0]["name"] == "[Week 1] Week 1"
        assert body["worksheets"][0]["statistics"]["byFlag"]["new"] == 1
        graph.read_workbook.assert_awaited_once_with(URL, "Week 1")
        assert store.load_state().sheet_name == "Week 1"

    def test_stats_from_cache(self, client, store):
        _signed_in(store)
        resp = client.get("/api/sheet/stats", params={"sheetName": "Week 1"})
        assert resp.status_code == 404
        store.save_stats(URL, {"worksheets": [{"name": "Week 1", "topics": []}]}, "Week 1")
        resp = client.get("/api/sheet/stats", params={"sheetName": "Week 1"})
        assert resp.json()["worksheetStats"][0]["name"] == "Week 1"


class TestWorksheets:
    def test_cached_metadata(self, client, store):
        store.save_state(ServerState(sheet_url=URL))
        store.save_metadata(URL, {"fileName": "vocab.xlsx", "worksheets": [{"name": "Week 1"}]})
        body = client.get("/api/sheet/worksheets").json()
        assert body["_cached"] is True
        assert body["worksheets"] == [{"name": "Week 1"}]

    def test_requires_auth_when_not_cached(self, client, store):
        store.save_state(ServerState(sheet_url=URL))
        assert client.get("/api/sheet/worksheets").status_code == 401


class TestUpload:
    def test_upload_transforms_workbook(self, client, tmp_path):
        wb = openpyxl.Workbook()
        ws = wb.active
        ws.title = "Week 1"
        ws.append(["Order", "Topic", "Flag", "Word"])
        ws.append([1, "Food", "y", "apple"])
        path = tmp_path / "vocab.xlsx"
        wb.save(path)

        with open(path, "rb") as f:
            resp = client.post("/api/sheet/upload", files={"file": ("vocab.xlsx", f)})
        assert resp.status_code == 200
        body = resp.json()
        assert body["fileName"] == "vocab.xlsx"
        assert body["worksheets"][0]["topics"][0]["words"][0]["word"] == "apple"
        assert body["worksheets"][0]["statistics"]["byFlag"]["known"] == 1

    def test_rejects_non_excel(self, client):
        resp = client.post("/api/sheet/upload", files={"file": ("notes.txt", b"hello")})
        assert resp.status_code == 400
