"""Tests HTTP de la app completa con FastAPI TestClient.

La app usa SQLite en memoria y un upstream simulado con httpx.MockTransport;
el lifespan se ejecuta al entrar en el context manager del cliente.
"""

import time

import httpx
import pytest
from fastapi.testclient import TestClient

from gateway_api.crypto.envelope import EnvelopeCipher, strip_padding
from gateway_api.crypto.token import TokenCodec
from gateway_api.main import create_app

from conftest import make_settings, seal_request


ADMIN_HEADERS = {"X-API-Key": "admin-secret"}


class FakeUpstream:
    """Respuesta configurable del upstream y registro de las URLs pedidas."""

    def __init__(self):
        self.status_code = 200
        self.body = {
            "sources": {
                "vidsrc": {"file": "https://cdn.test/a.m3u8"},
                "embedsu": {"error": "timeout"},
            }
        }
        self.urls = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.urls.append(str(request.url))
        if self.status_code != 200:
            return httpx.Response(self.status_code)
        return httpx.Response(200, json=self.body)


@pytest.fixture
def upstream():
    return FakeUpstream()


@pytest.fixture
def api_settings():
    return make_settings()


@pytest.fixture
def client(api_settings, engine, upstream):
    app = create_app(api_settings, engine=engine, upstream_transport=httpx.MockTransport(upstream))
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def client_cipher(api_settings):
    """Cifrado del lado cliente, con reloj real como el del servidor."""
    return EnvelopeCipher(
        api_settings.primary_key,
        api_settings.secondary_key,
        api_settings.salt,
        api_settings.pepper,
        iterations=api_settings.pbkdf2_iterations,
    )


@pytest.fixture
def client_tokens(api_settings):
    return TokenCodec(api_settings.pepper)


def _encrypted_body(cipher, tokens, settings, **overrides) -> dict:
    overrides.setdefault("timestamp", int(time.time() * 1000))
    envelope = seal_request(cipher, tokens, settings.encryption_key, **overrides)
    return {"sourceStats": envelope.ciphertext, "sourceKey": envelope.iv, "sessionId": envelope.auth_tag}


def _create(client, name, **extra):
    response = client.post("/admin/sources", json={"originalName": name, **extra}, headers=ADMIN_HEADERS)
    assert response.status_code == 201, response.text
    return response.json()


# =============================================================================
# HEALTH
# =============================================================================

class TestHealth:

    def test_health(self, client):
        assert client.get("/health").json() == {"status": "ok"}

    def test_ready(self, client):
        response = client.get("/ready")

        assert response.status_code == 200
        assert response.json() == {"status": "ready"}

    def test_metrics(self, client):
        response = client.get("/metrics")

        assert response.status_code == 200
        assert "gateway_requests_total" in response.text


# =============================================================================
# ENCRYPTED GATEWAY
# =============================================================================

class TestGatewayEndpoint:

    def test_round_trip(self, client, client_cipher, client_tokens, api_settings, upstream):
        _create(client, "vidsrc")
        _create(client, "embedsu")

        response = client.post("/", json=_encrypted_body(client_cipher, client_tokens, api_settings))

        assert response.status_code == 200, response.text
        envelope = response.json()
        body = strip_padding(
            client_cipher.decrypt(envelope["sourceStats"], envelope["sourceKey"], envelope["sessionId"])
        )
        assert body["sources"]["Alpha"] == {"file": "https://cdn.test/a.m3u8"}
        assert body["sources"]["Bravo"] == {"error": "timeout"}
        assert upstream.urls == ["http://upstream.test/xxxlol/movie/550"]

    def test_tv_request_path(self, client, client_cipher, client_tokens, api_settings, upstream):
        body = _encrypted_body(
            client_cipher, client_tokens, api_settings,
            media_type="tv", tmdb_id="1399", season_id="1", episode_id="3",
        )

        response = client.post("/", json=body)

        assert response.status_code == 200
        assert upstream.urls == ["http://upstream.test/xxxlol/tv/1399/1/3"]

    def test_request_updates_stats(self, client, client_cipher, client_tokens, api_settings):
        _create(client, "vidsrc")

        client.post("/", json=_encrypted_body(client_cipher, client_tokens, api_settings))

        stats = client.get("/stats.json").json()
        vidsrc = next(s for s in stats["server_stats"] if s["name"] == "vidsrc")
        assert vidsrc["working"] == 1
        assert stats["global_stats"]["total_requests"] == 1

    @pytest.mark.parametrize(
        "payload",
        [
            {"sourceStats": "aa", "sourceKey": "bb"},
            {"sourceStats": "", "sourceKey": "bb", "sessionId": "cc"},
            ["not", "an", "object"],
        ],
    )
    def test_malformed_envelope(self, client, payload):
        response = client.post("/", json=payload)

        assert response.status_code == 400
        assert response.json() == {"detail": "Invalid request format"}

    def test_body_not_json(self, client):
        response = client.post("/", content=b"{{{", headers={"Content-Type": "application/json"})

        assert response.status_code == 400

    def test_tampered_envelope(self, client, client_cipher, client_tokens, api_settings):
        body = _encrypted_body(client_cipher, client_tokens, api_settings)
        body["sessionId"] = ("0" if body["sessionId"][0] != "0" else "1") + body["sessionId"][1:]

        response = client.post("/", json=body)

        assert response.status_code == 401
        assert response.json() == {"detail": "Unauthorized"}

    def test_bad_token(self, client, client_cipher, client_tokens, api_settings, upstream):
        body = _encrypted_body(client_cipher, client_tokens, api_settings, token="ab" * 32)

        response = client.post("/", json=body)

        assert response.status_code == 401
        assert upstream.urls == []

    def test_expired_token(self, client, client_cipher, client_tokens, api_settings):
        stale = int(time.time() * 1000) - 10 * 60_000
        body = _encrypted_body(client_cipher, client_tokens, api_settings, timestamp=stale)

        response = client.post("/", json=body)

        assert response.status_code == 403
        assert response.json() == {"detail": "Request expired"}

    def test_invalid_payload(self, client, client_cipher, client_tokens, api_settings):
        body = _encrypted_body(client_cipher, client_tokens, api_settings, media_type="anime")

        response = client.post("/", json=body)

        assert response.status_code == 400
        assert response.json() == {"detail": "Invalid request"}

    def test_upstream_forbidden(self, client, client_cipher, client_tokens, api_settings, upstream):
        upstream.status_code = 403

        response = client.post("/", json=_encrypted_body(client_cipher, client_tokens, api_settings))

        assert response.status_code == 502
        assert "domain block" in response.json()["detail"]

    def test_upstream_failure(self, client, client_cipher, client_tokens, api_settings, upstream):
        upstream.status_code = 500

        response = client.post("/", json=_encrypted_body(client_cipher, client_tokens, api_settings))

        assert response.status_code == 502
        assert response.json() == {"detail": "Upstream request failed"}


# =============================================================================
# STATS
# =============================================================================

class TestStatsEndpoints:

    def test_snapshot_json(self, client):
        _create(client, "vidsrc")

        response = client.get("/stats.json")

        assert response.status_code == 200
        assert response.headers["cache-control"].startswith("no-cache")
        data = response.json()
        assert [s["natoName"] for s in data["server_stats"]] == ["Alpha"]
        assert set(data["global_stats"]) >= {"total_requests", "daily", "alltime"}

    def test_server_selection(self, client):
        _create(client, "vidsrc")

        response = client.post("/stats/server-selection", json={"serverName": "vidsrc"})

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["serverName"] == "vidsrc"
        vidsrc = client.get("/stats.json").json()["server_stats"][0]
        assert vidsrc["working"] == 1

    def test_server_selection_explicit_failure(self, client):
        _create(client, "vidsrc")

        client.post("/stats/server-selection", json={"serverName": "vidsrc", "successful": False})

        vidsrc = client.get("/stats.json").json()["server_stats"][0]
        assert (vidsrc["working"], vidsrc["total"]) == (0, 1)

    def test_server_selection_requires_name(self, client):
        response = client.post("/stats/server-selection", json={"successful": True})

        assert response.status_code == 422

    def test_server_selection_blank_name(self, client):
        response = client.post("/stats/server-selection", json={"serverName": "   "})

        assert response.status_code == 400


# =============================================================================
# ADMIN
# =============================================================================

class TestAdminAuth:

    def test_missing_key(self, client):
        response = client.get("/admin/sources")

        assert response.status_code == 401
        assert response.json()["detail"] == "API key required"

    def test_wrong_key(self, client):
        response = client.get("/admin/sources", headers={"X-API-Key": "nope"})

        assert response.status_code == 401

    def test_bearer_token(self, client):
        response = client.get("/admin/sources", headers={"Authorization": "Bearer admin-secret"})

        assert response.status_code == 200

    def test_production_without_key(self, engine, upstream):
        settings = make_settings(admin_api_key=None, environment="production")
        app = create_app(settings, engine=engine, upstream_transport=httpx.MockTransport(upstream))

        with TestClient(app) as client:
            response = client.get("/admin/sources")

        assert response.status_code == 500

    def test_development_without_key(self, engine, upstream):
        settings = make_settings(admin_api_key=None)
        app = create_app(settings, engine=engine, upstream_transport=httpx.MockTransport(upstream))

        with TestClient(app) as client:
            response = client.get("/admin/sources")

        assert response.status_code == 200


class TestAdminSources:

    def test_create_and_list(self, client):
        created = _create(client, "vidsrc", isGrouped=True)

        assert created["natoName"] == "Alpha"
        assert created["isGrouped"] is True
        listed = client.get("/admin/sources", headers=ADMIN_HEADERS).json()
        assert [s["originalName"] for s in listed] == ["vidsrc"]

    def test_create_duplicate(self, client):
        _create(client, "vidsrc")

        response = client.post("/admin/sources", json={"originalName": "vidsrc"}, headers=ADMIN_HEADERS)

        assert response.status_code == 409

    def test_create_alias_outside_pool(self, client):
        response = client.post(
            "/admin/sources",
            json={"originalName": "vidsrc", "natoName": "Omega"},
            headers=ADMIN_HEADERS,
        )

        assert response.status_code == 400

    def test_update(self, client):
        created = _create(client, "vidsrc")

        response = client.put(
            f"/admin/sources/{created['id']}",
            json={"enabled": False, "natoName": "Echo"},
            headers=ADMIN_HEADERS,
        )

        assert response.status_code == 200
        assert response.json()["enabled"] is False
        assert response.json()["natoName"] == "Echo"

    def test_update_missing(self, client):
        response = client.put("/admin/sources/999", json={"enabled": False}, headers=ADMIN_HEADERS)

        assert response.status_code == 404

    def test_delete_renumbers(self, client):
        _create(client, "A")
        b = _create(client, "B")
        _create(client, "C")

        response = client.delete(f"/admin/sources/{b['id']}", headers=ADMIN_HEADERS)

        assert response.status_code == 200
        listed = client.get("/admin/sources", headers=ADMIN_HEADERS).json()
        assert {s["originalName"]: s["natoName"] for s in listed} == {"A": "Alpha", "C": "Bravo"}

    def test_priorities(self, client):
        a = _create(client, "A")
        b = _create(client, "B")

        response = client.post(
            "/admin/sources/priorities",
            json={"updates": [{"id": a["id"], "natoName": "Bravo"}, {"id": b["id"], "natoName": "Alpha"}]},
            headers=ADMIN_HEADERS,
        )

        assert response.status_code == 200
        assert {s["originalName"]: s["natoName"] for s in response.json()} == {"A": "Bravo", "B": "Alpha"}

    def test_priorities_clash(self, client):
        a = _create(client, "A")
        _create(client, "B")

        response = client.post(
            "/admin/sources/priorities",
            json={"updates": [{"id": a["id"], "natoName": "Bravo"}]},
            headers=ADMIN_HEADERS,
        )

        assert response.status_code == 409

    def test_admin_stats(self, client):
        _create(client, "vidsrc")

        response = client.get("/admin/stats", headers=ADMIN_HEADERS)

        assert response.status_code == 200
        assert response.json()["server_stats"][0]["name"] == "vidsrc"
