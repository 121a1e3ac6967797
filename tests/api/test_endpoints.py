import base64

import pytest
from fastapi.testclient import TestClient
from unittest.mock import AsyncMock

from trip_import.api import create_app
from trip_import.api.dependencies import (
    get_entitlement_store,
    get_feature_gate,
    get_gateway,
    get_import_coordinator,
)
from trip_import.auth import InMemoryRateLimiter, RateLimitResult, get_rate_limiter, get_supabase_client, verify_current_user
from trip_import.entitlements import FeatureGate, InMemoryEntitlementStore
from trip_import.extraction import CanonicalExtractor
from trip_import.imports import ImportQueue, ImportQueueCoordinator, InMemoryImportStore
from trip_import.ocr import TextAcquisitionLayer
from tests.fakes import FakeAdapter, make_gateway

AUTH = {"Authorization": "Bearer valid_token"}


def _b64(text: str) -> str:
    return base64.b64encode(text.encode("utf-8")).decode("ascii")


class ExhaustedLimiter:
    def consume(self, user_id, operation, limit, window_ms=0):
        return RateLimitResult(allowed=False, remaining=0, reset_at=1_767_225_600_000)


@pytest.fixture
def entitlement_store():
    return InMemoryEntitlementStore()


@pytest.fixture
def gateway(flight_reply):
    return make_gateway(
        openrouter=FakeAdapter("openrouter", reply=flight_reply),
        gemini=FakeAdapter("gemini", reply={"travel_tip": "Chegue cedo"}),
    )


@pytest.fixture
def app(mock_current_user, entitlement_store, gateway):
    app = create_app(use_lifespan=False)
    gate = FeatureGate(entitlement_store, self_service_enabled=False, rollout_percent=0, rollout_features=[])
    limiter = InMemoryRateLimiter()
    coordinator = ImportQueueCoordinator(
        ImportQueue(),
        InMemoryImportStore(),
        TextAcquisitionLayer(gateway),
        CanonicalExtractor(gateway),
    )

    app.dependency_overrides[verify_current_user] = lambda: mock_current_user
    app.dependency_overrides[get_gateway] = lambda: gateway
    app.dependency_overrides[get_entitlement_store] = lambda: entitlement_store
    app.dependency_overrides[get_feature_gate] = lambda: gate
    app.dependency_overrides[get_rate_limiter] = lambda: limiter
    app.dependency_overrides[get_import_coordinator] = lambda: coordinator
    return app


@pytest.fixture
def client(app):
    return TestClient(app)


class TestEnvelope:
    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "ok"
        assert response.headers["X-Request-ID"]

    def test_missing_token(self, app):
        """No bearer token: UNAUTHORIZED envelope, Supabase never called"""
        supabase = AsyncMock()
        app.dependency_overrides.pop(verify_current_user)
        app.dependency_overrides[get_supabase_client] = lambda: supabase

        response = TestClient(app).post("/v1/extract-reservation", json={"text": "voo"})

        assert response.status_code == 401
        error = response.json()["error"]
        assert error["code"] == "UNAUTHORIZED"
        assert error["requestId"] == response.headers["X-Request-ID"]
        supabase.auth.get_user.assert_not_called()

    def test_supabase_not_configured(self, app):
        app.dependency_overrides.pop(verify_current_user)

        response = TestClient(app).post("/v1/extract-reservation", json={"text": "voo"}, headers=AUTH)

        assert response.status_code == 500
        assert response.json()["error"]["code"] == "MISCONFIGURED"

    def test_validation_error(self, client):
        response = client.post("/v1/extract-reservation", json={"text": ""}, headers=AUTH)

        assert response.status_code == 400
        error = response.json()["error"]
        assert error["code"] == "BAD_REQUEST"
        assert error["details"]["errors"]

    def test_blank_text_rejected_before_providers(self, app):
        adapter = FakeAdapter("openrouter", reply={})
        app.dependency_overrides[get_gateway] = lambda: make_gateway(openrouter=adapter)

        response = TestClient(app).post("/v1/extract-reservation", json={"text": "   \n\t "}, headers=AUTH)

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "BAD_REQUEST"
        assert adapter.calls == []

    def test_ai_flag_off(self, client, entitlement_store):
        entitlement_store.overrides[("user-123", "ff_ai_import_enabled")] = {
            "feature_key": "ff_ai_import_enabled",
            "enabled": False,
            "limit_value": None,
        }

        response = client.post("/v1/extract-reservation", json={"text": "voo"}, headers=AUTH)

        assert response.status_code == 403
        error = response.json()["error"]
        assert error["code"] == "UNAUTHORIZED"
        assert error["details"]["featureKey"] == "ff_ai_import_enabled"
        assert entitlement_store.usage_events[0]["metadata"]["status"] == "blocked"

    def test_rate_limited(self, app):
        app.dependency_overrides[get_rate_limiter] = lambda: ExhaustedLimiter()

        response = TestClient(app).post("/v1/extract-reservation", json={"text": "voo"}, headers=AUTH)

        assert response.status_code == 429
        error = response.json()["error"]
        assert error["code"] == "RATE_LIMITED"
        assert error["details"]["resetAt"].startswith("2026-01-01")


class TestExtractReservation:
    def test_success(self, client, latam_text, entitlement_store):
        response = client.post(
            "/v1/extract-reservation",
            json={"text": latam_text, "fileName": "boarding.txt"},
            headers=AUTH,
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["type"] == "flight"
        assert data["scope"] == "trip_related"
        assert data["provider_meta"]["selected"] == "openrouter"
        assert entitlement_store.usage_events[0]["metadata"]["operation"] == "extract-reservation"


class TestOcrDocument:
    def test_text_file(self, client, latam_text):
        response = client.post(
            "/v1/ocr-document",
            json={"fileBase64": _b64(latam_text), "fileName": "boarding.txt", "mimeType": "text/plain"},
            headers=AUTH,
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["method"] == "native_text"
        assert "LA3405" in data["text"]

    def test_invalid_base64(self, client):
        response = client.post(
            "/v1/ocr-document",
            json={"fileBase64": "***", "fileName": "scan.png"},
            headers=AUTH,
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "BAD_REQUEST"


class TestEnrichment:
    def test_generate_tips_falls_back(self, client):
        """openrouter answers with a flight payload, so gemini's tips win"""
        response = client.post("/v1/generate-tips", json={"hotelName": "Hotel Fasano"}, headers=AUTH)

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["travelTip"] == "Chegue cedo"
        assert data["provider_meta"]["selected"] == "gemini"

    def test_suggest_restaurants_upstream_error(self, client):
        response = client.post("/v1/suggest-restaurants", json={"city": "Lima"}, headers=AUTH)

        assert response.status_code == 502
        error = response.json()["error"]
        assert error["code"] == "UPSTREAM_ERROR"
        assert len(error["details"]["warnings"]) == 2


class TestFeatureEntitlements:
    def test_get_context(self, client):
        response = client.post("/v1/feature-entitlements", json={}, headers=AUTH)

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["planTier"] == "free"
        assert "userId" not in data

    def test_self_service_disabled(self, client):
        response = client.post(
            "/v1/feature-entitlements",
            json={"action": "set_plan_tier", "planTier": "pro"},
            headers=AUTH,
        )

        assert response.status_code == 403
        assert response.json()["error"]["code"] == "UNAUTHORIZED"

    def test_set_plan_tier(self, app, entitlement_store):
        app.dependency_overrides[get_feature_gate] = lambda: FeatureGate(
            entitlement_store, self_service_enabled=True, rollout_percent=0, rollout_features=[]
        )

        response = TestClient(app).post(
            "/v1/feature-entitlements",
            json={"action": "set_plan_tier", "planTier": "pro"},
            headers=AUTH,
        )

        assert response.status_code == 200
        assert response.json()["data"]["planTier"] == "pro"
        assert entitlement_store.plan_events[0]["new_tier"] == "pro"

    def test_track_event(self, client, entitlement_store):
        response = client.post(
            "/v1/feature-entitlements",
            json={"action": "track_event", "eventName": "export_triggered"},
            headers=AUTH,
        )

        data = response.json()["data"]
        assert data["featureKey"] == "ff_export_json_full"
        assert data["status"] == "blocked"
        assert entitlement_store.usage_events[0]["metadata"]["source"] == "client"

    def test_usage_summary(self, client):
        client.post("/v1/extract-reservation", json={"text": "voo LA3405 GRU-EZE 2026-03-10"}, headers=AUTH)

        response = client.post(
            "/v1/feature-entitlements",
            json={"action": "usage_summary", "days": 500},
            headers=AUTH,
        )

        summary = response.json()["data"]["usageSummary"]
        assert summary["windowDays"] == 90
        assert summary["aiMetrics"]["requestCount"] == 1


class TestImports:
    def _import(self, client, text):
        return client.post(
            "/v1/imports",
            json={"fileBase64": _b64(text), "fileName": "boarding.txt", "mimeType": "text/plain", "tripId": "trip-1"},
            headers=AUTH,
        )

    def test_import_confirm_and_duplicate(self, client, latam_text):
        created = self._import(client, latam_text)

        assert created.status_code == 201
        item = created.json()["data"]
        assert item["status"] == "auto_extracted"
        assert item["visualSteps"]["identified"] == "completed"

        fetched = client.get(f"/v1/imports/{item['id']}", headers=AUTH)
        assert fetched.json()["data"]["id"] == item["id"]

        confirmed = client.post(f"/v1/imports/{item['id']}/confirm", headers=AUTH)
        assert confirmed.json()["data"]["status"] == "saved"

        again = self._import(client, latam_text).json()["data"]
        assert again["status"] == "saved"
        assert again["documentId"] == item["documentId"]

    def test_reprocess_limit(self, client, latam_text):
        item = self._import(client, latam_text).json()["data"]

        statuses = [
            client.post(f"/v1/imports/{item['id']}/reprocess", headers=AUTH).status_code
            for _ in range(4)
        ]

        assert statuses == [200, 200, 200, 403]

    def test_invalid_override(self, client, latam_text):
        item = self._import(client, latam_text).json()["data"]

        response = client.post(
            f"/v1/imports/{item['id']}/confirm",
            json={"canonical": {"metadata": {"confidence": 500}}},
            headers=AUTH,
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "BAD_REQUEST"

    def test_unknown_item(self, client):
        response = client.get("/v1/imports/does-not-exist", headers=AUTH)

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "BAD_REQUEST"

    def test_confirm_twice(self, client, latam_text):
        item = self._import(client, latam_text).json()["data"]
        client.post(f"/v1/imports/{item['id']}/confirm", headers=AUTH)

        response = client.post(f"/v1/imports/{item['id']}/confirm", headers=AUTH)

        assert response.status_code == 400

    def test_duplicate_does_not_spend_quota(self, app, client, latam_text):
        item = self._import(client, latam_text).json()["data"]
        client.post(f"/v1/imports/{item['id']}/confirm", headers=AUTH)
        app.dependency_overrides[get_rate_limiter] = lambda: ExhaustedLimiter()

        responses = [self._import(client, latam_text) for _ in range(25)]

        assert {response.status_code for response in responses} == {201}
        assert {response.json()["data"]["status"] for response in responses} == {"saved"}
        assert self._import(client, latam_text + " novo").status_code == 429

    def test_list_imports(self, client, latam_text, grocery_text):
        first = self._import(client, latam_text).json()["data"]
        second = self._import(client, grocery_text).json()["data"]

        response = client.get("/v1/imports", headers=AUTH)

        assert response.status_code == 200
        assert [item["id"] for item in response.json()["data"]] == [first["id"], second["id"]]
