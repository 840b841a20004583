"""
Cross-cutting HTTP behaviour: authentication, error envelopes and health.
"""
from datetime import datetime, timedelta, timezone

from jose import jwt

from shared.observability.setup import service_context
from shared.security import MANAGE_ORDERS, create_access_token, decode_access_token, verify_api_key
from shared.security import api_key, jwt_handler


def _signed(payload):
    payload = {"exp": datetime.now(timezone.utc) + timedelta(minutes=5), **payload}
    return jwt.encode(payload, jwt_handler.SECRET_KEY, algorithm=jwt_handler.ALGORITHM)


class TestErrorEnvelope:

    async def test_missing_token(self, client):
        resp = await client.get("/orders")
        assert resp.status_code == 401
        assert resp.json() == {"error": "Could not validate credentials"}
        assert resp.headers["WWW-Authenticate"] == "Bearer"

    async def test_expired_token(self, client):
        token = create_access_token("user-1", expires_delta=timedelta(minutes=-1))
        resp = await client.get("/balance", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 401

    async def test_token_without_subject(self, client):
        token = _signed({"permissions": [MANAGE_ORDERS]})
        resp = await client.get("/orders", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 401

    async def test_request_validation_is_a_400(self, client, auth_headers):
        resp = await client.post("/orders", json={"items": "nope"}, headers=auth_headers("user-1"))
        assert resp.status_code == 400
        body = resp.json()
        assert body["error"] == "Invalid request"
        assert isinstance(body["details"], list)
        assert body["details"]

    async def test_unknown_route(self, client):
        resp = await client.get("/does-not-exist")
        assert resp.status_code == 404
        assert resp.json() == {"error": "Not Found"}

    async def test_unexpected_errors_hide_internals(self, client, auth_headers, services, monkeypatch):
        async def explode(*args, **kwargs):
            raise RuntimeError("connection string postgres://secret")

        monkeypatch.setattr(services.orders, "list_orders", explode)

        resp = await client.get("/orders", headers=auth_headers("user-1"))

        assert resp.status_code == 500
        assert resp.json() == {"error": "Internal server error"}
        assert "secret" not in resp.text

    async def test_settings_require_permission(self, client, auth_headers):
        resp = await client.patch("/settings/order-limits", json={"minOrderAmountUSD": 5},
                                  headers=auth_headers("user-1", "MANAGE_ORDERS"))
        assert resp.status_code == 403
        assert resp.json() == {"error": "Not authorized"}


class TestHealth:

    async def test_health(self, client):
        resp = await client.get("/health")
        assert resp.status_code == 200
        assert resp.json() == {"service": "storefront", "status": "running"}

    async def test_metrics_are_exposed(self, client):
        resp = await client.get("/metrics")
        assert resp.status_code == 200
        assert "ecomm_checkout_total" in resp.text

    def test_log_lines_carry_the_service(self):
        add_service = service_context("storefront", "staging")
        event = add_service(None, "info", {"event": "order_created"})
        assert event == {"event": "order_created", "service": "storefront", "env": "staging"}


class TestCredentials:

    def test_claims_round_trip(self):
        claims = decode_access_token(create_access_token("user-1", [MANAGE_ORDERS, MANAGE_ORDERS]))
        assert claims.user_id == "user-1"
        assert claims.permissions == frozenset({MANAGE_ORDERS})

    def test_malformed_permissions_grant_nothing(self):
        claims = decode_access_token(_signed({"sub": "user-1", "permissions": "MANAGE_ORDERS"}))
        assert claims.permissions == frozenset()

    def test_tampered_token_is_rejected(self):
        token = jwt.encode({"sub": "user-1"}, "another-secret", algorithm="HS256")
        assert decode_access_token(token) is None

    def test_internal_key(self, monkeypatch):
        assert verify_api_key("test-internal-key") is True
        assert verify_api_key("wrong") is False
        assert verify_api_key(None) is False

        monkeypatch.setattr(api_key, "INTERNAL_API_KEY", "")
        assert verify_api_key("") is False
        assert verify_api_key("anything") is False
