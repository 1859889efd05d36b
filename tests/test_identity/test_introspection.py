"""Tests for the introspection-backed token provider.

Uses ``httpx.MockTransport`` in place of a live auth server.
"""

from __future__ import annotations

from urllib.parse import parse_qs

import httpx
import pytest

from stackforge.identity import (
    IdentityBridge,
    IntrospectionTokenProvider,
    RejectionReason,
)

NOW = 1_700_000_000.0
URL = "https://auth.example.com/realms/demo/protocol/openid-connect/token/introspect"


def _provider(handler) -> IntrospectionTokenProvider:
    return IntrospectionTokenProvider(
        URL,
        issuer="keycloak",
        client_id="server",
        client_secret="server-secret",
        transport=httpx.MockTransport(handler),
    )


def _respond(payload, status: int = 200):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status, json=payload)

    return handler


class TestIntrospectionProvider:
    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_active_token(self):
        seen: dict = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["form"] = parse_qs(request.content.decode())
            seen["auth"] = request.headers.get("authorization", "")
            return httpx.Response(
                200,
                json={
                    "active": True,
                    "sub": "user-1",
                    "exp": NOW + 300,
                    "iat": NOW - 10,
                    "email": "u@example.com",
                    "sid": "sess-9",
                },
            )

        outcome = await _provider(handler).validate("opaque-token", NOW)

        assert outcome.ok
        assert outcome.claims.subject == "user-1"
        assert outcome.claims.issuer == "keycloak"
        assert outcome.claims.session_id == "sess-9"
        assert seen["form"]["token"] == ["opaque-token"]
        assert seen["auth"].startswith("Basic ")

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_inactive_token(self):
        outcome = await _provider(_respond({"active": False})).validate("t", NOW)
        assert outcome.reason is RejectionReason.BAD_SIGNATURE

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_inactive_because_expired(self):
        payload = {"active": False, "sub": "user-1", "exp": NOW - 1}
        outcome = await _provider(_respond(payload)).validate("t", NOW)
        assert outcome.reason is RejectionReason.EXPIRED

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_active_but_past_expiry(self):
        payload = {"active": True, "sub": "user-1", "exp": NOW}
        outcome = await _provider(_respond(payload)).validate("t", NOW)
        assert outcome.reason is RejectionReason.EXPIRED

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_active_without_subject(self):
        outcome = await _provider(_respond({"active": True, "exp": NOW + 60})).validate("t", NOW)
        assert outcome.reason is RejectionReason.MALFORMED

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_foreign_issuer(self):
        payload = {"active": True, "sub": "user-1", "exp": NOW + 60, "iss": "someone-else"}
        outcome = await _provider(_respond(payload)).validate("t", NOW)
        assert outcome.reason is RejectionReason.BAD_SIGNATURE

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_server_error(self):
        outcome = await _provider(_respond({"error": "boom"}, status=500)).validate("t", NOW)
        assert outcome.reason is RejectionReason.BAD_SIGNATURE
        assert "introspection failed" in outcome.detail

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_unreachable(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        outcome = await _provider(handler).validate("t", NOW)
        assert outcome.reason is RejectionReason.BAD_SIGNATURE

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_non_object_response(self):
        outcome = await _provider(_respond(["active"])).validate("t", NOW)
        assert outcome.reason is RejectionReason.BAD_SIGNATURE

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_whitespace_token_never_sent(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(200, json={"active": True})

        outcome = await _provider(handler).validate("two words", NOW)
        assert outcome.reason is RejectionReason.MALFORMED
        assert calls == []


class TestBridgeWithIntrospection:
    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_unknown_to_introspection_falls_back_to_hmac(self, hmac_provider, clock):
        introspection = _provider(_respond({"active": False}))
        bridge = IdentityBridge([introspection, hmac_provider], clock=clock)
        token = hmac_provider.issue("alice", now=clock())

        result = await bridge.authenticate({"Authorization": f"Bearer {token}"})

        assert result.authenticated
        assert result.principal.issuer == "builtin"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_introspected_principal(self, clock):
        payload = {"active": True, "sub": "kc-user", "exp": clock() + 300, "iat": clock()}
        bridge = IdentityBridge([_provider(_respond(payload))], clock=clock)

        result = await bridge.authenticate({"Authorization": "Bearer opaque"})

        assert result.authenticated
        assert result.principal.external_id == "kc-user"
        assert result.principal.issuer == "keycloak"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_login_again_after_logout_without_iat(self, clock):
        def handler(request: httpx.Request) -> httpx.Response:
            token = parse_qs(request.content.decode())["token"][0]
            return httpx.Response(
                200, json={"active": True, "sub": "kc-user", "exp": NOW + 3600, "sid": token}
            )

        bridge = IdentityBridge([_provider(handler)], clock=clock)
        first = await bridge.authenticate({"Authorization": "Bearer t1"})
        assert first.authenticated
        assert first.claims.issued_at == clock()

        bridge.logout(first.principal_id)
        clock.advance(10)

        second = await bridge.authenticate({"Authorization": "Bearer t2"})
        assert second.authenticated
        assert second.principal_id == first.principal_id

        # The logged-out token stays revoked, even once re-introspected
        assert (await bridge.authenticate({"Authorization": "Bearer t1"})).reason is (
            RejectionReason.REVOKED
        )
        clock.advance(120)
        assert (await bridge.authenticate({"Authorization": "Bearer t1"})).reason is (
            RejectionReason.REVOKED
        )
        assert (await bridge.authenticate({"Authorization": "Bearer t2"})).authenticated
