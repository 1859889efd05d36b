"""Tests for the HMAC token provider (stackforge.identity.tokens)."""

from __future__ import annotations

import json

import pytest

from stackforge.identity import HmacTokenProvider, RejectionReason, TokenProvider
from stackforge.identity.tokens import b64url_decode, b64url_encode, parse_claims

NOW = 1_700_000_000.0


def _resign_payload(token: str, **changes) -> str:
    """Swap claims in the payload while keeping the original signature."""
    header, payload, signature = token.split(".")
    data = json.loads(b64url_decode(payload))
    data.update(changes)
    new_payload = b64url_encode(json.dumps(data).encode("utf-8"))
    return f"{header}.{new_payload}.{signature}"


class TestIssue:
    @pytest.mark.unit
    def test_round_trip_claims(self, hmac_provider):
        token = hmac_provider.issue("alice", ttl=60, now=NOW, email="a@example.com", session_id="s1")
        outcome = hmac_provider.validate_sync(token, NOW)
        assert outcome.ok
        claims = outcome.claims
        assert claims.subject == "alice"
        assert claims.issuer == "builtin"
        assert claims.issued_at == NOW
        assert claims.expires_at == NOW + 60
        assert claims.email == "a@example.com"
        assert claims.session_id == "s1"
        assert claims.external_identity == ("builtin", "alice")

    @pytest.mark.unit
    def test_session_id_generated(self, hmac_provider):
        one = hmac_provider.validate_sync(hmac_provider.issue("a", now=NOW), NOW).claims
        two = hmac_provider.validate_sync(hmac_provider.issue("a", now=NOW), NOW).claims
        assert one.session_id and two.session_id
        assert one.session_id != two.session_id

    @pytest.mark.unit
    def test_empty_secret_rejected(self):
        with pytest.raises(ValueError):
            HmacTokenProvider(issuer="builtin", secret="")

    @pytest.mark.unit
    def test_satisfies_provider_protocol(self, hmac_provider):
        assert isinstance(hmac_provider, TokenProvider)
        assert hmac_provider.name == "builtin"


class TestValidate:
    @pytest.mark.unit
    @pytest.mark.parametrize(
        "token",
        ["", "abc", "a.b", "a..c", "a.b.c.d", "xxx.yyy.zzz"],
    )
    def test_malformed(self, hmac_provider, token):
        assert hmac_provider.validate_sync(token, NOW).reason is RejectionReason.MALFORMED

    @pytest.mark.unit
    def test_wrong_algorithm_is_malformed(self, hmac_provider):
        token = hmac_provider.issue("alice", now=NOW)
        _, payload, signature = token.split(".")
        header = b64url_encode(json.dumps({"alg": "none"}).encode("utf-8"))
        outcome = hmac_provider.validate_sync(f"{header}.{payload}.{signature}", NOW)
        assert outcome.reason is RejectionReason.MALFORMED

    @pytest.mark.unit
    def test_missing_subject_is_malformed(self, hmac_provider):
        token = _resign_payload(hmac_provider.issue("alice", now=NOW), sub="")
        assert hmac_provider.validate_sync(token, NOW).reason is RejectionReason.MALFORMED

    @pytest.mark.unit
    def test_tampered_payload(self, hmac_provider):
        token = _resign_payload(hmac_provider.issue("alice", now=NOW), sub="mallory")
        assert hmac_provider.validate_sync(token, NOW).reason is RejectionReason.BAD_SIGNATURE

    @pytest.mark.unit
    def test_other_secret(self, hmac_provider):
        forged = HmacTokenProvider(issuer="builtin", secret="other").issue("alice", now=NOW)
        assert hmac_provider.validate_sync(forged, NOW).reason is RejectionReason.BAD_SIGNATURE

    @pytest.mark.unit
    def test_other_issuer(self, hmac_provider):
        foreign = HmacTokenProvider(issuer="clerk", secret="test-secret-key").issue("alice", now=NOW)
        outcome = hmac_provider.validate_sync(foreign, NOW)
        assert outcome.reason is RejectionReason.BAD_SIGNATURE
        assert "clerk" in outcome.detail

    @pytest.mark.unit
    def test_expired_at_exact_deadline(self, hmac_provider):
        token = hmac_provider.issue("alice", ttl=60, now=NOW)
        assert hmac_provider.validate_sync(token, NOW + 59).ok
        assert hmac_provider.validate_sync(token, NOW + 60).reason is RejectionReason.EXPIRED

    @pytest.mark.unit
    def test_signature_checked_before_expiry(self, hmac_provider):
        token = _resign_payload(hmac_provider.issue("alice", ttl=1, now=NOW), sub="mallory")
        outcome = hmac_provider.validate_sync(token, NOW + 3600)
        assert outcome.reason is RejectionReason.BAD_SIGNATURE

    @pytest.mark.unit
    def test_leeway(self):
        provider = HmacTokenProvider(issuer="builtin", secret="k", leeway=10)
        token = provider.issue("alice", ttl=60, now=NOW)
        assert provider.validate_sync(token, NOW + 65).ok
        assert provider.validate_sync(token, NOW + 70).reason is RejectionReason.EXPIRED

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_async_validate(self, hmac_provider):
        outcome = await hmac_provider.validate(hmac_provider.issue("alice", now=NOW), NOW)
        assert outcome.ok


class TestParseClaims:
    @pytest.mark.unit
    def test_minimal(self):
        claims = parse_claims({"sub": "a", "iss": "i", "exp": 10})
        assert claims.expires_at == 10.0
        assert claims.issued_at is None
        assert claims.email is None

    @pytest.mark.unit
    def test_null_iat_means_unknown(self):
        assert parse_claims({"sub": "a", "iss": "i", "exp": 10, "iat": None}).issued_at is None

    @pytest.mark.unit
    @pytest.mark.parametrize(
        "payload",
        [
            {"iss": "i", "exp": 10},
            {"sub": "a", "exp": 10},
            {"sub": "a", "iss": "i"},
            {"sub": "a", "iss": "i", "exp": "10"},
            {"sub": "a", "iss": "i", "exp": True},
            {"sub": "a", "iss": "i", "exp": 10, "iat": "yesterday"},
            {"sub": "a", "iss": "i", "exp": 10, "iat": False},
        ],
    )
    def test_invalid(self, payload):
        assert parse_claims(payload) is None
