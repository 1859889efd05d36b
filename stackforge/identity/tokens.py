"""Token providers: the capability interface and an HMAC implementation.

Each auth subsystem plugs into the bridge as a ``TokenProvider``.  The
bridge only ever calls ``validate``; it never depends on a concrete
provider.

``HmacTokenProvider`` handles compact HS256 tokens of the form
``base64url(header).base64url(payload).base64url(signature)`` with the
claims ``sub``, ``iss``, ``exp``, ``iat`` and optional ``email``/``sid``.
Checks run in order: structure, then signature, then expiry.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import json
import time
import uuid
from typing import Any, Protocol, runtime_checkable

from stackforge.identity.models import ProviderOutcome, RejectionReason, TokenClaims


@runtime_checkable
class TokenProvider(Protocol):
    """Capability interface implemented by every auth subsystem."""

    name: str

    async def validate(self, token: str, now: float) -> ProviderOutcome:
        """Validate *token* at time *now* (seconds since the epoch)."""
        ...


# ---------------------------------------------------------------------------
# Encoding helpers
# ---------------------------------------------------------------------------


def b64url_encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def b64url_decode(segment: str) -> bytes:
    padding = "=" * (-len(segment) % 4)
    return base64.urlsafe_b64decode(segment + padding)


def _decode_json_segment(segment: str) -> dict[str, Any] | None:
    try:
        data = json.loads(b64url_decode(segment))
    except (binascii.Error, ValueError):
        return None
    return data if isinstance(data, dict) else None


def parse_claims(payload: dict[str, Any]) -> TokenClaims | None:
    """Build ``TokenClaims`` from a decoded payload, or ``None`` if malformed."""
    sub = payload.get("sub")
    iss = payload.get("iss")
    exp = payload.get("exp")
    iat = payload.get("iat")
    if not isinstance(sub, str) or not sub:
        return None
    if not isinstance(iss, str) or not iss:
        return None
    if isinstance(exp, bool) or not isinstance(exp, (int, float)):
        return None
    if iat is not None and (isinstance(iat, bool) or not isinstance(iat, (int, float))):
        return None
    email = payload.get("email")
    sid = payload.get("sid")
    return TokenClaims(
        subject=sub,
        issuer=iss,
        expires_at=float(exp),
        issued_at=float(iat) if iat is not None else None,
        email=email if isinstance(email, str) else None,
        session_id=sid if isinstance(sid, str) else None,
    )


# ---------------------------------------------------------------------------
# HMAC provider
# ---------------------------------------------------------------------------


class HmacTokenProvider:
    """Validates (and issues) HS256 tokens signed with a shared secret.

    Tokens whose ``iss`` claim differs from this provider's issuer are
    rejected with ``BadSignature``: this provider holds no key material for
    them, which lets the bridge fall through to the next provider.
    """

    algorithm = "HS256"

    def __init__(
        self,
        issuer: str,
        secret: str | bytes,
        *,
        name: str | None = None,
        leeway: float = 0.0,
    ) -> None:
        if not secret:
            raise ValueError("HmacTokenProvider requires a non-empty secret")
        self.issuer = issuer
        self.name = name or issuer
        self.leeway = leeway
        self._key = secret.encode("utf-8") if isinstance(secret, str) else secret

    # -- Issuing -----------------------------------------------------------

    def issue(
        self,
        subject: str,
        *,
        ttl: float = 3600.0,
        now: float | None = None,
        email: str | None = None,
        session_id: str | None = None,
    ) -> str:
        """Mint a signed token for *subject* valid for *ttl* seconds."""
        issued_at = time.time() if now is None else now
        payload: dict[str, Any] = {
            "sub": subject,
            "iss": self.issuer,
            "iat": issued_at,
            "exp": issued_at + ttl,
            "sid": session_id or uuid.uuid4().hex,
        }
        if email is not None:
            payload["email"] = email
        header = {"alg": self.algorithm, "typ": "JWT"}
        signing_input = ".".join(
            b64url_encode(json.dumps(part, separators=(",", ":"), sort_keys=True).encode("utf-8"))
            for part in (header, payload)
        )
        return f"{signing_input}.{b64url_encode(self._sign(signing_input))}"

    # -- Validation --------------------------------------------------------

    async def validate(self, token: str, now: float) -> ProviderOutcome:
        return self.validate_sync(token, now)

    def validate_sync(self, token: str, now: float) -> ProviderOutcome:
        parts = token.split(".")
        if len(parts) != 3 or not all(parts):
            return ProviderOutcome.reject(RejectionReason.MALFORMED, "expected three segments")

        header = _decode_json_segment(parts[0])
        payload = _decode_json_segment(parts[1])
        if header is None or payload is None:
            return ProviderOutcome.reject(RejectionReason.MALFORMED, "undecodable segment")
        if header.get("alg") != self.algorithm:
            return ProviderOutcome.reject(
                RejectionReason.MALFORMED, f"unsupported algorithm {header.get('alg')!r}"
            )
        claims = parse_claims(payload)
        if claims is None:
            return ProviderOutcome.reject(RejectionReason.MALFORMED, "missing or invalid claims")

        try:
            signature = b64url_decode(parts[2])
        except (binascii.Error, ValueError):
            return ProviderOutcome.reject(RejectionReason.MALFORMED, "undecodable signature")

        if claims.issuer != self.issuer:
            return ProviderOutcome.reject(
                RejectionReason.BAD_SIGNATURE, f"unknown issuer {claims.issuer!r}"
            )
        expected = self._sign(f"{parts[0]}.{parts[1]}")
        if not hmac.compare_digest(signature, expected):
            return ProviderOutcome.reject(RejectionReason.BAD_SIGNATURE, "signature mismatch")

        if now >= claims.expires_at + self.leeway:
            return ProviderOutcome.reject(RejectionReason.EXPIRED, "token expired")

        return ProviderOutcome.accept(claims)

    def _sign(self, signing_input: str) -> bytes:
        return hmac.new(self._key, signing_input.encode("ascii"), hashlib.sha256).digest()
