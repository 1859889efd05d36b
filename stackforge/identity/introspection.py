"""Token provider backed by an OAuth 2.0 introspection endpoint (RFC 7662).

Used for hosted auth subsystems (Keycloak and friends) whose tokens the
serving application cannot verify locally.  Uses ``httpx.AsyncClient`` so
the call integrates with the async request path.
"""

from __future__ import annotations

import httpx

from stackforge.identity.models import ProviderOutcome, RejectionReason
from stackforge.identity.tokens import parse_claims


class IntrospectionTokenProvider:
    """Asks the issuing subsystem whether a token is active.

    An unreachable or misbehaving endpoint cannot vouch for the token's
    integrity, so it yields ``BadSignature`` rather than an exception.
    """

    def __init__(
        self,
        introspection_url: str,
        *,
        issuer: str,
        client_id: str,
        client_secret: str,
        name: str | None = None,
        timeout: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.introspection_url = introspection_url
        self.issuer = issuer
        self.name = name or issuer
        self.timeout = timeout
        self._auth = (client_id, client_secret)
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        """Return a fresh ``AsyncClient`` configured with our timeout."""
        return httpx.AsyncClient(
            timeout=httpx.Timeout(self.timeout, connect=min(self.timeout, 3.0)),
            transport=self._transport,
        )

    async def validate(self, token: str, now: float) -> ProviderOutcome:
        if not token or any(ch.isspace() for ch in token):
            return ProviderOutcome.reject(RejectionReason.MALFORMED, "token contains whitespace")

        try:
            async with self._client() as client:
                response = await client.post(
                    self.introspection_url,
                    data={"token": token, "token_type_hint": "access_token"},
                    auth=self._auth,
                )
                response.raise_for_status()
                data = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            return ProviderOutcome.reject(
                RejectionReason.BAD_SIGNATURE, f"introspection failed: {exc}"
            )

        if not isinstance(data, dict):
            return ProviderOutcome.reject(RejectionReason.BAD_SIGNATURE, "unexpected response")

        payload = {"iss": self.issuer, **data}
        claims = parse_claims(payload) if "exp" in data else None

        if not data.get("active"):
            if claims is not None and now >= claims.expires_at:
                return ProviderOutcome.reject(RejectionReason.EXPIRED, "token expired")
            return ProviderOutcome.reject(RejectionReason.BAD_SIGNATURE, "token not active")

        if claims is None:
            return ProviderOutcome.reject(RejectionReason.MALFORMED, "missing or invalid claims")
        if claims.issuer != self.issuer:
            return ProviderOutcome.reject(
                RejectionReason.BAD_SIGNATURE, f"unknown issuer {claims.issuer!r}"
            )
        if now >= claims.expires_at:
            return ProviderOutcome.reject(RejectionReason.EXPIRED, "token expired")
        return ProviderOutcome.accept(claims)
