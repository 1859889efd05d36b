"""Identity Bridge.

Reconciles bearer tokens minted by one auth subsystem with the principal
and session model of the serving application.  Each request walks

    Unauthenticated -> TokenPresented -> Validating -> Authenticated | Rejected

and always ends in a ``BridgeResult``; rejections are never raised.
"""

from __future__ import annotations

import math
import os
import time
from collections.abc import Callable, Mapping, Sequence
from dataclasses import replace

from stackforge.config import IdentityConfig
from stackforge.identity.introspection import IntrospectionTokenProvider
from stackforge.identity.models import (
    BridgeResult,
    BridgeState,
    ProviderOutcome,
    RejectionReason,
    TokenClaims,
)
from stackforge.identity.store import (
    FirstSeenLog,
    InMemoryPrincipalStore,
    PrincipalStore,
    RevocationRegistry,
    ValidationCache,
)
from stackforge.identity.tokens import HmacTokenProvider, TokenProvider

Clock = Callable[[], float]


def extract_bearer_token(headers: Mapping[str, str]) -> str | None:
    """Return the raw ``Authorization`` header value, or ``None`` if absent.

    Header names are matched case-insensitively.
    """
    for name, value in headers.items():
        if name.lower() == "authorization":
            return value
    return None


class IdentityBridge:
    """Validates bearer tokens and maps them to local principals.

    Args:
        providers: Token providers in priority order.  A provider answering
            ``BadSignature`` passes the token on to the next one.
        store: Principal store (in-memory by default).
        revocations: Logout registry (fresh by default).
        cache: Validation cache; ``None`` builds one from *config*.
        config: Identity tuning knobs.
        clock: Time source in seconds since the epoch.
    """

    def __init__(
        self,
        providers: Sequence[TokenProvider],
        *,
        store: PrincipalStore | None = None,
        revocations: RevocationRegistry | None = None,
        cache: ValidationCache | None = None,
        config: IdentityConfig | None = None,
        clock: Clock = time.time,
    ) -> None:
        if not providers:
            raise ValueError("IdentityBridge needs at least one token provider")
        self.config = config or IdentityConfig()
        self.providers = tuple(providers)
        self.store = store if store is not None else InMemoryPrincipalStore()
        self.revocations = revocations if revocations is not None else RevocationRegistry()
        self.cache = (
            cache if cache is not None else ValidationCache(ttl=self.config.cache_ttl, timer=clock)
        )
        self.first_seen = FirstSeenLog(timer=clock)
        self.clock = clock

    @classmethod
    def from_env(cls, config: IdentityConfig | None = None) -> "IdentityBridge":
        """Build a bridge from environment variables.

        ``AUTH_SECRET`` (with optional ``AUTH_ISSUER``) adds an HMAC provider.
        ``AUTH_INTROSPECTION_URL`` (with ``AUTH_CLIENT_ID``/``AUTH_CLIENT_SECRET``)
        adds an introspection provider, consulted first.
        """
        config = config or IdentityConfig()
        issuer = os.environ.get("AUTH_ISSUER", "builtin")
        providers: list[TokenProvider] = []

        introspection_url = os.environ.get("AUTH_INTROSPECTION_URL", "")
        if introspection_url:
            providers.append(
                IntrospectionTokenProvider(
                    introspection_url,
                    issuer=issuer,
                    client_id=os.environ.get("AUTH_CLIENT_ID", ""),
                    client_secret=os.environ.get("AUTH_CLIENT_SECRET", ""),
                    timeout=config.introspection_timeout,
                )
            )

        secret = os.environ.get("AUTH_SECRET", "")
        if secret:
            providers.append(HmacTokenProvider(issuer=issuer, secret=secret, leeway=config.leeway))

        if not providers:
            raise ValueError("AUTH_SECRET or AUTH_INTROSPECTION_URL must be set")
        return cls(providers, config=config)

    # ------------------------------------------------------------------
    # Request path
    # ------------------------------------------------------------------

    async def authenticate(
        self,
        headers: Mapping[str, str],
        *,
        anonymous_permitted: bool = False,
    ) -> BridgeResult:
        """Authenticate one inbound request from its headers."""
        header = extract_bearer_token(headers)
        if header is None or not header.strip():
            if anonymous_permitted:
                return BridgeResult(
                    state=BridgeState.UNAUTHENTICATED,
                    trail=(BridgeState.UNAUTHENTICATED,),
                )
            return self._reject(
                (BridgeState.UNAUTHENTICATED,),
                RejectionReason.MISSING_TOKEN,
                "no bearer token presented",
            )

        scheme, _, token = header.strip().partition(" ")
        token = token.strip()
        trail = (BridgeState.UNAUTHENTICATED, BridgeState.TOKEN_PRESENTED)
        if scheme.lower() != "bearer" or not token or " " in token:
            return self._reject(trail, RejectionReason.MALFORMED, "expected 'Bearer <token>'")

        return await self._validate(token, trail)

    async def authenticate_token(self, token: str | None) -> BridgeResult:
        """Authenticate a token obtained outside of HTTP headers."""
        if not token:
            return self._reject(
                (BridgeState.UNAUTHENTICATED,), RejectionReason.MISSING_TOKEN, "no token"
            )
        return await self._validate(
            token, (BridgeState.UNAUTHENTICATED, BridgeState.TOKEN_PRESENTED)
        )

    async def _validate(self, token: str, trail: tuple[BridgeState, ...]) -> BridgeResult:
        trail = (*trail, BridgeState.VALIDATING)
        now = self.clock()

        claims = self.cache.get(token)
        fresh = claims is None
        if claims is None:
            outcome = await self._run_providers(token, now)
            if not outcome.ok or outcome.claims is None:
                reason = outcome.reason or RejectionReason.MALFORMED
                return self._reject(trail, reason, outcome.detail)
            claims = outcome.claims
            if claims.issued_at is None:
                claims = replace(
                    claims, issued_at=self.first_seen.first_seen(token, claims.expires_at)
                )

        # Re-checked on every request, cached or not
        if now >= claims.expires_at + self.config.leeway:
            return self._reject(trail, RejectionReason.EXPIRED, "token expired")

        # Only provider answers are cached; a hit never extends its own deadline
        if fresh:
            self.cache.put(token, claims)

        known = await self.store.get(claims.external_identity)
        if known is not None and self.revocations.is_revoked(known.id, claims):
            return self._reject(trail, RejectionReason.REVOKED, "session revoked", claims=claims)

        principal, _ = await self.store.get_or_create(claims, now)

        # Checked after the (possibly suspending) store call so a logout that
        # completed meanwhile is honoured
        if self.revocations.is_revoked(principal.id, claims):
            return self._reject(trail, RejectionReason.REVOKED, "session revoked", claims=claims)

        return BridgeResult(
            state=BridgeState.AUTHENTICATED,
            principal=principal,
            claims=claims,
            trail=(*trail, BridgeState.AUTHENTICATED),
        )

    async def _run_providers(self, token: str, now: float) -> ProviderOutcome:
        # Only BadSignature ("not mine") passes the token on; the first such
        # answer is reported if nobody accepts it
        rejections: list[ProviderOutcome] = []
        for provider in self.providers:
            outcome = await provider.validate(token, now)
            if outcome.ok or outcome.reason is not RejectionReason.BAD_SIGNATURE:
                return outcome
            rejections.append(outcome)
        return rejections[0]

    @staticmethod
    def _reject(
        trail: tuple[BridgeState, ...],
        reason: RejectionReason,
        detail: str,
        *,
        claims: TokenClaims | None = None,
    ) -> BridgeResult:
        return BridgeResult(
            state=BridgeState.REJECTED,
            claims=claims,
            reason=reason,
            detail=detail,
            trail=(*trail, BridgeState.REJECTED),
        )

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    def logout(self, principal_id: str) -> None:
        """Revoke every token issued to *principal_id* up to now.

        Takes effect for the next validation; the issuing subsystem is not
        contacted.
        """
        now = self.clock()
        self.revocations.prune(now)
        self.revocations.revoke_principal(principal_id, now)

    def revoke_session(self, session_id: str, expires_at: float | None = None) -> None:
        """Revoke the single session identified by a token's ``sid`` claim.

        With the token's *expires_at* the revocation is forgotten once that
        token would be rejected as expired anyway.
        """
        self.revocations.prune(self.clock())
        until = math.inf if expires_at is None else expires_at + self.config.leeway
        self.revocations.revoke_session(session_id, until)

    def is_active(self, result: BridgeResult) -> bool:
        """Whether an earlier ``Authenticated`` result may still be acted on.

        Call before each privileged action of a long-running request so that
        a logout (or expiry) that happened after validation is honoured.
        """
        if not result.authenticated or result.principal is None or result.claims is None:
            return False
        if self.clock() >= result.claims.expires_at + self.config.leeway:
            return False
        return not self.revocations.is_revoked(result.principal.id, result.claims)

