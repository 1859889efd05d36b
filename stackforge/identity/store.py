"""Principal store, revocation registry and validation cache.

The principal store maps a stable external identity ``(issuer, subject)``
to the serving subsystem's principal.  ``get_or_create`` is atomic per
external identity: concurrent first-time validations for the same identity
create exactly one principal, while different identities never wait on
each other.
"""

from __future__ import annotations

import asyncio
import hashlib
import math
import time
import uuid
from abc import ABC, abstractmethod
from collections.abc import Callable

import cachetools

from stackforge.identity.models import Principal, TokenClaims

ExternalIdentity = tuple[str, str]


# ---------------------------------------------------------------------------
# Principal store
# ---------------------------------------------------------------------------


class PrincipalStore(ABC):
    """Storage backend for mapped principals."""

    @abstractmethod
    async def get(self, identity: ExternalIdentity) -> Principal | None:
        """Return the principal mapped to *identity*, if any."""

    @abstractmethod
    async def get_by_id(self, principal_id: str) -> Principal | None:
        """Return the principal with *principal_id*, if any."""

    @abstractmethod
    async def get_or_create(self, claims: TokenClaims, now: float) -> tuple[Principal, bool]:
        """Atomically fetch or create the principal for ``claims.external_identity``.

        Returns the principal and whether it was created by this call.
        """


class InMemoryPrincipalStore(PrincipalStore):
    """Process-local store with one ``asyncio.Lock`` per external identity.

    A lock only exists while that identity's principal is being created.
    """

    def __init__(self, id_factory: Callable[[], str] | None = None) -> None:
        self._principals: dict[ExternalIdentity, Principal] = {}
        self._by_id: dict[str, Principal] = {}
        self._locks: dict[ExternalIdentity, asyncio.Lock] = {}
        self._id_factory = id_factory or (lambda: uuid.uuid4().hex)
        self.created_count = 0

    def __len__(self) -> int:
        return len(self._principals)

    async def get(self, identity: ExternalIdentity) -> Principal | None:
        return self._principals.get(identity)

    async def get_by_id(self, principal_id: str) -> Principal | None:
        return self._by_id.get(principal_id)

    async def get_or_create(self, claims: TokenClaims, now: float) -> tuple[Principal, bool]:
        identity = claims.external_identity
        existing = self._principals.get(identity)
        if existing is not None:
            return existing, False

        lock = self._locks.setdefault(identity, asyncio.Lock())
        async with lock:
            existing = self._principals.get(identity)
            if existing is not None:
                return existing, False

            principal = Principal(
                id=self._id_factory(),
                issuer=claims.issuer,
                external_id=claims.subject,
                created_at=now,
                email=claims.email,
            )
            await self._persist(principal)
            self._principals[identity] = principal
            self._by_id[principal.id] = principal
            self.created_count += 1
            # Later callers take the fast path above; waiters still hold the lock object
            self._locks.pop(identity, None)
            return principal, True

    async def _persist(self, principal: Principal) -> None:
        """Hook for subclasses that write through to durable storage."""


# ---------------------------------------------------------------------------
# Revocation
# ---------------------------------------------------------------------------


class RevocationRegistry:
    """Local record of logouts.

    ``revoke_principal`` stores a watermark: every token for that principal
    issued at or before the watermark is revoked, whatever its expiry.
    Session revocations are kept until the revoked token's own expiry and
    dropped by ``prune`` after that.  Updates are plain dict writes with no
    suspension point, so they are visible to the next validation on the
    event loop.
    """

    def __init__(self) -> None:
        self._principal_watermarks: dict[str, float] = {}
        self._sessions: dict[str, float] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def revoke_principal(self, principal_id: str, at: float) -> None:
        current = self._principal_watermarks.get(principal_id, float("-inf"))
        self._principal_watermarks[principal_id] = max(current, at)

    def revoke_session(self, session_id: str, expires_at: float = math.inf) -> None:
        """Revoke *session_id* until *expires_at* (the token's ``exp``)."""
        current = self._sessions.get(session_id, float("-inf"))
        self._sessions[session_id] = max(current, expires_at)

    def prune(self, now: float) -> int:
        """Forget session revocations whose tokens have expired."""
        stale = [sid for sid, until in self._sessions.items() if now >= until]
        for sid in stale:
            del self._sessions[sid]
        return len(stale)

    def is_revoked(self, principal_id: str, claims: TokenClaims) -> bool:
        """Whether *claims* fall under a session revocation or a logout.

        Claims without an issue time are judged by session only; the bridge
        stamps them with their first validation time beforehand.
        """
        if claims.session_id is not None and claims.session_id in self._sessions:
            return True
        watermark = self._principal_watermarks.get(principal_id)
        if watermark is None or claims.issued_at is None:
            return False
        return claims.issued_at <= watermark


# ---------------------------------------------------------------------------
# Validation cache
# ---------------------------------------------------------------------------


def token_digest(token: str) -> str:
    """Key under which a token is remembered; the raw token is never kept."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


class ValidationCache:
    """Remembers verified claims so signatures are not re-checked per request.

    Backed by a ``cachetools.TLRUCache``: each entry gets its own deadline,
    the earlier of ``ttl`` after it was stored and the token's ``expires_at``,
    and is never served at or past it.  Reading an entry does not extend it.
    """

    def __init__(
        self,
        ttl: float = 60.0,
        max_entries: int = 10_000,
        timer: Callable[[], float] = time.time,
    ) -> None:
        self.ttl = ttl
        self.max_entries = max_entries
        self._entries: cachetools.TLRUCache = cachetools.TLRUCache(
            maxsize=max_entries, ttu=self._valid_until, timer=timer
        )

    def __len__(self) -> int:
        return len(self._entries)

    @staticmethod
    def key(token: str) -> str:
        return token_digest(token)

    def _valid_until(self, _key: str, claims: TokenClaims, now: float) -> float:
        return min(now + self.ttl, claims.expires_at)

    def get(self, token: str) -> TokenClaims | None:
        return self._entries.get(self.key(token))

    def put(self, token: str, claims: TokenClaims) -> None:
        # TLRUCache skips entries whose deadline has already passed
        if self.ttl <= 0:
            return
        self._entries[self.key(token)] = claims

    def evict_expired(self) -> int:
        before = len(self._entries)
        self._entries.expire()
        return before - len(self._entries)

    def clear(self) -> None:
        self._entries.clear()


class FirstSeenLog:
    """First validation time of tokens that carry no ``iat`` claim.

    Stands in for the missing issue time so that a logout watermark revokes
    the tokens seen before it and spares the ones first seen after it.
    Entries live until the token expires.
    """

    def __init__(
        self,
        max_entries: int = 100_000,
        timer: Callable[[], float] = time.time,
    ) -> None:
        self._timer = timer
        self._seen: cachetools.TLRUCache = cachetools.TLRUCache(
            maxsize=max_entries, ttu=lambda _key, entry, _now: entry[1], timer=timer
        )

    def __len__(self) -> int:
        return len(self._seen)

    def first_seen(self, token: str, expires_at: float) -> float:
        key = token_digest(token)
        entry = self._seen.get(key)
        if entry is None:
            entry = (self._timer(), expires_at)
            self._seen[key] = entry
        return entry[0]
