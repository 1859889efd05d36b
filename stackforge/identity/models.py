"""Data model for the runtime Identity Bridge.

Rejections are ordinary results, not exceptions: every outcome of a
validation is a ``BridgeResult`` carrying the final state and, when
rejected, one ``RejectionReason``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class BridgeState(str, Enum):
    """States a request passes through while being authenticated."""
    UNAUTHENTICATED = "Unauthenticated"
    TOKEN_PRESENTED = "TokenPresented"
    VALIDATING = "Validating"
    AUTHENTICATED = "Authenticated"
    REJECTED = "Rejected"


class RejectionReason(str, Enum):
    """Why a request was denied.  Values are part of the wire contract."""
    MISSING_TOKEN = "MissingToken"
    MALFORMED = "Malformed"
    BAD_SIGNATURE = "BadSignature"
    EXPIRED = "Expired"
    REVOKED = "Revoked"


@dataclass(frozen=True)
class TokenClaims:
    """Verified claims extracted from a bearer token.

    ``subject`` is the stable external identity; ``email`` is display data
    and is never used to key principals.  ``issued_at`` is ``None`` when the
    issuer did not say (``iat`` is optional for introspection responses).
    """

    subject: str
    issuer: str
    expires_at: float
    issued_at: float | None
    email: str | None = None
    session_id: str | None = None

    @property
    def external_identity(self) -> tuple[str, str]:
        return (self.issuer, self.subject)


@dataclass(frozen=True)
class Principal:
    """The serving subsystem's record of an authenticated identity."""

    id: str
    issuer: str
    external_id: str
    created_at: float
    email: str | None = None


@dataclass(frozen=True)
class ProviderOutcome:
    """What a ``TokenProvider`` concluded about one token."""

    claims: TokenClaims | None = None
    reason: RejectionReason | None = None
    detail: str = ""

    @property
    def ok(self) -> bool:
        return self.claims is not None and self.reason is None

    @classmethod
    def accept(cls, claims: TokenClaims) -> "ProviderOutcome":
        return cls(claims=claims)

    @classmethod
    def reject(cls, reason: RejectionReason, detail: str = "") -> "ProviderOutcome":
        return cls(reason=reason, detail=detail)


@dataclass(frozen=True)
class BridgeResult:
    """Final outcome of authenticating one request.

    ``trail`` lists the states visited, in order, ending with ``state``.
    """

    state: BridgeState
    principal: Principal | None = None
    claims: TokenClaims | None = None
    reason: RejectionReason | None = None
    detail: str = ""
    trail: tuple[BridgeState, ...] = field(default_factory=tuple)

    @property
    def authenticated(self) -> bool:
        return self.state is BridgeState.AUTHENTICATED

    @property
    def anonymous(self) -> bool:
        return self.state is BridgeState.UNAUTHENTICATED

    @property
    def rejected(self) -> bool:
        return self.state is BridgeState.REJECTED

    @property
    def principal_id(self) -> str | None:
        return self.principal.id if self.principal else None
