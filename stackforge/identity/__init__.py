"""Runtime Identity Bridge.

Maps bearer tokens issued by an auth subsystem onto principals of the
serving application, with local logout and a bounded validation cache.
"""

from stackforge.identity.bridge import IdentityBridge, extract_bearer_token
from stackforge.identity.introspection import IntrospectionTokenProvider
from stackforge.identity.models import (
    BridgeResult,
    BridgeState,
    Principal,
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
    token_digest,
)
from stackforge.identity.tokens import HmacTokenProvider, TokenProvider

__all__ = [
    "BridgeResult",
    "BridgeState",
    "FirstSeenLog",
    "HmacTokenProvider",
    "IdentityBridge",
    "InMemoryPrincipalStore",
    "IntrospectionTokenProvider",
    "Principal",
    "PrincipalStore",
    "ProviderOutcome",
    "RejectionReason",
    "RevocationRegistry",
    "TokenClaims",
    "TokenProvider",
    "ValidationCache",
    "extract_bearer_token",
    "token_digest",
]
