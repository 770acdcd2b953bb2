"""
OIDC identity verification and authorization.

Verification (signature, issuer and expiry against the provider's JWKS) is kept
apart from identity resolution (a userinfo round-trip), so repeated calls from the
same caller only pay the round-trip once: resolved identities are cached per raw
token, and every insertion is followed by a re-verification sweep that evicts
tokens which no longer verify. That sweep is the only eviction mechanism.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Iterable

import httpx
import structlog
from jose import JWTError, jwt

from kfaas.core.errors import IdentityResolutionError

logger = structlog.get_logger()

EGI_GROUPS_URN_PREFIX = "urn:mace:egi.eu:group"
ENTITLEMENT_CLAIM = "eduperson_entitlement"


@dataclass(frozen=True)
class UserInfo:
    subject: str
    groups: tuple[str, ...] = ()


def get_groups(urns: Iterable[Any]) -> list[str]:
    """Map EGI group URNs to short group names (the fifth colon-delimited field)."""
    groups: list[str] = []
    for value in urns:
        if not isinstance(value, str):
            continue
        urn = value.strip().lower()
        if not urn.startswith(EGI_GROUPS_URN_PREFIX):
            continue
        fields = urn.split(":")
        if len(fields) >= 5:
            groups.append(fields[4])
    return groups


class TokenCache:
    """Verified identities keyed by raw bearer token.

    Owned by a single ``OIDCManager``. Reads and writes go through an asyncio lock.
    Sweeps are coalesced: while one sweep runs, further insertions only mark the
    cache dirty and the running sweep starts over on a fresh snapshot, so each
    insertion is still followed by a full re-verification without piling up
    concurrent sweeps.
    """

    def __init__(self) -> None:
        self._entries: dict[str, UserInfo] = {}
        self._lock = asyncio.Lock()
        self._sweeping = False
        self._dirty = False

    async def get(self, raw_token: str) -> UserInfo | None:
        async with self._lock:
            return self._entries.get(raw_token)

    async def put(self, raw_token: str, info: UserInfo) -> None:
        async with self._lock:
            self._entries[raw_token] = info
            self._dirty = True

    async def sweep(self, is_valid: Callable[[str], Awaitable[bool]]) -> None:
        """Re-verify every cached token and evict those that fail."""
        async with self._lock:
            if self._sweeping:
                return
            self._sweeping = True
        try:
            while True:
                async with self._lock:
                    if not self._dirty:
                        return
                    self._dirty = False
                    snapshot = list(self._entries)

                expired = [token for token in snapshot if not await is_valid(token)]

                if expired:
                    async with self._lock:
                        for token in expired:
                            self._entries.pop(token, None)
                    logger.debug("token_cache_evicted", evicted=len(expired))
        finally:
            # No await between the final dirty check and this reset.
            self._sweeping = False

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, raw_token: object) -> bool:
        return raw_token in self._entries


@dataclass
class OIDCManager:
    """Verifies bearer tokens against an OIDC issuer and applies the admin policy."""

    issuer: str
    subject: str = ""
    groups: list[str] = field(default_factory=list)
    algorithms: list[str] = field(default_factory=lambda: ["RS256"])
    timeout: float = 30.0
    cache: TokenCache = field(default_factory=TokenCache)
    _discovery: dict[str, Any] | None = field(default=None, init=False, repr=False)
    _jwks: dict[str, Any] | None = field(default=None, init=False, repr=False)

    async def _get_discovery(self) -> dict[str, Any]:
        """Fetch and cache the issuer's OpenID configuration."""
        if self._discovery:
            return self._discovery

        url = f"{self.issuer.rstrip('/')}/.well-known/openid-configuration"
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.get(url)
            response.raise_for_status()
            self._discovery = response.json()
            return self._discovery

    async def _get_jwks(self, *, refresh: bool = False) -> dict[str, Any]:
        """Fetch JWKS from the discovered jwks_uri."""
        if self._jwks and not refresh:
            return self._jwks

        discovery = await self._get_discovery()
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.get(discovery["jwks_uri"])
            response.raise_for_status()
            self._jwks = response.json()
            return self._jwks

    async def _find_key(self, kid: str | None) -> dict[str, Any] | None:
        for refresh in (False, True):
            jwks = await self._get_jwks(refresh=refresh)
            for jwk in jwks.get("keys", []):
                if kid is None or jwk.get("kid") == kid:
                    return jwk
        return None

    async def verify(self, raw_token: str) -> bool:
        """Validate signature, issuer and expiry. Every failure means unauthorized."""
        try:
            header = jwt.get_unverified_header(raw_token)
            key = await self._find_key(header.get("kid"))
            if key is None:
                raise JWTError("Public key not found in JWKS")

            jwt.decode(
                raw_token,
                key,
                algorithms=self.algorithms,
                issuer=self.issuer,
                options={"verify_aud": False, "verify_at_hash": False},
            )
            return True
        except (JWTError, httpx.HTTPError, KeyError, ValueError) as exc:
            logger.debug("token_verification_failed", error=type(exc).__name__)
            return False

    async def resolve_identity(self, raw_token: str) -> UserInfo:
        """Fetch the token's subject and groups from the userinfo endpoint."""
        try:
            discovery = await self._get_discovery()
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.get(
                    discovery["userinfo_endpoint"],
                    headers={"Authorization": f"Bearer {raw_token}"},
                )
                response.raise_for_status()
                claims = response.json()
        except (httpx.HTTPError, KeyError, ValueError) as exc:
            logger.warning("userinfo_request_failed", issuer=self.issuer, error=str(exc))
            raise IdentityResolutionError(
                f"error getting user info from the OIDC issuer: {exc}",
                {"issuer": self.issuer},
            ) from exc

        entitlements = claims.get(ENTITLEMENT_CLAIM) or []
        return UserInfo(
            subject=str(claims.get("sub", "")),
            groups=tuple(get_groups(entitlements)),
        )

    async def user_has_vo(self, raw_token: str, vo: str) -> bool:
        """Whether the token's identity belongs to ``vo``. Resolution errors propagate."""
        info = await self.resolve_identity(raw_token)
        return vo in info.groups

    async def is_authorized(self, raw_token: str) -> bool:
        """Check whether a token may access the API (admin subject or admin group)."""
        if not await self.verify(raw_token):
            return False

        info = await self.cache.get(raw_token)
        if info is None:
            try:
                info = await self.resolve_identity(raw_token)
            except IdentityResolutionError:
                return False
            await self.cache.put(raw_token, info)
            await self.cache.sweep(self.verify)

        if self.subject and info.subject == self.subject:
            return True
        return any(group in self.groups for group in info.groups)
