"""Identity Collaborator Clients — resolve a caller token to a RoleContext.

Invariants:
    - Never issues or validates credentials: the upstream identity service (or the
      gateway that minted a trusted token) has already done so
    - Unknown roles are ignored, never guessed
    - A role flag object grants only the flags set to true; "staff" means mentor
    - Unresolvable tokens return None; transport failures raise CollaboratorError

Design Decisions:
    - Two implementations behind the IdentityProvider Protocol, chosen by settings:
      "http" calls the identity service, "header" trusts gateway-minted
      "user_id:role,role" tokens (local development and tests)
    - httpx.AsyncClient owned by the provider and closed from the lifespan
"""

import logging

import httpx

from academy.core.domain_types import Role
from academy.core.errors import CollaboratorError
from academy.core.role_context import RoleContext

logger = logging.getLogger(__name__)


# identity service flag names that differ from Role values
_ROLE_ALIASES = {"staff": Role.MENTOR}


def parse_roles(raw: dict[str, bool] | list[str] | str | None) -> frozenset[Role]:
    """Role names from "a,b", ["a", "b"] or a {"a": true, "b": false} flag object."""
    if not raw:
        return frozenset()
    if isinstance(raw, dict):
        names = [name for name, granted in raw.items() if granted is True]
    elif isinstance(raw, str):
        names = raw.split(",")
    else:
        names = raw
    roles = set()
    for name in names:
        key = str(name).strip().lower()
        if not key:
            continue
        role = _ROLE_ALIASES.get(key)
        if role is None:
            try:
                role = Role(key)
            except ValueError:
                logger.debug(f"Ignoring unknown role '{name}'")
                continue
        roles.add(role)
    return frozenset(roles)


class TrustedTokenIdentityProvider:
    """Resolves gateway-minted tokens of the form "user_id:role,role"."""

    async def resolve_caller(self, token: str) -> RoleContext | None:
        user_id, _, roles = token.strip().partition(":")
        user_id = user_id.strip()
        if not user_id:
            return None
        return RoleContext(user_id, parse_roles(roles))

    async def aclose(self) -> None:
        return None


class HttpIdentityProvider:
    """Calls the identity service: GET {base_url}/resolve with the bearer token."""

    def __init__(self, base_url: str, timeout_seconds: float = 5.0,
                 client: httpx.AsyncClient | None = None):
        self._client = client or httpx.AsyncClient(
            base_url=base_url, timeout=timeout_seconds,
        )

    async def resolve_caller(self, token: str) -> RoleContext | None:
        try:
            response = await self._client.get(
                "/resolve", headers={"Authorization": f"Bearer {token}"},
            )
        except httpx.HTTPError as e:
            raise CollaboratorError("identity provider", str(e))
        if response.status_code in (401, 403, 404):
            return None
        if response.status_code != 200:
            raise CollaboratorError(
                "identity provider", f"unexpected status {response.status_code}",
            )
        payload = response.json()
        user_id = payload.get("userId") or payload.get("user_id")
        if not user_id:
            return None
        return RoleContext(str(user_id), parse_roles(payload.get("roles")))

    async def aclose(self) -> None:
        await self._client.aclose()
