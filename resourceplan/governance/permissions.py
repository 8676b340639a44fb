"""Permission collaborator — capability checks for allocation operations.

The service only asks "does user X hold capability C?". How grants are
stored is the implementation's business: ``SqlPermissionChecker`` reads the
``capability_grants`` table of one organization, ``StaticPermissionChecker``
holds grants in memory for tests and single-tenant embedding.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from resourceplan.db.tables import CapabilityGrantRow
from resourceplan.models.common import Capability, new_uuid7, utc_now


@dataclass(frozen=True)
class CapabilityDecision:
    """Outcome of a capability check."""

    allowed: bool
    reason: str | None = None


class PermissionChecker(ABC):
    @abstractmethod
    async def has_capability(self, user_id: UUID, capability: Capability) -> CapabilityDecision:
        ...


class StaticPermissionChecker(PermissionChecker):
    """In-memory grants: ``{user_id: {capability, ...}}``."""

    def __init__(
        self,
        grants: Mapping[UUID, Iterable[Capability]] | None = None,
        *,
        allow_all: bool = False,
    ) -> None:
        self._grants: dict[UUID, set[Capability]] = {
            user_id: set(caps) for user_id, caps in (grants or {}).items()
        }
        self._allow_all = allow_all

    def grant(self, user_id: UUID, *capabilities: Capability) -> None:
        self._grants.setdefault(user_id, set()).update(capabilities)

    def revoke(self, user_id: UUID, *capabilities: Capability) -> None:
        self._grants.get(user_id, set()).difference_update(capabilities)

    async def has_capability(self, user_id: UUID, capability: Capability) -> CapabilityDecision:
        if self._allow_all or capability in self._grants.get(user_id, set()):
            return CapabilityDecision(allowed=True)
        return CapabilityDecision(
            allowed=False, reason=f"User lacks permission: {capability.value}",
        )


class SqlPermissionChecker(PermissionChecker):
    """Capability grants stored per organization in ``capability_grants``."""

    def __init__(self, session: AsyncSession, organization_id: UUID) -> None:
        self._session = session
        self._organization_id = organization_id

    async def grant(self, user_id: UUID, *capabilities: Capability) -> None:
        held = await self.list_capabilities(user_id)
        now = utc_now()
        for capability in capabilities:
            if capability in held:
                continue
            self._session.add(CapabilityGrantRow(
                grant_id=new_uuid7(), organization_id=self._organization_id,
                user_id=user_id, capability=capability.value, created_at=now,
            ))
            held.add(capability)
        await self._session.flush()

    async def revoke(self, user_id: UUID, *capabilities: Capability) -> None:
        await self._session.execute(
            delete(CapabilityGrantRow).where(
                CapabilityGrantRow.organization_id == self._organization_id,
                CapabilityGrantRow.user_id == user_id,
                CapabilityGrantRow.capability.in_([c.value for c in capabilities]),
            )
        )
        await self._session.flush()

    async def list_capabilities(self, user_id: UUID) -> set[Capability]:
        result = await self._session.execute(
            select(CapabilityGrantRow.capability).where(
                CapabilityGrantRow.organization_id == self._organization_id,
                CapabilityGrantRow.user_id == user_id,
            )
        )
        return {Capability(value) for value in result.scalars().all()}

    async def has_capability(self, user_id: UUID, capability: Capability) -> CapabilityDecision:
        if capability in await self.list_capabilities(user_id):
            return CapabilityDecision(allowed=True)
        return CapabilityDecision(
            allowed=False, reason=f"User lacks permission: {capability.value}",
        )
