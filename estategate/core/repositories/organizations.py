from __future__ import annotations

from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from estategate.core.repositories.base import Repository
from estategate.models.organization import Organization
from estategate.models.user import User


class OrganizationRepository(Repository[Organization]):
    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session=session, model=Organization)


class UserRepository(Repository[User]):
    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session=session, model=User)

    async def get_by_subject(self, subject: str) -> User | None:
        return await self.get_one_by(subject=subject)

    async def list_organization_members(self, organization_id: UUID) -> list[User]:
        return await self.list_by(organization_id=organization_id, is_active=True)
