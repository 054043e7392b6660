# agentdesk/api/v1/platform.py
from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from agentdesk.api.deps.auth import get_current_user
from agentdesk.crud import authorization as authz_crud
from agentdesk.db.session import get_db
from agentdesk.models.user import User
from agentdesk.schemas.tenant import TenantOut

router = APIRouter(prefix="/platform", tags=["platform"])


@router.get("/tenants", response_model=List[TenantOut])
async def list_tenants_for_selector(
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
) -> List[TenantOut]:
    """
    Powers the super-admin tenant selector. Non-super-admins get 403.
    """
    tenants = await authz_crud.list_tenants_for_super_admin(db, user.id)
    return [TenantOut.model_validate(t) for t in tenants]
