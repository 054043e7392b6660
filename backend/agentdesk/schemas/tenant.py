from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict


class TenantOut(BaseModel):
    """Entry of the super-admin tenant selector."""

    id: UUID
    name: str
    slug: str
    status: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)
