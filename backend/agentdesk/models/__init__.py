# Import models here so Alembic can discover metadata.
from agentdesk.models.user import User  # noqa: F401

from agentdesk.models.tenant import Tenant  # noqa: F401
from agentdesk.models.tenant_membership import TenantMembership  # noqa: F401
from agentdesk.models.super_admin import SuperAdmin  # noqa: F401
from agentdesk.models.user_permission import UserPermission  # noqa: F401
