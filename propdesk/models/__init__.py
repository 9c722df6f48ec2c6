"""Central model registry. Import all models so Alembic autodiscover works."""

from propdesk.database import Base  # noqa: F401

from propdesk.models.property import Property  # noqa: F401
from propdesk.models.tenant import Tenant  # noqa: F401
from propdesk.models.payment import Payment  # noqa: F401
from propdesk.models.audit_log import AuditLog  # noqa: F401
