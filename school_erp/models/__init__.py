from school_erp.models.master import (  # noqa: F401
    MigrationVersion, SystemAuditLog, SystemConfig, SystemUser, Trust, UserSession,
)
from school_erp.models.tenant import TenantModel  # noqa: F401
