"""Models package — import all models so metadata sees every table."""

from snipvault.models.user import User, UserStatus, ANONYMOUS_USER_ID
from snipvault.models.system_config import SystemSetting, FeatureFlag
from snipvault.models.audit_log import AuditLog

__all__ = [
    "User", "UserStatus", "ANONYMOUS_USER_ID",
    "SystemSetting", "FeatureFlag", "AuditLog",
]
