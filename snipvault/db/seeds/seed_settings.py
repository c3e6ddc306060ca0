"""Seed default system settings and feature flags into the database."""

import logging

from sqlalchemy.orm import Session

from snipvault.db.base import utc_now
from snipvault.db.upsert import upsert
from snipvault.models.system_config import FeatureFlag, SystemSetting
from snipvault.services.settings_service import FLAG_DEFAULTS, SETTING_DEFAULTS

logger = logging.getLogger("snipvault.seeds")


def seed_settings(db: Session) -> None:
    """Insert default settings and flags that don't already exist.

    Existing rows are left untouched, so re-running never resets a value an
    administrator has changed.
    """
    now = utc_now()
    for key, value in SETTING_DEFAULTS.items():
        upsert(
            db,
            SystemSetting.__table__,
            {"key": key, "value": value, "updated_at": now},
            index_elements=["key"],
        )

    for key, (enabled, description) in FLAG_DEFAULTS.items():
        upsert(
            db,
            FeatureFlag.__table__,
            {"key": key, "enabled": enabled, "description": description, "updated_at": now},
            index_elements=["key"],
        )

    db.commit()
    logger.info("Seeded %d settings and %d feature flags", len(SETTING_DEFAULTS), len(FLAG_DEFAULTS))
