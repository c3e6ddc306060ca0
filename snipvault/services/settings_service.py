"""Settings store — cached accessor over system settings and feature flags.

Reads are served from an in-process cache with a short freshness window and
read through to the database on a miss. Writes go straight to the database and
refresh the writer's cache entry, so other readers may see the old value for at
most one freshness window.
"""

import logging
import math
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional, Tuple, Union

from cachetools import TTLCache
from sqlalchemy import select
from sqlalchemy.orm import sessionmaker

from snipvault.db.upsert import upsert
from snipvault.models.system_config import FeatureFlag, SystemSetting

logger = logging.getLogger("snipvault.settings")

TRUTHY_TOKENS = frozenset({"1", "true", "on", "yes", "enabled", "open"})

# Sentinel cached for keys that have no row, so misses are cached too.
_ABSENT = object()

# Upper bound on distinct keys held per cache.
CACHE_MAXSIZE = 1024

REGISTRATION_MODES = ("OPEN", "APPROVAL", "CLOSED")
TOGGLE_MODES = ("ON", "OFF")

SETTING_DEFAULTS: Dict[str, str] = {
    "registration.mode": "OPEN",
    "community.mode": "OFF",
    "maintenance.mode": "OFF",
    "security.lockout.max_attempts": "5",
    "security.lockout.duration_minutes": "15",
    "security.rate_limit.window_ms": "60000",
    "security.rate_limit.auth_max": "20",
    "security.rate_limit.public_max": "120",
    "security.rate_limit.general_max": "300",
}

FLAG_DEFAULTS: Dict[str, Tuple[bool, str]] = {
    "community.public_library": (True, "Enable public library browsing endpoints and pages."),
    "community.reports": (False, "Enable snippet reporting and moderation queue."),
    "platform.ai_hooks": (False, "Reserved for future AI assistant module integration."),
}


@dataclass(frozen=True)
class LockoutPolicy:
    max_attempts: int
    duration_minutes: int


@dataclass(frozen=True)
class RateLimitPolicy:
    window_ms: int
    auth_max: int
    public_max: int
    general_max: int

    def limit_for(self, scope: str) -> int:
        if scope == "auth":
            return self.auth_max
        if scope == "public":
            return self.public_max
        return self.general_max


@dataclass(frozen=True)
class FoundationSettings:
    registration_mode: str
    community_mode: str
    maintenance_mode: str
    lockout: LockoutPolicy
    rate_limit: RateLimitPolicy

    def to_dict(self) -> Dict[str, Any]:
        return {
            "registrationMode": self.registration_mode,
            "communityMode": self.community_mode,
            "maintenanceMode": self.maintenance_mode,
            "security": {
                "lockout": {
                    "maxAttempts": self.lockout.max_attempts,
                    "durationMinutes": self.lockout.duration_minutes,
                },
                "rateLimit": {
                    "windowMs": self.rate_limit.window_ms,
                    "authMax": self.rate_limit.auth_max,
                    "publicMax": self.rate_limit.public_max,
                    "generalMax": self.rate_limit.general_max,
                },
            },
        }


def is_truthy(value: Any) -> bool:
    return str(value).strip().lower() in TRUTHY_TOKENS


def parse_number(value: Any, fallback: Union[int, float]) -> Union[int, float]:
    """Parse a stored value as a number, returning ``fallback`` on failure."""
    try:
        parsed = float(str(value).strip())
    except (TypeError, ValueError):
        return fallback
    if math.isnan(parsed) or math.isinf(parsed):
        return fallback
    return int(parsed) if parsed.is_integer() else parsed


class SettingsStore:
    """Process-scoped settings cache in front of the settings tables."""

    def __init__(
        self,
        session_factory: sessionmaker,
        ttl_seconds: float = 5.0,
        clock: Callable[[], float] = time.time,
    ):
        self._session_factory = session_factory
        self._clock = clock
        self._lock = threading.Lock()
        self._setting_cache: TTLCache[str, Any] = TTLCache(
            maxsize=CACHE_MAXSIZE, ttl=ttl_seconds, timer=clock
        )
        self._flag_cache: TTLCache[str, Any] = TTLCache(
            maxsize=CACHE_MAXSIZE, ttl=ttl_seconds, timer=clock
        )

    # ---- cache plumbing ----

    def _read_cached(self, cache: TTLCache, key: str) -> Any:
        """Cached value for ``key`` (possibly ``_ABSENT``), or None on a miss."""
        with self._lock:
            return cache.get(key)

    def _cache_value(self, cache: TTLCache, key: str, value: Any) -> None:
        with self._lock:
            cache[key] = value

    def _now(self) -> datetime:
        return datetime.fromtimestamp(self._clock(), tz=timezone.utc).replace(tzinfo=None)

    def clear_cache(self) -> None:
        """Drop every cached entry; the next read goes to the database."""
        with self._lock:
            self._setting_cache.clear()
            self._flag_cache.clear()

    # ---- settings ----

    def get_string(self, key: str, fallback: Optional[str] = None) -> Optional[str]:
        """Return the raw string value of a setting."""
        value = self._read_cached(self._setting_cache, key)
        if value is None:
            with self._session_factory() as db:
                value = db.scalar(select(SystemSetting.value).where(SystemSetting.key == key))
            if value is None:
                value = _ABSENT
            self._cache_value(self._setting_cache, key, value)
        return fallback if value is _ABSENT else value

    def get_number(self, key: str, fallback: Union[int, float]) -> Union[int, float]:
        value = self.get_string(key)
        if value is None:
            return fallback
        return parse_number(value, fallback)

    def get_int(self, key: str, fallback: int) -> int:
        return int(self.get_number(key, fallback))

    def get_bool(self, key: str, fallback: bool = False) -> bool:
        value = self.get_string(key)
        if value is None:
            return fallback
        return is_truthy(value)

    def set_string(self, key: str, value: Any, updated_by: Optional[int] = None) -> None:
        """Upsert a setting and refresh this process's cache entry."""
        stored = str(value)
        now = self._now()
        with self._session_factory() as db:
            upsert(
                db,
                SystemSetting.__table__,
                {"key": key, "value": stored, "updated_at": now, "updated_by": updated_by},
                index_elements=["key"],
                update={"value": stored, "updated_at": now, "updated_by": updated_by},
            )
            db.commit()
        self._cache_value(self._setting_cache, key, stored)

    def get_by_prefix(self, prefix: str) -> list[Dict[str, Any]]:
        """List settings whose key starts with ``prefix``, uncached."""
        with self._session_factory() as db:
            rows = db.execute(
                select(SystemSetting.key, SystemSetting.value, SystemSetting.updated_at, SystemSetting.updated_by)
                .where(SystemSetting.key.startswith(prefix, autoescape=True))
                .order_by(SystemSetting.key)
            ).all()
        return [
            {"key": row.key, "value": row.value, "updated_at": row.updated_at, "updated_by": row.updated_by}
            for row in rows
        ]

    # ---- feature flags ----

    def get_flag(self, key: str, fallback: bool = False) -> bool:
        value = self._read_cached(self._flag_cache, key)
        if value is None:
            with self._session_factory() as db:
                value = db.scalar(select(FeatureFlag.enabled).where(FeatureFlag.key == key))
            value = _ABSENT if value is None else bool(value)
            self._cache_value(self._flag_cache, key, value)
        return fallback if value is _ABSENT else value

    def set_flag(
        self,
        key: str,
        enabled: bool,
        description: Optional[str] = None,
        updated_by: Optional[int] = None,
    ) -> None:
        """Upsert a feature flag; a None description keeps the stored one."""
        now = self._now()
        update = {"enabled": bool(enabled), "updated_at": now, "updated_by": updated_by}
        if description is not None:
            update["description"] = description
        with self._session_factory() as db:
            try:
                upsert(
                    db,
                    FeatureFlag.__table__,
                    {
                        "key": key,
                        "enabled": bool(enabled),
                        "description": description,
                        "updated_at": now,
                        "updated_by": updated_by,
                    },
                    index_elements=["key"],
                    update=update,
                )
                db.commit()
            except Exception:
                logger.error("Error setting feature flag %s", key, exc_info=True)
                raise
        self._cache_value(self._flag_cache, key, bool(enabled))

    def list_flags(self) -> list[Dict[str, Any]]:
        with self._session_factory() as db:
            flags = db.scalars(select(FeatureFlag).order_by(FeatureFlag.key)).all()
            return [
                {
                    "key": flag.key,
                    "enabled": bool(flag.enabled),
                    "description": flag.description,
                    "updated_at": flag.updated_at,
                    "updated_by": flag.updated_by,
                }
                for flag in flags
            ]

    # ---- composites ----

    def get_all(self) -> Dict[str, Any]:
        return {
            "settings": self.get_by_prefix(""),
            "featureFlags": self.list_flags(),
        }

    def get_foundation_settings(self) -> FoundationSettings:
        """Registration, community and maintenance modes plus security policy."""
        defaults = SETTING_DEFAULTS
        return FoundationSettings(
            registration_mode=self.get_string("registration.mode", defaults["registration.mode"]),
            community_mode=self.get_string("community.mode", defaults["community.mode"]),
            maintenance_mode=self.get_string("maintenance.mode", defaults["maintenance.mode"]),
            lockout=LockoutPolicy(
                max_attempts=self.get_int("security.lockout.max_attempts", 5),
                duration_minutes=self.get_int("security.lockout.duration_minutes", 15),
            ),
            rate_limit=RateLimitPolicy(
                window_ms=self.get_int("security.rate_limit.window_ms", 60000),
                auth_max=self.get_int("security.rate_limit.auth_max", 20),
                public_max=self.get_int("security.rate_limit.public_max", 120),
                general_max=self.get_int("security.rate_limit.general_max", 300),
            ),
        )

    def is_community_mode_enabled(self) -> bool:
        mode = self.get_string("community.mode", "OFF")
        return str(mode).upper() in {"ON", "TRUE", "1", "ENABLED"} and self.get_flag(
            "community.public_library", True
        )


def normalize_registration_mode(mode: Any) -> str:
    upper = str(mode or "").strip().upper()
    return upper if upper in REGISTRATION_MODES else "OPEN"
