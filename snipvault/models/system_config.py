"""System setting and feature flag models."""

from sqlalchemy import Column, Integer, String, Text, Boolean, DateTime, ForeignKey, func
from snipvault.db.base import Base


class SystemSetting(Base):
    """Key-value system settings, mutated only by administrators."""
    __tablename__ = "system_settings"

    key = Column(String(100), primary_key=True)
    value = Column(Text, nullable=False)
    updated_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    updated_at = Column(DateTime, server_default=func.now(), nullable=False)


class FeatureFlag(Base):
    """Independently toggleable boolean switch."""
    __tablename__ = "feature_flags"

    key = Column(String(100), primary_key=True)
    enabled = Column(Boolean, default=False, nullable=False)
    description = Column(String(500), nullable=True)
    updated_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    updated_at = Column(DateTime, server_default=func.now(), nullable=False)
