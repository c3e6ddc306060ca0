"""Public community API router, served only while community mode is on."""

from fastapi import APIRouter, Depends

from snipvault.api.deps import get_settings_store
from snipvault.core.exceptions import ResourceNotFoundError
from snipvault.services.settings_service import SettingsStore

router = APIRouter(prefix="/public", tags=["public"])


def require_community_mode(store: SettingsStore = Depends(get_settings_store)) -> SettingsStore:
    if not store.is_community_mode_enabled():
        raise ResourceNotFoundError("Community mode is disabled")
    return store


@router.get("/status")
async def community_status(store: SettingsStore = Depends(require_community_mode)):
    """Report which community features are switched on."""
    return {
        "communityMode": True,
        "publicLibrary": store.get_flag("community.public_library", True),
        "reports": store.get_flag("community.reports", False),
    }
