"""User matching preference routes."""
from fastapi import APIRouter, Depends

from core.config import Settings, get_settings
from core.dependencies import get_user_id, get_preferences_store
from models import UserPreferences
from stores import PreferencesStore
from services.preferences_service import get_preferences_or_default, save_preferences

router = APIRouter()


@router.get("", response_model=UserPreferences)
async def get_my_preferences(
    user_id: str = Depends(get_user_id),
    store: PreferencesStore = Depends(get_preferences_store)
):
    """Current user's preferences, account defaults when never saved."""
    return await get_preferences_or_default(store, user_id)


@router.put("", response_model=UserPreferences)
async def update_my_preferences(
    preferences: UserPreferences,
    user_id: str = Depends(get_user_id),
    store: PreferencesStore = Depends(get_preferences_store),
    settings: Settings = Depends(get_settings)
):
    """Replace the current user's preferences."""
    preferences.user_id = user_id
    return await save_preferences(store, preferences, max_attempts=settings.preferences_upsert_attempts)
