"""User settings endpoints."""

from typing import cast

from fastapi import APIRouter, HTTPException, status

from fancynote.api.deps import CurrentUserDep, SessionDep, UserSettingsDep
from fancynote.schemas.settings import (
    AiSettings,
    AiSettingsResponse,
    AiSettingsUpdate,
    parse_ai_settings,
)
from fancynote.services.profile_service import ProfileService
from fancynote.utils.exceptions import AiSettingsError

router = APIRouter(prefix="/api/settings", tags=["settings"])


def _to_response(ai_settings: AiSettings) -> AiSettingsResponse:
    return AiSettingsResponse(
        has_api_key=bool(ai_settings.api_key),
        model=ai_settings.model,
        system_prompt=ai_settings.system_prompt,
        language=ai_settings.language,
    )


@router.get("/ai", response_model=AiSettingsResponse)
def get_ai_settings(user_settings: UserSettingsDep) -> AiSettingsResponse:
    """
    Get the current user's AI settings. The API key itself is never returned.
    """
    try:
        ai_settings = parse_ai_settings(user_settings.ai_settings)
    except AiSettingsError as e:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))
    return _to_response(ai_settings)


@router.patch("/ai", response_model=AiSettingsResponse)
def update_ai_settings(
    update_data: AiSettingsUpdate,
    session: SessionDep,
    current_user: CurrentUserDep,
) -> AiSettingsResponse:
    """
    Update the current user's AI settings; omitted fields keep their value.
    """
    user_id = cast(int, current_user.id)
    try:
        ai_settings = ProfileService(session).update_ai_settings(user_id, update_data)
    except AiSettingsError as e:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))
    return _to_response(ai_settings)
