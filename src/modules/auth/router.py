"""
Auth Module - API Router
"""
from fastapi import APIRouter

from src.modules.auth.dependencies import CurrentUser
from src.modules.auth.schemas import UserResponse

router = APIRouter(prefix="/auth", tags=["Auth"])


@router.get("/me", response_model=UserResponse)
async def get_me(current_user: CurrentUser) -> UserResponse:
    """Get the authenticated user."""
    return UserResponse.model_validate(current_user)
