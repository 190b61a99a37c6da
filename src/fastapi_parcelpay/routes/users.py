"""User sign-in endpoint."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from fastapi_parcelpay.dependencies import get_user_service
from fastapi_parcelpay.schemas import UserLoginRequest, UserLoginResponse
from fastapi_parcelpay.services import UserService

router = APIRouter()


@router.post(
    "/users",
    response_model=UserLoginResponse,
    response_model_exclude_none=True,
)
async def sign_in_user(
    body: UserLoginRequest,
    users: UserService = Depends(get_user_service),
) -> UserLoginResponse:
    """Create the user on first sign-in, refresh ``last_log_in`` after."""
    result = await users.upsert_on_login(body.model_dump())
    return UserLoginResponse(
        message=result["message"],
        inserted=result["inserted"],
        inserted_id=result.get("insertedId"),
    )
