"""Signed-in account endpoints."""

from fastapi import APIRouter, Depends

from netmatch.dependencies import CurrentAccount, get_account_service, get_current_account
from netmatch.errors import ApiError
from netmatch.schemas.auth import AccountOut, ChangePasswordRequest, MessageResponse
from netmatch.services.auth import AccountService, Failure

router = APIRouter(prefix="/api/v1/account", tags=["Account"])


@router.get("/me", response_model=AccountOut)
def get_me(
    current: CurrentAccount = Depends(get_current_account),
    service: AccountService = Depends(get_account_service),
) -> AccountOut:
    """Return the signed-in account's profile."""
    result = service.get_profile(current.account_id)
    if isinstance(result, Failure):
        raise ApiError.from_failure(result)
    return AccountOut(**result.account)


@router.post("/change-password", response_model=MessageResponse)
def change_password(
    body: ChangePasswordRequest,
    current: CurrentAccount = Depends(get_current_account),
    service: AccountService = Depends(get_account_service),
) -> MessageResponse:
    """Change the signed-in account's password."""
    result = service.change_password(current.account_id, body.current_password, body.new_password)
    if isinstance(result, Failure):
        raise ApiError.from_failure(result)
    return MessageResponse(message=result.message)
