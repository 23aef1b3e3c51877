from typing import Optional

from fastapi import APIRouter, Depends

from core.dependencies import get_bearer_token, get_identity_provider
from schemas.auth import LoginRequest, LoginResponse, LogoutResponse
from services.identity import IdentityProvider

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/login", response_model=LoginResponse)
def login(data: LoginRequest, identity: IdentityProvider = Depends(get_identity_provider)):
    return identity.login(data.email, data.password)


@router.post("/logout", response_model=LogoutResponse)
def logout(token: Optional[str] = Depends(get_bearer_token), identity: IdentityProvider = Depends(get_identity_provider)):
    return identity.logout(token)
