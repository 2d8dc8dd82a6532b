from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Cookie, Depends, Header, Request, Response

from userhub.api.schemas import (
    ChangePasswordRequest,
    Envelope,
    LoginRequest,
    LoginResponse,
    RefreshTokenRequest,
    RegisterRequest,
    TokenPairResponse,
    UpdateAccountRequest,
    UserResponse,
)
from userhub.service.runtime import Runtime
from userhub.service.tokens import TokenPair
from userhub.storage.models import UserProfile

router = APIRouter(prefix="/api/v1/users", tags=["users"])

ACCESS_COOKIE = "accessToken"
REFRESH_COOKIE = "refreshToken"


def get_runtime(request: Request) -> Runtime:
    return request.app.state.runtime


async def get_principal(
    request: Request,
    access_cookie: Optional[str] = Cookie(None, alias=ACCESS_COOKIE),
    authorization: Optional[str] = Header(None),
    runtime: Runtime = Depends(get_runtime),
) -> UserProfile:
    """Resolve the caller from the access-token cookie or bearer header."""
    profile = await runtime.guard.authenticate(
        cookie_token=access_cookie, authorization=authorization
    )
    request.state.user = profile
    return profile


def _user_response(profile: UserProfile) -> UserResponse:
    return UserResponse(
        id=profile.id,
        username=profile.username,
        email=profile.email,
        full_name=profile.full_name,
        created_at=profile.created_at,
        updated_at=profile.updated_at,
    )


def _user_data(profile: UserProfile) -> dict:
    return _user_response(profile).model_dump(by_alias=True, mode="json")


def _envelope(data, message: str, status_code: int = 200) -> dict:
    return Envelope(status_code=status_code, data=data, message=message).model_dump(
        by_alias=True, mode="json"
    )


def _cookie_options(runtime: Runtime) -> dict:
    settings = runtime.settings
    return {
        "httponly": True,
        "secure": settings.cookie_secure,
        "samesite": settings.cookie_samesite,
        "domain": settings.cookie_domain,
        "path": "/",
    }


def _apply_token_cookies(response: Response, runtime: Runtime, tokens: TokenPair) -> None:
    options = _cookie_options(runtime)
    response.set_cookie(
        ACCESS_COOKIE, tokens.access_token, max_age=tokens.access_ttl_seconds, **options
    )
    response.set_cookie(
        REFRESH_COOKIE, tokens.refresh_token, max_age=tokens.refresh_ttl_seconds, **options
    )


def _clear_token_cookies(response: Response, runtime: Runtime) -> None:
    options = _cookie_options(runtime)
    response.delete_cookie(ACCESS_COOKIE, **options)
    response.delete_cookie(REFRESH_COOKIE, **options)


@router.post("/register", status_code=201)
async def register(body: RegisterRequest, runtime: Runtime = Depends(get_runtime)):
    """Create an account and return its sanitized profile."""
    profile = await runtime.sessions.register(
        full_name=body.full_name,
        email=body.email,
        username=body.username,
        password=body.password,
    )
    return _envelope(_user_data(profile), "User registered successfully", status_code=201)


@router.post("/login")
async def login(
    body: LoginRequest, response: Response, runtime: Runtime = Depends(get_runtime)
):
    """Verify credentials, then deliver both tokens as cookies and in the body."""
    result = await runtime.sessions.login(
        username=body.username, email=body.email, password=body.password
    )
    _apply_token_cookies(response, runtime, result.tokens)
    data = LoginResponse(
        user=_user_response(result.user),
        access_token=result.tokens.access_token,
        refresh_token=result.tokens.refresh_token,
    ).model_dump(by_alias=True, mode="json")
    return _envelope(data, "User logged in successfully")


@router.post("/logout")
async def logout(
    response: Response,
    principal: UserProfile = Depends(get_principal),
    runtime: Runtime = Depends(get_runtime),
):
    await runtime.sessions.logout(principal.id)
    _clear_token_cookies(response, runtime)
    return _envelope({}, "User logged out")


@router.post("/refresh-token")
async def refresh_token(
    response: Response,
    body: Optional[RefreshTokenRequest] = None,
    refresh_cookie: Optional[str] = Cookie(None, alias=REFRESH_COOKIE),
    runtime: Runtime = Depends(get_runtime),
):
    """Rotate the refresh token; the cookie wins over the body field."""
    incoming = refresh_cookie or (body.refresh_token if body else None)
    tokens = await runtime.sessions.refresh(incoming)
    _apply_token_cookies(response, runtime, tokens)
    data = TokenPairResponse(
        access_token=tokens.access_token, refresh_token=tokens.refresh_token
    ).model_dump(by_alias=True)
    return _envelope(data, "Access token refreshed")


@router.post("/change-password")
async def change_password(
    body: ChangePasswordRequest,
    principal: UserProfile = Depends(get_principal),
    runtime: Runtime = Depends(get_runtime),
):
    await runtime.sessions.change_password(
        principal.id, old_password=body.old_password, new_password=body.new_password
    )
    return _envelope({}, "Password changed successfully")


@router.get("/current-user")
async def current_user(
    principal: UserProfile = Depends(get_principal),
    runtime: Runtime = Depends(get_runtime),
):
    profile = await runtime.sessions.get_current_user(principal.id)
    return _envelope(_user_data(profile), "User fetched successfully")


@router.patch("/account")
async def update_account(
    body: UpdateAccountRequest,
    principal: UserProfile = Depends(get_principal),
    runtime: Runtime = Depends(get_runtime),
):
    profile = await runtime.sessions.update_account_details(
        principal.id, full_name=body.full_name, email=body.email
    )
    return _envelope(_user_data(profile), "Account details updated successfully")
