# marketplace/api_auth.py
from typing import Optional

from fastapi import APIRouter, Depends, Request, Response
from pydantic import BaseModel, ConfigDict, Field

from marketplace.auth import TOKEN_COOKIE, get_current_user
from marketplace.entities import User

router = APIRouter(prefix="/api/auth", tags=["auth"])


class RegisterBody(BaseModel):
    name: str
    email: str
    password: str
    role: str = ""


class LoginBody(BaseModel):
    email: str
    password: str


class EmailBody(BaseModel):
    email: str


class OtpBody(BaseModel):
    email: str
    otp: str


class OnboardingBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    phone: str = ""
    location: Optional[str] = None
    business_name: Optional[str] = Field(default=None, alias="businessName")
    role: Optional[str] = None


class GoogleBody(BaseModel):
    credential: str


def _set_token_cookie(request: Request, response: Response, token: str) -> None:
    state = request.app.state
    response.set_cookie(
        TOKEN_COOKIE,
        token,
        httponly=True,
        samesite="lax",
        secure=state.cookie_secure,
        max_age=state.tokens.expires_minutes * 60,
    )


@router.post("/register", status_code=201)
def register(body: RegisterBody, request: Request):
    return request.app.state.users.register(body.name, body.email, body.password, body.role)


@router.get("/verify-email/{token}")
def verify_email(token: str, request: Request):
    return request.app.state.users.verify_email(token)


@router.post("/verify-otp")
def verify_otp(body: OtpBody, request: Request, response: Response):
    out, token = request.app.state.users.verify_otp(body.email, body.otp)
    _set_token_cookie(request, response, token)
    return out


@router.post("/resend-otp")
def resend_otp(body: EmailBody, request: Request):
    return request.app.state.users.resend_otp(body.email)


@router.post("/login")
def login(body: LoginBody, request: Request, response: Response):
    out, token = request.app.state.users.login(body.email, body.password)
    _set_token_cookie(request, response, token)
    return out


@router.post("/google")
def google_sign_in(body: GoogleBody, request: Request, response: Response):
    out, token = request.app.state.users.google_sign_in(body.credential)
    _set_token_cookie(request, response, token)
    return out


@router.post("/logout")
def logout(response: Response):
    response.delete_cookie(TOKEN_COOKIE)
    return {"message": "Logged out"}


@router.get("/me")
def me(request: Request, user: User = Depends(get_current_user)):
    return request.app.state.users.me(user)


@router.post("/onboarding")
def onboarding(body: OnboardingBody, request: Request, response: Response,
               user: User = Depends(get_current_user)):
    out, token = request.app.state.users.complete_onboarding(
        user.id,
        phone=body.phone,
        location=body.location,
        business_name=body.business_name,
        role=body.role,
    )
    # role may have changed, refresh the cookie
    _set_token_cookie(request, response, token)
    return out
