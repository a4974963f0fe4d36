"""Pydantic schemas for authentication endpoints."""

from datetime import datetime

from pydantic import BaseModel


class RegisterRequest(BaseModel):
    email: str = ""
    password: str = ""
    city: str | None = None
    skill_level: str | None = None
    phone: str | None = None


class LoginRequest(BaseModel):
    email: str = ""
    password: str = ""


class ResendVerificationRequest(BaseModel):
    email: str = ""


class ForgotPasswordRequest(BaseModel):
    email: str = ""


class ResetPasswordRequest(BaseModel):
    token: str = ""
    email: str = ""
    password: str = ""
    confirm_password: str = ""


class ChangePasswordRequest(BaseModel):
    current_password: str = ""
    new_password: str = ""


class AccountOut(BaseModel):
    id: int
    email: str
    email_verified: bool
    city: str | None = None
    skill_level: str | None = None
    phone: str | None = None
    is_available: bool
    is_admin: bool
    created_at: datetime


class RegisterResponse(BaseModel):
    success: bool = True
    message: str
    account: AccountOut
    next_step: str


class LoginResponse(BaseModel):
    success: bool = True
    message: str
    account: AccountOut
    token: str


class VerifyEmailResponse(BaseModel):
    success: bool = True
    message: str
    code: str


class MessageResponse(BaseModel):
    success: bool = True
    message: str
    email: str | None = None


class SessionResponse(BaseModel):
    valid: bool = True
    account_id: str
    email: str
    email_verified: bool
    is_admin: bool
