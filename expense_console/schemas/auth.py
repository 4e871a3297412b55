from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, model_validator

from expense_console.schemas.common import CamelModel

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


class UserRole(str, Enum):
    ACCOUNTANT = "ACCOUNTANT"
    USER = "USER"


class User(CamelModel):
    id: str
    email: str
    first_name: str = ""
    last_name: str = ""
    role: UserRole = UserRole.USER

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class LoginRequest(BaseModel):
    email: str = Field(..., pattern=EMAIL_PATTERN)
    password: str = Field(..., min_length=6)


class RegisterRequest(CamelModel):
    email: str = Field(..., pattern=EMAIL_PATTERN)
    password: str = Field(..., min_length=6)
    confirm_password: Optional[str] = Field(default=None, exclude=True)
    first_name: str = Field(..., min_length=2)
    last_name: str = Field(..., min_length=2)
    role: UserRole = UserRole.USER

    @model_validator(mode="after")
    def passwords_match(self):
        if self.confirm_password is not None and self.confirm_password != self.password:
            raise ValueError("Passwords don't match")
        return self


class UpdateProfileRequest(CamelModel):
    first_name: Optional[str] = Field(default=None, min_length=2)
    last_name: Optional[str] = Field(default=None, min_length=2)
    email: Optional[str] = Field(default=None, pattern=EMAIL_PATTERN)


class AuthResponse(BaseModel):
    user: User
    access_token: str


class SessionOut(CamelModel):
    is_authenticated: bool
    is_mock_mode: bool = False
    user: Optional[User] = None
    token_expires_at: Optional[int] = None
