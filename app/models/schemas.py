from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, EmailStr, Field, constr, field_validator, model_validator


USERNAME = constr(strip_whitespace=True, min_length=3, max_length=20)
PASSWORD = constr(min_length=6)


class UserCreate(BaseModel):
    username: USERNAME
    email: EmailStr
    password: PASSWORD
    confirm_password: str
    first_name: str | None = None
    last_name: str | None = None

    @field_validator("email")
    def lower_email(cls, v) -> str:
        return v.lower()

    @model_validator(mode="after")
    def passwords_match(self):
        if self.password != self.confirm_password:
            raise ValueError("Password confirmation does not match")
        return self


class LoginIn(BaseModel):
    # username or email
    username: str
    password: str


class UserOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    username: str
    email: str
    first_name: str = ""
    last_name: str = ""
    role: str

    @field_validator("first_name", "last_name", mode="before")
    def blank_if_missing(cls, v) -> str:
        return v or ""

    @field_validator("role", mode="before")
    def role_value(cls, v) -> str:
        return getattr(v, "value", v)


class ProfileOut(UserOut):
    created_at: datetime | None = None
    last_login: datetime | None = None


class ProfileUpdate(BaseModel):
    first_name: str | None = None
    last_name: str | None = None
    email: EmailStr | None = None


class ChangePasswordIn(BaseModel):
    current_password: str
    new_password: str
    confirm_password: str


class RefreshIn(BaseModel):
    # clients send ``refreshToken``; ``refresh_token`` is accepted too
    model_config = ConfigDict(populate_by_name=True)

    refresh_token: str | None = Field(None, alias="refreshToken")


class AuthResponse(BaseModel):
    success: bool = True
    user: UserOut
    access_token: str
    refresh_token: str
    token_type: str = "bearer"


class AccessTokenResponse(BaseModel):
    success: bool = True
    access_token: str
    token_type: str = "bearer"


class MessageOut(BaseModel):
    success: bool = True
    message: str
    message_en: str


class ProfileResponse(BaseModel):
    success: bool = True
    user: ProfileOut


class ProfileUpdateResponse(MessageOut):
    user: UserOut


class UniversityIn(BaseModel):
    external_id: str
    name: constr(max_length=100)
    description: constr(max_length=2000)
    university: str
    field: str
    location: str
    deadline: str
    requirements: list[str]
    source: Literal["api1", "api2"]


class UniversityOut(UniversityIn):
    model_config = ConfigDict(from_attributes=True)

    id: int
    created_at: datetime | None = None
    updated_at: datetime | None = None


class JobIn(BaseModel):
    external_id: str
    title: constr(max_length=100)
    company: str
    location: str
    type: str
    salary: str | None = None
    description: constr(max_length=2000)
    requirements: list[str]
    source: Literal["api1", "api2"]
    is_active: bool = True


class JobOut(JobIn):
    model_config = ConfigDict(from_attributes=True)

    id: int
    created_at: datetime | None = None
    updated_at: datetime | None = None


class FavoriteIn(BaseModel):
    id: int
    type: Literal["university", "job"]


class FavoritesOut(BaseModel):
    success: bool = True
    universities: list[UniversityOut]
    jobs: list[JobOut]


class LookupOut(BaseModel):
    success: bool = True
    count: int
    data: list[str]
