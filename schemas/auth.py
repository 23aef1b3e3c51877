from pydantic import BaseModel, EmailStr
from pydantic.alias_generators import to_camel


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class LoginResponse(BaseModel):
    access_token: str
    token_type: str = "Bearer"
    merchant_id: str
    email: EmailStr
    name: str

    class Config:
        alias_generator = to_camel
        populate_by_name = True


class LogoutResponse(BaseModel):
    success: bool
    message: str
