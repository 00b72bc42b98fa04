"""
Esquemas de registro, login y perfil.
"""

from pydantic import Field, model_validator
from typing import Optional

from bagami.schemas.common import CamelModel


class RegisterRequest(CamelModel):
    name: str = Field(..., min_length=1, max_length=255)
    email: Optional[str] = Field(None, max_length=255)
    phone: Optional[str] = Field(None, max_length=50)
    country_code: Optional[str] = Field(None, max_length=10)
    country: Optional[str] = None
    password: str = Field(..., min_length=6)
    language: str = "fr"

    @model_validator(mode="after")
    def email_or_phone(self):
        if not self.email and not self.phone:
            raise ValueError("Se requiere email o teléfono")
        return self

    class Config:
        json_schema_extra = {
            "example": {
                "name": "Awa Diop",
                "email": "awa@example.com",
                "password": "secreto123"
            }
        }


class LoginRequest(CamelModel):
    contact: str = Field(..., description="Email, teléfono o indicativo + teléfono")
    password: str


class ProfileUpdate(CamelModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    country: Optional[str] = None
    language: Optional[str] = None


class ChangePasswordRequest(CamelModel):
    current_password: str
    new_password: str = Field(..., min_length=6)
