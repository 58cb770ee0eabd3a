from pydantic import BaseModel, EmailStr, Field
from typing import Optional


#----------------------------------------------------------
#AUTH SCHEMAS

class UserCreate(BaseModel):
    email: EmailStr
    full_name: str
    username: str
    password: str = Field(min_length=8, max_length=72)
    phone: Optional[str] = None


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user_id: Optional[str] = None
    role: Optional[str] = None


#----------------------------------------------------------
#SHARED

class LocationInput(BaseModel):
    lat: float = Field(ge=-90, le=90)
    lng: float = Field(ge=-180, le=180)
    address: Optional[str] = None


class OptionalPoint(BaseModel):
    lat: Optional[float] = Field(default=None, ge=-90, le=90)
    lng: Optional[float] = Field(default=None, ge=-180, le=180)

    def has_point(self) -> bool:
        return self.lat is not None and self.lng is not None
