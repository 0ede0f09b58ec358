from pydantic import BaseModel, EmailStr, Field, ConfigDict
from typing import Literal, Optional


Role = Literal["donor", "seeker"]


class Actor(BaseModel):
    """Who is performing a workflow operation."""

    user_id: int
    role: Role


class DonationCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    type: str = Field(min_length=1)
    description: str = Field(min_length=1)
    condition: str = Field(min_length=1)
    zone: str = Field(min_length=1)
    city: str = Field(min_length=1)
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    donor_id: Optional[int] = None


class DonationStatusUpdate(BaseModel):
    status: str
    requester_id: Optional[int] = None


class RequestCreate(BaseModel):
    donation_id: int
    requester_id: Optional[int] = None
    message: Optional[str] = None


class RequestStatusUpdate(BaseModel):
    status: str


class RankingEntry(BaseModel):
    value: str
    count: int
    percent: int


class DonationSummary(BaseModel):
    total: int
    by_status: dict[str, int]
    cities: int
    types: int


class Inconsistency(BaseModel):
    donation_id: int
    request_id: Optional[int] = None
    reason: str


class UserCreate(BaseModel):
    email: EmailStr
    name: str
    password: str
    phone: Optional[str] = None
    is_donor: bool = False
    is_seeker: bool = False


class UserRead(BaseModel):
    id: int
    email: EmailStr
    name: str
    phone: Optional[str] = None
    is_donor: bool
    is_seeker: bool

    model_config = ConfigDict(from_attributes=True)


class LoginData(BaseModel):
    email: EmailStr
    password: str

    role: Role
