from datetime import datetime, timezone
from typing import Optional

from sqlmodel import Field, SQLModel

# Donation.delivery_status
AVAILABLE = "available"
RESERVED = "reserved"
DELIVERED = "delivered"
DELIVERY_STATUSES = (AVAILABLE, RESERVED, DELIVERED)

# Request.status
PENDING = "pending"
APPROVED = "approved"
REJECTED = "rejected"
REQUEST_STATUSES = (PENDING, APPROVED, REJECTED)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class User(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    email: str = Field(index=True, unique=True)
    name: str
    phone: Optional[str] = None
    is_donor: bool = False
    is_seeker: bool = False
    password_hash: str
    created_at: datetime = Field(default_factory=utcnow)


class Donation(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    donor_id: Optional[int] = Field(default=None, foreign_key="user.id")

    type: str
    description: str
    condition: str
    zone: str
    city: str
    latitude: float
    longitude: float

    delivery_status: str = Field(default=AVAILABLE, index=True)  # available | reserved | delivered
    requester_id: Optional[int] = Field(default=None, foreign_key="user.id")
    reserved_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utcnow)


class Request(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    requester_id: int = Field(foreign_key="user.id")
    donation_id: int = Field(foreign_key="donation.id", index=True)

    message: Optional[str] = None
    status: str = Field(default=PENDING, index=True)  # pending | approved | rejected
    created_at: datetime = Field(default_factory=utcnow)
    responded_at: Optional[datetime] = None
