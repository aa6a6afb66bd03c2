"""
Request Schemas for the Fitness Tracker API

Each Pydantic model below describes the body accepted by one create or
patch route. Documents are schema-flexible, so most models allow extra
fields and keep the named ones optional: presence of required values is
checked by the routes, which answer 400 with a readable message.

Collections:
- users, testimonials, classes, trainers, forum, reviews, bookings, subscriber
"""

from email_validator import validate_email
from pydantic import AfterValidator, BaseModel, ConfigDict, Field
from typing import Annotated, Optional, Dict, Any


def _checked_email(value: str) -> str:
    # format check only: lookups match the address exactly as it was sent
    validate_email(value, check_deliverability=False)
    return value


Email = Annotated[str, AfterValidator(_checked_email)]


class FlexibleModel(BaseModel):
    model_config = ConfigDict(extra="allow")


class UserIn(FlexibleModel):
    email: Optional[str] = Field(None, description="Business key of the user")
    name: Optional[str] = None
    image: Optional[str] = None


class TestimonialIn(FlexibleModel):
    name: Optional[str] = None
    review: Optional[str] = None
    role: Optional[str] = None


class ClassIn(FlexibleModel):
    name: Optional[str] = Field(None, description="Class title, searchable")
    image: Optional[str] = None
    details: Optional[str] = None


class TrainerIn(FlexibleModel):
    name: Optional[str] = None
    image: Optional[str] = None
    experience: Optional[Any] = Field(None, description="Years of experience")


class TrainerApplicationIn(BaseModel):
    name: Optional[str] = None
    email: Optional[Email] = None
    age: Optional[Any] = None
    image: Optional[str] = None
    experience: Optional[Any] = None
    details: Optional[str] = None
    expertise: Optional[Any] = Field(None, description="List of specialities")
    availableDays: Optional[Any] = None
    availableSlots: Optional[Any] = None
    socials: Optional[Any] = None


class RejectIn(BaseModel):
    feedback: Optional[str] = None


class RemoveSlotIndexIn(BaseModel):
    slotIndex: int = Field(..., ge=0, description="Position in availableSlots")


class RemoveSlotValueIn(BaseModel):
    slot: Any = Field(..., description="Slot value to pull from availableSlots")


class VoteIn(BaseModel):
    voteType: Optional[str] = Field(None, description="up | down")
    userId: Optional[str] = None


class ReviewIn(FlexibleModel):
    trainerId: Optional[str] = Field(None, description="Trainer ObjectId as string")
    rating: Optional[float] = Field(None, ge=0, le=5)


class SubscribeIn(BaseModel):
    name: Optional[str] = None
    email: Optional[Email] = None


class PaymentIn(FlexibleModel):
    userEmail: Optional[str] = None
    trainerId: Optional[str] = Field(None, description="Trainer ObjectId as string")
    price: Optional[float] = Field(None, ge=0)


PENDING = "pending"
APPROVED = "approved"
REJECTED = "rejected"
REMOVING = "removing"

DEFAULT_SOCIALS: Dict[str, str] = {"facebook": "", "instagram": "", "linkedin": ""}
