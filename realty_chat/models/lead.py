"""Lead capture models."""

from datetime import datetime
from enum import Enum, IntEnum

from pydantic import BaseModel, Field


class LeadStatus(str, Enum):
    """Sales pipeline status of a lead."""

    NEW = "new"
    CONTACTED = "contacted"
    QUALIFIED = "qualified"
    CONVERTED = "converted"


class LeadState(IntEnum):
    """Progress through the capture flow, stored as the lead's `step`."""

    NOT_STARTED = 0
    AWAITING_NAME = 1
    AWAITING_EMAIL = 2
    AWAITING_PHONE = 3
    COMPLETE = 4

    @property
    def collecting(self) -> bool:
        """True while the next message is consumed as a contact field."""
        return LeadState.AWAITING_NAME <= self <= LeadState.AWAITING_PHONE


class Lead(BaseModel):
    """A prospective customer record. Exactly one per user_id."""

    user_id: str
    name: str | None = None
    email: str | None = None
    phone: str | None = None
    interested_properties: list[str] = Field(default_factory=list)
    status: LeadStatus = LeadStatus.NEW
    step: LeadState = LeadState.NOT_STARTED
    created_at: datetime | None = None
    updated_at: datetime | None = None
