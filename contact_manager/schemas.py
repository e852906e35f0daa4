from datetime import datetime
from typing import List, Optional

from email_validator import EmailNotValidError, validate_email
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationInfo,
    computed_field,
    field_validator,
)
from pydantic_core import PydanticCustomError

from .policies import LENIENT

#: Error type used for every contact rule violation; its message is user facing.
RULE_ERROR = "contact_rule"

REQUIRED_MESSAGES = {
    "name": "Please add the contact's name",
    "email": "Please add the contact's email",
    "phone": "Please add the contact's phone number",
}


def _rule_error(message: str) -> PydanticCustomError:
    return PydanticCustomError(RULE_ERROR, message)


class ContactRules(BaseModel):
    """Field rules shared by contact input schemas.

    Values are trimmed before validation and the email is lower-cased.
    The phone rule depends on the ``phone_policy`` passed in the
    validation context; the lenient rule applies when none is given.
    """

    model_config = ConfigDict(extra="forbid")

    @field_validator("name", "email", "phone", mode="before", check_fields=False)
    @classmethod
    def strip_text(cls, value, info: ValidationInfo):
        if value is None:
            raise _rule_error(REQUIRED_MESSAGES[info.field_name])
        if isinstance(value, str):
            return value.strip()
        return value

    @field_validator("name", check_fields=False)
    @classmethod
    def check_name(cls, value: str) -> str:
        if not value:
            raise _rule_error(REQUIRED_MESSAGES["name"])
        if len(value) < 2:
            raise _rule_error("Name must be at least 2 characters")
        if len(value) > 100:
            raise _rule_error("Name must be less than 100 characters")
        return value

    @field_validator("email", check_fields=False)
    @classmethod
    def check_email(cls, value: str) -> str:
        if not value:
            raise _rule_error(REQUIRED_MESSAGES["email"])
        try:
            validate_email(value, check_deliverability=False)
        except EmailNotValidError:
            raise _rule_error("Please enter a valid email address")
        return value.lower()

    @field_validator("phone", check_fields=False)
    @classmethod
    def check_phone(cls, value: str, info: ValidationInfo) -> str:
        if not value:
            raise _rule_error(REQUIRED_MESSAGES["phone"])
        policy = (info.context or {}).get("phone_policy", LENIENT)
        message = policy.check(value)
        if message:
            raise _rule_error(message)
        return value


class ContactCreate(ContactRules):
    """Schema for creating new contact, every field required."""

    name: str
    email: str
    phone: str


class ContactUpdate(ContactRules):
    """Schema for updating contact (all fields optional)."""

    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None


class ContactOut(BaseModel):
    """Schema for returning a stored contact."""

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    id: str
    name: str
    email: str
    phone: str
    created_at: Optional[datetime] = Field(default=None, serialization_alias="createdAt")
    updated_at: Optional[datetime] = Field(default=None, serialization_alias="updatedAt")

    @computed_field(alias="fullInfo")
    @property
    def full_info(self) -> str:
        return f"{self.name} <{self.email}>"


class Envelope(BaseModel):
    """Uniform response wrapper."""

    success: bool = True
    message: Optional[str] = None


class ContactResponse(Envelope):
    data: ContactOut


class ContactListResponse(Envelope):
    """One page of contacts with pagination totals."""

    count: int
    total: int
    page: int
    pages: int
    data: List[ContactOut]


class MessageResponse(Envelope):
    pass


class ErrorResponse(Envelope):
    success: bool = False
    errors: Optional[List[str]] = None
