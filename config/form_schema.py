"""
Form schema definitions for the KYC onboarding wizard.
These models define the member, nominee, bank account and draft
structures shared by validation, auto-save and submission.
"""

from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field, field_validator
from datetime import date, datetime


SUPPORTED_COUNTRIES = [
    "United States",
    "Canada",
    "United Kingdom",
    "India",
    "Australia",
    "Germany",
    "France",
    "Singapore",
]

DEFAULT_COUNTRY = "United States"

# Longest raw value accepted for any text field
RAW_FIELD_MAX_LENGTH = 500


def default_birth_date() -> date:
    """Default birth date: 25 years before today."""
    today = date.today()
    try:
        return today.replace(year=today.year - 25)
    except ValueError:
        # Feb 29 in a non-leap target year
        return today.replace(year=today.year - 25, day=28)


class WizardStage(str, Enum):
    """Ordered stages of the onboarding wizard. Navigation wraps at both ends."""
    MEMBER_INFO = "member_info"
    MEMBER_ADDRESS = "member_address"
    NOMINEE_INFO = "nominee_info"
    NOMINEE_ADDRESS = "nominee_address"
    BANK_DETAILS = "bank_details"
    SUMMARY = "summary"

    def next_stage(self) -> "WizardStage":
        stages = list(WizardStage)
        return stages[(stages.index(self) + 1) % len(stages)]

    def previous_stage(self) -> "WizardStage":
        stages = list(WizardStage)
        return stages[(stages.index(self) - 1) % len(stages)]

    @property
    def step_number(self) -> int:
        """1-based position, for progress display."""
        return list(WizardStage).index(self) + 1


class FormSection(str, Enum):
    """Mutable blocks of form data."""
    MEMBER = "member"
    MEMBER_ADDRESS = "member_address"
    NOMINEE = "nominee"
    NOMINEE_ADDRESS = "nominee_address"
    ACCOUNT = "account"
    DIGITAL_SIGNATURE = "digital_signature"


class AccountType(str, Enum):
    """Bank account types offered on the bank details stage."""
    CHECKING = "Checking"
    SAVINGS = "Savings"
    CURRENT = "Current"
    BUSINESS_CHECKING = "Business Checking"
    BUSINESS_SAVINGS = "Business Savings"


class Name(BaseModel):
    first: str = Field("", max_length=RAW_FIELD_MAX_LENGTH)
    middle: str = Field("", max_length=RAW_FIELD_MAX_LENGTH)
    last: str = Field("", max_length=RAW_FIELD_MAX_LENGTH)

    @property
    def full_name(self) -> str:
        return " ".join(part for part in (self.first, self.middle, self.last) if part)


class Address(BaseModel):
    """Postal address. Line 2 is optional."""
    country: str = DEFAULT_COUNTRY
    address_line1: str = Field("", max_length=RAW_FIELD_MAX_LENGTH)
    address_line2: str = Field("", max_length=RAW_FIELD_MAX_LENGTH)
    city: str = Field("", max_length=RAW_FIELD_MAX_LENGTH)
    state: str = Field("", max_length=RAW_FIELD_MAX_LENGTH)
    zip_code: str = Field("", max_length=RAW_FIELD_MAX_LENGTH)

    @field_validator("country")
    @classmethod
    def country_supported(cls, value: str) -> str:
        if value not in SUPPORTED_COUNTRIES:
            raise ValueError(f"Unsupported country: {value}")
        return value


class Person(BaseModel):
    """Identity of the member or the nominee."""
    name: Name = Field(default_factory=Name)
    email: str = Field("", max_length=RAW_FIELD_MAX_LENGTH)
    phone: str = Field("", max_length=RAW_FIELD_MAX_LENGTH)
    birth_date: date = Field(default_factory=default_birth_date)
    address: Address = Field(default_factory=Address)


class BankAccount(BaseModel):
    """Bank account details. The confirmation field is never persisted remotely."""
    account_holder_name: str = Field("", max_length=RAW_FIELD_MAX_LENGTH)
    account_number: str = Field("", max_length=RAW_FIELD_MAX_LENGTH)
    confirm_account_number: str = Field("", max_length=RAW_FIELD_MAX_LENGTH)
    routing_number: str = Field("", max_length=RAW_FIELD_MAX_LENGTH)
    bank_name: str = Field("", max_length=RAW_FIELD_MAX_LENGTH)
    account_type: AccountType = AccountType.SAVINGS


class DigitalSignature(BaseModel):
    """Captured signature image."""
    image_data: Optional[str] = Field(None, description="Base64 encoded PNG/JPEG image data")
    timestamp: datetime = Field(default_factory=datetime.now)
    is_complete: bool = False
    user_id: str = ""


class DraftSnapshot(BaseModel):
    """
    Locally persisted form draft.
    Every field is optional so partial and legacy drafts still load.
    """
    member: Optional[Person] = None
    member_address: Optional[Address] = None
    nominee: Optional[Person] = None
    nominee_address: Optional[Address] = None
    account: Optional[BankAccount] = None
    digital_signature: Optional[DigitalSignature] = None
    last_updated: Optional[datetime] = None
