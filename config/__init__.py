# Config module
from .settings import settings, validate_settings, parse_auth_users
from .form_schema import (
    SUPPORTED_COUNTRIES,
    DEFAULT_COUNTRY,
    RAW_FIELD_MAX_LENGTH,
    WizardStage,
    FormSection,
    AccountType,
    Name,
    Address,
    Person,
    BankAccount,
    DigitalSignature,
    DraftSnapshot,
)

__all__ = [
    "settings",
    "validate_settings",
    "parse_auth_users",
    "SUPPORTED_COUNTRIES",
    "DEFAULT_COUNTRY",
    "RAW_FIELD_MAX_LENGTH",
    "WizardStage",
    "FormSection",
    "AccountType",
    "Name",
    "Address",
    "Person",
    "BankAccount",
    "DigitalSignature",
    "DraftSnapshot",
]
