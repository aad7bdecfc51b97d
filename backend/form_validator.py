"""
Form Validator - Field and section validation for the KYC onboarding form.

Provides:
- Validators for each field kind (name, email, phone, address, zip, bank fields)
- ABA routing number checksum validation
- Age eligibility checks
- Section validation with error aggregation

Every field validator checks the sanitized value, so validity is defined
on what would actually be stored.
"""

import re
from datetime import date
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple

from backend.sanitizer import sanitize
from config.form_schema import Address, BankAccount, Person


STANDARD_FIELD_MAX_LENGTH = 48
MINIMUM_AGE = 18

_N = STANDARD_FIELD_MAX_LENGTH

NAME_PATTERN = re.compile(rf"[a-zA-Z\s\-']{{1,{_N}}}")
EMAIL_PATTERN = re.compile(r"[A-Z0-9a-z._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,64}")
ADDRESS_PATTERN = re.compile(rf"[a-zA-Z0-9\s.,\-#/]{{1,{_N}}}")
BANK_NAME_PATTERN = re.compile(rf"[a-zA-Z0-9\s.,\-&']{{1,{_N}}}")
ZIP_CODE_PATTERN = re.compile(r"[0-9]{6}")
ACCOUNT_NUMBER_PATTERN = re.compile(r"[0-9]{8,17}")
ROUTING_NUMBER_PATTERN = re.compile(r"[0-9]{9}")

# City, state and account holder share the name character set
CITY_PATTERN = NAME_PATTERN
STATE_PATTERN = NAME_PATTERN
ACCOUNT_HOLDER_PATTERN = NAME_PATTERN

ROUTING_WEIGHTS = (3, 7, 1, 3, 7, 1, 3, 7, 1)


class FieldKind(str, Enum):
    """Kinds of form fields that have a validation rule."""
    NAME = "name"
    EMAIL = "email"
    PHONE = "phone"
    ADDRESS = "address"
    CITY = "city"
    STATE = "state"
    ZIP_CODE = "zip_code"
    ACCOUNT_NUMBER = "account_number"
    ROUTING_NUMBER = "routing_number"
    BANK_NAME = "bank_name"
    ACCOUNT_HOLDER_NAME = "account_holder_name"
    TEXT = "text"


# ============================================================================
# FIELD VALIDATORS
# ============================================================================

def _matches(pattern: re.Pattern, value: Optional[str]) -> bool:
    return pattern.fullmatch(sanitize(value)) is not None


def is_valid_name(value: Optional[str]) -> bool:
    """Letters, spaces, hyphens and apostrophes; 1-48 characters."""
    return _matches(NAME_PATTERN, value)


def is_valid_email(value: Optional[str]) -> bool:
    """local@domain.tld with a 2-64 letter top level domain."""
    return _matches(EMAIL_PATTERN, value)


def is_valid_phone(value: Optional[str]) -> bool:
    """
    Validate a 10 digit North American style phone number.

    Non-digit characters are ignored. The area code (first digit) and the
    exchange code (fourth digit) may not start with 0 or 1, and the area
    code may not have 0 as its second digit.
    """
    digits = "".join(ch for ch in sanitize(value) if ch in "0123456789")

    if len(digits) != 10:
        return False

    if digits[0] in "01" or digits[1] == "0":
        return False

    if digits[3] in "01":
        return False

    return True


def is_valid_address(value: Optional[str]) -> bool:
    """Alphanumerics, spaces and . , - # /; 1-48 characters."""
    return _matches(ADDRESS_PATTERN, value)


def is_valid_city(value: Optional[str]) -> bool:
    return _matches(CITY_PATTERN, value)


def is_valid_state(value: Optional[str]) -> bool:
    return _matches(STATE_PATTERN, value)


def is_valid_zip_code(value: Optional[str]) -> bool:
    """Exactly 6 digits."""
    return _matches(ZIP_CODE_PATTERN, value)


def is_valid_account_number(value: Optional[str]) -> bool:
    """8 to 17 digits."""
    return _matches(ACCOUNT_NUMBER_PATTERN, value)


def routing_checksum(digits: str) -> int:
    """
    ABA checksum of a 9 digit routing number.
    A routing number is valid when this returns 0.
    """
    return sum(int(d) * w for d, w in zip(digits, ROUTING_WEIGHTS)) % 10


def is_valid_routing_number(value: Optional[str]) -> bool:
    """Exactly 9 digits passing the ABA checksum."""
    routing = sanitize(value)
    if ROUTING_NUMBER_PATTERN.fullmatch(routing) is None:
        return False
    return routing_checksum(routing) == 0


def is_valid_bank_name(value: Optional[str]) -> bool:
    """Alphanumerics, spaces and . , - & '; 1-48 characters."""
    return _matches(BANK_NAME_PATTERN, value)


def is_valid_account_holder_name(value: Optional[str]) -> bool:
    return _matches(ACCOUNT_HOLDER_PATTERN, value)


def is_valid_text_field(value: Optional[str]) -> bool:
    """Any non-blank text up to the standard field length."""
    text = sanitize(value)
    return bool(text) and len(text) <= STANDARD_FIELD_MAX_LENGTH


FIELD_VALIDATORS: Dict[FieldKind, Callable[[Optional[str]], bool]] = {
    FieldKind.NAME: is_valid_name,
    FieldKind.EMAIL: is_valid_email,
    FieldKind.PHONE: is_valid_phone,
    FieldKind.ADDRESS: is_valid_address,
    FieldKind.CITY: is_valid_city,
    FieldKind.STATE: is_valid_state,
    FieldKind.ZIP_CODE: is_valid_zip_code,
    FieldKind.ACCOUNT_NUMBER: is_valid_account_number,
    FieldKind.ROUTING_NUMBER: is_valid_routing_number,
    FieldKind.BANK_NAME: is_valid_bank_name,
    FieldKind.ACCOUNT_HOLDER_NAME: is_valid_account_holder_name,
    FieldKind.TEXT: is_valid_text_field,
}


def validate_field(kind: FieldKind, value: Optional[str]) -> bool:
    """Validate a single value by field kind."""
    return FIELD_VALIDATORS[FieldKind(kind)](value)


# ============================================================================
# AGE VALIDATION
# ============================================================================

def calculate_age(birth_date: date, today: Optional[date] = None) -> int:
    """Whole years between birth_date and today."""
    today = today or date.today()
    return today.year - birth_date.year - (
        (today.month, today.day) < (birth_date.month, birth_date.day)
    )


def is_valid_age(birth_date: Optional[date], today: Optional[date] = None) -> bool:
    """Check the minimum age requirement."""
    if not birth_date:
        return False
    return calculate_age(birth_date, today) >= MINIMUM_AGE


def age_validation_message(
    birth_date: Optional[date],
    person_type: str,
    today: Optional[date] = None
) -> Optional[str]:
    """Advisory message for an under-age person, or None."""
    if not birth_date:
        return f"{person_type} date of birth is required"

    age = calculate_age(birth_date, today)
    if age < MINIMUM_AGE:
        return f"{person_type} must be at least {MINIMUM_AGE} years old. Current age: {age}"
    return None


# ============================================================================
# SECTION VALIDATORS
# ============================================================================

def _check(
    errors: List[str],
    field_errors: Dict[str, str],
    field_id: str,
    is_valid: bool,
    message: str
) -> None:
    if not is_valid:
        errors.append(message)
        field_errors[field_id] = message


def validate_person(
    person: Person,
    label: str = "Member",
    today: Optional[date] = None
) -> Tuple[bool, List[str], Dict[str, str]]:
    """
    Validate the personal information of a member or nominee.

    Middle name is optional but must be a valid name when given.
    The minimum age is a hard requirement.

    Returns:
        Tuple of (is_valid, list_of_errors, field_errors)
    """
    errors: List[str] = []
    field_errors: Dict[str, str] = {}

    _check(errors, field_errors, "name.first", is_valid_name(person.name.first),
           f"{label} first name must contain only letters, spaces, hyphens or apostrophes")
    _check(errors, field_errors, "name.last", is_valid_name(person.name.last),
           f"{label} last name must contain only letters, spaces, hyphens or apostrophes")
    if person.name.middle:
        _check(errors, field_errors, "name.middle", is_valid_name(person.name.middle),
               f"{label} middle name must contain only letters, spaces, hyphens or apostrophes")
    _check(errors, field_errors, "email", is_valid_email(person.email),
           f"Enter a valid email address for {label.lower()}")
    _check(errors, field_errors, "phone", is_valid_phone(person.phone),
           f"Enter a valid 10 digit phone number for {label.lower()}")

    age_error = age_validation_message(person.birth_date, label, today)
    _check(errors, field_errors, "birth_date", age_error is None, age_error or "")

    return len(errors) == 0, errors, field_errors


def validate_address(
    address: Address,
    label: str = "Member"
) -> Tuple[bool, List[str], Dict[str, str]]:
    """
    Validate a postal address. Line 2 is checked only when filled in.

    Returns:
        Tuple of (is_valid, list_of_errors, field_errors)
    """
    errors: List[str] = []
    field_errors: Dict[str, str] = {}

    _check(errors, field_errors, "address_line1", is_valid_address(address.address_line1),
           f"{label} address line 1 is required (letters, digits, spaces and . , - # / only)")
    if address.address_line2:
        _check(errors, field_errors, "address_line2", is_valid_address(address.address_line2),
               f"{label} address line 2 may contain only letters, digits, spaces and . , - # /")
    _check(errors, field_errors, "city", is_valid_city(address.city),
           f"Enter a valid city for {label.lower()}")
    _check(errors, field_errors, "state", is_valid_state(address.state),
           f"Enter a valid state for {label.lower()}")
    _check(errors, field_errors, "zip_code", is_valid_zip_code(address.zip_code),
           f"{label} zip code must be 6 digits")

    return len(errors) == 0, errors, field_errors


def validate_bank_account(account: BankAccount) -> Tuple[bool, List[str], Dict[str, str]]:
    """
    Validate bank details, including the account number confirmation.

    Returns:
        Tuple of (is_valid, list_of_errors, field_errors)
    """
    errors: List[str] = []
    field_errors: Dict[str, str] = {}

    _check(errors, field_errors, "account_holder_name",
           is_valid_account_holder_name(account.account_holder_name),
           "Account holder name must contain only letters, spaces, hyphens or apostrophes")
    _check(errors, field_errors, "account_number", is_valid_account_number(account.account_number),
           "Account number must be 8 to 17 digits")
    _check(errors, field_errors, "confirm_account_number",
           account.account_number == account.confirm_account_number,
           "Account numbers do not match")
    _check(errors, field_errors, "routing_number", is_valid_routing_number(account.routing_number),
           "Routing number must be 9 digits with a valid checksum")
    _check(errors, field_errors, "bank_name", is_valid_bank_name(account.bank_name),
           "Enter a valid bank name")

    return len(errors) == 0, errors, field_errors
