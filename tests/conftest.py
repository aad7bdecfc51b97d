"""Shared fixtures for the form engine tests."""

import sys
import os
from datetime import date

import pytest

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config.form_schema import FormSection

TODAY = date(2026, 6, 1)

VALID_SECTIONS = {
    FormSection.MEMBER: {
        "name": {"first": "Ada", "last": "Lovelace"},
        "email": "ada@example.com",
        "phone": "(234) 567-8901",
        "birth_date": "1990-01-15",
    },
    FormSection.MEMBER_ADDRESS: {
        "address_line1": "12 Main St.",
        "city": "Springfield",
        "state": "Illinois",
        "zip_code": "627010",
    },
    FormSection.NOMINEE: {
        "name": {"first": "Charles", "last": "Babbage"},
        "email": "charles@example.com",
        "phone": "3125550199",
        "birth_date": "1985-12-26",
    },
    FormSection.NOMINEE_ADDRESS: {
        "address_line1": "40 Elm Road",
        "city": "Chicago",
        "state": "Illinois",
        "zip_code": "606010",
    },
    FormSection.ACCOUNT: {
        "account_holder_name": "Ada Lovelace",
        "account_number": "123456789012",
        "confirm_account_number": "123456789012",
        "routing_number": "021000021",
        "bank_name": "First Bank & Trust",
    },
}


def fill_valid_form(form) -> None:
    """Populate every data section of a KYCFormState with valid values."""
    for section, data in VALID_SECTIONS.items():
        form.update_section(section, data)


@pytest.fixture
def fill_form():
    return fill_valid_form
