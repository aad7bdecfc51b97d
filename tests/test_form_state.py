"""
Test Suite: Form State and Wizard Navigation

Tests:
1. Section updates merge nested fields and notify listeners
2. Bad updates leave the section unchanged
3. Navigation gating and wrap-around
4. Section validity and age messages
5. Snapshot and restore
6. Signature validity
7. Oversized text and unsupported countries are rejected
"""

import sys
import os
import io
import base64
from datetime import date, datetime

import pytest
from PIL import Image
from pydantic import ValidationError

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config.form_schema import (
    RAW_FIELD_MAX_LENGTH,
    Address,
    DraftSnapshot,
    FormSection,
    Name,
    Person,
    WizardStage,
)
from backend.form_state import FormChange, KYCFormState

TODAY = date(2026, 6, 1)


def _png_base64() -> str:
    buffer = io.BytesIO()
    Image.new("RGB", (40, 20), color="white").save(buffer, format="PNG")
    return base64.b64encode(buffer.getvalue()).decode("ascii")


def test_update_section_merges_and_notifies():
    """Nested fields merge one at a time and every mutation is published."""
    print("\nTEST 1: Section Updates")
    print("-" * 40)

    form = KYCFormState(today=lambda: TODAY)
    changes = []
    unsubscribe = form.subscribe(changes.append)

    form.update_section(FormSection.MEMBER, {"name": {"first": "Ada"}})
    form.update_field("member", "name.last", "Lovelace")

    assert form.member.name.full_name == "Ada Lovelace"
    assert form.member.name.middle == ""
    assert len(changes) == 2
    assert changes[0] == FormChange(section=FormSection.MEMBER, field="name")
    print(f"   Member name: {form.member.name.full_name}")

    unsubscribe()
    form.update_field("member", "email", "ada@example.com")
    assert len(changes) == 2
    print("   Unsubscribed listener no longer notified")

    form.replace_section(FormSection.NOMINEE, Person(email="n@example.com"))
    assert form.nominee.email == "n@example.com"
    with pytest.raises(TypeError):
        form.replace_section(FormSection.NOMINEE, Name())

    print(" PASSED: Section updates")


def test_bad_updates_leave_section_unchanged():
    """Unknown fields and invalid values raise without mutating."""
    print("\nTEST 2: Rejected Updates")
    print("-" * 40)

    form = KYCFormState(today=lambda: TODAY)
    changes = []
    form.subscribe(changes.append)
    form.update_field("account", "bank_name", "First Bank")

    with pytest.raises(KeyError):
        form.update_section(FormSection.ACCOUNT, {"iban": "X"})
    with pytest.raises(KeyError):
        form.update_section(FormSection.MEMBER, {"name": {"nickname": "Ada"}})
    with pytest.raises(ValidationError):
        form.update_section(FormSection.ACCOUNT, {"account_type": "Offshore"})
    with pytest.raises(ValueError):
        form.update_section("passport", {"number": "1"})

    assert form.account.bank_name == "First Bank"
    assert len(changes) == 1
    print("   Section unchanged after rejected updates")

    print(" PASSED: Rejected updates")


def test_navigation_gating_and_wraparound(fill_form):
    """next() needs a valid stage, previous() never does, both wrap."""
    print("\nTEST 3: Navigation")
    print("-" * 40)

    form = KYCFormState(today=lambda: TODAY)
    assert form.current_stage == WizardStage.MEMBER_INFO
    assert not form.can_proceed()
    assert form.next() is False
    assert form.current_stage == WizardStage.MEMBER_INFO
    print("   Blocked on invalid member info")

    assert form.previous() == WizardStage.SUMMARY
    print("   previous() from member info wraps to summary")

    fill_form(form)
    assert form.next() is True
    assert form.current_stage == WizardStage.MEMBER_INFO
    print("   next() from summary wraps to member info")

    visited = [form.current_stage]
    for _ in range(len(WizardStage)):
        assert form.next()
        visited.append(form.current_stage)
    assert visited[-1] == WizardStage.MEMBER_INFO
    assert visited[:6] == list(WizardStage)
    assert WizardStage.BANK_DETAILS.step_number == 5
    print(f"   Full cycle: {[s.value for s in visited]}")

    print(" PASSED: Navigation")


def test_section_validity_and_age_messages(fill_form):
    """Per-stage validity, field errors and advisory age text."""
    print("\nTEST 4: Section Validity")
    print("-" * 40)

    form = KYCFormState(today=lambda: TODAY)
    fill_form(form)

    validity = form.section_validity()
    assert all(validity.values()), validity
    assert form.is_member_info_valid and form.is_account_valid
    assert form.age_messages() == {"member": None, "nominee": None}

    form.update_field("account", "confirm_account_number", "999999999999")
    assert not form.is_account_valid
    assert "confirm_account_number" in form.section_errors(WizardStage.BANK_DETAILS)
    print("   Account mismatch invalidates the bank section")

    form.update_field("nominee", "birth_date", date(2010, 3, 1))
    assert not form.is_nominee_info_valid
    assert form.age_messages()["nominee"] == (
        "Nominee must be at least 18 years old. Current age: 16"
    )
    print(f"   Age message: {form.age_messages()['nominee']}")

    print(" PASSED: Section validity")


def test_snapshot_and_restore(fill_form):
    """Snapshots copy data; restore overlays non-empty values silently."""
    print("\nTEST 5: Snapshot and Restore")
    print("-" * 40)

    form = KYCFormState(today=lambda: TODAY)
    fill_form(form)
    saved_at = datetime(2026, 6, 1, 12, 0, 0)
    snapshot = form.snapshot(last_updated=saved_at)
    assert snapshot.last_updated == saved_at

    form.update_field("member", "email", "changed@example.com")
    assert snapshot.member.email == "ada@example.com"

    fresh = KYCFormState(today=lambda: TODAY)
    changes = []
    fresh.subscribe(changes.append)
    fresh.restore(DraftSnapshot.model_validate_json(snapshot.model_dump_json()))

    assert fresh.member.name.first == "Ada"
    assert fresh.account.routing_number == "021000021"
    assert fresh.nominee_address.city == "Chicago"
    assert changes == []
    print("   Restored from JSON without notifying")

    # Partial drafts only touch what they carry
    partial = DraftSnapshot(member=Person(email="partial@example.com"))
    fresh.restore(partial)
    assert fresh.member.email == "partial@example.com"
    assert fresh.member.name.first == "Ada"

    fresh.reset()
    assert fresh.member.name.first == ""
    assert fresh.current_stage == WizardStage.MEMBER_INFO

    print(" PASSED: Snapshot and restore")


def test_signature_validity():
    """A complete signature needs a decodable PNG or JPEG image."""
    print("\nTEST 6: Signature Validity")
    print("-" * 40)

    form = KYCFormState(today=lambda: TODAY)
    assert not form.is_signature_valid

    form.update_section(FormSection.DIGITAL_SIGNATURE, {"image_data": _png_base64(), "is_complete": True})
    assert form.is_signature_valid

    form.update_field("digital_signature", "image_data", base64.b64encode(b"not an image").decode())
    assert not form.is_signature_valid

    # Signature does not gate the summary stage
    assert form.section_validity()[WizardStage.SUMMARY]

    print(" PASSED: Signature validity")


def test_field_length_and_country_limits():
    """Text fields are capped and the country must be a supported one."""
    print("\nTEST 7: Field Limits")
    print("-" * 40)

    form = KYCFormState(today=lambda: TODAY)
    with pytest.raises(ValidationError):
        form.update_field("member", "name.first", "A" * (RAW_FIELD_MAX_LENGTH + 1))
    with pytest.raises(ValidationError):
        form.update_field("member_address", "city", "<a" * 300)
    with pytest.raises(ValidationError):
        form.update_field("account", "bank_name", "x" * (RAW_FIELD_MAX_LENGTH + 1))
    assert form.member.name.first == ""

    form.update_field("member", "name.first", "A" * RAW_FIELD_MAX_LENGTH)
    assert len(form.member.name.first) == RAW_FIELD_MAX_LENGTH
    print(f"   Values over {RAW_FIELD_MAX_LENGTH} characters rejected")

    with pytest.raises(ValidationError):
        Address(country="Mars")
    with pytest.raises(ValidationError):
        form.update_field("member_address", "country", "Mars")
    assert form.member_address.country == "United States"

    form.update_field("member_address", "country", "Canada")
    assert form.member_address.country == "Canada"
    print("   Unsupported country rejected")

    print(" PASSED: Field limits")
