"""
Test Suite: Security Helpers

Tests:
1. Hashing and masking
2. Upload type and size checks
3. Signature image validation
4. Settings validation
"""

import sys
import os
import io
import base64

from PIL import Image

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config.settings import validate_settings
from backend.security import (
    decode_signature_image,
    hash_sensitive_data,
    is_secure_file_type,
    is_valid_file_size,
    mask_account_number,
    mask_email,
    validate_signature_image,
)


def _image_bytes(image_format: str) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", (32, 16), color="black").save(buffer, format=image_format)
    return buffer.getvalue()


def test_hash_and_mask():
    """SHA-256 hex digests and last-four masking."""
    print("\nTEST 1: Hashing and Masking")
    print("-" * 40)

    digest = hash_sensitive_data("123456789012")
    assert len(digest) == 64
    assert digest == hash_sensitive_data("123456789012")
    assert digest != hash_sensitive_data("123456789013")
    assert hash_sensitive_data("") == (
        "e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855"
    )

    assert mask_account_number("123456789012") == "****9012"
    assert mask_account_number("1234") == "****1234"
    assert mask_account_number("123") == "****"

    assert mask_email("john@example.com") == "jo**@example.com"
    assert mask_email("jo@example.com") == "****@****.com"
    assert mask_email("not-an-email") == "****@****.com"
    print("   Hashing and masking checked")

    print(" PASSED: Hashing and masking")


def test_upload_checks(tmp_path):
    """Extension allow list and size limit."""
    print("\nTEST 2: Upload Checks")
    print("-" * 40)

    assert is_secure_file_type("id_card.PDF")
    assert is_secure_file_type("scan.jpeg")
    assert not is_secure_file_type("payload.exe")
    assert not is_secure_file_type("archive")

    small = tmp_path / "small.png"
    small.write_bytes(b"x" * 1024)
    assert is_valid_file_size(small, max_size_mb=1)

    large = tmp_path / "large.pdf"
    large.write_bytes(b"x" * (1024 * 1024 + 1))
    assert not is_valid_file_size(large, max_size_mb=1)
    assert not is_valid_file_size(tmp_path / "missing.pdf")

    print(" PASSED: Upload checks")


def test_signature_image_validation():
    """PNG and JPEG pass, anything else is rejected with a message."""
    print("\nTEST 3: Signature Images")
    print("-" * 40)

    for image_format in ("PNG", "JPEG"):
        is_valid, message = validate_signature_image(_image_bytes(image_format))
        assert is_valid, message
        print(f"   {message}")

    is_valid, message = validate_signature_image(_image_bytes("GIF"))
    assert not is_valid
    assert "Unsupported signature format" in message

    assert validate_signature_image(None) == (False, "Signature image is missing")
    is_valid, message = validate_signature_image(b"garbage")
    assert not is_valid
    assert message.startswith("Invalid or corrupted signature image")

    encoded = base64.b64encode(_image_bytes("PNG")).decode("ascii")
    assert decode_signature_image(encoded) == _image_bytes("PNG")
    assert decode_signature_image("not base64!") is None
    assert decode_signature_image(None) is None

    print(" PASSED: Signature images")


def test_default_settings_valid():
    """Default configuration passes validation."""
    print("\nTEST 4: Settings")
    print("-" * 40)

    is_valid, issues = validate_settings()
    assert is_valid, issues

    print(" PASSED: Settings")
