"""
Security helpers - hashing, masking and upload checks for sensitive data.
"""

import io
import base64
import hashlib
from pathlib import Path
from typing import Optional, Tuple, Union

from PIL import Image

from config.settings import settings


ALLOWED_UPLOAD_EXTENSIONS = {"pdf", "jpg", "jpeg", "png", "doc", "docx"}
SIGNATURE_FORMATS = {"PNG", "JPEG"}


def hash_sensitive_data(value: str) -> str:
    """One-way SHA-256 hex digest of a sensitive value."""
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


def mask_account_number(account_number: str) -> str:
    """Mask all but the last 4 digits, e.g. ****6789."""
    if len(account_number) < 4:
        return "****"
    return "****" + account_number[-4:]


def mask_email(email: str) -> str:
    """Keep the first two characters of the local part, e.g. jo**@example.com."""
    parts = email.split("@")
    if len(parts) != 2 or len(parts[0]) <= 2 or not parts[1]:
        return "****@****.com"

    username, domain = parts
    return username[:2] + "*" * (len(username) - 2) + "@" + domain


def is_secure_file_type(path: Union[str, Path]) -> bool:
    """Check the file extension against the upload allow list."""
    return Path(path).suffix.lower().lstrip(".") in ALLOWED_UPLOAD_EXTENSIONS


def is_valid_file_size(path: Union[str, Path], max_size_mb: Optional[int] = None) -> bool:
    """Check the file exists and is within the size limit."""
    max_size_mb = max_size_mb or settings.MAX_UPLOAD_SIZE_MB
    try:
        size = Path(path).stat().st_size
    except OSError:
        return False
    return size <= max_size_mb * 1024 * 1024


def decode_signature_image(image_data: Optional[str]) -> Optional[bytes]:
    """Decode base64 signature data, or None when absent or malformed."""
    if not image_data:
        return None
    try:
        return base64.b64decode(image_data, validate=True)
    except (ValueError, TypeError):
        return None


def validate_signature_image(image_bytes: Optional[bytes]) -> Tuple[bool, str]:
    """
    Validate a captured signature image.

    Returns:
        Tuple of (is_valid, message)
    """
    if not image_bytes:
        return False, "Signature image is missing"

    max_bytes = settings.MAX_UPLOAD_SIZE_MB * 1024 * 1024
    if len(image_bytes) > max_bytes:
        size_mb = len(image_bytes) / (1024 * 1024)
        return False, f"Signature too large: {size_mb:.1f}MB (max {settings.MAX_UPLOAD_SIZE_MB}MB)"

    try:
        image = Image.open(io.BytesIO(image_bytes))
        image_format = image.format
        image.verify()
    except Exception as e:
        return False, f"Invalid or corrupted signature image: {str(e)}"

    if image_format not in SIGNATURE_FORMATS:
        return False, f"Unsupported signature format: {image_format}. Use PNG or JPEG."

    return True, f"Valid {image_format} signature"
