"""
Input Validation and Sanitization Utilities.

This module validates user input before it reaches the caption store or the
authentication flow. Rejections raise `core.exceptions.ValidationError`, which
the error handling middleware turns into a 400 response carrying the reason.

Key Components:
- `InputValidator`: Static helpers for strings, URLs, emails and integers, plus
  markup-injection pattern checks.
- `validate_caption_content` / `validate_image_url`: the local checks of the
  caption creation form. They run before any store round trip.
- `validate_redirect_path`: keeps the post-sign-in redirect on this site.

Queries against the store are always parameterised and responses are JSON, so
caption text is not screened for SQL keywords or markup. Apostrophes, "=" and
words like "select" or "javascript:" are ordinary caption content; escaping on
render is the client's job.
"""

import re
import html
from typing import Any, List
from urllib.parse import urlparse

from core.logging_config import get_logger
from core.exceptions import ValidationError

logger = get_logger(__name__)

MAX_CAPTION_LENGTH = 500
MAX_URL_LENGTH = 2048


class InputValidator:
    """Input validation and sanitization"""

    EMAIL_PATTERN = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")

    XSS_PATTERNS = [
        re.compile(r"<script[^>]*>.*?</script>", re.IGNORECASE | re.DOTALL),
        re.compile(r"javascript:", re.IGNORECASE),
        re.compile(r"on\w+\s*=", re.IGNORECASE),
        re.compile(r"<iframe[^>]*>", re.IGNORECASE),
    ]

    @staticmethod
    def sanitize_string(
        value: str,
        field: str = "input",
        max_length: int = 1000,
        escape_html: bool = False,
        screen_markup: bool = True,
    ) -> str:
        """Trim, length-check and optionally screen a string for markup injection"""
        if not isinstance(value, str):
            raise ValidationError(field, value, "Must be a string")

        value = value.strip()

        if len(value) > max_length:
            raise ValidationError(
                field, value[:100], f"Must be no more than {max_length} characters"
            )

        if screen_markup:
            for pattern in InputValidator.XSS_PATTERNS:
                if pattern.search(value):
                    logger.warning(f"Potential XSS attempt detected: {value[:100]}")
                    raise ValidationError(
                        field, value[:100], "Contains potentially dangerous content"
                    )

        if escape_html:
            value = html.escape(value)

        return value

    @staticmethod
    def validate_email(email: str) -> str:
        """Validate email address"""
        email = InputValidator.sanitize_string(email, field="email", max_length=254)

        if not InputValidator.EMAIL_PATTERN.match(email):
            raise ValidationError("email", email, "Invalid email format")

        return email.lower()

    @staticmethod
    def validate_url(
        url: str, field: str = "url", allowed_schemes: List[str] = None
    ) -> str:
        """Validate an absolute URL"""
        if allowed_schemes is None:
            allowed_schemes = ["http", "https"]

        url = InputValidator.sanitize_string(
            url, field=field, max_length=MAX_URL_LENGTH
        )

        parsed = urlparse(url)

        if not parsed.scheme:
            raise ValidationError(field, url, "URL must include a scheme (http/https)")

        if parsed.scheme.lower() not in allowed_schemes:
            raise ValidationError(
                field,
                url,
                f"URL scheme must be one of: {', '.join(allowed_schemes)}",
            )

        if not parsed.netloc:
            raise ValidationError(field, url, "URL must include a valid domain")

        return url

    @staticmethod
    def validate_integer(
        value: Any, field: str = "integer", min_val: int = None, max_val: int = None
    ) -> int:
        """Validate integer value"""
        if isinstance(value, bool):
            raise ValidationError(field, value, "Invalid integer")

        try:
            value = int(value)
        except (ValueError, TypeError) as e:
            raise ValidationError(field, value, f"Invalid integer: {str(e)}")

        if min_val is not None and value < min_val:
            raise ValidationError(field, value, f"Must be at least {min_val}")

        if max_val is not None and value > max_val:
            raise ValidationError(field, value, f"Must be at most {max_val}")

        return value


def validate_caption_content(content: str) -> str:
    """Validate the text of a new caption"""
    if content is None or not str(content).strip():
        raise ValidationError("content", content, "Caption text is required")

    return InputValidator.sanitize_string(
        content, field="content", max_length=MAX_CAPTION_LENGTH, screen_markup=False
    )


def validate_image_url(image_url: str) -> str:
    """Validate the image URL submitted with a new caption"""
    if image_url is None or not str(image_url).strip():
        raise ValidationError("image_url", image_url, "Image URL is required")

    return InputValidator.validate_url(image_url, field="image_url")


def validate_redirect_path(path: str, default: str = "/") -> str:
    """Return `path` if it is a local absolute path, otherwise `default`"""
    if not path or not isinstance(path, str):
        return default

    path = path.strip()
    parsed = urlparse(path)

    # Reject scheme-relative and absolute URLs ("//evil.example", "https://...")
    if parsed.scheme or parsed.netloc or not path.startswith("/") or path.startswith("//"):
        logger.warning(f"Rejected non-local redirect target: {path[:100]}")
        return default

    if "\\" in path:
        logger.warning(f"Rejected redirect target with backslash: {path[:100]}")
        return default

    return path
