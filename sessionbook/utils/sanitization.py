import html
import re


def validate_and_sanitize_input(value: str, max_length: int = 1000) -> str:
    """
    Validate and sanitize free text (problem descriptions, chat messages).

    Args:
        value: Input string to validate
        max_length: Maximum allowed length, checked before escaping

    Returns:
        Sanitized string

    Raises:
        ValueError: If input is too long
    """
    if not value:
        return ""

    value = str(value).strip()

    if len(value) > max_length:
        raise ValueError(f"Input exceeds maximum length of {max_length} characters")

    value = html.escape(value, quote=True)

    # Remove control characters except newline, carriage return and tab
    value = re.sub(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]", "", value)

    return value
