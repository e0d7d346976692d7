import re
from typing import Optional

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class TextValidator:
    """Basic text checks shared by catalog and directory writes."""

    @staticmethod
    def is_present(text: Optional[str]) -> bool:
        return text is not None and bool(text.strip())

    @staticmethod
    def require(field: str, text: Optional[str]) -> str:
        """Return the stripped value or raise ValueError when blank."""
        if not TextValidator.is_present(text):
            raise ValueError(f"{field} is required.")
        return text.strip()

    @staticmethod
    def sanitize_text(text: Optional[str]) -> Optional[str]:
        if text is None:
            return None
        # strip HTML tags; descriptions are rendered by the web UI
        cleaned = re.sub(r"<[^>]*>", "", text).strip()
        return cleaned or None


class ContactValidator:
    """Loose checks for reader contact details."""

    @staticmethod
    def validate_email(email: Optional[str]) -> Optional[str]:
        if email is None or not email.strip():
            return None
        email = email.strip()
        if not _EMAIL_RE.match(email):
            raise ValueError(f"Invalid email address: {email}")
        return email

    @staticmethod
    def normalize_card_number(raw: Optional[str]) -> str:
        card = TextValidator.require("Card number", raw)
        return card.upper()
