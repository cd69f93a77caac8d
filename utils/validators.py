import re
from typing import Optional

from member import GENDERS, MEMBER_TYPES

PHONE_RE = re.compile(r"^(\+?\d[\d\s-]{6,})$")
EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


class MemberValidator:
    """Field checks run before a member is written.

    ``validate`` returns the first error message, or None when every field is fine.
    """

    @staticmethod
    def is_valid_phone(phone: Optional[str]) -> bool:
        return bool(phone) and bool(PHONE_RE.match(phone.strip()))

    @staticmethod
    def is_valid_email(email: Optional[str]) -> bool:
        return bool(email) and bool(EMAIL_RE.match(email.strip().lower()))

    @staticmethod
    def validate(name: Optional[str], phone: Optional[str], email: Optional[str],
                 member_type: Optional[str], gender: Optional[str]) -> Optional[str]:
        if not TextValidator.is_non_empty(name):
            return "Name is required"
        # phone and email are optional, but must be well-formed when given
        if phone and phone.strip() and not MemberValidator.is_valid_phone(phone):
            return "Invalid phone number"
        if email and email.strip() and not MemberValidator.is_valid_email(email):
            return "Invalid email"
        if member_type not in MEMBER_TYPES:
            return "Invalid member type"
        if gender not in GENDERS:
            return "Invalid gender"
        return None


class TextValidator:
    """Very basic text checks."""

    @staticmethod
    def is_non_empty(text: Optional[str]) -> bool:
        return text is not None and bool(text.strip())

    @staticmethod
    def is_digits(text: Optional[str]) -> bool:
        # str.isdigit() accepts things like superscripts; only ASCII digits count here
        return bool(text) and bool(re.fullmatch(r"[0-9]+", text))
