import re
from datetime import date
from typing import Optional

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class EmailValidator:
    """Loose email check: something@domain.tld, no whitespace."""

    @staticmethod
    def normalize_email(raw: Optional[str]) -> str:
        if raw is None:
            return ""
        return raw.strip().lower()

    @staticmethod
    def is_valid_email(email: Optional[str]) -> bool:
        if not email:
            return False
        return bool(_EMAIL_RE.match(EmailValidator.normalize_email(email)))


class TextValidator:
    """Very basic text validations for names and titles."""

    @staticmethod
    def validate_name(name: Optional[str]) -> bool:
        # must contain a letter; purely numeric names are rejected
        if name is None:
            return False
        t = name.strip()
        if not t:
            return False
        return any(c.isalpha() for c in t)

    @staticmethod
    def validate_title(title: Optional[str]) -> bool:
        # "1984" is a real title, so only emptiness is rejected
        return title is not None and bool(title.strip())


class PublicationYearValidator:

    @staticmethod
    def is_valid_year(year: Optional[int], today: date) -> bool:
        if year is None:
            return True
        return 0 < year <= today.year
