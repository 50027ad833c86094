from typing import Optional

import constants


class ISBNValidator:
    """Shape checks on the ISBN field of a book registration."""

    @staticmethod
    def validate(isbn: Optional[str]) -> Optional[str]:
        """Return an error message, or None when the value is acceptable."""
        if TextValidator.is_blank(isbn):
            return constants.ISBN_REQUIRED
        if not constants.ISBN_MIN_LENGTH <= len(isbn.strip()) <= constants.ISBN_MAX_LENGTH:
            return constants.ISBN_SIZE
        return None


class TextValidator:
    @staticmethod
    def is_blank(text: Optional[str]) -> bool:
        return text is None or not text.strip()

    @staticmethod
    def require(text: Optional[str], message: str) -> str:
        """Strip ``text`` or raise ValueError(message) when it is blank."""
        if TextValidator.is_blank(text):
            raise ValueError(message)
        return text.strip()
