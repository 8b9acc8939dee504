"""
Character Card Import Errors
===========================

Every failure that ends an import attempt derives from CardImportError and
carries a message that can be shown to the user as-is.
"""

from typing import Optional


class CardImportError(Exception):
    """Base exception for character card import errors."""

    default_user_message = "Failed to import character card."

    def __init__(self, message: str, user_message: Optional[str] = None):
        super().__init__(message)
        self.user_message = user_message or self.default_user_message


class MalformedContainerError(CardImportError):
    """The byte buffer is not a well-formed PNG chunk stream."""

    default_user_message = "The file is not a valid PNG image."


class NoValidPayloadError(CardImportError):
    """No candidate held decodable character data."""

    default_user_message = "No valid character data found."


class MissingRequiredFieldError(CardImportError):
    """A normalized record lacks a required field."""

    default_user_message = "Character card is missing a name."

    def __init__(self, field_name: str):
        super().__init__(f"Character card missing required field: {field_name}")
        self.field_name = field_name


class UnsupportedSchemaError(CardImportError):
    """Parsed data matches neither the wrapped nor the flat card schema."""

    default_user_message = "Unsupported character card format."


class UnsupportedFileError(CardImportError):
    """The file kind cannot be determined, or the file is too large."""

    default_user_message = "Unsupported file. Choose a JSON, V2 card or PNG card file."


class ImportSessionError(CardImportError):
    """The import session cannot accept another attempt in its current state."""

    default_user_message = "This import has already finished. Reopen the import dialog to try again."
