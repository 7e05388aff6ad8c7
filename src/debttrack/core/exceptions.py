"""
Custom exceptions for debttrack.

All debttrack-specific exceptions inherit from DebtTrackError for easy catching.

Extraction errors (InvalidMessageFormat, BankNotRecognized, CardNumberNotFound,
AmountNotFound, DateParseFailure, DuplicateRecord) are non-fatal: they are
caught per message and counted. Only collaborator failures (StorageFailure,
MessageSourceError) reach the caller of a scan.
"""


class DebtTrackError(Exception):
    """Base exception for all debttrack errors."""

    retryable = False
    user_visible = False

    def __init__(self, message: str, code: str = None):
        super().__init__(message)
        self.message = message
        self.code = code


class InvalidMessageFormat(DebtTrackError):
    """Raw message is missing its sender, body or timestamp."""

    def __init__(self, message: str = "Invalid message format", field: str = None,
                 code: str = "INVALID_MESSAGE_FORMAT"):
        super().__init__(message, code)
        self.field = field


class BankNotRecognized(DebtTrackError):
    """No bank signature matched the sender or body."""

    def __init__(self, message: str = "Bank could not be identified",
                 code: str = "BANK_NOT_RECOGNIZED"):
        super().__init__(message, code)


class CardNumberNotFound(DebtTrackError):
    """No masked card number could be extracted."""

    def __init__(self, message: str = "No credit card number found",
                 code: str = "CARD_NUMBER_NOT_FOUND"):
        super().__init__(message, code)


class AmountNotFound(DebtTrackError):
    """No amount could be extracted from a segment."""

    def __init__(self, message: str = "No amount found", code: str = "AMOUNT_NOT_FOUND"):
        super().__init__(message, code)


class DateParseFailure(DebtTrackError):
    """A date token was found but is not a valid calendar date."""

    def __init__(self, date_string: str, code: str = "DATE_PARSE_FAILED"):
        super().__init__(f"Could not parse date: {date_string}", code)
        self.date_string = date_string


class DuplicateRecord(DebtTrackError):
    """A record was rejected as a duplicate of one already merged."""

    def __init__(self, record_id: str, code: str = "DUPLICATE_RECORD"):
        super().__init__(f"Duplicate record detected: {record_id}", code)
        self.record_id = record_id


class StorageFailure(DebtTrackError):
    """
    Raised when the persistence layer cannot read or write.

    Carries the unsaved scan result (if any) so the caller can retry the
    save without re-running extraction.
    """

    retryable = True
    user_visible = True

    def __init__(self, message: str, operation: str = None, result=None,
                 code: str = "STORAGE_FAILED"):
        super().__init__(message, code)
        self.operation = operation
        self.result = result


class MessageSourceError(DebtTrackError):
    """Raised when messages cannot be fetched from the source."""

    retryable = True
    user_visible = True

    def __init__(self, message: str = "Failed to read messages", code: str = "MESSAGE_READ_FAILED"):
        super().__init__(message, code)


class ScanCancelled(DebtTrackError):
    """Raised when a scan is cancelled; the partial aggregate is discarded."""

    def __init__(self, processed: int = 0, total: int = 0, code: str = "SCAN_CANCELLED"):
        super().__init__(f"Scan cancelled after {processed} of {total} messages", code)
        self.processed = processed
        self.total = total


class ValidationError(DebtTrackError):
    """Data validation errors."""

    def __init__(self, message: str, field: str = None, code: str = "VALIDATION_ERROR"):
        super().__init__(message, code)
        self.field = field


class ConfigError(DebtTrackError):
    """Invalid or unreadable configuration."""

    def __init__(self, message: str, code: str = "CONFIG_ERROR"):
        super().__init__(message, code)
