"""Domain-specific exceptions"""


class DomainException(Exception):
    """Base exception for domain layer"""

    pass


class RecalculationInProgressError(DomainException):
    """A portfolio recalculation is already running"""

    pass


class MessageParseError(DomainException):
    """Channel message is not valid JSON or carries a malformed payload"""

    pass


class EngineAPIError(DomainException):
    """Scoring engine API returned an error or is unavailable"""

    pass
