"""Domain-specific exceptions"""


class DomainException(Exception):
    """Base exception for domain layer"""

    pass


class ParseError(DomainException):
    """A single statement row could not be parsed"""

    def __init__(self, detail: str, message: str | None = None):
        super().__init__(message or detail)
        self.detail = detail


class InvalidBatchError(DomainException):
    """Statement is not parseable as tabular data at all"""

    pass


class PostingFailedError(DomainException):
    """Invoice store rejected a payment mutation or dedup write"""

    pass
