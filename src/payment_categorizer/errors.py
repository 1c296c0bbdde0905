class CategorizationError(Exception):
    """Base class for errors raised by the categorization engine."""


class InvalidLearnInput(CategorizationError, ValueError):
    def __init__(self, message: str = "Either a payee or a counterparty IBAN is required") -> None:
        super().__init__(message)


class InvalidPattern(CategorizationError):
    """A rule pattern that could not be compiled. Recorded, never fatal."""

    def __init__(self, rule_id: str, pattern: str, reason: str) -> None:
        self.rule_id = rule_id
        self.pattern = pattern
        self.reason = reason
        super().__init__(f"Rule {rule_id}: invalid pattern {pattern!r} ({reason})")


class ConcurrentMutationConflict(CategorizationError):
    retryable = True

    def __init__(self, operation: str) -> None:
        self.operation = operation
        super().__init__(f"{operation} rejected: another model update is in progress")
