from __future__ import annotations


class ProviderFailure(Exception):
    """A completion, embedding or classification call errored or timed out."""

    def __init__(self, operation: str, reason: str) -> None:
        self.operation = operation
        self.reason = reason
        super().__init__(f"{operation} failed: {reason}")


class MalformedInput(ValueError):
    """User input that cannot be parsed; carries the corrective reply."""

    def __init__(self, reply: str) -> None:
        self.reply = reply
        super().__init__(reply)
