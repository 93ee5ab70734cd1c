"""Coordinator error taxonomy.

Every error here is recovered inside the coordinator; none of them is allowed
to reach the MQTT network loop.
"""

from __future__ import annotations


class CoordinatorError(Exception):
    """Base class for recoverable coordinator errors."""


class UnknownDeviceError(CoordinatorError):
    """Message references a device with no session."""

    def __init__(self, device_id: str) -> None:
        super().__init__(f"unknown device: {device_id}")
        self.device_id = device_id


class DuplicateDeviceError(CoordinatorError):
    """Connect announced for a device whose session is still live."""

    def __init__(self, device_id: str) -> None:
        super().__init__(f"device already connected: {device_id}")
        self.device_id = device_id


class SequenceMismatchError(CoordinatorError):
    """Response sequence does not match the outstanding challenge."""

    def __init__(self, expected: int, got: int) -> None:
        super().__init__(f"expected sequence {expected}, got {got}")
        self.expected = expected
        self.got = got


class MalformedGuessError(CoordinatorError):
    """On-sequence guess outside the challenge's value space."""

    def __init__(self, guess: int) -> None:
        super().__init__(f"guess out of range: {guess}")
        self.guess = guess


class RetryExhaustedError(CoordinatorError):
    """Too many consecutive sequence mismatches."""

    def __init__(self, device_id: str, retries: int) -> None:
        super().__init__(f"{device_id}: {retries} consecutive sequence mismatches")
        self.device_id = device_id
        self.retries = retries
