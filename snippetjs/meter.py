"""
SnippetJS - Gas Meter
Per-call computational budget. Charged for every evaluated node, every
allocated heap slot and every pushed call frame.
"""

from .errors import ResourceExhausted

DEFAULT_GAS_LIMIT = 10_000_000


class Meter:
    def __init__(self, limit: int = DEFAULT_GAS_LIMIT):
        if limit < 0:
            raise ValueError("gas limit must be non-negative")
        self.limit = limit
        self.used = 0

    @property
    def remaining(self) -> int:
        return self.limit - self.used

    def charge(self, units: int = 1, line: int = 0) -> None:
        self.used += units
        if self.used > self.limit:
            raise ResourceExhausted(f"gas limit of {self.limit} exceeded", line)

    def __repr__(self):
        return f"Meter(used={self.used}, limit={self.limit})"
