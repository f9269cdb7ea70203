"""
Defines the interface of the rate limiter guarding executions.
"""
from typing import Protocol

class ThrottlerInterface(Protocol):
    def throttle(self, key: str, limit: int, ttl: int) -> None:
        raise NotImplementedError
