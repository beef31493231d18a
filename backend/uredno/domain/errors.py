from dataclasses import dataclass, field
from typing import List

PROBLEM_BASE = "https://uredno.eu/problems"


@dataclass
class DomainError(Exception):
    detail: str
    title: str = "Domain Error"
    type: str = f"{PROBLEM_BASE}/domain-error"
    errors: List[dict] | None = None
    status_code: int = field(default=400, repr=False)

    def __str__(self) -> str:
        return self.detail


@dataclass
class ValidationError(DomainError):
    """Malformed or missing client input."""

    title: str = "Validation Error"
    type: str = f"{PROBLEM_BASE}/validation-error"
    status_code: int = field(default=400, repr=False)


@dataclass
class SlotConflictError(DomainError):
    """The claim on a slot lost the race or no team is free for it."""

    detail: str = "Selected time slot is no longer available"
    title: str = "Slot Conflict"
    type: str = f"{PROBLEM_BASE}/slot-conflict"
    status_code: int = field(default=409, repr=False)


@dataclass
class NotFoundError(DomainError):
    title: str = "Not Found"
    type: str = f"{PROBLEM_BASE}/not-found"
    status_code: int = field(default=404, repr=False)


@dataclass
class TransientStoreError(DomainError):
    """The database call failed or timed out for infrastructure reasons."""

    title: str = "Store Unavailable"
    type: str = f"{PROBLEM_BASE}/store-error"
    operation: str | None = None
    status_code: int = field(default=500, repr=False)


@dataclass
class StoreConfigurationError(DomainError):
    title: str = "Store Misconfigured"
    type: str = f"{PROBLEM_BASE}/store-configuration"
    status_code: int = field(default=503, repr=False)


@dataclass
class RateLimitedError(DomainError):
    title: str = "Too Many Requests"
    type: str = f"{PROBLEM_BASE}/rate-limit"
    status_code: int = field(default=429, repr=False)
