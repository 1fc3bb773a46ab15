"""Settlement error taxonomy and the tagged outcome returned at the transaction boundary."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

INTERNAL_ERROR = "internal_error"


class SettlementError(Exception):
    """Base class for settlement aborts. ``code`` is stable and surfaced to clients."""

    code = INTERNAL_ERROR
    status_code = 500

    def __init__(self, message: str = "", *, code: str | None = None) -> None:
        super().__init__(message or self.__class__.__name__)
        if code is not None:
            self.code = code


class ValidationError(SettlementError):
    """Malformed body or unknown mode; raised before any state is loaded."""

    code = "invalid_body"
    status_code = 400


class EnergyExhausted(SettlementError):
    code = "insufficient_energy"
    status_code = 400


class ConfigLocked(SettlementError):
    """The requested configuration has not been unlocked for this account."""

    code = "locked"
    status_code = 403


class AccountNotFound(SettlementError):
    code = "account_not_found"
    status_code = 404


ERROR_STATUS: dict[str, int] = {
    "invalid_body": 400,
    "invalid_mode": 400,
    EnergyExhausted.code: EnergyExhausted.status_code,
    ConfigLocked.code: ConfigLocked.status_code,
    AccountNotFound.code: AccountNotFound.status_code,
    INTERNAL_ERROR: 500,
}


@dataclass(frozen=True)
class SettlementOutcome:
    """Either a committed result or the code of the error that rolled it back."""

    result: dict[str, Any] | None = None
    error_code: str | None = None

    @property
    def ok(self) -> bool:
        return self.error_code is None

    @property
    def status_code(self) -> int:
        if self.error_code is None:
            return 200
        return ERROR_STATUS.get(self.error_code, 500)
