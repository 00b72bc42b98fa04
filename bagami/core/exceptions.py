"""
Errores de dominio.

Los servicios lanzan estas excepciones; el handler registrado en
bagami.main las convierte en respuestas JSON {"detail", "code"}.
"""

from typing import Optional

from fastapi import status


class BagamiError(Exception):
    """Error base de la aplicación."""

    status_code: int = status.HTTP_400_BAD_REQUEST
    code: str = "BAD_REQUEST"

    def __init__(self, detail: str, code: Optional[str] = None, extra: Optional[dict] = None):
        super().__init__(detail)
        self.detail = detail
        if code:
            self.code = code
        self.extra = extra or {}

    def to_dict(self) -> dict:
        body = {"detail": self.detail, "code": self.code}
        body.update(self.extra)
        return body


class ValidationError(BagamiError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "VALIDATION_ERROR"


class AuthenticationError(BagamiError):
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "UNAUTHORIZED"


class ForbiddenError(BagamiError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "FORBIDDEN"


class AccountSuspendedError(ForbiddenError):
    code = "ACCOUNT_SUSPENDED"

    def __init__(self, detail: str = "Tu cuenta ha sido suspendida. Contacta a servicio al cliente."):
        super().__init__(detail)


class NotFoundError(BagamiError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "NOT_FOUND"


class ConflictError(BagamiError):
    status_code = status.HTTP_409_CONFLICT
    code = "CONFLICT"


class InsufficientBalanceError(BagamiError):
    """El saldo del wallet no alcanza para el débito solicitado."""

    status_code = status.HTTP_400_BAD_REQUEST
    code = "INSUFFICIENT_BALANCE"

    def __init__(self, balance: int, required: int, currency: str = "XOF"):
        super().__init__(
            "Saldo insuficiente en el wallet",
            extra={
                "balance": balance,
                "required": required,
                "shortfall": max(required - balance, 0),
                "currency": currency,
            },
        )
        self.balance = balance
        self.required = required

    @property
    def shortfall(self) -> int:
        return max(self.required - self.balance, 0)


class CooldownError(BagamiError):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    code = "COOLDOWN"
