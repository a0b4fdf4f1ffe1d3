# darkpool/core/errors.py

from enum import Enum
from typing import Optional


class ExternalMatchClientError(Exception):
    """
    Базовая ошибка клиента external match.
    """


class AuthError(ExternalMatchClientError):
    """
    Неверный API ключ или секрет (например, секрет не декодируется из base64).
    """


class TransportError(ExternalMatchClientError):
    """
    Сетевая ошибка или неуспешный HTTP ответ релейера.
    """

    def __init__(self, message: str, status: Optional[int] = None, body: Optional[str] = None):
        super().__init__(message)
        self.status = status
        self.body = body


class ValidationCheck(str, Enum):
    """Какую именно проверку не прошла котировка или бандл."""
    MINT_MISMATCH = "mint_mismatch"
    SIDE_MISMATCH = "side_mismatch"
    ZERO_AMOUNT = "zero_amount"
    NEGATIVE_FEE = "negative_fee"
    INVALID_PRICE = "invalid_price"
    FEES_EXCEED_PROCEEDS = "fees_exceed_proceeds"
    MIN_FILL_SIZE = "min_fill_size"
    PRICE_BOUND = "price_bound"


class ValidationError(ExternalMatchClientError):
    """
    Котировка или бандл не прошли проверку. `check` указывает, какая именно.
    """

    def __init__(self, check: ValidationCheck, message: str):
        super().__init__(f"{check.value}: {message}")
        self.check = check


class SettlementError(ExternalMatchClientError):
    """
    Транзакция расчёта не прошла on-chain.
    """


class InvalidTransitionError(ValueError):
    """
    Недопустимый переход состояния потока матча.
    """
