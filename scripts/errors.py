#!/usr/bin/env python3
"""
TON Agent Kit — Ошибки и user-friendly сообщения

- Иерархия исключений on-chain слоя
- Перевод кодов исполнения контрактов в понятные сообщения
- Форматирование ошибок для CLI
"""

from contextlib import contextmanager
from typing import Optional, Dict, Any


# =============================================================================
# Exception Taxonomy
# =============================================================================


class TonAgentError(Exception):
    """Базовая ошибка. Несёт контекст: операция, адреса, суммы."""

    retryable = False

    def __init__(self, message: str, **context):
        super().__init__(message)
        self.message = message
        self.context: Dict[str, Any] = dict(context)

    def annotate(self, **context) -> "TonAgentError":
        """Добавляет контекст, не перезаписывая уже известные поля."""
        for key, value in context.items():
            if value is not None:
                self.context.setdefault(key, value)
        return self

    def to_dict(self) -> Dict[str, Any]:
        result = {"error": self.message, "error_type": type(self).__name__}
        if self.context:
            result["context"] = {k: _jsonable(v) for k, v in self.context.items()}
        return result

    def __str__(self) -> str:
        if not self.context:
            return self.message
        details = ", ".join(f"{k}={v}" for k, v in self.context.items())
        return f"{self.message} ({details})"


class EncodingError(TonAgentError):
    """Значение не помещается в поле или ячейку."""


class ValidationError(TonAgentError):
    """Параметры операции некорректны (до любого сетевого вызова)."""


class ProtocolError(TonAgentError):
    """Ошибки протокола отправки транзакций."""


class SeqnoTimeout(ProtocolError):
    """Seqno не вырос за отведённое число опросов."""


class RpcError(ProtocolError):
    """Транспортная ошибка обращения к ноде / TonAPI."""

    retryable = True

    def __init__(self, message: str, status_code: Optional[int] = None, **context):
        super().__init__(message, **context)
        self.status_code = status_code


class MethodUnavailable(RpcError):
    """Get-метод отсутствует у контракта или контракт не развёрнут."""

    retryable = False


class SubmitFailed(RpcError):
    """Подписанное сообщение не принято нодой."""


class ListingError(TonAgentError):
    """Ошибки листингов маркетплейса. Никогда не ретраятся."""


class WrongListingKind(ListingError):
    pass


class ListingDecodeError(ListingError):
    pass


class AuctionEnded(ListingError):
    pass


class BidTooLow(ListingError):
    pass


class DexError(TonAgentError):
    """Ошибки DEX-движка. Никогда не ретраятся."""


class PoolNotFound(DexError):
    pass


class InvalidDepositConfiguration(DexError):
    pass


class UnsupportedOperation(DexError):
    pass


class ContractExecutionError(TonAgentError):
    """Контракт завершился с ненулевым exit code."""

    def __init__(self, message: str, exit_code: Optional[int] = None, **context):
        super().__init__(message, **context)
        self.exit_code = exit_code


@contextmanager
def operation(name: str, **fields):
    """
    Аннотирует любую TonAgentError внутри блока именем операции и параметрами.

    Example:
        >>> with operation("mint", minter=addr, amount=amount):
        ...     send_and_confirm(...)
    """
    try:
        yield
    except TonAgentError as e:
        e.annotate(operation=name, **fields)
        raise


def _jsonable(value: Any) -> Any:
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    if isinstance(value, dict):
        return {str(k): _jsonable(v) for k, v in value.items()}
    return str(value)


# =============================================================================
# Contract Execution Errors
# =============================================================================

# exit code -> actionable message
EXIT_CODES = {
    -14: "Out of gas: attach more TON to the message",
    -13: (
        "The operation could not be completed due to a contract execution error. "
        "This typically happens when there is insufficient balance or the pool doesn't exist"
    ),
    7: "Type check error: the contract received arguments of the wrong type",
    9: "Cell underflow: the target address is not the expected contract type",
    11: "Get method not found: the target address is not the expected contract type",
    37: "Not enough TON on the sender to cover the message value",
    73: "Only the jetton admin can mint or change the minter",
    74: "Only the wallet owner can burn these jettons",
    705: "Only the wallet owner can transfer these jettons",
    706: "Not enough jettons on the wallet",
    709: "Not enough TON attached to forward the jetton transfer",
}

EXECUTION_SIGNATURES = {
    "unable to execute get method": (
        "Unable to execute contract method. The pool or contract may not exist "
        "or the contract is in an invalid state"
    ),
    "exit_code: -13": EXIT_CODES[-13],
}


def translate_execution_error(
    raw: Any, exit_code: Optional[int] = None, **context
) -> ContractExecutionError:
    """
    Переводит сырой ответ ноды в ContractExecutionError с понятным сообщением.

    Args:
        raw: Текст/ответ ошибки от TonAPI
        exit_code: Код завершения TVM, если известен
        context: Операция, адреса, суммы

    Returns:
        ContractExecutionError (исходная строка сохраняется в context["cause"])
    """
    cause = _extract_error_message(raw)
    message = None

    if exit_code is not None:
        message = EXIT_CODES.get(exit_code)
    if message is None:
        lowered = cause.lower()
        for signature, text in EXECUTION_SIGNATURES.items():
            if signature in lowered:
                message = text
                break
    if message is None:
        suffix = f" (exit code {exit_code})" if exit_code is not None else ""
        message = f"Contract execution failed{suffix}"

    return ContractExecutionError(message, exit_code=exit_code, cause=cause, **context)


# =============================================================================
# Error Message Mapping
# =============================================================================

ERROR_PATTERNS = {
    "seqno did not advance": {
        "message": "Transaction was not confirmed in time",
        "reasons": [
            "Network is congested",
            "Transfer was rejected by the wallet contract",
        ],
        "suggestion": "Check the wallet history before retrying, the transfer may still land",
    },
    "rejected the message": {
        "message": "Transaction was rejected by the network",
        "reasons": [
            "Another transaction from this wallet used the same seqno",
            "Wallet balance is too low to pay for the external message",
        ],
        "suggestion": "Wait a moment and try again",
    },
    "invalid address": {
        "message": "Invalid TON address format",
        "reasons": [
            "Address format is incorrect",
            "Missing or invalid checksum",
        ],
        "suggestion": "Check the address format (should be base64url encoded or raw 0:hex)",
    },
    "timeout": {
        "message": "Request timeout",
        "reasons": [
            "Network connection is slow",
            "API server is overloaded",
        ],
        "suggestion": "Try again in a few moments",
    },
    "connection error": {
        "message": "Connection error",
        "reasons": [
            "No internet connection",
            "API server is down",
        ],
        "suggestion": "Check your internet connection and try again",
    },
    "wallet not found": {
        "message": "Wallet not found",
        "reasons": [
            "Wallet label doesn't exist",
            "Wallet not imported",
        ],
        "suggestion": "Import the wallet into the encrypted store first",
    },
    "failed to decrypt": {
        "message": "Invalid password",
        "reasons": [
            "Password is incorrect",
            "Password doesn't match wallet encryption",
        ],
        "suggestion": "Check your password and try again",
    },
}


# =============================================================================
# Error Formatting Functions
# =============================================================================


def format_error(
    error: Any,
    context: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """
    Convert technical error into user-friendly format.

    Args:
        error: Error message (string, dict, or exception)
        context: Additional context (e.g., {"operation": "mint"})

    Returns:
        dict with formatted error message
    """
    error_msg = _extract_error_message(error)
    error_lower = error_msg.lower()

    matched_pattern = None
    for pattern, info in ERROR_PATTERNS.items():
        if pattern in error_lower:
            matched_pattern = info
            break

    result: Dict[str, Any] = {
        "success": False,
        "error": matched_pattern["message"] if matched_pattern else error_msg,
    }

    if isinstance(error, TonAgentError):
        result["error_type"] = type(error).__name__
        if error.context:
            result["context"] = {k: _jsonable(v) for k, v in error.context.items()}
        if isinstance(error, ContractExecutionError) and error.exit_code is not None:
            result["exit_code"] = error.exit_code

    if matched_pattern:
        result["reasons"] = matched_pattern.get("reasons", [])
        result["suggestion"] = matched_pattern.get("suggestion", "")
        result["raw_error"] = error_msg

    if context:
        result.setdefault("context", {}).update(
            {k: _jsonable(v) for k, v in context.items()}
        )

    return result


def _extract_error_message(error: Any) -> str:
    """Extract error message from various error types."""
    if isinstance(error, str):
        return error
    elif isinstance(error, TonAgentError):
        return error.message
    elif isinstance(error, dict):
        return str(error.get("error", error))
    else:
        return str(error)
