#!/usr/bin/env python3
"""
TON Agent Kit — Доступ к блокчейну через TonAPI

- run_get_method: вызов get-методов с типизированными аргументами
- get_seqno / send_boc / get_account_state / get_last_transaction
- StackReader: последовательное чтение TVM стека
- TonContext: явный контекст (сессия, конфиг, блокировки аккаунтов)
"""

import sys
import time
import threading
import base64
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence

from tonsdk.boc import Cell

script_dir = Path(__file__).parent
sys.path.insert(0, str(script_dir))

from cells import cell_from_boc, cell_to_hex, decoding, read_address  # noqa: E402
from errors import (  # noqa: E402
    EncodingError,
    MethodUnavailable,
    RpcError,
    SubmitFailed,
    translate_execution_error,
)
from utils import (  # noqa: E402
    address_key,
    create_http_session,
    get_logger,
    load_config,
    lookup,
    tonapi_request,
)

logger = get_logger("rpc")

# TVM exit code "method id not found"
EXIT_METHOD_NOT_FOUND = 11


# =============================================================================
# TVM stack
# =============================================================================


class StackReader:
    """
    Чтение стека, который возвращает TonAPI для get-метода.

    Элементы: {"type": "num", "num": "0x.."}, {"type": "cell", "cell": "<boc hex>"},
    {"type": "slice", "slice": "<boc hex>"}, {"type": "null"}, {"type": "tuple", ...}
    Числа всегда int произвольной точности.
    """

    def __init__(self, stack: Sequence[dict], method: str = ""):
        self.items: List[dict] = list(stack)
        self.method = method
        self._pos = 0

    def __len__(self) -> int:
        return len(self.items)

    @property
    def remaining(self) -> int:
        return len(self.items) - self._pos

    def _next(self, expected: str) -> dict:
        if self._pos >= len(self.items):
            raise EncodingError(
                f"{self.method or 'stack'}: expected {expected}, stack is exhausted"
            )
        item = self.items[self._pos]
        self._pos += 1
        return item

    def skip(self, count: int = 1) -> "StackReader":
        for _ in range(count):
            self._next("any entry")
        return self

    def read_int(self) -> int:
        item = self._next("num")
        if item.get("type") != "num":
            raise EncodingError(
                f"{self.method}: expected num at position {self._pos - 1}, got {item.get('type')}"
            )
        return int(str(item["num"]), 0)

    def read_bool(self) -> bool:
        return self.read_int() != 0

    def read_cell(self) -> Cell:
        item = self._next("cell")
        kind = item.get("type")
        if kind not in ("cell", "slice"):
            raise EncodingError(
                f"{self.method}: expected cell at position {self._pos - 1}, got {kind}"
            )
        return cell_from_boc(item[kind])

    def read_cell_opt(self) -> Optional[Cell]:
        if self._pos < len(self.items) and self.items[self._pos].get("type") == "null":
            self._pos += 1
            return None
        return self.read_cell()

    def read_address_opt(self) -> Optional[str]:
        """Адрес из slice -> "wc:hash"; null или addr_none -> None."""
        cell = self.read_cell_opt()
        if cell is None:
            return None
        with decoding(f"{self.method or 'stack'} address"):
            return read_address(cell.begin_parse())

    def read_address(self) -> str:
        address = self.read_address_opt()
        if address is None:
            raise EncodingError(f"{self.method}: expected address, got empty address")
        return address


# =============================================================================
# TonAPI client
# =============================================================================


def _encode_arg(value: Any) -> dict:
    if isinstance(value, bool):
        return {"type": "int257", "value": hex(int(value))}
    if isinstance(value, int):
        return {"type": "int257", "value": hex(value)}
    if isinstance(value, Cell):
        return {"type": "slice_boc_hex", "value": cell_to_hex(value)}
    return {"type": "slice", "value": address_key(value)}


class TonApiClient:
    """Узкий RPC интерфейс к блокчейну поверх TonAPI v2."""

    def __init__(self, config: Optional[dict] = None, session=None):
        self.config = config if config is not None else load_config()
        self.session = session or create_http_session(
            retries=lookup(self.config, "rpc.retries", 3),
            backoff_factor=lookup(self.config, "rpc.backoff_factor", 0.5),
            timeout=lookup(self.config, "rpc.timeout", 30),
        )

    def _request(
        self,
        endpoint: str,
        method: str = "GET",
        params: Optional[dict] = None,
        json_data: Optional[dict] = None,
    ) -> dict:
        return tonapi_request(
            endpoint,
            method=method,
            params=params,
            json_data=json_data,
            config=self.config,
            session=self.session,
        )

    def run_get_method(
        self, address: Any, method: str, args: Sequence[Any] = ()
    ) -> StackReader:
        """
        Вызывает get-метод контракта.

        Args:
            address: Адрес контракта
            method: Имя get-метода
            args: int, адрес (str/Address) или Cell

        Returns:
            StackReader по стеку ответа

        Raises:
            MethodUnavailable: контракт не развёрнут или метода нет
            ContractExecutionError: ненулевой exit code
            RpcError: транспортная ошибка
        """
        account = address_key(address)
        endpoint = f"/blockchain/accounts/{account}/methods/{method}"
        if args:
            result = self._request(
                endpoint, method="POST", json_data={"args": [_encode_arg(a) for a in args]}
            )
        else:
            result = self._request(endpoint)

        if not result["success"]:
            status = result.get("status_code")
            if status is not None and 400 <= status < 500:
                raise MethodUnavailable(
                    f"Get method '{method}' is unavailable: {result.get('error')}",
                    status_code=status,
                    address=account,
                )
            raise RpcError(
                f"Get method '{method}' failed: {result.get('error')}",
                status_code=status,
                address=account,
            )

        data = result["data"]
        exit_code = data.get("exit_code", 0)
        if exit_code == EXIT_METHOD_NOT_FOUND:
            raise MethodUnavailable(
                f"Contract has no get method '{method}'", address=account
            )
        if not data.get("success", True) or exit_code not in (0, 1):
            raise translate_execution_error(
                data, exit_code=exit_code, address=account, method=method
            )

        return StackReader(data.get("stack", []), method=method)

    def get_seqno(self, address: Any) -> int:
        """Текущий seqno кошелька. Не развёрнутый кошелёк -> 0."""
        account = address_key(address)
        result = self._request(f"/wallet/{account}/seqno")
        if result["success"]:
            return int(result["data"].get("seqno", 0))
        if result.get("status_code") == 404:
            return 0
        raise RpcError(
            f"Failed to read seqno: {result.get('error')}",
            status_code=result.get("status_code"),
            address=account,
        )

    def send_boc(self, boc: bytes) -> None:
        """Отправляет подписанное внешнее сообщение."""
        result = self._request(
            "/blockchain/message",
            method="POST",
            json_data={"boc": base64.b64encode(boc).decode("ascii")},
        )
        if not result["success"]:
            status = result.get("status_code")
            if status is not None and 400 <= status < 500:
                message = f"Node rejected the message: {result.get('error')}"
            else:
                message = f"Failed to submit message: {result.get('error')}"
            raise SubmitFailed(message, status_code=status)

    def get_account_state(self, address: Any) -> str:
        """active | uninit | nonexist | frozen"""
        account = address_key(address)
        result = self._request(f"/accounts/{account}")
        if result["success"]:
            return result["data"].get("status", "nonexist")
        if result.get("status_code") == 404:
            return "nonexist"
        raise RpcError(
            f"Failed to read account state: {result.get('error')}",
            status_code=result.get("status_code"),
            address=account,
        )

    def get_last_transaction(self, address: Any) -> Optional[dict]:
        account = address_key(address)
        result = self._request(
            f"/blockchain/accounts/{account}/transactions", params={"limit": 1}
        )
        if not result["success"]:
            raise RpcError(
                f"Failed to read transactions: {result.get('error')}",
                status_code=result.get("status_code"),
                address=account,
            )
        transactions = result["data"].get("transactions") or []
        return transactions[0] if transactions else None

    def close(self) -> None:
        self.session.close()


# =============================================================================
# Context
# =============================================================================


class TonContext:
    """
    Явный контекст всех операций: RPC клиент, конфиг, блокировки аккаунтов.

    Блокировка аккаунта сериализует чтение seqno, сборку и отправку перевода.
    pending хранит seqno перевода, который ещё не подтверждён.
    """

    def __init__(
        self,
        client,
        config: Optional[dict] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.client = client
        self.config = config if config is not None else load_config()
        self.sleep = sleep
        self._locks: Dict[str, threading.Lock] = {}
        self._pending: Dict[str, int] = {}
        self._guard = threading.Lock()
        self.closed = False

    @classmethod
    def from_config(cls, config: Optional[dict] = None) -> "TonContext":
        config = config if config is not None else load_config()
        return cls(TonApiClient(config), config)

    @property
    def network(self) -> str:
        return self.config.get("network", "mainnet")

    def setting(self, key: str, default: Any = None) -> Any:
        return lookup(self.config, key, default)

    def account_lock(self, address: Any) -> threading.Lock:
        key = address_key(address)
        with self._guard:
            if key not in self._locks:
                self._locks[key] = threading.Lock()
            return self._locks[key]

    def get_pending(self, address: Any) -> Optional[int]:
        with self._guard:
            return self._pending.get(address_key(address))

    def set_pending(self, address: Any, seqno: int) -> None:
        with self._guard:
            self._pending[address_key(address)] = seqno

    def clear_pending(self, address: Any, seqno: int) -> None:
        key = address_key(address)
        with self._guard:
            if self._pending.get(key) == seqno:
                del self._pending[key]

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        close = getattr(self.client, "close", None)
        if close is not None:
            close()

    def __enter__(self) -> "TonContext":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
