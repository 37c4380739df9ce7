#!/usr/bin/env python3
"""
TON Agent Kit — Протокол отправки транзакций

- Сборка подписанного перевода (1..4 внутренних сообщения) по seqno
- Отправка внешнего сообщения
- Подтверждение по росту seqno (ограниченное число опросов)
- Сериализация переводов одного аккаунта (блокировка + pending seqno)

Подтверждение по seqno не отличает "наш перевод прошёл" от "seqno занял
другой перевод". Поэтому после подтверждения сверяется хэш входящего
сообщения последней транзакции кошелька с хэшем нашего внешнего сообщения
(hash_verified в квитанции).
"""

import sys
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from tonsdk.boc import Cell
from tonsdk.contract import Contract
from tonsdk.contract.wallet import Wallets, WalletVersionEnum

script_dir = Path(__file__).parent
sys.path.insert(0, str(script_dir))

from cells import cell_hash, to_address  # noqa: E402
from common import MAX_MESSAGES_PER_TRANSFER, SEND_MODE_DEFAULT  # noqa: E402
from errors import (  # noqa: E402
    EncodingError,
    RpcError,
    SeqnoTimeout,
    ValidationError,
)
from utils import address_key, get_logger  # noqa: E402

logger = get_logger("transaction")

WALLET_VERSIONS = {
    "v3r2": WalletVersionEnum.v3r2,
    "v4r2": WalletVersionEnum.v4r2,
}


# =============================================================================
# Account
# =============================================================================


class Account:
    """Адрес + ключи кошелька. Равенство структурное (workchain + hash)."""

    def __init__(self, address: Any, wallet=None, label: Optional[str] = None):
        self.address = to_address(address)
        self.wallet = wallet
        self.label = label

    @classmethod
    def from_mnemonic(
        cls, mnemonic: List[str], version: str = "v4r2", label: Optional[str] = None
    ) -> "Account":
        wallet_version = WALLET_VERSIONS.get(version.lower(), WalletVersionEnum.v4r2)
        _, _, _, wallet = Wallets.from_mnemonics(mnemonic, wallet_version, workchain=0)
        return cls(wallet.address, wallet=wallet, label=label)

    @classmethod
    def from_wallet_data(cls, wallet_data: Dict[str, Any]) -> "Account":
        """Аккаунт из записи зашифрованного хранилища (wallet.py)."""
        mnemonic = wallet_data.get("mnemonic")
        if not mnemonic:
            raise ValidationError(
                "Wallet record has no mnemonic", wallet=wallet_data.get("label")
            )
        if isinstance(mnemonic, str):
            mnemonic = mnemonic.split()
        return cls.from_mnemonic(
            mnemonic, wallet_data.get("version", "v4r2"), label=wallet_data.get("label")
        )

    @property
    def workchain(self) -> int:
        return self.address.wc

    @property
    def key(self) -> str:
        return address_key(self.address)

    @property
    def friendly(self) -> str:
        return self.address.to_string(True, True, True)

    def __eq__(self, other) -> bool:
        return isinstance(other, Account) and self.key == other.key

    def __hash__(self) -> int:
        return hash(self.key)

    def __repr__(self) -> str:
        return f"Account({self.key})"


# =============================================================================
# Messages
# =============================================================================


def internal_message(
    to: Any,
    value: int,
    body: Optional[Cell] = None,
    bounce: bool = True,
    state_init: Optional[Cell] = None,
) -> Dict[str, Any]:
    """
    Внутреннее сообщение для перевода.

    Args:
        to: Адрес получателя
        value: Сумма в nanoTON (int)
        body: Тело сообщения
        bounce: Bounce флаг
        state_init: StateInit для деплоя контракта
    """
    if not isinstance(value, int) or isinstance(value, bool) or value < 0:
        raise EncodingError(f"Message value must be a non-negative int, got {value!r}")
    return {
        "to": to_address(to, "to"),
        "value": value,
        "body": body,
        "bounce": bounce,
        "state_init": state_init,
    }


def build_transfer(
    account: Account,
    messages: List[Dict[str, Any]],
    seqno: int,
    send_mode: int = SEND_MODE_DEFAULT,
) -> Dict[str, Any]:
    """
    Строит подписанное внешнее сообщение с 1..4 внутренними сообщениями.

    Returns:
        dict: boc (bytes), hash (hex хэш внешнего сообщения), seqno
    """
    if not messages:
        raise EncodingError("Transfer must contain at least one message")
    if len(messages) > MAX_MESSAGES_PER_TRANSFER:
        raise EncodingError(
            f"Transfer can carry at most {MAX_MESSAGES_PER_TRANSFER} messages, got {len(messages)}"
        )
    if account.wallet is None:
        raise ValidationError(f"Account {account.key} has no signing keys")

    signing_message = account.wallet.create_signing_message(seqno)
    signing_message.bits.write_uint8(send_mode)
    for msg in messages:
        header = Contract.create_internal_message_header(
            msg["to"], msg["value"], bounce=msg["bounce"]
        )
        order = Contract.create_common_msg_info(header, msg["state_init"], msg["body"])
        signing_message.refs.append(order)

    query = account.wallet.create_external_message(signing_message, seqno)
    message = query["message"]
    return {
        "boc": message.to_boc(False),
        "hash": cell_hash(message),
        "seqno": seqno,
    }


# =============================================================================
# Polling
# =============================================================================


def poll_until(
    ctx,
    check: Callable[[], Any],
    what: str,
    max_polls: Optional[int] = None,
    interval: Optional[float] = None,
) -> Any:
    """
    Опрашивает check() с фиксированным интервалом, пока он не вернёт truthy.

    Транзиентные RpcError тратят попытку, но не прерывают ожидание.

    Returns:
        Результат check() или None, если попытки кончились
    """
    max_polls = max_polls if max_polls is not None else ctx.setting("confirm.max_polls", 10)
    interval = interval if interval is not None else ctx.setting("confirm.poll_interval", 2)

    for attempt in range(1, max_polls + 1):
        ctx.sleep(interval)
        try:
            result = check()
        except RpcError as e:
            if not e.retryable:
                raise
            logger.warning("Polling %s: attempt %d failed: %s", what, attempt, e)
            continue
        if result:
            return result
        logger.debug("Polling %s: attempt %d/%d", what, attempt, max_polls)
    return None


# =============================================================================
# Submit / confirm
# =============================================================================


def submit(
    ctx,
    account: Account,
    messages: List[Dict[str, Any]],
    send_mode: int = SEND_MODE_DEFAULT,
) -> Dict[str, Any]:
    """
    Читает seqno, подписывает и отправляет перевод под блокировкой аккаунта.

    Если предыдущий перевод этого аккаунта ещё не подтверждён, сначала
    дожидается роста seqno. Не дождался: SeqnoTimeout, pending остаётся,
    новый перевод на этом seqno не собирается.

    Returns:
        TxHandle dict: address, seqno, message_hash, messages

    Raises:
        SeqnoTimeout: предыдущий перевод так и не подтвердился
    """
    with ctx.account_lock(account.address):
        pending = ctx.get_pending(account.address)
        if pending is not None:
            advanced = poll_until(
                ctx,
                lambda: ctx.client.get_seqno(account.address) > pending,
                f"previous transfer of {account.key}",
            )
            if not advanced:
                raise SeqnoTimeout(
                    f"Seqno did not advance past {pending}: the previous transfer "
                    "is still unconfirmed, refusing to sign another one on it",
                    address=account.key,
                    seqno=pending,
                )
            ctx.clear_pending(account.address, pending)

        seqno = ctx.client.get_seqno(account.address)
        transfer = build_transfer(account, messages, seqno, send_mode)
        ctx.client.send_boc(transfer["boc"])
        ctx.set_pending(account.address, seqno)

    logger.info(
        "Transfer sent: wallet=%s seqno=%d messages=%d hash=%s",
        account.key,
        seqno,
        len(messages),
        transfer["hash"],
    )
    return {
        "address": account.key,
        "seqno": seqno,
        "message_hash": transfer["hash"],
        "messages": len(messages),
    }


def _correlate(ctx, address: str, message_hash: str) -> Dict[str, Any]:
    try:
        tx = ctx.client.get_last_transaction(address)
    except RpcError as e:
        logger.warning("Could not read last transaction of %s: %s", address, e)
        return {"tx_hash": None, "hash_verified": None}
    if not tx:
        return {"tx_hash": None, "hash_verified": None}

    in_hash = (tx.get("in_msg") or {}).get("hash")
    verified = in_hash is not None and in_hash.lower() == message_hash.lower()
    if not verified:
        logger.warning(
            "Seqno of %s advanced but the last transaction does not carry our message %s",
            address,
            message_hash,
        )
    return {"tx_hash": tx.get("hash"), "hash_verified": verified}


def await_confirmation(
    ctx, handle: Dict[str, Any], timeout: Optional[float] = None
) -> Dict[str, Any]:
    """
    Ждёт, пока seqno кошелька станет больше seqno перевода.

    Таймаут прекращает только ожидание: отправленный перевод всё ещё
    может попасть в блокчейн.

    Args:
        handle: Результат submit()
        timeout: Ограничение ожидания в секундах (иначе confirm.max_polls опросов)

    Raises:
        SeqnoTimeout: seqno не вырос
    """
    address = handle["address"]
    seqno = handle["seqno"]
    interval = ctx.setting("confirm.poll_interval", 2)
    max_polls = ctx.setting("confirm.max_polls", 10)
    if timeout is not None and interval > 0:
        max_polls = min(max_polls, max(1, int(timeout // interval)))

    observed = {"seqno": seqno, "polls": 0}

    def advanced() -> bool:
        observed["polls"] += 1
        observed["seqno"] = ctx.client.get_seqno(address)
        return observed["seqno"] > seqno

    if not poll_until(ctx, advanced, f"seqno of {address}", max_polls, interval):
        raise SeqnoTimeout(
            f"Seqno did not advance past {seqno} after {max_polls} polls",
            address=address,
            seqno=seqno,
        )

    ctx.clear_pending(address, seqno)
    receipt = {
        "success": True,
        "address": address,
        "seqno": seqno,
        "new_seqno": observed["seqno"],
        "polls": observed["polls"],
        "message_hash": handle["message_hash"],
    }
    if ctx.setting("confirm.verify_hash", True):
        receipt.update(_correlate(ctx, address, handle["message_hash"]))

    logger.info("Transfer confirmed: wallet=%s seqno=%d", address, seqno)
    return receipt


def send_and_confirm(
    ctx,
    account: Account,
    messages: List[Dict[str, Any]],
    send_mode: int = SEND_MODE_DEFAULT,
    timeout: Optional[float] = None,
) -> Dict[str, Any]:
    """submit + await_confirmation."""
    handle = submit(ctx, account, messages, send_mode)
    return await_confirmation(ctx, handle, timeout)


def send_message(
    ctx,
    account: Account,
    to: Any,
    value: int,
    body: Optional[Cell] = None,
    bounce: bool = True,
    state_init: Optional[Cell] = None,
) -> Dict[str, Any]:
    """Перевод с одним внутренним сообщением, с подтверждением."""
    message = internal_message(to, value, body, bounce=bounce, state_init=state_init)
    return send_and_confirm(ctx, account, [message])
