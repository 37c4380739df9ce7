#!/usr/bin/env python3
"""
TON Agent Kit — Ликвидность на DEX (DeDust, STON.fi v2, Torch Finance)

- Пулы по канонической паре активов (TON первым, затем по workchain + hash)
- Статус пула: NOT_DEPLOYED -> PENDING -> READY
- Создание недостающих vault и пула (DeDust), ожидание готовности
- Депозит парой или с одной стороны, вывод (burn LP), сбор комиссий

Каждый бэкенд объявляет набор возможностей; DexProvider проверяет его
до вызова и отвечает UnsupportedOperation вместо частичного выполнения.

Usage:
    python dex.py list
    python dex.py status --dex dedust --ton --jetton EQ...
    python dex.py deposit --dex stonfi --wallet main --ton 5 --jetton EQ...:0
    python dex.py withdraw --dex dedust --wallet main --ton --jetton EQ...
    python dex.py claim-fee --dex stonfi --wallet main --ton --jetton EQ...
"""

import sys
import json
import time
import argparse
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, NamedTuple, Optional, Sequence, Tuple

from tonsdk.boc import Cell

script_dir = Path(__file__).parent
sys.path.insert(0, str(script_dir))

from cells import (  # noqa: E402
    burn_body,
    encode_message_body,
    jetton_transfer_body,
    store_fields,
    to_address,
)
from common import (  # noqa: E402
    COMMON_EPILOG,
    DEX_BURN_GAS,
    DEX_CLAIM_FEE_GAS,
    DEX_CREATE_POOL_GAS,
    DEX_CREATE_VAULT_GAS,
    DEX_DEPOSIT_GAS,
    DEX_FORWARD_GAS,
    DEX_JETTON_DEPOSIT_GAS,
    DEX_NAMES,
    OP_DEDUST_CREATE_VAULT,
    OP_DEDUST_CREATE_VOLATILE_POOL,
    OP_DEDUST_DEPOSIT_JETTON,
    OP_DEDUST_DEPOSIT_NATIVE,
    OP_JETTON_BURN,
    OP_STONFI_PROVIDE_LP,
    OP_STONFI_TON_TRANSFER,
    OP_STONFI_WITHDRAW_FEE,
    OP_TORCH_DEPOSIT,
    OP_TORCH_WITHDRAW,
    TON_DECIMALS,
    TORCH_SUPPORTED_TOKENS,
    get_dex_address,
    resolve_token_symbol,
)
from errors import (  # noqa: E402
    InvalidDepositConfiguration,
    MethodUnavailable,
    PoolNotFound,
    TonAgentError,
    UnsupportedOperation,
    ValidationError,
    format_error,
    operation,
)
from jetton import get_wallet_address, get_wallet_data  # noqa: E402
from rpc import TonContext  # noqa: E402
from transaction import (  # noqa: E402
    Account,
    internal_message,
    poll_until,
    send_and_confirm,
)
from utils import address_key, get_logger, parse_amount, setup_logging  # noqa: E402
from wallet import load_account, resolve_password  # noqa: E402

logger = get_logger("dex")


# =============================================================================
# Capabilities
# =============================================================================

CREATE_POOL = "create_pool"
DEPOSIT = "deposit"
WITHDRAW = "withdraw"
CLAIM_FEE = "claim_fee"

DEPOSIT_PAIR = "pair"
DEPOSIT_SINGLE_SIDE = "single_side"

POOL_TYPE_VOLATILE = 0

# STON.fi deadline for provide_lp
STONFI_DEADLINE_SECONDS = 15 * 60


class PoolStatus(str, Enum):
    NOT_DEPLOYED = "not_deployed"
    PENDING = "pending"
    READY = "ready"


# =============================================================================
# Assets
# =============================================================================


class Asset(NamedTuple):
    """TON (native) или жетон по адресу минтера ("wc:hash")."""

    kind: str
    address: Optional[str] = None

    @property
    def is_native(self) -> bool:
        return self.kind == "native"

    def sort_key(self) -> Tuple[int, int, str]:
        if self.is_native:
            return (0, 0, "")
        workchain, hash_hex = self.address.split(":")
        return (1, int(workchain), hash_hex)

    def fields(self) -> List[tuple]:
        """Сериализация DeDust: native$0000, jetton$0001 workchain:int8 hash:bits256."""
        if self.is_native:
            return [("uint", 0, 4)]
        workchain, hash_hex = self.address.split(":")
        return [("uint", 1, 4), ("int", int(workchain), 8), ("bytes", bytes.fromhex(hash_hex))]

    def to_cell(self) -> Cell:
        return store_fields(Cell(), self.fields())

    def __str__(self) -> str:
        return "TON" if self.is_native else self.address


def native_asset() -> Asset:
    return Asset("native")


def jetton_asset(address: Any) -> Asset:
    try:
        return Asset("jetton", address_key(resolve_token_symbol(str(address))))
    except ValueError:
        raise ValidationError(f"Invalid jetton address: {address}")


def canonical_pair(a: Asset, b: Asset) -> Tuple[Asset, Asset]:
    """Пара в каноническом порядке: TON первым, затем жетоны по (workchain, hash)."""
    if a == b:
        raise ValidationError(f"A pool needs two different assets, got {a} twice")
    return (a, b) if a.sort_key() <= b.sort_key() else (b, a)


def pair_from(jettons: Sequence[Any], native: bool) -> Tuple[Asset, Asset]:
    """TON + 1 жетон или 2 жетона."""
    assets = [jetton_asset(j) for j in jettons]
    if native:
        if len(assets) != 1:
            raise ValidationError("A TON pool needs exactly one jetton")
        return canonical_pair(native_asset(), assets[0])
    if len(assets) != 2:
        raise ValidationError("A jetton pool needs exactly two jettons")
    return canonical_pair(assets[0], assets[1])


# =============================================================================
# Deposit validation
# =============================================================================


def _check_amount(value: Any, name: str) -> int:
    if not isinstance(value, int) or isinstance(value, bool):
        raise InvalidDepositConfiguration(f"{name} must be an integer, got {value!r}")
    if value < 0:
        raise InvalidDepositConfiguration(f"{name} must not be negative, got {value}")
    return value


def classify_deposit(deposits: Sequence[Dict[str, Any]], native_amount: int = 0) -> str:
    """
    Определяет вид депозита.

    Args:
        deposits: [{"jetton": addr, "amount": int}] длиной 1..2
        native_amount: nanoTON (только для пары TON + жетон)

    Returns:
        "pair" (обе стороны ненулевые) или "single_side" (ровно одна)

    Raises:
        InvalidDepositConfiguration
    """
    if not deposits:
        raise InvalidDepositConfiguration("At least one jetton deposit is required")
    if len(deposits) > 2:
        raise InvalidDepositConfiguration(
            f"A pool has two assets, got {len(deposits)} jetton deposits"
        )
    for d in deposits:
        if not isinstance(d, dict) or not d.get("jetton"):
            raise InvalidDepositConfiguration(
                f"Each jetton deposit needs a jetton address, got {d!r}"
            )

    native_amount = _check_amount(native_amount, "native amount")
    amounts = [_check_amount(d.get("amount"), "jetton amount") for d in deposits]

    if len(deposits) == 2:
        if native_amount > 0:
            raise InvalidDepositConfiguration(
                "TON cannot be deposited into a jetton/jetton pool"
            )
        sides = amounts
    else:
        sides = [native_amount, amounts[0]]

    nonzero = sum(1 for amount in sides if amount > 0)
    if nonzero == 0:
        raise InvalidDepositConfiguration("All deposit amounts are zero")
    return DEPOSIT_PAIR if nonzero == 2 else DEPOSIT_SINGLE_SIDE


def deposit_amounts(
    deposits: Sequence[Dict[str, Any]], native_amount: int = 0
) -> Tuple[Tuple[Asset, Asset], Dict[Asset, int]]:
    """Пара активов и сумма по каждому активу."""
    amounts = {jetton_asset(d["jetton"]): d["amount"] for d in deposits}
    if len(deposits) == 1:
        amounts[native_asset()] = native_amount
    assets = list(amounts)
    if len(assets) != 2:
        raise InvalidDepositConfiguration("Deposit assets must be two different assets")
    return canonical_pair(assets[0], assets[1]), amounts


# =============================================================================
# Backends
# =============================================================================


class DexBackend:
    """Общая часть бэкендов: адреса контрактов, LP кошельки, вывод ликвидности."""

    name = ""
    capabilities: frozenset = frozenset()
    single_side_deposit = False

    def __init__(self, ctx: TonContext):
        self.ctx = ctx

    @property
    def label(self) -> str:
        return DEX_NAMES.get(self.name, self.name)

    def contract(self, key: str) -> str:
        """Адрес контракта DEX: конфиг dex.<name>.<key>, иначе встроенный для сети."""
        address = self.ctx.setting(f"dex.{self.name}.{key}") or get_dex_address(
            self.ctx.network, self.name, key
        )
        if not address:
            raise UnsupportedOperation(
                f"{self.label} has no {key} contract on {self.ctx.network}",
                dex=self.name,
            )
        return address

    def pool_address(self, pair: Tuple[Asset, Asset]) -> str:
        raise NotImplementedError

    def pool_status(self, pair: Tuple[Asset, Asset]) -> PoolStatus:
        pool = self.pool_address(pair)
        if self.ctx.client.get_account_state(pool) != "active":
            return PoolStatus.NOT_DEPLOYED
        return PoolStatus.READY

    def jetton_wallet(self, account: Account, asset: Asset) -> str:
        return get_wallet_address(self.ctx, asset.address, account.address)

    def _send(self, account: Account, messages: List[Dict[str, Any]]) -> Dict[str, Any]:
        return send_and_confirm(self.ctx, account, messages)

    def burn_lp_body(self, amount: int, account: Account) -> Cell:
        return burn_body(amount, account.address)

    def withdraw(
        self,
        account: Account,
        pair: Tuple[Asset, Asset],
        amount: Optional[int] = None,
    ) -> Dict[str, Any]:
        """Сжигает amount LP (или весь баланс) на LP кошельке вызывающего."""
        pool = self.pool_address(pair)
        lp_wallet = get_wallet_address(self.ctx, pool, account.address)
        try:
            balance = get_wallet_data(self.ctx, lp_wallet)["balance"]
        except MethodUnavailable:
            balance = 0

        if balance == 0:
            raise PoolNotFound(
                "Nothing to withdraw: LP balance is zero", pool=pool, lp_wallet=lp_wallet
            )
        burn_amount = balance if amount is None else amount
        if burn_amount <= 0 or burn_amount > balance:
            raise ValidationError(
                f"Withdraw amount must be between 1 and the LP balance {balance}",
                amount=burn_amount,
            )

        logger.info("%s: burning %d LP on %s", self.label, burn_amount, lp_wallet)
        receipt = self._send(
            account,
            [internal_message(lp_wallet, DEX_BURN_GAS, self.burn_lp_body(burn_amount, account))],
        )
        return {
            "success": True,
            "pool": pool,
            "lp_wallet": lp_wallet,
            "burned": burn_amount,
            "receipt": receipt,
        }


class DeDustBackend(DexBackend):
    """DeDust: фабрика, vault на каждый актив, volatile пулы."""

    name = "dedust"
    capabilities = frozenset({CREATE_POOL, DEPOSIT, WITHDRAW})
    single_side_deposit = False

    def vault_address(self, asset: Asset) -> str:
        reply = self.ctx.client.run_get_method(
            self.contract("factory"), "get_vault_address", [asset.to_cell()]
        )
        return reply.read_address()

    def pool_address(self, pair: Tuple[Asset, Asset]) -> str:
        reply = self.ctx.client.run_get_method(
            self.contract("factory"),
            "get_pool_address",
            [POOL_TYPE_VOLATILE, pair[0].to_cell(), pair[1].to_cell()],
        )
        return reply.read_address()

    def pool_status(self, pair: Tuple[Asset, Asset]) -> PoolStatus:
        pool = self.pool_address(pair)
        if self.ctx.client.get_account_state(pool) != "active":
            return PoolStatus.NOT_DEPLOYED
        if not self.ctx.client.run_get_method(pool, "is_ready").read_bool():
            return PoolStatus.PENDING
        return PoolStatus.READY

    def create_pool(self, account: Account, pair: Tuple[Asset, Asset]) -> Dict[str, Any]:
        """
        Создаёт недостающие vault жетонов, затем пул (если не развёрнут),
        и ждёт READY.
        """
        factory = self.contract("factory")
        status = self.pool_status(pair)
        result: Dict[str, Any] = {
            "success": True,
            "pool": self.pool_address(pair),
            "vaults_created": [],
            "pool_created": False,
        }
        if status == PoolStatus.READY:
            result["status"] = status.value
            return result

        vault_messages = []
        for asset in pair:
            if asset.is_native:
                continue
            vault = self.vault_address(asset)
            if self.ctx.client.get_account_state(vault) == "active":
                continue
            body = encode_message_body(OP_DEDUST_CREATE_VAULT, 0, asset.fields())
            vault_messages.append(internal_message(factory, DEX_CREATE_VAULT_GAS, body))
            result["vaults_created"].append(vault)

        if vault_messages:
            logger.info("%s: creating %d vault(s)", self.label, len(vault_messages))
            self._send(account, vault_messages)

        if status == PoolStatus.NOT_DEPLOYED:
            body = encode_message_body(
                OP_DEDUST_CREATE_VOLATILE_POOL, 0, pair[0].fields() + pair[1].fields()
            )
            logger.info("%s: creating volatile pool %s / %s", self.label, pair[0], pair[1])
            self._send(account, [internal_message(factory, DEX_CREATE_POOL_GAS, body)])
            result["pool_created"] = True

        self.wait_ready(pair)
        result["status"] = PoolStatus.READY.value
        return result

    def wait_ready(self, pair: Tuple[Asset, Asset]) -> None:
        ready = poll_until(
            self.ctx,
            lambda: self.pool_status(pair) == PoolStatus.READY,
            f"{self.label} pool readiness",
        )
        if not ready:
            raise PoolNotFound(
                f"{self.label} pool for {pair[0]} / {pair[1]} is not ready",
                pool=self.pool_address(pair),
            )

    def _liquidity_fields(self, pair: Tuple[Asset, Asset], amounts: Dict[Asset, int]) -> list:
        params = store_fields(
            Cell(),
            [("coins", 0), ("coins", amounts[pair[0]]), ("coins", amounts[pair[1]])],
        )
        return (
            [("uint", POOL_TYPE_VOLATILE, 1)]
            + pair[0].fields()
            + pair[1].fields()
            + [("ref", params), ("maybe_ref", None), ("maybe_ref", None)]
        )

    def deposit(
        self,
        account: Account,
        pair: Tuple[Asset, Asset],
        amounts: Dict[Asset, int],
        kind: str,
    ) -> Dict[str, Any]:
        if kind != DEPOSIT_PAIR:
            raise UnsupportedOperation(f"{self.label} does not support single-side deposits")

        fields = self._liquidity_fields(pair, amounts)
        messages = []
        for asset in pair:
            amount = amounts[asset]
            if asset.is_native:
                body = encode_message_body(
                    OP_DEDUST_DEPOSIT_NATIVE, 0, [("coins", amount)] + fields
                )
                vault = self.vault_address(asset)
                messages.append(internal_message(vault, amount + DEX_DEPOSIT_GAS, body))
            else:
                payload = encode_message_body(OP_DEDUST_DEPOSIT_JETTON, None, fields)
                body = jetton_transfer_body(
                    amount,
                    self.vault_address(asset),
                    response_address=account.address,
                    forward_ton_amount=DEX_FORWARD_GAS,
                    forward_payload=payload,
                )
                messages.append(
                    internal_message(
                        self.jetton_wallet(account, asset), DEX_JETTON_DEPOSIT_GAS, body
                    )
                )

        receipt = self._send(account, messages)
        return {"success": True, "pool": self.pool_address(pair), "receipt": receipt}


class StonFiBackend(DexBackend):
    """STON.fi v2: router, pTON для TON, vault для комиссий."""

    name = "stonfi"
    capabilities = frozenset({DEPOSIT, WITHDRAW, CLAIM_FEE})
    single_side_deposit = True

    def router_wallet(self, asset: Asset) -> str:
        """Jetton wallet роутера для актива (для TON это кошелёк pTON)."""
        minter = self.contract("pton") if asset.is_native else asset.address
        return get_wallet_address(self.ctx, minter, self.contract("router"))

    def pool_address(self, pair: Tuple[Asset, Asset]) -> str:
        reply = self.ctx.client.run_get_method(
            self.contract("router"),
            "get_pool_address",
            [to_address(self.router_wallet(pair[0])), to_address(self.router_wallet(pair[1]))],
        )
        return reply.read_address()

    def provide_lp_payload(
        self, account: Account, other_wallet: str, both_positive: bool
    ) -> Cell:
        params = store_fields(
            Cell(),
            [
                ("coins", 1),  # min_lp_out
                ("address", account.address),
                ("uint", 1 if both_positive else 0, 1),
                ("coins", 0),
                ("maybe_ref", None),
            ],
        )
        return encode_message_body(
            OP_STONFI_PROVIDE_LP,
            None,
            [
                ("address", other_wallet),
                ("address", account.address),  # refund
                ("address", account.address),  # excesses
                ("uint", int(time.time()) + STONFI_DEADLINE_SECONDS, 64),
                ("ref", params),
            ],
        )

    def deposit(
        self,
        account: Account,
        pair: Tuple[Asset, Asset],
        amounts: Dict[Asset, int],
        kind: str,
    ) -> Dict[str, Any]:
        router = self.contract("router")
        both_positive = kind == DEPOSIT_PAIR
        messages = []

        for asset, other in ((pair[0], pair[1]), (pair[1], pair[0])):
            amount = amounts[asset]
            if amount == 0:
                continue
            payload = self.provide_lp_payload(account, self.router_wallet(other), both_positive)
            if asset.is_native:
                body = encode_message_body(
                    OP_STONFI_TON_TRANSFER,
                    0,
                    [("coins", amount), ("address", account.address), ("maybe_ref", payload)],
                )
                messages.append(
                    internal_message(
                        self.router_wallet(asset), amount + DEX_FORWARD_GAS, body
                    )
                )
            else:
                body = jetton_transfer_body(
                    amount,
                    router,
                    response_address=account.address,
                    forward_ton_amount=DEX_FORWARD_GAS,
                    forward_payload=payload,
                )
                messages.append(
                    internal_message(
                        self.jetton_wallet(account, asset), DEX_JETTON_DEPOSIT_GAS, body
                    )
                )

        receipt = self._send(account, messages)
        return {
            "success": True,
            "pool": self.pool_address(pair),
            "single_side": not both_positive,
            "receipt": receipt,
        }

    def vault_address(self, account: Account, token_minter: str) -> str:
        token_wallet = get_wallet_address(self.ctx, token_minter, self.contract("router"))
        reply = self.ctx.client.run_get_method(
            self.contract("router"),
            "get_vault_address",
            [account.address, to_address(token_wallet)],
        )
        return reply.read_address()

    def claim_fee(
        self, account: Account, jettons: Sequence[Any], native: bool = False
    ) -> Dict[str, Any]:
        """
        withdraw_fee в vault каждого актива, отдельной транзакцией.
        Ошибка одного актива не отменяет уже отправленные.
        """
        minters = [jetton_asset(j).address for j in jettons]
        if native:
            minters.append(address_key(self.contract("ton_fee_minter")))
        if not minters:
            raise ValidationError("No assets to claim fees for")

        results = []
        for minter in minters:
            entry: Dict[str, Any] = {"asset": minter}
            try:
                vault = self.vault_address(account, minter)
                entry["vault"] = vault
                body = encode_message_body(OP_STONFI_WITHDRAW_FEE, 0)
                entry["receipt"] = self._send(
                    account, [internal_message(vault, DEX_CLAIM_FEE_GAS, body)]
                )
                entry["status"] = "sent"
            except TonAgentError as e:
                logger.warning("%s: fee claim for %s failed: %s", self.label, minter, e)
                entry.update(status="failed", error=str(e))
            results.append(entry)

        return {
            "success": all(r["status"] == "sent" for r in results),
            "results": results,
        }


class TorchBackend(DexBackend):
    """Torch Finance: один пул (TriTON), белый список жетонов."""

    name = "torch"
    capabilities = frozenset({DEPOSIT, WITHDRAW})
    single_side_deposit = True

    supported_tokens = frozenset(address_key(t) for t in TORCH_SUPPORTED_TOKENS)

    def check_supported(self, pair: Tuple[Asset, Asset]) -> None:
        for asset in pair:
            if not asset.is_native and asset.address not in self.supported_tokens:
                raise UnsupportedOperation(
                    f"Token {asset.address} is not supported by {self.label}",
                    dex=self.name,
                )

    def pool_address(self, pair: Tuple[Asset, Asset]) -> str:
        self.check_supported(pair)
        return address_key(self.contract("pool"))

    def deposit_payload(self, account: Account) -> Cell:
        return encode_message_body(
            OP_TORCH_DEPOSIT, 0, [("address", account.address), ("coins", 0)]
        )

    def deposit(
        self,
        account: Account,
        pair: Tuple[Asset, Asset],
        amounts: Dict[Asset, int],
        kind: str,
    ) -> Dict[str, Any]:
        pool = self.pool_address(pair)
        messages = []
        for asset in pair:
            amount = amounts[asset]
            if amount == 0:
                continue
            if asset.is_native:
                body = encode_message_body(
                    OP_TORCH_DEPOSIT,
                    0,
                    [("coins", amount), ("address", account.address), ("coins", 0)],
                )
                messages.append(internal_message(pool, amount + DEX_DEPOSIT_GAS, body))
            else:
                body = jetton_transfer_body(
                    amount,
                    pool,
                    response_address=account.address,
                    forward_ton_amount=DEX_FORWARD_GAS,
                    forward_payload=self.deposit_payload(account),
                )
                messages.append(
                    internal_message(
                        self.jetton_wallet(account, asset), DEX_JETTON_DEPOSIT_GAS, body
                    )
                )

        receipt = self._send(account, messages)
        return {"success": True, "pool": pool, "receipt": receipt}

    def burn_lp_body(self, amount: int, account: Account) -> Cell:
        withdraw = encode_message_body(OP_TORCH_WITHDRAW, None, [("address", account.address)])
        return encode_message_body(
            OP_JETTON_BURN,
            0,
            [("coins", amount), ("address", account.address), ("maybe_ref", withdraw)],
        )


BACKENDS = {
    "dedust": DeDustBackend,
    "stonfi": StonFiBackend,
    "torch": TorchBackend,
}


# =============================================================================
# Dispatcher
# =============================================================================


class DexProvider:
    """Единая точка входа: проверяет возможности бэкенда до вызова."""

    def __init__(self, ctx: TonContext):
        self.ctx = ctx
        self.backends = {name: cls(ctx) for name, cls in BACKENDS.items()}

    def supported(self) -> List[Dict[str, Any]]:
        return [
            {
                "dex": name,
                "name": backend.label,
                "capabilities": sorted(backend.capabilities),
                "single_side_deposit": backend.single_side_deposit,
            }
            for name, backend in self.backends.items()
        ]

    def backend(self, dex: str, capability: Optional[str] = None) -> DexBackend:
        backend = self.backends.get(str(dex).lower())
        if backend is None:
            raise UnsupportedOperation(f"Unknown DEX: {dex}", dex=dex)
        if capability is not None and capability not in backend.capabilities:
            raise UnsupportedOperation(
                f"{capability} is not supported by {backend.label}", dex=backend.name
            )
        return backend

    def pool_status(
        self, dex: str, jettons: Sequence[Any], native: bool = False
    ) -> Dict[str, Any]:
        backend = self.backend(dex)
        pair = pair_from(jettons, native)
        return {
            "dex": backend.name,
            "assets": [str(a) for a in pair],
            "pool": backend.pool_address(pair),
            "status": backend.pool_status(pair).value,
        }

    def create_pool(
        self, dex: str, account: Account, jettons: Sequence[Any], native: bool = False
    ) -> Dict[str, Any]:
        backend = self.backend(dex, CREATE_POOL)
        pair = pair_from(jettons, native)
        with operation("create_pool", dex=backend.name, assets=[str(a) for a in pair]):
            return backend.create_pool(account, pair)

    def deposit(
        self,
        dex: str,
        account: Account,
        deposits: Sequence[Dict[str, Any]],
        native_amount: int = 0,
    ) -> Dict[str, Any]:
        backend = self.backend(dex, DEPOSIT)
        kind = classify_deposit(deposits, native_amount)
        if kind == DEPOSIT_SINGLE_SIDE and not backend.single_side_deposit:
            raise UnsupportedOperation(
                f"{backend.label} does not support single-side deposits", dex=backend.name
            )
        pair, amounts = deposit_amounts(deposits, native_amount)

        with operation(
            "deposit",
            dex=backend.name,
            assets=[str(a) for a in pair],
            amounts=[amounts[a] for a in pair],
        ):
            if CREATE_POOL in backend.capabilities:
                backend.create_pool(account, pair)
            result = backend.deposit(account, pair, amounts, kind)

        result["kind"] = kind
        return result

    def withdraw(
        self,
        dex: str,
        account: Account,
        jettons: Sequence[Any],
        native: bool = False,
        amount: Optional[int] = None,
    ) -> Dict[str, Any]:
        backend = self.backend(dex, WITHDRAW)
        pair = pair_from(jettons, native)
        with operation("withdraw", dex=backend.name, assets=[str(a) for a in pair], amount=amount):
            return backend.withdraw(account, pair, amount)

    def claim_fee(
        self, dex: str, account: Account, jettons: Sequence[Any], native: bool = False
    ) -> Dict[str, Any]:
        backend = self.backend(dex, CLAIM_FEE)
        with operation("claim_fee", dex=backend.name):
            return backend.claim_fee(account, jettons, native)


# =============================================================================
# CLI
# =============================================================================


def _parse_jetton_args(values: Optional[List[str]], decimals: int) -> List[Dict[str, Any]]:
    """EQ...:1.5 -> {"jetton": "EQ...", "amount": units}; без суммы amount = 0."""
    deposits = []
    for value in values or []:
        jetton, _, amount = value.partition(":")
        deposits.append(
            {"jetton": jetton, "amount": parse_amount(amount, decimals) if amount else 0}
        )
    return deposits


def main():
    parser = argparse.ArgumentParser(
        description="DEX liquidity: DeDust, STON.fi, Torch Finance",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=COMMON_EPILOG,
    )
    parser.add_argument("--password", "-p", help="Wallet password")
    parser.add_argument("--verbose", action="store_true")
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    subparsers.add_parser("list", help="Supported DEXes and capabilities")

    for name, help_text in (
        ("status", "Pool status"),
        ("create-pool", "Create vaults and pool"),
        ("deposit", "Provide liquidity"),
        ("withdraw", "Burn LP tokens"),
        ("claim-fee", "Claim accumulated fees"),
    ):
        p = subparsers.add_parser(name, help=help_text)
        p.add_argument("--dex", required=True, choices=sorted(BACKENDS))
        p.add_argument(
            "--jetton", "-j", action="append", help="Jetton address (deposit: ADDR:AMOUNT)"
        )
        p.add_argument("--decimals", type=int, default=TON_DECIMALS)
        if name != "status":
            p.add_argument("--wallet", "-w", help="Wallet label or address")
        if name == "deposit":
            p.add_argument("--ton", default="0", help="TON amount to deposit")
        else:
            p.add_argument("--ton", action="store_true", help="Pool with TON")
        if name == "withdraw":
            p.add_argument("--amount", help="LP amount (default: whole balance)")

    args = parser.parse_args()
    if not args.command:
        parser.print_help()
        return

    setup_logging(args.verbose)

    try:
        with TonContext.from_config() as ctx:
            provider = DexProvider(ctx)
            if args.command == "list":
                result = {"success": True, "dexes": provider.supported()}
            elif args.command == "status":
                result = {"success": True, **provider.pool_status(args.dex, args.jetton or [], args.ton)}
            else:
                account = load_account(args.wallet, resolve_password(args.password))
                if args.command == "create-pool":
                    result = provider.create_pool(args.dex, account, args.jetton or [], args.ton)
                elif args.command == "deposit":
                    result = provider.deposit(
                        args.dex,
                        account,
                        _parse_jetton_args(args.jetton, args.decimals),
                        parse_amount(args.ton),
                    )
                elif args.command == "withdraw":
                    amount = parse_amount(args.amount, args.decimals) if args.amount else None
                    result = provider.withdraw(
                        args.dex, account, args.jetton or [], args.ton, amount
                    )
                else:
                    result = provider.claim_fee(args.dex, account, args.jetton or [], args.ton)

        print(json.dumps(result, indent=2, ensure_ascii=False))
        if not result.get("success", False):
            sys.exit(1)
    except TonAgentError as e:
        print(json.dumps(format_error(e), indent=2, ensure_ascii=False))
        sys.exit(1)


if __name__ == "__main__":
    main()
