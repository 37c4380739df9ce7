#!/usr/bin/env python3
"""
TON Agent Kit — Операции с жетонами (TEP-74)

- Деплой минтера с on-chain или off-chain метаданными
- Mint / burn / change admin / update metadata
- Перевод жетонов через jetton wallet отправителя
- Чтение get_jetton_data / get_wallet_data

Все суммы жетонов передаются в минимальных единицах (int).

Usage:
    python jetton.py deploy --wallet main --name "Agent Token" --symbol AGT --decimals 9
    python jetton.py mint --wallet main --minter EQ... --to UQ... --amount 1000
    python jetton.py transfer --wallet main --master EQ... --to UQ... --amount 5
    python jetton.py info --minter EQ...
"""

import sys
import json
import argparse
from pathlib import Path
from typing import Any, Dict, Optional, Union

from tonsdk.boc import Cell

script_dir = Path(__file__).parent
sys.path.insert(0, str(script_dir))

from cells import (  # noqa: E402
    build_state_init,
    burn_body,
    cell_from_boc,
    cell_to_hex,
    change_admin_body,
    comment_body,
    contract_address,
    decode_metadata,
    encode_offchain_metadata,
    encode_onchain_metadata,
    jetton_transfer_body,
    mint_body,
    store_fields,
    to_address,
    update_metadata_body,
)
from common import (  # noqa: E402
    COMMON_EPILOG,
    FEE_BURN,
    FEE_CHANGE_ADMIN,
    FEE_DEPLOY_MINTER,
    FEE_JETTON_TRANSFER,
    FEE_MINT,
    FEE_MINT_FORWARD,
    FEE_UPDATE_METADATA,
    TON_DECIMALS,
)
from errors import (  # noqa: E402
    EncodingError,
    TonAgentError,
    ValidationError,
    format_error,
    operation,
)
from jetton_code import JETTON_MINTER_CODE_HEX, JETTON_WALLET_CODE_HEX  # noqa: E402
from rpc import TonContext  # noqa: E402
from transaction import Account, send_message  # noqa: E402
from utils import address_key, get_logger, parse_amount, setup_logging  # noqa: E402
from wallet import load_account, resolve_password  # noqa: E402

logger = get_logger("jetton")


# =============================================================================
# Contract code
# =============================================================================


def minter_code() -> Cell:
    return cell_from_boc(JETTON_MINTER_CODE_HEX)


def wallet_code() -> Cell:
    return cell_from_boc(JETTON_WALLET_CODE_HEX)


def minter_data(owner: Any, content: Cell) -> Cell:
    """Начальные данные минтера: total_supply=0, admin, ^content, ^wallet_code."""
    return store_fields(
        Cell(),
        [
            ("coins", 0),
            ("address", owner),
            ("ref", content),
            ("ref", wallet_code()),
        ],
    )


def _require_positive(amount: int, name: str = "amount") -> int:
    if not isinstance(amount, int) or isinstance(amount, bool) or amount <= 0:
        raise ValidationError(f"{name} must be a positive integer, got {amount!r}")
    return amount


def _content_cell(content: Union[Cell, Dict[str, Any], str]) -> Cell:
    if isinstance(content, Cell):
        return content
    if isinstance(content, dict):
        return encode_onchain_metadata(content)
    return encode_offchain_metadata(content)


# =============================================================================
# Read operations
# =============================================================================


def get_wallet_address(ctx: TonContext, master: Any, owner: Any) -> str:
    """Адрес jetton wallet владельца (get_wallet_address минтера)."""
    reply = ctx.client.run_get_method(
        master, "get_wallet_address", [to_address(owner, "owner")]
    )
    return reply.read_address()


def get_jetton_data(ctx: TonContext, master: Any) -> Dict[str, Any]:
    """
    get_jetton_data минтера.

    Returns:
        total_supply, mintable, admin_address, metadata (если декодируется),
        content (BOC hex), wallet_code (BOC hex)
    """
    reply = ctx.client.run_get_method(master, "get_jetton_data")
    total_supply = reply.read_int()
    mintable = reply.read_bool()
    admin = reply.read_address_opt()
    content = reply.read_cell()
    code = reply.read_cell()

    try:
        metadata = decode_metadata(content)
    except EncodingError as e:
        logger.debug("Jetton content of %s is not decodable: %s", master, e)
        metadata = None

    return {
        "total_supply": total_supply,
        "mintable": mintable,
        "admin_address": admin,
        "metadata": metadata,
        "content": cell_to_hex(content),
        "wallet_code": cell_to_hex(code),
    }


def get_wallet_data(ctx: TonContext, jetton_wallet: Any) -> Dict[str, Any]:
    """get_wallet_data: balance, owner, master, wallet_code."""
    reply = ctx.client.run_get_method(jetton_wallet, "get_wallet_data")
    return {
        "balance": reply.read_int(),
        "owner": reply.read_address(),
        "master": reply.read_address(),
        "wallet_code": cell_to_hex(reply.read_cell()),
    }


# =============================================================================
# Minter operations
# =============================================================================


def deploy_minter(
    ctx: TonContext,
    account: Account,
    metadata: Optional[Dict[str, Any]] = None,
    offchain_uri: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Деплоит минтер, админ = account. Адрес вычисляется до отправки.

    Args:
        metadata: On-chain метаданные (name, symbol, decimals, ...)
        offchain_uri: URI off-chain метаданных (если задан, важнее metadata)
    """
    if offchain_uri:
        content = encode_offchain_metadata(offchain_uri)
    elif metadata:
        content = encode_onchain_metadata(metadata)
    else:
        raise ValidationError("Jetton metadata or an off-chain URI is required")

    state_init = build_state_init(minter_code(), minter_data(account.address, content))
    minter = contract_address(account.workchain, state_init)

    with operation("deploy_minter", minter=address_key(minter), owner=account.key):
        receipt = send_message(
            ctx, account, minter, FEE_DEPLOY_MINTER, bounce=False, state_init=state_init
        )

    logger.info("Jetton minter deployed: %s", address_key(minter))
    return {
        "success": True,
        "minter": minter.to_string(True, True, True),
        "minter_raw": address_key(minter),
        "receipt": receipt,
    }


def mint(
    ctx: TonContext, account: Account, minter: Any, to: Any, amount: int
) -> Dict[str, Any]:
    """Mint amount (минимальные единицы) на адрес to. Только админ минтера."""
    _require_positive(amount)
    body = mint_body(to, amount, FEE_MINT_FORWARD)

    with operation("mint", minter=address_key(minter), to=address_key(to), amount=amount):
        receipt = send_message(ctx, account, minter, FEE_MINT, body)

    return {"success": True, "minter": address_key(minter), "amount": amount, "receipt": receipt}


def burn(
    ctx: TonContext,
    account: Account,
    minter: Any,
    amount: int,
    response_to: Any = None,
) -> Dict[str, Any]:
    """Сжигает жетоны на кошельке вызывающего (адрес кошелька берётся у минтера)."""
    _require_positive(amount)

    with operation("burn", minter=address_key(minter), amount=amount):
        jetton_wallet = get_wallet_address(ctx, minter, account.address)
        body = burn_body(amount, response_to or account.address)
        with operation("burn", jetton_wallet=jetton_wallet):
            receipt = send_message(ctx, account, jetton_wallet, FEE_BURN, body)

    return {
        "success": True,
        "jetton_wallet": jetton_wallet,
        "amount": amount,
        "receipt": receipt,
    }


def change_admin(
    ctx: TonContext, account: Account, minter: Any, new_owner: Any
) -> Dict[str, Any]:
    body = change_admin_body(new_owner)

    with operation(
        "change_admin", minter=address_key(minter), new_owner=address_key(new_owner)
    ):
        receipt = send_message(ctx, account, minter, FEE_CHANGE_ADMIN, body)

    return {"success": True, "new_admin": address_key(new_owner), "receipt": receipt}


def update_metadata(
    ctx: TonContext,
    account: Account,
    minter: Any,
    content: Union[Cell, Dict[str, Any], str],
) -> Dict[str, Any]:
    """Меняет контент минтера. content: Cell, dict (on-chain) или URI (off-chain)."""
    body = update_metadata_body(_content_cell(content))

    with operation("update_metadata", minter=address_key(minter)):
        receipt = send_message(ctx, account, minter, FEE_UPDATE_METADATA, body)

    return {"success": True, "minter": address_key(minter), "receipt": receipt}


# =============================================================================
# Transfers
# =============================================================================


def transfer(
    ctx: TonContext,
    account: Account,
    amount: int,
    to: Any,
    master: Any,
    forward_amount: int = 0,
    comment: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Перевод жетонов: сообщение уходит на jetton wallet отправителя.

    Args:
        amount: Сумма в минимальных единицах жетона
        to: Получатель (владелец, не jetton wallet)
        master: Адрес минтера (обязателен)
        forward_amount: nanoTON для transfer_notification получателю
        comment: Текстовый комментарий в forward_payload
    """
    if not master:
        raise ValidationError("Jetton master address is required for a transfer")
    _require_positive(amount)

    with operation(
        "jetton_transfer", master=address_key(master), to=address_key(to), amount=amount
    ):
        jetton_wallet = get_wallet_address(ctx, master, account.address)
        body = jetton_transfer_body(
            amount,
            to,
            response_address=account.address,
            forward_ton_amount=forward_amount,
            forward_payload=comment_body(comment) if comment else None,
        )
        receipt = send_message(
            ctx, account, jetton_wallet, FEE_JETTON_TRANSFER + forward_amount, body
        )

    return {
        "success": True,
        "jetton_wallet": jetton_wallet,
        "to": address_key(to),
        "amount": amount,
        "receipt": receipt,
    }


# =============================================================================
# CLI
# =============================================================================


def main():
    parser = argparse.ArgumentParser(
        description="Jetton minter and wallet operations",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=COMMON_EPILOG,
    )
    parser.add_argument("--password", "-p", help="Wallet password")
    parser.add_argument("--verbose", action="store_true")
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    def with_wallet(p):
        p.add_argument("--wallet", "-w", help="Wallet label or address")
        return p

    deploy_p = with_wallet(subparsers.add_parser("deploy", help="Deploy jetton minter"))
    deploy_p.add_argument("--name")
    deploy_p.add_argument("--symbol")
    deploy_p.add_argument("--description")
    deploy_p.add_argument("--image")
    deploy_p.add_argument("--decimals", default="9")
    deploy_p.add_argument("--uri", help="Off-chain metadata URI")

    mint_p = with_wallet(subparsers.add_parser("mint", help="Mint jettons"))
    mint_p.add_argument("--minter", required=True)
    mint_p.add_argument("--to", required=True)
    mint_p.add_argument("--amount", required=True)
    mint_p.add_argument("--decimals", type=int, default=TON_DECIMALS)

    burn_p = with_wallet(subparsers.add_parser("burn", help="Burn own jettons"))
    burn_p.add_argument("--minter", required=True)
    burn_p.add_argument("--amount", required=True)
    burn_p.add_argument("--decimals", type=int, default=TON_DECIMALS)

    transfer_p = with_wallet(subparsers.add_parser("transfer", help="Transfer jettons"))
    transfer_p.add_argument("--master", required=True)
    transfer_p.add_argument("--to", required=True)
    transfer_p.add_argument("--amount", required=True)
    transfer_p.add_argument("--decimals", type=int, default=TON_DECIMALS)
    transfer_p.add_argument("--forward", default="0", help="Forward TON amount")
    transfer_p.add_argument("--comment")

    admin_p = with_wallet(subparsers.add_parser("change-admin", help="Change minter admin"))
    admin_p.add_argument("--minter", required=True)
    admin_p.add_argument("--new-owner", required=True)

    meta_p = with_wallet(subparsers.add_parser("update-metadata", help="Set off-chain URI"))
    meta_p.add_argument("--minter", required=True)
    meta_p.add_argument("--uri", required=True)

    info_p = subparsers.add_parser("info", help="Jetton minter data")
    info_p.add_argument("--minter", required=True)

    wallet_p = subparsers.add_parser("wallet-data", help="Jetton wallet data")
    wallet_p.add_argument("--owner", required=True)
    wallet_p.add_argument("--master", required=True)

    args = parser.parse_args()
    if not args.command:
        parser.print_help()
        return

    setup_logging(args.verbose)

    try:
        with TonContext.from_config() as ctx:
            if args.command == "info":
                result = {"success": True, **get_jetton_data(ctx, args.minter)}
            elif args.command == "wallet-data":
                jetton_wallet = get_wallet_address(ctx, args.master, args.owner)
                result = {
                    "success": True,
                    "jetton_wallet": jetton_wallet,
                    **get_wallet_data(ctx, jetton_wallet),
                }
            else:
                account = load_account(args.wallet, resolve_password(args.password))
                if args.command == "deploy":
                    metadata = {
                        "name": args.name,
                        "symbol": args.symbol,
                        "description": args.description,
                        "image": args.image,
                        "decimals": args.decimals,
                    }
                    result = deploy_minter(ctx, account, metadata, offchain_uri=args.uri)
                elif args.command == "mint":
                    amount = parse_amount(args.amount, args.decimals)
                    result = mint(ctx, account, args.minter, args.to, amount)
                elif args.command == "burn":
                    amount = parse_amount(args.amount, args.decimals)
                    result = burn(ctx, account, args.minter, amount)
                elif args.command == "transfer":
                    result = transfer(
                        ctx,
                        account,
                        parse_amount(args.amount, args.decimals),
                        args.to,
                        args.master,
                        forward_amount=parse_amount(args.forward),
                        comment=args.comment,
                    )
                elif args.command == "change-admin":
                    result = change_admin(ctx, account, args.minter, args.new_owner)
                else:
                    result = update_metadata(ctx, account, args.minter, args.uri)

        print(json.dumps(result, indent=2, ensure_ascii=False))
    except TonAgentError as e:
        print(json.dumps(format_error(e), indent=2, ensure_ascii=False))
        sys.exit(1)


if __name__ == "__main__":
    main()
