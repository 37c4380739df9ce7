#!/usr/bin/env python3
"""
TON Agent Kit — Переводы TON, жетонов и NFT

- Одиночные переводы TON и NFT
- Пакетный перевод: до 4 сообщений в одной подписанной транзакции
- Отчёт по каждому элементу: pending -> sent / failed

Ошибка одного элемента (адрес, сумма, jetton wallet) не останавливает
остальные: элемент помечается failed, пакет собирается без него.

Usage:
    python transfer.py ton --wallet main --to UQ... --amount 1.5 --comment "Thanks!"
    python transfer.py nft --wallet main --nft EQ... --to UQ...
    python transfer.py batch --wallet main --file transfers.json
"""

import sys
import json
import argparse
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

script_dir = Path(__file__).parent
sys.path.insert(0, str(script_dir))

from cells import comment_body, jetton_transfer_body, nft_transfer_body  # noqa: E402
from common import (  # noqa: E402
    COMMON_EPILOG,
    FEE_JETTON_TRANSFER,
    FEE_NFT_FORWARD,
    FEE_NFT_TRANSFER,
    MAX_MESSAGES_PER_TRANSFER,
    TON_DECIMALS,
    resolve_token_symbol,
)
from errors import TonAgentError, ValidationError, format_error, operation  # noqa: E402
from jetton import get_wallet_address  # noqa: E402
from rpc import TonContext  # noqa: E402
from transaction import (  # noqa: E402
    Account,
    internal_message,
    send_and_confirm,
    send_message,
)
from utils import address_key, get_logger, parse_amount, setup_logging  # noqa: E402
from wallet import load_account, resolve_password  # noqa: E402

logger = get_logger("transfer")

ITEM_TYPES = ("ton", "token", "nft")


# =============================================================================
# Single transfers
# =============================================================================


def transfer_ton(
    ctx: TonContext,
    account: Account,
    to: Any,
    amount: int,
    comment: Optional[str] = None,
    bounce: bool = True,
) -> Dict[str, Any]:
    """Перевод TON (amount в nanoTON) с необязательным комментарием."""
    if not isinstance(amount, int) or amount <= 0:
        raise ValidationError(f"Amount must be a positive integer, got {amount!r}")

    with operation("ton_transfer", to=address_key(to), amount=amount):
        receipt = send_message(
            ctx,
            account,
            to,
            amount,
            comment_body(comment) if comment else None,
            bounce=bounce,
        )
    return {"success": True, "to": address_key(to), "amount": amount, "receipt": receipt}


def transfer_nft(
    ctx: TonContext,
    account: Account,
    nft: Any,
    to: Any,
    forward_amount: int = FEE_NFT_FORWARD,
) -> Dict[str, Any]:
    """Передача NFT: сообщение на контракт NFT, excesses возвращаются отправителю."""
    body = nft_transfer_body(to, account.address, forward_amount)
    with operation("nft_transfer", nft=address_key(nft), to=address_key(to)):
        receipt = send_message(ctx, account, nft, FEE_NFT_TRANSFER + forward_amount, body)
    return {"success": True, "nft": address_key(nft), "to": address_key(to), "receipt": receipt}


# =============================================================================
# Batch transfers
# =============================================================================


def _dedup_key(address: Any) -> str:
    """address_key, а для невалидного адреса сама строка."""
    try:
        return address_key(address)
    except ValueError:
        return str(address)


def deduplicate_items(items: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """
    Убирает повторы:
    - один TON перевод на получателя (адрес сравнивается в любом формате)
    - один перевод жетона на master
    - один перевод на NFT
    - получатель не получает и жетон, и NFT в одном пакете
    """
    seen = set()
    asset_recipients = set()
    result = []

    for item in items:
        kind = item.get("type")
        to = _dedup_key(item.get("to", ""))
        if kind == "ton":
            key = ("ton", to)
        elif kind == "token":
            key = ("token", _dedup_key(item.get("master")))
        elif kind == "nft":
            key = ("nft", _dedup_key(item.get("nft")))
        else:
            result.append(item)
            continue

        if key in seen:
            continue
        if kind in ("token", "nft"):
            if to in asset_recipients:
                continue
            asset_recipients.add(to)
        seen.add(key)
        result.append(item)

    return result


def build_item_message(
    ctx: TonContext, account: Account, item: Dict[str, Any]
) -> Dict[str, Any]:
    """
    Внутреннее сообщение для элемента пакета.

    Item:
        {"type": "ton", "to": ..., "amount": nano, "comment": "..."}
        {"type": "token", "to": ..., "amount": units, "master": ..., "comment": "..."}
        {"type": "nft", "to": ..., "nft": ...}
    """
    kind = item.get("type")
    if kind not in ITEM_TYPES:
        raise ValidationError(f"Unknown transfer type: {kind!r}")
    if not item.get("to"):
        raise ValidationError("Recipient address is required")
    to = item["to"]
    comment = item.get("comment")

    if kind == "ton":
        amount = item.get("amount")
        if not isinstance(amount, int) or amount <= 0:
            raise ValidationError("Amount is required for TON transfers")
        return internal_message(to, amount, comment_body(comment) if comment else None)

    if kind == "token":
        amount = item.get("amount")
        if not item.get("master"):
            raise ValidationError("Jetton master is required for token transfers")
        if not isinstance(amount, int) or amount <= 0:
            raise ValidationError("Amount is required for token transfers")
        forward = item.get("forward_amount", 0)
        jetton_wallet = get_wallet_address(ctx, item["master"], account.address)
        body = jetton_transfer_body(
            amount,
            to,
            response_address=account.address,
            forward_ton_amount=forward,
            forward_payload=comment_body(comment) if comment else None,
        )
        return internal_message(jetton_wallet, FEE_JETTON_TRANSFER + forward, body)

    if not item.get("nft"):
        raise ValidationError("NFT address is required for NFT transfers")
    body = nft_transfer_body(to, account.address, FEE_NFT_FORWARD)
    return internal_message(item["nft"], FEE_NFT_TRANSFER + FEE_NFT_FORWARD, body)


def _report_entry(item: Dict[str, Any]) -> Dict[str, Any]:
    entry = {"type": item.get("type"), "to": item.get("to"), "status": "pending"}
    for key in ("amount", "master", "nft"):
        if item.get(key) is not None:
            entry[key] = item[key]
    return entry


def batch_transfer(
    ctx: TonContext, account: Account, items: List[Dict[str, Any]]
) -> Dict[str, Any]:
    """
    Пакетный перевод. Сообщения режутся на транзакции по 4.

    Returns:
        dict: success (все элементы отправлены), report (по элементу), receipts
    """
    items = deduplicate_items(items)
    report = [_report_entry(item) for item in items]

    built: List[Tuple[int, Dict[str, Any]]] = []
    for index, item in enumerate(items):
        try:
            built.append((index, build_item_message(ctx, account, item)))
        except TonAgentError as e:
            logger.warning("Transfer item %d skipped: %s", index, e)
            report[index].update(status="failed", error=str(e))

    receipts = []
    for start in range(0, len(built), MAX_MESSAGES_PER_TRANSFER):
        chunk = built[start : start + MAX_MESSAGES_PER_TRANSFER]
        try:
            receipt = send_and_confirm(ctx, account, [message for _, message in chunk])
        except TonAgentError as e:
            logger.error("Batch chunk of %d messages failed: %s", len(chunk), e)
            for index, _ in chunk:
                report[index].update(status="failed", error=str(e))
            continue
        receipts.append(receipt)
        for index, _ in chunk:
            report[index].update(status="sent", seqno=receipt["seqno"])

    return {
        "success": bool(report) and all(r["status"] == "sent" for r in report),
        "report": report,
        "receipts": receipts,
    }


def parse_batch_file(path: str) -> List[Dict[str, Any]]:
    """
    JSON файл: список элементов с суммами в целых единицах ("1.5" TON).
    Для token можно указать "decimals" (по умолчанию 9) и символ вместо master.
    """
    with open(path, "r") as f:
        raw = json.load(f)
    if isinstance(raw, dict):
        raw = [raw]

    items = []
    for entry in raw:
        item = dict(entry)
        if item.get("amount") is not None:
            item["amount"] = parse_amount(
                item["amount"], int(item.pop("decimals", TON_DECIMALS))
            )
        if item.get("master"):
            item["master"] = resolve_token_symbol(item["master"])
        items.append(item)
    return items


# =============================================================================
# CLI
# =============================================================================


def main():
    parser = argparse.ArgumentParser(
        description="TON, jetton and NFT transfers",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=COMMON_EPILOG,
    )
    parser.add_argument("--password", "-p", help="Wallet password (or WALLET_PASSWORD env)")
    parser.add_argument("--verbose", action="store_true")
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    ton_p = subparsers.add_parser("ton", help="Transfer TON")
    ton_p.add_argument("--wallet", "-w", help="Sender wallet (label or address)")
    ton_p.add_argument("--to", "-t", required=True, help="Recipient address")
    ton_p.add_argument("--amount", "-a", required=True, help="Amount in TON")
    ton_p.add_argument("--comment", "-c", help="Transfer comment")

    nft_p = subparsers.add_parser("nft", help="Transfer NFT")
    nft_p.add_argument("--wallet", "-w", help="Sender wallet")
    nft_p.add_argument("--nft", required=True, help="NFT item address")
    nft_p.add_argument("--to", "-t", required=True, help="New owner")

    batch_p = subparsers.add_parser("batch", help="Batch transfer from a JSON file")
    batch_p.add_argument("--wallet", "-w", help="Sender wallet")
    batch_p.add_argument("--file", required=True, help="JSON list of transfer items")

    args = parser.parse_args()
    if not args.command:
        parser.print_help()
        return

    setup_logging(args.verbose)

    try:
        account = load_account(args.wallet, resolve_password(args.password))
        with TonContext.from_config() as ctx:
            if args.command == "ton":
                result = transfer_ton(
                    ctx, account, args.to, parse_amount(args.amount), args.comment
                )
            elif args.command == "nft":
                result = transfer_nft(ctx, account, args.nft, args.to)
            else:
                result = batch_transfer(ctx, account, parse_batch_file(args.file))

        print(json.dumps(result, indent=2, ensure_ascii=False))
        if not result.get("success", False):
            sys.exit(1)
    except TonAgentError as e:
        print(json.dumps(format_error(e), indent=2, ensure_ascii=False))
        sys.exit(1)
    except (OSError, ValueError) as e:
        print(json.dumps(format_error(e), indent=2, ensure_ascii=False))
        sys.exit(1)


if __name__ == "__main__":
    main()
