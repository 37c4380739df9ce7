#!/usr/bin/env python3
"""
TON Agent Kit — Операции NFT маркетплейса

- buy: полная цена + 1 TON газа на контракт листинга
- cancel: op 1 (аукцион) / op 3 (фиксированная цена), 0.2 TON
- bid: ставка + 0.1 TON, с проверками до отправки

Листинг каждый раз читается заново. Ошибки листинга не ретраятся.

Usage:
    python market.py buy --wallet main --nft EQ...
    python market.py bid --wallet main --nft EQ... --amount 12.5
    python market.py cancel --wallet main --nft EQ...
"""

import sys
import json
import time
import argparse
from pathlib import Path
from typing import Any, Dict, Optional

script_dir = Path(__file__).parent
sys.path.insert(0, str(script_dir))

from cells import listing_cancel_body  # noqa: E402
from common import (  # noqa: E402
    BID_GAS_MARGIN,
    BUY_GAS_MARGIN,
    CANCEL_GAS,
    COMMON_EPILOG,
    format_ton_amount,
)
from errors import (  # noqa: E402
    AuctionEnded,
    BidTooLow,
    TonAgentError,
    ValidationError,
    WrongListingKind,
    format_error,
    operation,
)
from listings import (  # noqa: E402
    KIND_AUCTION,
    get_listing,
    is_auction_ended,
    next_valid_bid,
)
from rpc import TonContext  # noqa: E402
from transaction import Account, send_message  # noqa: E402
from utils import address_key, get_logger, parse_amount, setup_logging  # noqa: E402
from wallet import load_account, resolve_password  # noqa: E402

logger = get_logger("market")


def buy(ctx: TonContext, account: Account, nft: Any) -> Dict[str, Any]:
    """Покупка по цене листинга (для аукциона это max_bid)."""
    with operation("buy", nft=address_key(nft)):
        listing = get_listing(ctx, nft)
        price = listing["full_price"]
        with operation("buy", listing=listing["listing_address"], price=price):
            receipt = send_message(
                ctx, account, listing["listing_address"], price + BUY_GAS_MARGIN
            )

    logger.info("Buy sent for %s at %s", listing["listing_address"], format_ton_amount(price))
    return {
        "success": True,
        "nft": address_key(nft),
        "listing_address": listing["listing_address"],
        "price": price,
        "receipt": receipt,
    }


def cancel(ctx: TonContext, account: Account, nft: Any) -> Dict[str, Any]:
    """Снятие листинга владельцем."""
    with operation("cancel_listing", nft=address_key(nft)):
        listing = get_listing(ctx, nft)
        body = listing_cancel_body(listing["kind"] == KIND_AUCTION)
        with operation("cancel_listing", listing=listing["listing_address"]):
            receipt = send_message(
                ctx, account, listing["listing_address"], CANCEL_GAS, body
            )

    return {
        "success": True,
        "nft": address_key(nft),
        "listing_address": listing["listing_address"],
        "kind": listing["kind"],
        "receipt": receipt,
    }


def bid(
    ctx: TonContext,
    account: Account,
    nft: Any,
    amount: Optional[int] = None,
    now: Optional[int] = None,
) -> Dict[str, Any]:
    """
    Ставка на аукционе.

    Args:
        amount: Ставка в nanoTON. None = следующая допустимая ставка.
        now: Текущее время (unix), по умолчанию time.time()

    Raises:
        WrongListingKind: листинг с фиксированной ценой
        AuctionEnded: now > end_time
        BidTooLow: amount < min_bid
    """
    if amount is not None and (not isinstance(amount, int) or amount <= 0):
        raise ValidationError(f"Bid amount must be a positive integer, got {amount!r}")

    with operation("bid", nft=address_key(nft), amount=amount):
        listing = get_listing(ctx, nft)
        if listing["kind"] != KIND_AUCTION:
            raise WrongListingKind(
                "Cannot bid on a fixed-price listing, use buy instead",
                listing=listing["listing_address"],
            )

        now = int(time.time()) if now is None else now
        if is_auction_ended(listing, now):
            raise AuctionEnded(
                "Auction has already ended",
                listing=listing["listing_address"],
                end_time=listing["end_time"],
            )

        if amount is None:
            amount = next_valid_bid(listing)
        if amount < listing["min_bid"]:
            raise BidTooLow(
                f"Bid too low. Minimum bid is {format_ton_amount(listing['min_bid'])}",
                listing=listing["listing_address"],
                min_bid=listing["min_bid"],
            )

        with operation("bid", listing=listing["listing_address"], amount=amount):
            receipt = send_message(
                ctx, account, listing["listing_address"], amount + BID_GAS_MARGIN
            )

    return {
        "success": True,
        "nft": address_key(nft),
        "listing_address": listing["listing_address"],
        "bid": amount,
        "receipt": receipt,
    }


# =============================================================================
# CLI
# =============================================================================


def main():
    parser = argparse.ArgumentParser(
        description="NFT marketplace operations",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=COMMON_EPILOG,
    )
    parser.add_argument("--password", "-p", help="Wallet password")
    parser.add_argument("--verbose", action="store_true")
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    for name, help_text in (
        ("buy", "Buy a listed NFT"),
        ("cancel", "Cancel own listing"),
        ("bid", "Bid on an auction"),
    ):
        p = subparsers.add_parser(name, help=help_text)
        p.add_argument("--wallet", "-w", help="Wallet label or address")
        p.add_argument("--nft", required=True, help="NFT item address")
        if name == "bid":
            p.add_argument("--amount", help="Bid in TON (default: next valid bid)")

    args = parser.parse_args()
    if not args.command:
        parser.print_help()
        return

    setup_logging(args.verbose)

    try:
        account = load_account(args.wallet, resolve_password(args.password))
        with TonContext.from_config() as ctx:
            if args.command == "buy":
                result = buy(ctx, account, args.nft)
            elif args.command == "cancel":
                result = cancel(ctx, account, args.nft)
            else:
                amount = parse_amount(args.amount) if args.amount else None
                result = bid(ctx, account, args.nft, amount)
        print(json.dumps(result, indent=2, ensure_ascii=False))
    except TonAgentError as e:
        print(json.dumps(format_error(e), indent=2, ensure_ascii=False))
        sys.exit(1)


if __name__ == "__main__":
    main()
