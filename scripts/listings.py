#!/usr/bin/env python3
"""
TON Agent Kit — Чтение листингов NFT маркетплейса

Контракт листинга = текущий владелец NFT (get_nft_data).
Тип листинга определяется по длине ответа get_sale_data:
    11 элементов -> фиксированная цена
    20 элементов -> аукцион
Любая другая длина -> ListingDecodeError.

Usage:
    python listings.py info --nft EQ...
    python listings.py next-bid --nft EQ...
"""

import sys
import json
import time
import argparse
from pathlib import Path
from typing import Any, Dict, Optional

script_dir = Path(__file__).parent
sys.path.insert(0, str(script_dir))

from common import COMMON_EPILOG  # noqa: E402
from errors import (  # noqa: E402
    ListingDecodeError,
    TonAgentError,
    WrongListingKind,
    format_error,
    operation,
)
from rpc import StackReader, TonContext  # noqa: E402
from utils import address_key, get_logger, setup_logging  # noqa: E402

logger = get_logger("listings")

FIXED_PRICE_ARITY = 11
AUCTION_ARITY = 20

KIND_FIXED_PRICE = "fixed_price"
KIND_AUCTION = "auction"


# =============================================================================
# Decoding
# =============================================================================


def listing_kind(reply: StackReader) -> str:
    """Тип листинга по числу элементов ответа get_sale_data."""
    arity = len(reply)
    if arity == AUCTION_ARITY:
        return KIND_AUCTION
    if arity == FIXED_PRICE_ARITY:
        return KIND_FIXED_PRICE
    raise ListingDecodeError(
        f"Unexpected get_sale_data reply with {arity} entries "
        f"(expected {FIXED_PRICE_ARITY} or {AUCTION_ARITY})",
        arity=arity,
    )


def is_auction(reply: StackReader) -> bool:
    return listing_kind(reply) == KIND_AUCTION


def decode_fixed_price(reply: StackReader) -> Dict[str, Any]:
    if listing_kind(reply) != KIND_FIXED_PRICE:
        raise WrongListingKind("Not a fixed price listing")
    return {
        "magic": reply.read_int(),
        "is_complete": reply.read_bool(),
        "created_at": reply.read_int(),
        "marketplace": reply.read_address(),
        "nft": reply.read_address(),
        "owner": reply.read_address(),
        "full_price": reply.read_int(),
        "market_fee_address": reply.read_address(),
        "market_fee": reply.read_int(),
        "royalty_address": reply.read_address(),
        "royalty_amount": reply.read_int(),
    }


def decode_auction(reply: StackReader) -> Dict[str, Any]:
    if listing_kind(reply) != KIND_AUCTION:
        raise WrongListingKind("Not an auction listing")
    return {
        "magic": reply.read_int(),
        "end": reply.read_bool(),
        "end_time": reply.read_int(),
        "marketplace": reply.read_address(),
        "nft": reply.read_address(),
        "owner": reply.read_address(),
        "last_bid": reply.read_int(),
        "last_member": reply.read_address_opt(),
        "min_step": reply.read_int(),
        "market_fee_address": reply.read_address(),
        "mp_fee_factor": reply.read_int(),
        "mp_fee_base": reply.read_int(),
        "royalty_address": reply.read_address(),
        "royalty_fee_factor": reply.read_int(),
        "royalty_fee_base": reply.read_int(),
        "max_bid": reply.read_int(),
        "min_bid": reply.read_int(),
        "created_at": reply.read_int(),
        "last_bid_at": reply.read_int(),
        "is_canceled": reply.read_bool(),
    }


# =============================================================================
# Reading from the chain
# =============================================================================


def get_listing_address(ctx: TonContext, nft: Any) -> str:
    """Адрес контракта листинга: владелец NFT (4-й элемент get_nft_data)."""
    reply = ctx.client.run_get_method(nft, "get_nft_data")
    reply.skip(3)
    return reply.read_address()


def get_sale_data(ctx: TonContext, listing_address: Any) -> StackReader:
    return ctx.client.run_get_method(listing_address, "get_sale_data")


def get_listing(ctx: TonContext, nft: Any) -> Dict[str, Any]:
    """
    Текущее состояние листинга NFT. Всегда читается заново.

    Returns:
        Фиксированная цена: kind, listing_address, owner, full_price
        Аукцион: дополнительно min_bid, last_bid, max_bid, end_time, min_step;
        full_price = max_bid (цена выкупа)
    """
    with operation("get_listing", nft=address_key(nft)):
        listing_address = get_listing_address(ctx, nft)
        reply = get_sale_data(ctx, listing_address)

        if listing_kind(reply) == KIND_FIXED_PRICE:
            data = decode_fixed_price(reply)
            listing = {
                "kind": KIND_FIXED_PRICE,
                "listing_address": listing_address,
                "owner": data["owner"],
                "full_price": data["full_price"],
            }
        else:
            data = decode_auction(reply)
            listing = {
                "kind": KIND_AUCTION,
                "listing_address": listing_address,
                "owner": data["owner"],
                "full_price": data["max_bid"],
                "min_bid": data["min_bid"],
                "last_bid": data["last_bid"],
                "max_bid": data["max_bid"],
                "end_time": data["end_time"],
                "min_step": data["min_step"],
            }

    logger.debug("Listing %s: %s", listing_address, listing["kind"])
    return listing


# =============================================================================
# Listing helpers
# =============================================================================


def _require_auction(listing: Dict[str, Any]) -> None:
    if listing.get("kind") != KIND_AUCTION:
        raise WrongListingKind(
            "Not an auction listing", listing_address=listing.get("listing_address")
        )


def get_buy_price(listing: Dict[str, Any]) -> int:
    return listing["full_price"]


def get_min_bid(listing: Dict[str, Any]) -> int:
    _require_auction(listing)
    return listing["min_bid"]


def get_last_bid(listing: Dict[str, Any]) -> int:
    _require_auction(listing)
    return listing["last_bid"]


def next_valid_bid(listing: Dict[str, Any]) -> int:
    """min_bid, если ставок не было, иначе last_bid + last_bid * min_step // 100."""
    _require_auction(listing)
    last_bid = listing["last_bid"]
    if last_bid == 0:
        return listing["min_bid"]
    return last_bid + last_bid * listing["min_step"] // 100


def is_auction_ended(listing: Dict[str, Any], now: Optional[int] = None) -> bool:
    """Аукцион окончен строго после end_time."""
    _require_auction(listing)
    now = int(time.time()) if now is None else now
    return now > listing["end_time"]


# =============================================================================
# CLI
# =============================================================================


def main():
    parser = argparse.ArgumentParser(
        description="NFT marketplace listing reader",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=COMMON_EPILOG,
    )
    parser.add_argument("-v", "--verbose", action="store_true")
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    info_p = subparsers.add_parser("info", help="Show listing of an NFT")
    info_p.add_argument("--nft", required=True, help="NFT item address")

    bid_p = subparsers.add_parser("next-bid", help="Next valid bid of an auction")
    bid_p.add_argument("--nft", required=True, help="NFT item address")

    args = parser.parse_args()
    if not args.command:
        parser.print_help()
        return

    setup_logging(args.verbose)

    try:
        with TonContext.from_config() as ctx:
            listing = get_listing(ctx, args.nft)
            if args.command == "info":
                result = {"success": True, **listing}
                if listing["kind"] == KIND_AUCTION:
                    result["ended"] = is_auction_ended(listing)
            else:
                result = {
                    "success": True,
                    "listing_address": listing["listing_address"],
                    "next_bid": next_valid_bid(listing),
                }
        print(json.dumps(result, indent=2, ensure_ascii=False))
    except TonAgentError as e:
        print(json.dumps(format_error(e), indent=2, ensure_ascii=False))
        sys.exit(1)


if __name__ == "__main__":
    main()
