"""
Pytest configuration and shared fixtures for ton-agent-kit tests.

FakeLedger stands in for TonApiClient: get-methods are served from a
per-test table, sent transfers are recorded and (by default) confirmed
immediately by advancing the wallet seqno.
"""

import sys
import json
import hashlib
import threading
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
from tonsdk.boc import Cell

sys.path.insert(0, str(Path(__file__).parent.parent / "scripts"))

import transaction  # noqa: E402
from cells import cell_to_hex, store_fields  # noqa: E402
from errors import MethodUnavailable, RpcError, SubmitFailed  # noqa: E402
from rpc import StackReader, TonContext  # noqa: E402
from transaction import Account  # noqa: E402
from utils import address_key  # noqa: E402


# =============================================================================
# Test Data
# =============================================================================

# Raw addresses used by ledger tests
WALLET = "0:" + "11" * 32
RECIPIENT = "0:" + "22" * 32
MINTER = "0:" + "33" * 32
JETTON_WALLET = "0:" + "44" * 32
NFT = "0:" + "55" * 32
LISTING = "0:" + "66" * 32
MARKETPLACE = "0:" + "77" * 32
OTHER_MINTER = "0:" + "88" * 32


def raw(n: int) -> str:
    """Raw address with a repeated byte, for tests that need many addresses."""
    return "0:" + f"{n:02x}" * 32


# =============================================================================
# Stack helpers (TonAPI get-method reply items)
# =============================================================================


def num(value: int) -> dict:
    return {"type": "num", "num": hex(value)}


def cell_item(cell: Cell) -> dict:
    return {"type": "cell", "cell": cell_to_hex(cell)}


def addr(address) -> dict:
    """Address as a slice item; None -> addr_none."""
    return {
        "type": "slice",
        "slice": cell_to_hex(store_fields(Cell(), [("address", address)])),
    }


def null() -> dict:
    return {"type": "null"}


def nft_data_stack(owner) -> list:
    """get_nft_data: init?, index, collection, owner, content."""
    return [num(-1), num(1), addr(MARKETPLACE), addr(owner), cell_item(Cell())]


def fixed_price_stack(full_price: int, owner=WALLET) -> list:
    """get_sale_data of a fixed-price listing (11 entries)."""
    return [
        num(0x46495850),
        num(0),
        num(1_700_000_000),
        addr(MARKETPLACE),
        addr(NFT),
        addr(owner),
        num(full_price),
        addr(MARKETPLACE),
        num(full_price // 20),
        addr(RECIPIENT),
        num(full_price // 10),
    ]


def auction_stack(
    min_bid: int,
    last_bid: int = 0,
    min_step: int = 5,
    end_time: int = 1_800_000_000,
    max_bid: int = 100_000_000_000,
    owner=WALLET,
) -> list:
    """get_sale_data of an auction listing (20 entries)."""
    return [
        num(0x415543),
        num(0),
        num(end_time),
        addr(MARKETPLACE),
        addr(NFT),
        addr(owner),
        num(last_bid),
        addr(RECIPIENT) if last_bid else addr(None),
        num(min_step),
        addr(MARKETPLACE),
        num(5),
        num(100),
        addr(RECIPIENT),
        num(5),
        num(100),
        num(max_bid),
        num(min_bid),
        num(1_700_000_000),
        num(1_700_000_100 if last_bid else 0),
        num(0),
    ]


# =============================================================================
# Fake ledger
# =============================================================================


def fake_build_transfer(account, messages, seqno, send_mode=3):
    """Readable stand-in for a signed external message (no keys needed)."""
    if len(messages) > transaction.MAX_MESSAGES_PER_TRANSFER:
        raise transaction.EncodingError("Too many messages")
    payload = {
        "from": account.key,
        "seqno": seqno,
        "send_mode": send_mode,
        "messages": [
            {
                "to": address_key(m["to"]),
                "value": m["value"],
                "bounce": m["bounce"],
                "body": cell_to_hex(m["body"]) if m["body"] is not None else None,
                "state_init": m["state_init"] is not None,
            }
            for m in messages
        ],
    }
    boc = json.dumps(payload).encode()
    return {"boc": boc, "hash": hashlib.sha256(boc).hexdigest(), "seqno": seqno}


class FakeLedger:
    """In-memory chain behind the TonApiClient interface."""

    def __init__(self):
        self.seqnos = {}
        self.states = {}
        self.methods = {}
        self.sent = []
        self.last_tx = {}
        self.used_seqnos = set()
        self.auto_confirm = True
        self.reject_reused_seqno = True
        self.on_send = None
        self.seqno_errors = 0
        self.calls = []
        self._lock = threading.Lock()

    # --- setup -------------------------------------------------------------

    def set_method(self, address, method, handler):
        """handler: list of stack items or callable(*args) -> list."""
        self.methods[(address_key(address), method)] = handler

    def set_state(self, address, state="active"):
        self.states[address_key(address)] = state

    def messages(self):
        return [m for transfer in self.sent for m in transfer["messages"]]

    # --- client interface --------------------------------------------------

    def run_get_method(self, address, method, args=()):
        key = (address_key(address), method)
        self.calls.append(key)
        if key not in self.methods:
            raise MethodUnavailable(
                f"Get method '{method}' is unavailable", address=key[0]
            )
        handler = self.methods[key]
        stack = handler(*args) if callable(handler) else handler
        return StackReader(stack, method=method)

    def get_seqno(self, address):
        with self._lock:
            if self.seqno_errors:
                self.seqno_errors -= 1
                raise RpcError("Gateway timeout", status_code=504)
            return self.seqnos.get(address_key(address), 0)

    def send_boc(self, boc):
        transfer = json.loads(boc)
        wallet = transfer["from"]
        with self._lock:
            if self.reject_reused_seqno and (wallet, transfer["seqno"]) in self.used_seqnos:
                raise SubmitFailed("Node rejected the message: seqno already used")
            self.used_seqnos.add((wallet, transfer["seqno"]))
            self.sent.append(transfer)
            if self.auto_confirm:
                self.confirm(wallet, boc)
        if self.on_send is not None:
            self.on_send(transfer)

    def confirm(self, wallet, boc=b""):
        self.seqnos[wallet] = self.seqnos.get(wallet, 0) + 1
        self.last_tx[wallet] = {
            "hash": hashlib.sha256(b"tx" + boc).hexdigest(),
            "in_msg": {"hash": hashlib.sha256(boc).hexdigest()},
        }

    def get_account_state(self, address):
        return self.states.get(address_key(address), "nonexist")

    def get_last_transaction(self, address):
        return self.last_tx.get(address_key(address))

    def close(self):
        pass


@pytest.fixture
def ledger(monkeypatch):
    monkeypatch.setattr(transaction, "build_transfer", fake_build_transfer)
    return FakeLedger()


@pytest.fixture
def config():
    return {
        "network": "testnet",
        "confirm": {"poll_interval": 0, "max_polls": 3, "verify_hash": True},
        "dex": {},
    }


@pytest.fixture
def ctx(ledger, config):
    return TonContext(ledger, config, sleep=lambda seconds: None)


@pytest.fixture
def account():
    """Account with placeholder keys (transfers are built by fake_build_transfer)."""
    return Account(WALLET, wallet=object(), label="test")


# =============================================================================
# Fixtures - Mock TonAPI
# =============================================================================


@pytest.fixture
def mock_tonapi():
    """Mock TonAPI responses."""
    with patch("requests.Session.request") as mock_request:
        mock_response = MagicMock()
        mock_response.ok = True
        mock_response.status_code = 200
        mock_response.json.return_value = {"status": "active", "seqno": 7}
        mock_request.return_value = mock_response
        yield mock_request


@pytest.fixture
def mock_tonapi_error():
    """Mock TonAPI error responses."""
    with patch("requests.Session.request") as mock_request:
        mock_response = MagicMock()
        mock_response.ok = False
        mock_response.status_code = 500
        mock_response.json.return_value = {"error": "Internal Server Error"}
        mock_response.reason = "Internal Server Error"
        mock_request.return_value = mock_response
        yield mock_request


@pytest.fixture
def mock_tonapi_timeout():
    """Mock TonAPI timeout."""
    import requests

    with patch("requests.Session.request") as mock_request:
        mock_request.side_effect = requests.exceptions.Timeout("Connection timed out")
        yield mock_request


# =============================================================================
# Test Categories (markers)
# =============================================================================


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "security: Security-related tests (critical)")
    config.addinivalue_line("markers", "slow: Slow tests (skip with -m 'not slow')")
    config.addinivalue_line(
        "markers", "integration: Integration tests requiring network"
    )
    config.addinivalue_line("markers", "wallet: Wallet module tests")
    config.addinivalue_line("markers", "cells: Cell codec tests")
    config.addinivalue_line("markers", "protocol: Transaction protocol tests")
    config.addinivalue_line("markers", "market: Marketplace tests")
    config.addinivalue_line("markers", "tokens: Jetton and transfer tests")
    config.addinivalue_line("markers", "dex: DEX liquidity tests")
    config.addinivalue_line("markers", "utils: Utils module tests")


# =============================================================================
# Pytest Hooks
# =============================================================================

MARKERS_BY_FILE = {
    "test_wallet": "wallet",
    "test_utils": "utils",
    "test_errors": "utils",
    "test_rpc": "protocol",
    "test_cells": "cells",
    "test_transaction": "protocol",
    "test_listings": "market",
    "test_market": "market",
    "test_jetton": "tokens",
    "test_transfer": "tokens",
    "test_dex": "dex",
}


def pytest_collection_modifyitems(config, items):
    """Modify test collection to add markers based on test location."""
    for item in items:
        for name, marker in MARKERS_BY_FILE.items():
            if name in str(item.fspath):
                item.add_marker(getattr(pytest.mark, marker))

        if "security" in item.name.lower() or "sec" in item.name.lower():
            item.add_marker(pytest.mark.security)
