"""
Unit tests for utils.py module.

Run with: pytest tests/test_utils.py -v
"""

import base64
import json
import logging
import sys
from decimal import Decimal
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
from tonsdk.utils import Address

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "scripts"))

from errors import ValidationError  # noqa: E402
from utils import (  # noqa: E402
    # Encryption
    encrypt_data,
    decrypt_data,
    encrypt_json,
    decrypt_json,
    derive_key,
    # Config
    load_config,
    save_config,
    lookup,
    get_config_value,
    set_config_value,
    get_tonapi_key,
    # Logging
    setup_logging,
    get_logger,
    # Amounts
    parse_amount,
    # Addresses
    raw_to_friendly,
    friendly_to_raw,
    is_valid_address,
    address_key,
    same_address,
    # HTTP
    create_http_session,
    api_request,
    tonapi_request,
)


# =============================================================================
# Test Data
# =============================================================================

VALID_RAW_ADDRESS = "0:4e95324902a9671fa85343288b17ad6c45d93b2e2849166cc8f3aa1e9e0a0472"
ETH_ADDRESS = "0x742d35Cc6634C0532925a3b844Bc9e7595f8fE2d"


@pytest.fixture
def temp_config(tmp_path, monkeypatch):
    """Use temporary directory for config during tests."""
    skill_dir = tmp_path / "ton-agent"
    config_file = skill_dir / "config.json"
    monkeypatch.setattr("utils.SKILL_DIR", skill_dir)
    monkeypatch.setattr("utils.CONFIG_FILE", config_file)
    monkeypatch.delenv("TONAPI_KEY", raising=False)
    return config_file


# =============================================================================
# Encryption Tests
# =============================================================================


class TestEncryption:
    """Tests for AES-256 encryption of the wallet store."""

    def test_roundtrip(self):
        encrypted = encrypt_data(b"secret_data_to_encrypt", "strong_password_123")
        assert b"secret_data_to_encrypt" not in encrypted
        assert decrypt_data(encrypted, "strong_password_123") == b"secret_data_to_encrypt"

    def test_empty_data(self):
        assert decrypt_data(encrypt_data(b"", "test"), "test") == b""

    def test_random_salt(self):
        """Same input encrypts differently every time."""
        assert encrypt_data(b"secret", "test") != encrypt_data(b"secret", "test")

    def test_wrong_password_fails(self):
        encrypted = encrypt_data(b"secret", "correct_password")
        with pytest.raises(Exception):  # ValueError or padding error
            decrypt_data(encrypted, "wrong_password")

    def test_too_short_fails(self):
        with pytest.raises(ValueError):
            decrypt_data(b"short", "any_password")

    def test_unicode_password(self):
        password = "пароль🔐密码"
        assert decrypt_data(encrypt_data(b"secret", password), password) == b"secret"

    def test_derive_key(self):
        salt = b"0123456789abcdef"
        assert derive_key("pw", salt) == derive_key("pw", salt)
        assert len(derive_key("pw", salt)) == 32
        assert derive_key("pw", salt) != derive_key("pw", b"fedcba9876543210")

    def test_json_roundtrip(self):
        original = {"wallets": [{"label": "main", "mnemonic": "a b c"}], "версия": 1}
        encrypted = encrypt_json(original, "test123")

        assert isinstance(encrypted, str)
        base64.b64decode(encrypted)
        assert decrypt_json(encrypted, "test123") == original


# =============================================================================
# Config Manager Tests
# =============================================================================


class TestConfigManager:
    """Tests for configuration management."""

    def test_defaults(self, temp_config):
        config = load_config()

        assert config["network"] == "mainnet"
        assert config["confirm"] == {
            "poll_interval": 2,
            "max_polls": 10,
            "verify_hash": True,
        }
        assert config["dex"] == {}

    def test_partial_config_is_merged_deeply(self, temp_config):
        save_config({"tonapi_key": "my_key", "confirm": {"max_polls": 30}})

        config = load_config()

        assert config["tonapi_key"] == "my_key"
        assert config["confirm"]["max_polls"] == 30
        assert config["confirm"]["poll_interval"] == 2
        assert config["rpc"]["retries"] == 3

    def test_corrupted_config_returns_defaults(self, temp_config):
        temp_config.parent.mkdir(parents=True, exist_ok=True)
        temp_config.write_text("not valid json {{{")

        assert load_config()["network"] == "mainnet"

    def test_config_file_is_json(self, temp_config):
        save_config({"key": "value"})
        assert json.loads(temp_config.read_text())["key"] == "value"

    def test_get_and_set_dot_notation(self, temp_config):
        set_config_value("dex.dedust.factory", VALID_RAW_ADDRESS)

        assert get_config_value("dex.dedust.factory") == VALID_RAW_ADDRESS
        assert load_config()["dex"] == {"dedust": {"factory": VALID_RAW_ADDRESS}}

    def test_set_overwrites_scalar_with_dict(self, temp_config):
        set_config_value("network", "testnet")
        set_config_value("network.extra", 1)
        assert get_config_value("network") == {"extra": 1}

    @pytest.mark.parametrize(
        "key,expected",
        [
            ("confirm.max_polls", 10),
            ("confirm.missing", "fallback"),
            ("a.b.c.d", "fallback"),
            ("network.x", "fallback"),
        ],
    )
    def test_lookup(self, key, expected):
        config = {"network": "mainnet", "confirm": {"max_polls": 10}}
        assert lookup(config, key, "fallback") == expected

    def test_tonapi_key_env_overrides_config(self, monkeypatch):
        monkeypatch.setenv("TONAPI_KEY", "from_env")
        assert get_tonapi_key({"tonapi_key": "from_config"}) == "from_env"

    def test_tonapi_key_missing(self, monkeypatch):
        monkeypatch.delenv("TONAPI_KEY", raising=False)
        assert get_tonapi_key({"tonapi_key": ""}) is None


# =============================================================================
# Logging
# =============================================================================


class TestLogging:
    def test_child_loggers_share_root(self):
        assert get_logger("dex").name == "ton-agent.dex"

    def test_setup_is_idempotent(self):
        logger = setup_logging()
        count = len(logger.handlers)
        setup_logging(verbose=True)

        assert len(logger.handlers) == count
        assert logger.level == logging.DEBUG


# =============================================================================
# Amount parsing
# =============================================================================


class TestParseAmount:
    @pytest.mark.parametrize(
        "value,decimals,expected",
        [
            ("1.5", 9, 1_500_000_000),
            ("0.000000001", 9, 1),
            (2, 9, 2_000_000_000),
            (Decimal("0.05"), 9, 50_000_000),
            ("100", 6, 100_000_000),
            ("0", 9, 0),
            (0.1, 9, 100_000_000),
        ],
    )
    def test_valid(self, value, decimals, expected):
        result = parse_amount(value, decimals)
        assert result == expected
        assert isinstance(result, int)

    @pytest.mark.parametrize("value", ["-1", "abc", "", "NaN", "Infinity", "1.0000000001"])
    def test_invalid(self, value):
        with pytest.raises(ValidationError):
            parse_amount(value)

    def test_decimals_limit_precision(self):
        assert parse_amount("1.23", 2) == 123
        with pytest.raises(ValidationError, match="decimal places"):
            parse_amount("1.234", 2)


# =============================================================================
# Address Tests
# =============================================================================


class TestAddressFormatting:
    """Tests for TON address formatting utilities."""

    def test_raw_friendly_roundtrip(self):
        friendly = raw_to_friendly(VALID_RAW_ADDRESS)

        assert len(friendly) == 48
        assert friendly.startswith("EQ")
        assert friendly_to_raw(friendly) == VALID_RAW_ADDRESS

    def test_non_bounceable_and_testnet_tags(self):
        assert raw_to_friendly(VALID_RAW_ADDRESS, bounceable=False).startswith("UQ")
        assert raw_to_friendly(VALID_RAW_ADDRESS, testnet=True)[0] in ["k", "0"]

    def test_masterchain(self):
        raw = "-1:" + VALID_RAW_ADDRESS.split(":")[1]
        assert friendly_to_raw(raw_to_friendly(raw)) == raw

    @pytest.mark.parametrize(
        "raw", ["invalid_address", VALID_RAW_ADDRESS.split(":")[1], "0:abc123"]
    )
    def test_raw_to_friendly_invalid(self, raw):
        with pytest.raises(ValueError):
            raw_to_friendly(raw)

    def test_friendly_to_raw_bad_checksum(self):
        friendly = raw_to_friendly(VALID_RAW_ADDRESS)
        corrupted = friendly[:-1] + ("A" if friendly[-1] != "A" else "B")

        with pytest.raises(ValueError):
            friendly_to_raw(corrupted)


class TestAddressKey:
    """Address equality is structural, independent of the text format."""

    def test_all_formats_share_a_key(self):
        formats = [
            VALID_RAW_ADDRESS,
            VALID_RAW_ADDRESS.upper(),
            raw_to_friendly(VALID_RAW_ADDRESS),
            raw_to_friendly(VALID_RAW_ADDRESS, bounceable=False),
            raw_to_friendly(VALID_RAW_ADDRESS, testnet=True),
            Address(VALID_RAW_ADDRESS),
        ]
        assert {address_key(a) for a in formats} == {VALID_RAW_ADDRESS}

    def test_0x_prefixed_hash(self):
        wc, hash_hex = VALID_RAW_ADDRESS.split(":")
        assert address_key(f"{wc}:0x{hash_hex}") == VALID_RAW_ADDRESS

    def test_same_address(self):
        assert same_address(VALID_RAW_ADDRESS, raw_to_friendly(VALID_RAW_ADDRESS))
        assert not same_address(VALID_RAW_ADDRESS, "0:" + "00" * 32)

    def test_different_workchain_differs(self):
        hash_hex = VALID_RAW_ADDRESS.split(":")[1]
        assert not same_address(f"0:{hash_hex}", f"-1:{hash_hex}")

    @pytest.mark.parametrize("address", ["not_an_address", "", ETH_ADDRESS, "0:zz"])
    def test_invalid(self, address):
        assert is_valid_address(address) is False
        with pytest.raises(ValueError):
            address_key(address)


# =============================================================================
# HTTP Client Tests
# =============================================================================


class TestHttpClient:
    """Tests for HTTP client with retry logic."""

    def test_session_has_retry_adapters(self):
        import requests

        session = create_http_session(retries=5)

        assert isinstance(session, requests.Session)
        assert session.adapters["https://"].max_retries.total == 5
        assert "http://" in session.adapters

    @patch("requests.Session.request")
    def test_get_success(self, mock_request):
        mock_request.return_value = MagicMock(
            ok=True, status_code=200, json=lambda: {"seqno": 3}
        )

        result = api_request("https://api.example.com/test")

        assert result == {"success": True, "data": {"seqno": 3}, "status_code": 200}

    @patch("requests.Session.request")
    def test_api_key_header(self, mock_request):
        mock_request.return_value = MagicMock(ok=True, status_code=200, json=lambda: {})

        api_request("https://api.example.com/test", api_key="my_secret_key")

        headers = mock_request.call_args[1]["headers"]
        assert headers["Authorization"] == "Bearer my_secret_key"

    @patch("requests.Session.request")
    def test_post_json(self, mock_request):
        mock_request.return_value = MagicMock(ok=True, status_code=200, json=lambda: {})

        api_request(
            "https://api.example.com/message", method="post", json_data={"boc": "te6"}
        )

        call_kwargs = mock_request.call_args[1]
        assert call_kwargs["method"] == "POST"
        assert call_kwargs["json"] == {"boc": "te6"}

    @patch("requests.Session.request")
    def test_error_response(self, mock_request):
        mock_request.return_value = MagicMock(
            ok=False,
            status_code=404,
            json=lambda: {"error": "entity not found"},
            reason="Not Found",
        )

        result = api_request("https://api.example.com/missing")

        assert result["success"] is False
        assert result["status_code"] == 404
        assert result["error"] == {"error": "entity not found"}

    @pytest.mark.parametrize(
        "exc_name,message", [("Timeout", "timeout"), ("ConnectionError", "connection")]
    )
    def test_transport_errors(self, exc_name, message):
        import requests

        with patch("requests.Session.request") as mock_request:
            mock_request.side_effect = getattr(requests.exceptions, exc_name)()
            result = api_request("https://api.example.com/slow")

        assert result["success"] is False
        assert result["status_code"] is None
        assert message in result["error"].lower()


class TestTonApiRequest:
    """Tests for TonAPI-specific request wrapper."""

    @patch("utils.api_request")
    def test_uses_config_key_and_network(self, mock_api_request, monkeypatch):
        monkeypatch.delenv("TONAPI_KEY", raising=False)
        mock_api_request.return_value = {"success": True, "data": {}}
        config = {
            "tonapi_key": "test_api_key",
            "network": "testnet",
            "rpc": {"timeout": 7, "retries": 1},
        }

        tonapi_request("/wallet/0:ab/seqno", config=config)

        call_kwargs = mock_api_request.call_args[1]
        assert call_kwargs["api_key"] == "test_api_key"
        assert call_kwargs["url"] == "https://testnet.tonapi.io/v2/wallet/0:ab/seqno"
        assert call_kwargs["timeout"] == 7
        assert call_kwargs["retries"] == 1

    @patch("utils.api_request")
    def test_passes_params_and_body(self, mock_api_request, temp_config):
        mock_api_request.return_value = {"success": True, "data": {}}

        tonapi_request("/blockchain/message", method="POST", json_data={"boc": "x"})
        tonapi_request("/blockchain/accounts/0:ab/transactions", params={"limit": 1})

        post, get = [c[1] for c in mock_api_request.call_args_list]
        assert post["method"] == "POST"
        assert post["json_data"] == {"boc": "x"}
        assert post["url"].startswith("https://tonapi.io/v2/")
        assert get["params"] == {"limit": 1}
        assert get["api_key"] is None
