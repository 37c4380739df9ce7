#!/usr/bin/env python3
"""
TON Agent Kit — Общие утилиты

- AES-256 шифрование/дешифрование (хранилище ключей)
- Конфиг менеджер
- Форматирование и сравнение адресов TON
- HTTP клиент с retry (TonAPI)
- Логирование
- Конвертация сумм в минимальные единицы
"""

import os
import sys
import json
import base64
import logging
import argparse
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Optional, Union


def _missing(package: str):
    print(json.dumps({"error": f"Missing dependency: {package}", "install": f"pip install {package}"}))
    sys.exit(1)


# Зависимости
try:
    import requests
    from requests.adapters import HTTPAdapter
    from urllib3.util.retry import Retry
except ImportError:
    _missing("requests")

try:
    from cryptography.hazmat.primitives import hashes, padding
    from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
    from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
except ImportError:
    _missing("cryptography")

try:
    from tonsdk.utils import Address
except ImportError:
    _missing("tonsdk")

script_dir = Path(__file__).parent
sys.path.insert(0, str(script_dir))

from common import TONAPI_BASE_URLS  # noqa: E402
from errors import ValidationError  # noqa: E402


# =============================================================================
# Константы
# =============================================================================

SKILL_DIR = Path.home() / ".ton-agent"
CONFIG_FILE = SKILL_DIR / "config.json"
WALLETS_FILE = SKILL_DIR / "wallets.enc"

LOGGER_NAME = "ton-agent"

SALT_SIZE = 16
IV_SIZE = 16
KDF_ITERATIONS = 100_000


# =============================================================================
# Шифрование/Дешифрование (AES-256-CBC)
# =============================================================================


def derive_key(password: str, salt: bytes) -> bytes:
    """PBKDF2-HMAC-SHA256, 32 байта ключа."""
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(), length=32, salt=salt, iterations=KDF_ITERATIONS
    )
    return kdf.derive(password.encode("utf-8"))


def _cipher(password: str, salt: bytes, iv: bytes) -> Cipher:
    return Cipher(algorithms.AES(derive_key(password, salt)), modes.CBC(iv))


def encrypt_data(data: bytes, password: str) -> bytes:
    """Формат: salt(16) + iv(16) + ciphertext."""
    salt, iv = os.urandom(SALT_SIZE), os.urandom(IV_SIZE)

    padder = padding.PKCS7(algorithms.AES.block_size).padder()
    padded = padder.update(data) + padder.finalize()

    encryptor = _cipher(password, salt, iv).encryptor()
    return salt + iv + encryptor.update(padded) + encryptor.finalize()


def decrypt_data(encrypted_data: bytes, password: str) -> bytes:
    header = SALT_SIZE + IV_SIZE
    if len(encrypted_data) <= header:
        raise ValueError("Invalid encrypted data")

    salt, iv = encrypted_data[:SALT_SIZE], encrypted_data[SALT_SIZE:header]
    decryptor = _cipher(password, salt, iv).decryptor()
    padded = decryptor.update(encrypted_data[header:]) + decryptor.finalize()

    unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
    return unpadder.update(padded) + unpadder.finalize()


def encrypt_json(data: dict, password: str) -> str:
    """JSON -> зашифрованный base64."""
    raw = json.dumps(data, ensure_ascii=False).encode("utf-8")
    return base64.b64encode(encrypt_data(raw, password)).decode("ascii")


def decrypt_json(encrypted_b64: str, password: str) -> dict:
    raw = decrypt_data(base64.b64decode(encrypted_b64), password)
    return json.loads(raw.decode("utf-8"))


# =============================================================================
# Конфиг менеджер
# =============================================================================

DEFAULT_CONFIG = {
    "tonapi_key": "",
    "network": "mainnet",
    "default_wallet": "",
    "rpc": {"timeout": 30, "retries": 3, "backoff_factor": 0.5},
    "confirm": {"poll_interval": 2, "max_polls": 10, "verify_hash": True},
    "dex": {},
}


def _deep_merge(base: dict, override: dict) -> dict:
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def ensure_skill_dir() -> Path:
    SKILL_DIR.mkdir(parents=True, exist_ok=True)
    return SKILL_DIR


def load_config() -> dict:
    """Конфиг из файла поверх DEFAULT_CONFIG. Битый файл -> значения по умолчанию."""
    ensure_skill_dir()
    stored: dict = {}
    if CONFIG_FILE.exists():
        try:
            stored = json.loads(CONFIG_FILE.read_text())
        except (OSError, ValueError):
            logging.getLogger(LOGGER_NAME).warning(
                "Config %s is unreadable, using defaults", CONFIG_FILE
            )
    return _deep_merge(DEFAULT_CONFIG, stored)


def save_config(config: dict) -> bool:
    ensure_skill_dir()
    try:
        CONFIG_FILE.write_text(json.dumps(config, indent=2, ensure_ascii=False))
    except OSError:
        return False
    return True


def lookup(config: dict, key: str, default: Any = None) -> Any:
    """Значение по ключу с dot notation (confirm.max_polls) из уже загруженного конфига."""
    value = config
    for k in key.split("."):
        if isinstance(value, dict) and k in value:
            value = value[k]
        else:
            return default
    return value


def get_config_value(key: str, default: Any = None) -> Any:
    return lookup(load_config(), key, default)


def set_config_value(key: str, value: Any) -> bool:
    """Dot notation; промежуточные не-dict значения заменяются словарями."""
    config = load_config()
    *parents, leaf = key.split(".")
    target = config
    for k in parents:
        if not isinstance(target.get(k), dict):
            target[k] = {}
        target = target[k]
    target[leaf] = value
    return save_config(config)


def get_tonapi_key(config: Optional[dict] = None) -> Optional[str]:
    """TonAPI ключ: переменная окружения TONAPI_KEY важнее конфига."""
    config = config if config is not None else load_config()
    return os.environ.get("TONAPI_KEY") or config.get("tonapi_key") or None


# =============================================================================
# Логирование
# =============================================================================


def setup_logging(
    verbose: bool = False, log_file: Optional[Path] = None
) -> logging.Logger:
    """
    Настройка логирования в stderr и (опционально) в файл.

    Все модули пишут в дочерние логгеры "ton-agent.*", поэтому достаточно
    настроить корневой логгер пакета один раз.
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)

    formatter = logging.Formatter(
        "%(asctime)s [%(levelname)s] %(message)s", datefmt="%Y-%m-%d %H:%M:%S"
    )

    if not any(getattr(h, "_ton_agent", False) for h in logger.handlers):
        sh = logging.StreamHandler(sys.stderr)
        sh.setLevel(logging.DEBUG if verbose else logging.INFO)
        sh.setFormatter(formatter)
        sh._ton_agent = True  # type: ignore[attr-defined]
        logger.addHandler(sh)

        if log_file is not None:
            ensure_skill_dir()
            fh = logging.FileHandler(log_file, encoding="utf-8")
            fh.setLevel(logging.DEBUG)
            fh.setFormatter(formatter)
            fh._ton_agent = True  # type: ignore[attr-defined]
            logger.addHandler(fh)

    return logger


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(f"{LOGGER_NAME}.{name}")


# =============================================================================
# Суммы
# =============================================================================


def parse_amount(value: Union[str, int, Decimal], decimals: int = 9) -> int:
    """
    Переводит человекочитаемую сумму в минимальные единицы без float.

    Args:
        value: "1.5", 2, Decimal("0.05")
        decimals: Количество знаков после запятой у актива (TON = 9)

    Returns:
        int в минимальных единицах

    Raises:
        ValidationError: отрицательная сумма, мусор, или больше знаков чем decimals
    """
    if isinstance(value, float):
        value = repr(value)
    try:
        amount = Decimal(str(value).strip())
    except InvalidOperation:
        raise ValidationError(f"Invalid amount: {value!r}")

    if not amount.is_finite() or amount < 0:
        raise ValidationError(f"Amount must be a non-negative number: {value!r}")

    scaled = amount * (Decimal(10) ** decimals)
    if scaled != scaled.to_integral_value():
        raise ValidationError(
            f"Amount {value} has more than {decimals} decimal places"
        )
    return int(scaled)


# =============================================================================
# Форматирование адресов TON
# =============================================================================


def raw_to_friendly(
    raw_address: str, bounceable: bool = True, testnet: bool = False
) -> str:
    """
    "workchain:hex_hash" -> user-friendly (base64url, 48 символов).

    Raises:
        ValueError: не raw адрес или неверный hash
    """
    if ":" not in str(raw_address):
        raise ValueError(f"Invalid raw address format: {raw_address}")
    try:
        return Address(address_key(raw_address)).to_string(True, True, bounceable, testnet)
    except Exception as e:
        raise ValueError(f"Failed to convert raw address: {e}")


def friendly_to_raw(friendly_address: str) -> str:
    """User-friendly (base64 или base64url) -> "workchain:hex_hash". Проверяет CRC."""
    text = str(friendly_address).strip()
    if ":" in text:
        raise ValueError(f"Not a user-friendly address: {friendly_address}")
    try:
        return Address(text).to_string(False)
    except Exception as e:
        raise ValueError(f"Failed to convert friendly address: {e}")


def is_valid_address(address: str) -> bool:
    try:
        address_key(address)
        return True
    except ValueError:
        return False


def address_key(address: Any) -> str:
    """
    Структурный ключ адреса: "wc:hash" в нижнем регистре.

    Два адреса равны, если равны workchain и hash, независимо от формата
    (raw, bounceable, non-bounceable, testnet). Принимает str или tonsdk Address.
    """
    if hasattr(address, "hash_part") and hasattr(address, "wc"):
        return f"{address.wc}:{bytes(address.hash_part).hex()}"

    text = str(address).strip()
    if ":" not in text:
        return friendly_to_raw(text)

    wc, hash_hex = text.split(":", 1)
    if hash_hex.startswith("0x"):
        hash_hex = hash_hex[2:]
    try:
        workchain = int(wc)
        hash_bytes = bytes.fromhex(hash_hex)
    except ValueError:
        raise ValueError(f"Invalid address: {address}")
    if len(hash_bytes) != 32:
        raise ValueError(f"Invalid address: {address}")
    return f"{workchain}:{hash_bytes.hex()}"


def same_address(a: Any, b: Any) -> bool:
    return address_key(a) == address_key(b)


# =============================================================================
# HTTP клиент с retry
# =============================================================================


def create_http_session(
    retries: int = 3,
    backoff_factor: float = 0.5,
    status_forcelist: tuple = (500, 502, 503, 504),
    timeout: int = 30,
) -> requests.Session:
    """
    Сессия с urllib3 Retry (экспоненциальный backoff) для GET и POST
    и таймаутом по умолчанию для каждого запроса.
    """
    adapter = HTTPAdapter(
        max_retries=Retry(
            total=retries,
            backoff_factor=backoff_factor,
            status_forcelist=status_forcelist,
            allowed_methods=["HEAD", "GET", "POST"],
            raise_on_status=False,
        )
    )
    session = requests.Session()
    for scheme in ("https://", "http://"):
        session.mount(scheme, adapter)

    # Default timeout через hook
    session.request = lambda method, url, **kwargs: requests.Session.request(  # ty: ignore[invalid-assignment]
        session, method, url, timeout=kwargs.pop("timeout", timeout), **kwargs
    )
    return session


def api_request(
    url: str,
    method: str = "GET",
    headers: Optional[dict] = None,
    params: Optional[dict] = None,
    json_data: Optional[Union[dict, list]] = None,
    api_key: Optional[str] = None,
    timeout: int = 30,
    retries: int = 3,
    session: Optional[requests.Session] = None,
) -> dict:
    """
    HTTP запрос без исключений наружу.

    Returns:
        {"success": True, "data", "status_code"} или
        {"success": False, "error", "status_code"} (status_code None для транспортных ошибок)
    """
    session = session or create_http_session(retries=retries, timeout=timeout)

    req_headers = {"Accept": "application/json", **(headers or {})}
    if api_key:
        req_headers["Authorization"] = f"Bearer {api_key}"

    try:
        response = session.request(
            method=method.upper(),
            url=url,
            headers=req_headers,
            params=params,
            json=json_data,
            timeout=timeout,
        )
    except requests.exceptions.Timeout:
        return {"success": False, "error": "Request timeout", "status_code": None}
    except requests.exceptions.ConnectionError:
        return {"success": False, "error": "Connection error", "status_code": None}
    except requests.exceptions.RequestException as e:
        return {"success": False, "error": str(e), "status_code": None}

    try:
        data = response.json()
    except ValueError:
        data = response.text

    if response.ok:
        return {"success": True, "data": data, "status_code": response.status_code}
    return {
        "success": False,
        "error": data or response.reason,
        "status_code": response.status_code,
    }


def tonapi_base_url(network: str = "mainnet") -> str:
    return TONAPI_BASE_URLS.get(network, TONAPI_BASE_URLS["mainnet"])


def tonapi_request(
    endpoint: str,
    method: str = "GET",
    params: Optional[dict] = None,
    json_data: Optional[dict] = None,
    config: Optional[dict] = None,
    session: Optional[requests.Session] = None,
) -> dict:
    """
    Запрос к TonAPI v2: сеть, ключ, таймаут и retry берутся из конфига.

    endpoint без base URL, например "/wallet/{address}/seqno".
    """
    config = config if config is not None else load_config()

    return api_request(
        url=tonapi_base_url(config.get("network", "mainnet")) + endpoint,
        method=method,
        params=params,
        json_data=json_data,
        api_key=get_tonapi_key(config),
        timeout=lookup(config, "rpc.timeout", 30),
        retries=lookup(config, "rpc.retries", 3),
        session=session,
    )


# =============================================================================
# CLI
# =============================================================================


def _parse_value(text: str) -> Any:
    """'5' -> 5, 'true' -> True, '{"a": 1}' -> dict, иначе строка."""
    try:
        return json.loads(text)
    except ValueError:
        return text


def cmd_config(args) -> dict:
    if args.config_cmd == "get":
        return {"key": args.key, "value": get_config_value(args.key)}
    if args.config_cmd == "set":
        value = _parse_value(args.value)
        return {"success": set_config_value(args.key, value), "key": args.key, "value": value}
    return load_config()


def cmd_address(args) -> dict:
    try:
        key = address_key(args.address)
    except ValueError as e:
        if args.addr_cmd == "validate":
            return {"address": args.address, "valid": False}
        return {"success": False, "error": str(e)}

    if args.addr_cmd == "validate":
        return {"address": args.address, "valid": True, "raw": key}
    testnet = getattr(args, "testnet", False)
    bounceable = not getattr(args, "non_bounceable", False)
    return {"raw": key, "friendly": raw_to_friendly(key, bounceable, testnet)}


def main():
    parser = argparse.ArgumentParser(description="TON Agent Utilities")
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    config_parser = subparsers.add_parser("config", help="Configuration management")
    config_sub = config_parser.add_subparsers(dest="config_cmd")
    config_sub.add_parser("get", help="Get value (dot notation)").add_argument("key")
    config_set = config_sub.add_parser("set", help="Set value (JSON or plain string)")
    config_set.add_argument("key")
    config_set.add_argument("value")
    config_sub.add_parser("show", help="Show merged config")

    addr_parser = subparsers.add_parser("address", help="Address formats")
    addr_sub = addr_parser.add_subparsers(dest="addr_cmd", required=True)
    for name, help_text in (
        ("to-raw", "Any format -> raw"),
        ("to-friendly", "Any format -> user-friendly"),
        ("validate", "Check address"),
    ):
        p = addr_sub.add_parser(name, help=help_text)
        p.add_argument("address")
        if name == "to-friendly":
            p.add_argument("--non-bounceable", action="store_true")
            p.add_argument("--testnet", action="store_true")

    args = parser.parse_args()
    if args.command == "config":
        result = cmd_config(args)
    elif args.command == "address":
        result = cmd_address(args)
    else:
        parser.print_help()
        return

    print(json.dumps(result, indent=2, ensure_ascii=False))
    if result.get("success") is False:
        sys.exit(1)


if __name__ == "__main__":
    main()
