#!/usr/bin/env python3
"""
TON Agent Kit — Хранилище кошельков

- Шифрованное хранение (AES-256, utils.encrypt_json)
- Импорт кошельков по мнемонике
- Список кошельков с лейблами
- Загрузка аккаунта для подписи транзакций

Ключи создаются вне агента: хранилище только читает уже импортированные.
"""

import os
import sys
import json
import argparse
import getpass
from pathlib import Path
from typing import Optional, List, Dict, Any
from datetime import datetime, timezone

from tonsdk.contract.wallet import Wallets
from tonsdk.crypto import mnemonic_is_valid

# Локальный импорт
script_dir = Path(__file__).parent
sys.path.insert(0, str(script_dir))

from errors import TonAgentError, ValidationError, format_error  # noqa: E402
from transaction import WALLET_VERSIONS, Account  # noqa: E402
from utils import (  # noqa: E402
    decrypt_json,
    encrypt_json,
    ensure_skill_dir,
    get_config_value,
    same_address,
    WALLETS_FILE,
)

SECRET_FIELDS = ("mnemonic", "private_key", "secret_key")
DEFAULT_VERSION = "v4r2"


def _public(record: dict) -> dict:
    return {k: v for k, v in record.items() if k not in SECRET_FIELDS}


def _has_address(record: dict, address: str) -> bool:
    try:
        return same_address(record.get("address", ""), address)
    except ValueError:
        return False


def _find(records: List[dict], identifier: str) -> Optional[int]:
    """Индекс записи по лейблу (без учёта регистра) или адресу в любом формате."""
    label = identifier.strip().lower()
    for index, record in enumerate(records):
        if record.get("label", "").lower() == label or _has_address(record, identifier):
            return index
    return None


# =============================================================================
# Wallet Storage
# =============================================================================


class WalletStorage:
    """Зашифрованный JSON файл со списком кошельков."""

    def __init__(self, password: str, wallets_file: Optional[Path] = None):
        self.password = password
        self.wallets_file = wallets_file or WALLETS_FILE
        ensure_skill_dir()

    def load(self) -> Dict[str, Any]:
        if not self.wallets_file.exists():
            return {"wallets": [], "version": 1}
        try:
            return decrypt_json(self.wallets_file.read_text().strip(), self.password)
        except (OSError, ValueError) as e:
            raise ValueError(f"Failed to decrypt wallets: {e}")

    def save(self, data: Dict[str, Any]) -> bool:
        """Файл создаётся сразу с правами 0600."""
        payload = encrypt_json(data, self.password)
        try:
            fd = os.open(self.wallets_file, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
            with os.fdopen(fd, "w") as f:
                f.write(payload)
            os.chmod(self.wallets_file, 0o600)
        except OSError as e:
            raise ValueError(f"Failed to save wallets: {e}")
        return True

    def add_wallet(self, wallet_data: dict) -> bool:
        store = self.load()
        address = wallet_data.get("address", "")
        if any(_has_address(record, address) for record in store["wallets"]):
            raise ValueError(f"Wallet already exists: {address}")
        store["wallets"].append(wallet_data)
        return self.save(store)

    def get_wallets(self, include_secrets: bool = False) -> List[dict]:
        records = self.load().get("wallets", [])
        return list(records) if include_secrets else [_public(r) for r in records]

    def get_wallet(
        self, identifier: str, include_secrets: bool = False
    ) -> Optional[dict]:
        records = self.get_wallets(include_secrets=include_secrets)
        index = _find(records, identifier)
        return None if index is None else records[index]

    def remove_wallet(self, identifier: str) -> bool:
        store = self.load()
        index = _find(store["wallets"], identifier)
        if index is None:
            raise ValueError(f"Wallet not found: {identifier}")
        del store["wallets"][index]
        return self.save(store)


# =============================================================================
# Wallet import
# =============================================================================


def validate_mnemonic(mnemonic: List[str]) -> bool:
    return len(mnemonic) == 24 and mnemonic_is_valid(mnemonic)


def mnemonic_to_wallet(mnemonic: List[str], version: str = DEFAULT_VERSION) -> dict:
    """
    Публичные данные кошелька для записи в хранилище.

    Args:
        mnemonic: Список из 24 слов
        version: v3r2 или v4r2 (неизвестная версия -> v4r2)

    Returns:
        dict с address, address_raw, public_key, version
    """
    version = version.lower()
    if version not in WALLET_VERSIONS:
        version = DEFAULT_VERSION

    _, public_key, _, wallet = Wallets.from_mnemonics(
        mnemonic, WALLET_VERSIONS[version], workchain=0
    )
    account = Account(wallet.address, wallet=wallet)
    return {
        "address": account.friendly,
        "address_raw": account.key,
        "public_key": public_key.hex(),
        "version": version,
    }


# =============================================================================
# Accounts for signing
# =============================================================================


def resolve_password(password: Optional[str] = None) -> str:
    """--password, затем WALLET_PASSWORD, затем интерактивный ввод."""
    password = password or os.environ.get("WALLET_PASSWORD")
    if password:
        return password
    if sys.stdin.isatty():
        return getpass.getpass("Wallet password: ")
    raise ValidationError("Password required. Use --password or WALLET_PASSWORD env")


def load_account(identifier: Optional[str], password: str) -> Account:
    """
    Аккаунт (адрес + ключи) из хранилища по лейблу или адресу.

    Без identifier используется default_wallet из конфига.
    """
    identifier = identifier or get_config_value("default_wallet")
    if not identifier:
        raise ValidationError("No wallet given and default_wallet is not configured")

    storage = WalletStorage(password)
    try:
        wallet_data = storage.get_wallet(identifier, include_secrets=True)
    except ValueError as e:
        raise ValidationError(str(e), wallet=identifier) from e
    if not wallet_data:
        raise ValidationError(f"Wallet not found: {identifier}")
    return Account.from_wallet_data(wallet_data)


# =============================================================================
# CLI Commands
# =============================================================================


def _summary(record: dict) -> dict:
    return {
        "label": record.get("label", ""),
        "address": record.get("address", ""),
        "version": record.get("version", DEFAULT_VERSION),
    }


def cmd_import(args, password: str) -> dict:
    """Импортирует кошелёк по мнемонике."""
    storage = WalletStorage(password)
    mnemonic = args.mnemonic.strip().split()

    if len(mnemonic) != 24:
        return {
            "success": False,
            "error": f"Мнемоника должна быть 24 слова, получено {len(mnemonic)}",
        }
    if not validate_mnemonic(mnemonic):
        return {"success": False, "error": "Невалидная мнемоника"}

    record = mnemonic_to_wallet(mnemonic, args.version)
    record.update(
        mnemonic=mnemonic,
        label=args.label or f"imported_{len(storage.get_wallets()) + 1}",
        created_at=datetime.now(timezone.utc).isoformat(),
    )

    try:
        storage.add_wallet(record)
    except ValueError as e:
        return {"success": False, "error": str(e)}

    return {"success": True, "action": "imported", "wallet": _summary(record)}


def cmd_list(args, password: str) -> dict:
    """Список кошельков без приватных данных."""
    wallets = [_summary(w) for w in WalletStorage(password).get_wallets()]
    return {"success": True, "count": len(wallets), "wallets": wallets}


def cmd_remove(args, password: str) -> dict:
    storage = WalletStorage(password)
    wallet = storage.get_wallet(args.wallet)
    if not wallet:
        return {"success": False, "error": f"Кошелёк не найден: {args.wallet}"}

    storage.remove_wallet(args.wallet)
    return {"success": True, "action": "removed", "wallet": wallet["address"]}


COMMANDS = {"import": cmd_import, "list": cmd_list, "remove": cmd_remove}


# =============================================================================
# Main
# =============================================================================


def main():
    parser = argparse.ArgumentParser(
        description="TON wallet store",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s import --mnemonic "word1 word2 ..." --label "agent"
  %(prog)s list
  %(prog)s remove agent
""",
    )
    parser.add_argument(
        "--password", "-p", help="Encryption password (or use WALLET_PASSWORD env)"
    )
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    import_p = subparsers.add_parser("import", help="Import wallet from mnemonic")
    import_p.add_argument(
        "--mnemonic", "-m", required=True, help="24-word mnemonic (space-separated)"
    )
    import_p.add_argument("--label", "-l", help="Wallet label")
    import_p.add_argument(
        "--version", "-v", default=DEFAULT_VERSION, choices=sorted(WALLET_VERSIONS)
    )

    subparsers.add_parser("list", help="List all wallets")

    remove_p = subparsers.add_parser("remove", help="Remove wallet from storage")
    remove_p.add_argument("wallet", help="Wallet label or address")

    args = parser.parse_args()
    if not args.command:
        parser.print_help()
        return

    try:
        result = COMMANDS[args.command](args, resolve_password(args.password))
        print(json.dumps(result, indent=2, ensure_ascii=False))
    except (TonAgentError, ValueError) as e:
        print(json.dumps(format_error(e), indent=2, ensure_ascii=False))
        sys.exit(1)


if __name__ == "__main__":
    main()
