#!/usr/bin/env python3
"""
TON Agent Kit — Кодек ячеек (cells)

- Snake-кодирование байтовых строк (цепочка ячеек через refs)
- Метаданные жетонов TEP-64: on-chain (HashmapE 256) и off-chain (URI)
- Тела сообщений контрактов: mint, burn, transfer, change admin, ...
- StateInit и детерминированный адрес контракта
"""

import sys
import base64
import hashlib
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from tonsdk.boc import Cell, Slice, begin_dict
from tonsdk.utils import Address

script_dir = Path(__file__).parent
sys.path.insert(0, str(script_dir))

from common import (  # noqa: E402
    ASCII_METADATA_KEYS,
    ONCHAIN_METADATA_KEYS,
    OP_CANCEL_AUCTION,
    OP_CANCEL_FIXED_PRICE,
    OP_CHANGE_ADMIN,
    OP_COMMENT,
    OP_JETTON_BURN,
    OP_JETTON_INTERNAL_TRANSFER,
    OP_JETTON_TRANSFER,
    OP_MINT,
    OP_NFT_TRANSFER,
    OP_UPDATE_METADATA,
)
from errors import EncodingError  # noqa: E402
from utils import get_logger  # noqa: E402

logger = get_logger("cells")


# =============================================================================
# Constants
# =============================================================================

CELL_MAX_BITS = 1023
CELL_MAX_REFS = 4
# 1023 bits -> 127 full bytes per cell
CELL_CAPACITY_BYTES = CELL_MAX_BITS // 8

ONCHAIN_CONTENT_PREFIX = 0x00
OFFCHAIN_CONTENT_PREFIX = 0x01
SNAKE_PREFIX = 0x00

ADDRESS_BITS = 267
EMPTY_ADDRESS_BITS = 2


# =============================================================================
# Reading cells
# =============================================================================
#
# Чтение идёт через tonsdk Slice (cell.begin_parse()): read_uint, read_int,
# read_bytes, read_coins, read_ref. Здесь только то, чего в Slice нет.


@contextmanager
def decoding(what: str):
    """Ошибки Slice на битых данных (нет битов или ссылок) -> EncodingError."""
    try:
        yield
    except (IndexError, ValueError) as e:
        raise EncodingError(f"Malformed {what}: {e}")


def read_address(cs: Slice) -> Optional[str]:
    """MsgAddress -> "wc:hash" (addr_std) или None (addr_none)."""
    address = cs.read_msg_addr()
    return address.to_string(False) if address is not None else None


def read_maybe_ref(cs: Slice) -> Optional[Cell]:
    return cs.read_ref() if cs.read_bit() else None


def refs_left(cs: Slice) -> int:
    return len(cs.refs) - cs.ref_offset


# =============================================================================
# BOC helpers
# =============================================================================


def cell_from_boc(data: Union[bytes, str]) -> Cell:
    """Парсит BOC из bytes, hex или base64 строки."""
    if isinstance(data, str):
        text = data.strip()
        try:
            raw = bytes.fromhex(text)
        except ValueError:
            raw = base64.b64decode(text)
    else:
        raw = bytes(data)
    try:
        return Cell.one_from_boc(raw)
    except Exception as e:
        raise EncodingError(f"Invalid BOC: {e}")


def cell_to_b64(cell: Cell) -> str:
    return base64.b64encode(cell.to_boc(False)).decode("ascii")


def cell_to_hex(cell: Cell) -> str:
    return cell.to_boc(False).hex()


def cell_hash(cell: Cell) -> str:
    return cell.bytes_hash().hex()


def to_address(value: Any, field: str = "address") -> Optional[Address]:
    """str | Address | None -> Address | None. Некорректный адрес -> EncodingError."""
    if value is None:
        return None
    if isinstance(value, Address):
        return value
    try:
        return Address(str(value).strip())
    except Exception as e:
        raise EncodingError(f"Invalid address in {field}: {value!r} ({e})")


# =============================================================================
# Writing fields
# =============================================================================

# (kind, value) или (kind, value, bits) для uint/int
Field = Tuple[Any, ...]


def _coins_bits(value: int) -> int:
    return 4 + 8 * ((value.bit_length() + 7) // 8)


def _check_uint(value: int, bits: int, name: str) -> int:
    if not isinstance(value, int) or isinstance(value, bool):
        raise EncodingError(f"{name} must be an integer, got {value!r}")
    if value < 0 or value >= 1 << bits:
        raise EncodingError(f"{name}={value} does not fit into uint{bits}")
    return value


def _ensure_bits(cell: Cell, bits: int, kind: str) -> None:
    free = cell.bits.get_free_bits()
    if bits > free:
        raise EncodingError(
            f"Field '{kind}' needs {bits} bits but only {free} are free in the cell"
        )


def _ensure_ref(cell: Cell) -> None:
    if len(cell.refs) >= CELL_MAX_REFS:
        raise EncodingError(f"Cell already has {CELL_MAX_REFS} references")


def store_fields(cell: Cell, fields: Sequence[Field]) -> Cell:
    """
    Пишет типизированные поля в ячейку строго в заданном порядке.

    Поддерживаемые виды:
        ("uint", value, bits), ("int", value, bits), ("coins", value),
        ("address", addr | None), ("bit", bool), ("bytes", b"..."),
        ("ref", Cell), ("maybe_ref", Cell | None)

    Raises:
        EncodingError: значение не помещается в ширину поля или в ячейку
    """
    for field in fields:
        kind, value = field[0], field[1]

        if kind == "uint":
            bits = field[2]
            _check_uint(value, bits, kind)
            _ensure_bits(cell, bits, kind)
            if bits:
                cell.bits.write_uint(value, bits)
        elif kind == "int":
            bits = field[2]
            if not isinstance(value, int) or not -(1 << (bits - 1)) <= value < 1 << (bits - 1):
                raise EncodingError(f"int={value!r} does not fit into int{bits}")
            _ensure_bits(cell, bits, kind)
            cell.bits.write_int(value, bits)
        elif kind == "coins":
            _check_uint(value, 120, "coins")
            _ensure_bits(cell, _coins_bits(value), kind)
            cell.bits.write_coins(value)
        elif kind == "address":
            address = to_address(value)
            _ensure_bits(cell, ADDRESS_BITS if address else EMPTY_ADDRESS_BITS, kind)
            cell.bits.write_address(address)
        elif kind == "bit":
            _ensure_bits(cell, 1, kind)
            cell.bits.write_bit(1 if value else 0)
        elif kind == "bytes":
            _ensure_bits(cell, 8 * len(value), kind)
            cell.bits.write_bytes(bytes(value))
        elif kind == "ref":
            if not isinstance(value, Cell):
                raise EncodingError(f"ref field expects a Cell, got {type(value).__name__}")
            _ensure_ref(cell)
            cell.refs.append(value)
        elif kind == "maybe_ref":
            _ensure_bits(cell, 1, kind)
            if value is None:
                cell.bits.write_bit(0)
            else:
                _ensure_ref(cell)
                cell.bits.write_bit(1)
                cell.refs.append(value)
        else:
            raise EncodingError(f"Unknown field kind: {kind}")
    return cell


def encode_message_body(
    opcode: int, query_id: Optional[int], fields: Sequence[Field] = ()
) -> Cell:
    """
    Тело сообщения: op (uint32), query_id (uint64, если задан), затем поля.

    Args:
        opcode: 32-битный код операции
        query_id: 64-битный query id (None, если у формата его нет)
        fields: Типизированные поля (см. store_fields)

    Returns:
        Cell с точной побитовой раскладкой
    """
    cell = Cell()
    head: List[Field] = [("uint", opcode, 32)]
    if query_id is not None:
        head.append(("uint", query_id, 64))
    return store_fields(cell, head + list(fields))


# =============================================================================
# Snake encoding
# =============================================================================


def _snake_into(cell: Cell, data: bytes) -> Cell:
    """Дописывает data в ячейку, перенося остаток в цепочку дочерних ячеек."""
    capacity = cell.bits.get_free_bits() // 8
    head, rest = data[:capacity], data[capacity:]
    cell.bits.write_bytes(head)

    chunks = [
        rest[i : i + CELL_CAPACITY_BYTES]
        for i in range(0, len(rest), CELL_CAPACITY_BYTES)
    ]
    child = None
    for chunk in reversed(chunks):
        node = Cell()
        node.bits.write_bytes(chunk)
        if child is not None:
            node.refs.append(child)
        child = node
    if child is not None:
        _ensure_ref(cell)
        cell.refs.append(child)
    return cell


def encode_snake(data: bytes, prefix: Optional[int] = None) -> Cell:
    """
    Snake-ячейка: первый кусок внутри корня, остальные по цепочке refs[0].

    Args:
        data: Байты для записи
        prefix: Однобайтовый тег формата (0x00 snake, 0x01 off-chain URI)
    """
    cell = Cell()
    if prefix is not None:
        cell.bits.write_uint(prefix, 8)
    return _snake_into(cell, bytes(data))


def _read_snake_tail(cs: Slice) -> bytes:
    out = bytearray()
    while True:
        if len(cs) % 8:
            raise EncodingError("Snake data is not byte aligned")
        out += cs.read_bytes(len(cs) // 8)
        if refs_left(cs) == 0:
            return bytes(out)
        cs = cs.read_ref().begin_parse()


def decode_snake(cell: Cell, prefix: Optional[int] = None) -> bytes:
    """Собирает байты snake-цепочки. Если prefix задан, проверяет тег."""
    cs = cell.begin_parse()
    if prefix is not None:
        if len(cs) < 8:
            raise EncodingError("Snake cell is too short for its prefix")
        tag = cs.read_uint(8)
        if tag != prefix:
            raise EncodingError(f"Unexpected snake prefix 0x{tag:02x}, want 0x{prefix:02x}")
    return _read_snake_tail(cs)


def comment_body(text: str) -> Cell:
    """Текстовый комментарий: op 0 + UTF-8 текст (snake)."""
    cell = Cell()
    cell.bits.write_uint(OP_COMMENT, 32)
    return _snake_into(cell, text.encode("utf-8"))


def decode_comment(cell: Cell) -> Optional[str]:
    cs = cell.begin_parse()
    if len(cs) < 32 or cs.read_uint(32) != OP_COMMENT:
        return None
    return _read_snake_tail(cs).decode("utf-8", errors="replace")


# =============================================================================
# HashmapE 256 (on-chain metadata dictionary)
# =============================================================================


def _read_label(cs: Slice, max_len: int) -> str:
    """hml_short / hml_long / hml_same -> биты метки строкой "0101"."""
    len_bits = max_len.bit_length()
    if cs.read_bit() == 0:
        length = 0
        while cs.read_bit():
            length += 1
    elif cs.read_bit() == 0:
        length = cs.read_uint(len_bits) if len_bits else 0
    else:
        bit = str(cs.read_bit())
        return bit * (cs.read_uint(len_bits) if len_bits else 0)
    if length > len(cs):
        raise EncodingError(f"Dictionary label of {length} bits overruns the cell")
    return cs.read_bits(length).to01()


def _parse_hashmap(cell: Cell, key_len: int, prefix: str = "") -> Dict[int, Cell]:
    cs = cell.begin_parse()
    label = _read_label(cs, key_len)
    rest = key_len - len(label)
    if rest < 0:
        raise EncodingError(f"Dictionary label is longer than the {key_len} key bits left")
    key = prefix + label
    if rest == 0:
        return {int(key, 2): cs.read_ref()}
    result = _parse_hashmap(cs.read_ref(), rest - 1, key + "0")
    result.update(_parse_hashmap(cs.read_ref(), rest - 1, key + "1"))
    return result


def build_dict(entries: Dict[int, Cell], key_len: int = 256) -> Optional[Cell]:
    """Hashmap из {int key: ^Cell}. Пустой словарь -> None."""
    if not entries:
        return None
    builder = begin_dict(key_len)
    for key, value in entries.items():
        builder.store_ref(key, value)
    return builder.end_dict()


def parse_dict(root: Optional[Cell], key_len: int = 256) -> Dict[int, Cell]:
    if root is None:
        return {}
    with decoding("dictionary"):
        return _parse_hashmap(root, key_len)


# =============================================================================
# Jetton metadata (TEP-64)
# =============================================================================


def metadata_key(name: str) -> int:
    """Ключ on-chain словаря: sha256(имя поля) как uint256."""
    return int.from_bytes(hashlib.sha256(name.encode("utf-8")).digest(), "big")


KEY_BY_HASH = {metadata_key(name): name for name in ONCHAIN_METADATA_KEYS}


def _metadata_value_bytes(key: str, value: Any) -> bytes:
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    text = str(value)
    if key == "image_data":
        try:
            return bytes.fromhex(text)
        except ValueError:
            raise EncodingError("Metadata field 'image_data' must be bytes or a hex string")
    if key in ASCII_METADATA_KEYS:
        try:
            return text.encode("ascii")
        except UnicodeEncodeError:
            raise EncodingError(f"Metadata field '{key}' must be ASCII")
    return text.encode("utf-8")


def encode_onchain_metadata(fields: Dict[str, Any]) -> Cell:
    """
    On-chain контент: 0x00 + HashmapE 256 (sha256(key) -> ^snake ячейка).

    Неподдерживаемые ключи и пустые значения молча пропускаются.
    """
    entries: Dict[int, Cell] = {}
    for key, value in fields.items():
        if key not in ONCHAIN_METADATA_KEYS:
            logger.debug("Skipping unsupported metadata key: %s", key)
            continue
        if value is None or value == "" or value == b"":
            continue
        entries[metadata_key(key)] = encode_snake(
            _metadata_value_bytes(key, value), prefix=SNAKE_PREFIX
        )

    cell = Cell()
    cell.bits.write_uint(ONCHAIN_CONTENT_PREFIX, 8)
    return store_fields(cell, [("maybe_ref", build_dict(entries))])


def encode_offchain_metadata(uri: str) -> Cell:
    """Off-chain контент: 0x01 + URI (snake)."""
    if not uri:
        raise EncodingError("Off-chain metadata URI must not be empty")
    return encode_snake(uri.encode("utf-8"), prefix=OFFCHAIN_CONTENT_PREFIX)


def _decode_metadata_value(key: str, data: bytes) -> str:
    if key == "image_data":
        return data.hex()
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError:
        raise EncodingError(f"Metadata field '{key}' is not valid UTF-8")


def decode_metadata(cell: Cell) -> Dict[str, str]:
    """
    Декодирует контент жетона.

    Returns:
        On-chain: все известные ключи из словаря.
        Off-chain: только {"uri": ...}.
    """
    cs = cell.begin_parse()
    with decoding("jetton content"):
        tag = cs.read_uint(8)

        if tag == OFFCHAIN_CONTENT_PREFIX:
            return {"uri": _read_snake_tail(cs).decode("utf-8")}
        if tag != ONCHAIN_CONTENT_PREFIX:
            raise EncodingError(f"Unknown metadata content tag: 0x{tag:02x}")
        root = read_maybe_ref(cs)

    result: Dict[str, str] = {}
    for key_hash, value_cell in parse_dict(root).items():
        name = KEY_BY_HASH.get(key_hash)
        if name is None:
            logger.debug("Skipping unknown metadata key hash %064x", key_hash)
            continue
        result[name] = _decode_metadata_value(
            name, decode_snake(value_cell, prefix=SNAKE_PREFIX)
        )
    return result


# =============================================================================
# Jetton message bodies
# =============================================================================


def internal_transfer_body(
    jetton_amount: int,
    from_address: Any = None,
    response_address: Any = None,
    forward_ton_amount: int = 0,
    query_id: int = 0,
) -> Cell:
    """internal_transfer (0x178d4519), вкладывается в mint."""
    return encode_message_body(
        OP_JETTON_INTERNAL_TRANSFER,
        query_id,
        [
            ("coins", jetton_amount),
            ("address", from_address),
            ("address", response_address),
            ("coins", forward_ton_amount),
            ("bit", False),  # forward_payload inline, empty
        ],
    )


def mint_body(
    to: Any, jetton_amount: int, forward_ton_amount: int, query_id: int = 0
) -> Cell:
    """mint (21): to, TON для нового кошелька, ^internal_transfer."""
    return encode_message_body(
        OP_MINT,
        query_id,
        [
            ("address", to),
            ("coins", forward_ton_amount),
            ("ref", internal_transfer_body(jetton_amount, query_id=query_id)),
        ],
    )


def burn_body(amount: int, response_address: Any = None, query_id: int = 0) -> Cell:
    """burn (0x595f07bc): amount, response_destination, custom_payload=null."""
    return encode_message_body(
        OP_JETTON_BURN,
        query_id,
        [
            ("coins", amount),
            ("address", response_address),
            ("maybe_ref", None),
        ],
    )


def change_admin_body(new_admin: Any, query_id: int = 0) -> Cell:
    return encode_message_body(OP_CHANGE_ADMIN, query_id, [("address", new_admin)])


def update_metadata_body(content: Cell, query_id: int = 0) -> Cell:
    return encode_message_body(OP_UPDATE_METADATA, query_id, [("ref", content)])


def jetton_transfer_body(
    amount: int,
    destination: Any,
    response_address: Any = None,
    forward_ton_amount: int = 0,
    forward_payload: Optional[Cell] = None,
    query_id: int = 0,
) -> Cell:
    """transfer (0x0f8a7ea5) по TEP-74, forward_payload в ref если задан."""
    return encode_message_body(
        OP_JETTON_TRANSFER,
        query_id,
        [
            ("coins", amount),
            ("address", destination),
            ("address", response_address),
            ("maybe_ref", None),  # custom_payload
            ("coins", forward_ton_amount),
            ("maybe_ref", forward_payload),
        ],
    )


# =============================================================================
# NFT / marketplace message bodies
# =============================================================================


def nft_transfer_body(
    new_owner: Any,
    response_address: Any = None,
    forward_amount: int = 0,
    forward_payload: Optional[Cell] = None,
    query_id: int = 0,
) -> Cell:
    """NFT transfer (0x5fcc3d14) по TEP-62."""
    return encode_message_body(
        OP_NFT_TRANSFER,
        query_id,
        [
            ("address", new_owner),
            ("address", response_address),
            ("bit", False),  # custom_payload
            ("coins", forward_amount),
            ("maybe_ref", forward_payload),
        ],
    )


def listing_cancel_body(is_auction: bool, query_id: int = 0) -> Cell:
    """Отмена листинга: op 1 для аукциона, op 3 для фиксированной цены."""
    opcode = OP_CANCEL_AUCTION if is_auction else OP_CANCEL_FIXED_PRICE
    return encode_message_body(opcode, query_id)


# =============================================================================
# StateInit / contract address
# =============================================================================


def build_state_init(code: Cell, data: Cell) -> Cell:
    """StateInit без split_depth, special и library."""
    cell = Cell()
    cell.bits.write_bit(0)  # split_depth
    cell.bits.write_bit(0)  # special (tick-tock)
    cell.bits.write_bit(1)  # code
    cell.bits.write_bit(1)  # data
    cell.bits.write_bit(0)  # library
    cell.refs.append(code)
    cell.refs.append(data)
    return cell


def contract_address(workchain: int, state_init: Cell) -> Address:
    """Адрес контракта = workchain : hash(StateInit)."""
    return Address(f"{workchain}:{state_init.bytes_hash().hex()}")
