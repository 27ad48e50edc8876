"""
Hex and integer helpers shared by the JSON-RPC ledger and the report codec.

- Data (bytecode, call data, feed ids) travels as 0x-prefixed even-length hex.
- Quantities (nonces, fees, block numbers) travel as 0x-prefixed minimal hex,
  e.g. 0 -> "0x0", 1_000_000_000 -> "0x3b9aca00".
"""

from __future__ import annotations

from typing import Any, Optional, Union

BytesLike = Union[bytes, bytearray, memoryview]


def to_hex(b: BytesLike, prefix: bool = True) -> str:
    s = bytes(b).hex()
    return "0x" + s if prefix else s


def from_hex(s: str) -> bytes:
    """Decode 0x-prefixed (or bare) hex data. Odd length is rejected, not padded."""
    if not isinstance(s, str):
        raise TypeError(f"expected a hex string, got {type(s).__name__}")
    body = s[2:] if s[:2] in ("0x", "0X") else s
    if len(body) % 2:
        raise ValueError(f"odd-length hex data: {s!r}")
    try:
        return bytes.fromhex(body)
    except ValueError as e:
        raise ValueError(f"not hex data: {s!r}") from e


def ensure_bytes(data: Union[BytesLike, str]) -> bytes:
    """Bytes-like values pass through; strings are decoded as hex data."""
    if isinstance(data, str):
        return from_hex(data)
    if isinstance(data, (bytes, bytearray, memoryview)):
        return bytes(data)
    raise TypeError(f"expected bytes or hex string, got {type(data).__name__}")


def to_quantity(n: int) -> str:
    if n < 0:
        raise ValueError(f"quantities are unsigned, got {n}")
    return hex(int(n))


def parse_quantity(v: Any) -> Optional[int]:
    """JSON-RPC quantity -> int. None/"" map to None; decimal strings are tolerated."""
    if v is None or v == "":
        return None
    if isinstance(v, bool):
        raise ValueError(f"not a quantity: {v!r}")
    if isinstance(v, int):
        return v
    if isinstance(v, str):
        return int(v, 16) if v[:2] in ("0x", "0X") else int(v, 10)
    raise ValueError(f"not a quantity: {v!r}")


def fits_signed(value: int, bits: int) -> bool:
    """Two's complement range check for an intN."""
    bound = 1 << (bits - 1)
    return -bound <= value < bound


def fits_unsigned(value: int, bits: int) -> bool:
    return 0 <= value < (1 << bits)


__all__ = [
    "BytesLike",
    "to_hex",
    "from_hex",
    "ensure_bytes",
    "to_quantity",
    "parse_quantity",
    "fits_signed",
    "fits_unsigned",
]
