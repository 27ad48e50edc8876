"""
chainops.reports.codec
======================

Fixed-layout encoding of priced asset reports.

The consumer of these payloads (a report verifier contract) reads a layout
that tight packing alone does not produce: it expects reserved zero regions
at fixed hex-string offsets. Each form below is therefore built as

    encode_packed(types, values) -> "0x..." -> zero nibbles spliced in at
    fixed character offsets -> bytes

Forms
-----
- price word          : int192                          + 16 zeros at 3
- short               : (int192, bytes32)               + 16 zeros at 3
- timestamped (index) : (int192, uint8, uint256)        + 16 zeros at 3,
                                                          then 62 zeros at 46
- timestamped legacy  : (int192, bytes32, uint256)      + 16 zeros at 3

Offsets count characters of the 0x-prefixed string, so offset 3 falls after
the first nibble of the price. They are part of the wire layout.

Prices are integers already scaled by 1e18 (use `to_fixed` to scale a human
decimal). Everything here is pure: no I/O, no clock.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Optional, Sequence, Union

from eth_abi.packed import encode_packed

from ..errors import MalformedReportInput
from ..utils.bytes import fits_signed, fits_unsigned, from_hex

PRICE_DECIMALS = 18

HEADER_PAD_OFFSET = 3
HEADER_PAD_NIBBLES = 16
INDEX_PAD_OFFSET = 46
INDEX_PAD_NIBBLES = 62

PriceLike = Union[int, str]
FeedLike = Union[int, bytes, bytearray, str]


# --------------------------------------------------------------------------- #
# Input normalization
# --------------------------------------------------------------------------- #

def to_fixed(value: Union[str, int, Decimal], decimals: int = PRICE_DECIMALS) -> int:
    """
    Scale a human decimal ("2310.5") to an integer with `decimals` places.

    Floats are refused; pass a string. Precision beyond `decimals` is an error,
    never rounded away.
    """
    if isinstance(value, bool) or isinstance(value, float):
        raise MalformedReportInput("price must be a decimal string or int, not float", field="price", value=value)
    try:
        d = Decimal(str(value).strip())
    except InvalidOperation as e:
        raise MalformedReportInput(f"not a decimal number: {value!r}", field="price", value=value) from e
    if not d.is_finite():
        raise MalformedReportInput("price must be finite", field="price", value=value)
    scaled = d.scaleb(decimals)
    if scaled != scaled.to_integral_value():
        raise MalformedReportInput(f"more than {decimals} decimal places", field="price", value=value)
    return int(scaled)


def _price(value: PriceLike) -> int:
    if isinstance(value, bool):
        raise MalformedReportInput("price must be an integer", field="price", value=value)
    if isinstance(value, int):
        price = value
    elif isinstance(value, str):
        s = value.strip()
        digits = s[1:] if s[:1] in ("-", "+") else s
        if not (digits.isascii() and digits.isdigit()):
            raise MalformedReportInput("price string must be a scaled decimal integer", field="price", value=value)
        price = int(s)
    else:
        raise MalformedReportInput(f"unsupported price type {type(value).__name__}", field="price", value=value)
    if not fits_signed(price, 192):
        raise MalformedReportInput("price does not fit int192", field="price", value=value)
    return price


def _feed_bytes32(value: FeedLike) -> bytes:
    if isinstance(value, bool):
        raise MalformedReportInput("feed id must be an integer or 32 bytes", field="feed_id", value=value)
    if isinstance(value, int):
        if not fits_unsigned(value, 256):
            raise MalformedReportInput("feed id does not fit 32 bytes", field="feed_id", value=value)
        return value.to_bytes(32, "big")
    if isinstance(value, str):
        try:
            raw = from_hex(value)
        except ValueError as e:
            raise MalformedReportInput(str(e), field="feed_id", value=value) from e
    elif isinstance(value, (bytes, bytearray)):
        raw = bytes(value)
    else:
        raise MalformedReportInput(f"unsupported feed id type {type(value).__name__}", field="feed_id", value=value)
    if len(raw) != 32:
        raise MalformedReportInput(f"feed id must be 32 bytes, got {len(raw)}", field="feed_id", value=value)
    return raw


def _feed_index(value: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or not fits_unsigned(value, 8):
        raise MalformedReportInput("feed index must be an integer in [0, 255]", field="feed_id", value=value)
    return value


def _timestamp(value: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or not fits_unsigned(value, 256):
        raise MalformedReportInput("timestamp must be an unsigned 256-bit integer", field="timestamp", value=value)
    return value


# --------------------------------------------------------------------------- #
# Layout
# --------------------------------------------------------------------------- #

def _splice_zeros(hex_str: str, offset: int, nibbles: int) -> str:
    return hex_str[:offset] + "0" * nibbles + hex_str[offset:]


def _packed_hex(types: Sequence[str], values: Sequence[object]) -> str:
    return "0x" + encode_packed(list(types), list(values)).hex()


def encode_price_word_hex(price: PriceLike) -> str:
    """int192 price widened to a 32-byte word with the header pad."""
    packed = _packed_hex(["int192"], [_price(price)])
    return _splice_zeros(packed, HEADER_PAD_OFFSET, HEADER_PAD_NIBBLES)


def encode_price_report_hex(price: PriceLike, feed_id: FeedLike) -> str:
    packed = _packed_hex(["int192", "bytes32"], [_price(price), _feed_bytes32(feed_id)])
    return _splice_zeros(packed, HEADER_PAD_OFFSET, HEADER_PAD_NIBBLES)


def encode_timestamped_report_hex(price: PriceLike, feed_index: int, timestamp: int) -> str:
    packed = _packed_hex(
        ["int192", "uint8", "uint256"],
        [_price(price), _feed_index(feed_index), _timestamp(timestamp)],
    )
    out = _splice_zeros(packed, HEADER_PAD_OFFSET, HEADER_PAD_NIBBLES)
    return _splice_zeros(out, INDEX_PAD_OFFSET, INDEX_PAD_NIBBLES)


def encode_legacy_report_hex(price: PriceLike, feed_id: FeedLike, timestamp: int) -> str:
    packed = _packed_hex(
        ["int192", "bytes32", "uint256"],
        [_price(price), _feed_bytes32(feed_id), _timestamp(timestamp)],
    )
    return _splice_zeros(packed, HEADER_PAD_OFFSET, HEADER_PAD_NIBBLES)


def encode_report_hex(price: PriceLike, feed_id: FeedLike, timestamp: Optional[int] = None) -> str:
    """
    Pick the layout from the inputs:
      - no timestamp                      -> short form
      - timestamp + integer id in 0..255  -> timestamped index form
      - timestamp + anything else         -> legacy form
    """
    if timestamp is None:
        return encode_price_report_hex(price, feed_id)
    if isinstance(feed_id, int) and not isinstance(feed_id, bool) and 0 <= feed_id <= 0xFF:
        return encode_timestamped_report_hex(price, feed_id, timestamp)
    return encode_legacy_report_hex(price, feed_id, timestamp)


def encode_price_word(price: PriceLike) -> bytes:
    return from_hex(encode_price_word_hex(price))


def encode_price_report(price: PriceLike, feed_id: FeedLike) -> bytes:
    return from_hex(encode_price_report_hex(price, feed_id))


def encode_timestamped_report(price: PriceLike, feed_index: int, timestamp: int) -> bytes:
    return from_hex(encode_timestamped_report_hex(price, feed_index, timestamp))


def encode_legacy_report(price: PriceLike, feed_id: FeedLike, timestamp: int) -> bytes:
    return from_hex(encode_legacy_report_hex(price, feed_id, timestamp))


def encode_report(price: PriceLike, feed_id: FeedLike, timestamp: Optional[int] = None) -> bytes:
    return from_hex(encode_report_hex(price, feed_id, timestamp))


@dataclass(frozen=True)
class Report:
    """An immutable (price, feed id, timestamp?) tuple ready for encoding."""

    price: PriceLike
    feed_id: FeedLike
    timestamp: Optional[int] = None

    @classmethod
    def from_decimal(
        cls,
        price: Union[str, int, Decimal],
        feed_id: FeedLike,
        timestamp: Optional[int] = None,
    ) -> "Report":
        return cls(to_fixed(price), feed_id, timestamp)

    def encode(self) -> bytes:
        return encode_report(self.price, self.feed_id, self.timestamp)

    def encode_hex(self) -> str:
        return encode_report_hex(self.price, self.feed_id, self.timestamp)


__all__ = [
    "PRICE_DECIMALS",
    "Report",
    "to_fixed",
    "encode_report",
    "encode_report_hex",
    "encode_price_word",
    "encode_price_word_hex",
    "encode_price_report",
    "encode_price_report_hex",
    "encode_timestamped_report",
    "encode_timestamped_report_hex",
    "encode_legacy_report",
    "encode_legacy_report_hex",
]
