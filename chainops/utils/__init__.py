from .bytes import (ensure_bytes, fits_signed, fits_unsigned, from_hex,
                    parse_quantity, to_hex, to_quantity)

__all__ = [
    "to_hex",
    "from_hex",
    "ensure_bytes",
    "to_quantity",
    "parse_quantity",
    "fits_signed",
    "fits_unsigned",
]
