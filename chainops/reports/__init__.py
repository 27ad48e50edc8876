from __future__ import annotations

from .codec import (Report, encode_legacy_report, encode_legacy_report_hex,
                    encode_price_report, encode_price_report_hex,
                    encode_price_word, encode_price_word_hex, encode_report,
                    encode_report_hex, encode_timestamped_report,
                    encode_timestamped_report_hex, to_fixed)

__all__ = [
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
