"""
Version of the chainops package.

Bump `__version__` when publishing; the RPC transport embeds it in its
User-Agent header.
"""

from __future__ import annotations

__version__ = "0.1.0"


def user_agent() -> str:
    """Default HTTP User-Agent, e.g. 'chainops-py/0.1.0'."""
    return f"chainops-py/{__version__}"


__all__ = ["__version__", "user_agent"]
