from __future__ import annotations

import pytest

from chainops.logging import clear_context


@pytest.fixture
def anyio_backend() -> str:
    # The coordinator races its confirmation wait with asyncio.wait.
    return "asyncio"


@pytest.fixture(autouse=True)
def _fresh_log_context():
    clear_context()
    yield
    clear_context()
