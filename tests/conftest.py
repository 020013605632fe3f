import os

import pytest


@pytest.fixture(autouse=True)
def _clear_env(monkeypatch):
    """Keep developer FASTESTDET_* environment variables out of the tests."""
    for key in list(os.environ):
        if key.startswith("FASTESTDET_"):
            monkeypatch.delenv(key)
