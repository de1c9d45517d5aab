from __future__ import annotations

import os
import sys
import tempfile
from pathlib import Path

import pytest

ROOT = str(Path(__file__).resolve().parents[1])
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

# Keep per-run log files out of the repo during tests.
os.environ.setdefault("LIVERELAY_LOG_DIR", str(Path(tempfile.gettempdir()) / "liverelay-test-logs"))

from tests.fakes import FakePresence, FakeProber, FakeTransport  # noqa: E402


@pytest.fixture
def prober():
    return FakeProber()


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def presence():
    return FakePresence()
