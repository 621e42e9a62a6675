# tests/conftest.py
"""
Global test bootstrap
- Makes SlowAPI rate-limiting test-friendly (bypass by default)
- Keeps AWS out of the picture (fakes only; no credentials needed)
- Pulls in the shared fixtures
"""

from __future__ import annotations

import os
import random

import pytest

# ──────────────────────────────────────────────────────────────────────────────
# 🌱 Test env (set BEFORE importing the app so import-time config sees it)
# ──────────────────────────────────────────────────────────────────────────────
os.environ.setdefault("RATELIMIT_STORAGE_URI", "memory://")
os.environ.setdefault("RATE_LIMIT_ENABLED", "true")
os.environ.setdefault("RATE_LIMIT_TEST_BYPASS", "1")
os.environ.setdefault("RATE_LIMIT_NAMESPACE", f"pytest-{random.getrandbits(32)}")
os.environ.setdefault("ENV", "test")
os.environ.setdefault("LOG_LEVEL", "WARNING")
os.environ.setdefault("AWS_BUCKET_NAME", "media-uploads-test")

# ──────────────────────────────────────────────────────────────────────────────
# 📦 Shared fixtures
# ──────────────────────────────────────────────────────────────────────────────
from tests.fixtures.app import *  # noqa: E402,F401,F403


@pytest.fixture
def anyio_backend():
    return "asyncio"
