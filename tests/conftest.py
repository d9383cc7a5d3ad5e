# ===============================================================================
# PYTEST CONFIGURATION FOR THE STOREFRONT PLATFORM
# ===============================================================================
"""
Global test configuration for the storefront platform.

Test Structure:
- tests/ mirrors apps/ structure for app-specific tests
- tests/factories/ holds model builders and the fake payment gateway
- Naming convention: test_{app}_{feature}.py

Every test that creates a user touches both databases: the ledger row is
written to ``default`` and the profile shadow to ``catalog``.
"""

from collections.abc import Iterator

import pytest
from django.core.cache import cache

from apps.common.config import reset_storefront_config


@pytest.fixture(autouse=True)
def fresh_storefront_config() -> Iterator[None]:
    """Drop cached config and throttle counters around every test."""
    reset_storefront_config()
    cache.clear()
    yield
    reset_storefront_config()
    cache.clear()

