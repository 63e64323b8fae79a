"""
Pytest configuration and fixtures for HybridChat tests.

Provides shared key pairs, clocks and temporary directories for unit and
integration tests. RSA generation is slow, so participant key pairs are
created once per test session.
"""

import shutil
import tempfile
from pathlib import Path
from typing import Generator

import pytest

from hybridchat.keys import KeyManager, KeyPair


class FakeClock:
    """Manually advanced clock for presence and notice expiry tests."""

    def __init__(self, start: float = 1_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """
    Create a temporary directory for test data.

    Yields:
        Path: Temporary directory path
    """
    tmp = Path(tempfile.mkdtemp(prefix="hybridchat_test_"))
    try:
        yield tmp
    finally:
        shutil.rmtree(tmp, ignore_errors=True)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture(scope="session")
def key_manager() -> KeyManager:
    return KeyManager()


@pytest.fixture(scope="session")
def alice_keys(key_manager) -> KeyPair:
    return key_manager.generate()


@pytest.fixture(scope="session")
def bob_keys(key_manager) -> KeyPair:
    return key_manager.generate()


@pytest.fixture(scope="session")
def carol_keys(key_manager) -> KeyPair:
    return key_manager.generate()


@pytest.fixture(scope="session")
def encoded_keys(alice_keys, bob_keys, carol_keys) -> dict:
    """Base64 SPKI public keys by username."""
    return {
        "alice": KeyManager.export_public(alice_keys),
        "bob": KeyManager.export_public(bob_keys),
        "carol": KeyManager.export_public(carol_keys),
    }


# Pytest marks
def pytest_configure(config):
    """
    Configure pytest markers.

    Args:
        config: Pytest configuration object
    """
    config.addinivalue_line("markers", "unit: mark test as a unit test")
    config.addinivalue_line("markers", "integration: mark test as an integration test")
    config.addinivalue_line("markers", "slow: mark test as slow running")


# Test collection hooks
def pytest_collection_modifyitems(config, items):
    """Add markers based on test location."""
    for item in items:
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)

        if "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)
