"""
Pytest configuration and shared fixtures for all kernelgrid tests.

Parsing is the expensive part of building a source-text kernel, so the
parser is shared per session; kernels themselves are cheap and built fresh
in each test.
"""

import sys
import pytest
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))
from kernelgrid.backends import FunctionBuilder
from kernelgrid.frontend.parser import Parser
from kernelgrid.runtime.graphics import ArraySurface


# =============================================================================
# Session-scoped fixtures (shared across all tests)
# =============================================================================

@pytest.fixture(scope="session")
def session_parser():
    """
    Session-scoped parser shared across ALL tests.

    Parser holds no per-parse state; lark caches its LALR tables on disk.
    """
    return Parser()


# =============================================================================
# Function-scoped fixtures (default - one per test)
# =============================================================================

@pytest.fixture
def parser(session_parser):
    return session_parser


@pytest.fixture
def builder():
    """Fresh function builder; registrations must not leak between tests."""
    return FunctionBuilder()


@pytest.fixture
def surface_factory():
    """Factory for in-memory image surfaces."""
    def _make(width: int, height: int) -> ArraySurface:
        return ArraySurface(width, height)
    return _make


@pytest.fixture(autouse=True)
def no_color(monkeypatch):
    """Diagnostics render without ANSI escapes so assertions see plain text."""
    monkeypatch.setenv("NO_COLOR", "1")
    monkeypatch.delenv("KERNELGRID_DEBUG", raising=False)
    yield


# =============================================================================
# Markers
# =============================================================================

def pytest_configure(config):
    """Register custom markers for test organization."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
    config.addinivalue_line(
        "markers", "unit: marks tests as unit tests"
    )
    config.addinivalue_line(
        "markers", "graphical: marks tests that render through an image surface"
    )
