"""Shared fixtures for cloudmediator tests."""

from __future__ import annotations

import pytest

from cloudmediator.bootstrap import MediatorBuilder

from sample_messages import TRACE


@pytest.fixture(autouse=True)
def clear_trace():
    TRACE.clear()
    yield
    TRACE.clear()


@pytest.fixture
def trace() -> list[str]:
    return TRACE


@pytest.fixture
def builder() -> MediatorBuilder:
    return MediatorBuilder()
