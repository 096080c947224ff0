"""Shared fixtures for Cellarbook tests."""

import pytest

from cellarbook.schema import Wine


@pytest.fixture
def make_wine():
    """Factory for Wine records with unique ids."""
    counter = {'n': 0}

    def _make(**fields):
        counter['n'] += 1
        fields.setdefault('id', f"wine-{counter['n']}")
        return Wine(**fields)

    return _make
