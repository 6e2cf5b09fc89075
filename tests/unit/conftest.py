"""Conftest for unit tests - every test under tests/unit gets the unit marker."""

import pytest


def pytest_collection_modifyitems(config, items):
    for item in items:
        if "unit" in item.path.parts:
            item.add_marker(pytest.mark.unit)
