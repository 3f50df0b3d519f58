import os
from pathlib import Path

import pytest

CONFIG_PATH = Path(__file__).resolve().parents[1] / "config.yaml"
os.environ["GENUI_CONFIG"] = str(CONFIG_PATH)

from genui.config import load_config  # noqa: E402


@pytest.fixture(autouse=True)
def engine_config():
    """Fresh copy of the sample config for every test."""
    return load_config(str(CONFIG_PATH))


@pytest.fixture
def static_fetcher():
    """Build a data-fetch collaborator that always returns ``value``."""

    def make(value):
        queries = []

        async def fetch(query):
            queries.append(query)
            return value

        fetch.queries = queries
        return fetch

    return make
