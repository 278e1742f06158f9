"""
Shared fixtures for cesdata tests.
"""

from pathlib import Path
from unittest.mock import Mock

import pytest

from cesdata.config import CESConfig
from cesdata.logging import CESLogger
from cesdata.table import Column, SurveyTable


def make_table():
    return SurveyTable([
        Column(
            "Vote Choice",
            [1, 2, 1],
            label="Which party did you vote for?",
            value_labels={1: "Liberal", 2: "Conservative"},
        ),
        Column("Age", [34, 51, 28], label="Respondent age"),
    ])


@pytest.fixture
def table():
    return make_table()


@pytest.fixture
def config(tmp_path):
    return CESConfig(cache_root=tmp_path / 'cache', download_dir=tmp_path / 'downloads')


@pytest.fixture
def logger():
    return CESLogger(name='cesdata.tests')


@pytest.fixture
def download_manager():
    """Download manager double that writes a few bytes to the destination."""
    manager = Mock()

    def fetch(url, destination, **kwargs):
        Path(destination).write_bytes(b'payload from ' + url.encode())
        return Path(destination)

    manager.fetch.side_effect = fetch
    return manager
