from __future__ import annotations

import pytest

from campusdb.store import DocumentStore


@pytest.fixture
def data_dir(tmp_path):
    return tmp_path / "data"


@pytest.fixture
def store(data_dir):
    return DocumentStore(data_dir)
