"""Pytest configuration - project root on sys.path, tests run from a temp dir."""
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))


@pytest.fixture(autouse=True)
def _isolated_cwd(tmp_path, monkeypatch):
    # default data/artifacts paths are relative; keep them out of the repo
    monkeypatch.chdir(tmp_path)
