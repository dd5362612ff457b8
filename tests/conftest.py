"""Pytest configuration and fixtures."""

import pytest

import sft_stackblitz


@pytest.fixture(autouse=True)
def isolated_script_state(tmp_path, monkeypatch):
    """Keep the TSV log and the shared cache out of the real environment."""
    monkeypatch.setattr(sft_stackblitz, "_LOG", tmp_path / "sft_stackblitz_log.tsv")
    monkeypatch.setattr(sft_stackblitz, "_cache", None)
