"""Pytest configuration and fixtures for SilentProbe tests."""
import os
from pathlib import Path

import pytest


@pytest.fixture(autouse=True)
def _isolated_environment(monkeypatch):
    """Keep SILENTPROBE_* variables from the caller's shell out of every test."""
    for name in list(os.environ):
        if name.startswith("SILENTPROBE_"):
            monkeypatch.delenv(name, raising=False)


def pytest_sessionfinish(session, exitstatus):
    """Fail a --cov run that collected no data.

    A run that never imports the installed ``silentprobe`` package reports 0%
    coverage without failing, which hides a broken test setup.
    """
    cov_enabled = any("--cov" in str(arg) for arg in session.config.args)
    if not cov_enabled:
        return

    coverage_files = list(Path.cwd().glob(".coverage*"))
    if not coverage_files:
        pytest.exit(
            "Coverage was enabled but no data was collected. "
            "Check that tests import from 'silentprobe' (the package), not 'src/silentprobe'.",
            returncode=1,
        )
