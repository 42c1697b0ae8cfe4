from __future__ import annotations

import os
import shutil
import uuid
from pathlib import Path

import pytest


# Settings variables read by LedgerSettings.load(); a developer's shell must
# not leak a real API key or database path into the suite.
_ISOLATED_ENV_VARS = (
    "PAPERTOOL_INITIAL_CAPITAL",
    "PAPERTOOL_CURRENCY_SYMBOL",
    "PAPERTOOL_DB_PATH",
    "PAPERTOOL_CONFIG",
    "PAPERTOOL_OWNER",
    "FINNHUB_API_KEY",
    "FINNHUB_API_BASE",
    "ALPHA_VANTAGE_API_KEY",
    "ALPHA_VANTAGE_API_BASE",
    "HTTP_TIMEOUT_SECONDS",
    "QUOTE_MAX_AGE_SECONDS",
    "QUOTE_REFRESH_SECONDS",
    "QUOTE_MAX_WORKERS",
)

_PREVIOUS_CWD: Path | None = None
_PREVIOUS_ENV: dict[str, str | None] = {}
_WORKSPACE_ROOT: Path | None = None


def pytest_configure(config: pytest.Config) -> None:
    """Run every test from a throwaway workspace with ledger env vars cleared."""
    global _PREVIOUS_CWD, _PREVIOUS_ENV, _WORKSPACE_ROOT
    repo_root = Path(__file__).resolve().parent.parent
    workspace_root = repo_root / ".tmp" / "test-workspaces" / uuid.uuid4().hex
    (workspace_root / "data").mkdir(parents=True, exist_ok=True)

    _PREVIOUS_CWD = Path.cwd()
    _PREVIOUS_ENV = {key: os.environ.get(key) for key in _ISOLATED_ENV_VARS}
    _WORKSPACE_ROOT = workspace_root

    for key in _ISOLATED_ENV_VARS:
        os.environ.pop(key, None)
    # default db_path is relative, so it lands inside the workspace
    os.chdir(workspace_root)


def pytest_unconfigure(config: pytest.Config) -> None:
    global _PREVIOUS_CWD, _PREVIOUS_ENV, _WORKSPACE_ROOT
    if _PREVIOUS_CWD is not None:
        os.chdir(_PREVIOUS_CWD)
    for key, value in _PREVIOUS_ENV.items():
        if value is None:
            os.environ.pop(key, None)
        else:
            os.environ[key] = value
    if _WORKSPACE_ROOT is not None:
        shutil.rmtree(_WORKSPACE_ROOT, ignore_errors=True)
