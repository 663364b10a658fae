"""
Shared fixtures: a fresh workbook per test and the form rows used by the
invoice and loan scenarios.
"""

import pytest

from workbook_store import WorkbookStore


@pytest.fixture(autouse=True)
def clean_billing_env(monkeypatch):
    """Keep a developer's .env from changing identifiers or default rates."""
    for name in ("BILLING_ID_PAD_WIDTH", "BILLING_DEFAULT_INTEREST_RATE", "BILLING_WORKBOOK_PATH", "BILLING_LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def workbook_path(tmp_path):
    return tmp_path / "billing.xlsx"


@pytest.fixture
def store(workbook_path):
    store = WorkbookStore(workbook_path)
    store.ensure_initialized()
    return store


@pytest.fixture
def ring_row():
    return {
        "description": "Ring",
        "metal": "GOLD",
        "purity": "22K",
        "weight": "10.000",
        "rate_per_gram": "6000",
        "making_charges": "500",
    }


@pytest.fixture
def chain_row():
    return {
        "description": "Chain",
        "metal": "SILVER",
        "purity": "18K",
        "weight": "5.500",
        "rate_per_gram": "6000",
        "making_charges": "250.50",
    }


@pytest.fixture
def pledge_rows():
    return [
        {"description": "Chain", "metal_type": "GOLD", "purity": "22K", "weight": "12.500"},
        {"description": "Bangle", "metal_type": "GOLD", "purity": "18K", "weight": "20.250"},
    ]
