import os
import tempfile
from pathlib import Path

import pytest

_DB_DIR = Path(tempfile.mkdtemp(prefix="pixqr-tests-"))
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_DB_DIR / 'test.db'}"
os.environ["API_KEY"] = "test-key"
os.environ["LOGGING__JSON_LOGS"] = "false"

from fastapi.testclient import TestClient  # noqa: E402

from pixqr.api import app  # noqa: E402
from pixqr.crc import crc16_hex  # noqa: E402
from pixqr.pix_encoder import PixPayloadRequest  # noqa: E402

EXAMPLE_PREFIX = (
    "000201"
    "26330014BR.GOV.BCB.PIX011112345678900"
    "52040000"
    "5303986"
    "540513.50"
    "5802BR"
    "5915PDV Inteligente"
    "6009SAO PAULO"
    "62210517TXID1700000000000"
    "6304"
)


@pytest.fixture
def example_request():
    return PixPayloadRequest(
        pix_key="12345678900",
        amount="13.50",
        merchant_name="PDV Inteligente",
        merchant_city="SAO PAULO",
        transaction_id="TXID1700000000000",
    )


@pytest.fixture
def example_payload():
    return EXAMPLE_PREFIX + crc16_hex(EXAMPLE_PREFIX)


@pytest.fixture(scope="session")
def client():
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def auth_header():
    return {"X-API-Key": "test-key"}
