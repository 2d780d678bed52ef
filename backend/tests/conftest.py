from collections.abc import Generator

import pytest
from fastapi.testclient import TestClient

from sqlpane.core import cancellation
from sqlpane.main import app


@pytest.fixture(scope="module")
def client() -> Generator[TestClient, None, None]:
    with TestClient(app) as c:
        yield c


@pytest.fixture(autouse=True)
def _fresh_broker() -> Generator[None, None, None]:
    """Each test starts with an empty process-wide cancellation broker."""
    cancellation._broker = None
    yield
    cancellation._broker = None
