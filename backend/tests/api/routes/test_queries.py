"""Tests for the query API: execute, cancel, active, test-connection."""

from unittest.mock import AsyncMock, MagicMock, patch

from fastapi.testclient import TestClient

from sqlpane.core.config import settings
from sqlpane.core.errors import (
    AmbiguousCancelError,
    ConnectError,
    DuplicateQueryError,
    QueryCancelledError,
    QueryError,
    SerializationError,
)


def _base() -> str:
    return f"{settings.API_V1_STR}/queries"


def _body(**overrides: object) -> dict:
    body = {"connection_string": "postgresql://u:p@localhost/db", "query": "SELECT 1"}
    body.update(overrides)
    return body


# --- execute ---


@patch("sqlpane.api.routes.queries.execute_query", new_callable=AsyncMock)
def test_execute_returns_wire_json(mock_execute: AsyncMock, client: TestClient) -> None:
    mock_execute.return_value = '[[["flag", "bool", "true"]], [["flag", "bool", "<<null>>"]]]'

    response = client.post(f"{_base()}/execute", json=_body(query_id="q-1"))

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("application/json")
    assert response.headers["X-Query-Id"] == "q-1"
    assert response.json() == [[["flag", "bool", "true"]], [["flag", "bool", "<<null>>"]]]
    mock_execute.assert_awaited_once_with(
        "postgresql://u:p@localhost/db", "SELECT 1", query_id="q-1"
    )


@patch("sqlpane.api.routes.queries.execute_query", new_callable=AsyncMock)
def test_execute_generates_query_id(mock_execute: AsyncMock, client: TestClient) -> None:
    mock_execute.return_value = "[]"

    response = client.post(f"{_base()}/execute", json=_body())

    assert response.status_code == 200
    query_id = response.headers["X-Query-Id"]
    assert len(query_id) == 36
    assert mock_execute.call_args.kwargs["query_id"] == query_id


@patch("sqlpane.api.routes.queries.execute_query", new_callable=AsyncMock)
def test_execute_error_statuses(mock_execute: AsyncMock, client: TestClient) -> None:
    cases = [
        (ConnectError("could not connect to server"), 502),
        (QueryError('syntax error at or near "SELEC"'), 400),
        (QueryCancelledError(), 409),
        (DuplicateQueryError("Query 'q' is already running"), 409),
        (SerializationError("Result serialization failed"), 500),
    ]
    for error, status in cases:
        mock_execute.side_effect = error
        response = client.post(f"{_base()}/execute", json=_body())
        assert response.status_code == status
        assert response.json() == {"detail": str(error)}


def test_execute_cancelled_message(client: TestClient) -> None:
    with patch(
        "sqlpane.api.routes.queries.execute_query",
        new=AsyncMock(side_effect=QueryCancelledError()),
    ):
        response = client.post(f"{_base()}/execute", json=_body())
    assert response.json() == {"detail": "Query was cancelled"}


def test_execute_missing_query_is_422(client: TestClient) -> None:
    response = client.post(
        f"{_base()}/execute", json={"connection_string": "dbname=x"}
    )
    assert response.status_code == 422
    assert "query" in response.json()["detail"]


# --- cancel ---


def test_cancel_sole_nothing_running(client: TestClient) -> None:
    response = client.post(f"{_base()}/cancel")
    assert response.status_code == 200
    assert response.json() == {"query_id": None, "cancelled": False}


@patch("sqlpane.api.routes.queries.get_cancellation_broker")
def test_cancel_sole_one_running(mock_broker: MagicMock, client: TestClient) -> None:
    mock_broker.return_value.cancel_sole.return_value = "q-1"
    response = client.post(f"{_base()}/cancel")
    assert response.status_code == 200
    assert response.json() == {"query_id": "q-1", "cancelled": True}


@patch("sqlpane.api.routes.queries.get_cancellation_broker")
def test_cancel_sole_ambiguous(mock_broker: MagicMock, client: TestClient) -> None:
    mock_broker.return_value.cancel_sole.side_effect = AmbiguousCancelError(
        "2 queries are running; cancel one by its query id"
    )
    response = client.post(f"{_base()}/cancel")
    assert response.status_code == 409
    assert "cancel one by its query id" in response.json()["detail"]


def test_cancel_unknown_id_is_noop(client: TestClient) -> None:
    response = client.post(f"{_base()}/nope/cancel")
    assert response.status_code == 200
    assert response.json() == {"query_id": "nope", "cancelled": False}


@patch("sqlpane.api.routes.queries.cancel_query")
def test_cancel_by_id(mock_cancel: MagicMock, client: TestClient) -> None:
    mock_cancel.return_value = True
    response = client.post(f"{_base()}/q-7/cancel")
    assert response.status_code == 200
    assert response.json() == {"query_id": "q-7", "cancelled": True}
    mock_cancel.assert_called_once_with("q-7")


# --- active ---


def test_active_empty(client: TestClient) -> None:
    response = client.get(f"{_base()}/active")
    assert response.status_code == 200
    assert response.json() == []


@patch("sqlpane.api.routes.queries.active_queries")
def test_active_lists_ids(mock_active: MagicMock, client: TestClient) -> None:
    mock_active.return_value = ["a", "b"]
    assert client.get(f"{_base()}/active").json() == ["a", "b"]


# --- test-connection ---


@patch("sqlpane.api.routes.queries.check_connection", new_callable=AsyncMock)
def test_test_connection(mock_check: AsyncMock, client: TestClient) -> None:
    mock_check.return_value = (True, "Connection successful")
    response = client.post(
        f"{_base()}/test-connection", json={"connection_string": "dbname=x"}
    )
    assert response.status_code == 200
    assert response.json() == {"ok": True, "message": "Connection successful"}
    mock_check.assert_awaited_once_with("dbname=x")


@patch("sqlpane.api.routes.queries.check_connection", new_callable=AsyncMock)
def test_test_connection_failure(mock_check: AsyncMock, client: TestClient) -> None:
    mock_check.return_value = (False, "connection refused")
    response = client.post(
        f"{_base()}/test-connection", json={"connection_string": "dbname=x"}
    )
    assert response.json() == {"ok": False, "message": "connection refused"}


# --- utils ---


def test_health_check(client: TestClient) -> None:
    response = client.get(f"{settings.API_V1_STR}/utils/health-check/")
    assert response.status_code == 200
    assert response.json() is True
