"""Tests for the summary CLI script."""

from typing import Any
from unittest.mock import AsyncMock, patch

import pytest

from querytrack.models import Query, QueryTypeRef
from querytrack.session import SessionContext
from scripts.run_summary import format_table, main

SESSION = SessionContext(access_token="tok", user_id="user-1")


def test_columns_aligned() -> None:
    rows: list[list[str | int]] = [
        ["Date", "Bug", "Untyped", "Total"],
        ["2024-01-05", 2, 0, 2],
        ["Total", 12, 1, 13],
    ]
    assert format_table(rows).split("\n") == [
        "Date        Bug  Untyped  Total",
        "2024-01-05    2        0      2",
        "Total        12        1     13",
    ]


class TestMain:
    @pytest.fixture(autouse=True)
    def _credentials(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("QUERYTRACK_EMAIL", "a@example.com")
        monkeypatch.setenv("QUERYTRACK_PASSWORD", "pw")

    async def test_dates_use_report_timezone(self, mock_settings: Any, capsys: pytest.CaptureFixture[str]) -> None:
        mock_settings.report_timezone = "Asia/Tokyo"
        queries = [
            Query(
                id="q1",
                title="Late evening outage",
                created_at="2024-01-05T20:00:00+00:00",
                query_type=QueryTypeRef(name="Bug"),
            )
        ]
        with (
            patch("querytrack.gateway.auth.sign_in", new_callable=AsyncMock, return_value=SESSION),
            patch("querytrack.gateway.auth.sign_out", new_callable=AsyncMock) as sign_out,
            patch("querytrack.gateway.supabase.list_queries", new_callable=AsyncMock, return_value=queries),
        ):
            await main("all", "")

        out = capsys.readouterr().out
        assert "2024-01-06" in out
        assert "2024-01-05" not in out
        sign_out.assert_awaited_once_with(SESSION)

    async def test_empty_summary(self, mock_settings: Any, capsys: pytest.CaptureFixture[str]) -> None:  # noqa: ARG002
        with (
            patch("querytrack.gateway.auth.sign_in", new_callable=AsyncMock, return_value=SESSION),
            patch("querytrack.gateway.auth.sign_out", new_callable=AsyncMock),
            patch("querytrack.gateway.supabase.list_queries", new_callable=AsyncMock, return_value=[]),
        ):
            await main("all", "")

        assert capsys.readouterr().out.strip() == "No queries to summarise."
