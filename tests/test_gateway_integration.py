"""Integration tests for the Supabase record gateway with mocked HTTP responses."""

import json
from datetime import UTC, datetime
from typing import Any

import httpx
import pytest
import respx
from pydantic import ValidationError

from querytrack.errors import NotFound, Unauthenticated, Unavailable, ValidationFailure
from querytrack.gateway import supabase
from querytrack.gateway.http import error_message, supabase_headers
from querytrack.models import Query, QueryCreate, QueryStatus, QueryTypeCreate, QueryUpdate
from querytrack.session import SessionContext

BASE = "https://project.supabase.test"
QUERIES_URL = f"{BASE}/rest/v1/queries"
TYPES_URL = f"{BASE}/rest/v1/query_types"
SUMMARY_URL = f"{BASE}/functions/v1/generate-summary"

SESSION = SessionContext(access_token="user-token", user_id="user-1", email="a@example.com")


def _row(query_id: str = "q1", **overrides: Any) -> dict[str, Any]:
    row: dict[str, Any] = {
        "id": query_id,
        "title": "Database outage",
        "description": "Primary went down",
        "status": "pending",
        "priority": "high",
        "query_type_id": "t1",
        "ai_summary": None,
        "created_at": "2024-01-05T10:00:00+00:00",
        "updated_at": "2024-01-05T10:00:00+00:00",
        "resolved_at": None,
        "user_id": "user-1",
        "query_types": {"name": "Incident", "color": "#EF4444"},
    }
    row.update(overrides)
    return row


@pytest.fixture(autouse=True)
def _use_mock_settings(mock_settings: Any) -> None:
    """Automatically use mock settings for all tests in this module."""


# --- headers and error bodies ---


class TestHeaders:
    def test_user_token_used_when_signed_in(self) -> None:
        headers = supabase_headers(SESSION, prefer="return=representation")
        assert headers["apikey"] == "anon-test-key"
        assert headers["Authorization"] == "Bearer user-token"
        assert headers["Prefer"] == "return=representation"

    def test_anon_key_used_without_session(self) -> None:
        headers = supabase_headers()
        assert headers["Authorization"] == "Bearer anon-test-key"
        assert "Prefer" not in headers


class TestErrorMessage:
    @pytest.mark.parametrize(
        ("body", "expected"),
        [
            ({"message": "JWT expired"}, "JWT expired"),
            ({"msg": "Invalid login credentials"}, "Invalid login credentials"),
            ({"error_description": "bad grant"}, "bad grant"),
            ({"code": "42501"}, "HTTP 400"),
        ],
    )
    def test_message_keys(self, body: dict[str, str], expected: str) -> None:
        assert error_message(httpx.Response(400, json=body)) == expected

    def test_plain_text_body(self) -> None:
        assert error_message(httpx.Response(502, text="Bad gateway")) == "Bad gateway"


# --- list / read ---


@pytest.mark.integration
class TestListQueries:
    @respx.mock
    async def test_joined_rows_parsed(self) -> None:
        route = respx.get(QUERIES_URL).mock(
            return_value=httpx.Response(200, json=[_row("q2"), _row("q1", query_types=None, query_type_id=None)])
        )

        queries = await supabase.list_queries(SESSION)

        assert [q.id for q in queries] == ["q2", "q1"]
        assert queries[0].type_name == "Incident"
        assert queries[1].type_name is None
        request = route.calls.last.request
        assert request.url.params["select"] == "*,query_types(name,color)"
        assert request.url.params["order"] == "created_at.desc"
        assert request.headers["authorization"] == "Bearer user-token"
        assert request.headers["apikey"] == "anon-test-key"

    @respx.mock
    async def test_unknown_status_is_malformed(self) -> None:
        respx.get(QUERIES_URL).mock(return_value=httpx.Response(200, json=[_row(status="archived")]))

        with pytest.raises(Unavailable, match="Malformed"):
            await supabase.list_queries(SESSION)

    @respx.mock
    async def test_non_json_body(self) -> None:
        respx.get(QUERIES_URL).mock(return_value=httpx.Response(200, text="<html>oops</html>"))

        with pytest.raises(Unavailable, match="Malformed"):
            await supabase.list_queries(SESSION)

    @respx.mock
    async def test_object_instead_of_array(self) -> None:
        respx.get(QUERIES_URL).mock(return_value=httpx.Response(200, json={"rows": []}))

        with pytest.raises(Unavailable):
            await supabase.list_queries(SESSION)

    async def test_requires_token(self) -> None:
        with pytest.raises(Unauthenticated):
            await supabase.list_queries(SessionContext(access_token=""))

    @respx.mock
    async def test_expired_token(self) -> None:
        respx.get(QUERIES_URL).mock(return_value=httpx.Response(401, json={"message": "JWT expired"}))

        with pytest.raises(Unauthenticated, match="JWT expired"):
            await supabase.list_queries(SESSION)

    @respx.mock
    async def test_backend_unreachable(self) -> None:
        respx.get(QUERIES_URL).mock(side_effect=httpx.ConnectError("Connection refused"))

        with pytest.raises(Unavailable, match="Cannot reach"):
            await supabase.list_queries(SESSION)

    @respx.mock
    async def test_backend_timeout(self) -> None:
        respx.get(QUERIES_URL).mock(side_effect=httpx.ReadTimeout("Read timed out"))

        with pytest.raises(Unavailable, match="did not respond"):
            await supabase.list_queries(SESSION)

    @respx.mock
    async def test_server_error(self) -> None:
        respx.get(QUERIES_URL).mock(return_value=httpx.Response(500, json={"message": "boom"}))

        with pytest.raises(Unavailable, match="boom"):
            await supabase.list_queries(SESSION)


@pytest.mark.integration
class TestGetQuery:
    @respx.mock
    async def test_found(self) -> None:
        route = respx.get(QUERIES_URL).mock(return_value=httpx.Response(200, json=[_row("q9")]))

        query = await supabase.get_query(SESSION, "q9")

        assert query.id == "q9"
        assert route.calls.last.request.url.params["id"] == "eq.q9"

    @respx.mock
    async def test_missing(self) -> None:
        respx.get(QUERIES_URL).mock(return_value=httpx.Response(200, json=[]))

        with pytest.raises(NotFound):
            await supabase.get_query(SESSION, "gone")


# --- types ---


@pytest.mark.integration
class TestQueryTypes:
    @respx.mock
    async def test_list_sorted_by_name(self) -> None:
        route = respx.get(TYPES_URL).mock(
            return_value=httpx.Response(200, json=[{"id": "t1", "name": "Bug", "color": "#EF4444"}])
        )

        types = await supabase.list_types(SESSION)

        assert types[0].name == "Bug"
        assert route.calls.last.request.url.params["order"] == "name.asc"

    @respx.mock
    async def test_create_attaches_user(self) -> None:
        route = respx.post(TYPES_URL).mock(
            return_value=httpx.Response(201, json=[{"id": "t2", "name": "Billing", "color": "#10B981"}])
        )

        created = await supabase.create_type(SESSION, QueryTypeCreate(name="Billing", color="#10B981"))

        assert created.id == "t2"
        request = route.calls.last.request
        assert json.loads(request.content) == {"name": "Billing", "color": "#10B981", "user_id": "user-1"}
        assert request.headers["prefer"] == "return=representation"

    async def test_create_without_user_id(self) -> None:
        with pytest.raises(Unauthenticated):
            await supabase.create_type(SessionContext(access_token="tok"), QueryTypeCreate(name="x"))

    @respx.mock
    async def test_delete_missing_type(self) -> None:
        respx.delete(TYPES_URL).mock(return_value=httpx.Response(200, json=[]))

        with pytest.raises(NotFound):
            await supabase.delete_type(SESSION, "t-missing")

    @respx.mock
    async def test_delete_existing_type(self) -> None:
        route = respx.delete(TYPES_URL).mock(return_value=httpx.Response(200, json=[{"id": "t1"}]))

        await supabase.delete_type(SESSION, "t1")

        assert route.calls.last.request.url.params["id"] == "eq.t1"


# --- writes ---


@pytest.mark.integration
class TestCreateQuery:
    @respx.mock
    async def test_create_returns_stored_row(self) -> None:
        route = respx.post(QUERIES_URL).mock(return_value=httpx.Response(201, json=[_row("new")]))

        created = await supabase.create_query(SESSION, QueryCreate(title="Database outage"))

        assert created.id == "new"
        body = json.loads(route.calls.last.request.content)
        assert body["user_id"] == "user-1"
        assert body["status"] == "pending"
        assert body["priority"] == "medium"

    @respx.mock
    async def test_batch_insert_is_one_request(self) -> None:
        route = respx.post(QUERIES_URL).mock(return_value=httpx.Response(201))

        count = await supabase.create_queries(
            SESSION, [QueryCreate(title="a"), QueryCreate(title="b"), QueryCreate(title="c")]
        )

        assert count == 3
        assert route.call_count == 1
        request = route.calls.last.request
        assert [r["title"] for r in json.loads(request.content)] == ["a", "b", "c"]
        assert request.headers["prefer"] == "return=minimal"

    async def test_batch_insert_rejects_empty(self) -> None:
        with pytest.raises(ValidationFailure):
            await supabase.create_queries(SESSION, [])

    @respx.mock
    async def test_batch_insert_fails_as_a_whole(self) -> None:
        respx.post(QUERIES_URL).mock(
            return_value=httpx.Response(400, json={"message": "invalid input value for enum"})
        )

        with pytest.raises(Unavailable, match="invalid input value"):
            await supabase.create_queries(SESSION, [QueryCreate(title="a")])


class TestBuildUpdate:
    NOW = datetime(2024, 1, 6, 12, 0, tzinfo=UTC)

    @pytest.mark.parametrize("status", [QueryStatus.RESOLVED, QueryStatus.CLOSED])
    def test_resolving_stamps_resolved_at(self, status: QueryStatus) -> None:
        changes = supabase.build_update(QueryUpdate(status=status), self.NOW)
        assert changes == {"status": status.value, "resolved_at": "2024-01-06T12:00:00+00:00"}

    @pytest.mark.parametrize("status", [QueryStatus.PENDING, QueryStatus.IN_PROGRESS])
    def test_reopening_leaves_resolved_at_alone(self, status: QueryStatus) -> None:
        changes = supabase.build_update(QueryUpdate(status=status), self.NOW)
        assert changes == {"status": status.value}

    def test_only_set_fields_sent(self) -> None:
        changes = supabase.build_update(QueryUpdate(title="New title"), self.NOW)
        assert changes == {"title": "New title"}

    def test_explicit_null_is_sent(self) -> None:
        changes = supabase.build_update(QueryUpdate(query_type_id=None), self.NOW)
        assert changes == {"query_type_id": None}

    @pytest.mark.parametrize("field", ["title", "status", "priority"])
    def test_null_required_column_rejected(self, field: str) -> None:
        with pytest.raises(ValidationError, match="cannot be empty"):
            QueryUpdate.model_validate({field: None})


@pytest.mark.integration
class TestUpdateQuery:
    @respx.mock
    async def test_status_change_stamps_resolved_at(self) -> None:
        route = respx.patch(QUERIES_URL).mock(
            return_value=httpx.Response(200, json=[_row(status="resolved", resolved_at="2024-01-06T12:00:00+00:00")])
        )

        updated = await supabase.update_query(SESSION, "q1", QueryUpdate(status=QueryStatus.RESOLVED))

        assert updated.status is QueryStatus.RESOLVED
        body = json.loads(route.calls.last.request.content)
        assert body["status"] == "resolved"
        assert "resolved_at" in body
        assert route.calls.last.request.url.params["id"] == "eq.q1"

    @respx.mock
    async def test_missing_row_is_not_found(self) -> None:
        respx.patch(QUERIES_URL).mock(return_value=httpx.Response(200, json=[]))

        with pytest.raises(NotFound):
            await supabase.update_query(SESSION, "gone", QueryUpdate(title="x"))

    async def test_nothing_to_update(self) -> None:
        with pytest.raises(ValidationFailure, match="Nothing to update"):
            await supabase.update_query(SESSION, "q1", QueryUpdate())


@pytest.mark.integration
class TestDeleteQuery:
    @respx.mock
    async def test_delete(self) -> None:
        route = respx.delete(QUERIES_URL).mock(return_value=httpx.Response(200, json=[{"id": "q1"}]))

        await supabase.delete_query(SESSION, "q1")

        assert route.calls.last.request.url.params["id"] == "eq.q1"

    @respx.mock
    async def test_delete_missing(self) -> None:
        respx.delete(QUERIES_URL).mock(return_value=httpx.Response(200, json=[]))

        with pytest.raises(NotFound):
            await supabase.delete_query(SESSION, "gone")


# --- summaries ---


@pytest.mark.integration
class TestSummary:
    @respx.mock
    async def test_request_summary(self) -> None:
        route = respx.post(SUMMARY_URL).mock(
            return_value=httpx.Response(200, json={"summary": "  Primary DB failed over.  "})
        )

        summary = await supabase.request_summary(SESSION, "Database outage", "Primary went down")

        assert summary == "Primary DB failed over."
        assert json.loads(route.calls.last.request.content) == {
            "title": "Database outage",
            "description": "Primary went down",
        }

    @respx.mock
    async def test_missing_summary(self) -> None:
        respx.post(SUMMARY_URL).mock(return_value=httpx.Response(200, json={"error": None}))

        with pytest.raises(Unavailable, match="No summary generated"):
            await supabase.request_summary(SESSION, "t", None)

    @respx.mock
    async def test_function_failure(self) -> None:
        respx.post(SUMMARY_URL).mock(return_value=httpx.Response(500, json={"error": "model overloaded"}))

        with pytest.raises(Unavailable, match="model overloaded"):
            await supabase.request_summary(SESSION, "t", None)

    @respx.mock
    async def test_generate_and_store(self) -> None:
        respx.post(SUMMARY_URL).mock(return_value=httpx.Response(200, json={"summary": "Short summary"}))
        patch_route = respx.patch(QUERIES_URL).mock(
            return_value=httpx.Response(200, json=[_row(ai_summary="Short summary")])
        )
        query = Query.model_validate(_row())

        updated = await supabase.generate_and_store_summary(SESSION, query)

        assert updated.ai_summary == "Short summary"
        assert json.loads(patch_route.calls.last.request.content) == {"ai_summary": "Short summary"}

    @respx.mock
    async def test_failed_summary_leaves_record_untouched(self) -> None:
        respx.post(SUMMARY_URL).mock(return_value=httpx.Response(200, json={}))
        patch_route = respx.patch(QUERIES_URL).mock(return_value=httpx.Response(200, json=[_row()]))
        query = Query.model_validate(_row())

        with pytest.raises(Unavailable):
            await supabase.generate_and_store_summary(SESSION, query)
        assert not patch_route.called


# --- health ---


@pytest.mark.integration
class TestCheckHealth:
    @respx.mock
    async def test_healthy(self) -> None:
        respx.get(f"{BASE}/auth/v1/health").mock(return_value=httpx.Response(200, json={"name": "GoTrue"}))

        assert await supabase.check_health() == (True, None)

    @respx.mock
    async def test_unreachable(self) -> None:
        respx.get(f"{BASE}/auth/v1/health").mock(side_effect=httpx.ConnectError("refused"))

        healthy, detail = await supabase.check_health()

        assert healthy is False
        assert detail == "Cannot reach the backend"
