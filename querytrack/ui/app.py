"""Streamlit UI for QueryTrack.

Talks to the FastAPI backend through ``QueryTrackClient``. Run with:
    streamlit run querytrack/ui/app.py
"""

import os

import streamlit as st
import streamlit.components.v1 as components

from querytrack.errors import QueryTrackError
from querytrack.models import (
    DEFAULT_TYPE_COLOR,
    Query,
    QueryCreate,
    QueryPriority,
    QueryStatus,
    QueryType,
    QueryTypeCreate,
    QueryUpdate,
)
from querytrack.report.aggregator import count_by_type
from querytrack.report.export import ExportKind
from querytrack.report.filtering import ALL_STATUSES, filter_queries
from querytrack.report.printing import launch_print, popup_print_script
from querytrack.session import SessionStore
from querytrack.styles import badge_html, priority_style, status_style, type_badge_html
from querytrack.ui.client import QueryTrackClient

API_URL = os.environ.get("API_URL", "http://localhost:8000")

STATUS_OPTIONS = [s.value for s in QueryStatus]
PRIORITY_OPTIONS = [p.value for p in QueryPriority]
NO_TYPE = ""

st.set_page_config(page_title="QueryTrack", layout="wide")

# ---------------------------------------------------------------------------
# Session state
# ---------------------------------------------------------------------------

if "sessions" not in st.session_state:
    st.session_state.sessions = SessionStore()

if "client" not in st.session_state:
    st.session_state.client = QueryTrackClient(API_URL, st.session_state.sessions)

client: QueryTrackClient = st.session_state.client
sessions: SessionStore = st.session_state.sessions


def _notify_error(exc: QueryTrackError) -> None:
    st.toast(exc.message, icon=":material/error:")
    st.error(exc.message)


def _type_label(types: list[QueryType], type_id: str) -> str:
    if type_id == NO_TYPE:
        return "No type"
    return next((t.name for t in types if t.id == type_id), "Unknown type")


# ---------------------------------------------------------------------------
# Sign-in
# ---------------------------------------------------------------------------


def render_auth() -> None:
    st.title("QueryTrack")
    st.caption("Smart query management")
    sign_in_tab, sign_up_tab = st.tabs(["Sign in", "Sign up"])

    with sign_in_tab, st.form("sign_in"):
        email = st.text_input("Email")
        password = st.text_input("Password", type="password")
        submitted = st.form_submit_button("Sign in")
    if submitted:
        try:
            client.sign_in(email, password)
        except QueryTrackError as exc:
            _notify_error(exc)
        else:
            st.rerun()

    with sign_up_tab, st.form("sign_up"):
        new_email = st.text_input("Email", key="signup_email")
        new_password = st.text_input("Password", type="password", key="signup_password")
        registered = st.form_submit_button("Create account")
    if registered:
        try:
            signed_in = client.sign_up(new_email, new_password)
        except QueryTrackError as exc:
            _notify_error(exc)
        else:
            if signed_in:
                st.rerun()
            st.success("Check your email to confirm your account, then sign in.")


# ---------------------------------------------------------------------------
# Dashboard sections
# ---------------------------------------------------------------------------


def render_stats(queries: list[Query], types: list[QueryType]) -> None:
    counts = count_by_type(queries, types)
    if not counts:
        return
    columns = st.columns(min(len(counts), 4))
    for i, entry in enumerate(counts):
        columns[i % len(columns)].metric(entry["name"], entry["count"])


def render_type_manager(types: list[QueryType]) -> None:
    with st.expander("Manage query types"):
        with st.form("add_type", clear_on_submit=True):
            name = st.text_input("Type name")
            color = st.color_picker("Color", value=DEFAULT_TYPE_COLOR)
            add = st.form_submit_button("Add type", disabled=client.guard.is_pending("create_type"))
        if add:
            if not name.strip():
                st.error("Type name is required")
            else:
                try:
                    client.create_type(QueryTypeCreate(name=name.strip(), color=color))
                except QueryTrackError as exc:
                    _notify_error(exc)
                else:
                    st.toast("Query type added")
                    st.rerun()

        for query_type in types:
            label_col, delete_col = st.columns([5, 1])
            label_col.markdown(type_badge_html(query_type.name, query_type.color), unsafe_allow_html=True)
            if delete_col.button("Delete", key=f"delete_type_{query_type.id}"):
                try:
                    client.delete_type(query_type.id)
                except QueryTrackError as exc:
                    _notify_error(exc)
                else:
                    st.toast("Query type deleted")
                    st.rerun()


def render_add_query(types: list[QueryType]) -> None:
    type_ids = [NO_TYPE, *(t.id for t in types)]
    with st.expander("Add query"), st.form("add_query", clear_on_submit=True):
        title = st.text_input("Title")
        description = st.text_area("Description")
        type_id = st.selectbox("Type", type_ids, format_func=lambda tid: _type_label(types, tid))
        status = st.selectbox("Status", STATUS_OPTIONS)
        priority = st.selectbox("Priority", PRIORITY_OPTIONS, index=PRIORITY_OPTIONS.index("medium"))
        submitted = st.form_submit_button("Add query", disabled=client.guard.is_pending("create_query"))
    if submitted:
        if not title.strip():
            st.error("Title is required")
            return
        try:
            client.create_query(
                QueryCreate(
                    title=title.strip(),
                    description=description or None,
                    status=QueryStatus(status),
                    priority=QueryPriority(priority),
                    query_type_id=type_id or None,
                )
            )
        except QueryTrackError as exc:
            _notify_error(exc)
        else:
            st.toast("Query added")
            st.rerun()


def render_import() -> None:
    with st.expander("Import from Excel"):
        st.caption("Upload an Excel file with columns: Title, Description, Type, Status, Priority")
        upload = st.file_uploader("Spreadsheet", type=["xlsx"], disabled=client.guard.is_pending("import_queries"))
        if upload is not None and st.button("Import", disabled=client.guard.is_pending("import_queries")):
            try:
                imported = client.import_queries(upload.name, upload.getvalue(), upload.file_id)
            except QueryTrackError as exc:
                _notify_error(exc)
            else:
                st.toast(f"Imported {imported} queries")
                st.rerun()


def render_exports(status: str, search: str) -> None:
    csv_col, xlsx_col, summary_col, print_col = st.columns(4)
    exports = [
        (csv_col, "Export CSV", ExportKind.QUERIES_CSV),
        (xlsx_col, "Export Excel", ExportKind.QUERIES_XLSX),
        (summary_col, "Summary Excel", ExportKind.SUMMARY_XLSX),
    ]
    for column, label, kind in exports:
        if column.button(label, key=f"prepare_{kind.value}"):
            try:
                st.session_state[f"export_{kind.value}"] = client.download(kind, status, search)
            except QueryTrackError as exc:
                _notify_error(exc)
        prepared = st.session_state.get(f"export_{kind.value}")
        if prepared:
            filename, content = prepared
            column.download_button(f"Download {filename}", content, file_name=filename, key=f"download_{kind.value}")

    if print_col.button("Print summary"):
        try:
            _, document = client.download(ExportKind.SUMMARY_HTML, status, search)
        except QueryTrackError as exc:
            _notify_error(exc)
        else:
            launch_print(
                document.decode("utf-8"),
                lambda doc: components.html(popup_print_script(doc), height=0),
            )


def _on_status_change(query: Query) -> None:
    try:
        _ = client.change_status(query, st.session_state, f"status_{query.id}")
    except QueryTrackError as exc:
        _notify_error(exc)
    else:
        st.toast("Status updated")


def render_query_row(query: Query, types: list[QueryType]) -> None:
    with st.container(border=True):
        title_col, status_col, actions_col = st.columns([4, 2, 2])
        badges = [
            badge_html(priority_style(query.priority)),
            badge_html(status_style(query.status)),
        ]
        if query.query_type:
            badges.insert(0, type_badge_html(query.query_type.name, query.query_type.color))
        title_col.markdown(f"**{query.title}**", unsafe_allow_html=False)
        title_col.markdown(" ".join(badges), unsafe_allow_html=True)
        if query.description:
            title_col.caption(query.description)

        status_key = f"status_{query.id}"
        # Always show the stored status; a pick is sent once by the callback
        st.session_state[status_key] = query.status.value
        status_col.selectbox(
            "Status",
            STATUS_OPTIONS,
            key=status_key,
            label_visibility="collapsed",
            on_change=_on_status_change,
            args=(query,),
            disabled=client.guard.is_pending("update_query"),
        )

        if query.ai_summary:
            st.info(query.ai_summary)
        elif actions_col.button(
            "Generate summary",
            key=f"summary_{query.id}",
            disabled=client.guard.is_pending("generate_summary"),
        ):
            with st.spinner("Generating summary..."):
                try:
                    client.generate_summary(query.id)
                except QueryTrackError as exc:
                    _notify_error(exc)
                else:
                    st.toast("Summary generated successfully")
                    st.rerun()

        if actions_col.button("Delete", key=f"delete_{query.id}"):
            try:
                client.delete_query(query.id)
            except QueryTrackError as exc:
                _notify_error(exc)
            else:
                st.toast("Query deleted")
                st.rerun()

        with st.expander("Edit"):
            render_edit_form(query, types)


def render_edit_form(query: Query, types: list[QueryType]) -> None:
    type_ids = [NO_TYPE, *(t.id for t in types)]
    current_type = query.query_type_id if query.query_type_id in type_ids else NO_TYPE
    with st.form(f"edit_{query.id}"):
        title = st.text_input("Title", value=query.title)
        description = st.text_area("Description", value=query.description or "")
        type_id = st.selectbox(
            "Type",
            type_ids,
            index=type_ids.index(current_type),
            format_func=lambda tid: _type_label(types, tid),
        )
        status = st.selectbox("Status", STATUS_OPTIONS, index=STATUS_OPTIONS.index(query.status.value))
        priority = st.selectbox("Priority", PRIORITY_OPTIONS, index=PRIORITY_OPTIONS.index(query.priority.value))
        saved = st.form_submit_button("Save", disabled=client.guard.is_pending("update_query"))
    if saved:
        if not title.strip():
            st.error("Title is required")
            return
        try:
            client.update_query(
                query.id,
                QueryUpdate(
                    title=title.strip(),
                    description=description or None,
                    status=QueryStatus(status),
                    priority=QueryPriority(priority),
                    query_type_id=type_id or None,
                ),
            )
        except QueryTrackError as exc:
            _notify_error(exc)
        else:
            st.toast("Query updated successfully")
            st.rerun()


def render_dashboard() -> None:
    with st.sidebar:
        st.title("QueryTrack")
        session = sessions.current
        if session is not None:
            st.caption(f"Signed in as `{session.email or session.user_id}`")
        if st.button("Sign out"):
            try:
                client.sign_out()
            except QueryTrackError as exc:
                _notify_error(exc)
            st.toast("Signed out successfully")
            st.rerun()

    try:
        types = client.list_types()
        queries = client.list_queries()
    except QueryTrackError as exc:
        _notify_error(exc)
        return

    render_stats(queries, types)

    st.header("Queries")
    st.caption("Track and manage all your queries in one place")
    render_type_manager(types)
    render_add_query(types)
    render_import()

    filter_col, search_col = st.columns([1, 3])
    status = filter_col.selectbox("Status", [ALL_STATUSES, *STATUS_OPTIONS])
    search = search_col.text_input("Search", placeholder="Search title, description or type")
    visible = filter_queries(queries, status, search)

    render_exports(status, search)

    if not visible:
        st.info("No queries found. Add your first query to get started!")
    for query in visible:
        render_query_row(query, types)


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

if sessions.current is None:
    render_auth()
else:
    render_dashboard()
