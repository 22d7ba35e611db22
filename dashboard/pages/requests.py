"""Gear Requests: admin review queue for requests and check-ins."""

import logging

import streamlit as st

from gearflow.models.status import RequestStatus
from gearflow.modules.checkins.service import CheckinService
from gearflow.modules.requests.service import RequestService
from pages.common import backend_call

logger = logging.getLogger(__name__)

STATUS_FILTERS = [
    "All",
    RequestStatus.PENDING,
    RequestStatus.CHECKED_OUT,
    RequestStatus.OVERDUE,
    RequestStatus.CHECKED_IN,
    RequestStatus.REJECTED,
    RequestStatus.CANCELLED,
]


def _summarize(row: dict) -> dict:
    lines = row.get("gear_request_gears") or []
    return {
        "id": row.get("id"),
        "status": row.get("status"),
        "reason": row.get("reason"),
        "destination": row.get("destination"),
        "items": sum(int(line.get("quantity") or 1) for line in lines),
        "expected_duration": row.get("expected_duration"),
        "due_date": row.get("due_date"),
        "created_at": row.get("created_at"),
    }


def render_requests_page():
    st.title("\U0001f4e6 Gear Requests")

    admin_id = st.text_input(
        "Admin user id",
        value=st.session_state.get("gearflow_admin_id", ""),
        help="Recorded as approver on every action taken from this page.",
    )
    st.session_state.gearflow_admin_id = admin_id

    tabs = st.tabs(["\U0001f4cb Requests", "⬅️ Pending Check-ins"])
    with tabs[0]:
        _render_requests_tab(admin_id)
    with tabs[1]:
        _render_checkins_tab(admin_id)


def _render_requests_tab(admin_id: str):
    status = st.selectbox("Status", STATUS_FILTERS, key="requests_status")
    try:
        rows = backend_call(
            lambda client: RequestService(client).list_requests(
                status=None if status == "All" else status,
            )
        )
    except Exception as exc:
        logger.error("Failed to list requests: %s", exc)
        st.error("Could not load requests: " + str(exc))
        return

    if not rows:
        st.info("No requests match this filter.")
        return
    st.dataframe([_summarize(r) for r in rows], use_container_width=True, hide_index=True)

    pending = [r for r in rows if r.get("status") == RequestStatus.PENDING]
    if not pending:
        return

    st.markdown("### Review")
    request_id = st.selectbox(
        "Pending request", [r["id"] for r in pending], key="requests_review_id",
    )
    reason = st.text_input("Rejection reason", key="requests_reject_reason")
    col1, col2 = st.columns(2)
    with col1:
        if st.button("✅ Approve", use_container_width=True, disabled=not admin_id):
            _act(lambda client: RequestService(client).approve_request(request_id, admin_id),
                 "Request approved and checked out.")
    with col2:
        if st.button("❌ Reject", use_container_width=True, disabled=not (admin_id and reason)):
            _act(lambda client: RequestService(client).reject_request(request_id, admin_id, reason),
                 "Request rejected.")


def _render_checkins_tab(admin_id: str):
    try:
        rows = backend_call(lambda client: CheckinService(client).list_pending())
    except Exception as exc:
        logger.error("Failed to list check-ins: %s", exc)
        st.error("Could not load check-ins: " + str(exc))
        return

    if not rows:
        st.info("No check-ins are waiting for approval.")
        return
    st.dataframe(rows, use_container_width=True, hide_index=True)

    checkin_id = st.selectbox("Check-in", [r["id"] for r in rows], key="checkins_review_id")
    reason = st.text_input("Rejection reason", key="checkins_reject_reason")
    col1, col2 = st.columns(2)
    with col1:
        if st.button("✅ Approve check-in", use_container_width=True, disabled=not admin_id):
            _act(lambda client: CheckinService(client).approve_checkin(checkin_id, admin_id),
                 "Check-in approved.")
    with col2:
        if st.button("❌ Reject check-in", use_container_width=True, disabled=not admin_id):
            _act(lambda client: CheckinService(client).reject_checkin(checkin_id, admin_id, reason),
                 "Check-in rejected.")


def _act(fn, success: str):
    try:
        backend_call(fn)
    except Exception as exc:
        logger.warning("Action failed: %s", exc)
        st.error(str(exc))
        return
    st.success(success)
    st.rerun()
