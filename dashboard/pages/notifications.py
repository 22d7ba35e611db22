"""Notifications: inbox view and overdue reminders."""

import logging

import streamlit as st

from gearflow.modules.notifications.service import NotificationService
from pages.common import backend_call

logger = logging.getLogger(__name__)


def render_notifications_page():
    st.title("\U0001f514 Notifications")

    user_id = st.text_input(
        "User id",
        value=st.session_state.get("gearflow_notifications_user", ""),
        key="notifications_user",
    )
    st.session_state.gearflow_notifications_user = user_id

    col1, col2 = st.columns([3, 1])
    with col2:
        if st.button("⏰ Send overdue reminders", use_container_width=True):
            try:
                sent = backend_call(lambda client: NotificationService(client).send_overdue_reminders())
            except Exception as exc:
                logger.error("Overdue reminders failed: %s", exc)
                st.error(str(exc))
            else:
                st.success(str(sent) + " reminder(s) sent.")

    if not user_id:
        st.info("Enter a user id to view their notifications.")
        return

    unread_only = col1.checkbox("Unread only", key="notifications_unread_only")

    async def _load(client):
        service = NotificationService(client)
        items = await service.list_notifications(user_id, unread_only=unread_only)
        unread = await service.unread_count(user_id)
        return items, unread

    try:
        items, unread = backend_call(_load)
    except Exception as exc:
        logger.error("Failed to load notifications: %s", exc)
        st.error("Could not load notifications: " + str(exc))
        return

    st.metric("Unread", unread)
    if unread and st.button("Mark all as read"):
        backend_call(lambda client: NotificationService(client).mark_all_read(user_id))
        st.rerun()

    if not items:
        st.info("No notifications.")
        return

    for item in items:
        marker = "" if item.get("is_read") else "\U0001f535 "
        with st.expander(marker + str(item.get("title", "")) + "  ·  " + str(item.get("created_at", ""))):
            st.write(item.get("message", ""))
            if item.get("link"):
                st.caption(item["link"])
            c1, c2 = st.columns(2)
            if not item.get("is_read") and c1.button("Mark read", key="read_" + str(item["id"])):
                backend_call(
                    lambda client, nid=item["id"]: NotificationService(client).mark_read(nid, user_id)
                )
                st.rerun()
            if c2.button("Delete", key="delete_" + str(item["id"])):
                backend_call(
                    lambda client, nid=item["id"]: NotificationService(client).delete_notification(nid, user_id)
                )
                st.rerun()
