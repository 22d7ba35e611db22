"""GearFlow Dashboard

Main Streamlit application with sidebar navigation.
Run with: streamlit run dashboard/app.py
"""

import logging
import streamlit as st
import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from gearflow.config import load_environment  # noqa: E402

logger = logging.getLogger(__name__)

load_environment()

# Page config
st.set_page_config(
    page_title="GearFlow Dashboard",
    page_icon="🎒",
    layout="wide",
    initial_sidebar_state="expanded",
)

# Custom CSS
st.markdown("""
<style>
    [data-testid="stSidebar"] {
        background: linear-gradient(180deg, #0f172a 0%, #1e293b 100%);
    }
    [data-testid="stSidebar"] * {
        color: #e2e8f0 !important;
    }
    [data-testid="stSidebar"] .stButton > button {
        width: 100%;
        text-align: left;
        padding: 12px 16px;
        border-radius: 10px;
        border: none;
        background: transparent;
        color: #e2e8f0 !important;
        font-size: 0.95rem;
        margin-bottom: 4px;
    }
    [data-testid="stSidebar"] .stButton > button:hover {
        background: rgba(59, 130, 246, 0.2) !important;
    }
    [data-testid="stSidebar"] .stButton > button[kind="primary"] {
        background: rgba(59, 130, 246, 0.3) !important;
        border-left: 3px solid #3b82f6 !important;
    }
    .main .block-container { padding-top: 2rem; }
</style>
""", unsafe_allow_html=True)


PAGES = {
    "overview": ("🏠", "Overview"),
    "reports": ("📈", "Reports"),
    "requests": ("📦", "Gear Requests"),
    "notifications": ("🔔", "Notifications"),
}


def main():
    if "current_page" not in st.session_state:
        st.session_state.current_page = "overview"

    with st.sidebar:
        st.markdown("### 🎒 GearFlow")
        st.markdown("---")

        for page_id, (icon, label) in PAGES.items():
            is_active = st.session_state.current_page == page_id
            if st.button(
                f"{icon}  {label}",
                key=f"nav_{page_id}",
                type="primary" if is_active else "secondary",
                use_container_width=True,
            ):
                st.session_state.current_page = page_id
                st.rerun()

        st.markdown("---")
        from gearflow import __version__
        st.markdown(
            "<div style='text-align:center; font-size:0.75rem; opacity:0.5;'>v"
            + __version__ + "</div>",
            unsafe_allow_html=True,
        )

    page = st.session_state.current_page

    if page == "reports":
        from pages.reports import render_reports_page
        render_reports_page()
    elif page == "requests":
        from pages.requests import render_requests_page
        render_requests_page()
    elif page == "notifications":
        from pages.notifications import render_notifications_page
        render_notifications_page()
    else:
        render_overview()


def render_overview():
    """Weekly activity at a glance."""
    st.title("🏠 GearFlow Dashboard")
    st.markdown("Equipment activity for the last seven days.")

    from gearflow.modules.reporting.report_engine import ReportEngine
    from pages.common import backend_call

    try:
        weekly = backend_call(lambda client: ReportEngine(client).fetch_weekly_activity(days=7))
    except Exception as exc:
        logger.error("Overview error: %s", exc)
        st.error("Could not load weekly activity: " + str(exc))
        return

    summary = weekly.get("summary", {})
    col1, col2, col3, col4, col5 = st.columns(5)
    with col1:
        st.metric("📦 Requests", summary.get("requests", 0))
    with col2:
        st.metric("➡️ Checkouts", summary.get("checkouts", 0))
    with col3:
        st.metric("⬅️ Check-ins", summary.get("checkins", 0))
    with col4:
        st.metric("📅 Bookings", summary.get("bookings", 0))
    with col5:
        st.metric("⚠️ Damages", summary.get("damages", 0))

    st.markdown("---")
    items = weekly.get("gear_activity", [])
    if items:
        st.markdown("### Most Active Equipment")
        st.dataframe(items, use_container_width=True, hide_index=True)
    else:
        st.info("No equipment activity recorded this week.")

    st.markdown("### ⚡ Quick Actions")
    c1, c2 = st.columns(2)
    with c1:
        if st.button("📈 Open Reports", use_container_width=True):
            st.session_state.current_page = "reports"
            st.rerun()
    with c2:
        if st.button("📦 Review Requests", use_container_width=True):
            st.session_state.current_page = "requests"
            st.rerun()


if __name__ == "__main__":
    main()
