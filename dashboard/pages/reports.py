"""Reports & Analytics: Streamlit dashboard page."""

import logging
from datetime import date, timedelta

import streamlit as st

from gearflow.config import get_setting, load_config
from gearflow.database import init_db
from gearflow.modules.reporting.report_engine import (
    VALID_FORMATS,
    VALID_FREQUENCIES,
    ReportEngine,
)
from gearflow.modules.reporting.report_renderer import (
    GEAR_HEADERS,
    USER_HEADERS,
    ReportRenderer,
    gear_row,
    user_row,
)
from gearflow.modules.reporting.widgets import ReportWidgets
from pages.common import backend_call

logger = logging.getLogger(__name__)

MIME_TYPES = {
    "csv": "text/csv",
    "json": "application/json",
    "html": "text/html",
    "pdf": "application/pdf",
}

TONE_COLORS = {
    "good": "#22c55e",
    "warning": "#f59e0b",
    "bad": "#ef4444",
    "neutral": "#3b82f6",
}


# ---------------------------------------------------------------------------
# Lazy initializers
# ---------------------------------------------------------------------------


def _get_config() -> dict:
    if "gearflow_config" not in st.session_state:
        config = load_config()
        init_db(database_url=get_setting(config, "database.url"))
        st.session_state.gearflow_config = config
    return st.session_state.gearflow_config


def _get_renderer() -> ReportRenderer:
    """Lazy-initialize ReportRenderer with configured branding."""
    if "reports_renderer" not in st.session_state:
        config = _get_config()
        st.session_state.reports_renderer = ReportRenderer(
            branding=get_setting(config, "branding", {}),
            delimiter=get_setting(config, "reports.csv_delimiter", ","),
        )
    return st.session_state.reports_renderer


# ===================================================================
# MAIN ENTRY POINT
# ===================================================================


def render_reports_page():
    """Render the Reports & Analytics dashboard page."""
    st.title("\U0001f4ca Reports & Analytics")
    st.markdown("Generate equipment usage reports, review trends and export them.")
    _get_config()

    tabs = st.tabs([
        "\U0001f4ca Usage Report",
        "\U0001f4e5 Export Center",
        "\U0001f5c4 Saved Reports",
        "\U0001f4c5 Scheduled Reports",
    ])

    with tabs[0]:
        _render_report_tab()
    with tabs[1]:
        _render_export_tab()
    with tabs[2]:
        _render_saved_tab()
    with tabs[3]:
        _render_scheduled_tab()


# ===================================================================
# TAB 1: Usage Report
# ===================================================================


def _render_report_tab():
    st.subheader("Usage Report")

    today = date.today()
    col1, col2, col3 = st.columns([2, 2, 1])
    with col1:
        start = st.date_input("Start date", today - timedelta(days=6), key="reports_start")
    with col2:
        end = st.date_input("End date", today, key="reports_end")
    with col3:
        compare = st.checkbox("Compare", value=True, key="reports_compare",
                              help="Compare against the previous period of equal length")

    if end < start:
        st.error("End date must not be before start date.")
        return

    if st.button("Generate Report", type="primary", key="reports_generate"):
        with st.spinner("Fetching activity and aggregating..."):
            try:
                bundle = backend_call(
                    lambda client: ReportEngine(client, persist=True).generate_report(
                        start, end, compare=compare,
                    )
                )
            except Exception as exc:
                logger.error("generate_report failed: %s", exc)
                st.error("Failed to generate the report: " + str(exc))
                return
        st.session_state.reports_bundle = bundle
        st.success("Report generated (id " + str(bundle.report_id) + ").")

    bundle = st.session_state.get("reports_bundle")
    if bundle is None:
        st.info("Pick a date range and generate a report to see results here.")
        return
    _render_bundle(bundle)


def _render_bundle(bundle):
    report = bundle.report

    if report.source_errors:
        st.warning(
            "Some data could not be loaded: "
            + ", ".join(sorted(report.source_errors))
        )

    cards = ReportRenderer.kpi_cards(report)
    for col, card in zip(st.columns(len(cards)), cards):
        with col:
            ReportWidgets.kpi_card(
                card["label"], card["value"], card["status"],
                color=TONE_COLORS.get(card["tone"], "#3b82f6"),
            )

    st.markdown("")
    st.markdown(report.summary)

    if bundle.performance is not None:
        perf = bundle.performance
        p1, p2, p3 = st.columns(3)
        p1.metric("Activity vs previous", str(perf.activity_change) + "%")
        p2.metric("Utilization vs previous", str(perf.utilization_change) + " pts")
        p3.metric("Active users vs previous", str(perf.user_growth) + "%")

    st.divider()
    gcol, tcol = st.columns([1, 2])
    with gcol:
        ReportWidgets.utilization_gauge(report.utilization_rate)
    with tcol:
        ReportWidgets.trend_chart(bundle.trends)

    st.markdown("### Busiest Equipment")
    ReportWidgets.gear_usage_bar(report.gear_stats)

    st.markdown("### Insights")
    ReportWidgets.insights_list(bundle.insights, bundle.recommendations)

    st.markdown("### User Activity")
    ReportWidgets.stats_table(USER_HEADERS, [user_row(u) for u in report.user_stats])
    st.markdown("### Equipment Usage")
    ReportWidgets.stats_table(GEAR_HEADERS, [gear_row(g) for g in report.gear_stats])


# ===================================================================
# TAB 2: Export Center
# ===================================================================


def _render_export_tab():
    st.subheader("Export Center")
    bundle = st.session_state.get("reports_bundle")
    if bundle is None:
        st.info("Generate a report first, then download it here.")
        return

    renderer = _get_renderer()
    cols = st.columns(len(MIME_TYPES))
    for col, (fmt, mime) in zip(cols, MIME_TYPES.items()):
        with col:
            try:
                payload = renderer.render(bundle, fmt)
            except Exception as exc:
                logger.warning("Rendering %s failed: %s", fmt, exc)
                st.error(fmt.upper() + " export failed.")
                continue
            st.download_button(
                "Download " + fmt.upper(),
                data=payload,
                file_name=renderer.export_filename(bundle.report, fmt),
                mime=mime,
                use_container_width=True,
                key="reports_download_" + fmt,
            )


# ===================================================================
# TAB 3: Saved Reports
# ===================================================================


def _render_saved_tab():
    st.subheader("Saved Reports")
    try:
        reports = ReportEngine.list_reports(limit=50)
    except Exception as exc:
        logger.warning("Failed to list reports: %s", exc)
        st.error("Saved reports are not available.")
        return

    if not reports:
        st.info("No reports have been saved yet.")
        return

    st.dataframe(reports, use_container_width=True, hide_index=True)
    selected = st.selectbox(
        "View stored report",
        options=[r["id"] for r in reports],
        format_func=lambda rid: next(
            r["title"] + " (#" + str(rid) + ")" for r in reports if r["id"] == rid
        ),
        key="reports_saved_select",
    )
    if selected is not None:
        st.json(ReportEngine.get_report(selected) or {}, expanded=False)


# ===================================================================
# TAB 4: Scheduled Reports
# ===================================================================


def _render_scheduled_tab():
    st.subheader("Scheduled Reports")
    config = _get_config()

    with st.form("reports_schedule_form"):
        frequency = st.selectbox("Frequency", list(VALID_FREQUENCIES))
        formats = st.multiselect("Formats", list(VALID_FORMATS), default=["csv", "pdf"])
        submitted = st.form_submit_button("Create Schedule", type="primary")

    if submitted:
        try:
            info = ReportEngine.schedule_report(
                frequency,
                formats=formats,
                output_dir=get_setting(config, "app.export_dir", "data/exports"),
            )
        except ValueError as exc:
            st.error(str(exc))
        else:
            st.success("Schedule created. Next run: " + info["next_run"])
            st.caption("Run `gearflow jobs --run` to execute schedules.")

    schedules = ReportEngine.list_schedules()
    if schedules:
        st.dataframe(schedules, use_container_width=True, hide_index=True)
    else:
        st.info("No active schedules.")
