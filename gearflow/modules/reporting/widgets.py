"""Reusable Streamlit widget components for the gear activity dashboard."""

import logging
from typing import Optional

import plotly.express as px
import plotly.graph_objects as go
import streamlit as st

from gearflow.modules.reporting.insights import Insight
from gearflow.modules.reporting.trends import TrendPoint

logger = logging.getLogger(__name__)

_SERIES = [
    ("requests", "Requests", "#3b82f6"),
    ("checkouts", "Checkouts", "#22c55e"),
    ("checkins", "Check-ins", "#8b5cf6"),
    ("damages", "Damages", "#ef4444"),
]


class ReportWidgets:
    """Collection of Streamlit UI widgets for usage reports."""

    SEVERITY_COLORS = {
        "critical": "#ef4444",
        "warning": "#f59e0b",
        "info": "#3b82f6",
        "success": "#22c55e",
    }

    @staticmethod
    def _utilization_color(rate: float) -> str:
        if rate >= 80:
            return "#ef4444"
        if rate >= 50:
            return "#22c55e"
        if rate > 0:
            return "#eab308"
        return "#9ca3af"

    @staticmethod
    def kpi_card(
        title: str,
        value: str,
        status: Optional[str] = None,
        color: str = "#3b82f6",
    ) -> None:
        """Render a styled KPI card with an optional status line."""
        status_html = ""
        if status:
            status_html = "".join([
                '<div style="font-size:12px;margin-top:4px;font-weight:600;color:',
                color, '">', status, '</div>',
            ])
        html = "".join([
            '<div style="background:#ffffff;border:1px solid #e5e7eb;',
            'border-radius:12px;padding:18px;border-top:4px solid ', color, '">',
            '<div style="font-size:13px;color:#6b7280">', title, '</div>',
            '<div style="font-size:28px;font-weight:700;color:#111827">',
            str(value), '</div>', status_html, '</div>',
        ])
        st.markdown(html, unsafe_allow_html=True)

    @staticmethod
    def utilization_figure(rate: float) -> go.Figure:
        rate = max(0.0, min(100.0, float(rate or 0)))
        fig = go.Figure(go.Indicator(
            mode="gauge+number",
            value=rate,
            number=dict(suffix="%"),
            gauge=dict(
                axis=dict(range=[0, 100]),
                bar=dict(color=ReportWidgets._utilization_color(rate)),
                steps=[
                    dict(range=[0, 50], color="#f3f4f6"),
                    dict(range=[50, 80], color="#e5e7eb"),
                    dict(range=[80, 100], color="#fee2e2"),
                ],
            ),
            title=dict(text="Asset Utilization"),
        ))
        fig.update_layout(height=260, margin=dict(l=20, r=20, t=50, b=10))
        return fig

    @staticmethod
    def utilization_gauge(rate: float) -> None:
        st.plotly_chart(ReportWidgets.utilization_figure(rate), use_container_width=True)

    @staticmethod
    def trend_figure(points: list[TrendPoint], title: str = "Daily Activity") -> go.Figure:
        """One line per activity type over the bucketed days."""
        dates = [p.date for p in points]
        fig = go.Figure()
        for attr, label, color in _SERIES:
            fig.add_trace(
                go.Scatter(
                    x=dates,
                    y=[getattr(p, attr) for p in points],
                    mode="lines+markers",
                    name=label,
                    line=dict(color=color, width=2.5),
                    marker=dict(size=6, color=color),
                    hovertemplate="%{x}<br>" + label + ": %{y}<extra></extra>",
                )
            )
        fig.update_layout(
            title=dict(text=title, font=dict(size=16, color="#111827")),
            xaxis_title="Date",
            yaxis_title="Events",
            template="plotly_white",
            height=360,
            margin=dict(l=40, r=20, t=50, b=40),
            hovermode="x unified",
            legend=dict(orientation="h", y=-0.25),
        )
        return fig

    @staticmethod
    def trend_chart(points: list[TrendPoint], title: str = "Daily Activity") -> None:
        if not points:
            st.info("No activity recorded in this period.")
            return
        st.plotly_chart(ReportWidgets.trend_figure(points, title), use_container_width=True)

    @staticmethod
    def gear_usage_figure(gear_stats: list, top: int = 10) -> go.Figure:
        """Horizontal bar of the busiest items by total activity."""
        ranked = sorted(gear_stats, key=lambda g: g.total_activity, reverse=True)[:top]
        fig = px.bar(
            x=[g.total_activity for g in ranked],
            y=[g.name for g in ranked],
            orientation="h",
            color=[g.category for g in ranked],
            labels={"x": "Activity", "y": "Equipment", "color": "Category"},
            template="plotly_white",
        )
        fig.update_layout(
            height=max(240, 36 * len(ranked) + 80),
            margin=dict(l=0, r=20, t=30, b=30),
            yaxis=dict(autorange="reversed"),
        )
        return fig

    @staticmethod
    def gear_usage_bar(gear_stats: list, top: int = 10) -> None:
        if not gear_stats:
            st.info("No equipment was used in this period.")
            return
        st.plotly_chart(ReportWidgets.gear_usage_figure(gear_stats, top), use_container_width=True)

    @staticmethod
    def insights_list(insights: list[Insight], recommendations: list[str]) -> None:
        """Severity-tagged insight cards followed by recommendations."""
        for insight in insights:
            color = ReportWidgets.SEVERITY_COLORS.get(insight.severity, "#6b7280")
            html = "".join([
                '<div style="border-left:4px solid ', color, ';padding:8px 12px;',
                'margin-bottom:8px;background:#f9fafb;border-radius:6px">',
                '<span style="background:', color, ';color:#fff;font-size:11px;',
                'font-weight:600;padding:2px 8px;border-radius:4px">',
                insight.severity.upper(), '</span> ',
                '<b>', insight.title, '</b>',
                '<div style="font-size:13px;color:#374151;margin-top:4px">',
                insight.description, '</div></div>',
            ])
            st.markdown(html, unsafe_allow_html=True)

        if recommendations:
            st.markdown("**Recommendations**")
            for idx, text in enumerate(recommendations, 1):
                st.markdown(str(idx) + ". " + text)

    @staticmethod
    def stats_table(headers: list[str], rows: list[list]) -> None:
        if not rows:
            st.info("No rows to display.")
            return
        st.dataframe(
            [dict(zip(headers, row)) for row in rows],
            use_container_width=True,
            hide_index=True,
        )
