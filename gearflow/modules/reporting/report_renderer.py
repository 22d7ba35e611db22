"""
report_renderer.py - Gear Activity Report Rendering

Renders a ReportBundle into CSV, JSON, HTML and paginated PDF output and
writes exports to disk under a stable file name.
"""

import csv
import io
import json
import logging
import os
from typing import Any, Optional

from gearflow.modules.reporting.aggregator import UsageReport
from gearflow.modules.reporting.report_engine import ReportBundle
from gearflow.utils.pdf_report_builder import PDFReportBuilder

logger = logging.getLogger(__name__)

REPORT_TITLE = "Gear Activity Report"
EXPORT_FORMATS = ("csv", "json", "html", "pdf")

SUMMARY_FIELDS = [
    ("Total Requests", "total_requests"),
    ("Total Checkouts", "total_checkouts"),
    ("Total Check-ins", "total_checkins"),
    ("Total Damage Reports", "total_damages"),
    ("Utilization Rate (%)", "utilization_rate"),
    ("Average Request Duration (days)", "avg_request_duration"),
    ("Overdue Returns", "overdue_returns"),
    ("Most Active User", "most_active_user"),
    ("Most Active Equipment", "most_active_gear"),
    ("Active Users", "unique_users"),
    ("Total Users", "total_users"),
    ("Total Equipment", "total_gears"),
]

USER_HEADERS = [
    "Name", "Email", "Requests", "Checkouts", "Check-ins",
    "Overdue", "Damages", "Avg Duration (days)", "Last Activity",
]

GEAR_HEADERS = [
    "Name", "Category", "Status", "Condition", "Requests", "Checkouts",
    "Check-ins", "Damages", "Utilization (%)", "Last Used",
]

_TABLE_ROW_LIMIT = 25


def _cell(value: Any) -> Any:
    return "N/A" if value is None else value


def user_row(u) -> list[Any]:
    return [
        u.name, u.email, u.requests, u.checkouts, u.checkins,
        u.overdue, u.damages, u.avg_duration, _cell(u.last_activity),
    ]


def gear_row(g) -> list[Any]:
    return [
        g.name, g.category, g.status, g.condition, g.requests, g.checkouts,
        g.checkins, g.damages, g.utilization_rate, _cell(g.last_used),
    ]


class ReportRenderer:
    """Renders report bundles into the supported export formats."""

    def __init__(self, branding: Optional[dict] = None, delimiter: str = ","):
        if len(delimiter) != 1:
            raise ValueError("delimiter must be a single character")
        self._branding = {"company_name": "GearFlow"}
        if branding:
            self._branding.update(branding)
        self._delimiter = delimiter

    # ------------------------------------------------------------------
    # File naming
    # ------------------------------------------------------------------

    @staticmethod
    def export_filename(report: UsageReport, ext: str) -> str:
        """``gear-activity-report-{start}-to-{end}.{ext}``"""
        return "gear-activity-report-{0}-to-{1}.{2}".format(
            report.start_date, report.end_date, ext.lstrip("."),
        )

    # ------------------------------------------------------------------
    # Flat formats
    # ------------------------------------------------------------------

    def render_csv(self, bundle: ReportBundle) -> str:
        """Sectioned CSV: metadata, summary, user and equipment statistics."""
        report = bundle.report
        buf = io.StringIO()
        writer = csv.writer(
            buf,
            delimiter=self._delimiter,
            quoting=csv.QUOTE_MINIMAL,
            lineterminator="\n",
        )

        writer.writerow([REPORT_TITLE])
        writer.writerow(["Report Period: {0} to {1}".format(report.start_date, report.end_date)])
        writer.writerow(["Generated: {0}".format(bundle.generated_at)])

        writer.writerow(["SUMMARY STATISTICS"])
        writer.writerow(["Metric", "Value"])
        for label, attr in SUMMARY_FIELDS:
            writer.writerow([label, _cell(getattr(report, attr))])

        writer.writerow(["USER STATISTICS"])
        writer.writerow(USER_HEADERS)
        for u in report.user_stats:
            writer.writerow(user_row(u))

        writer.writerow(["EQUIPMENT STATISTICS"])
        writer.writerow(GEAR_HEADERS)
        for g in report.gear_stats:
            writer.writerow(gear_row(g))

        output = buf.getvalue()
        logger.info("CSV report rendered (%d chars)", len(output))
        return output

    def render_json(self, bundle: ReportBundle) -> str:
        """Export the bundle as pretty-printed JSON."""
        output = json.dumps(bundle.to_dict(), indent=2, default=str, ensure_ascii=False)
        logger.info("JSON report rendered (%d chars)", len(output))
        return output

    # ------------------------------------------------------------------
    # Paginated document
    # ------------------------------------------------------------------

    @staticmethod
    def kpi_cards(report: UsageReport) -> list[dict[str, str]]:
        """The four headline cards with their status labels."""
        if report.utilization_rate <= 0:
            util_status, util_tone = "NO USAGE", "bad"
        elif report.utilization_rate < 50:
            util_status, util_tone = "LOW", "warning"
        else:
            util_status, util_tone = "OPTIMAL", "good"

        if report.overdue_returns == 0:
            overdue_status, overdue_tone = "EXCELLENT", "good"
        else:
            overdue_status, overdue_tone = "NEEDS ATTENTION", "bad"

        return [
            {
                "label": "Asset Utilization",
                "value": "{0:.1f}%".format(report.utilization_rate),
                "status": util_status,
                "tone": util_tone,
            },
            {
                "label": "Active Employees",
                "value": str(report.unique_users),
                "status": "of {0} users".format(report.total_users),
                "tone": "neutral",
            },
            {
                "label": "Total Activities",
                "value": str(report.total_activity),
                "status": "requests, checkouts, check-ins",
                "tone": "neutral",
            },
            {
                "label": "Overdue Items",
                "value": str(report.overdue_returns),
                "status": overdue_status,
                "tone": overdue_tone,
            },
        ]

    def build_document(self, bundle: ReportBundle, charts: bool = True) -> PDFReportBuilder:
        """Lay out the bundle on a :class:`PDFReportBuilder`."""
        report = bundle.report
        builder = PDFReportBuilder(
            title=REPORT_TITLE,
            subtitle="Equipment usage and activity",
            company_name=self._branding.get("company_name", "GearFlow"),
        )
        builder.add_header(
            "Report Period: {0} to {1}".format(report.start_date, report.end_date),
            "Generated: {0}".format(bundle.generated_at),
        )
        builder.add_kpi_cards(self.kpi_cards(report))
        builder.add_paragraph(report.summary)

        if charts and bundle.trends:
            builder.add_line_chart(
                [p.date for p in bundle.trends],
                {
                    "Requests": [p.requests for p in bundle.trends],
                    "Checkouts": [p.checkouts for p in bundle.trends],
                    "Check-ins": [p.checkins for p in bundle.trends],
                },
                title="Daily Activity",
                ylabel="Events",
            )

        gears = sorted(report.gear_stats, key=lambda g: g.total_activity, reverse=True)
        if charts and gears:
            top = gears[:10]
            builder.add_bar_chart(
                [g.name for g in top],
                [g.total_activity for g in top],
                title="Busiest Equipment",
                ylabel="Events",
            )

        builder.add_key_findings([i.to_dict() for i in bundle.insights])

        users = sorted(report.user_stats, key=lambda u: u.requests, reverse=True)
        builder.add_heading("User Activity")
        builder.add_table(
            USER_HEADERS,
            [user_row(u) for u in users[:_TABLE_ROW_LIMIT]],
            caption=self._caption(len(users)),
        )

        builder.add_heading("Equipment Usage")
        builder.add_table(
            GEAR_HEADERS,
            [gear_row(g) for g in gears[:_TABLE_ROW_LIMIT]],
            caption=self._caption(len(gears)),
        )

        builder.add_recommendations(bundle.recommendations)
        return builder

    @staticmethod
    def _caption(total: int) -> str:
        if total > _TABLE_ROW_LIMIT:
            return "Top {0} of {1}".format(_TABLE_ROW_LIMIT, total)
        return ""

    def render_html(self, bundle: ReportBundle, charts: bool = True) -> str:
        html = self.build_document(bundle, charts=charts).build_html()
        logger.info("HTML report rendered (%d chars)", len(html))
        return html

    def render_pdf(self, bundle: ReportBundle) -> bytes:
        """Render the paginated PDF; conversion errors propagate."""
        builder = self.build_document(bundle)
        pdf_bytes = builder.build_pdf()
        logger.info(
            "PDF report rendered (%d bytes, ~%d pages)", len(pdf_bytes), builder.page_count,
        )
        return pdf_bytes

    # ------------------------------------------------------------------
    # Export
    # ------------------------------------------------------------------

    def render(self, bundle: ReportBundle, fmt: str) -> bytes:
        """Render ``fmt`` to bytes."""
        fmt = fmt.lower()
        if fmt == "csv":
            return self.render_csv(bundle).encode("utf-8")
        if fmt == "json":
            return self.render_json(bundle).encode("utf-8")
        if fmt == "html":
            return self.render_html(bundle).encode("utf-8")
        if fmt == "pdf":
            return self.render_pdf(bundle)
        raise ValueError(
            "Unsupported export format: {0} (expected one of {1})".format(
                fmt, ", ".join(EXPORT_FORMATS),
            )
        )

    def export(self, bundle: ReportBundle, fmt: str, output_dir: str = "data/exports") -> str:
        """Render and write the bundle; returns the file path."""
        payload = self.render(bundle, fmt)
        os.makedirs(output_dir, exist_ok=True)
        path = os.path.join(output_dir, self.export_filename(bundle.report, fmt.lower()))
        with open(path, "wb") as fh:
            fh.write(payload)
        logger.info("Exported %s report to %s (%d bytes)", fmt, path, len(payload))
        return path
