# -*- coding: utf-8 -*-
"""PDF report builder for GearFlow usage reports.

Builder-pattern class that assembles an HTML document (KPI cards, insight
lists, tables and embedded matplotlib charts) and converts it to PDF via
xhtml2pdf.  Block heights are estimated as they are added so that a page
break can be inserted before any block that would not fit on the current page.
"""
from __future__ import annotations

import datetime
import os
from io import BytesIO


# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------
_COLORS = {
    'navy': '#0f172a',
    'blue': '#2563eb',
    'blue_light': '#3b82f6',
    'blue_bg': '#eff6ff',
    'green': '#16a34a',
    'green_bg': '#f0fdf4',
    'amber': '#d97706',
    'amber_bg': '#fffbeb',
    'red': '#dc2626',
    'red_bg': '#fef2f2',
    'gray': '#64748b',
    'gray_light': '#f1f5f9',
    'white': '#ffffff',
    'text': '#1e293b',
    'text_light': '#475569',
    'border': '#e2e8f0',
}

_CHART_PALETTE = [
    '#2563eb', '#16a34a', '#d97706', '#dc2626', '#7c3aed',
    '#0891b2', '#db2777', '#ea580c',
]

# A4 is 297mm tall; 20mm top margin and 25mm bottom margin (footer frame).
PAGE_CAPACITY_MM = 252.0

# Rough block heights in millimetres.
_H_HEADER = 38.0
_H_HEADING = 12.0
_H_TEXT_LINE = 5.5
_H_KPI_ROW = 32.0
_H_FINDING = 15.0
_H_RECOMMENDATION = 11.0
_H_TABLE_HEAD = 9.0
_H_TABLE_ROW = 7.5
_H_CHART = 92.0
_CHARS_PER_LINE = 95

_TONES = {
    'good': ('green', 'green_bg'),
    'warning': ('amber', 'amber_bg'),
    'bad': ('red', 'red_bg'),
    'neutral': ('blue', 'blue_bg'),
}


def _severity_color(severity):
    """Return color for an insight severity."""
    sev = str(severity).lower()
    if sev in ('critical', 'high', 'error'):
        return _COLORS['red']
    if sev in ('warning', 'medium'):
        return _COLORS['amber']
    if sev in ('success', 'good'):
        return _COLORS['green']
    if sev in ('info', 'low'):
        return _COLORS['blue']
    return _COLORS['gray']


def _escape_html(text):
    """Escape HTML special characters."""
    if text is None:
        return 'N/A'
    return (
        str(text)
        .replace('&', '&amp;')
        .replace('<', '&lt;')
        .replace('>', '&gt;')
        .replace('"', '&quot;')
    )


def _build_css():
    """Build the xhtml2pdf stylesheet (CSS 2.1 subset, no flexbox)."""
    c = _COLORS
    return """
@page {
    size: a4 portrait;
    margin: 2cm 1.5cm 2.5cm 1.5cm;
    @frame footer_frame {
        -pdf-frame-content: footer_content;
        left: 1.5cm;
        width: 18cm;
        top: 27.6cm;
        height: 1cm;
    }
}
body {
    font-family: Helvetica, Arial, sans-serif;
    font-size: 10pt;
    line-height: 1.5;
    color: """ + c['text'] + """;
}
.report-header {
    background-color: """ + c['navy'] + """;
    color: """ + c['white'] + """;
    padding: 18px;
    margin-bottom: 14px;
}
.report-title {
    font-size: 20pt;
    font-weight: bold;
    color: """ + c['white'] + """;
}
.report-meta {
    font-size: 10pt;
    color: """ + c['white'] + """;
}
h1 {
    font-size: 15pt;
    color: """ + c['navy'] + """;
    border-bottom: 2px solid """ + c['blue'] + """;
    padding-bottom: 4px;
    margin-top: 14px;
    margin-bottom: 8px;
}
h2 {
    font-size: 12pt;
    color: """ + c['navy'] + """;
    margin-top: 10px;
    margin-bottom: 6px;
}
p {
    margin-bottom: 8px;
}
table {
    width: 100%;
    border-collapse: collapse;
    margin: 8px 0;
}
th {
    background-color: """ + c['navy'] + """;
    color: """ + c['white'] + """;
    padding: 5px 6px;
    text-align: left;
    font-size: 9pt;
    font-weight: bold;
}
td {
    padding: 4px 6px;
    border-bottom: 1px solid """ + c['border'] + """;
    font-size: 9pt;
}
caption {
    font-weight: bold;
    text-align: left;
    color: """ + c['navy'] + """;
}
.kpi-table td {
    border: 1px solid """ + c['border'] + """;
    text-align: center;
    padding: 8px;
}
.kpi-label {
    font-size: 9pt;
    color: """ + c['text_light'] + """;
}
.kpi-value {
    font-size: 18pt;
    font-weight: bold;
}
.kpi-status {
    font-size: 8pt;
    font-weight: bold;
}
.finding-item {
    padding: 6px;
    margin: 4px 0;
    border-left: 3px solid """ + c['border'] + """;
}
.finding-severity {
    color: """ + c['white'] + """;
    font-size: 8pt;
    font-weight: bold;
    padding: 1px 4px;
}
.finding-title {
    font-weight: bold;
}
.rec-item {
    padding: 6px;
    margin: 4px 0;
    border-left: 3px solid """ + c['green'] + """;
}
.chart-container {
    text-align: center;
    margin: 10px 0;
}
.page-break {
    page-break-before: always;
}
#footer_content {
    font-size: 8pt;
    color: """ + c['gray'] + """;
    text-align: center;
}
"""


class PDFReportBuilder:
    """Builder-pattern class for constructing paginated PDF reports."""

    def __init__(self, title, subtitle='', company_name='GearFlow'):
        self._title = title
        self._subtitle = subtitle
        self._company_name = company_name
        self._sections = []
        self._page_used = 0.0
        self._page_breaks = 0
        self._date_str = datetime.datetime.now().strftime('%Y-%m-%d')

    # ------------------------------------------------------------------
    # Page bookkeeping
    # ------------------------------------------------------------------
    @property
    def page_breaks(self):
        """Number of page breaks inserted so far."""
        return self._page_breaks

    @property
    def page_count(self):
        """Estimated page count for the current content."""
        return self._page_breaks + 1

    def _ensure_space(self, height):
        """Start a new page if *height* does not fit on the current one."""
        if self._page_used > 0 and self._page_used + height > PAGE_CAPACITY_MM:
            self.add_page_break()

    def _append(self, html, height):
        self._ensure_space(height)
        self._sections.append(html)
        if height > PAGE_CAPACITY_MM:
            # Oversized blocks (long tables) flow onto following pages.
            self._page_used = (self._page_used + height) % PAGE_CAPACITY_MM
        else:
            self._page_used += height
        return self

    @staticmethod
    def _text_height(text):
        lines = max(1, len(str(text or '')) // _CHARS_PER_LINE + 1)
        return lines * _H_TEXT_LINE

    # ------------------------------------------------------------------
    # Content methods (builder pattern, each returns self)
    # ------------------------------------------------------------------
    def add_header(self, period_text, generated_text=''):
        """Add the title banner with the report period."""
        html = (
            '<div class="report-header">'
            '<div class="report-title">{title}</div>'
            '<div class="report-meta">{subtitle}</div>'
            '<div class="report-meta">{period}</div>'
            '<div class="report-meta">{generated}</div>'
            '</div>'
        ).format(
            title=_escape_html(self._title),
            subtitle=_escape_html(self._subtitle) if self._subtitle else '',
            period=_escape_html(period_text),
            generated=_escape_html(generated_text) if generated_text else '',
        )
        return self._append(html, _H_HEADER)

    def add_heading(self, text):
        """Add a section heading."""
        return self._append('<h1>{0}</h1>'.format(_escape_html(text)), _H_HEADING)

    def add_paragraph(self, text):
        """Add a standalone paragraph."""
        html = '<p>{0}</p>'.format(_escape_html(text))
        return self._append(html, self._text_height(text))

    def add_kpi_cards(self, cards):
        """Add a row of KPI cards.

        Each card is a dict with ``label``, ``value``, ``status`` and a
        ``tone`` of good / warning / bad / neutral.
        """
        cells = []
        for card in (cards or []):
            fg_key, bg_key = _TONES.get(card.get('tone', 'neutral'), _TONES['neutral'])
            cells.append(
                '<td style="background-color:{bg};">'
                '<div class="kpi-label">{label}</div>'
                '<div class="kpi-value" style="color:{fg};">{value}</div>'
                '<div class="kpi-status" style="color:{fg};">{status}</div>'
                '</td>'.format(
                    bg=_COLORS[bg_key],
                    fg=_COLORS[fg_key],
                    label=_escape_html(card.get('label', '')),
                    value=_escape_html(card.get('value', '')),
                    status=_escape_html(card.get('status', '')),
                )
            )
        html = '<table class="kpi-table"><tr>{0}</tr></table>'.format(''.join(cells))
        return self._append(html, _H_KPI_ROW)

    def add_key_findings(self, findings, title='Key Insights'):
        """Add insights with severity badges."""
        self.add_heading(title)
        for f in (findings or []):
            severity = f.get('severity', 'info')
            html = (
                '<div class="finding-item">'
                '<span class="finding-severity" style="background-color:{sc};">'
                '{sev}</span> '
                '<span class="finding-title">{t}</span>'
                '<div>{d}</div>'
                '</div>'
            ).format(
                sc=_severity_color(severity),
                sev=_escape_html(str(severity).upper()),
                t=_escape_html(f.get('title', 'Insight')),
                d=_escape_html(f.get('description', '')),
            )
            self._append(html, _H_FINDING)
        return self

    def add_recommendations(self, items, title='Recommendations'):
        """Add a numbered list of recommendation strings."""
        self.add_heading(title)
        for idx, text in enumerate(items or [], 1):
            html = '<div class="rec-item"><b>{n}.</b> {t}</div>'.format(
                n=idx, t=_escape_html(text),
            )
            self._append(html, max(_H_RECOMMENDATION, self._text_height(text)))
        return self

    def add_table(self, headers, rows, caption=''):
        """Add a data table; header row repeats on continuation pages."""
        rows = list(rows or [])
        parts = ['<table repeat="1">']
        if caption:
            parts.append('<caption>{0}</caption>'.format(_escape_html(caption)))
        hdr_cells = ''.join(
            '<th>{0}</th>'.format(_escape_html(str(h))) for h in headers
        )
        parts.append('<thead><tr>{0}</tr></thead>'.format(hdr_cells))
        parts.append('<tbody>')
        for row in rows:
            cells = ''.join(
                '<td>{0}</td>'.format(_escape_html(v if v is not None else 'N/A'))
                for v in row
            )
            parts.append('<tr>{0}</tr>'.format(cells))
        parts.append('</tbody></table>')
        height = _H_TABLE_HEAD + len(rows) * _H_TABLE_ROW + (_H_TEXT_LINE if caption else 0)
        return self._append('\n'.join(parts), height)

    def add_page_break(self):
        """Insert a manual page break."""
        self._sections.append('<div class="page-break"></div>')
        self._page_breaks += 1
        self._page_used = 0.0
        return self

    # ------------------------------------------------------------------
    # Chart methods (lazy-import matplotlib)
    # ------------------------------------------------------------------
    @staticmethod
    def _import_plt():
        """Lazy-import matplotlib with the Agg backend."""
        import matplotlib
        matplotlib.use('Agg')
        import matplotlib.pyplot as plt
        return plt

    @staticmethod
    def _fig_to_base64(fig):
        """Convert a matplotlib figure to a base64 PNG string."""
        import base64
        import matplotlib.pyplot as plt

        buf = BytesIO()
        fig.savefig(buf, format='png', dpi=130, bbox_inches='tight', facecolor='white')
        buf.seek(0)
        img_b64 = base64.b64encode(buf.read()).decode('utf-8')
        buf.close()
        plt.close(fig)
        return img_b64

    def _append_chart(self, fig):
        html = (
            '<div class="chart-container">'
            '<img src="data:image/png;base64,{b64}" width="480" alt="chart">'
            '</div>'
        ).format(b64=self._fig_to_base64(fig))
        return self._append(html, _H_CHART)

    def add_line_chart(self, x_data, y_data_dict, title, xlabel='', ylabel=''):
        """Add a multi-series line chart."""
        if not x_data or not y_data_dict:
            return self
        plt = self._import_plt()
        fig, ax = plt.subplots(figsize=(8, 4))
        for idx, (series_name, y_vals) in enumerate(y_data_dict.items()):
            ax.plot(
                x_data[:len(y_vals)], y_vals,
                color=_CHART_PALETTE[idx % len(_CHART_PALETTE)],
                linewidth=2, marker='o', markersize=4, label=str(series_name),
            )
        ax.set_title(title, fontsize=12, fontweight='bold')
        if xlabel:
            ax.set_xlabel(xlabel, fontsize=9)
        if ylabel:
            ax.set_ylabel(ylabel, fontsize=9)
        ax.tick_params(axis='x', labelrotation=30, labelsize=8)
        ax.spines['top'].set_visible(False)
        ax.spines['right'].set_visible(False)
        ax.grid(alpha=0.3)
        if len(y_data_dict) > 1:
            ax.legend(fontsize=8)
        fig.tight_layout()
        return self._append_chart(fig)

    def add_bar_chart(self, labels, values, title, ylabel=''):
        """Add a vertical bar chart."""
        if not labels or not values:
            return self
        plt = self._import_plt()
        n = len(labels)
        fig, ax = plt.subplots(figsize=(8, 4))
        ax.bar(
            range(n), values,
            color=[_CHART_PALETTE[i % len(_CHART_PALETTE)] for i in range(n)],
            width=0.6,
        )
        ax.set_xticks(range(n))
        ax.set_xticklabels([str(lb) for lb in labels], rotation=30, ha='right', fontsize=8)
        ax.set_title(title, fontsize=12, fontweight='bold')
        if ylabel:
            ax.set_ylabel(ylabel, fontsize=9)
        ax.spines['top'].set_visible(False)
        ax.spines['right'].set_visible(False)
        ax.grid(axis='y', alpha=0.3)
        fig.tight_layout()
        return self._append_chart(fig)

    # ------------------------------------------------------------------
    # Build methods
    # ------------------------------------------------------------------
    def build_html(self):
        """Build the complete HTML document."""
        footer = (
            '<div id="footer_content">{company} | {date} | '
            'Page <pdf:pagenumber> of <pdf:pagecount></div>'
        ).format(
            company=_escape_html(self._company_name),
            date=_escape_html(self._date_str),
        )
        return (
            '<!DOCTYPE html>\n'
            '<html lang="en">\n'
            '<head>\n'
            '<meta charset="utf-8">\n'
            '<title>{title}</title>\n'
            '<style>{css}</style>\n'
            '</head>\n'
            '<body>\n'
            '{footer}\n'
            '{body}\n'
            '</body>\n'
            '</html>'
        ).format(
            title=_escape_html(self._title),
            css=_build_css(),
            footer=footer,
            body='\n'.join(self._sections),
        )

    def build_pdf(self):
        """Render the document and return the PDF bytes.

        Raises:
            RuntimeError: If xhtml2pdf reports conversion errors.
        """
        from xhtml2pdf import pisa

        buf = BytesIO()
        result = pisa.CreatePDF(self.build_html(), dest=buf, encoding='utf-8')
        if result.err:
            raise RuntimeError('xhtml2pdf conversion had errors')
        return buf.getvalue()
