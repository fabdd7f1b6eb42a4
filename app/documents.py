import csv
import html
import io
from itertools import groupby
from typing import Union

from reportlab.lib.pagesizes import letter # type: ignore
from reportlab.lib.units import inch # type: ignore
from reportlab.pdfgen import canvas # type: ignore

from .schemas import ReportResponse


SUMMARY_LINES = (
    ("Focus Lost", "focus_lost"),
    ("Absence", "absence"),
    ("Multiple Faces", "multiple_faces"),
    ("Phone Detected", "phone_detected"),
    ("Book Detected", "book_detected"),
    ("Laptop Detected", "laptop_detected"),
)

DOCUMENT_FORMATS = {
    "pdf": "application/pdf",
    "html": "text/html",
    "csv": "text/csv",
}


def format_duration(duration: Union[int, str]) -> str:
    if isinstance(duration, int):
        return f"{duration} seconds"
    return "Ongoing"


def _event_label(kind: str) -> str:
    return kind.replace("_", " ")


def build_pdf_report_content(report: ReportResponse) -> bytes:
    buffer = io.BytesIO()
    c = canvas.Canvas(buffer, pagesize=letter)
    width, height = letter

    c.setFont("Helvetica-Bold", 20)
    c.drawCentredString(width / 2, height - inch, "Proctoring Report")

    text = c.beginText(inch, height - 1.6 * inch)
    text.setFont("Helvetica", 13)
    text.setLeading(18)
    text.textLine(f"Candidate Name: {report.candidate_name}")
    text.textLine(f"Candidate ID: {report.candidate_id}")
    text.textLine(f"Interview Duration: {format_duration(report.interview_duration)}")
    text.textLine(f"Integrity Score: {report.integrity_score}")
    text.textLine("")

    text.setFont("Helvetica-Bold", 15)
    text.textLine("Event Summary:")
    text.setFont("Helvetica", 11)
    for label, field in SUMMARY_LINES:
        text.textLine(f"  - {label}: {getattr(report, field)}")
    text.textLine("")

    text.setFont("Helvetica-Bold", 15)
    text.textLine("Detailed Logs:")
    for day, events in groupby(report.logs, key=lambda e: e.occurred_at.date()):
        text.setFont("Helvetica-Bold", 11)
        text.textLine(f"{day.isoformat()}:")
        text.setFont("Helvetica", 10)
        for event in events:
            if text.getY() < inch:
                c.drawText(text)
                c.showPage()
                text = c.beginText(inch, height - inch)
                text.setFont("Helvetica", 10)
                text.setLeading(14)
            text.textLine(f"    {event.occurred_at.strftime('%H:%M:%S')}  {_event_label(event.kind)}")

    c.drawText(text)
    c.save()
    return buffer.getvalue()


def build_html_report_content(report: ReportResponse) -> str:
    esc = html.escape
    facts = [
        ("Candidate", esc(report.candidate_name)),
        ("Session ID", esc(report.candidate_id)),
        ("Duration", format_duration(report.interview_duration)),
        ("Integrity score", f"{report.integrity_score} / 100"),
    ]
    fact_rows = "\n".join(f"        <dt>{label}</dt><dd>{value}</dd>" for label, value in facts)
    counts = "\n".join(
        f"            <tr><td>{label}</td><td class='num'>{getattr(report, field)}</td></tr>"
        for label, field in SUMMARY_LINES
    )
    rows = "\n".join(
        f"            <tr><td class='when'>{e.occurred_at.isoformat(sep=' ', timespec='seconds')}</td>"
        f"<td>{esc(_event_label(e.kind))}</td></tr>"
        for e in report.logs
    ) or "            <tr><td colspan='2'>No events recorded</td></tr>"
    return f"""<!doctype html>
<html lang='en'>
<head>
    <meta charset='utf-8' />
    <title>Proctoring Report: {esc(report.candidate_name)}</title>
    <style>
        body {{ font: 14px/1.5 Helvetica, sans-serif; color: #1f2933; max-width: 760px; margin: 32px auto; }}
        dl.facts {{ display: flex; flex-wrap: wrap; margin: 0 0 24px; }}
        dl.facts dt {{ width: 35%; font-weight: 600; }}
        dl.facts dd {{ width: 65%; margin: 0; }}
        table {{ width: 100%; border-collapse: collapse; margin-bottom: 24px; }}
        th, td {{ text-align: left; padding: 4px 8px; border-bottom: 1px solid #d9e2ec; }}
        td.num {{ text-align: right; }}
        td.when {{ white-space: nowrap; font-family: monospace; }}
    </style>
</head>
<body>
    <h1>Proctoring Report</h1>
    <dl class='facts'>
{fact_rows}
    </dl>

    <h2>Event counts</h2>
    <table>
        <thead><tr><th>Event</th><th>Count</th></tr></thead>
        <tbody>
{counts}
        </tbody>
    </table>

    <h2>Timeline</h2>
    <table>
        <thead><tr><th>Time (UTC)</th><th>Event</th></tr></thead>
        <tbody>
{rows}
        </tbody>
    </table>
</body>
</html>
"""


def build_csv_report_content(report: ReportResponse) -> str:
    out = io.StringIO()
    writer = csv.writer(out)
    writer.writerow(["field", "value"])
    writer.writerow(["candidate_id", report.candidate_id])
    writer.writerow(["candidate_name", report.candidate_name])
    writer.writerow(["interview_duration", report.interview_duration])
    writer.writerow(["integrity_score", report.integrity_score])
    writer.writerow(["total_events", report.total_events])
    for _, field in SUMMARY_LINES:
        writer.writerow([field, getattr(report, field)])
    writer.writerow([])
    writer.writerow(["occurred_at", "kind"])
    for e in report.logs:
        writer.writerow([e.occurred_at.isoformat(), e.kind])
    return out.getvalue()


def render_report(report: ReportResponse, fmt: str) -> bytes:
    if fmt == "pdf":
        return build_pdf_report_content(report)
    if fmt == "html":
        return build_html_report_content(report).encode("utf-8")
    if fmt == "csv":
        return build_csv_report_content(report).encode("utf-8")
    raise ValueError(f"unsupported report format {fmt!r}")
