"""
exporter.py — raw-data and PDF exports of a finished analysis.

The "record" is the merged dict produced by AnalysisSession.to_record():
    {"profile": {...}, "competitors": [...], ..., "sources": [...]}

  to_json_text()  → indented JSON, sent as SweetTech_Data.txt
  render_pdf()    → A4 portrait report, sent as SweetTech_Report_<date>.pdf
"""
from __future__ import annotations

import io
import json
import logging
from datetime import date
from typing import Optional
from xml.sax.saxutils import escape

from reportlab.graphics.charts.spider import SpiderChart
from reportlab.graphics.shapes import Drawing
from reportlab.lib import colors
from reportlab.lib.enums import TA_LEFT
from reportlab.lib.pagesizes import A4, portrait
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.pdfbase import pdfmetrics
from reportlab.pdfbase.ttfonts import TTFont
from reportlab.platypus import (
    ListFlowable,
    ListItem,
    Paragraph,
    SimpleDocTemplate,
    Spacer,
    Table,
    TableStyle,
)

import config
from comparison import build_comparison
from models import AnalysisInsights, Competitor, ProductProfile

logger = logging.getLogger(__name__)

DATA_FILENAME = "SweetTech_Data.txt"

ACCENT = colors.HexColor("#db2777")     # pink-600
MUTED  = colors.HexColor("#6b7280")


def report_filename(day: Optional[date] = None) -> str:
    return f"{config.REPORT_BRAND}_Report_{(day or date.today()).isoformat()}.pdf"


# ── JSON ──────────────────────────────────────────────────────────────────────

def to_json_text(record: dict) -> str:
    return json.dumps(record, indent=2, ensure_ascii=False)


def from_json_text(text: str) -> dict:
    return json.loads(text)


# ── PDF ───────────────────────────────────────────────────────────────────────

_registered_font: Optional[str] = None


def _font_name() -> str:
    """Helvetica unless PDF_FONT_PATH points at a TTF (needed for vi/ko glyphs)."""
    global _registered_font
    if not config.PDF_FONT_PATH:
        return "Helvetica"
    if _registered_font is None:
        try:
            pdfmetrics.registerFont(TTFont("ReportFont", config.PDF_FONT_PATH))
            _registered_font = "ReportFont"
        except Exception as exc:
            logger.warning("Could not load PDF font %s: %s", config.PDF_FONT_PATH, exc)
            return "Helvetica"
    return _registered_font


def _styles(font: str) -> dict[str, ParagraphStyle]:
    base = getSampleStyleSheet()
    return {
        "title": ParagraphStyle("title", parent=base["Title"], fontName=font, textColor=ACCENT, alignment=TA_LEFT),
        "h2":    ParagraphStyle("h2", parent=base["Heading2"], fontName=font, spaceBefore=8),
        "body":  ParagraphStyle("body", parent=base["BodyText"], fontName=font, fontSize=9, leading=12),
        "small": ParagraphStyle("small", parent=base["BodyText"], fontName=font, fontSize=7.5,
                                leading=10, textColor=MUTED),
    }


def _p(text: Optional[str], style: ParagraphStyle) -> Paragraph:
    return Paragraph(escape(text or "N/A"), style)


def _bullets(items: list[str], style: ParagraphStyle) -> ListFlowable:
    return ListFlowable(
        [ListItem(_p(i, style), leftIndent=10) for i in items] or [ListItem(_p("—", style))],
        bulletType="bullet",
        start="•",
    )


def _radar(points: list[dict], font: str) -> Drawing:
    drawing = Drawing(180 * mm, 70 * mm)
    chart = SpiderChart()
    chart.x, chart.y = 55 * mm, 5 * mm
    chart.width = chart.height = 60 * mm
    chart.labels = [str(p.get("axis", "")) for p in points]
    chart.data = [[float(p.get("score", 0) or 0) for p in points]]
    chart.strands[0].strokeColor = ACCENT
    chart.strands[0].fillColor = colors.Color(0.86, 0.15, 0.47, alpha=0.25)
    chart.spokeLabels.fontName = font
    drawing.add(chart)
    return drawing


def _comparison_table(profile: ProductProfile, competitors: list[Competitor], st: dict) -> Table:
    table = build_comparison(profile, competitors)
    header = [_p("Feature", st["body"])] + [
        _p(p.name + (" (this product)" if p.is_main else ""), st["body"]) for p in table.products
    ]
    data = [header, [_p("USP", st["body"])] + [_p(p.usp, st["small"])
                                                for p in table.products]]
    for row in table.rows:
        label = f"{row.metric.label} {row.metric.unit_label}".strip()
        data.append([_p(label, st["body"])] + [
            _p(f"{cell.display or '-'}  [{cell.width:.0f}%]", st["small"]) for cell in row.cells
        ])

    n = len(table.products)
    t = Table(data, colWidths=[35 * mm] + [(190 - 35) * mm / max(n, 1)] * n, repeatRows=1)
    t.setStyle(TableStyle([
        ("BACKGROUND", (0, 0), (-1, 0), colors.HexColor("#f9fafb")),
        ("BACKGROUND", (1, 1), (1, -1), colors.HexColor("#fdf2f8")),
        ("GRID", (0, 0), (-1, -1), 0.25, colors.HexColor("#e5e7eb")),
        ("VALIGN", (0, 0), (-1, -1), "TOP"),
    ]))
    return t


def render_pdf(record: dict) -> bytes:
    """Render the merged record as an A4 portrait PDF and return its bytes."""
    font = _font_name()
    st = _styles(font)
    profile  = ProductProfile.from_dict(record.get("profile") or {})
    insights = AnalysisInsights.from_dict(record)
    sources  = [s for s in record.get("sources") or [] if isinstance(s, str)]

    story: list = [
        _p(profile.name or "Product report", st["title"]),
        _p(f"{profile.type}  ·  {profile.brand}  ·  {profile.net_weight}  ·  "
           f"{profile.origin}  ·  {profile.price}", st["small"]),
        Spacer(1, 4 * mm),
        _p("Ingredients", st["h2"]),
        _p(profile.label_ingredients, st["body"]),
    ]
    if profile.additives:
        story += [_p("Additives", st["h2"]), _bullets(
            [f"{a.code} {a.name}: {a.function}" for a in profile.additives], st["body"])]
    specs = profile.specs
    story += [
        _p("Specs", st["h2"]),
        _p(f"Moisture: {specs.moisture or 'N/A'}   Brix: {specs.brix or 'N/A'}   "
           f"Texture: {specs.texture or 'N/A'}", st["body"]),
        _p(f"Flavor: {specs.flavor_profile or 'N/A'}", st["body"]),
    ]
    if profile.allergens:
        story += [_p("Allergens", st["h2"]), _p(", ".join(profile.allergens), st["body"])]

    if insights.radar_chart and len(insights.radar_chart) >= 3 and any(r.score > 0 for r in insights.radar_chart):
        story += [_p("Sensory profile", st["h2"]),
                  _radar([r.to_dict() for r in insights.radar_chart], font)]
    if insights.competitors is not None:
        story += [_p("Competitive benchmark", st["h2"]),
                  _comparison_table(profile, insights.competitors, st)]
    if insights.swot:
        s = insights.swot
        for title, items in (("Strengths", s.strengths), ("Weaknesses", s.weaknesses),
                             ("Opportunities", s.opportunities), ("Threats", s.threats)):
            story += [_p(f"SWOT: {title}", st["h2"]), _bullets(items, st["body"])]
    if insights.improvements:
        story += [_p("R&D improvements", st["h2"]), _bullets(
            [f"{i.title}: {i.description}" for i in insights.improvements], st["body"])]
    if insights.reviews:
        r = insights.reviews
        story += [_p("Customer voice", st["h2"]), _p(r.summary, st["body"])]
        if r.key_themes:
            story.append(_p("  ".join(f"#{t}" for t in r.key_themes), st["small"]))
        story.append(_bullets(
            [f"{i.source} ({i.rating}/5): {i.content}" for i in r.items], st["body"]))
    if insights.persona:
        story += [_p("Persona & expansion", st["h2"]), _p(insights.persona.target_audience, st["body"]),
                  _bullets(insights.persona.expansion_potential, st["body"])]
    if sources:
        story += [_p(f"Data sources ({len(sources)})", st["h2"])]
        story += [_p(s, st["small"]) for s in sources]

    buffer = io.BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=portrait(A4),
        leftMargin=10 * mm, rightMargin=10 * mm, topMargin=10 * mm, bottomMargin=10 * mm,
        title=f"{config.REPORT_BRAND} Report",
    )
    doc.build(story)
    pdf = buffer.getvalue()
    logger.info("Rendered PDF report (%d bytes, %d sources)", len(pdf), len(sources))
    return pdf
