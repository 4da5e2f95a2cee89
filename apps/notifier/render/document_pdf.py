"""
PDF rendering for clinical event documents.

Fixed layout: facility header, patient identification, event details (per kind), and an
actor/signature block. Output is byte-identical for identical inputs and generated_at.
"""
from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import datetime
from io import BytesIO
from typing import Any, Optional

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import inch
from reportlab.platypus import (
    BaseDocTemplate,
    Frame,
    PageTemplate,
    Paragraph,
    Spacer,
    Table,
    TableStyle,
)

from packages.shared.artifacts import document_title
from packages.shared.errors import RenderFailure, TemplateMissing
from packages.shared.models import Actor, NotificationKind, PatientRef, as_utc, utcnow
from apps.notifier.render.common import display, format_timestamp, para_text
from apps.notifier.render.sections import (
    SECTION_BUILDERS,
    DetailSection,
    SectionBuilder,
    validate_section_builders,
)

logger = logging.getLogger("emrnotify.render")

LABEL_COL_WIDTH = 2.0 * inch
VALUE_COL_WIDTH = 4.6 * inch

_ROW_STYLE = TableStyle([
    ("FONTNAME", (0, 0), (0, -1), "Helvetica-Bold"),
    ("FONTSIZE", (0, 0), (-1, -1), 9),
    ("VALIGN", (0, 0), (-1, -1), "TOP"),
    ("LINEBELOW", (0, 0), (-1, -1), 0.25, colors.lightgrey),
    ("BOTTOMPADDING", (0, 0), (-1, -1), 3),
])

_GRID_STYLE = TableStyle([
    ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
    ("FONTSIZE", (0, 0), (-1, -1), 9),
    ("BACKGROUND", (0, 0), (-1, 0), colors.whitesmoke),
    ("GRID", (0, 0), (-1, -1), 0.25, colors.grey),
    ("VALIGN", (0, 0), (-1, -1), "TOP"),
])


class DocumentRenderer:
    def __init__(
        self,
        facility_name: str = "General Hospital",
        facility_contact: str = "",
        builders: Optional[Mapping[NotificationKind, SectionBuilder]] = None,
    ):
        self.facility_name = facility_name
        self.facility_contact = facility_contact
        self.builders = dict(SECTION_BUILDERS if builders is None else builders)
        validate_section_builders(self.builders)

        styles = getSampleStyleSheet()
        self.styles = styles
        self.title_style = ParagraphStyle("DocTitle", parent=styles["Title"], fontSize=16, spaceAfter=4)
        self.facility_style = ParagraphStyle("Facility", parent=styles["Normal"], fontSize=11, alignment=1)
        self.meta_style = ParagraphStyle("Meta", parent=styles["Normal"], fontSize=8, textColor=colors.grey, alignment=1)
        self.h2 = ParagraphStyle("SectionHeading", parent=styles["Heading2"], fontSize=12, spaceBefore=10, spaceAfter=4)
        self.cell_style = ParagraphStyle("Cell", parent=styles["Normal"], fontSize=9, leading=11)
        self.bullet_style = ParagraphStyle("Bullet", parent=styles["Normal"], fontSize=9, leftIndent=12, bulletIndent=2)

    def render(
        self,
        kind: NotificationKind,
        payload: Mapping[str, Any],
        patient: PatientRef,
        actor: Actor,
        generated_at: Optional[datetime] = None,
    ) -> bytes:
        """
        Build the PDF bytes. Any internal error surfaces as RenderFailure.
        """
        builder = self.builders.get(kind)
        if builder is None:
            raise RenderFailure(f"No document layout for kind {kind.value}")
        generated_at = as_utc(generated_at or utcnow())
        try:
            story = self._header(kind, generated_at)
            story.extend(self._patient_block(patient))
            for section in builder(payload):
                story.extend(self._section(section))
            story.extend(self._actor_block(actor, generated_at))
            return self._build(story, kind)
        except (RenderFailure, TemplateMissing):
            raise
        except Exception as exc:
            logger.warning("Render of %s document failed: %s", kind.value, exc)
            raise RenderFailure(f"{type(exc).__name__}: {exc}") from exc

    # ── layout blocks ────────────────────────────────────────────────────

    def _header(self, kind: NotificationKind, generated_at: datetime) -> list:
        return [
            Paragraph(para_text(self.facility_name), self.facility_style),
            Paragraph("Electronic Medical Record System", self.meta_style),
            Spacer(1, 0.1 * inch),
            Paragraph(para_text(document_title(kind)), self.title_style),
            Paragraph(f"Generated: {para_text(format_timestamp(generated_at))}", self.meta_style),
            Spacer(1, 0.15 * inch),
        ]

    def _patient_block(self, patient: PatientRef) -> list:
        rows = [
            ("Hospital number (HN)", display(patient.hospital_number)),
            ("Name", display(patient.display_name)),
            ("National ID", display(patient.national_id)),
            ("Phone", display(patient.phone)),
            ("E-mail", display(patient.email)),
        ]
        return [Paragraph("Patient Identification", self.h2), self._label_table(rows)]

    def _section(self, section: DetailSection) -> list:
        flowables: list = [Paragraph(para_text(section.title), self.h2)]
        if section.rows:
            flowables.append(self._label_table(section.rows))
        if section.table_header:
            data = [[Paragraph(para_text(h), self.cell_style) for h in section.table_header]]
            data.extend([Paragraph(para_text(c), self.cell_style) for c in row] for row in section.table_rows)
            width = (LABEL_COL_WIDTH + VALUE_COL_WIDTH) / len(section.table_header)
            grid = Table(data, colWidths=[width] * len(section.table_header), repeatRows=1)
            grid.setStyle(_GRID_STYLE)
            flowables.append(grid)
        for line in section.bullets:
            flowables.append(Paragraph(para_text(line), self.bullet_style, bulletText="•"))
        return flowables

    def _actor_block(self, actor: Actor, generated_at: datetime) -> list:
        rows = [
            ("Recorded by", display(actor.display_name)),
            ("Staff id", display(actor.id)),
            ("Date", format_timestamp(generated_at)),
            ("Signature", "______________________________"),
        ]
        return [Spacer(1, 0.2 * inch), Paragraph("Recorded By", self.h2), self._label_table(rows)]

    def _label_table(self, rows: list[tuple[str, str]]) -> Table:
        data = [
            [Paragraph(para_text(label), self.cell_style), Paragraph(para_text(value), self.cell_style)]
            for label, value in rows
        ]
        table = Table(data, colWidths=[LABEL_COL_WIDTH, VALUE_COL_WIDTH], hAlign="LEFT")
        table.setStyle(_ROW_STYLE)
        return table

    # ── document assembly ────────────────────────────────────────────────

    def _draw_footer(self, canvas, doc) -> None:
        canvas.saveState()
        canvas.setFont("Helvetica", 7)
        canvas.setFillColor(colors.grey)
        footer = self.facility_name
        if self.facility_contact:
            footer = f"{footer} | {self.facility_contact}"
        canvas.drawString(doc.leftMargin, 0.5 * inch, footer)
        canvas.drawRightString(doc.pagesize[0] - doc.rightMargin, 0.5 * inch, f"Page {doc.page}")
        canvas.restoreState()

    def _build(self, story: list, kind: NotificationKind) -> bytes:
        buf = BytesIO()
        doc = BaseDocTemplate(
            buf,
            pagesize=A4,
            leftMargin=0.8 * inch,
            rightMargin=0.8 * inch,
            topMargin=0.8 * inch,
            bottomMargin=0.9 * inch,
            title=document_title(kind),
            author=self.facility_name,
            invariant=1,
        )
        frame = Frame(doc.leftMargin, doc.bottomMargin, doc.width, doc.height, id="body")
        doc.addPageTemplates([PageTemplate(id="document", frames=[frame], onPage=self._draw_footer)])
        doc.build(story)
        return buf.getvalue()
