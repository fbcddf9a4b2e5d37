"""
PDF Generator for result reports
Renders the per-exam summary and the attempt list as a printable A4 report
"""

import logging
import os
from datetime import datetime

import pandas as pd
from reportlab.lib import colors
from reportlab.lib.enums import TA_CENTER
from reportlab.lib.pagesizes import A4, landscape
from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
from reportlab.lib.units import mm
from reportlab.pdfbase import pdfmetrics
from reportlab.pdfbase.ttfonts import TTFont
from reportlab.platypus import SimpleDocTemplate, Paragraph, Spacer, Table, TableStyle

from lms_app.config import APP_NAME, EXPORT_DIR, COLORS

logger = logging.getLogger(__name__)

FONT_CANDIDATES = [
    ('LmsSans', 'LmsSans-Bold',
     '/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf',
     '/usr/share/fonts/truetype/dejavu/DejaVuSans-Bold.ttf'),
    ('LmsSans', 'LmsSans-Bold',
     'C:\\Windows\\Fonts\\arial.ttf',
     'C:\\Windows\\Fonts\\arialbd.ttf'),
    ('LmsSans', 'LmsSans-Bold',
     '/System/Library/Fonts/Supplemental/Arial.ttf',
     '/System/Library/Fonts/Supplemental/Arial Bold.ttf'),
]


class ResultsPDFGenerator:
    def __init__(self):
        self.normal_font, self.bold_font = self._register_fonts()
        self.styles = getSampleStyleSheet()
        self._setup_styles()

    def _register_fonts(self):
        """Register a Unicode-capable font pair, falling back to Helvetica"""
        for normal_name, bold_name, normal_path, bold_path in FONT_CANDIDATES:
            if not (os.path.exists(normal_path) and os.path.exists(bold_path)):
                continue
            try:
                for font_name, font_path in [(normal_name, normal_path), (bold_name, bold_path)]:
                    if font_name not in pdfmetrics.getRegisteredFontNames():
                        pdfmetrics.registerFont(TTFont(font_name, font_path))
                return normal_name, bold_name
            except Exception as font_error:
                logger.warning("[PDF] Failed to register font %s: %s", normal_path, font_error)
        return 'Helvetica', 'Helvetica-Bold'

    def _setup_styles(self):
        """Setup custom paragraph styles"""
        base_normal = self.styles['Normal']
        base_normal.fontName = self.normal_font
        base_normal.fontSize = 9
        base_normal.leading = 11

        self.styles.add(ParagraphStyle(
            name='ReportTitle',
            parent=self.styles['Heading1'],
            fontSize=18,
            textColor=colors.HexColor(COLORS['primary']),
            spaceAfter=6,
            alignment=TA_CENTER,
            fontName=self.bold_font
        ))

        self.styles.add(ParagraphStyle(
            name='ReportSubtitle',
            parent=self.styles['Normal'],
            fontSize=10,
            textColor=colors.HexColor(COLORS['text_secondary']),
            spaceAfter=6,
            alignment=TA_CENTER,
            fontName=self.normal_font
        ))

        self.styles.add(ParagraphStyle(
            name='SectionHeader',
            parent=self.styles['Heading2'],
            fontSize=13,
            textColor=colors.HexColor(COLORS['text_primary']),
            spaceAfter=6,
            spaceBefore=10,
            fontName=self.bold_font
        ))

    def _table(self, header, rows, col_widths):
        data = [[Paragraph(f"<b>{h}</b>", self.styles['Normal']) for h in header]]
        data += [[Paragraph(self._cell(v), self.styles['Normal']) for v in row] for row in rows]
        table = Table(data, colWidths=col_widths, repeatRows=1)
        table.setStyle(TableStyle([
            ('BACKGROUND', (0, 0), (-1, 0), colors.HexColor('#e0e7ff')),
            ('GRID', (0, 0), (-1, -1), 0.5, colors.HexColor('#cbd5e1')),
            ('VALIGN', (0, 0), (-1, -1), 'MIDDLE'),
            ('ROWBACKGROUNDS', (0, 1), (-1, -1), [colors.white, colors.HexColor('#f8fafc')]),
            ('BOTTOMPADDING', (0, 0), (-1, -1), 4),
            ('TOPPADDING', (0, 0), (-1, -1), 4),
        ]))
        return table

    @staticmethod
    def _cell(value) -> str:
        if value is None or (not isinstance(value, str) and pd.isna(value)):
            return '-'
        if isinstance(value, (datetime, pd.Timestamp)):
            return value.strftime('%Y-%m-%d %H:%M')
        if isinstance(value, float):
            return f"{value:g}"
        return str(value).replace('&', '&amp;').replace('<', '&lt;').replace('>', '&gt;')

    def generate_results_report(self, results: pd.DataFrame, summary: pd.DataFrame,
                                output_path: str = None, title: str = "Exam Results") -> str:
        """Write the report and return its path"""
        if output_path is None:
            os.makedirs(EXPORT_DIR, exist_ok=True)
            output_path = os.path.join(EXPORT_DIR, f"results_{datetime.now().strftime('%Y%m%d_%H%M%S')}.pdf")

        page_size = landscape(A4)
        doc = SimpleDocTemplate(
            output_path,
            pagesize=page_size,
            rightMargin=15*mm,
            leftMargin=15*mm,
            topMargin=15*mm,
            bottomMargin=15*mm,
            title=title
        )
        usable = page_size[0] - 30*mm

        story = [
            Paragraph(title, self.styles['ReportTitle']),
            Paragraph(f"{APP_NAME} | generated {datetime.now().strftime('%Y-%m-%d %H:%M')} | "
                      f"{len(results)} attempt(s)", self.styles['ReportSubtitle']),
            Spacer(1, 4*mm),
            Paragraph("Summary per exam", self.styles['SectionHeader']),
        ]

        summary_header = ['Exam', 'Attempts', 'Graded', 'Average', 'Highest', 'Lowest', 'Pass rate %']
        story.append(self._table(
            summary_header,
            summary.itertuples(index=False, name=None),
            [usable * 0.34] + [usable * 0.11] * 6
        ))

        story.append(Paragraph("Attempts", self.styles['SectionHeader']))
        attempt_header = ['Exam', 'Student', 'Status', 'Score', 'Started', 'Finished', 'Minutes']
        attempt_rows = results[['exam', 'student', 'status', 'score', 'start_time', 'end_time',
                                'duration_minutes']].itertuples(index=False, name=None)
        story.append(self._table(
            attempt_header,
            attempt_rows,
            [usable * 0.24, usable * 0.2, usable * 0.1, usable * 0.08, usable * 0.15, usable * 0.15, usable * 0.08]
        ))

        doc.build(story)
        logger.info("[PDF] Results report written to %s", output_path)
        return output_path
