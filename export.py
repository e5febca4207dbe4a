# export.py
import io
from datetime import datetime
from typing import Dict, Optional

import pandas as pd
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4, landscape
from reportlab.lib.styles import getSampleStyleSheet
from reportlab.pdfbase import pdfmetrics
from reportlab.pdfbase.cidfonts import UnicodeCIDFont
from reportlab.platypus import SimpleDocTemplate, Table, TableStyle, Paragraph, Spacer

# Built-in CID font with Hangul glyphs; Helvetica has none.
KOREAN_FONT = 'HYSMyeongJo-Medium'
pdfmetrics.registerFont(UnicodeCIDFont(KOREAN_FONT))

DEFAULT_PDF_SETTINGS = {
    'primary_color': '#4E49E7',
    'secondary_color': '#3F3ABE',
    'font_size': 9,
    'company_name': 'Eluo Business Log',
    'landscape': False,
}


def generate_pdf(dataframe: pd.DataFrame, title: str, settings: Optional[Dict] = None) -> bytes:
    """Render a DataFrame as a branded table. Long tables flow onto new pages with the header repeated."""
    settings = {**DEFAULT_PDF_SETTINGS, **(settings or {})}
    pagesize = landscape(A4) if settings['landscape'] else A4
    font_size = settings['font_size']

    buffer = io.BytesIO()
    doc = SimpleDocTemplate(buffer, pagesize=pagesize, title=title,
                            leftMargin=36, rightMargin=36, topMargin=36, bottomMargin=36)

    styles = getSampleStyleSheet()
    heading = styles['Heading1'].clone('company', fontName=KOREAN_FONT,
                                       textColor=colors.HexColor(settings['primary_color']))
    body = styles['Normal'].clone('body', fontName=KOREAN_FONT)

    story = [
        Paragraph(settings['company_name'], heading),
        Paragraph(title, body),
        Paragraph(f"Generated: {datetime.now().strftime('%Y-%m-%d %H:%M')}", body),
        Spacer(1, 12),
    ]

    data = [[str(c) for c in dataframe.columns]]
    data += [['' if pd.isna(v) else str(v) for v in row] for row in dataframe.values.tolist()]
    if dataframe.columns.empty:
        data = [['(no data)']]
    elif len(data) == 1:
        data.append(['(no data)'] + [''] * (len(dataframe.columns) - 1))

    table = Table(data, repeatRows=1)
    table.setStyle(TableStyle([
        ('FONTNAME', (0, 0), (-1, -1), KOREAN_FONT),
        ('FONTSIZE', (0, 0), (-1, -1), font_size),
        ('BACKGROUND', (0, 0), (-1, 0), colors.HexColor(settings['secondary_color'])),
        ('TEXTCOLOR', (0, 0), (-1, 0), colors.whitesmoke),
        ('ALIGN', (0, 0), (-1, -1), 'CENTER'),
        ('BOTTOMPADDING', (0, 0), (-1, 0), 8),
        ('ROWBACKGROUNDS', (0, 1), (-1, -1), [colors.white, colors.HexColor('#F5F5FF')]),
        ('GRID', (0, 0), (-1, -1), 0.5, colors.grey),
    ]))
    story.append(table)

    doc.build(story)
    return buffer.getvalue()
