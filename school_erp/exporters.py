"""
Report file writers.

Each writer takes a title, a list of row dicts and a summary dict and writes
one file into the export directory. PDF uses reportlab, EXCEL uses openpyxl
and CSV uses the csv module.
"""
import csv
import logging
import os
import secrets
from datetime import date, datetime

from flask import current_app
from openpyxl import Workbook
from openpyxl.styles import Font
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4, landscape
from reportlab.lib.styles import getSampleStyleSheet
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

logger = logging.getLogger(__name__)

EXTENSIONS = {'PDF': 'pdf', 'EXCEL': 'xlsx', 'CSV': 'csv'}
MIME_TYPES = {
    'PDF': 'application/pdf',
    'EXCEL': 'application/vnd.openxmlformats-officedocument.spreadsheetml.sheet',
    'CSV': 'text/csv',
}


def export_dir():
    path = current_app.config.get('EXPORT_DIR') or os.path.join(current_app.instance_path, 'exports')
    os.makedirs(path, exist_ok=True)
    return path


def _cell(value):
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (dict, list)):
        return str(value)
    return value


def columns_for(rows):
    columns = []
    for row in rows:
        for key in row:
            if key not in columns:
                columns.append(key)
    return columns


def _write_csv(path, title, rows, summary, options):
    columns = columns_for(rows)
    with open(path, 'w', newline='', encoding='utf-8') as handle:
        writer = csv.writer(handle)
        writer.writerow(columns)
        for row in rows:
            writer.writerow([_cell(row.get(column)) for column in columns])


def _write_excel(path, title, rows, summary, options):
    workbook = Workbook()
    sheet = workbook.active
    sheet.title = 'Data'
    columns = columns_for(rows)
    sheet.append(columns)
    for cell in sheet[1]:
        cell.font = Font(bold=True)
    for row in rows:
        sheet.append([_cell(row.get(column)) for column in columns])

    if summary:
        stats = workbook.create_sheet('Summary')
        stats.append(['Metric', 'Value'])
        for key, value in summary.items():
            stats.append([key, _cell(value)])
    workbook.save(path)


def _write_pdf(path, title, rows, summary, options):
    styles = getSampleStyleSheet()
    header_color = colors.HexColor(options['header_color']) if options.get('header_color') else colors.grey
    pagesize = A4 if options.get('orientation') == 'PORTRAIT' else landscape(A4)
    story = [Paragraph(title, styles['Title']), Spacer(1, 12)]

    if summary:
        summary_rows = [[str(key), str(_cell(value))] for key, value in summary.items()]
        story.append(Table(summary_rows, hAlign='LEFT'))
        story.append(Spacer(1, 12))

    columns = columns_for(rows)
    if columns:
        table = Table([columns] + [[str(_cell(row.get(c, ''))) for c in columns] for row in rows], repeatRows=1)
        table.setStyle(TableStyle([
            ('BACKGROUND', (0, 0), (-1, 0), header_color),
            ('TEXTCOLOR', (0, 0), (-1, 0), colors.whitesmoke),
            ('FONTSIZE', (0, 0), (-1, -1), options.get('font_size') or 8),
            ('GRID', (0, 0), (-1, -1), 0.5, colors.black),
        ]))
        story.append(table)
    else:
        story.append(Paragraph('No records', styles['Normal']))

    SimpleDocTemplate(path, pagesize=pagesize, title=title).build(story)


WRITERS = {
    'CSV': _write_csv,
    'EXCEL': _write_excel,
    'PDF': _write_pdf,
}


def write_report_file(export_format, name, title, rows, summary=None, **options):
    """Write the file and return ``(file_name, path, size_in_bytes)``."""
    stamp = datetime.utcnow().strftime('%Y%m%d_%H%M%S')
    file_name = f'{name}_{stamp}_{secrets.token_hex(3)}.{EXTENSIONS[export_format]}'
    path = os.path.join(export_dir(), file_name)
    WRITERS[export_format](path, title, rows, summary or {}, options)
    size = os.path.getsize(path)
    logger.info('Wrote %s export %s (%d bytes)', export_format, file_name, size)
    return file_name, path, size
