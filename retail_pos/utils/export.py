"""
Export utilities for cashier operation reports (Excel and CSV)
"""

from io import BytesIO, StringIO
from datetime import datetime
import csv

from openpyxl import Workbook
from openpyxl.styles import Font, PatternFill, Alignment, Border, Side
from openpyxl.utils import get_column_letter

CASHIER_OPERATION_COLUMNS = {
    'timestamp': 'Date/Time',
    'cashier_name': 'Cashier',
    'operator_name': 'Operator',
    'operation_type': 'Operation',
    'amount': 'Amount',
    'opening_balance': 'Expected',
    'closing_balance': 'Counted',
    'shortage': 'Shortage',
    'reason': 'Reason',
    'manager_name': 'Authorized By',
}


def _split_columns(columns):
    if isinstance(columns, dict):
        return list(columns.keys()), list(columns.values())
    return list(columns), list(columns)


def _cell_value(row, key, index):
    if isinstance(row, dict):
        value = row.get(key, '')
    else:
        value = row[index] if index < len(row) else ''
    return '' if value is None else value


def export_to_excel(data, columns, title="Report", sheet_name="Data"):
    """
    Export rows to an Excel workbook

    Args:
        data: list of dicts or lists
        columns: list of headers or dict mapping keys to display names
        title: title written above the table
        sheet_name: worksheet name

    Returns:
        BytesIO holding the .xlsx file
    """
    keys, headers = _split_columns(columns)

    wb = Workbook()
    ws = wb.active
    ws.title = sheet_name

    header_font = Font(bold=True, color="FFFFFF", size=11)
    header_fill = PatternFill(start_color="3B82F6", end_color="3B82F6", fill_type="solid")
    thin_border = Border(
        left=Side(style='thin'),
        right=Side(style='thin'),
        top=Side(style='thin'),
        bottom=Side(style='thin')
    )

    ws.merge_cells(start_row=1, start_column=1, end_row=1, end_column=len(keys))
    title_cell = ws.cell(row=1, column=1, value=title)
    title_cell.font = Font(bold=True, size=14)
    title_cell.alignment = Alignment(horizontal='center')

    ws.merge_cells(start_row=2, start_column=1, end_row=2, end_column=len(keys))
    date_cell = ws.cell(row=2, column=1, value=f"Generated: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
    date_cell.font = Font(italic=True, size=10, color="666666")
    date_cell.alignment = Alignment(horizontal='center')

    header_row = 4
    for col_idx, header in enumerate(headers, 1):
        cell = ws.cell(row=header_row, column=col_idx, value=header)
        cell.font = header_font
        cell.fill = header_fill
        cell.alignment = Alignment(horizontal='center')
        cell.border = thin_border

    widths = [len(str(header)) for header in headers]
    for row_idx, row in enumerate(data, header_row + 1):
        for col_idx, key in enumerate(keys, 1):
            value = _cell_value(row, key, col_idx - 1)
            cell = ws.cell(row=row_idx, column=col_idx, value=value)
            cell.border = thin_border
            if isinstance(value, (int, float)):
                cell.alignment = Alignment(horizontal='right')
                cell.number_format = '#,##0.00'
            widths[col_idx - 1] = max(widths[col_idx - 1], len(str(value)))

    for col_idx, width in enumerate(widths, 1):
        ws.column_dimensions[get_column_letter(col_idx)].width = min(width + 2, 50)

    output = BytesIO()
    wb.save(output)
    output.seek(0)
    return output


def export_to_csv(data, columns, include_header=True):
    """
    Export rows to CSV

    Returns:
        BytesIO holding UTF-8 (with BOM, for Excel) encoded CSV
    """
    keys, headers = _split_columns(columns)

    text = StringIO()
    writer = csv.writer(text)
    if include_header:
        writer.writerow(headers)
    for row in data:
        writer.writerow([_cell_value(row, key, idx) for idx, key in enumerate(keys)])

    output = BytesIO(text.getvalue().encode('utf-8-sig'))
    output.seek(0)
    return output


def export_cashier_operations(rows, export_format='csv'):
    """
    Export a cashier operations report

    Args:
        rows: list of dicts as produced by reports.cashier_operation_rows
        export_format: 'csv' or 'xlsx'

    Returns:
        tuple (BytesIO, mimetype, filename)
    """
    stamp = datetime.now().strftime('%Y%m%d_%H%M%S')
    if export_format == 'xlsx':
        output = export_to_excel(rows, CASHIER_OPERATION_COLUMNS,
                                 title='Cashier Operations', sheet_name='Operations')
        mimetype = 'application/vnd.openxmlformats-officedocument.spreadsheetml.sheet'
        return output, mimetype, f'cashier_operations_{stamp}.xlsx'

    output = export_to_csv(rows, CASHIER_OPERATION_COLUMNS)
    return output, 'text/csv', f'cashier_operations_{stamp}.csv'
