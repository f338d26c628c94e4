"""
Unit Tests for Utility Modules
Tests for helpers, permissions and export utilities
"""

import csv
import io
import re

import pytest
from decimal import Decimal
from datetime import datetime
from openpyxl import load_workbook

from retail_pos.models import User
from retail_pos.utils.errors import ValidationError
from retail_pos.utils.export import export_cashier_operations, export_to_csv, export_to_excel
from retail_pos.utils.helpers import (
    generate_order_number,
    parse_amount,
    parse_datetime,
    to_decimal,
    to_money,
)
from retail_pos.utils.permissions import Capabilities, Role, parse_role, role_has_capability


# ============================================================================
# HELPERS
# ============================================================================

class TestHelpers:

    def test_to_decimal(self):
        assert to_decimal('1.50') == Decimal('1.50')
        assert to_decimal(None) == Decimal('0')
        assert to_decimal('abc') == Decimal('0')
        assert to_decimal(float('nan')) == Decimal('0')
        assert to_decimal(True) == Decimal('0')

    def test_to_money_rounds_half_up(self):
        assert to_money('2.345') == Decimal('2.35')
        assert to_money(10) == Decimal('10.00')

    def test_parse_amount(self):
        assert parse_amount('12,50') == Decimal('12.50')
        with pytest.raises(ValidationError):
            parse_amount('')
        with pytest.raises(ValidationError):
            parse_amount('twelve')
        with pytest.raises(ValidationError):
            parse_amount('inf')

    def test_parse_datetime(self):
        assert parse_datetime('2024-06-15') == datetime(2024, 6, 15)
        assert parse_datetime('') is None
        with pytest.raises(ValidationError):
            parse_datetime('15/06/2024')

    def test_order_number_format(self):
        assert re.match(r'^ORD-\d{8}-\d{4}$', generate_order_number())


# ============================================================================
# PERMISSIONS
# ============================================================================

class TestPermissions:

    def test_parse_role(self):
        assert parse_role('manager') is Role.MANAGER
        assert parse_role(Role.ADMIN) is Role.ADMIN
        assert parse_role('owner') is None

    @pytest.mark.parametrize('role,allowed', [
        ('admin', True),
        ('manager', True),
        ('employee', False),
        ('owner', False),
    ])
    def test_override_capability(self, role, allowed):
        assert role_has_capability(role, Capabilities.AUTHORIZE_OVERRIDES) is allowed

    def test_employee_sells_and_operates_cashiers(self):
        assert role_has_capability('employee', Capabilities.POS_SELL)
        assert role_has_capability('employee', Capabilities.CASHIER_OPERATE)
        assert not role_has_capability('employee', Capabilities.POS_REMOVE_ITEM)
        assert not role_has_capability('employee', Capabilities.REPORT_VIEW)

    def test_user_rejects_unknown_role(self):
        with pytest.raises(ValidationError):
            User(username='owner', full_name='Owner', role='owner')

        user = User(username='boss', full_name='Boss', role=Role.MANAGER)
        assert user.role == 'manager'
        with pytest.raises(ValidationError):
            user.role = 'superuser'
        assert user.role == 'manager'


# ============================================================================
# EXPORT
# ============================================================================

ROWS = [
    {'timestamp': '2024-06-10 08:00:00', 'operation_type': 'open', 'amount': 100.0, 'shortage': None},
    {'timestamp': '2024-06-10 18:00:00', 'operation_type': 'close', 'amount': 80.0, 'shortage': 20.0,
     'reason': 'Miscount', 'manager_name': 'Manager User'},
]


class TestExport:

    def test_csv_has_header_and_rows(self):
        output = export_to_csv(ROWS, {'operation_type': 'Operation', 'shortage': 'Shortage'})
        rows = list(csv.reader(io.StringIO(output.getvalue().decode('utf-8-sig'))))
        assert rows == [['Operation', 'Shortage'], ['open', ''], ['close', '20.0']]

    def test_excel_layout(self):
        output = export_to_excel(ROWS, {'operation_type': 'Operation', 'amount': 'Amount'}, title='Ops')
        sheet = load_workbook(output).active
        assert sheet.cell(row=1, column=1).value == 'Ops'
        assert sheet.cell(row=4, column=2).value == 'Amount'
        assert sheet.cell(row=6, column=2).value == 80.0

    @pytest.mark.parametrize('export_format,extension', [('csv', '.csv'), ('xlsx', '.xlsx')])
    def test_cashier_operations_filename(self, export_format, extension):
        _, mimetype, filename = export_cashier_operations(ROWS, export_format)
        assert filename.startswith('cashier_operations_')
        assert filename.endswith(extension)
        assert mimetype
