"""
Reports Routes
Sales, product, customer and cashier operation reports
"""

from flask import Blueprint, current_app, request, jsonify, send_file
from flask_login import login_required, current_user
from datetime import datetime, time
from retail_pos.models import db, Order, OrderItem, Product, Customer, CashierOperation
from retail_pos.utils.errors import ValidationError
from retail_pos.utils.export import export_cashier_operations
from retail_pos.utils.helpers import log_activity, parse_datetime
from retail_pos.utils.permissions import Capabilities, capability_required
from retail_pos.utils import reports

bp = Blueprint('reports', __name__)


def _date_range():
    """start/end query args; a bare end date covers the whole day"""
    start = parse_datetime(request.args.get('start_date'))
    end_arg = request.args.get('end_date')
    end = parse_datetime(end_arg)
    if end is not None and end_arg and len(end_arg) <= 10:
        end = datetime.combine(end.date(), time.max)
    if start and end and end < start:
        raise ValidationError('End date must be after start date')
    return start, end


def _operator_id():
    value = request.args.get('operator_id', 'all')
    if value in ('', 'all'):
        return None
    try:
        return int(value)
    except ValueError:
        raise ValidationError('operator_id must be a user id or "all"')


def _cashier_report():
    start, end = _date_range()
    report_type = request.args.get('report_type', 'operations')
    if report_type not in reports.REPORT_TYPES:
        raise ValidationError(f'Invalid report type: {report_type}')

    operations = CashierOperation.query.order_by(CashierOperation.timestamp.asc()).all()
    orders = Order.query.all() if report_type == 'sales' else []
    return reports.cashier_operations_report(
        operations, orders, start=start, end=end,
        operator_id=_operator_id(), report_type=report_type
    )


@bp.route('/sales')
@login_required
@capability_required(Capabilities.REPORT_VIEW)
def sales():
    """Daily, weekly and monthly sales with payment methods"""
    return jsonify({'success': True, 'report': reports.sales_report(Order.query.all())})


@bp.route('/products')
@login_required
@capability_required(Capabilities.REPORT_VIEW)
def products():
    """Top sellers, category distribution and stock status"""
    report = reports.products_report(
        Product.query.filter_by(is_active=True).all(),
        OrderItem.query.all()
    )
    return jsonify({'success': True, 'report': report})


@bp.route('/customers')
@login_required
@capability_required(Capabilities.REPORT_VIEW)
def customers():
    report = reports.customers_report(
        Customer.query.all(),
        Order.query.all(),
        active_days=current_app.config.get('ACTIVE_CUSTOMER_DAYS', 90)
    )
    return jsonify({'success': True, 'report': report})


@bp.route('/cashier-operations')
@login_required
@capability_required(Capabilities.REPORT_VIEW)
def cashier_operations():
    """Operations, closings, shortages or sales by date range and operator"""
    return jsonify({'success': True, 'report': _cashier_report()})


@bp.route('/cashier-operations/export')
@login_required
@capability_required(Capabilities.REPORT_EXPORT)
def export_cashier_operations_report():
    """Download the cashier operations report as CSV or Excel"""
    export_format = request.args.get('format', 'csv')
    if export_format not in ('csv', 'xlsx'):
        raise ValidationError('Format must be csv or xlsx')

    report = _cashier_report()
    output, mimetype, filename = export_cashier_operations(report['operations'], export_format)

    log_activity(current_user.id, 'export_report', 'report', None,
                 f"Cashier operations ({report['report_type']}) exported as {export_format}")
    db.session.commit()

    return send_file(output, mimetype=mimetype, as_attachment=True, download_name=filename)
