"""
Report Aggregation
Sales, product, customer, cashier operation and promotion statistics.

Functions take already loaded records and return plain dicts ready for
``jsonify``; the reports blueprint does the querying.
"""

from collections import OrderedDict
from datetime import datetime, timedelta
from decimal import Decimal

from retail_pos.utils.helpers import to_decimal, to_money
from retail_pos.utils.promotions import get_promotion_status
from retail_pos.utils.reconciliation import calculate_shortage, has_discrepancy

ZERO = Decimal('0')

REPORT_TYPES = ('operations', 'closings', 'shortages', 'sales')

PAYMENT_METHOD_NAMES = {
    'cash': 'Cash',
    'credit_card': 'Credit Card',
    'debit_card': 'Debit Card',
    'pix': 'PIX',
    'transfer': 'Bank Transfer',
    'mixed': 'Mixed Payment',
}


def _money(value):
    return float(to_money(value))


def _percentage(part, whole):
    if not whole:
        return 0.0
    return round(float(to_decimal(part) / to_decimal(whole) * 100), 2)


def week_key(moment):
    """ISO week label, e.g. 2024-W07"""
    year, week, _ = moment.isocalendar()
    return f'{year}-W{week:02d}'


def month_key(moment):
    return f'{moment.year}-{moment.month:02d}'


def _bucket(orders, key_func, limit):
    buckets = {}
    for order in orders:
        key = key_func(order.created_at)
        entry = buckets.setdefault(key, {'sales': ZERO, 'transactions': 0})
        entry['sales'] += to_decimal(order.total)
        entry['transactions'] += 1
    keys = sorted(buckets)[-limit:]
    return [
        {'period': key, 'sales': _money(buckets[key]['sales']), 'transactions': buckets[key]['transactions']}
        for key in keys
    ]


# ============================================================
# SALES
# ============================================================

def sales_report(orders):
    """
    Daily (last 30), weekly (last 12) and monthly (last 12) sales with a
    payment method breakdown
    """
    orders = [order for order in orders if order.created_at is not None]
    total = sum((to_decimal(order.total) for order in orders), ZERO)

    methods = OrderedDict()
    for order in orders:
        method = order.payment_method or 'unknown'
        entry = methods.setdefault(method, {'amount': ZERO, 'count': 0})
        entry['amount'] += to_decimal(order.total)
        entry['count'] += 1

    return {
        'daily_sales': _bucket(orders, lambda moment: moment.date().isoformat(), 30),
        'weekly_sales': _bucket(orders, week_key, 12),
        'monthly_sales': _bucket(orders, month_key, 12),
        'payment_methods': [
            {
                'method': method,
                'label': PAYMENT_METHOD_NAMES.get(method, method),
                'amount': _money(entry['amount']),
                'count': entry['count'],
                'percentage': _percentage(entry['amount'], total),
            }
            for method, entry in methods.items()
        ],
        'total_sales': _money(total),
        'total_transactions': len(orders),
        'average_ticket': _money(total / len(orders)) if orders else 0.0,
    }


# ============================================================
# PRODUCTS
# ============================================================

def products_report(products, order_items, top=10):
    """Top products by revenue, category distribution and stock status"""
    sold = {}
    for item in order_items:
        entry = sold.setdefault(item.product_id, {
            'id': item.product_id,
            'name': item.product.name if item.product else 'Unknown product',
            'quantity': 0,
            'revenue': ZERO,
        })
        entry['quantity'] += item.quantity or 0
        entry['revenue'] += to_decimal(item.unit_price) * (item.quantity or 0)

    top_products = sorted(sold.values(), key=lambda entry: entry['revenue'], reverse=True)[:top]
    for entry in top_products:
        entry['revenue'] = _money(entry['revenue'])

    categories = {}
    for product in products:
        name = product.category.name if product.category else 'Uncategorized'
        categories[name] = categories.get(name, 0) + 1

    category_distribution = [
        {'category': name, 'count': count, 'percentage': _percentage(count, len(products))}
        for name, count in sorted(categories.items(), key=lambda pair: pair[1], reverse=True)
    ]

    stock_status = {'in_stock': 0, 'low_stock': 0, 'out_of_stock': 0}
    for product in products:
        stock_status[product.stock_status] += 1

    return {
        'top_products': top_products,
        'category_distribution': category_distribution,
        'stock_status': stock_status,
    }


# ============================================================
# CUSTOMERS
# ============================================================

def _last_months(now, count):
    """Month keys for the last ``count`` months including the current one"""
    keys = []
    year, month = now.year, now.month
    for _ in range(count):
        keys.append(f'{year}-{month:02d}')
        month -= 1
        if month == 0:
            year, month = year - 1, 12
    return list(reversed(keys))


def customers_report(customers, orders, now=None, active_days=90, top=10):
    """New customers per month (last 6), top spenders and activity"""
    now = now or datetime.utcnow()

    new_customers = OrderedDict((key, 0) for key in _last_months(now, 6))
    for customer in customers:
        if customer.created_at is None:
            continue
        key = month_key(customer.created_at)
        if key in new_customers:
            new_customers[key] += 1

    spending = {}
    active_since = now - timedelta(days=active_days)
    active_ids = set()
    for order in orders:
        if not order.customer_id:
            continue
        entry = spending.setdefault(order.customer_id, {
            'id': order.customer_id,
            'name': order.customer.name if order.customer else 'Unknown customer',
            'purchases': 0,
            'spent': ZERO,
        })
        entry['purchases'] += 1
        entry['spent'] += to_decimal(order.total)
        if order.created_at and order.created_at > active_since:
            active_ids.add(order.customer_id)

    top_customers = sorted(spending.values(), key=lambda entry: entry['spent'], reverse=True)[:top]
    for entry in top_customers:
        entry['spent'] = _money(entry['spent'])

    total = len(customers)
    return {
        'new_customers': [{'period': key, 'count': count} for key, count in new_customers.items()],
        'top_customers': top_customers,
        'total_customers': total,
        'active_customers': len(active_ids),
        'inactive_customers': max(0, total - len(active_ids)),
    }


# ============================================================
# CASHIER OPERATIONS
# ============================================================

def _in_range(moment, start=None, end=None):
    if moment is None:
        return False
    if start is not None and moment < start:
        return False
    if end is not None and moment > end:
        return False
    return True


def cashier_operation_rows(operations, all_operations=None):
    """
    Flatten operations into report rows with names and shortage

    ``all_operations`` is the log used to find the matching open of a close.
    """
    all_operations = all_operations if all_operations is not None else operations
    rows = []
    for op in operations:
        shortage = calculate_shortage(op, all_operations)
        rows.append({
            'id': op.id,
            'timestamp': op.timestamp.strftime('%Y-%m-%d %H:%M:%S') if op.timestamp else '',
            'cashier_id': op.cashier_id,
            'cashier_name': op.cashier.name if getattr(op, 'cashier', None) else '',
            'user_id': op.user_id,
            'operator_name': op.user.full_name if getattr(op, 'user', None) else '',
            'operation_type': op.operation_type,
            'amount': _money(op.amount),
            'opening_balance': _money(op.opening_balance) if op.opening_balance is not None else None,
            'closing_balance': _money(op.closing_balance) if op.closing_balance is not None else None,
            'shortage': _money(shortage) if shortage is not None else None,
            'reason': op.discrepancy_reason or op.reason or '',
            'manager_id': op.manager_id,
            'manager_name': op.manager_name or '',
        })
    return rows


def cashier_operations_report(operations, orders=None, start=None, end=None,
                              operator_id=None, report_type='operations'):
    """
    Cashier operations filtered by date range and operator

    report_type:
        operations: every operation
        closings: close operations
        shortages: closes with a discrepancy, with the authorizing manager
        sales: orders in the same window, with the average ticket
    """
    if report_type not in REPORT_TYPES:
        report_type = 'operations'

    def matches(moment, user_id):
        return _in_range(moment, start, end) and (operator_id is None or user_id == operator_id)

    if report_type == 'sales':
        rows = [
            {
                'id': order.id,
                'timestamp': order.created_at.strftime('%Y-%m-%d %H:%M:%S'),
                'cashier_id': order.cashier_id,
                'user_id': order.user_id,
                'operation_type': 'sale',
                'order_number': order.order_number,
                'payment_method': order.payment_method,
                'amount': _money(order.total),
            }
            for order in sorted(orders or [], key=lambda o: o.created_at or datetime.min, reverse=True)
            if matches(order.created_at, order.user_id)
        ]
    else:
        selected = [op for op in operations if matches(op.timestamp, op.user_id)]
        if report_type == 'closings':
            selected = [op for op in selected if op.operation_type == 'close']
        elif report_type == 'shortages':
            selected = [op for op in selected if has_discrepancy(op, operations)]
        selected.sort(key=lambda op: (op.timestamp, op.id or 0), reverse=True)
        rows = cashier_operation_rows(selected, operations)

    total_amount = sum((to_decimal(row['amount']) for row in rows), ZERO)
    report = {
        'report_type': report_type,
        'operations': rows,
        'total_operations': len(rows),
        'total_amount': _money(total_amount),
    }

    if report_type == 'shortages':
        report['shortages'] = [
            {
                'operation_id': row['id'],
                'amount': row['shortage'] or 0.0,
                'counted': row['amount'],
                'reason': row['reason'],
                'timestamp': row['timestamp'],
                'manager_id': row['manager_id'],
                'manager_name': row['manager_name'],
            }
            for row in rows
        ]
        report['total_shortage'] = _money(sum((to_decimal(row['shortage']) for row in rows), ZERO))

    if report_type == 'sales':
        report['average_ticket'] = _money(total_amount / len(rows)) if rows else 0.0

    return report


# ============================================================
# PROMOTIONS
# ============================================================

def promotion_statistics(promotions, now=None):
    """Total, active, upcoming and expired promotion counts"""
    now = now or datetime.utcnow()
    stats = {'total': 0, 'active': 0, 'upcoming': 0, 'expired': 0, 'inactive': 0}
    for promotion in promotions:
        stats['total'] += 1
        stats[get_promotion_status(promotion, now)] += 1
    return stats
