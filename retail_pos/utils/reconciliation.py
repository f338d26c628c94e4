"""
Cashier Reconciliation
Pure derivations over the append-only cashier operation log.

Operations are ``CashierOperation`` rows or any object with the same
attributes. Open/closed state is never stored; it is replayed from the log.
"""

from collections import OrderedDict
from datetime import datetime
from decimal import Decimal

from retail_pos.utils.helpers import to_decimal

ZERO = Decimal('0')

OPERATION_TYPES = ('open', 'close', 'deposit', 'withdrawal')


def _sort_key(operation):
    return (operation.timestamp or datetime.min, operation.id or 0)


def _for_cashier(operations, cashier_id):
    return sorted(
        (op for op in operations or [] if op.cashier_id == cashier_id),
        key=_sort_key,
    )


def get_latest_operation(operations, cashier_id):
    """Most recent operation of a cashier or None"""
    ordered = _for_cashier(operations, cashier_id)
    return ordered[-1] if ordered else None


def is_cashier_open(operations, cashier_id):
    """A cashier is open when its last open/close operation is an open"""
    state = False
    for op in _for_cashier(operations, cashier_id):
        if op.operation_type == 'open':
            state = True
        elif op.operation_type == 'close':
            state = False
    return state


def get_operations_since_open(operations, cashier_id):
    """
    Operations of the current session, starting with its open

    Returns an empty list when the cashier is closed.
    """
    ordered = _for_cashier(operations, cashier_id)
    session = []
    for op in ordered:
        if op.operation_type == 'open':
            session = [op]
        elif op.operation_type == 'close':
            session = []
        elif session:
            session.append(op)
    return session


def get_cashier_balance(operations, cashier_id, sales_total=0):
    """
    Expected cash in the drawer

    Opening amount plus deposits minus withdrawals since the latest open,
    plus cash sales when given. Zero for a closed cashier.
    """
    session = get_operations_since_open(operations, cashier_id)
    if not session:
        return ZERO

    balance = ZERO
    for op in session:
        amount = to_decimal(op.amount)
        if op.operation_type in ('open', 'deposit'):
            balance += amount
        elif op.operation_type == 'withdrawal':
            balance -= amount
    return balance + to_decimal(sales_total)


def find_matching_open_operation(close_op, operations):
    """Latest open of the same cashier before the close"""
    candidates = [
        op for op in operations or []
        if op.cashier_id == close_op.cashier_id
        and op.operation_type == 'open'
        and op.timestamp is not None and close_op.timestamp is not None
        and op.timestamp < close_op.timestamp
    ]
    if not candidates:
        return None
    return max(candidates, key=_sort_key)


def _expected_for_close(close_op, operations):
    if close_op.opening_balance is not None:
        return to_decimal(close_op.opening_balance)
    match = find_matching_open_operation(close_op, operations)
    if match is None:
        return None
    return to_decimal(match.amount)


def calculate_difference(close_op, operations):
    """
    Expected minus counted amount for a close

    Positive is a shortage, negative an overage. None for other operations
    or when nothing is known about the expected amount.
    """
    if close_op.operation_type != 'close':
        return None
    expected = _expected_for_close(close_op, operations)
    if expected is None:
        return None
    counted = close_op.closing_balance if close_op.closing_balance is not None else close_op.amount
    return expected - to_decimal(counted)


def calculate_shortage(close_op, operations):
    """Missing cash for a close, clamped to zero; None for other operations"""
    if close_op.operation_type != 'close':
        return None
    difference = calculate_difference(close_op, operations)
    if difference is None:
        return ZERO
    return max(ZERO, difference)


def has_discrepancy(close_op, operations):
    """A close with a recorded reason or a positive shortage"""
    if close_op.operation_type != 'close':
        return False
    if close_op.discrepancy_reason:
        return True
    return (calculate_shortage(close_op, operations) or ZERO) > 0


def requires_manager_authorization(expected, final_amount):
    """Only a shortage needs a manager; an overage does not"""
    return to_decimal(final_amount) < to_decimal(expected)


def group_operations_by_day(operations):
    """
    Group operations by calendar day

    Returns:
        OrderedDict of date -> operations, days newest first and operations
        oldest first inside each day
    """
    days = {}
    for op in operations or []:
        if op.timestamp is None:
            continue
        days.setdefault(op.timestamp.date(), []).append(op)

    grouped = OrderedDict()
    for day in sorted(days, reverse=True):
        grouped[day] = sorted(days[day], key=_sort_key)
    return grouped


def flatten_grouped_operations(grouped):
    """Inverse of group_operations_by_day, as a flat list"""
    return [op for day_ops in grouped.values() for op in day_ops]
