"""
Helper Utilities
Common utility functions used across the application
"""

from datetime import datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
import logging
import random
import string

from retail_pos.utils.errors import ValidationError

logger = logging.getLogger(__name__)

CENTS = Decimal('0.01')


def to_decimal(value, default=Decimal('0')):
    """
    Convert a number, string or None to Decimal

    Args:
        value: Value to convert
        default: Returned when value is None or not numeric

    Returns:
        Decimal
    """
    if value is None or value == '':
        return default
    if isinstance(value, bool):
        return default
    try:
        result = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        return default
    return result if result.is_finite() else default


def to_money(value):
    """Round a monetary value to cents"""
    return to_decimal(value).quantize(CENTS, rounding=ROUND_HALF_UP)


def parse_amount(value, field='amount'):
    """
    Parse a user supplied cash amount

    Raises:
        ValidationError: when the value is missing or not a number
    """
    if value is None or value == '':
        raise ValidationError(f'{field} is required')
    if isinstance(value, bool):
        raise ValidationError(f'{field} must be a number')
    try:
        amount = Decimal(str(value).replace(',', '.'))
    except (InvalidOperation, ValueError):
        raise ValidationError(f'{field} must be a number')
    if not amount.is_finite():
        raise ValidationError(f'{field} must be a number')
    return amount


def generate_order_number():
    """
    Generate unique order number

    Format: ORD-YYYYMMDD-XXXX
    Where XXXX is a random 4-digit number

    Returns:
        str: Order number
    """
    date_part = datetime.now().strftime('%Y%m%d')
    random_part = ''.join(random.choices(string.digits, k=4))
    return f"ORD-{date_part}-{random_part}"


def parse_datetime(value):
    """
    Parse an ISO date or datetime string, returns None when empty

    Raises:
        ValidationError: when the string is not ISO formatted
    """
    if not value:
        return None
    if isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(value)
    except (TypeError, ValueError):
        raise ValidationError(f'Invalid date: {value}. Use YYYY-MM-DD')


def log_activity(user_id, action, entity_type, entity_id, details):
    """
    Add an audit row to the current transaction

    The caller commits; a failure here never breaks the calling request.
    """
    from flask import has_request_context, request
    from retail_pos.models import db, ActivityLog

    try:
        log = ActivityLog(
            user_id=user_id,
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            details=details,
            ip_address=request.remote_addr if has_request_context() else None
        )
        db.session.add(log)
        return log
    except Exception as e:
        logger.error(f"Error logging activity: {e}")
        return None


def get_request_data():
    """JSON body or form data of the current request as a dict"""
    from flask import request

    data = request.get_json(silent=True)
    if isinstance(data, dict):
        return data
    return request.form.to_dict()
