"""
Roles, Capabilities and Permission Decorators
"""

from enum import Enum
from functools import wraps
from flask import jsonify
from flask_login import current_user


class Role(str, Enum):
    """Closed set of user roles"""
    ADMIN = 'admin'
    MANAGER = 'manager'
    EMPLOYEE = 'employee'


class Capabilities:
    """Capability name constants to avoid typos"""

    # POS
    POS_SELL = 'pos.sell'
    POS_APPLY_DISCOUNT = 'pos.apply_discount'
    POS_REMOVE_DISCOUNT = 'pos.remove_discount'
    POS_REMOVE_ITEM = 'pos.remove_item'
    POS_CLEAR_CART = 'pos.clear_cart'

    # Cashiers
    CASHIER_OPERATE = 'cashier.operate'
    CASHIER_MANAGE = 'cashier.manage'

    # Promotions
    PROMOTION_VIEW = 'promotion.view'
    PROMOTION_MANAGE = 'promotion.manage'

    # Reports
    REPORT_VIEW = 'report.view'
    REPORT_EXPORT = 'report.export'

    # Privileged overrides through the manager authorization gate
    AUTHORIZE_OVERRIDES = 'authorize_overrides'


_EMPLOYEE_CAPABILITIES = frozenset([
    Capabilities.POS_SELL,
    Capabilities.CASHIER_OPERATE,
    Capabilities.PROMOTION_VIEW,
])

_MANAGER_CAPABILITIES = _EMPLOYEE_CAPABILITIES | frozenset([
    Capabilities.POS_APPLY_DISCOUNT,
    Capabilities.POS_REMOVE_DISCOUNT,
    Capabilities.POS_REMOVE_ITEM,
    Capabilities.POS_CLEAR_CART,
    Capabilities.CASHIER_MANAGE,
    Capabilities.PROMOTION_MANAGE,
    Capabilities.REPORT_VIEW,
    Capabilities.REPORT_EXPORT,
    Capabilities.AUTHORIZE_OVERRIDES,
])

ROLE_CAPABILITIES = {
    Role.ADMIN: _MANAGER_CAPABILITIES,
    Role.MANAGER: _MANAGER_CAPABILITIES,
    Role.EMPLOYEE: _EMPLOYEE_CAPABILITIES,
}


def parse_role(value):
    """
    Convert a stored role string into a Role

    Returns:
        Role or None for unknown values
    """
    if isinstance(value, Role):
        return value
    try:
        return Role(value)
    except ValueError:
        return None


def role_has_capability(role, capability):
    """Check the capability table for a role (string or Role)"""
    role = parse_role(role)
    if role is None:
        return False
    return capability in ROLE_CAPABILITIES[role]


def capability_required(capability):
    """
    Decorator to require a capability for a route

    Usage:
        @capability_required(Capabilities.PROMOTION_MANAGE)
        def create_promotion():
            ...
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not current_user.is_authenticated:
                return jsonify({'success': False, 'error': 'Authentication required'}), 401

            if not current_user.has_capability(capability):
                return jsonify({'success': False, 'error': 'Insufficient permissions'}), 403

            return f(*args, **kwargs)
        return decorated_function
    return decorator
