"""
Discount Aggregator
Combines the manual discount and the selected promotion into the cart total
"""

from decimal import Decimal

from retail_pos.utils.errors import ValidationError
from retail_pos.utils.helpers import to_decimal, to_money, parse_amount
from retail_pos.utils.promotions import (
    calculate_promotion_discount,
    get_available_promotions,
    get_best_promotion,
)

ZERO = Decimal('0')
HUNDRED = Decimal('100')

DISCOUNT_TYPES = ('percentage', 'fixed')
SELECTION_SESSION_KEY = 'discount_selection'


class ManualDiscount:
    """Cashier entered discount: a percentage or a fixed amount"""

    def __init__(self, discount_type, value):
        self.discount_type = discount_type
        self.value = to_decimal(value)

    @classmethod
    def create(cls, discount_type, value, max_percent=HUNDRED):
        """
        Validate user input and build a discount

        Raises:
            ValidationError: unknown type or non-positive value
        """
        if discount_type not in DISCOUNT_TYPES:
            raise ValidationError('Discount type must be percentage or fixed')
        value = parse_amount(value, 'Discount value')
        if value <= 0:
            raise ValidationError('Discount value must be greater than zero')
        if discount_type == 'percentage' and value > to_decimal(max_percent, HUNDRED):
            raise ValidationError(f'Percentage discount cannot exceed {max_percent}%')
        return cls(discount_type, value)

    def amount_for(self, subtotal):
        """Discount amount for a given subtotal"""
        subtotal = to_decimal(subtotal)
        if self.value <= 0 or subtotal <= 0:
            return ZERO
        if self.discount_type == 'percentage':
            return subtotal * min(self.value, HUNDRED) / HUNDRED
        return min(self.value, subtotal)

    def to_dict(self):
        return {'type': self.discount_type, 'value': str(self.value)}

    @classmethod
    def from_dict(cls, data):
        if not data:
            return None
        return cls(data.get('type'), data.get('value'))


class DiscountSelection:
    """
    What the cashier chose for the current cart

    ``promotion_id`` set means an explicit choice. ``promotion_suppressed``
    means the promotion was removed and nothing is auto-selected.
    """

    def __init__(self, manual=None, promotion_id=None, promotion_suppressed=False,
                 manager_id=None, manager_name=None):
        self.manual = manual
        self.promotion_id = promotion_id
        self.promotion_suppressed = promotion_suppressed
        self.manager_id = manager_id
        self.manager_name = manager_name

    def set_manual(self, manual, manager_id=None, manager_name=None):
        self.manual = manual
        self.manager_id = manager_id
        self.manager_name = manager_name

    def clear_manual(self):
        self.manual = None
        self.manager_id = None
        self.manager_name = None

    def select_promotion(self, promotion_id):
        self.promotion_id = promotion_id
        self.promotion_suppressed = False

    def remove_promotion(self):
        self.promotion_id = None
        self.promotion_suppressed = True

    def reset(self):
        self.clear_manual()
        self.promotion_id = None
        self.promotion_suppressed = False

    def to_dict(self):
        return {
            'manual': self.manual.to_dict() if self.manual else None,
            'promotion_id': self.promotion_id,
            'promotion_suppressed': self.promotion_suppressed,
            'manager_id': self.manager_id,
            'manager_name': self.manager_name,
        }

    @classmethod
    def from_dict(cls, data):
        data = data or {}
        return cls(
            manual=ManualDiscount.from_dict(data.get('manual')),
            promotion_id=data.get('promotion_id'),
            promotion_suppressed=bool(data.get('promotion_suppressed')),
            manager_id=data.get('manager_id'),
            manager_name=data.get('manager_name'),
        )

    @classmethod
    def load(cls, session):
        return cls.from_dict(session.get(SELECTION_SESSION_KEY))

    def save(self, session):
        session[SELECTION_SESSION_KEY] = self.to_dict()


class CartTotals:
    """Everything the POS needs to display or persist a cart's totals"""

    def __init__(self, subtotal, available_promotions, applied_promotion,
                 manual_discount_amount, promotion_discount_amount):
        self.subtotal = subtotal
        self.available_promotions = available_promotions
        self.applied_promotion = applied_promotion
        self.manual_discount_amount = manual_discount_amount
        self.promotion_discount_amount = promotion_discount_amount
        self.discount_total = manual_discount_amount + promotion_discount_amount
        self.total = max(ZERO, subtotal - self.discount_total)

    def to_dict(self):
        applied = self.applied_promotion
        return {
            'subtotal': float(self.subtotal),
            'manual_discount_amount': float(self.manual_discount_amount),
            'promotion_discount_amount': float(self.promotion_discount_amount),
            'discount_total': float(self.discount_total),
            'total': float(self.total),
            'applied_promotion': applied.to_dict() if applied and applied.discount_amount > 0 else None,
            'available_promotions': [
                {'id': p.id, 'name': p.name, 'promotion_type': p.promotion_type}
                for p in self.available_promotions
            ],
        }


def calculate_total_discount(subtotal, manual=None, applied_promotion=None):
    """
    Sum of the manual discount and the promotion discount

    Returns:
        tuple (manual_amount, promotion_amount, total_discount)
    """
    manual_amount = to_money(manual.amount_for(subtotal)) if manual else to_money(0)
    promotion_amount = to_money(applied_promotion.discount_amount) if applied_promotion else to_money(0)
    return manual_amount, promotion_amount, manual_amount + promotion_amount


def calculate_cart_total(subtotal, manual=None, applied_promotion=None):
    """Subtotal minus all discounts, never below zero"""
    _, _, total_discount = calculate_total_discount(subtotal, manual, applied_promotion)
    return max(to_money(0), to_money(subtotal) - total_discount)


def resolve_applied_promotion(cart_items, available, selection, bundle_multi_set=False):
    """
    Apply the explicit choice if it is still available, else the best one

    A removed promotion disables auto-selection until another is chosen.
    """
    if selection.promotion_id is not None:
        chosen = next((p for p in available if p.id == selection.promotion_id), None)
        if chosen is not None:
            return calculate_promotion_discount(cart_items, chosen, bundle_multi_set)

    if selection.promotion_suppressed:
        return None

    return get_best_promotion(cart_items, available, bundle_multi_set)


def calculate_cart_totals(cart, promotions, selection, now=None, bundle_multi_set=False):
    """
    Compute subtotal, discounts and total for a cart

    Args:
        cart: Cart
        promotions: every candidate promotion record
        selection: DiscountSelection
        now: reference time for promotion availability
        bundle_multi_set: see calculate_promotion_discount

    Returns:
        CartTotals
    """
    items = list(cart)
    subtotal = cart.subtotal
    available = get_available_promotions(items, promotions, now)
    applied = resolve_applied_promotion(items, available, selection, bundle_multi_set)
    manual_amount, promotion_amount, _ = calculate_total_discount(subtotal, selection.manual, applied)
    return CartTotals(subtotal, available, applied, manual_amount, promotion_amount)
