"""
Promotion Discount Engine
Decides which promotions apply to a cart and how much each one discounts.

All functions are pure: they read cart lines (``CartItem``) and promotion
records (``Promotion`` models or any object with the same attributes) and
never touch the database. Malformed promotions give a zero discount instead
of raising.
"""

from datetime import datetime
from decimal import Decimal

from retail_pos.utils.helpers import to_decimal

ZERO = Decimal('0')
HUNDRED = Decimal('100')

PROMOTION_TYPES = (
    'discount_percentage',
    'discount_value',
    'buy_x_get_y',
    'fixed_price',
    'bundle',
)


class AppliedPromotion:
    """Result of evaluating one promotion against a cart"""

    def __init__(self, promotion_id, discount_amount=ZERO, applied_items=None, promotion=None):
        self.promotion_id = promotion_id
        self.discount_amount = discount_amount
        self.applied_items = list(applied_items or [])
        self.promotion = promotion

    def to_dict(self):
        data = {
            'promotion_id': self.promotion_id,
            'discount_amount': float(self.discount_amount),
            'applied_items': self.applied_items,
        }
        if self.promotion is not None:
            data['promotion_name'] = getattr(self.promotion, 'name', None)
            data['promotion_type'] = getattr(self.promotion, 'promotion_type', None)
        return data

    def __repr__(self):
        return f'<AppliedPromotion {self.promotion_id} -{self.discount_amount}>'


# ============================================================
# AVAILABILITY
# ============================================================

def _id_list(value):
    """Normalize a JSON list of ids, ignoring junk entries"""
    if not isinstance(value, (list, tuple)):
        return []
    ids = []
    for entry in value:
        try:
            ids.append(int(entry))
        except (TypeError, ValueError):
            continue
    return ids


def is_promotion_current(promotion, now=None):
    """Active flag set and ``now`` inside [start_date, end_date]"""
    now = now or datetime.utcnow()
    start = getattr(promotion, 'start_date', None)
    end = getattr(promotion, 'end_date', None)
    if not getattr(promotion, 'is_active', False) or start is None or end is None:
        return False
    return start <= now <= end


def promotion_targets_cart(promotion, cart_items):
    """
    Check whether a promotion's target intersects the cart

    A bundle targets only its own products and needs every one of them in
    the cart. Other types check in order: single product, product list,
    category.
    """
    product_ids = {item.product_id for item in cart_items}
    category_ids = {item.category_id for item in cart_items if item.category_id is not None}

    if getattr(promotion, 'promotion_type', None) == 'bundle':
        bundle = _id_list(getattr(promotion, 'bundle_products', None))
        return bool(bundle) and all(pid in product_ids for pid in bundle)

    product_id = getattr(promotion, 'product_id', None)
    if product_id:
        return product_id in product_ids

    listed = _id_list(getattr(promotion, 'product_ids', None))
    if listed:
        return any(pid in product_ids for pid in listed)

    category_id = getattr(promotion, 'category_id', None)
    if category_id:
        return category_id in category_ids

    bundle = _id_list(getattr(promotion, 'bundle_products', None))
    if bundle:
        return all(pid in product_ids for pid in bundle)

    return False


def get_available_promotions(cart_items, all_promotions, now=None):
    """
    Filter promotions that can apply to the cart right now

    Args:
        cart_items: list of CartItem
        all_promotions: iterable of promotion records
        now: reference time, defaults to utcnow

    Returns:
        list of promotions, in input order
    """
    cart_items = list(cart_items or [])
    if not cart_items:
        return []

    now = now or datetime.utcnow()
    return [
        promotion for promotion in (all_promotions or [])
        if is_promotion_current(promotion, now) and promotion_targets_cart(promotion, cart_items)
    ]


# ============================================================
# DISCOUNT CALCULATION
# ============================================================

def _line_matches(item, promotion):
    """Line is targeted by product id, product list or category"""
    product_id = getattr(promotion, 'product_id', None)
    if product_id:
        return item.product_id == product_id

    listed = _id_list(getattr(promotion, 'product_ids', None))
    if listed:
        return item.product_id in listed

    category_id = getattr(promotion, 'category_id', None)
    if category_id:
        return item.category_id == category_id

    return False


def _percentage_discount(cart_items, promotion):
    percent = to_decimal(getattr(promotion, 'discount_percent', None))
    if percent <= 0:
        return ZERO, []
    percent = min(percent, HUNDRED)

    discount = ZERO
    applied = []
    for item in cart_items:
        if _line_matches(item, promotion):
            discount += item.subtotal * percent / HUNDRED
            applied.append(item.product_id)
    return discount, applied


def _value_discount(cart_items, promotion):
    """
    Fixed amount off

    Product and category targets share the value by quantity, capped at
    each line total. A product list shares it by line total.
    """
    value = to_decimal(getattr(promotion, 'discount_value', None))
    if value <= 0:
        return ZERO, []

    product_id = getattr(promotion, 'product_id', None)
    listed = _id_list(getattr(promotion, 'product_ids', None))
    category_id = getattr(promotion, 'category_id', None)

    if not product_id and listed:
        lines = [item for item in cart_items if item.product_id in listed]
        total = sum((item.subtotal for item in lines), ZERO)
        if total <= 0:
            return ZERO, []
        discount = ZERO
        for item in lines:
            discount += min(item.subtotal, value * item.subtotal / total)
        return discount, [item.product_id for item in lines]

    if product_id:
        lines = [item for item in cart_items if item.product_id == product_id]
    elif category_id:
        lines = [item for item in cart_items if item.category_id == category_id]
    else:
        return ZERO, []

    total_quantity = sum(item.quantity for item in lines)
    if total_quantity <= 0:
        return ZERO, []

    discount = ZERO
    for item in lines:
        discount += min(item.subtotal, value * item.quantity / total_quantity)
    return discount, [item.product_id for item in lines]


def _fixed_price_discount(cart_items, promotion):
    fixed_price = getattr(promotion, 'fixed_price', None)
    if fixed_price is None:
        return ZERO, []
    fixed_price = to_decimal(fixed_price)

    product_id = getattr(promotion, 'product_id', None)
    listed = _id_list(getattr(promotion, 'product_ids', None))
    if product_id:
        targets = {product_id}
    elif listed:
        targets = set(listed)
    else:
        # Category level fixed price is not supported
        return ZERO, []

    discount = ZERO
    applied = []
    for item in cart_items:
        if item.product_id in targets:
            discount += max(ZERO, (item.price - fixed_price) * item.quantity)
            applied.append(item.product_id)
    return discount, applied


def _buy_x_get_y_discount(cart_items, promotion):
    buy = getattr(promotion, 'buy_quantity', None) or 1
    get = getattr(promotion, 'get_quantity', None) or 1
    try:
        buy, get = int(buy), int(get)
    except (TypeError, ValueError):
        return ZERO, []
    if buy < 1 or get < 1:
        return ZERO, []

    pct = getattr(promotion, 'secondary_product_discount', None)
    pct = HUNDRED if pct is None else min(max(to_decimal(pct), ZERO), HUNDRED)

    listed = _id_list(getattr(promotion, 'product_ids', None))
    primary_id = getattr(promotion, 'product_id', None)
    eligible_ids = {primary_id} if primary_id else set(listed)
    if not eligible_ids:
        return ZERO, []

    secondary_id = (
        getattr(promotion, 'secondary_product_id', None)
        or primary_id
        or listed[0]
    )

    eligible_lines = [item for item in cart_items if item.product_id in eligible_ids]
    secondary_line = next((item for item in cart_items if item.product_id == secondary_id), None)
    if not eligible_lines or secondary_line is None:
        return ZERO, []

    eligible_quantity = sum(item.quantity for item in eligible_lines)

    if secondary_id in eligible_ids:
        sets = eligible_quantity // (buy + get)
    else:
        sets = min(eligible_quantity // buy, secondary_line.quantity // get)

    if sets <= 0:
        return ZERO, []

    discount = secondary_line.price * pct / HUNDRED * get * sets
    applied = [item.product_id for item in eligible_lines]
    if secondary_line.product_id not in applied:
        applied.append(secondary_line.product_id)
    return discount, applied


def _bundle_discount(cart_items, promotion, multi_set=False):
    bundle = _id_list(getattr(promotion, 'bundle_products', None))
    bundle_price = getattr(promotion, 'bundle_price', None)
    if not bundle or bundle_price is None:
        return ZERO, []

    lines = {}
    for product_id in bundle:
        line = next((item for item in cart_items if item.product_id == product_id), None)
        if line is None:
            return ZERO, []
        lines[product_id] = line

    regular_price = sum((line.price for line in lines.values()), ZERO)
    discount = max(ZERO, regular_price - to_decimal(bundle_price))

    if multi_set:
        sets = min(line.quantity for line in lines.values())
        discount *= sets

    return discount, list(lines)


def calculate_promotion_discount(cart_items, promotion, bundle_multi_set=False):
    """
    Calculate the discount one promotion gives the cart

    Args:
        cart_items: list of CartItem
        promotion: promotion record
        bundle_multi_set: count every complete bundle set instead of one

    Returns:
        AppliedPromotion (zero discount when nothing applies)
    """
    cart_items = list(cart_items or [])
    promotion_id = getattr(promotion, 'id', None)
    promotion_type = getattr(promotion, 'promotion_type', None)

    if not cart_items:
        return AppliedPromotion(promotion_id, ZERO, [], promotion)

    if promotion_type == 'discount_percentage':
        discount, applied = _percentage_discount(cart_items, promotion)
    elif promotion_type == 'discount_value':
        discount, applied = _value_discount(cart_items, promotion)
    elif promotion_type == 'fixed_price':
        discount, applied = _fixed_price_discount(cart_items, promotion)
    elif promotion_type == 'buy_x_get_y':
        discount, applied = _buy_x_get_y_discount(cart_items, promotion)
    elif promotion_type == 'bundle':
        discount, applied = _bundle_discount(cart_items, promotion, bundle_multi_set)
    else:
        discount, applied = ZERO, []

    cap = getattr(promotion, 'max_discount_per_purchase', None)
    if cap is not None and to_decimal(cap) > 0:
        discount = min(discount, to_decimal(cap))

    if not discount.is_finite() or discount <= 0:
        return AppliedPromotion(promotion_id, ZERO, [], promotion)

    return AppliedPromotion(promotion_id, discount, applied, promotion)


def get_best_promotion(cart_items, available_promotions, bundle_multi_set=False):
    """
    Pick the promotion with the largest discount

    Ties go to the earliest promotion in ``available_promotions``.

    Returns:
        AppliedPromotion or None when there are no promotions
    """
    best = None
    for promotion in available_promotions or []:
        applied = calculate_promotion_discount(cart_items, promotion, bundle_multi_set)
        if best is None or applied.discount_amount > best.discount_amount:
            best = applied
    return best


def get_promotion_status(promotion, now=None):
    """active, upcoming, expired or inactive"""
    now = now or datetime.utcnow()
    start = getattr(promotion, 'start_date', None)
    end = getattr(promotion, 'end_date', None)
    if end is not None and end < now:
        return 'expired'
    if start is not None and start > now:
        return 'upcoming'
    if getattr(promotion, 'is_active', False):
        return 'active'
    return 'inactive'
