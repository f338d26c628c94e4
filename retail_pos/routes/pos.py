"""
Point of Sale (POS) Routes
Cart, discounts, promotion selection and sale completion
"""

from flask import Blueprint, current_app, jsonify, session
from flask_login import login_required, current_user
from retail_pos.models import db, Product, Promotion, Customer, Order, OrderItem
from retail_pos.services.cashier_service import CashierService
from retail_pos.utils.cart import Cart
from retail_pos.utils.discounts import DiscountSelection, ManualDiscount, calculate_cart_totals
from retail_pos.utils.errors import CashierStateError, NotFoundError, ValidationError
from retail_pos.utils.helpers import generate_order_number, get_request_data, log_activity
from retail_pos.utils.manager_auth import ManagerAuthGate, authorization_handler
from retail_pos.utils.permissions import Capabilities, capability_required
from retail_pos.utils.promotions import calculate_promotion_discount

bp = Blueprint('pos', __name__)

PAYMENT_METHODS = ('cash', 'credit_card', 'debit_card', 'pix', 'transfer', 'mixed')


def _load_state():
    return Cart.load(session), DiscountSelection.load(session)


def _cart_totals(cart, selection):
    promotions = Promotion.query.filter_by(is_active=True).order_by(Promotion.id.asc()).all()
    return calculate_cart_totals(
        cart, promotions, selection,
        bundle_multi_set=current_app.config.get('BUNDLE_MULTI_SET', False)
    )


def _cart_response(cart, selection, status=200, **extra):
    totals = _cart_totals(cart, selection)
    body = {
        'success': True,
        'items': [dict(item.to_dict(), subtotal=float(item.subtotal)) for item in cart],
        'item_count': cart.item_count,
        'manual_discount': selection.manual.to_dict() if selection.manual else None,
        'selected_promotion_id': selection.promotion_id,
        'promotion_suppressed': selection.promotion_suppressed,
    }
    body.update(totals.to_dict())
    body.update(extra)
    return jsonify(body), status


def _requires_authorization(action, payload, message):
    """Park the action in the gate and tell the client to ask a manager"""
    pending = ManagerAuthGate(session).request(action, payload, current_user.id)
    return jsonify({
        'success': False,
        'requires_authorization': True,
        'action': action,
        'pending': pending.to_dict(),
        'error': message,
    }), 202


def _get_product(product_id):
    product = db.session.get(Product, product_id)
    if product is None or not product.is_active:
        raise NotFoundError(f'Product {product_id} not found')
    return product


def _parse_product_id(value):
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError('Product is required')


# ============================================================
# CART
# ============================================================

@bp.route('/cart')
@login_required
def get_cart():
    cart, selection = _load_state()
    return _cart_response(cart, selection)


@bp.route('/cart/add', methods=['POST'])
@login_required
@capability_required(Capabilities.POS_SELL)
def add_to_cart():
    """Add a product, snapshotting its current price"""
    data = get_request_data()
    product = _get_product(_parse_product_id(data.get('product_id')))

    cart, selection = _load_state()
    cart.add_product(product, data.get('quantity', 1))
    cart.save(session)
    return _cart_response(cart, selection)


@bp.route('/cart/update', methods=['POST'])
@login_required
@capability_required(Capabilities.POS_SELL)
def update_cart_item():
    data = get_request_data()
    cart, selection = _load_state()
    cart.update_quantity(_parse_product_id(data.get('product_id')), data.get('quantity'))
    cart.save(session)
    return _cart_response(cart, selection)


def _remove_item(product_id):
    cart, selection = _load_state()
    item = cart.remove(product_id)
    cart.save(session)
    return cart, selection, item


@bp.route('/cart/remove/<int:product_id>', methods=['POST'])
@login_required
def remove_cart_item(product_id):
    cart, _ = _load_state()
    if cart.find(product_id) is None:
        raise NotFoundError(f'Product {product_id} is not in the cart')

    if not current_user.has_capability(Capabilities.POS_REMOVE_ITEM):
        return _requires_authorization(
            'remove_cart_item', {'product_id': product_id},
            'Manager authorization required to remove items'
        )

    cart, selection, _ = _remove_item(product_id)
    return _cart_response(cart, selection)


@authorization_handler('remove_cart_item')
def authorized_remove_item(payload, manager, requested_by):
    cart, _, item = _remove_item(payload.get('product_id'))
    return {'removed_product_id': item.product_id, 'item_count': cart.item_count}


def _clear_cart():
    cart, selection = _load_state()
    cart.clear()
    selection.reset()
    cart.save(session)
    selection.save(session)
    return cart, selection


@bp.route('/cart/clear', methods=['POST'])
@login_required
def clear_cart():
    cart, _ = _load_state()
    if cart.is_empty:
        return _cart_response(*_clear_cart())

    if not current_user.has_capability(Capabilities.POS_CLEAR_CART):
        return _requires_authorization('clear_cart', {}, 'Manager authorization required to clear the cart')

    return _cart_response(*_clear_cart())


@authorization_handler('clear_cart')
def authorized_clear_cart(payload, manager, requested_by):
    _clear_cart()
    return {'cleared': True}


# ============================================================
# DISCOUNTS AND PROMOTIONS
# ============================================================

def _apply_manual_discount(discount, manager=None):
    cart, selection = _load_state()
    if manager is not None:
        selection.set_manual(discount, manager.id, manager.full_name)
    else:
        selection.set_manual(discount)
    selection.save(session)
    return cart, selection


@bp.route('/discount', methods=['POST'])
@login_required
def apply_discount():
    """Apply a manual percentage or fixed discount"""
    data = get_request_data()
    cart, _ = _load_state()
    if cart.is_empty:
        raise ValidationError('Cart is empty')

    discount = ManualDiscount.create(
        data.get('type'), data.get('value'),
        current_app.config.get('MAX_MANUAL_DISCOUNT_PERCENT', 100)
    )

    if not current_user.has_capability(Capabilities.POS_APPLY_DISCOUNT):
        return _requires_authorization(
            'apply_discount', discount.to_dict(),
            'Manager authorization required to apply a discount'
        )

    return _cart_response(*_apply_manual_discount(discount))


@authorization_handler('apply_discount')
def authorized_apply_discount(payload, manager, requested_by):
    discount = ManualDiscount.create(
        payload.get('type'), payload.get('value'),
        current_app.config.get('MAX_MANUAL_DISCOUNT_PERCENT', 100)
    )
    _apply_manual_discount(discount, manager)
    return {'manual_discount': discount.to_dict()}


def _remove_manual_discount():
    cart, selection = _load_state()
    selection.clear_manual()
    selection.save(session)
    return cart, selection


@bp.route('/discount', methods=['DELETE'])
@login_required
def remove_discount():
    _, selection = _load_state()
    if selection.manual is None:
        raise ValidationError('No manual discount applied')

    if not current_user.has_capability(Capabilities.POS_REMOVE_DISCOUNT):
        return _requires_authorization('remove_discount', {}, 'Manager authorization required to remove the discount')

    return _cart_response(*_remove_manual_discount())


@authorization_handler('remove_discount')
def authorized_remove_discount(payload, manager, requested_by):
    _remove_manual_discount()
    return {'manual_discount': None}


@bp.route('/promotions/available')
@login_required
def available_promotions():
    """Promotions that apply to the cart, each with its discount"""
    cart, selection = _load_state()
    totals = _cart_totals(cart, selection)
    multi_set = current_app.config.get('BUNDLE_MULTI_SET', False)
    promotions = []
    for promotion in totals.available_promotions:
        data = promotion.to_dict()
        data['discount_amount'] = float(calculate_promotion_discount(list(cart), promotion, multi_set).discount_amount)
        promotions.append(data)

    applied = totals.applied_promotion
    return jsonify({
        'success': True,
        'promotions': promotions,
        'applied_promotion': applied.to_dict() if applied and applied.discount_amount > 0 else None,
    })


@bp.route('/promotion/select', methods=['POST'])
@login_required
@capability_required(Capabilities.POS_SELL)
def select_promotion():
    """Choose a promotion explicitly, even if it is not the best one"""
    data = get_request_data()
    try:
        promotion_id = int(data.get('promotion_id'))
    except (TypeError, ValueError):
        raise ValidationError('Promotion is required')

    cart, selection = _load_state()
    totals = _cart_totals(cart, DiscountSelection())
    if not any(p.id == promotion_id for p in totals.available_promotions):
        raise ValidationError('Promotion is not available for this cart')

    selection.select_promotion(promotion_id)
    selection.save(session)
    return _cart_response(cart, selection)


def _remove_promotion():
    cart, selection = _load_state()
    selection.remove_promotion()
    selection.save(session)
    return cart, selection


@bp.route('/promotion', methods=['DELETE'])
@login_required
def remove_promotion():
    """Drop the promotion and stop picking one automatically"""
    if not current_user.has_capability(Capabilities.POS_REMOVE_DISCOUNT):
        return _requires_authorization('remove_promotion', {}, 'Manager authorization required to remove the promotion')

    return _cart_response(*_remove_promotion())


@authorization_handler('remove_promotion')
def authorized_remove_promotion(payload, manager, requested_by):
    _remove_promotion()
    return {'promotion_suppressed': True}


# ============================================================
# SALE COMPLETION
# ============================================================

def _optional_id(data, field):
    value = data.get(field)
    if value in (None, ''):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f'{field} must be a valid id')


@bp.route('/complete-sale', methods=['POST'])
@login_required
@capability_required(Capabilities.POS_SELL)
def complete_sale():
    """Persist the cart as an order, decrement stock and reset the cart"""
    data = get_request_data()
    cart, selection = _load_state()
    if cart.is_empty:
        raise ValidationError('No items in cart')

    payment_method = data.get('payment_method', 'cash')
    if payment_method not in PAYMENT_METHODS:
        raise ValidationError(f'Invalid payment method: {payment_method}')

    customer_id = _optional_id(data, 'customer_id')
    if customer_id and db.session.get(Customer, customer_id) is None:
        raise NotFoundError(f'Customer {customer_id} not found')

    cashier_id = _optional_id(data, 'cashier_id')
    if cashier_id:
        cashier = CashierService.get_cashier(cashier_id)
        if not CashierService.is_open(cashier.id):
            raise CashierStateError(f'Cashier {cashier.name} is not open')
    else:
        cashier = CashierService.get_open_cashier_for_user(current_user.id)

    totals = _cart_totals(cart, selection)
    applied = totals.applied_promotion

    order = Order(
        order_number=generate_order_number(),
        user_id=current_user.id,
        cashier_id=cashier.id if cashier else None,
        customer_id=customer_id or None,
        promotion_id=applied.promotion_id if applied and applied.discount_amount > 0 else None,
        subtotal=totals.subtotal,
        manual_discount_type=selection.manual.discount_type if selection.manual else None,
        manual_discount_amount=totals.manual_discount_amount,
        promotion_discount_amount=totals.promotion_discount_amount,
        discount_total=totals.discount_total,
        total=totals.total,
        payment_method=payment_method,
        manager_id=selection.manager_id,
        manager_name=selection.manager_name
    )
    db.session.add(order)
    db.session.flush()

    for item in cart:
        product = _get_product(item.product_id)
        if (product.stock or 0) < item.quantity:
            raise ValidationError(f'Insufficient stock for {product.name}. Available: {product.stock or 0}')

        db.session.add(OrderItem(
            order_id=order.id,
            product_id=product.id,
            quantity=item.quantity,
            unit_price=item.price,
            subtotal=item.subtotal
        ))
        product.stock = (product.stock or 0) - item.quantity

    log_activity(current_user.id, 'complete_sale', 'order', order.id,
                 f'Order {order.order_number} total {totals.total}')
    db.session.commit()

    _clear_cart()
    current_app.logger.info(f"Sale {order.order_number} completed by {current_user.username}: {totals.total}")

    return jsonify({'success': True, 'order': order.to_dict(include_items=True)}), 201
