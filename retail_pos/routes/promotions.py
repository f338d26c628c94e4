"""
Promotions Routes
Manage promotion rules evaluated by the POS
"""

from flask import Blueprint, current_app, request, jsonify
from flask_login import login_required, current_user
from datetime import datetime
from retail_pos.models import db, Promotion, Product, Category
from retail_pos.utils.errors import NotFoundError, ValidationError
from retail_pos.utils.helpers import get_request_data, log_activity, parse_amount, parse_datetime
from retail_pos.utils.permissions import Capabilities, capability_required
from retail_pos.utils.promotions import PROMOTION_TYPES
from retail_pos.utils.reports import promotion_statistics

bp = Blueprint('promotions', __name__)

ID_FIELDS = ('product_id', 'category_id', 'secondary_product_id')
LIST_FIELDS = ('product_ids', 'bundle_products')
INT_FIELDS = ('buy_quantity', 'get_quantity')
AMOUNT_FIELDS = (
    'discount_percent', 'discount_value', 'fixed_price',
    'secondary_product_discount', 'bundle_price', 'max_discount_per_purchase',
)


def _get_promotion(promotion_id):
    promotion = db.session.get(Promotion, promotion_id)
    if promotion is None:
        raise NotFoundError(f'Promotion {promotion_id} not found')
    return promotion


def _optional_int(data, field):
    value = data.get(field)
    if value in (None, ''):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f'{field} must be a whole number')


def _id_list(data, field):
    value = data.get(field)
    if value in (None, ''):
        return []
    if isinstance(value, str):
        value = [part for part in value.split(',') if part.strip()]
    if not isinstance(value, (list, tuple)):
        raise ValidationError(f'{field} must be a list of product ids')
    try:
        return [int(entry) for entry in value]
    except (TypeError, ValueError):
        raise ValidationError(f'{field} must be a list of product ids')


def _check_products_exist(product_ids):
    for product_id in product_ids:
        if db.session.get(Product, product_id) is None:
            raise ValidationError(f'Product {product_id} does not exist')


def _apply_form(promotion, data):
    """Validate the submitted fields and copy them onto the promotion"""
    promotion.name = (data.get('name', promotion.name) or '').strip()
    if not promotion.name:
        raise ValidationError('Name is required')

    if 'description' in data:
        promotion.description = data.get('description')

    promotion_type = data.get('promotion_type', promotion.promotion_type)
    if promotion_type not in PROMOTION_TYPES:
        raise ValidationError(f'Invalid promotion type: {promotion_type}')
    promotion.promotion_type = promotion_type

    for field in ID_FIELDS + INT_FIELDS:
        if field in data:
            setattr(promotion, field, _optional_int(data, field))
    for field in LIST_FIELDS:
        if field in data:
            setattr(promotion, field, _id_list(data, field))
    for field in AMOUNT_FIELDS:
        if field in data:
            value = data.get(field)
            amount = None if value in (None, '') else parse_amount(value, field)
            if amount is not None and amount < 0:
                raise ValidationError(f'{field} cannot be negative')
            setattr(promotion, field, amount)

    if 'start_date' in data:
        promotion.start_date = parse_datetime(data.get('start_date'))
    if 'end_date' in data:
        promotion.end_date = parse_datetime(data.get('end_date'))
    if not promotion.start_date or not promotion.end_date:
        raise ValidationError('Start and end dates are required')
    if promotion.end_date < promotion.start_date:
        raise ValidationError('End date must be after start date')

    if 'is_active' in data:
        promotion.is_active = str(data.get('is_active')).lower() in ('true', '1', 'on')

    _validate_type_fields(promotion)


def _validate_type_fields(promotion):
    promotion_type = promotion.promotion_type

    if promotion_type == 'bundle':
        # a bundle targets only its own products
        promotion.product_id = None
        promotion.product_ids = None
        promotion.category_id = None
        promotion.secondary_product_id = None
        if len(promotion.bundle_products or []) < 2:
            raise ValidationError('A bundle needs at least two products')
        if promotion.bundle_price is None:
            raise ValidationError('Bundle price is required')
        _check_products_exist(promotion.bundle_products)
        return

    promotion.bundle_products = None
    has_target = promotion.product_id or promotion.product_ids or promotion.category_id
    if not has_target:
        raise ValidationError('Select a product, a product list or a category')

    if promotion.product_id:
        _check_products_exist([promotion.product_id])
    _check_products_exist(promotion.product_ids or [])
    if promotion.category_id and db.session.get(Category, promotion.category_id) is None:
        raise ValidationError(f'Category {promotion.category_id} does not exist')

    if promotion_type == 'discount_percentage':
        if not promotion.discount_percent or promotion.discount_percent > 100:
            raise ValidationError('Discount percent must be between 0 and 100')
    elif promotion_type == 'discount_value':
        if not promotion.discount_value:
            raise ValidationError('Discount value must be greater than zero')
    elif promotion_type == 'fixed_price':
        if promotion.fixed_price is None:
            raise ValidationError('Fixed price is required')
        if not (promotion.product_id or promotion.product_ids):
            raise ValidationError('Fixed price promotions need a product')
    elif promotion_type == 'buy_x_get_y':
        if not (promotion.product_id or promotion.product_ids):
            raise ValidationError('Buy X get Y promotions need a product')
        for field in INT_FIELDS:
            value = getattr(promotion, field)
            if value is not None and value < 1:
                raise ValidationError(f'{field} must be at least 1')
        pct = promotion.secondary_product_discount
        if pct is not None and pct > 100:
            raise ValidationError('Secondary product discount must be between 0 and 100')
        if promotion.secondary_product_id:
            _check_products_exist([promotion.secondary_product_id])


# ============================================================
# PROMOTIONS
# ============================================================

@bp.route('/')
@login_required
@capability_required(Capabilities.PROMOTION_VIEW)
def index():
    """List promotions, optionally by status"""
    status = request.args.get('status', '')
    now = datetime.utcnow()

    query = Promotion.query
    if status == 'active':
        query = query.filter(
            Promotion.is_active == True,
            Promotion.start_date <= now,
            Promotion.end_date >= now
        )
    elif status == 'expired':
        query = query.filter(Promotion.end_date < now)
    elif status == 'upcoming':
        query = query.filter(Promotion.start_date > now)

    promotions = query.order_by(Promotion.created_at.desc(), Promotion.id.desc()).all()
    return jsonify({'success': True, 'promotions': [p.to_dict() for p in promotions]})


@bp.route('/statistics')
@login_required
@capability_required(Capabilities.PROMOTION_VIEW)
def statistics():
    return jsonify({'success': True, 'statistics': promotion_statistics(Promotion.query.all())})


@bp.route('/', methods=['POST'])
@login_required
@capability_required(Capabilities.PROMOTION_MANAGE)
def create():
    """Create new promotion"""
    data = get_request_data()
    promotion = Promotion(is_active=True, created_by=current_user.id)
    _apply_form(promotion, data)

    db.session.add(promotion)
    db.session.flush()
    log_activity(current_user.id, 'create_promotion', 'promotion', promotion.id, promotion.name)
    db.session.commit()

    current_app.logger.info(f"Promotion '{promotion.name}' created by {current_user.username}")
    return jsonify({'success': True, 'promotion': promotion.to_dict()}), 201


@bp.route('/<int:promotion_id>')
@login_required
@capability_required(Capabilities.PROMOTION_VIEW)
def get(promotion_id):
    return jsonify({'success': True, 'promotion': _get_promotion(promotion_id).to_dict()})


@bp.route('/<int:promotion_id>', methods=['PUT', 'POST'])
@login_required
@capability_required(Capabilities.PROMOTION_MANAGE)
def update(promotion_id):
    """Edit promotion"""
    promotion = _get_promotion(promotion_id)
    _apply_form(promotion, get_request_data())
    log_activity(current_user.id, 'update_promotion', 'promotion', promotion.id, promotion.name)
    db.session.commit()
    return jsonify({'success': True, 'promotion': promotion.to_dict()})


@bp.route('/<int:promotion_id>/toggle', methods=['POST'])
@login_required
@capability_required(Capabilities.PROMOTION_MANAGE)
def toggle(promotion_id):
    """Toggle promotion active status"""
    promotion = _get_promotion(promotion_id)
    promotion.is_active = not promotion.is_active
    log_activity(current_user.id, 'toggle_promotion', 'promotion', promotion.id,
                 f"{'Activated' if promotion.is_active else 'Deactivated'} {promotion.name}")
    db.session.commit()
    return jsonify({'success': True, 'is_active': promotion.is_active})


@bp.route('/<int:promotion_id>', methods=['DELETE'])
@login_required
@capability_required(Capabilities.PROMOTION_MANAGE)
def delete(promotion_id):
    promotion = _get_promotion(promotion_id)
    log_activity(current_user.id, 'delete_promotion', 'promotion', promotion.id, promotion.name)
    db.session.delete(promotion)
    db.session.commit()
    return jsonify({'success': True})
