"""
Cashier Routes
Till management: open, deposits, withdrawals, close with reconciliation
"""

from flask import Blueprint, current_app, jsonify, session
from flask_login import login_required, current_user
from retail_pos.models import db, Cashier, User
from retail_pos.services.cashier_service import CashierService
from retail_pos.utils.errors import ValidationError
from retail_pos.utils.helpers import get_request_data, log_activity
from retail_pos.utils.manager_auth import ManagerAuthGate, authorization_handler
from retail_pos.utils.permissions import Capabilities, capability_required

bp = Blueprint('cashiers', __name__)


@bp.route('/')
@login_required
@capability_required(Capabilities.CASHIER_OPERATE)
def index():
    """List cashiers with their derived state"""
    cashiers = Cashier.query.order_by(Cashier.register_number.asc()).all()
    return jsonify({'success': True, 'cashiers': [CashierService.get_status(c.id) for c in cashiers]})


@bp.route('/', methods=['POST'])
@login_required
@capability_required(Capabilities.CASHIER_MANAGE)
def create():
    """Register a new cashier"""
    data = get_request_data()
    name = (data.get('name') or '').strip()
    register_number = (data.get('register_number') or '').strip()
    if not name or not register_number:
        raise ValidationError('Name and register number are required')
    if Cashier.query.filter_by(register_number=register_number).first():
        raise ValidationError(f'Register number {register_number} already exists')

    assigned_user_id = data.get('assigned_user_id') or None
    if assigned_user_id and db.session.get(User, int(assigned_user_id)) is None:
        raise ValidationError(f'User {assigned_user_id} does not exist')

    cashier = Cashier(
        name=name,
        register_number=register_number,
        location=data.get('location'),
        assigned_user_id=int(assigned_user_id) if assigned_user_id else None,
        is_active=True
    )
    db.session.add(cashier)
    db.session.flush()
    log_activity(current_user.id, 'create_cashier', 'cashier', cashier.id, f'Cashier {name} created')
    db.session.commit()
    return jsonify({'success': True, 'cashier': cashier.to_dict()}), 201


@bp.route('/<int:cashier_id>')
@login_required
@capability_required(Capabilities.CASHIER_OPERATE)
def get(cashier_id):
    return jsonify({'success': True, 'cashier': CashierService.get_status(cashier_id)})


@bp.route('/<int:cashier_id>/open', methods=['POST'])
@login_required
@capability_required(Capabilities.CASHIER_OPERATE)
def open_cashier(cashier_id):
    data = get_request_data()
    operation = CashierService.open_cashier(cashier_id, current_user.id, data.get('initial_amount'))
    return jsonify({'success': True, 'operation': operation.to_dict()}), 201


@bp.route('/<int:cashier_id>/deposit', methods=['POST'])
@login_required
@capability_required(Capabilities.CASHIER_OPERATE)
def deposit(cashier_id):
    data = get_request_data()
    operation = CashierService.add_deposit(cashier_id, current_user.id, data.get('amount'), data.get('reason'))
    return jsonify({
        'success': True,
        'operation': operation.to_dict(),
        'balance': float(CashierService.get_cashier_balance(cashier_id)),
    }), 201


@bp.route('/<int:cashier_id>/withdrawal', methods=['POST'])
@login_required
@capability_required(Capabilities.CASHIER_OPERATE)
def withdrawal(cashier_id):
    data = get_request_data()
    operation = CashierService.add_withdrawal(cashier_id, current_user.id, data.get('amount'), data.get('reason'))
    return jsonify({
        'success': True,
        'operation': operation.to_dict(),
        'balance': float(CashierService.get_cashier_balance(cashier_id)),
    }), 201


@bp.route('/<int:cashier_id>/close-preview', methods=['POST'])
@login_required
@capability_required(Capabilities.CASHIER_OPERATE)
def close_preview(cashier_id):
    """Expected balance and shortage for a counted amount"""
    data = get_request_data()
    return jsonify({'success': True, 'preview': CashierService.preview_close(cashier_id, data.get('final_amount'))})


@bp.route('/<int:cashier_id>/close', methods=['POST'])
@login_required
@capability_required(Capabilities.CASHIER_OPERATE)
def close_cashier(cashier_id):
    """
    Close the cashier

    A shortage needs a reason and is parked in the manager authorization
    gate; the close is recorded once a manager confirms.
    """
    data = get_request_data()
    final_amount = data.get('final_amount')
    reason = (data.get('discrepancy_reason') or '').strip()

    preview = CashierService.preview_close(cashier_id, final_amount)
    if not preview['requires_authorization']:
        operation = CashierService.close_cashier(cashier_id, current_user.id, final_amount, reason or None)
        return jsonify({'success': True, 'operation': operation.to_dict(), 'preview': preview}), 201

    if not reason:
        raise ValidationError('A reason is required when closing with a shortage')

    pending = ManagerAuthGate(session).request(
        'close_cashier',
        {'cashier_id': cashier_id, 'final_amount': str(final_amount), 'discrepancy_reason': reason},
        current_user.id
    )
    current_app.logger.info(f"Cashier {cashier_id} close with shortage {preview['shortage']} awaiting manager")
    return jsonify({
        'success': False,
        'requires_authorization': True,
        'action': 'close_cashier',
        'pending': pending.to_dict(),
        'preview': preview,
        'error': 'Manager authorization required to close with a shortage',
    }), 202


def _payload_cashier_id(payload):
    try:
        return int(payload.get('cashier_id'))
    except (TypeError, ValueError):
        raise ValidationError('Cashier is required')


@authorization_handler('close_cashier')
def authorized_close(payload, manager, requested_by):
    reason = (payload.get('discrepancy_reason') or '').strip()
    if not reason:
        raise ValidationError('A reason is required when closing with a shortage')
    operation = CashierService.close_cashier(
        _payload_cashier_id(payload),
        requested_by,
        payload.get('final_amount'),
        reason,
        manager_id=manager.id,
        manager_name=manager.full_name
    )
    return {'operation': operation.to_dict()}


@bp.route('/<int:cashier_id>/balance')
@login_required
@capability_required(Capabilities.CASHIER_OPERATE)
def balance(cashier_id):
    return jsonify({
        'success': True,
        'cashier_id': cashier_id,
        'is_open': CashierService.is_open(cashier_id),
        'balance': float(CashierService.get_cashier_balance(cashier_id)),
    })


@bp.route('/<int:cashier_id>/history')
@login_required
@capability_required(Capabilities.CASHIER_OPERATE)
def history(cashier_id):
    """Operations grouped by day, newest day first"""
    return jsonify({'success': True, 'history': CashierService.get_cashier_history(cashier_id)})


@bp.route('/<int:cashier_id>/operations')
@login_required
@capability_required(Capabilities.CASHIER_OPERATE)
def operations(cashier_id):
    CashierService.get_cashier(cashier_id)
    return jsonify({
        'success': True,
        'operations': [op.to_dict() for op in CashierService.get_operations(cashier_id)],
    })
