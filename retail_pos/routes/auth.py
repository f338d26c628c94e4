"""
Authentication Routes
Handles user login, logout and manager authorization requests
"""

from flask import Blueprint, current_app, jsonify, session
from flask_login import login_user, logout_user, current_user, login_required
from flask_wtf.csrf import generate_csrf
from datetime import datetime
from retail_pos.models import db, User
from retail_pos.services.cashier_service import CashierService
from retail_pos.utils.cart import CART_SESSION_KEY
from retail_pos.utils.discounts import SELECTION_SESSION_KEY
from retail_pos.utils.errors import ValidationError
from retail_pos.utils.helpers import get_request_data, log_activity
from retail_pos.utils.manager_auth import ManagerAuthGate, PENDING_SESSION_KEY, authorization_handler

bp = Blueprint('auth', __name__)


def _end_session(user_id, details):
    log_activity(user_id, 'logout', 'user', user_id, details)
    db.session.commit()
    logout_user()
    for key in (CART_SESSION_KEY, SELECTION_SESSION_KEY, PENDING_SESSION_KEY):
        session.pop(key, None)


@bp.route('/csrf-token', methods=['GET'])
def csrf_token():
    """
    Token for the X-CSRFToken header

    Every POST is CSRF protected; clients fetch a token here first and send
    it back on each write.
    """
    return jsonify({'success': True, 'csrf_token': generate_csrf()})


@bp.route('/login', methods=['POST'])
def login():
    """User login"""
    data = get_request_data()
    username = data.get('username')
    password = data.get('password')
    remember = bool(data.get('remember', False))

    user = User.query.filter_by(username=username).first()

    if user is None or not user.check_password(password):
        log_activity(None, 'failed_login', 'user', None, f'Failed login attempt for username: {username}')
        db.session.commit()
        return jsonify({'success': False, 'error': 'Invalid username or password'}), 401

    if not user.is_active:
        return jsonify({
            'success': False,
            'error': 'Your account has been deactivated. Please contact administrator.'
        }), 403

    # Login successful
    login_user(user, remember=remember)
    user.last_login = datetime.utcnow()
    log_activity(user.id, 'login', 'user', user.id, 'User logged in')
    db.session.commit()

    return jsonify({'success': True, 'user': user.to_dict()})


@bp.route('/logout', methods=['GET', 'POST'])
@login_required
def logout():
    """
    User logout

    Leaving while an assigned cashier is still open needs a manager.
    """
    cashier = CashierService.get_open_cashier_for_user(current_user.id)
    if cashier is not None:
        ManagerAuthGate(session).request('logout', {'cashier_id': cashier.id}, current_user.id)
        return jsonify({
            'success': False,
            'requires_authorization': True,
            'action': 'logout',
            'error': f'Cashier {cashier.name} is still open. Manager authorization required to log out.'
        }), 202

    _end_session(current_user.id, 'User logged out')
    return jsonify({'success': True, 'message': 'You have been logged out successfully.'})


@authorization_handler('logout')
def authorized_logout(payload, manager, requested_by):
    _end_session(requested_by, f"Logged out with cashier {payload.get('cashier_id')} open, "
                               f"authorized by {manager.full_name}")
    return {'logged_out': True}


# ============================================================
# MANAGER AUTHORIZATION
# ============================================================

@bp.route('/manager/request', methods=['POST'])
@login_required
def request_authorization():
    """Suspend an action until a manager confirms it"""
    data = get_request_data()
    action = data.get('action')
    if not action:
        raise ValidationError('Action is required')

    payload = data.get('payload') or {}
    if not isinstance(payload, dict):
        raise ValidationError('Payload must be an object')

    pending = ManagerAuthGate(session).request(action, payload, current_user.id)
    return jsonify({'success': True, 'pending': pending.to_dict()}), 202


@bp.route('/manager/confirm', methods=['POST'])
@login_required
def confirm_authorization():
    """Check manager credentials and run the pending action"""
    data = get_request_data()
    gate = ManagerAuthGate(session)
    pending = gate.pending
    if pending is None:
        return jsonify({'success': False, 'error': 'No action is waiting for authorization'}), 400

    identifier = data.get('manager_id') or data.get('username')
    result = gate.confirm(identifier, data.get('password'))

    if not result.authorized:
        log_activity(current_user.id, 'authorization_denied', 'authorization', None,
                     f'Authorization for {pending.action} denied')
        db.session.commit()
        return jsonify(result.to_dict()), 403

    # The logout handler already ended the session
    user_id = current_user.id if current_user.is_authenticated else pending.requested_by
    log_activity(user_id, 'authorization_granted', 'authorization', result.manager.id,
                 f'{pending.action} authorized by {result.manager.full_name}')
    db.session.commit()
    current_app.logger.info(f"Manager {result.manager.username} authorized {pending.action}")
    return jsonify(result.to_dict())


@bp.route('/manager/cancel', methods=['POST'])
@login_required
def cancel_authorization():
    """Discard the pending request"""
    pending = ManagerAuthGate(session).cancel()
    return jsonify({'success': True, 'cancelled': pending.action if pending else None})


@bp.route('/manager/pending', methods=['GET'])
@login_required
def pending_authorization():
    gate = ManagerAuthGate(session)
    pending = gate.pending
    return jsonify({
        'success': True,
        'state': gate.state,
        'pending': pending.to_dict() if pending else None,
    })
