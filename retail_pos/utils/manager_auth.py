"""
Manager Authorization Gate
Suspends a privileged action until a manager or admin confirms it.

A request is stored as a plain value (action, payload, requester, time) in
the user session. Confirming with valid manager credentials runs the
handler registered for the action with the manager attached; any mismatch
rejects the request and leaves everything else untouched.

State: idle -> awaiting_credentials -> authorized | rejected -> idle
"""

import logging
from datetime import datetime

from retail_pos.utils.errors import ValidationError
from retail_pos.utils.permissions import Capabilities

logger = logging.getLogger(__name__)

PENDING_SESSION_KEY = 'pending_authorization'

STATE_IDLE = 'idle'
STATE_AWAITING = 'awaiting_credentials'

GATED_ACTIONS = (
    'remove_discount',
    'remove_promotion',
    'remove_cart_item',
    'clear_cart',
    'close_cashier',
    'logout',
    'apply_discount',
)

_handlers = {}


def authorization_handler(action):
    """
    Register the function that completes a gated action

    The handler is called as ``handler(payload, manager, requested_by)`` and
    its return value is passed back to the caller of ``confirm``.
    """
    if action not in GATED_ACTIONS:
        raise ValueError(f'Unknown gated action: {action}')

    def decorator(f):
        _handlers[action] = f
        return f
    return decorator


def get_handler(action):
    return _handlers.get(action)


class PendingRequest:
    """A privileged action waiting for manager credentials"""

    def __init__(self, action, payload=None, requested_by=None, requested_at=None):
        self.action = action
        self.payload = payload or {}
        self.requested_by = requested_by
        self.requested_at = requested_at or datetime.utcnow()

    def to_dict(self):
        return {
            'action': self.action,
            'payload': self.payload,
            'requested_by': self.requested_by,
            'requested_at': self.requested_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data):
        if not data:
            return None
        return cls(
            action=data['action'],
            payload=data.get('payload'),
            requested_by=data.get('requested_by'),
            requested_at=datetime.fromisoformat(data['requested_at']),
        )


class AuthorizationResult:
    """Outcome of confirming a pending request"""

    def __init__(self, authorized, message, action=None, manager=None, result=None):
        self.authorized = authorized
        self.message = message
        self.action = action
        self.manager = manager
        self.result = result

    def to_dict(self):
        data = {
            'success': self.authorized,
            'authorized': self.authorized,
            'action': self.action,
            'message': self.message,
        }
        if self.manager is not None:
            data['manager'] = {'id': self.manager.id, 'name': self.manager.full_name}
        if self.result is not None:
            data['result'] = self.result
        if not self.authorized:
            data['error'] = self.message
        return data


def find_user_by_identifier(identifier):
    """Look up a user by numeric id or username"""
    from retail_pos.models import db, User

    identifier = str(identifier or '').strip()
    if not identifier:
        return None
    if identifier.isdigit():
        user = db.session.get(User, int(identifier))
        if user is not None:
            return user
    return User.query.filter_by(username=identifier).first()


def verify_manager_credentials(identifier, password, find_user=None):
    """
    Return the authorizing user, or None when the credentials do not match
    an active user allowed to authorize overrides
    """
    user = (find_user or find_user_by_identifier)(identifier)
    if user is None or not user.is_active:
        return None
    if not user.has_capability(Capabilities.AUTHORIZE_OVERRIDES):
        return None
    if not user.check_password(password):
        return None
    return user


class ManagerAuthGate:
    """
    Gate bound to a session-like mapping

    Usage:
        gate = ManagerAuthGate(session)
        gate.request('clear_cart', {}, current_user.id)
        result = gate.confirm(form['manager_id'], form['password'])
    """

    def __init__(self, store, find_user=None):
        self.store = store
        self.find_user = find_user

    @property
    def pending(self):
        return PendingRequest.from_dict(self.store.get(PENDING_SESSION_KEY))

    @property
    def state(self):
        return STATE_AWAITING if self.store.get(PENDING_SESSION_KEY) else STATE_IDLE

    def _save(self, pending):
        if pending is None:
            self.store.pop(PENDING_SESSION_KEY, None)
        else:
            self.store[PENDING_SESSION_KEY] = pending.to_dict()
        if hasattr(self.store, 'modified'):
            self.store.modified = True

    def request(self, action, payload=None, requested_by=None):
        """
        Suspend an action until a manager confirms it

        A new request replaces any request still pending.

        Raises:
            ValidationError: for an action that is not gated
        """
        if action not in GATED_ACTIONS:
            raise ValidationError(f'Action {action} does not require authorization')

        replaced = self.pending
        if replaced is not None:
            logger.info(f"Pending authorization '{replaced.action}' replaced by '{action}'")

        pending = PendingRequest(action, payload, requested_by)
        self._save(pending)
        logger.info(f"Authorization requested for '{action}' by user {requested_by}")
        return pending

    def cancel(self):
        """Discard the pending request, returns it or None"""
        pending = self.pending
        self._save(None)
        if pending is not None:
            logger.info(f"Authorization for '{pending.action}' cancelled")
        return pending

    def confirm(self, identifier, password):
        """
        Check manager credentials and run the pending action

        Returns:
            AuthorizationResult; a rejection never raises
        """
        pending = self.pending
        if pending is None:
            return AuthorizationResult(False, 'No action is waiting for authorization')

        self._save(None)

        manager = verify_manager_credentials(identifier, password, self.find_user)
        if manager is None:
            logger.warning(f"Authorization for '{pending.action}' rejected")
            return AuthorizationResult(
                False,
                'Invalid credentials or user is not allowed to authorize this action',
                action=pending.action,
            )

        handler = get_handler(pending.action)
        result = None
        if handler is not None:
            result = handler(pending.payload, manager, pending.requested_by)

        logger.info(f"Authorization for '{pending.action}' granted by {manager.username}")
        return AuthorizationResult(
            True,
            f'Authorized by {manager.full_name}',
            action=pending.action,
            manager=manager,
            result=result,
        )
