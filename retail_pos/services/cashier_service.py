"""
Cashier Service
Persisted cashier (till) transitions on top of the reconciliation rules:
- Opening and closing with expected balance and shortage
- Deposits and withdrawals while open
- Balance, history and close previews

The operation log is append-only. A rejected transition raises before
anything is added to the session.
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional

from flask import current_app
from sqlalchemy import func

from retail_pos.models import db, Cashier, CashierOperation, Order
from retail_pos.utils.errors import CashierStateError, NotFoundError, ValidationError
from retail_pos.utils.helpers import log_activity, parse_amount, to_decimal, to_money
from retail_pos.utils import reconciliation

logger = logging.getLogger(__name__)


class CashierService:
    """Service for cashier operations"""

    @staticmethod
    def get_cashier(cashier_id: int) -> Cashier:
        cashier = db.session.get(Cashier, cashier_id)
        if cashier is None:
            raise NotFoundError(f'Cashier {cashier_id} not found')
        return cashier

    @staticmethod
    def get_operations(cashier_id: int) -> List[CashierOperation]:
        """Full operation log of a cashier, oldest first"""
        return CashierOperation.query.filter_by(cashier_id=cashier_id).order_by(
            CashierOperation.timestamp.asc(), CashierOperation.id.asc()
        ).all()

    @staticmethod
    def is_open(cashier_id: int) -> bool:
        return reconciliation.is_cashier_open(CashierService.get_operations(cashier_id), cashier_id)

    @staticmethod
    def get_open_cashier_for_user(user_id: int) -> Optional[Cashier]:
        """Enabled cashier assigned to the user that is currently open"""
        for cashier in Cashier.query.filter_by(assigned_user_id=user_id, is_active=True).all():
            if CashierService.is_open(cashier.id):
                return cashier
        return None

    @staticmethod
    def get_open_operation(cashier_id: int) -> Optional[CashierOperation]:
        session_ops = reconciliation.get_operations_since_open(
            CashierService.get_operations(cashier_id), cashier_id
        )
        return session_ops[0] if session_ops else None

    @staticmethod
    def get_sales_total(cashier_id: int, since: datetime) -> Decimal:
        """Cash sales linked to the cashier since a moment"""
        total = db.session.query(func.coalesce(func.sum(Order.total), 0)).filter(
            Order.cashier_id == cashier_id,
            Order.payment_method == 'cash',
            Order.created_at >= since
        ).scalar()
        return to_decimal(total)

    @staticmethod
    def get_cashier_balance(cashier_id: int) -> Decimal:
        """
        Expected cash in the drawer right now

        Includes cash sales since the open when CASHIER_TRACK_SALES is set.
        """
        CashierService.get_cashier(cashier_id)
        operations = CashierService.get_operations(cashier_id)
        session_ops = reconciliation.get_operations_since_open(operations, cashier_id)
        if not session_ops:
            return Decimal('0')

        sales_total = Decimal('0')
        if current_app.config.get('CASHIER_TRACK_SALES', True):
            sales_total = CashierService.get_sales_total(cashier_id, session_ops[0].timestamp)

        return to_money(reconciliation.get_cashier_balance(operations, cashier_id, sales_total))

    @staticmethod
    def _append(operation: CashierOperation, action: str, details: str) -> CashierOperation:
        db.session.add(operation)
        db.session.flush()
        log_activity(operation.user_id, action, 'cashier', operation.cashier_id, details)
        db.session.commit()
        return operation

    @staticmethod
    def open_cashier(cashier_id: int, user_id: int, initial_amount) -> CashierOperation:
        """
        Open a cashier with its starting float

        Raises:
            NotFoundError: unknown cashier
            CashierStateError: disabled or already open
            ValidationError: negative amount
        """
        cashier = CashierService.get_cashier(cashier_id)
        if not cashier.is_active:
            raise CashierStateError(f'Cashier {cashier.name} is disabled')

        amount = parse_amount(initial_amount, 'Initial amount')
        if amount < 0:
            raise ValidationError('Initial amount cannot be negative')

        if CashierService.is_open(cashier_id):
            raise CashierStateError(f'Cashier {cashier.name} is already open')

        operation = CashierOperation(
            cashier_id=cashier_id,
            user_id=user_id,
            operation_type='open',
            amount=to_money(amount),
            timestamp=datetime.utcnow()
        )
        CashierService._append(operation, 'cashier_open', f'Opened with {to_money(amount)}')
        logger.info(f"Cashier {cashier.register_number} opened by user {user_id} with {to_money(amount)}")
        return operation

    @staticmethod
    def _movement(cashier_id: int, user_id: int, amount, reason: Optional[str],
                  operation_type: str) -> CashierOperation:
        cashier = CashierService.get_cashier(cashier_id)
        if not CashierService.is_open(cashier_id):
            raise CashierStateError(f'Cashier {cashier.name} is not open')

        label = 'Deposit amount' if operation_type == 'deposit' else 'Withdrawal amount'
        amount = parse_amount(amount, label)
        if amount <= 0:
            raise ValidationError(f'{label} must be greater than zero')

        if operation_type == 'withdrawal':
            balance = CashierService.get_cashier_balance(cashier_id)
            if amount > balance:
                raise ValidationError(
                    f'Withdrawal of {to_money(amount)} exceeds the cashier balance of {balance}'
                )

        operation = CashierOperation(
            cashier_id=cashier_id,
            user_id=user_id,
            operation_type=operation_type,
            amount=to_money(amount),
            reason=(reason or '').strip() or None,
            timestamp=datetime.utcnow()
        )
        CashierService._append(operation, f'cashier_{operation_type}', f'{operation_type} of {to_money(amount)}')
        logger.info(f"Cashier {cashier.register_number}: {operation_type} of {to_money(amount)} by user {user_id}")
        return operation

    @staticmethod
    def add_deposit(cashier_id: int, user_id: int, amount, reason: Optional[str] = None) -> CashierOperation:
        return CashierService._movement(cashier_id, user_id, amount, reason, 'deposit')

    @staticmethod
    def add_withdrawal(cashier_id: int, user_id: int, amount, reason: Optional[str] = None) -> CashierOperation:
        return CashierService._movement(cashier_id, user_id, amount, reason, 'withdrawal')

    @staticmethod
    def preview_close(cashier_id: int, final_amount) -> Dict:
        """
        Expected balance and difference for a counted amount, without closing

        Raises:
            CashierStateError: cashier not open
        """
        cashier = CashierService.get_cashier(cashier_id)
        if not CashierService.is_open(cashier_id):
            raise CashierStateError(f'Cashier {cashier.name} is not open')

        final_amount = parse_amount(final_amount, 'Final amount')
        if final_amount < 0:
            raise ValidationError('Final amount cannot be negative')

        expected = CashierService.get_cashier_balance(cashier_id)
        difference = expected - to_money(final_amount)
        return {
            'cashier_id': cashier_id,
            'expected_balance': float(expected),
            'final_amount': float(to_money(final_amount)),
            'difference': float(difference),
            'shortage': float(max(Decimal('0'), difference)),
            'overage': float(max(Decimal('0'), -difference)),
            'requires_authorization': reconciliation.requires_manager_authorization(expected, final_amount),
        }

    @staticmethod
    def close_cashier(cashier_id: int, user_id: int, final_amount,
                      discrepancy_reason: Optional[str] = None,
                      manager_id: Optional[int] = None,
                      manager_name: Optional[str] = None) -> CashierOperation:
        """
        Close a cashier with the counted amount

        The expected balance is stored as opening_balance and the counted
        amount as closing_balance. Authorization for a shortage is the
        caller's job; this only records what it is given.
        """
        cashier = CashierService.get_cashier(cashier_id)
        if not CashierService.is_open(cashier_id):
            raise CashierStateError(f'Cashier {cashier.name} is not open')

        final_amount = parse_amount(final_amount, 'Final amount')
        if final_amount < 0:
            raise ValidationError('Final amount cannot be negative')
        final_amount = to_money(final_amount)

        expected = CashierService.get_cashier_balance(cashier_id)

        operation = CashierOperation(
            cashier_id=cashier_id,
            user_id=user_id,
            operation_type='close',
            amount=final_amount,
            opening_balance=expected,
            closing_balance=final_amount,
            discrepancy_reason=(discrepancy_reason or '').strip() or None,
            manager_id=manager_id,
            manager_name=manager_name,
            timestamp=datetime.utcnow()
        )

        details = f'Closed with {final_amount}, expected {expected}'
        if manager_name:
            details += f', authorized by {manager_name}'
        CashierService._append(operation, 'cashier_close', details)

        shortage = max(Decimal('0'), expected - final_amount)
        if shortage > 0:
            logger.warning(
                f"Cashier {cashier.register_number} closed with shortage {shortage} "
                f"(authorized by {manager_name or 'nobody'})"
            )
        else:
            logger.info(f"Cashier {cashier.register_number} closed by user {user_id}")
        return operation

    @staticmethod
    def get_cashier_history(cashier_id: int) -> List[Dict]:
        """
        Operations grouped by day, newest day first

        Close operations carry their shortage.
        """
        CashierService.get_cashier(cashier_id)
        operations = CashierService.get_operations(cashier_id)
        grouped = reconciliation.group_operations_by_day(operations)

        history = []
        for day, day_ops in grouped.items():
            entries = []
            for op in day_ops:
                data = op.to_dict()
                data['user_name'] = op.user.full_name if op.user else None
                if op.operation_type == 'close':
                    data['shortage'] = float(reconciliation.calculate_shortage(op, operations))
                    data['has_discrepancy'] = reconciliation.has_discrepancy(op, operations)
                entries.append(data)
            history.append({'date': day.isoformat(), 'operations': entries})
        return history

    @staticmethod
    def get_status(cashier_id: int) -> Dict:
        """Cashier record with derived open state and balance"""
        cashier = CashierService.get_cashier(cashier_id)
        operations = CashierService.get_operations(cashier_id)
        latest = reconciliation.get_latest_operation(operations, cashier_id)
        data = cashier.to_dict()
        data['is_open'] = reconciliation.is_cashier_open(operations, cashier_id)
        data['balance'] = float(CashierService.get_cashier_balance(cashier_id))
        data['last_operation'] = latest.to_dict() if latest else None
        return data
