"""
Integration Tests for POS Routes
Cart, gated overrides, promotions and sale completion through the HTTP API
"""

import pytest
from decimal import Decimal
from datetime import datetime, timedelta

from retail_pos.models import db, ActivityLog, Cashier, Order, Product, Promotion


def product_id(code):
    return Product.query.filter_by(code=code).first().id


def cashier_id(register_number):
    return Cashier.query.filter_by(register_number=register_number).first().id


def add(client, code, quantity=1):
    return client.post('/pos/cart/add', json={'product_id': product_id(code), 'quantity': quantity})


def confirm(client, username, password):
    return client.post('/auth/manager/confirm', json={'username': username, 'password': password})


def current_promotion(**fields):
    now = datetime.utcnow()
    fields.setdefault('name', 'Current deal')
    promotion = Promotion(start_date=now - timedelta(days=1), end_date=now + timedelta(days=1),
                          is_active=True, **fields)
    db.session.add(promotion)
    db.session.commit()
    return promotion


@pytest.mark.api
class TestCart:

    def test_requires_login(self, client, init_database):
        response = client.get('/pos/cart')
        assert response.status_code == 401

    def test_add_and_totals(self, auth_employee):
        add(auth_employee, 'COLA', 2)
        response = add(auth_employee, 'CHIPS', 1)
        assert response.status_code == 200
        data = response.get_json()
        assert data['subtotal'] == 16.0
        assert data['total'] == 16.0
        assert data['item_count'] == 3

    def test_add_merges_lines(self, auth_employee):
        add(auth_employee, 'COLA', 2)
        data = add(auth_employee, 'COLA', 3).get_json()
        assert len(data['items']) == 1
        assert data['items'][0]['quantity'] == 5

    def test_add_unknown_product(self, auth_employee):
        response = auth_employee.post('/pos/cart/add', json={'product_id': 9999})
        assert response.status_code == 404

    def test_add_invalid_quantity(self, auth_employee):
        response = add(auth_employee, 'COLA', 0)
        assert response.status_code == 400

    def test_add_fractional_quantity(self, auth_employee):
        response = add(auth_employee, 'COLA', 2.7)
        assert response.status_code == 400
        assert auth_employee.get('/pos/cart').get_json()['items'] == []

    def test_update_quantity(self, auth_employee):
        add(auth_employee, 'COLA', 1)
        response = auth_employee.post('/pos/cart/update', json={'product_id': product_id('COLA'), 'quantity': 4})
        assert response.get_json()['subtotal'] == 20.0

    def test_expired_promotion_is_ignored(self, auth_employee):
        data = add(auth_employee, 'COLA', 2).get_json()
        assert data['available_promotions'] == []
        assert data['applied_promotion'] is None


@pytest.mark.api
class TestGatedCartOverrides:

    def test_employee_remove_item_needs_manager(self, auth_employee):
        add(auth_employee, 'COLA', 1)
        response = auth_employee.post(f"/pos/cart/remove/{product_id('COLA')}")
        assert response.status_code == 202
        data = response.get_json()
        assert data['requires_authorization'] is True
        assert data['action'] == 'remove_cart_item'

        # Still in the cart until a manager confirms
        assert auth_employee.get('/pos/cart').get_json()['item_count'] == 1

        response = confirm(auth_employee, 'manager', 'manager123')
        assert response.status_code == 200
        assert response.get_json()['manager']['name'] == 'Manager User'
        assert auth_employee.get('/pos/cart').get_json()['item_count'] == 0

    def test_rejected_credentials_leave_cart_untouched(self, auth_employee):
        add(auth_employee, 'COLA', 1)
        auth_employee.post('/pos/cart/clear')

        response = confirm(auth_employee, 'employee', 'employee123')
        assert response.status_code == 403
        assert response.get_json()['authorized'] is False
        assert auth_employee.get('/pos/cart').get_json()['item_count'] == 1

        pending = auth_employee.get('/auth/manager/pending').get_json()
        assert pending['state'] == 'idle'

    def test_inactive_manager_is_rejected(self, auth_employee):
        add(auth_employee, 'COLA', 1)
        auth_employee.post('/pos/cart/clear')
        assert confirm(auth_employee, 'former', 'former123').status_code == 403

    def test_cancel_pending_request(self, auth_employee):
        add(auth_employee, 'COLA', 1)
        auth_employee.post('/pos/cart/clear')
        response = auth_employee.post('/auth/manager/cancel')
        assert response.get_json()['cancelled'] == 'clear_cart'
        assert confirm(auth_employee, 'manager', 'manager123').status_code == 400

    def test_manager_acts_directly(self, auth_manager):
        add(auth_manager, 'COLA', 1)
        add(auth_manager, 'CHIPS', 1)
        response = auth_manager.post(f"/pos/cart/remove/{product_id('COLA')}")
        assert response.status_code == 200
        assert response.get_json()['item_count'] == 1

        response = auth_manager.post('/pos/cart/clear')
        assert response.status_code == 200
        assert response.get_json()['item_count'] == 0

    def test_remove_item_not_in_cart(self, auth_employee):
        response = auth_employee.post(f"/pos/cart/remove/{product_id('COLA')}")
        assert response.status_code == 404

    def test_clear_empty_cart_needs_no_manager(self, auth_employee):
        assert auth_employee.post('/pos/cart/clear').status_code == 200

    def test_confirmation_is_audited(self, auth_employee):
        add(auth_employee, 'COLA', 1)
        auth_employee.post('/pos/cart/clear')
        confirm(auth_employee, 'manager', 'manager123')
        assert ActivityLog.query.filter_by(action='authorization_granted').count() == 1


@pytest.mark.api
class TestDiscounts:

    def test_employee_discount_waits_for_manager(self, auth_employee):
        add(auth_employee, 'COLA', 2)
        response = auth_employee.post('/pos/discount', json={'type': 'percentage', 'value': 10})
        assert response.status_code == 202
        assert auth_employee.get('/pos/cart').get_json()['manual_discount'] is None

        assert confirm(auth_employee, 'manager', 'manager123').status_code == 200
        data = auth_employee.get('/pos/cart').get_json()
        assert data['manual_discount'] == {'type': 'percentage', 'value': '10'}
        assert data['total'] == 9.0

    def test_manager_applies_and_removes_discount(self, auth_manager):
        add(auth_manager, 'COLA', 2)
        response = auth_manager.post('/pos/discount', json={'type': 'fixed', 'value': '3'})
        assert response.get_json()['total'] == 7.0

        response = auth_manager.delete('/pos/discount')
        assert response.status_code == 200
        assert response.get_json()['total'] == 10.0

    def test_remove_without_discount(self, auth_manager):
        add(auth_manager, 'COLA', 1)
        assert auth_manager.delete('/pos/discount').status_code == 400

    def test_discount_on_empty_cart(self, auth_manager):
        response = auth_manager.post('/pos/discount', json={'type': 'fixed', 'value': 5})
        assert response.status_code == 400

    @pytest.mark.parametrize('payload', [
        {'type': 'fixed', 'value': 0},
        {'type': 'percentage', 'value': 150},
        {'type': 'coupon', 'value': 5},
        {'type': 'fixed', 'value': 'abc'},
    ])
    def test_invalid_discount(self, auth_manager, payload):
        add(auth_manager, 'COLA', 1)
        assert auth_manager.post('/pos/discount', json=payload).status_code == 400

    def test_fixed_discount_larger_than_subtotal(self, auth_manager):
        add(auth_manager, 'COLA', 2)
        data = auth_manager.post('/pos/discount', json={'type': 'fixed', 'value': 100}).get_json()
        assert data['manual_discount_amount'] == 10.0
        assert data['total'] == 0.0


@pytest.mark.api
class TestPromotions:

    def test_best_promotion_applied_automatically(self, auth_employee):
        current_promotion(name='10% cola', promotion_type='discount_percentage',
                          product_id=product_id('COLA'), discount_percent=Decimal('10'))
        best = current_promotion(name='3 off juice', promotion_type='discount_value',
                                 product_id=product_id('JUICE'), discount_value=Decimal('3'))
        add(auth_employee, 'COLA', 2)
        data = add(auth_employee, 'JUICE', 1).get_json()
        assert len(data['available_promotions']) == 2
        assert data['applied_promotion']['promotion_id'] == best.id
        assert data['total'] == 15.0

    def test_select_and_remove_promotion(self, auth_employee):
        small = current_promotion(name='10% cola', promotion_type='discount_percentage',
                                  product_id=product_id('COLA'), discount_percent=Decimal('10'))
        current_promotion(name='3 off juice', promotion_type='discount_value',
                          product_id=product_id('JUICE'), discount_value=Decimal('3'))
        add(auth_employee, 'COLA', 2)
        add(auth_employee, 'JUICE', 1)

        data = auth_employee.post('/pos/promotion/select', json={'promotion_id': small.id}).get_json()
        assert data['applied_promotion']['promotion_id'] == small.id
        assert data['promotion_discount_amount'] == 1.0

        assert auth_employee.delete('/pos/promotion').status_code == 202
        assert confirm(auth_employee, 'manager', 'manager123').status_code == 200
        data = auth_employee.get('/pos/cart').get_json()
        assert data['applied_promotion'] is None
        assert data['promotion_suppressed'] is True
        assert data['total'] == 18.0

    def test_select_unavailable_promotion(self, auth_employee):
        chips = current_promotion(name='Chips', promotion_type='discount_value',
                                  product_id=product_id('CHIPS'), discount_value=Decimal('1'))
        add(auth_employee, 'COLA', 1)
        response = auth_employee.post('/pos/promotion/select', json={'promotion_id': chips.id})
        assert response.status_code == 400

    def test_available_promotions_list_discount(self, auth_employee):
        current_promotion(name='Cola for 4', promotion_type='fixed_price',
                          product_id=product_id('COLA'), fixed_price=Decimal('4'))
        add(auth_employee, 'COLA', 3)
        data = auth_employee.get('/pos/promotions/available').get_json()
        assert data['promotions'][0]['discount_amount'] == 3.0


@pytest.mark.api
class TestCompleteSale:

    def test_sale_persists_order_and_decrements_stock(self, auth_employee):
        add(auth_employee, 'COLA', 10)
        response = auth_employee.post('/pos/complete-sale', json={'payment_method': 'pix'})
        assert response.status_code == 201
        order = response.get_json()['order']
        assert order['total'] == 50.0
        assert order['items'][0]['quantity'] == 10
        assert Product.query.filter_by(code='COLA').first().stock == 90
        assert auth_employee.get('/pos/cart').get_json()['item_count'] == 0

    def test_fixed_discount_larger_than_subtotal_sells_for_zero(self, auth_manager):
        add(auth_manager, 'COLA', 10)
        auth_manager.post('/pos/discount', json={'type': 'fixed', 'value': 100})
        order = auth_manager.post('/pos/complete-sale', json={}).get_json()['order']
        assert order['subtotal'] == 50.0
        assert order['discount_total'] == 50.0
        assert order['total'] == 0.0

    def test_authorized_discount_records_manager(self, auth_employee):
        add(auth_employee, 'COLA', 2)
        auth_employee.post('/pos/discount', json={'type': 'fixed', 'value': 2})
        confirm(auth_employee, 'manager', 'manager123')
        order = auth_employee.post('/pos/complete-sale', json={}).get_json()['order']
        assert order['manager_name'] == 'Manager User'
        assert order['total'] == 8.0

    def test_insufficient_stock_rolls_back(self, auth_employee):
        add(auth_employee, 'COLA', 1)
        add(auth_employee, 'WATER', 1)
        response = auth_employee.post('/pos/complete-sale', json={})
        assert response.status_code == 400
        assert Order.query.count() == 0
        assert Product.query.filter_by(code='COLA').first().stock == 100

    def test_empty_cart(self, auth_employee):
        assert auth_employee.post('/pos/complete-sale', json={}).status_code == 400

    def test_invalid_payment_method(self, auth_employee):
        add(auth_employee, 'COLA', 1)
        response = auth_employee.post('/pos/complete-sale', json={'payment_method': 'barter'})
        assert response.status_code == 400

    def test_closed_cashier_is_refused(self, auth_employee):
        add(auth_employee, 'COLA', 1)
        response = auth_employee.post('/pos/complete-sale', json={'cashier_id': cashier_id('CX-02')})
        assert response.status_code == 409

    def test_malformed_cashier_id(self, auth_employee):
        add(auth_employee, 'COLA', 1)
        response = auth_employee.post('/pos/complete-sale', json={'cashier_id': 'abc'})
        assert response.status_code == 400
        assert response.get_json()['error'] == 'cashier_id must be a valid id'

    def test_sale_is_linked_to_open_cashier(self, auth_employee):
        register = cashier_id('CX-01')
        auth_employee.post(f'/cashiers/{register}/open', json={'initial_amount': 100})
        add(auth_employee, 'COLA', 2)
        order = auth_employee.post('/pos/complete-sale', json={'payment_method': 'cash'}).get_json()['order']
        assert order['cashier_id'] == register

        balance = auth_employee.get(f'/cashiers/{register}/balance').get_json()
        assert balance['balance'] == 110.0
