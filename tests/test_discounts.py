"""
Unit Tests for the Cart and the Discount Aggregator
Tests for retail_pos/utils/cart.py and retail_pos/utils/discounts.py
"""

import pytest
from decimal import Decimal
from datetime import datetime, timedelta
from types import SimpleNamespace

from retail_pos.models import Promotion
from retail_pos.utils.cart import Cart, CartItem
from retail_pos.utils.discounts import (
    DiscountSelection,
    ManualDiscount,
    calculate_cart_total,
    calculate_cart_totals,
    calculate_total_discount,
)
from retail_pos.utils.errors import NotFoundError, ValidationError
from retail_pos.utils.promotions import AppliedPromotion

NOW = datetime(2024, 6, 15, 12, 0)


def product(product_id, price, category_id=None, name=None):
    return SimpleNamespace(id=product_id, sale_price=Decimal(price), category_id=category_id,
                           name=name or f'Product {product_id}')


def promotion(promotion_id, **fields):
    fields.setdefault('name', f'Promotion {promotion_id}')
    fields.setdefault('is_active', True)
    fields.setdefault('start_date', NOW - timedelta(days=1))
    fields.setdefault('end_date', NOW + timedelta(days=1))
    return Promotion(id=promotion_id, **fields)


# ============================================================================
# CART
# ============================================================================

class TestCart:

    def test_add_merges_quantities_and_keeps_price_snapshot(self):
        cart = Cart()
        cola = product(1, '5.00')
        cart.add_product(cola, 2)
        cola.sale_price = Decimal('9.00')
        cart.add_product(cola, 1)
        assert len(cart) == 1
        assert cart.find(1).quantity == 3
        assert cart.find(1).price == Decimal('5.00')
        assert cart.subtotal == Decimal('15.00')

    def test_subtotal_and_item_count(self):
        cart = Cart()
        cart.add_product(product(1, '5.00'), 3)
        cart.add_product(product(2, '2.50'), 2)
        assert cart.subtotal == Decimal('20.00')
        assert cart.item_count == 5

    def test_quantity_must_be_positive(self):
        cart = Cart()
        with pytest.raises(ValidationError):
            cart.add_product(product(1, '5.00'), 0)
        cart.add_product(product(1, '5.00'), 1)
        with pytest.raises(ValidationError):
            cart.update_quantity(1, -2)
        with pytest.raises(ValidationError):
            cart.update_quantity(1, 'many')

    @pytest.mark.parametrize('quantity', [2.7, '1.5', True, float('nan'), 'inf'])
    def test_quantity_must_be_whole(self, quantity):
        cart = Cart()
        with pytest.raises(ValidationError):
            cart.add_product(product(1, '5.00'), quantity)
        assert cart.is_empty

    def test_integral_quantity_forms_accepted(self):
        cart = Cart()
        cart.add_product(product(1, '5.00'), '2')
        cart.update_quantity(1, 3.0)
        assert cart.find(1).quantity == 3

    def test_remove_unknown_product(self):
        with pytest.raises(NotFoundError):
            Cart().remove(42)

    def test_session_round_trip(self):
        cart = Cart()
        cart.add_product(product(1, '5.00', category_id=7, name='Cola'), 2)
        session = {}
        cart.save(session)
        restored = Cart.load(session)
        item = restored.find(1)
        assert item.quantity == 2
        assert item.price == Decimal('5.00')
        assert item.category_id == 7
        assert item.name == 'Cola'

    def test_clear(self):
        cart = Cart([CartItem(1, 1, '5.00')])
        cart.clear()
        assert cart.is_empty
        assert cart.subtotal == Decimal('0.00')


# ============================================================================
# MANUAL DISCOUNT
# ============================================================================

class TestManualDiscount:

    def test_percentage(self):
        discount = ManualDiscount.create('percentage', '10')
        assert discount.amount_for(Decimal('50')) == Decimal('5')

    def test_fixed_capped_at_subtotal(self):
        discount = ManualDiscount.create('fixed', 100)
        assert discount.amount_for(Decimal('50')) == Decimal('50')

    def test_value_must_be_positive(self):
        with pytest.raises(ValidationError):
            ManualDiscount.create('fixed', 0)
        with pytest.raises(ValidationError):
            ManualDiscount.create('percentage', '-5')

    def test_invalid_type(self):
        with pytest.raises(ValidationError):
            ManualDiscount.create('bogus', 10)

    def test_percentage_limit(self):
        with pytest.raises(ValidationError):
            ManualDiscount.create('percentage', 101)
        with pytest.raises(ValidationError):
            ManualDiscount.create('percentage', 30, max_percent=25)

    def test_comma_decimal_separator(self):
        assert ManualDiscount.create('fixed', '2,50').value == Decimal('2.50')


# ============================================================================
# AGGREGATION
# ============================================================================

class TestAggregation:

    def test_manual_and_promotion_are_summed(self):
        manual = ManualDiscount('fixed', '10')
        applied = AppliedPromotion(1, Decimal('5'), [1])
        manual_amount, promotion_amount, total = calculate_total_discount(Decimal('100'), manual, applied)
        assert manual_amount == Decimal('10.00')
        assert promotion_amount == Decimal('5.00')
        assert total == Decimal('15.00')
        assert calculate_cart_total(Decimal('100'), manual, applied) == Decimal('85.00')

    def test_total_never_negative(self):
        manual = ManualDiscount('fixed', '100')
        applied = AppliedPromotion(1, Decimal('30'), [1])
        assert calculate_cart_total(Decimal('50'), manual, applied) == Decimal('0.00')

    def test_no_discounts(self):
        assert calculate_cart_total(Decimal('42.10')) == Decimal('42.10')


class TestCartTotals:

    @pytest.fixture
    def cart(self):
        cart = Cart()
        cart.add_product(product(1, '5.00', category_id=10), 3)
        cart.add_product(product(2, '6.00', category_id=20), 2)
        return cart

    @pytest.fixture
    def promotions(self):
        return [
            promotion(1, promotion_type='discount_percentage', product_id=1, discount_percent=10),
            promotion(2, promotion_type='discount_value', category_id=20, discount_value=5),
        ]

    def test_best_promotion_is_auto_selected(self, cart, promotions):
        totals = calculate_cart_totals(cart, promotions, DiscountSelection(), NOW)
        assert totals.subtotal == Decimal('27.00')
        assert totals.applied_promotion.promotion_id == 2
        assert totals.promotion_discount_amount == Decimal('5.00')
        assert totals.total == Decimal('22.00')

    def test_explicit_choice_wins_even_if_smaller(self, cart, promotions):
        selection = DiscountSelection()
        selection.select_promotion(1)
        totals = calculate_cart_totals(cart, promotions, selection, NOW)
        assert totals.applied_promotion.promotion_id == 1
        assert totals.promotion_discount_amount == Decimal('1.50')

    def test_unavailable_choice_falls_back_to_best(self, cart, promotions):
        selection = DiscountSelection()
        selection.select_promotion(99)
        totals = calculate_cart_totals(cart, promotions, selection, NOW)
        assert totals.applied_promotion.promotion_id == 2
        assert totals.promotion_discount_amount == Decimal('5.00')

    def test_removed_promotion_suppresses_auto_selection(self, cart, promotions):
        selection = DiscountSelection()
        selection.remove_promotion()
        totals = calculate_cart_totals(cart, promotions, selection, NOW)
        assert totals.applied_promotion is None
        assert totals.total == Decimal('27.00')

        selection.select_promotion(2)
        assert calculate_cart_totals(cart, promotions, selection, NOW).promotion_discount_amount == Decimal('5.00')

    def test_manual_discount_stacks_with_promotion(self, cart, promotions):
        selection = DiscountSelection(manual=ManualDiscount('percentage', '10'))
        totals = calculate_cart_totals(cart, promotions, selection, NOW)
        assert totals.manual_discount_amount == Decimal('2.70')
        assert totals.discount_total == Decimal('7.70')
        assert totals.total == Decimal('19.30')

    def test_fixed_discount_larger_than_subtotal(self):
        cart = Cart()
        cart.add_product(product(1, '25.00'), 2)
        selection = DiscountSelection(manual=ManualDiscount('fixed', '100'))
        totals = calculate_cart_totals(cart, [], selection, NOW)
        assert totals.manual_discount_amount == Decimal('50.00')
        assert totals.total == Decimal('0.00')

    def test_removing_manual_discount_keeps_promotion(self, cart, promotions):
        selection = DiscountSelection(manual=ManualDiscount('fixed', '3'))
        selection.select_promotion(1)
        selection.clear_manual()
        totals = calculate_cart_totals(cart, promotions, selection, NOW)
        assert totals.manual_discount_amount == Decimal('0.00')
        assert totals.applied_promotion.promotion_id == 1

    def test_reset_clears_both(self):
        selection = DiscountSelection(manual=ManualDiscount('fixed', '3'), manager_id=2, manager_name='Boss')
        selection.remove_promotion()
        selection.reset()
        assert selection.manual is None
        assert selection.promotion_id is None
        assert selection.promotion_suppressed is False
        assert selection.manager_name is None

    def test_selection_session_round_trip(self):
        selection = DiscountSelection(manual=ManualDiscount('percentage', '15'), manager_id=2, manager_name='Boss')
        selection.select_promotion(4)
        session = {}
        selection.save(session)
        restored = DiscountSelection.load(session)
        assert restored.manual.discount_type == 'percentage'
        assert restored.manual.value == Decimal('15')
        assert restored.promotion_id == 4
        assert restored.manager_name == 'Boss'
