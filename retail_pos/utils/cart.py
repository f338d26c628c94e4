"""
Cart Utilities
Session-backed shopping cart used by the POS and the promotion engine
"""

from decimal import Decimal, InvalidOperation

from retail_pos.utils.errors import NotFoundError, ValidationError
from retail_pos.utils.helpers import to_decimal, to_money

CART_SESSION_KEY = 'cart'


class CartItem:
    """A cart line: product reference, quantity and unit price snapshot"""

    def __init__(self, product_id, quantity, price, name=None, category_id=None):
        self.product_id = product_id
        self.quantity = int(quantity)
        self.price = to_decimal(price)
        self.name = name
        self.category_id = category_id

    @classmethod
    def from_product(cls, product, quantity=1):
        """Snapshot the product's current sale price"""
        return cls(
            product_id=product.id,
            quantity=quantity,
            price=product.sale_price,
            name=product.name,
            category_id=product.category_id,
        )

    @property
    def subtotal(self):
        return self.price * self.quantity

    def to_dict(self):
        return {
            'product_id': self.product_id,
            'name': self.name,
            'category_id': self.category_id,
            'quantity': self.quantity,
            'price': str(self.price),
        }

    @classmethod
    def from_dict(cls, data):
        return cls(
            product_id=data['product_id'],
            quantity=data['quantity'],
            price=data['price'],
            name=data.get('name'),
            category_id=data.get('category_id'),
        )

    def __repr__(self):
        return f'<CartItem {self.product_id} x{self.quantity}>'


class Cart:
    """Ordered list of cart lines, one line per product"""

    def __init__(self, items=None):
        self.items = list(items or [])

    def __len__(self):
        return len(self.items)

    def __iter__(self):
        return iter(self.items)

    @property
    def is_empty(self):
        return not self.items

    @property
    def subtotal(self):
        return to_money(sum((item.subtotal for item in self.items), to_decimal(0)))

    @property
    def item_count(self):
        return sum(item.quantity for item in self.items)

    def find(self, product_id):
        return next((item for item in self.items if item.product_id == product_id), None)

    def add_product(self, product, quantity=1):
        """
        Add a product or increase the quantity of its existing line

        The price snapshot of an existing line is kept.
        """
        quantity = _validate_quantity(quantity)
        existing = self.find(product.id)
        if existing:
            existing.quantity += quantity
            return existing

        item = CartItem.from_product(product, quantity)
        self.items.append(item)
        return item

    def update_quantity(self, product_id, quantity):
        quantity = _validate_quantity(quantity)
        item = self.find(product_id)
        if item is None:
            raise NotFoundError(f'Product {product_id} is not in the cart')
        item.quantity = quantity
        return item

    def remove(self, product_id):
        item = self.find(product_id)
        if item is None:
            raise NotFoundError(f'Product {product_id} is not in the cart')
        self.items.remove(item)
        return item

    def clear(self):
        self.items = []

    def to_list(self):
        return [item.to_dict() for item in self.items]

    @classmethod
    def from_list(cls, data):
        return cls(CartItem.from_dict(entry) for entry in (data or []))

    @classmethod
    def load(cls, session):
        return cls.from_list(session.get(CART_SESSION_KEY))

    def save(self, session):
        session[CART_SESSION_KEY] = self.to_list()


def _validate_quantity(quantity):
    if isinstance(quantity, bool):
        raise ValidationError('Quantity must be a whole number')
    try:
        value = Decimal(str(quantity).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError('Quantity must be a whole number')
    if not value.is_finite() or value != value.to_integral_value():
        raise ValidationError('Quantity must be a whole number')
    if value < 1:
        raise ValidationError('Quantity must be at least 1')
    return int(value)
