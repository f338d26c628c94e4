"""
Database Models
SQLAlchemy ORM models for the POS system
"""

from datetime import datetime
from flask_sqlalchemy import SQLAlchemy
from flask_login import UserMixin
from werkzeug.security import generate_password_hash, check_password_hash
from sqlalchemy.orm import validates

from retail_pos.utils.errors import ValidationError
from retail_pos.utils.permissions import Role, parse_role, role_has_capability

db = SQLAlchemy()


class User(UserMixin, db.Model):
    """User model for authentication and manager authorization"""
    __tablename__ = 'users'

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(64), unique=True, nullable=False, index=True)
    full_name = db.Column(db.String(128), nullable=False)
    email = db.Column(db.String(120), unique=True)
    password_hash = db.Column(db.String(255), nullable=False)
    role = db.Column(db.String(32), nullable=False, default=Role.EMPLOYEE.value)
    # Roles: admin, manager, employee
    is_active = db.Column(db.Boolean, default=True)
    last_login = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    orders = db.relationship('Order', backref='seller', lazy='dynamic', foreign_keys='Order.user_id')

    def set_password(self, password):
        """Hash and set password"""
        self.password_hash = generate_password_hash(password)

    def check_password(self, password):
        """Verify password"""
        if not password or not self.password_hash:
            return False
        return check_password_hash(self.password_hash, password)

    @validates('role')
    def validate_role(self, key, value):
        role = parse_role(value)
        if role is None:
            raise ValidationError(f'Invalid role: {value}')
        return role.value

    def has_capability(self, capability):
        """Check if the user's role grants a capability"""
        return role_has_capability(self.role, capability)

    def to_dict(self):
        return {
            'id': self.id,
            'username': self.username,
            'full_name': self.full_name,
            'role': self.role,
            'is_active': self.is_active,
        }

    def __repr__(self):
        return f'<User {self.username}>'


class Category(db.Model):
    """Product categories"""
    __tablename__ = 'categories'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=False, unique=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    products = db.relationship('Product', backref='category', lazy='dynamic')

    def __repr__(self):
        return f'<Category {self.name}>'


class Product(db.Model):
    """Product catalog items"""
    __tablename__ = 'products'

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(64), unique=True, nullable=False, index=True)
    name = db.Column(db.String(256), nullable=False, index=True)
    category_id = db.Column(db.Integer, db.ForeignKey('categories.id'))

    # Pricing
    cost_price = db.Column(db.Numeric(10, 2), nullable=False, default=0.00)
    sale_price = db.Column(db.Numeric(10, 2), nullable=False, default=0.00)

    # Stock
    stock = db.Column(db.Integer, default=0)
    minimum_stock = db.Column(db.Integer)
    expiration_date = db.Column(db.Date)
    is_active = db.Column(db.Boolean, default=True)

    # Timestamps
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    order_items = db.relationship('OrderItem', backref='product', lazy='dynamic')

    @property
    def stock_status(self):
        """in_stock, low_stock or out_of_stock"""
        stock = self.stock or 0
        if stock <= 0:
            return 'out_of_stock'
        if stock <= (self.minimum_stock or 0):
            return 'low_stock'
        return 'in_stock'

    def to_dict(self):
        return {
            'id': self.id,
            'code': self.code,
            'name': self.name,
            'category_id': self.category_id,
            'category_name': self.category.name if self.category else None,
            'sale_price': float(self.sale_price or 0),
            'cost_price': float(self.cost_price or 0),
            'stock': self.stock,
            'minimum_stock': self.minimum_stock,
            'expiration_date': self.expiration_date.isoformat() if self.expiration_date else None,
        }

    def __repr__(self):
        return f'<Product {self.code} - {self.name}>'


class Customer(db.Model):
    """Customer records"""
    __tablename__ = 'customers'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=False)
    phone = db.Column(db.String(32), index=True)
    email = db.Column(db.String(120))
    is_active = db.Column(db.Boolean, default=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    orders = db.relationship('Order', backref='customer', lazy='dynamic')

    def __repr__(self):
        return f'<Customer {self.name}>'


class Promotion(db.Model):
    """Time-bounded promotion rules evaluated against the cart"""
    __tablename__ = 'promotions'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=False)
    description = db.Column(db.Text)

    promotion_type = db.Column(db.String(32), nullable=False)
    # Types: discount_percentage, discount_value, buy_x_get_y, fixed_price, bundle

    # Targets
    product_id = db.Column(db.Integer, db.ForeignKey('products.id'))
    product_ids = db.Column(db.JSON)  # List of product IDs
    category_id = db.Column(db.Integer, db.ForeignKey('categories.id'))

    # Type-specific values
    discount_percent = db.Column(db.Numeric(5, 2))
    discount_value = db.Column(db.Numeric(10, 2))
    fixed_price = db.Column(db.Numeric(10, 2))
    buy_quantity = db.Column(db.Integer)
    get_quantity = db.Column(db.Integer)
    secondary_product_id = db.Column(db.Integer, db.ForeignKey('products.id'))
    secondary_product_discount = db.Column(db.Numeric(5, 2))  # 100 = free
    bundle_products = db.Column(db.JSON)  # List of product IDs
    bundle_price = db.Column(db.Numeric(10, 2))
    max_discount_per_purchase = db.Column(db.Numeric(10, 2))

    start_date = db.Column(db.DateTime, nullable=False)
    end_date = db.Column(db.DateTime, nullable=False)
    is_active = db.Column(db.Boolean, default=True)

    created_by = db.Column(db.Integer, db.ForeignKey('users.id'))
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f'<Promotion {self.id} - {self.name}>'

    @property
    def is_current(self):
        now = datetime.utcnow()
        return bool(
            self.is_active and
            self.start_date and self.end_date and
            self.start_date <= now <= self.end_date
        )

    def to_dict(self):
        def _num(value):
            return float(value) if value is not None else None

        return {
            'id': self.id,
            'name': self.name,
            'description': self.description,
            'promotion_type': self.promotion_type,
            'product_id': self.product_id,
            'product_ids': self.product_ids or [],
            'category_id': self.category_id,
            'discount_percent': _num(self.discount_percent),
            'discount_value': _num(self.discount_value),
            'fixed_price': _num(self.fixed_price),
            'buy_quantity': self.buy_quantity,
            'get_quantity': self.get_quantity,
            'secondary_product_id': self.secondary_product_id,
            'secondary_product_discount': _num(self.secondary_product_discount),
            'bundle_products': self.bundle_products or [],
            'bundle_price': _num(self.bundle_price),
            'max_discount_per_purchase': _num(self.max_discount_per_purchase),
            'start_date': self.start_date.isoformat() if self.start_date else None,
            'end_date': self.end_date.isoformat() if self.end_date else None,
            'is_active': self.is_active,
        }


class Cashier(db.Model):
    """Cash register (till). Open/closed state is derived from its operations."""
    __tablename__ = 'cashiers'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=False)
    register_number = db.Column(db.String(32), unique=True, nullable=False)
    location = db.Column(db.String(128))
    is_active = db.Column(db.Boolean, default=True)
    assigned_user_id = db.Column(db.Integer, db.ForeignKey('users.id'))
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    assigned_user = db.relationship('User', foreign_keys=[assigned_user_id])
    operations = db.relationship('CashierOperation', backref='cashier', lazy='dynamic')

    @property
    def assigned_user_name(self):
        return self.assigned_user.full_name if self.assigned_user else None

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'register_number': self.register_number,
            'location': self.location,
            'is_active': self.is_active,
            'assigned_user_id': self.assigned_user_id,
            'assigned_user_name': self.assigned_user_name,
        }

    def __repr__(self):
        return f'<Cashier {self.register_number}>'


class CashierOperation(db.Model):
    """Append-only cashier operation log"""
    __tablename__ = 'cashier_operations'

    id = db.Column(db.Integer, primary_key=True)
    cashier_id = db.Column(db.Integer, db.ForeignKey('cashiers.id'), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    operation_type = db.Column(db.String(16), nullable=False)  # open, close, deposit, withdrawal
    amount = db.Column(db.Numeric(10, 2), nullable=False, default=0.00)
    timestamp = db.Column(db.DateTime, default=datetime.utcnow, nullable=False, index=True)

    # Close only
    opening_balance = db.Column(db.Numeric(10, 2))
    closing_balance = db.Column(db.Numeric(10, 2))

    reason = db.Column(db.Text)
    discrepancy_reason = db.Column(db.Text)

    # Manager authorization record
    manager_id = db.Column(db.Integer, db.ForeignKey('users.id'))
    manager_name = db.Column(db.String(128))

    user = db.relationship('User', foreign_keys=[user_id])

    def to_dict(self):
        return {
            'id': self.id,
            'cashier_id': self.cashier_id,
            'user_id': self.user_id,
            'operation_type': self.operation_type,
            'amount': float(self.amount or 0),
            'timestamp': self.timestamp.isoformat() if self.timestamp else None,
            'opening_balance': float(self.opening_balance) if self.opening_balance is not None else None,
            'closing_balance': float(self.closing_balance) if self.closing_balance is not None else None,
            'reason': self.reason,
            'discrepancy_reason': self.discrepancy_reason,
            'manager_id': self.manager_id,
            'manager_name': self.manager_name,
        }

    def __repr__(self):
        return f'<CashierOperation {self.operation_type} {self.cashier_id}>'


class Order(db.Model):
    """Completed sale"""
    __tablename__ = 'orders'

    id = db.Column(db.Integer, primary_key=True)
    order_number = db.Column(db.String(64), unique=True, nullable=False, index=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)

    # References
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    cashier_id = db.Column(db.Integer, db.ForeignKey('cashiers.id'), index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey('customers.id'))
    promotion_id = db.Column(db.Integer, db.ForeignKey('promotions.id'))

    # Amounts
    subtotal = db.Column(db.Numeric(10, 2), nullable=False, default=0.00)
    manual_discount_type = db.Column(db.String(16))  # percentage or fixed
    manual_discount_amount = db.Column(db.Numeric(10, 2), default=0.00)
    promotion_discount_amount = db.Column(db.Numeric(10, 2), default=0.00)
    discount_total = db.Column(db.Numeric(10, 2), default=0.00)
    total = db.Column(db.Numeric(10, 2), nullable=False, default=0.00)

    # Payment
    payment_method = db.Column(db.String(32), nullable=False, default='cash')
    # cash, credit_card, debit_card, pix, transfer

    # Manager authorization for the manual discount, if any
    manager_id = db.Column(db.Integer, db.ForeignKey('users.id'))
    manager_name = db.Column(db.String(128))

    items = db.relationship('OrderItem', backref='order', lazy='dynamic', cascade='all, delete-orphan')

    def to_dict(self, include_items=False):
        data = {
            'id': self.id,
            'order_number': self.order_number,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'user_id': self.user_id,
            'cashier_id': self.cashier_id,
            'customer_id': self.customer_id,
            'promotion_id': self.promotion_id,
            'subtotal': float(self.subtotal or 0),
            'manual_discount_amount': float(self.manual_discount_amount or 0),
            'promotion_discount_amount': float(self.promotion_discount_amount or 0),
            'discount_total': float(self.discount_total or 0),
            'total': float(self.total or 0),
            'payment_method': self.payment_method,
            'manager_name': self.manager_name,
        }
        if include_items:
            data['items'] = [item.to_dict() for item in self.items]
        return data

    def __repr__(self):
        return f'<Order {self.order_number}>'


class OrderItem(db.Model):
    """Individual lines of an order"""
    __tablename__ = 'order_items'

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey('orders.id'), nullable=False)
    product_id = db.Column(db.Integer, db.ForeignKey('products.id'), nullable=False)

    quantity = db.Column(db.Integer, nullable=False, default=1)
    unit_price = db.Column(db.Numeric(10, 2), nullable=False)
    subtotal = db.Column(db.Numeric(10, 2), nullable=False)

    def to_dict(self):
        return {
            'product_id': self.product_id,
            'product_name': self.product.name if self.product else None,
            'quantity': self.quantity,
            'unit_price': float(self.unit_price or 0),
            'subtotal': float(self.subtotal or 0),
        }

    def __repr__(self):
        return f'<OrderItem {self.id}>'


class ActivityLog(db.Model):
    """Audit trail of user and manager actions"""
    __tablename__ = 'activity_logs'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'))
    action = db.Column(db.String(64), nullable=False)
    entity_type = db.Column(db.String(64))
    entity_id = db.Column(db.Integer)
    details = db.Column(db.Text)
    ip_address = db.Column(db.String(45))
    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)

    def __repr__(self):
        return f'<ActivityLog {self.action}>'
