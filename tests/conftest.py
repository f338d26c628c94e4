"""
Shared pytest fixtures and configuration for all tests.

Provides common fixtures for Flask application testing, database sessions,
authentication, and test data initialization.
"""

import pytest
import sys
import os
from decimal import Decimal
from datetime import datetime, timedelta

# Add the project root to the path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from retail_pos import create_app
from retail_pos.models import db


@pytest.fixture(scope='session')
def app_factory():
    """Factory fixture for creating test app instances."""
    def _create_app(config='testing'):
        app = create_app(config)
        app.config['WTF_CSRF_ENABLED'] = False
        app.config['TESTING'] = True
        app.config['SQLALCHEMY_DATABASE_URI'] = 'sqlite:///:memory:'
        return app
    return _create_app


@pytest.fixture(scope='function')
def fresh_app(app_factory):
    """Create a fresh application for each test with clean database."""
    app = app_factory()

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture(scope='function')
def client(fresh_app):
    """Create a test client for each test."""
    return fresh_app.test_client()


@pytest.fixture(scope='function')
def init_database(fresh_app):
    """
    Initialize database with test data.

    Creates:
    - Users (admin, manager, employee, inactive manager)
    - Categories (Drinks, Snacks)
    - Products (cola, juice, chips, chocolate, out of stock water)
    - Customers
    - Cashier assigned to the employee
    - An expired promotion
    """
    from retail_pos.models import User, Category, Product, Customer, Cashier, Promotion

    with fresh_app.app_context():
        admin = User(username='admin', email='admin@test.com', full_name='Admin User', role='admin')
        admin.set_password('admin123')
        manager = User(username='manager', email='manager@test.com', full_name='Manager User', role='manager')
        manager.set_password('manager123')
        employee = User(username='employee', email='employee@test.com', full_name='Employee User', role='employee')
        employee.set_password('employee123')
        inactive = User(username='former', email='former@test.com', full_name='Former Manager',
                        role='manager', is_active=False)
        inactive.set_password('former123')
        db.session.add_all([admin, manager, employee, inactive])

        drinks = Category(name='Drinks')
        snacks = Category(name='Snacks')
        db.session.add_all([drinks, snacks])
        db.session.flush()

        products = [
            Product(code='COLA', name='Cola', category_id=drinks.id, cost_price=Decimal('2.00'),
                    sale_price=Decimal('5.00'), stock=100, minimum_stock=10),
            Product(code='JUICE', name='Juice', category_id=drinks.id, cost_price=Decimal('4.00'),
                    sale_price=Decimal('8.00'), stock=50, minimum_stock=5),
            Product(code='CHIPS', name='Chips', category_id=snacks.id, cost_price=Decimal('3.00'),
                    sale_price=Decimal('6.00'), stock=60, minimum_stock=10),
            Product(code='CHOC', name='Chocolate', category_id=snacks.id, cost_price=Decimal('1.00'),
                    sale_price=Decimal('4.00'), stock=5, minimum_stock=10),
            Product(code='WATER', name='Water', category_id=drinks.id, cost_price=Decimal('0.50'),
                    sale_price=Decimal('2.00'), stock=0, minimum_stock=10),
        ]
        db.session.add_all(products)

        db.session.add_all([
            Customer(name='Alice', phone='111', email='alice@test.com'),
            Customer(name='Bruno', phone='222', email='bruno@test.com'),
        ])
        db.session.flush()

        db.session.add(Cashier(name='Front Register', register_number='CX-01',
                               location='Front', assigned_user_id=employee.id))
        db.session.add(Cashier(name='Back Register', register_number='CX-02', location='Back'))

        now = datetime.utcnow()
        db.session.add(Promotion(
            name='Expired cola deal', promotion_type='discount_percentage',
            product_id=products[0].id, discount_percent=Decimal('50'),
            start_date=now - timedelta(days=30), end_date=now - timedelta(days=1),
            is_active=True, created_by=admin.id
        ))

        db.session.commit()
        yield

        # Cleanup is handled by fresh_app fixture


def login(client, username, password):
    """Helper function to log in a user."""
    return client.post('/auth/login', data={
        'username': username,
        'password': password
    })


@pytest.fixture
def auth_admin(client, init_database):
    """Login as admin user and return authenticated client."""
    login(client, 'admin', 'admin123')
    return client


@pytest.fixture
def auth_manager(client, init_database):
    """Login as manager user and return authenticated client."""
    login(client, 'manager', 'manager123')
    return client


@pytest.fixture
def auth_employee(client, init_database):
    """
    Login as employee user and return authenticated client.
    Employees sell and operate cashiers; overrides need a manager.
    """
    login(client, 'employee', 'employee123')
    return client


# Pytest configuration
def pytest_configure(config):
    """Configure custom pytest markers."""
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
    config.addinivalue_line(
        "markers", "api: marks tests as API endpoint tests"
    )
    config.addinivalue_line(
        "markers", "auth: marks tests as authentication tests"
    )
