"""
Application Entry Point
Initializes and runs the Flask application
"""

import os
import logging
from datetime import datetime, timedelta
from decimal import Decimal
from retail_pos import create_app
from retail_pos.models import db

# Determine configuration environment
config_name = os.environ.get('FLASK_ENV', 'development')
app = create_app(config_name)

# Setup logging
if not os.path.exists(app.config['LOG_FOLDER']):
    os.makedirs(app.config['LOG_FOLDER'])

logging.basicConfig(
    level=getattr(logging, app.config['LOG_LEVEL']),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.FileHandler(os.path.join(app.config['LOG_FOLDER'], 'app.log')),
        logging.StreamHandler()
    ]
)

logger = logging.getLogger(__name__)


@app.shell_context_processor
def make_shell_context():
    """Make database and models available in Flask shell"""
    from retail_pos import models
    return {
        'db': db,
        'User': models.User,
        'Product': models.Product,
        'Promotion': models.Promotion,
        'Cashier': models.Cashier,
        'CashierOperation': models.CashierOperation,
        'Order': models.Order,
    }


@app.cli.command()
def init_db():
    """Initialize the database with tables and default users"""
    from retail_pos.models import User

    logger.info("Initializing database...")
    db.create_all()

    defaults = [
        ('admin', 'Administrator', 'admin', 'admin123'),
        ('manager', 'Store Manager', 'manager', 'manager123'),
        ('employee', 'Cashier Employee', 'employee', 'employee123'),
    ]
    for username, full_name, role, password in defaults:
        if User.query.filter_by(username=username).first():
            continue
        user = User(username=username, full_name=full_name, role=role, is_active=True)
        user.set_password(password)
        db.session.add(user)
        logger.info(f"Default {role} user created (username: {username}, password: {password})")

    db.session.commit()
    logger.info("Database initialized successfully!")


@app.cli.command()
def create_sample_data():
    """Create sample catalog, cashier and promotions for testing"""
    from retail_pos.models import User, Category, Product, Customer, Cashier, Promotion

    logger.info("Creating sample data...")
    db.create_all()

    if Product.query.first():
        logger.info("Sample data already present, skipping")
        return

    drinks = Category(name='Drinks')
    snacks = Category(name='Snacks')
    db.session.add_all([drinks, snacks])
    db.session.flush()

    products = [
        Product(code='7890001', name='Cola 350ml', category_id=drinks.id,
                cost_price=Decimal('2.50'), sale_price=Decimal('5.00'), stock=100, minimum_stock=10),
        Product(code='7890002', name='Orange Juice 1L', category_id=drinks.id,
                cost_price=Decimal('4.00'), sale_price=Decimal('8.50'), stock=40, minimum_stock=5),
        Product(code='7890003', name='Potato Chips', category_id=snacks.id,
                cost_price=Decimal('3.00'), sale_price=Decimal('6.00'), stock=60, minimum_stock=10),
        Product(code='7890004', name='Chocolate Bar', category_id=snacks.id,
                cost_price=Decimal('1.50'), sale_price=Decimal('3.50'), stock=5, minimum_stock=10),
    ]
    db.session.add_all(products)
    db.session.add(Customer(name='Walk-in Customer', phone='0000000000'))
    db.session.flush()

    employee = User.query.filter_by(username='employee').first()
    admin = User.query.filter_by(username='admin').first()
    db.session.add(Cashier(name='Front Register', register_number='CX-01', location='Store front',
                           assigned_user_id=employee.id if employee else None))

    now = datetime.utcnow()
    db.session.add_all([
        Promotion(name='Snacks 10% off', promotion_type='discount_percentage',
                  category_id=snacks.id, discount_percent=Decimal('10'),
                  start_date=now, end_date=now + timedelta(days=30),
                  created_by=admin.id if admin else None),
        Promotion(name='Cola buy 2 get 1', promotion_type='buy_x_get_y',
                  product_id=products[0].id, buy_quantity=2, get_quantity=1,
                  start_date=now, end_date=now + timedelta(days=30),
                  created_by=admin.id if admin else None),
        Promotion(name='Snack combo', promotion_type='bundle',
                  bundle_products=[products[0].id, products[2].id], bundle_price=Decimal('9.00'),
                  start_date=now, end_date=now + timedelta(days=30),
                  created_by=admin.id if admin else None),
    ])
    db.session.commit()
    logger.info("Sample data created successfully!")


if __name__ == '__main__':
    is_dev = os.environ.get('FLASK_ENV', 'development') == 'development'

    with app.app_context():
        # Create tables if they don't exist
        db.create_all()
        logger.info("Database tables created")

    logger.info(f"Starting {app.config['BUSINESS_NAME']} POS System...")
    app.run(
        host='0.0.0.0',
        port=5001,
        debug=is_dev
    )
