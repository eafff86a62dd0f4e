"""
Admin and reporting web surface
"""

import dataclasses
from datetime import datetime
from decimal import Decimal

from flask import Flask, jsonify, request, session

from storefront.core.config import config
from storefront.core.exceptions import (
    StorefrontException, IntegrityViolation, InventoryError, NotFoundError,
    OrderStateError, PaymentError, TransientDatabaseError, ValidationError
)
from storefront.core.logger import logger
from storefront.database.manager import DatabaseManager
from storefront.services.analytics_service import AnalyticsService
from storefront.services.catalog_service import CatalogService
from storefront.services.order_service import OrderService
from storefront.services.user_service import UserService

# Most specific first
ERROR_STATUS = [
    (NotFoundError, 404),
    (OrderStateError, 409),
    (ValidationError, 400),
    (PaymentError, 400),
    (InventoryError, 409),
    (IntegrityViolation, 409),
    (TransientDatabaseError, 503),
]


def to_json(value):
    """Plain JSON structure for models, decimals and timestamps"""
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {f.name: to_json(getattr(value, f.name)) for f in dataclasses.fields(value)}
    if isinstance(value, dict):
        return {key: to_json(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_json(item) for item in value]
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    return value


def create_app(db=None) -> Flask:
    app = Flask(__name__)
    app.secret_key = config.security.secret_key

    db = db or DatabaseManager()
    catalog = CatalogService(db)
    orders = OrderService(db)
    analytics = AnalyticsService(db)
    users = UserService(db)

    def login_required(f):
        def decorated_function(*args, **kwargs):
            if not session.get('logged_in'):
                return jsonify({'error': 'Unauthorized'}), 401
            return f(*args, **kwargs)
        decorated_function.__name__ = f.__name__
        return decorated_function

    @app.errorhandler(StorefrontException)
    def handle_store_error(error):
        status = next((code for kind, code in ERROR_STATUS if isinstance(error, kind)), 500)
        if status == 500:
            logger.error(f"Unhandled store error: {error}", exc_info=True)
        response = jsonify({'error': type(error).__name__, 'message': str(error)})
        response.status_code = status
        if status == 503:
            response.headers['Retry-After'] = '1'
        return response

    @app.route('/login', methods=['POST'])
    def login():
        payload = request.get_json(silent=True) or request.form
        email = payload.get('email') or ''
        user = users.authenticate(email, payload.get('password') or '')
        if user is None or user.role != 'admin':
            logger.warning(f"Rejected admin login for {email!r}")
            return jsonify({'error': 'Invalid credentials'}), 401
        session['logged_in'] = True
        session['user_id'] = user.user_id
        logger.info(f"Admin {user.email} logged in")
        return jsonify({'ok': True})

    @app.route('/logout')
    def logout():
        session.clear()
        return jsonify({'ok': True})

    @app.route('/health')
    def health():
        objects = db.schema_objects()
        return jsonify({'status': 'ok', 'tables': len(objects.get('table', [])),
                        'views': objects.get('view', [])})

    @app.route('/api/reports/user-order-totals')
    @login_required
    def user_order_totals():
        return jsonify(to_json(analytics.user_order_totals()))

    @app.route('/api/users/<int:user_id>/order-totals')
    @login_required
    def user_totals(user_id):
        return jsonify(to_json(analytics.user_totals(user_id)))

    @app.route('/api/reports/order-status')
    @login_required
    def order_status_report():
        return jsonify(to_json(analytics.order_status_breakdown()))

    @app.route('/api/reports/dashboard')
    @login_required
    def dashboard():
        return jsonify(to_json(analytics.dashboard_stats(request.args.get('since'))))

    @app.route('/api/categories/tree')
    @login_required
    def category_tree():
        return jsonify(to_json(catalog.category_tree()))

    @app.route('/api/orders/<order_number>')
    @login_required
    def order_detail(order_number):
        return jsonify(to_json(orders.get_order_by_number(order_number)))

    @app.route('/api/orders/<int:order_id>/status', methods=['POST'])
    @login_required
    def change_order_status(order_id):
        payload = request.get_json(silent=True) or {}
        if 'status' not in payload:
            raise ValidationError("status is required")
        order = orders.change_status(order_id, payload['status'])
        return jsonify(to_json(order))

    @app.route('/api/products/<int:product_id>', methods=['DELETE'])
    @login_required
    def delete_product(product_id):
        catalog.delete_product(product_id)
        return '', 204

    @app.route('/api/maintenance/expire-orders', methods=['POST'])
    @login_required
    def expire_orders():
        payload = request.get_json(silent=True) or {}
        max_age = payload.get('max_age_minutes')
        if max_age is not None and (not isinstance(max_age, int) or isinstance(max_age, bool)
                                    or max_age < 0):
            raise ValidationError("max_age_minutes must be a non-negative integer")
        expired = orders.expire_stale_orders(max_age)
        return jsonify({'expired': expired})

    return app
