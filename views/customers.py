# views/customers.py

from flask import Blueprint, current_app, jsonify, request

import config
from database import get_db
from services.customer_service import search_customers, update_customer
from views.common import error_response, internal_error, json_object_body

customers_bp = Blueprint('customers', __name__)


@customers_bp.route('/api/customers/search', methods=['GET'])
def search_customer_list():
    query = request.args.get('q', '')
    try:
        customers = search_customers(get_db(), query, limit=config.SEARCH_MAX_RESULTS)
    except Exception:
        current_app.logger.exception("Unhandled error in search_customer_list")
        return internal_error()
    return jsonify({'success': True, 'customers': customers})


@customers_bp.route('/api/customers/<customer_id>', methods=['PATCH'])
def update_customer_endpoint(customer_id):
    try:
        data = json_object_body()
    except ValueError as exc:
        return error_response(400, 'INVALID_REQUEST', str(exc))
    if not data:
        return error_response(400, 'INVALID_REQUEST', 'name or phone is required')

    try:
        result = update_customer(get_db(), customer_id=customer_id, changes=data)
    except ValueError as exc:
        return error_response(400, 'INVALID_REQUEST', str(exc))
    except Exception:
        current_app.logger.exception("Unhandled error in update_customer_endpoint")
        return internal_error()

    if result.get('error') == 'CUSTOMER_NOT_FOUND':
        return error_response(404, 'CUSTOMER_NOT_FOUND', 'Customer not found')
    return jsonify({'success': True, **result})
