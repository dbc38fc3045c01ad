# views/users.py

from flask import Blueprint, current_app, jsonify, request

from database import get_db
from services.user_picker_service import search_users
from views.common import error_response, internal_error

users_bp = Blueprint('users', __name__)


@users_bp.route('/api/users/search', methods=['GET'])
def search_user_list():
    """Fuzzy, accent-insensitive search for the assignee picker."""
    query = request.args.get('q', '')
    threshold = None
    raw_threshold = request.args.get('threshold')
    if raw_threshold:
        try:
            threshold = float(raw_threshold)
        except ValueError:
            return error_response(400, 'INVALID_REQUEST', 'threshold must be a number')
        if not 0.0 <= threshold <= 1.0:
            return error_response(400, 'INVALID_REQUEST', 'threshold must be between 0 and 1')

    try:
        users = search_users(get_db(), query, threshold=threshold)
    except Exception:
        current_app.logger.exception("Unhandled error in search_user_list")
        return internal_error()
    return jsonify({'success': True, 'users': users})
