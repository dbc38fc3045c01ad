# views/common.py

from flask import jsonify, request

TRUTHY_VALUES = {"1", "true", "yes", "y", "on"}


def error_response(status_code: int, code: str, message: str):
    return jsonify({'success': False, 'error': {'code': code, 'message': message}}), status_code


def internal_error():
    return error_response(500, 'INTERNAL', 'Internal Server Error')


def is_truthy(value):
    if value is None:
        return False
    return str(value).strip().lower() in TRUTHY_VALUES


def get_list_arg(name):
    """Read a query arg given either repeatedly or comma-separated."""
    values = []
    for raw in request.args.getlist(name):
        for item in raw.split(','):
            item = item.strip()
            if item and item not in values:
                values.append(item)
    return values


def request_user():
    """Caller identity as forwarded by the gateway in front of this API."""
    return {
        'id': (request.headers.get('X-User-Id') or '').strip() or None,
        'role': (request.headers.get('X-User-Role') or 'worker').strip().lower(),
    }


def json_object_body():
    """Request JSON as a dict. A missing body is ``{}``; any other JSON type is rejected."""
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError('request body must be a JSON object')
    return data
