# views/locations.py

from flask import Blueprint, current_app, jsonify, request

import config
from database import get_db
from services.location_service import search_locations, update_location
from views.common import error_response, internal_error, json_object_body

locations_bp = Blueprint('locations', __name__)


@locations_bp.route('/api/locations/search', methods=['GET'])
def search_location_list():
    query = request.args.get('q', '')
    try:
        locations = search_locations(get_db(), query, limit=config.SEARCH_MAX_RESULTS)
    except Exception:
        current_app.logger.exception("Unhandled error in search_location_list")
        return internal_error()
    return jsonify({'success': True, 'locations': locations})


@locations_bp.route('/api/locations/<location_id>', methods=['PATCH'])
def update_location_endpoint(location_id):
    try:
        data = json_object_body()
    except ValueError as exc:
        return error_response(400, 'INVALID_REQUEST', str(exc))
    if not data:
        return error_response(400, 'INVALID_REQUEST', 'name or address is required')

    try:
        result = update_location(get_db(), location_id=location_id, changes=data)
    except ValueError as exc:
        return error_response(400, 'INVALID_REQUEST', str(exc))
    except Exception:
        current_app.logger.exception("Unhandled error in update_location_endpoint")
        return internal_error()

    if result.get('error') == 'LOCATION_NOT_FOUND':
        return error_response(404, 'LOCATION_NOT_FOUND', 'Location not found')
    return jsonify({'success': True, **result})
