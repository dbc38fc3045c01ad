# views/tasks.py

from flask import Blueprint, current_app, jsonify, request

import config
from database import get_db
from services.task_service import (
    DATE_RANGE_FIELDS,
    TASK_STATUSES,
    InvalidCursorError,
    TaskSearchFilters,
    create_task,
    decode_cursor,
    search_tasks,
    soft_delete_task,
    update_task,
)
from utils.time import parse_iso_naive_local
from views.common import (
    error_response,
    get_list_arg,
    internal_error,
    is_truthy,
    json_object_body,
    request_user,
)

tasks_bp = Blueprint('tasks', __name__)


def _get_take():
    raw = request.args.get('take')
    if raw is None or not raw.strip():
        return config.SEARCH_DEFAULT_TAKE
    try:
        take = int(raw)
    except ValueError:
        raise ValueError('take must be an integer') from None
    return max(1, min(take, config.SEARCH_MAX_TAKE))


def _parse_date_arg(name):
    raw = request.args.get(name)
    if raw is None or not raw.strip():
        return None
    parsed = parse_iso_naive_local(raw)
    if parsed is None:
        raise ValueError(f'{name} must be a valid ISO 8601 date or datetime')
    return parsed


def _parse_search_filters():
    statuses = list(dict.fromkeys(status.upper() for status in get_list_arg('status')))
    invalid = [status for status in statuses if status not in TASK_STATUSES]
    if invalid:
        raise ValueError(f"Unsupported status: {', '.join(invalid)}")

    date_ranges = {}
    for name in DATE_RANGE_FIELDS:
        start = _parse_date_arg(f'{name}_from')
        end = _parse_date_arg(f'{name}_to')
        if start is not None or end is not None:
            date_ranges[name] = (start, end)

    return TaskSearchFilters(
        search=request.args.get('q', ''),
        statuses=statuses,
        assignee_ids=get_list_arg('assignee_ids'),
        assigned_only=is_truthy(request.args.get('assigned_only')),
        customer_id=(request.args.get('customer_id') or '').strip() or None,
        date_ranges=date_ranges,
        sort_by=(request.args.get('sort_by') or 'created_at').strip(),
        sort_order=(request.args.get('sort_order') or 'desc').strip().lower(),
        offset=decode_cursor(request.args.get('cursor')),
        take=_get_take(),
    )


@tasks_bp.route('/api/tasks/search', methods=['GET'])
def search_task_list():
    """Search tasks by free text combined with structured filters."""
    try:
        filters = _parse_search_filters()
    except InvalidCursorError:
        return error_response(400, 'INVALID_CURSOR', 'cursor is malformed')
    except ValueError as exc:
        return error_response(400, 'INVALID_REQUEST', str(exc))

    user = request_user()
    try:
        result = search_tasks(get_db(), filters, user=user)
    except ValueError as exc:
        return error_response(400, 'INVALID_REQUEST', str(exc))
    except Exception:
        current_app.logger.exception("Unhandled error in search_task_list")
        return internal_error()

    current_app.logger.debug(
        "Task search completed user=%s results=%s", user.get('id'), len(result['tasks'])
    )
    return jsonify({'success': True, **result})


def _parse_scheduled_at(data):
    if 'scheduled_at' not in data or data['scheduled_at'] in (None, ''):
        return
    parsed = parse_iso_naive_local(str(data['scheduled_at']))
    if parsed is None:
        raise ValueError('scheduled_at must be a valid ISO 8601 datetime string')
    data['scheduled_at'] = parsed


@tasks_bp.route('/api/tasks', methods=['POST'])
def create_task_endpoint():
    try:
        data = json_object_body()
        _parse_scheduled_at(data)
        task = create_task(get_db(), data)
    except ValueError as exc:
        return error_response(400, 'INVALID_REQUEST', str(exc))
    except Exception:
        current_app.logger.exception("Unhandled error in create_task_endpoint")
        return internal_error()

    return jsonify({'success': True, 'task': task}), 201


@tasks_bp.route('/api/tasks/<int:task_id>', methods=['PATCH'])
def update_task_endpoint(task_id):
    try:
        data = json_object_body()
        _parse_scheduled_at(data)
        result = update_task(get_db(), task_id, data)
    except ValueError as exc:
        return error_response(400, 'INVALID_REQUEST', str(exc))
    except Exception:
        current_app.logger.exception("Unhandled error in update_task_endpoint")
        return internal_error()

    if result.get('error') == 'TASK_NOT_FOUND':
        return error_response(404, 'TASK_NOT_FOUND', 'Task not found')
    return jsonify({'success': True, 'task': result['task']})


@tasks_bp.route('/api/tasks/<int:task_id>', methods=['DELETE'])
def delete_task_endpoint(task_id):
    try:
        result = soft_delete_task(get_db(), task_id)
    except Exception:
        current_app.logger.exception("Unhandled error in delete_task_endpoint")
        return internal_error()

    if result.get('error') == 'TASK_NOT_FOUND':
        return error_response(404, 'TASK_NOT_FOUND', 'Task not found')
    return jsonify({'success': True, 'task_id': result['task_id']})
