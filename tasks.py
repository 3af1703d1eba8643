import logging
from datetime import datetime, timezone

from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required
from sqlalchemy import or_

from errors import ValidationError
from models import db, Task, require_fields, utcnow
from notification_store import create_notification

logger = logging.getLogger(__name__)

tasks_bp = Blueprint('tasks', __name__, url_prefix='/api/v1/tasks')

EDITABLE_FIELDS = ('title', 'description', 'due_date', 'status', 'priority')


def parse_datetime(value, field='due_date'):
    """Parse an ISO 8601 string into naive UTC. None and '' mean no date."""
    if value in (None, ''):
        return None
    if not isinstance(value, str):
        raise ValidationError({field: 'Invalid date format, expected ISO 8601'})
    try:
        parsed = datetime.fromisoformat(value.replace('Z', '+00:00'))
    except ValueError:
        raise ValidationError({field: 'Invalid date format, expected ISO 8601'})
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def escape_like(term):
    return term.replace('\\', '\\\\').replace('%', '\\%').replace('_', '\\_')


def _task_fields(data):
    fields = {k: data[k] for k in EDITABLE_FIELDS if k in data}
    if 'due_date' in fields:
        fields['due_date'] = parse_datetime(fields['due_date'])
    return fields


def _owned_tasks():
    return Task.query.filter_by(user_id=current_user.id)


def _get_owned_task(task_id):
    return _owned_tasks().filter_by(id=task_id).first_or_404(description='Task not found')


def _notify_change(task, old_status, old_due_date):
    now = utcnow()
    if task.status == 'completed' and old_status != 'completed':
        notification = {
            'type': 'completed',
            'title': 'Task Completed',
            'message': f'Task "{task.title}" was marked as completed',
        }
    elif task.due_date != old_due_date and task.status != 'completed':
        when = task.due_date.strftime('%Y-%m-%d %H:%M') if task.due_date else 'no due date'
        notification = {
            'type': 'updated',
            'title': 'Task Updated',
            'message': f'Task "{task.title}" is now due {when}',
        }
    else:
        return
    notification.update(user_id=task.user_id, task_id=task.id, priority='low', scheduled_for=now)
    create_notification(notification)


# Routes - Task Management
@tasks_bp.route('', methods=['GET'])
@login_required
def list_tasks():
    query = _owned_tasks()

    status = request.args.get('status')
    priority = request.args.get('priority')
    due_from = parse_datetime(request.args.get('due_from'), 'due_from')
    due_to = parse_datetime(request.args.get('due_to'), 'due_to')

    if status:
        query = query.filter_by(status=status)
    if priority:
        query = query.filter_by(priority=priority)
    if due_from:
        query = query.filter(Task.due_date >= due_from)
    if due_to:
        query = query.filter(Task.due_date <= due_to)

    tasks = query.order_by(Task.created_at.desc(), Task.id.desc()).all()
    return jsonify(data=[t.to_dict() for t in tasks])


@tasks_bp.route('', methods=['POST'])
@login_required
def create_task():
    data = request.get_json(silent=True) or {}
    require_fields(data, ('title',))

    task = Task(user_id=current_user.id, **_task_fields(data))
    db.session.add(task)
    db.session.commit()
    logger.info("Task %s created by user %s", task.id, current_user.id)
    return jsonify(data=task.to_dict()), 201


@tasks_bp.route('/search', methods=['GET'])
@login_required
def search_tasks():
    q = (request.args.get('q') or '').strip()
    query = _owned_tasks()
    if q:
        pattern = f"%{escape_like(q)}%"
        query = query.filter(or_(
            Task.title.ilike(pattern, escape='\\'),
            Task.description.ilike(pattern, escape='\\'),
        ))

    tasks = query.order_by(Task.created_at.desc(), Task.id.desc()).all()
    if not q:
        message = 'All tasks retrieved'
    elif tasks:
        message = 'Search successful'
    else:
        message = 'No tasks found matching your search'
    return jsonify(
        data=[t.to_dict() for t in tasks],
        meta={'query': q, 'total_results': len(tasks)},
        message=message,
    )


@tasks_bp.route('/status/<status>', methods=['GET'])
@login_required
def tasks_by_status(status):
    tasks = _owned_tasks().filter_by(status=status).order_by(Task.created_at.desc(), Task.id.desc()).all()
    return jsonify(data=[t.to_dict() for t in tasks])


@tasks_bp.route('/priority/<priority>', methods=['GET'])
@login_required
def tasks_by_priority(priority):
    tasks = _owned_tasks().filter_by(priority=priority).order_by(Task.created_at.desc(), Task.id.desc()).all()
    return jsonify(data=[t.to_dict() for t in tasks])


@tasks_bp.route('/<int:task_id>', methods=['GET'])
@login_required
def get_task(task_id):
    return jsonify(data=_get_owned_task(task_id).to_dict())


@tasks_bp.route('/<int:task_id>', methods=['PUT'])
@login_required
def update_task(task_id):
    task = _get_owned_task(task_id)
    data = request.get_json(silent=True) or {}
    old_status, old_due_date = task.status, task.due_date

    for key, value in _task_fields(data).items():
        setattr(task, key, value)
    db.session.commit()

    _notify_change(task, old_status, old_due_date)
    return jsonify(data=task.to_dict())


@tasks_bp.route('/<int:task_id>', methods=['DELETE'])
@login_required
def delete_task(task_id):
    task = _get_owned_task(task_id)
    db.session.delete(task)
    db.session.commit()
    logger.info("Task %s deleted by user %s", task_id, current_user.id)
    return jsonify(message='Task deleted successfully')
