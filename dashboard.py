from flask import Blueprint, jsonify
from flask_login import login_required, current_user
from sqlalchemy import func

from models import db, Task, utcnow

dashboard_bp = Blueprint('dashboard', __name__)


@dashboard_bp.route('/api/v1/tasks/stats')
@login_required
def task_stats():
    counts = dict(
        db.session.query(Task.status, func.count(Task.id))
        .filter(Task.user_id == current_user.id)
        .group_by(Task.status)
        .all()
    )
    overdue = Task.query.filter(
        Task.user_id == current_user.id,
        Task.status != 'completed',
        Task.due_date < utcnow(),
    ).count()

    stats = {
        "total": sum(counts.values()),
        "pending": counts.get('pending', 0),
        "in_progress": counts.get('in-progress', 0),
        "completed": counts.get('completed', 0),
        "overdue": overdue,
    }
    return jsonify(data=stats)
