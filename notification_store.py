"""
Notification repository.

Thin functions over the Notification table. Each one commits its own work;
callers never have to touch the session to persist a notification change.
"""

import logging

from flask import current_app
from sqlalchemy.orm import joinedload

from models import db, Notification, TaskAlert, require_fields, utcnow

logger = logging.getLogger(__name__)

NOTIFICATION_FIELDS = (
    'user_id', 'task_id', 'type', 'title', 'message', 'priority',
    'read', 'scheduled_for', 'sent', 'created_at',
)


def create_notification(data):
    """
    Insert a notification and apply the per-user retention cap in the same
    commit. Raises ValidationError when a required field is missing.
    """
    require_fields(data, ('user_id', 'task_id', 'title', 'message', 'scheduled_for'))

    fields = {k: v for k, v in data.items() if k in NOTIFICATION_FIELDS}
    fields.setdefault('read', False)
    fields.setdefault('sent', False)

    notification = Notification(**fields)
    db.session.add(notification)
    db.session.flush()

    keep = current_app.config.get('NOTIFICATION_KEEP_PER_USER', 10)
    if keep:
        _trim_user_notifications(notification.user_id, keep)

    db.session.commit()
    logger.debug("Notification %s created for user %s (task %s, %s)",
                 notification.id, notification.user_id, notification.task_id, notification.type)
    return notification


def _trim_user_notifications(user_id, keep):
    stale_ids = [row.id for row in (
        db.session.query(Notification.id)
        .filter(Notification.user_id == user_id)
        .order_by(Notification.created_at.desc(), Notification.id.desc())
        .offset(keep)
        .all()
    )]
    if stale_ids:
        Notification.query.filter(Notification.id.in_(stale_ids)).delete(synchronize_session=False)
        logger.debug("Trimmed %d old notifications for user %s", len(stale_ids), user_id)


def get_user_notifications(user_id, limit=50):
    return (
        Notification.query
        .options(joinedload(Notification.task))
        .filter_by(user_id=user_id)
        .order_by(Notification.created_at.desc(), Notification.id.desc())
        .limit(limit)
        .all()
    )


def mark_as_read(notification_id, user_id):
    """Returns None when the notification does not exist or is not owned by user_id."""
    notification = Notification.query.filter_by(id=notification_id, user_id=user_id).first()
    if notification is None:
        return None
    notification.read = True
    db.session.commit()
    return notification


def mark_all_as_read(user_id):
    updated = (
        Notification.query
        .filter_by(user_id=user_id, read=False)
        .update({'read': True}, synchronize_session=False)
    )
    db.session.commit()
    return updated


def get_due_notifications(now=None):
    now = now or utcnow()
    return (
        Notification.query
        .options(joinedload(Notification.user), joinedload(Notification.task))
        .filter(Notification.scheduled_for <= now, Notification.sent.is_(False))
        .order_by(Notification.scheduled_for)
        .all()
    )


def mark_as_sent(notification_id):
    notification = db.session.get(Notification, notification_id)
    if notification is None:
        return None
    notification.sent = True
    db.session.commit()
    return notification


def delete_old_notifications(cutoff):
    deleted = (
        Notification.query
        .filter(Notification.created_at < cutoff)
        .delete(synchronize_session=False)
    )
    db.session.commit()
    return deleted


def last_alert(task_id, notification_type):
    return TaskAlert.query.filter_by(task_id=task_id, type=notification_type).first()


def record_alert(task_id, notification_type, priority, when):
    """
    Remember the latest due-date alert for a task. Not committed here; the
    caller's create_notification commits it with the notification.
    """
    alert = last_alert(task_id, notification_type)
    if alert is None:
        alert = TaskAlert(task_id=task_id, type=notification_type)
        db.session.add(alert)
    alert.priority = priority
    alert.notified_at = when
    return alert
