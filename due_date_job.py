"""
Background jobs for task due dates.

scan_due_tasks decides which tasks are owed a notification right now,
deliver_due_notifications emails the ones that have not gone out yet and
purge_old_notifications enforces the age-based retention.
"""

import logging
from dataclasses import dataclass
from datetime import timedelta

from flask import current_app

from mailer import email_configured, send_email
from models import db, Task, utcnow
from notification_store import (
    create_notification,
    delete_old_notifications,
    get_due_notifications,
    last_alert,
    mark_as_sent,
    record_alert,
)

logger = logging.getLogger(__name__)

PRIORITY_RANK = {'low': 0, 'normal': 1, 'high': 2}


@dataclass(frozen=True)
class DueAlert:
    type: str
    title: str
    message: str
    priority: str


def _humanize(delta):
    minutes = max(1, int(delta.total_seconds() // 60))
    if minutes < 60:
        return f"{minutes} minute{'s' if minutes != 1 else ''}"
    hours = round(minutes / 60)
    return f"{hours} hour{'s' if hours != 1 else ''}"


def classify(task, now, soon_window, horizon):
    """
    Urgency of a task at ``now``. Only the most urgent tier applies, so a
    task inside the short window never also gets the long-window alert.
    """
    if task.status == 'completed' or task.due_date is None:
        return None

    due = task.due_date
    if due < now:
        return DueAlert('overdue', 'Task Overdue',
                        f'Task "{task.title}" is overdue by {_humanize(now - due)}', 'high')
    if due <= now + soon_window:
        return DueAlert('due_soon', 'Task Due Soon',
                        f'Task "{task.title}" is due in {_humanize(due - now)}!', 'high')
    if due <= now + horizon:
        return DueAlert('due_soon', 'Task Due Within a Day',
                        f'Task "{task.title}" is due in {_humanize(due - now)}', 'normal')
    return None


def _is_duplicate(task, alert, now, debounce):
    previous = last_alert(task.id, alert.type)
    if previous is None or previous.notified_at < now - debounce:
        return False
    # a more urgent alert of the same type escalates through the debounce
    return PRIORITY_RANK[alert.priority] <= PRIORITY_RANK[previous.priority]


def scan_due_tasks(now=None):
    """
    Create due_soon/overdue notifications for active tasks. Failures on one
    task are logged and skipped; the scan itself never raises.
    """
    now = now or utcnow()
    config = current_app.config
    soon_window = timedelta(minutes=config['DUE_SOON_MINUTES'])
    horizon = timedelta(hours=config['DUE_HORIZON_HOURS'])
    debounce = timedelta(minutes=config['NOTIFICATION_DEBOUNCE_MINUTES'])

    try:
        tasks = (
            Task.query
            .filter(Task.due_date.isnot(None),
                    Task.due_date <= now + horizon,
                    Task.status != 'completed')
            .order_by(Task.due_date)
            .all()
        )
    except Exception:
        logger.exception("Due date scan could not load tasks")
        db.session.rollback()
        return []

    created = []
    for task in tasks:
        task_id = task.id
        try:
            alert = classify(task, now, soon_window, horizon)
            if alert is None or _is_duplicate(task, alert, now, debounce):
                continue
            record_alert(task.id, alert.type, alert.priority, now)
            notification = create_notification({
                'user_id': task.user_id,
                'task_id': task.id,
                'type': alert.type,
                'title': alert.title,
                'message': alert.message,
                'priority': alert.priority,
                'scheduled_for': now,
                'created_at': now,
            })
            created.append(notification)
        except Exception:
            logger.exception("Due date scan failed for task %s", task_id)
            db.session.rollback()

    logger.info("Due date scan checked %d tasks, created %d notifications", len(tasks), len(created))
    return created


def deliver_due_notifications(now=None):
    """Email each due, unsent notification to its owner and mark it sent."""
    now = now or utcnow()
    if not email_configured():
        logger.debug("Email not configured; skipping notification delivery")
        return 0

    try:
        pending = get_due_notifications(now)
    except Exception:
        logger.exception("Could not load due notifications")
        db.session.rollback()
        return 0

    delivered = 0
    for notification in pending:
        notification_id = notification.id
        try:
            send_email(notification.user.email, notification.title, notification.message)
            mark_as_sent(notification_id)
            delivered += 1
        except Exception:
            # left unsent, picked up again on the next run
            logger.exception("Delivery failed for notification %s", notification_id)
            db.session.rollback()

    if pending:
        logger.info("Delivered %d of %d due notifications", delivered, len(pending))
    return delivered


def purge_old_notifications(now=None):
    now = now or utcnow()
    cutoff = now - timedelta(days=current_app.config['NOTIFICATION_RETENTION_DAYS'])
    try:
        deleted = delete_old_notifications(cutoff)
    except Exception:
        logger.exception("Notification retention sweep failed")
        db.session.rollback()
        return 0
    logger.info("Deleted %d notifications created before %s", deleted, cutoff.isoformat())
    return deleted
