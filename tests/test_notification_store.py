from datetime import timedelta

import pytest

from errors import ValidationError
from models import db, Notification, TaskAlert, utcnow
from notification_store import (
    create_notification,
    delete_old_notifications,
    get_due_notifications,
    get_user_notifications,
    last_alert,
    mark_all_as_read,
    mark_as_read,
    mark_as_sent,
    record_alert,
)


def _payload(user, task, **overrides):
    data = {
        'user_id': user.id,
        'task_id': task.id,
        'type': 'due_soon',
        'title': 'Task Due Soon',
        'message': 'Task "Write report" is due in 30 minutes!',
        'priority': 'high',
        'scheduled_for': utcnow(),
    }
    data.update(overrides)
    return data


def test_create_notification_defaults_to_unread_and_unsent(user, make_task) -> None:
    task = make_task()
    notification = create_notification(_payload(user, task))

    assert notification.id is not None
    assert notification.read is False
    assert notification.sent is False
    assert notification.task.id == task.id


@pytest.mark.parametrize('missing', ['user_id', 'task_id', 'title', 'message', 'scheduled_for'])
def test_create_notification_requires_fields(user, make_task, missing) -> None:
    data = _payload(user, make_task())
    del data[missing]

    with pytest.raises(ValidationError) as exc:
        create_notification(data)

    assert missing in exc.value.errors
    assert Notification.query.count() == 0


def test_create_notification_rejects_unknown_type(user, make_task) -> None:
    with pytest.raises(ValidationError) as exc:
        create_notification(_payload(user, make_task(), type='info'))
    assert 'type' in exc.value.errors


def test_create_keeps_ten_most_recent_per_user(user, make_user, make_task) -> None:
    task = make_task()
    other = make_user(name='Linus')
    other_task = make_task(user_id=other.id)
    create_notification(_payload(other, other_task))

    base = utcnow() - timedelta(hours=1)
    for i in range(11):
        create_notification(_payload(user, task, created_at=base + timedelta(minutes=i)))

    remaining = Notification.query.filter_by(user_id=user.id).order_by(Notification.created_at).all()
    assert len(remaining) == 10
    assert remaining[0].created_at == base + timedelta(minutes=1)
    assert remaining[-1].created_at == base + timedelta(minutes=10)
    assert Notification.query.filter_by(user_id=other.id).count() == 1


def test_create_retention_can_be_disabled(ctx, user, make_task) -> None:
    ctx.config['NOTIFICATION_KEEP_PER_USER'] = 0
    task = make_task()
    for _ in range(12):
        create_notification(_payload(user, task))
    assert Notification.query.filter_by(user_id=user.id).count() == 12


def test_user_notifications_newest_first_with_task_summary(user, make_notification) -> None:
    now = utcnow()
    for minutes in (5, 30, 1, 20):
        make_notification(created_at=now - timedelta(minutes=minutes))

    notifications = get_user_notifications(user.id)
    stamps = [n.created_at for n in notifications]

    assert stamps == sorted(stamps, reverse=True)
    payload = notifications[0].to_dict()
    assert payload['task']['title'] == 'Write report'
    assert set(payload['task']) == {'id', 'title', 'due_date', 'status'}


def test_user_notifications_respects_limit(user, make_notification) -> None:
    for _ in range(5):
        make_notification()
    assert len(get_user_notifications(user.id, limit=3)) == 3


def test_mark_as_read_only_for_owner(user, make_user, make_notification) -> None:
    notification = make_notification()
    stranger = make_user(name='Mallory')

    assert mark_as_read(notification.id, stranger.id) is None
    assert db.session.get(Notification, notification.id).read is False

    updated = mark_as_read(notification.id, user.id)
    assert updated.read is True


def test_mark_as_read_missing_notification(user) -> None:
    assert mark_as_read(9999, user.id) is None


def test_mark_all_as_read_is_idempotent(user, make_user, make_notification) -> None:
    for _ in range(3):
        make_notification()
    other = make_user(name='Linus')
    foreign = make_notification(user_id=other.id)

    assert mark_all_as_read(user.id) == 3
    first = sorted((n.id, n.read) for n in Notification.query.filter_by(user_id=user.id))
    assert mark_all_as_read(user.id) == 0
    second = sorted((n.id, n.read) for n in Notification.query.filter_by(user_id=user.id))

    assert first == second
    assert all(read for _, read in second)
    assert db.session.get(Notification, foreign.id).read is False


def test_due_notifications_are_scheduled_and_unsent(make_notification) -> None:
    now = utcnow()
    due = make_notification(scheduled_for=now - timedelta(minutes=1))
    make_notification(scheduled_for=now + timedelta(hours=1))
    make_notification(scheduled_for=now - timedelta(minutes=5), sent=True)

    result = get_due_notifications(now)

    assert [n.id for n in result] == [due.id]
    assert result[0].user.email
    assert result[0].task.title == 'Write report'


def test_mark_as_sent(make_notification) -> None:
    notification = make_notification()
    assert mark_as_sent(notification.id).sent is True
    assert mark_as_sent(12345) is None


def test_delete_old_notifications(make_notification) -> None:
    now = utcnow()
    make_notification(created_at=now - timedelta(days=31))
    make_notification(created_at=now - timedelta(days=45))
    recent = make_notification(created_at=now - timedelta(days=2))

    assert delete_old_notifications(now - timedelta(days=30)) == 2
    assert [n.id for n in Notification.query.all()] == [recent.id]


def test_record_alert_updates_one_row_per_task_and_type(user, make_task) -> None:
    task = make_task()
    first = utcnow() - timedelta(hours=3)

    record_alert(task.id, 'due_soon', 'normal', first)
    create_notification(_payload(user, task, priority='normal'))
    record_alert(task.id, 'due_soon', 'high', first + timedelta(hours=2))
    create_notification(_payload(user, task))

    alert = last_alert(task.id, 'due_soon')
    assert (alert.priority, alert.notified_at) == ('high', first + timedelta(hours=2))
    assert TaskAlert.query.count() == 1
    assert last_alert(task.id, 'overdue') is None
