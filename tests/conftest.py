from __future__ import annotations

from datetime import timedelta

import pytest

from app import create_app
from models import db, Notification, Task, User, utcnow


@pytest.fixture()
def app(tmp_path):
    """
    Application bound to a throwaway SQLite file with the scheduler and
    email transport switched off.

    No app context is left pushed: Flask-Login caches the current user on
    ``g``, so request tests must let each request own its context.
    """
    app = create_app({
        'TESTING': True,
        'SECRET_KEY': 'test-secret',
        'SQLALCHEMY_DATABASE_URI': f"sqlite:///{tmp_path / 'test.db'}",
        'SCHEDULER_ENABLED': False,
        'EMAIL_HOST': None,
        'FRONTEND_URL': 'http://frontend.test',
        'DUE_SOON_MINUTES': 60,
        'DUE_HORIZON_HOURS': 24,
        'NOTIFICATION_DEBOUNCE_MINUTES': 24 * 60,
        'NOTIFICATION_KEEP_PER_USER': 10,
        'NOTIFICATION_RETENTION_DAYS': 30,
    })
    with app.app_context():
        db.create_all()
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def ctx(app):
    """Pushed app context for repository and job tests that make no requests."""
    with app.app_context():
        yield app
        db.session.remove()


@pytest.fixture()
def make_user(ctx):
    counter = {'n': 0}

    def _make(name='Ada', email=None, password='secret123'):
        counter['n'] += 1
        user = User(name=name, email=email or f"user{counter['n']}@example.com")
        user.set_password(password)
        db.session.add(user)
        db.session.commit()
        return user

    return _make


@pytest.fixture()
def user(make_user):
    return make_user()


@pytest.fixture()
def make_task(ctx, user):
    def _make(**fields):
        fields.setdefault('title', 'Write report')
        fields.setdefault('user_id', user.id)
        task = Task(**fields)
        db.session.add(task)
        db.session.commit()
        return task

    return _make


@pytest.fixture()
def make_notification(ctx, user, make_task):
    task_holder = {}

    def _make(**fields):
        if 'task_id' not in fields:
            if 'task' not in task_holder:
                task_holder['task'] = make_task(due_date=utcnow() + timedelta(days=3))
            fields['task_id'] = task_holder['task'].id
        fields.setdefault('user_id', user.id)
        fields.setdefault('type', 'due_soon')
        fields.setdefault('title', 'Task Due Soon')
        fields.setdefault('message', 'Task "Write report" is due soon')
        fields.setdefault('scheduled_for', utcnow())
        notification = Notification(**fields)
        db.session.add(notification)
        db.session.commit()
        return notification

    return _make


@pytest.fixture()
def register(client):
    """Register through the API; returns (user_id, auth headers)."""
    counter = {'n': 0}

    def _register(name='Grace', email=None, password='secret123'):
        counter['n'] += 1
        resp = client.post('/api/v1/auth/register', json={
            'name': name,
            'email': email or f"api{counter['n']}@example.com",
            'password': password,
        })
        assert resp.status_code == 201, resp.get_json()
        body = resp.get_json()
        return body['data']['id'], {'Authorization': f"Bearer {body['token']}"}

    return _register
