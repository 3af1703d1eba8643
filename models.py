import hashlib
import re
import secrets
from datetime import datetime, timedelta, timezone

from flask_login import UserMixin
from flask_sqlalchemy import SQLAlchemy
from sqlalchemy.orm import validates
from werkzeug.security import generate_password_hash, check_password_hash

from errors import ValidationError

db = SQLAlchemy()

EMAIL_RE = re.compile(r'^[^\s@]+@[^\s@]+\.[^\s@]{2,}$')

TASK_STATUSES = ('pending', 'in-progress', 'completed')
TASK_PRIORITIES = ('low', 'medium', 'high')
NOTIFICATION_TYPES = ('due_soon', 'overdue', 'completed', 'updated')
NOTIFICATION_PRIORITIES = ('low', 'normal', 'high')


def utcnow():
    """Naive UTC timestamp; every stored datetime uses this convention."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def isoformat(value):
    return value.isoformat() if value else None


def hash_token(raw_token):
    return hashlib.sha256(raw_token.encode('utf-8')).hexdigest()


def require_fields(data, fields):
    missing = {f: f"Please add a {f.replace('_', ' ')}" for f in fields
               if data.get(f) is None or (isinstance(data.get(f), str) and not data.get(f).strip())}
    if missing:
        raise ValidationError(missing)


def clean_text(field, value, message):
    """Strip a required string value; anything else is a field error."""
    if not isinstance(value, str) or not value.strip():
        raise ValidationError({field: message})
    return value.strip()


def normalize_email(value):
    if not isinstance(value, str):
        raise ValidationError({'email': 'Please add a valid email'})
    return value.strip().lower()


class User(db.Model, UserMixin):
    __tablename__ = 'users'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    email = db.Column(db.String(150), unique=True, nullable=False, index=True)
    password = db.Column(db.String(256), nullable=False)
    is_admin = db.Column(db.Boolean, default=False, nullable=False)
    reset_password_token = db.Column(db.String(64), index=True)
    reset_password_expire = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    tasks = db.relationship('Task', backref='owner', lazy=True, cascade='all, delete-orphan')
    notifications = db.relationship('Notification', backref='user', lazy=True, cascade='all, delete-orphan')

    @validates('name')
    def validate_name(self, key, value):
        return clean_text('name', value, 'Please add a name')

    @validates('email')
    def validate_email(self, key, value):
        value = normalize_email(value)
        if not EMAIL_RE.match(value):
            raise ValidationError({'email': 'Please add a valid email'})
        return value

    def set_password(self, raw_password):
        if not isinstance(raw_password, str) or len(raw_password) < 6:
            raise ValidationError({'password': 'Password must be at least 6 characters'})
        self.password = generate_password_hash(raw_password, method='pbkdf2:sha256')

    def check_password(self, raw_password):
        if not isinstance(raw_password, str):
            return False
        return check_password_hash(self.password, raw_password)

    def get_reset_password_token(self, ttl_minutes=10):
        """Issue a reset token; only its hash is stored on the user."""
        raw_token = secrets.token_hex(20)
        self.reset_password_token = hash_token(raw_token)
        self.reset_password_expire = utcnow() + timedelta(minutes=ttl_minutes)
        return raw_token

    def clear_reset_token(self):
        self.reset_password_token = None
        self.reset_password_expire = None

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'email': self.email,
            'is_admin': self.is_admin,
        }


class Task(db.Model):
    __tablename__ = 'tasks'

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, default='')
    due_date = db.Column(db.DateTime, index=True)
    status = db.Column(db.String(20), default='pending', nullable=False, index=True)
    priority = db.Column(db.String(20), default='medium', nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    notifications = db.relationship('Notification', backref='task', lazy=True, cascade='all, delete-orphan')
    alerts = db.relationship('TaskAlert', backref='task', lazy=True, cascade='all, delete-orphan')

    @validates('title')
    def validate_title(self, key, value):
        value = clean_text('title', value, 'Please add a title')
        if len(value) > 200:
            raise ValidationError({'title': 'Title can not be more than 200 characters'})
        return value

    @validates('description')
    def validate_description(self, key, value):
        if value is None:
            return ''
        if not isinstance(value, str):
            raise ValidationError({'description': 'Description must be text'})
        return value

    @validates('status')
    def validate_status(self, key, value):
        if value not in TASK_STATUSES:
            raise ValidationError({'status': f"Status must be one of: {', '.join(TASK_STATUSES)}"})
        return value

    @validates('priority')
    def validate_priority(self, key, value):
        if value not in TASK_PRIORITIES:
            raise ValidationError({'priority': f"Priority must be one of: {', '.join(TASK_PRIORITIES)}"})
        return value

    def summary(self):
        return {
            'id': self.id,
            'title': self.title,
            'due_date': isoformat(self.due_date),
            'status': self.status,
        }

    def to_dict(self):
        return {
            'id': self.id,
            'title': self.title,
            'description': self.description,
            'due_date': isoformat(self.due_date),
            'status': self.status,
            'priority': self.priority,
            'user_id': self.user_id,
            'created_at': isoformat(self.created_at),
            'updated_at': isoformat(self.updated_at),
        }


class Notification(db.Model):
    __tablename__ = 'notifications'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    task_id = db.Column(db.Integer, db.ForeignKey('tasks.id'), nullable=False, index=True)
    type = db.Column(db.String(20), default='due_soon', nullable=False)
    title = db.Column(db.String(200), nullable=False)
    message = db.Column(db.Text, nullable=False)
    priority = db.Column(db.String(10), default='normal', nullable=False)
    read = db.Column(db.Boolean, default=False, nullable=False)
    scheduled_for = db.Column(db.DateTime, nullable=False, index=True)
    sent = db.Column(db.Boolean, default=False, nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False, index=True)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    @validates('type')
    def validate_type(self, key, value):
        if value not in NOTIFICATION_TYPES:
            raise ValidationError({'type': f"Type must be one of: {', '.join(NOTIFICATION_TYPES)}"})
        return value

    @validates('priority')
    def validate_priority(self, key, value):
        if value not in NOTIFICATION_PRIORITIES:
            raise ValidationError({'priority': f"Priority must be one of: {', '.join(NOTIFICATION_PRIORITIES)}"})
        return value

    def to_dict(self):
        return {
            'id': self.id,
            'user_id': self.user_id,
            'task': self.task.summary() if self.task else None,
            'type': self.type,
            'title': self.title,
            'message': self.message,
            'priority': self.priority,
            'read': self.read,
            'scheduled_for': isoformat(self.scheduled_for),
            'sent': self.sent,
            'created_at': isoformat(self.created_at),
        }


class TaskAlert(db.Model):
    """
    Last due-date alert sent for a (task, type) pair.

    The scan deduplicates against this row rather than against the
    notifications themselves, since per-user retention may delete those.
    """
    __tablename__ = 'task_alerts'
    __table_args__ = (db.UniqueConstraint('task_id', 'type', name='uq_task_alert_type'),)

    id = db.Column(db.Integer, primary_key=True)
    task_id = db.Column(db.Integer, db.ForeignKey('tasks.id'), nullable=False, index=True)
    type = db.Column(db.String(20), nullable=False)
    priority = db.Column(db.String(10), nullable=False)
    notified_at = db.Column(db.DateTime, nullable=False)
