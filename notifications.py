import logging

from flask import Blueprint, abort, jsonify
from flask_login import current_user, login_required

from notification_store import get_user_notifications, mark_all_as_read, mark_as_read

logger = logging.getLogger(__name__)

notifications_bp = Blueprint('notifications', __name__, url_prefix='/api/v1/notifications')


@notifications_bp.route('', methods=['GET'])
@login_required
def list_notifications():
    notifications = get_user_notifications(current_user.id)
    return jsonify(data=[n.to_dict() for n in notifications])


@notifications_bp.route('/<int:notification_id>/read', methods=['PATCH'])
@login_required
def read_notification(notification_id):
    notification = mark_as_read(notification_id, current_user.id)
    if notification is None:
        abort(404, description='Notification not found')
    return jsonify(data=notification.to_dict())


@notifications_bp.route('/read-all', methods=['PATCH'])
@login_required
def read_all_notifications():
    updated = mark_all_as_read(current_user.id)
    logger.debug("Marked %d notifications read for user %s", updated, current_user.id)
    return jsonify(message='All notifications marked as read', updated=updated)
