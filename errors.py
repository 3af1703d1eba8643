import logging

from flask import jsonify
from werkzeug.exceptions import HTTPException

logger = logging.getLogger(__name__)


class ValidationError(Exception):
    """Field-level validation failure. ``errors`` maps field name to message."""

    def __init__(self, errors):
        if isinstance(errors, str):
            errors = {'__all__': errors}
        self.errors = dict(errors)
        super().__init__(self.message)

    @property
    def message(self):
        return ', '.join(self.errors.values())


class EmailError(Exception):
    pass


def register_error_handlers(app):
    @app.errorhandler(ValidationError)
    def handle_validation_error(err):
        return jsonify(message=err.message, errors=err.errors), 400

    @app.errorhandler(HTTPException)
    def handle_http_error(err):
        return jsonify(message=err.description), err.code

    @app.errorhandler(Exception)
    def handle_unexpected_error(err):
        logger.exception("Unhandled error during request")
        return jsonify(message='Internal server error'), 500
