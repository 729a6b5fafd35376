"""Application factory for the user service."""

from typing import Any, Mapping, Optional

from flask import Flask, Response, jsonify
from werkzeug.exceptions import HTTPException, BadRequest, NotFound, \
    MethodNotAllowed, InternalServerError, UnsupportedMediaType

from . import config
from .app_logging import setup_logger
from .routes import blueprint
from .service import ServiceError, UserService
from .status import http_status


def create_web_app(overrides: Optional[Mapping[str, Any]] = None) -> Flask:
    """Initialize and configure the user service application."""
    app = Flask('usersvc')
    app.config.from_object(config)
    if overrides:
        app.config.update(overrides)

    setup_logger(app.config['LOG_LEVEL'], json=app.config['LOG_JSON'])

    app.extensions['user_service'] = UserService.from_config(app.config)
    app.register_blueprint(blueprint)
    register_error_handlers(app)
    return app


def register_error_handlers(app: Flask) -> None:
    """Register error handlers for the Flask app."""
    app.errorhandler(ServiceError)(jsonify_service_error)
    app.errorhandler(BadRequest)(jsonify_exception)
    app.errorhandler(NotFound)(jsonify_exception)
    app.errorhandler(MethodNotAllowed)(jsonify_exception)
    app.errorhandler(UnsupportedMediaType)(jsonify_exception)
    app.errorhandler(InternalServerError)(jsonify_exception)


def jsonify_service_error(error: ServiceError) -> Response:
    """Render a failed operation as JSON, with the matching HTTP status."""
    response: Response = jsonify(code=error.code.name, reason=error.message)
    response.status_code = http_status(error.code)
    return response


def jsonify_exception(error: HTTPException) -> Response:
    """Render exceptions as JSON."""
    exc_resp = error.get_response()
    response: Response = jsonify(reason=error.description)
    response.status_code = exc_resp.status_code
    return response
