"""Provides the JSON API of the user service."""

from typing import Any, Mapping, Optional, Tuple
import logging

from flask import Blueprint, Response, current_app, jsonify, request

from . import domain, status
from .service import Response as ServiceResponse, UserService

logger = logging.getLogger(__name__)

blueprint = Blueprint('users', __name__, url_prefix='')


def get_service() -> UserService:
    """Get the service instance attached to the current application."""
    return current_app.extensions['user_service']


def _json() -> Optional[Mapping[str, Any]]:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return None
    return data


def _field(data: Mapping[str, Any], key: str) -> str:
    value = data.get(key)
    return '' if value is None else str(value)


def _user_from(data: Optional[Mapping[str, Any]],
               uuid: Optional[str] = None) -> Optional[domain.User]:
    if data is None:
        return None
    return domain.User(
        uuid=uuid,
        first_name=_field(data, 'first_name'),
        last_name=_field(data, 'last_name'),
        email=_field(data, 'email'),
        organization=_field(data, 'organization'),
    )


def _render(result: ServiceResponse,
            code: int = status.HTTP_200_OK) -> Tuple[Response, int]:
    body = {'code': result.code.name, 'message': result.message}
    if result.user is not None:
        body['user'] = domain.to_dict(result.user)
    if result.identification is not None:
        body['identification'] = domain.to_dict(result.identification)
    if result.secret is not None:
        body['secret'] = domain.to_dict(result.secret)
    return jsonify(body), code


@blueprint.route('/status', methods=['GET'])
def get_status() -> Tuple[Response, int]:
    """Report service availability."""
    return _render(get_service().get_status())


@blueprint.route('/users', methods=['POST'])
def create_user() -> Tuple[Response, int]:
    """Create a new account."""
    data = _json()
    password = _field(data, 'password') if data is not None else None
    result = get_service().create_user(_user_from(data), password)
    return _render(result, status.HTTP_201_CREATED)


@blueprint.route('/users/<string:uuid>', methods=['GET'])
def get_user(uuid: str) -> Tuple[Response, int]:
    """Get an account."""
    return _render(get_service().get_user(uuid))


@blueprint.route('/users/<string:uuid>', methods=['PATCH'])
def update_user(uuid: str) -> Tuple[Response, int]:
    """Update an account; only fields present in the body are changed."""
    data = _json()
    password = None
    if data is not None and data.get('password'):
        password = _field(data, 'password')
    result = get_service().update_user(_user_from(data, uuid), password)
    return _render(result)


@blueprint.route('/users/<string:uuid>', methods=['DELETE'])
def delete_user(uuid: str) -> Tuple[Response, int]:
    """Delete an account."""
    return _render(get_service().delete_user(uuid))


@blueprint.route('/authenticate', methods=['POST'])
def authenticate_user() -> Tuple[Response, int]:
    """Check an e-mail address and password."""
    data = _json() or {}
    result = get_service().authenticate_user(_field(data, 'email'),
                                             _field(data, 'password'))
    return _render(result)


@blueprint.route('/tokens', methods=['POST'])
def get_auth_token() -> Tuple[Response, int]:
    """Get an auth token for an account."""
    data = _json() or {}
    result = get_service().get_auth_token(_field(data, 'uuid'),
                                          _field(data, 'email'),
                                          _field(data, 'password'))
    return _render(result)


@blueprint.route('/tokens/verify', methods=['POST'])
def verify_auth_token() -> Tuple[Response, int]:
    """Verify an auth token."""
    data = _json() or {}
    return _render(get_service().verify_auth_token(_field(data, 'token')))


@blueprint.route('/email-tokens/verify', methods=['GET', 'POST'])
def verify_email_token() -> Tuple[Response, int]:
    """
    Verify an email token.

    The token may be passed in a JSON body, or as the ``token`` query
    parameter of the link sent by e-mail.
    """
    if request.method == 'GET':
        token = request.args.get('token', '')
    else:
        token = _field(_json() or {}, 'token')
    return _render(get_service().verify_email_token(token))


@blueprint.route('/secrets', methods=['POST'])
def make_new_secret() -> Tuple[Response, int]:
    """Rotate the signing secret."""
    return _render(get_service().make_new_secret())


@blueprint.route('/secrets/active', methods=['GET'])
def get_secret() -> Tuple[Response, int]:
    """Get the active signing secret."""
    return _render(get_service().get_secret())
