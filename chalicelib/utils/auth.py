import functools
import os
from datetime import datetime, timedelta, timezone
from typing import Dict, Iterable

import bcrypt
import jwt
from chalice.app import Request

from chalicelib.constants import keys_structure
from chalicelib.constants.constants import USER_APPROVED
from chalicelib.utils import exceptions as utils_exceptions, db as utils_db
from chalicelib.utils.logger import log_request, logger, set_request_id

JWT_ALGORITHM = 'HS256'
DEFAULT_JWT_TTL_HOURS = 12


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode('utf-8'), bcrypt.gensalt()).decode('utf-8')


def check_password(password: str, password_hash: str) -> bool:
    if not password or not password_hash:
        return False
    return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))


def jwt_secret() -> str:
    secret = os.environ.get('JWT_SECRET')
    if not secret:
        raise RuntimeError('JWT_SECRET is not configured')
    return secret


def issue_token(user_id: str, role: str, university_id: str) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        'sub': user_id,
        'role': role,
        'university_id': university_id,
        'iat': now,
        'exp': now + timedelta(hours=int(os.environ.get('JWT_TTL_HOURS', DEFAULT_JWT_TTL_HOURS)))
    }
    return jwt.encode(payload, jwt_secret(), algorithm=JWT_ALGORITHM)


def get_token_from_header(header_value: str) -> str:
    if not header_value:
        raise utils_exceptions.NotAuthorizedException('Authorization token is missing')
    if header_value.lower().startswith('bearer '):
        return header_value[7:].strip()
    return header_value.strip()


def decode_token(token: str) -> Dict:
    try:
        return jwt.decode(token, jwt_secret(), algorithms=[JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise utils_exceptions.AuthorizationException('Token has expired')
    except jwt.InvalidTokenError as error:
        raise utils_exceptions.AuthorizationException(f'Invalid token: {error}')


def get_approved_user_record(token: str) -> Dict:
    """
    Decodes the token and loads the user it was issued to.
    The user is re-read on every request, so a status change takes effect immediately.
    """
    claims = decode_token(token)
    try:
        user_record = utils_db.get_db_item(
            partkey=keys_structure.users_pk,
            sortkey=keys_structure.users_sk.format(user_id=claims['sub'])
        )
    except utils_exceptions.RecordNotFound:
        raise utils_exceptions.AuthorizationException('User of the token does not exist')
    if user_record.get('status_') != USER_APPROVED:
        raise utils_exceptions.AuthorizationException('Account pending approval or suspended')
    return user_record


def authenticate(func):
    """
    Wrapper for functions which require user's authentication.
    The first positional argument of the wrapped function must be the chalice request,
    request.auth_result is filled with the user's id, role, university and status.
    """

    @functools.wraps(func)
    def result_auth(*args, **kwargs):
        request: Request = args[0]
        set_request_id(request)
        log_request(request)
        token = get_token_from_header(request.headers.get('authorization'))
        user_record = get_approved_user_record(token)
        setattr(request, 'auth_result', {
            'user_id': user_record['id_'],
            'role': user_record.get('role'),
            'university_id': user_record.get('university_id'),
            'status': user_record.get('status_'),
            'name': user_record.get('name_'),
            'email': user_record.get('email')
        })
        result = func(*args, **kwargs)
        logger.info(f'authenticate ::: SUCCESS, func.__name__ {func.__name__}')
        return result

    return result_auth


def require_roles(auth_result: Dict, roles: Iterable[str]):
    if auth_result.get('role') not in roles:
        raise utils_exceptions.AccessDenied(
            f"Role {auth_result.get('role')} is not allowed, expected one of {list(roles)}")
