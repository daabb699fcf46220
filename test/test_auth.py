from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import jwt
import pytest

from chalicelib import auth
from chalicelib.constants.constants import USER_PENDING, USER_SUSPENDED
from chalicelib.utils import auth as utils_auth, exceptions
from test.utils import records_data

from test.utils.fixtures import aws_environment


@pytest.fixture
def jwt_secret(monkeypatch):
    monkeypatch.setenv('JWT_SECRET', 'unit-test-secret')


def test_password_hashing():
    password_hash = utils_auth.hash_password('hostel123')
    assert password_hash != 'hostel123'
    assert utils_auth.check_password('hostel123', password_hash) is True
    assert utils_auth.check_password('wrong-password', password_hash) is False
    assert utils_auth.check_password('', password_hash) is False


def test_token_round_trip(jwt_secret):
    token = utils_auth.issue_token('user-1', 'STUDENT', 'university-1')
    claims = utils_auth.decode_token(token)
    assert claims['sub'] == 'user-1'
    assert claims['role'] == 'STUDENT'
    assert claims['university_id'] == 'university-1'


def test_expired_token(jwt_secret):
    expired = datetime.now(timezone.utc) - timedelta(hours=1)
    token = jwt.encode({'sub': 'user-1', 'exp': expired}, 'unit-test-secret', algorithm='HS256')
    with pytest.raises(exceptions.AuthorizationException, match='expired'):
        utils_auth.decode_token(token)


def test_token_signed_with_other_secret(jwt_secret):
    token = jwt.encode({'sub': 'user-1'}, 'other-secret', algorithm='HS256')
    with pytest.raises(exceptions.AuthorizationException):
        utils_auth.decode_token(token)


def test_missing_jwt_secret(monkeypatch):
    monkeypatch.delenv('JWT_SECRET', raising=False)
    with pytest.raises(RuntimeError):
        utils_auth.issue_token('user-1', 'STUDENT', 'university-1')


def test_get_token_from_header():
    assert utils_auth.get_token_from_header('Bearer abc.def') == 'abc.def'
    assert utils_auth.get_token_from_header('abc.def') == 'abc.def'
    with pytest.raises(exceptions.NotAuthorizedException):
        utils_auth.get_token_from_header(None)


def test_require_roles():
    utils_auth.require_roles({'role': 'ADMIN'}, ('MANAGER', 'ADMIN'))
    with pytest.raises(exceptions.AccessDenied):
        utils_auth.require_roles({'role': 'STUDENT'}, ('MANAGER', 'ADMIN'))


@pytest.mark.local_db_test
def test_role_authorizer_approved_user(aws_environment):
    university = records_data.put_records(records_data.get_university_record())
    manager = records_data.put_user(university['id_'], role='MANAGER', name='Hostel Manager')

    response = auth.role_authorizer(SimpleNamespace(token=f'Bearer {records_data.get_token(manager)}'))

    assert response.principal_id == manager['id_']
    assert response.context == {'role': 'MANAGER', 'university_id': university['id_']}
    assert response.routes == auth.manager_routes


@pytest.mark.local_db_test
@pytest.mark.parametrize('status', [USER_PENDING, USER_SUSPENDED])
def test_role_authorizer_not_approved_user(aws_environment, status):
    university = records_data.put_records(records_data.get_university_record())
    student = records_data.put_user(university['id_'], status=status)

    response = auth.role_authorizer(SimpleNamespace(token=records_data.get_token(student)))

    assert response.routes == []


@pytest.mark.local_db_test
def test_get_approved_user_record_for_deleted_user(aws_environment):
    token = utils_auth.issue_token('4c0a42a6-5b3b-4a5e-9c1e-1f1b0c7f6a11', 'STUDENT', 'university-1')
    with pytest.raises(exceptions.AuthorizationException):
        utils_auth.get_approved_user_record(token)
