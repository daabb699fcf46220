import re
from datetime import datetime
from decimal import Decimal
from typing import Tuple, List, Dict
from uuid import uuid4

from boto3.dynamodb.conditions import Key, Attr
from chalice import Response

from chalicelib.base_class_entity import EntityBase
from chalicelib.constants import keys_structure
from chalicelib.constants.constants import STUDENT, MANAGER, ADMIN, STAFF_ROLES, USER_PENDING, USER_APPROVED, \
    USER_STATUSES
from chalicelib.constants.status_codes import http200, http201
from chalicelib.universities import University
from chalicelib.utils import auth as utils_auth, app as utils_app, data as utils_data, db as utils_db, exceptions
from chalicelib.utils.logger import logger, set_request_id

EMAIL_PATTERN = re.compile(r'^[^\s@]+@[^\s@]+\.[^\s@]+$')
# Indian or Vietnamese mobile numbers, matched against digits only
PHONE_PATTERN = re.compile(r'^(\+?91|0)?[6-9]\d{9}$|^(\+?84|0)?[1-9]\d{8}$')
MIN_PASSWORD_LENGTH = 6
MAX_PASSWORD_LENGTH = 128

SIGNUP_REQUIRED_FIELDS = ('name', 'email', 'password', 'university_id', 'student_id', 'room_number', 'phone')
STAFF_REQUIRED_FIELDS = ('name', 'email', 'password', 'role', 'university_id')
PROFILE_FIELDS = ('name_', 'phone', 'room_number', 'course', 'year')


def normalize_email(email) -> str:
    return email.strip().lower() if isinstance(email, str) else ''


def validate_email(email: str):
    if not EMAIL_PATTERN.match(email) or len(email) > 254:
        raise exceptions.ValidationException('Please enter a valid email address')


def validate_password(password):
    if not isinstance(password, str) or len(password) < MIN_PASSWORD_LENGTH:
        raise exceptions.ValidationException(f'Password must be at least {MIN_PASSWORD_LENGTH} characters long')
    if len(password) > MAX_PASSWORD_LENGTH:
        raise exceptions.ValidationException('Password is too long')
    if not re.search(r'[a-zA-Z]', password):
        raise exceptions.ValidationException('Password must contain at least one letter')


def validate_phone(phone):
    digits = re.sub(r'\D', '', str(phone or ''))
    if not PHONE_PATTERN.match(digits):
        raise exceptions.ValidationException('Please enter a valid Indian or Vietnamese phone number')


def check_mandatory_fields(body: Dict, fields: Tuple):
    missing = [field for field in fields if body.get(field) in (None, '')]
    if missing:
        raise exceptions.MandatoryFieldsAreNotFilled(f'Missing required fields: {", ".join(missing)}')


class User(EntityBase):
    pk = keys_structure.users_pk
    sk = keys_structure.users_sk

    required_immutable_fields_validation = {
        'id_': lambda x: isinstance(x, str),
        'email': lambda x: isinstance(x, str) and EMAIL_PATTERN.match(x) is not None,
        'password_hash': lambda x: isinstance(x, str),
        'role': lambda x: x in (STUDENT, *STAFF_ROLES),
        'university_id': lambda x: isinstance(x, str),
        'date_created': lambda x: isinstance(x, str)
    }

    required_mutable_fields_validation = {
        'name_': lambda x: isinstance(x, str) and len(x.strip()) > 0,
        'status_': lambda x: x in USER_STATUSES,
        'date_updated': lambda x: isinstance(x, str)
    }

    optional_fields_validation = {
        'phone': lambda x: isinstance(x, str),
        'student_id': lambda x: isinstance(x, str),
        'room_number': lambda x: isinstance(x, str),
        'course': lambda x: isinstance(x, str),
        'year': lambda x: isinstance(x, (str, int, Decimal)),
        'updated_by': lambda x: isinstance(x, str),
        'last_login_at': lambda x: isinstance(x, str)
    }

    def __init__(self, id_, **kwargs):
        EntityBase.__init__(self, id_)

        self.request_data = kwargs.get('request_data', {})

        self.email: str = normalize_email(kwargs.get('email')) or None
        self.password_hash: str = kwargs.get('password_hash')
        self.name_: str = kwargs.get('name_') or kwargs.get('name')
        self.role: str = kwargs.get('role', STUDENT)
        self.status_: str = kwargs.get('status_') or kwargs.get('status') or USER_PENDING
        self.university_id: str = kwargs.get('university_id')
        self.phone: str = kwargs.get('phone')
        self.student_id: str = kwargs.get('student_id')
        self.room_number: str = kwargs.get('room_number')
        self.course: str = kwargs.get('course')
        self.year = kwargs.get('year')
        self.last_login_at: str = kwargs.get('last_login_at')
        self.date_created: str = kwargs.get('date_created') or datetime.now().isoformat(timespec="seconds")
        self.date_updated: str = kwargs.get('date_updated') or datetime.now().isoformat(timespec="seconds")
        self.updated_by: str = kwargs.get('updated_by')
        self.record_type = 'user'

    @classmethod
    def init_by_id(cls, id_):
        logger.info("init_by_id ::: started")
        c = cls(id_)
        try:
            c.__init__(**c._get_db_item())
        except exceptions.RecordNotFound:
            raise exceptions.UserNotFound(f'User {id_} not found')
        return c

    @classmethod
    def init_by_email(cls, email):
        try:
            email_record = utils_db.get_db_item(
                partkey=keys_structure.user_emails_pk,
                sortkey=keys_structure.user_emails_sk.format(email=normalize_email(email))
            )
        except exceptions.RecordNotFound:
            raise exceptions.UserNotFound(f'User with email {email} not found')
        return cls.init_by_id(email_record['user_id'])

    @classmethod
    def init_request_user(cls, request):
        logger.info("init_request_user ::: started")
        c = cls.init_by_id(request.auth_result['user_id'])
        c.request_data = {'auth_result': request.auth_result}
        return c

    @classmethod
    def init_request_signup(cls, request):
        logger.info("init_request_signup ::: started")
        request_body = utils_data.parse_raw_body(request)
        check_mandatory_fields(request_body, SIGNUP_REQUIRED_FIELDS)
        if request_body.get('role', STUDENT) != STUDENT:
            raise exceptions.ValidationException('Only student registration is allowed')
        c = cls._init_new_user(request_body, role=STUDENT, status=USER_PENDING)
        c.student_id = str(request_body['student_id'])
        c.room_number = str(request_body['room_number'])
        return c

    @classmethod
    def init_request_create_staff(cls, request):
        logger.info("init_request_create_staff ::: started")
        request_body = utils_data.parse_raw_body(request)
        check_mandatory_fields(request_body, STAFF_REQUIRED_FIELDS)
        if request_body['role'] not in STAFF_ROLES:
            raise exceptions.ValidationException(f'Staff role must be one of {list(STAFF_ROLES)}')
        c = cls._init_new_user(request_body, role=request_body['role'], status=USER_APPROVED)
        c.updated_by = request.auth_result['user_id']
        return c

    @classmethod
    def _init_new_user(cls, request_body: Dict, role: str, status: str):
        email = normalize_email(request_body['email'])
        validate_email(email)
        validate_password(request_body['password'])
        if request_body.get('phone') is not None:
            validate_phone(request_body['phone'])
        university = University.init_get_by_id_or_none(request_body['university_id'])
        if university is None or not university.is_active:
            raise exceptions.ValidationException('Invalid university selected')
        return cls(
            id_=str(uuid4()),
            email=email,
            password_hash=utils_auth.hash_password(request_body['password']),
            name=str(request_body['name']).strip(),
            role=role,
            status=status,
            university_id=university.id_,
            phone=str(request_body['phone']).strip() if request_body.get('phone') is not None else None,
            course=request_body.get('course'),
            year=request_body.get('year')
        )

    @utils_app.log_start_finish
    def endpoint_create(self) -> Response:
        self._reserve_email()
        try:
            self._create_db_record(condition_expression=Attr('partkey').not_exists())
        except Exception:
            self._release_email()
            raise
        if self.status_ == USER_PENDING:
            message = 'Student account created successfully. Please wait for admin approval.'
        else:
            message = 'User successfully created'
        return Response(status_code=http201, body={'message': message, 'user': self._to_ui()})

    @utils_app.log_start_finish
    def endpoint_get_user(self) -> Response:
        return Response(status_code=http200, body=self._to_ui())

    @utils_app.log_start_finish
    def endpoint_update_profile(self, request_body: Dict) -> Response:
        utils_data.substitute_keys(dict_to_process=request_body, base_keys={'name': 'name_'})
        if 'phone' in request_body:
            validate_phone(request_body['phone'])
        for field in PROFILE_FIELDS:
            if field in request_body:
                setattr(self, field, request_body[field])
        self._update_db_record()
        return Response(status_code=http200, body={'message': 'User was successfully updated', 'user': self._to_ui()})

    @utils_app.log_start_finish
    def endpoint_set_status(self, status: str, auth_result: Dict) -> Response:
        if status not in USER_STATUSES:
            raise exceptions.ValidationException(f'Invalid status {status}, expected one of {list(USER_STATUSES)}')
        if self.id_ == auth_result['user_id']:
            raise exceptions.ValidationException('You cannot change your own status')
        if auth_result['role'] == MANAGER:
            if self.university_id != auth_result['university_id']:
                raise exceptions.AccessDenied('Cannot manage users from different universities')
            if self.role == ADMIN:
                raise exceptions.AccessDenied('Managers cannot change the status of administrators')
        logger.info(f'endpoint_set_status ::: user {self.id_} {self.status_} -> {status} by {auth_result["user_id"]}')
        self.status_ = status
        self.date_updated = datetime.now().isoformat(timespec="seconds")
        self.updated_by = auth_result['user_id']
        pk, sk = self._get_pk_sk()
        utils_db.update_db_record(
            key={'partkey': pk, 'sortkey': sk},
            update_body={'status_': self.status_, 'date_updated': self.date_updated, 'updated_by': self.updated_by},
            allowed_attrs_to_update=['status_', 'date_updated', 'updated_by'],
            allowed_attrs_to_delete=[]
        )
        return Response(status_code=http200, body={'user': self._to_ui()})

    def sign_in(self, password: str) -> Dict:
        if not utils_auth.check_password(password, self.password_hash):
            raise exceptions.AuthorizationException('Invalid email or password')
        if self.status_ != USER_APPROVED:
            raise exceptions.AuthorizationException('Account pending approval or suspended')
        self.last_login_at = datetime.now().isoformat(timespec="seconds")
        pk, sk = self._get_pk_sk()
        utils_db.update_db_record(
            key={'partkey': pk, 'sortkey': sk},
            update_body={'last_login_at': self.last_login_at},
            allowed_attrs_to_update=['last_login_at'],
            allowed_attrs_to_delete=[]
        )
        return {
            'token': utils_auth.issue_token(self.id_, self.role, self.university_id),
            'user': self._to_ui()
        }

    def _update_fields_whitelist(self) -> List:
        return [*PROFILE_FIELDS, 'date_updated', 'updated_by']

    def _email_key(self) -> Dict:
        return {
            'partkey': keys_structure.user_emails_pk,
            'sortkey': keys_structure.user_emails_sk.format(email=self.email)
        }

    def _reserve_email(self):
        try:
            utils_db.put_db_record(
                {**self._email_key(), 'user_id': self.id_, 'record_type': 'user_email'},
                condition_expression=Attr('partkey').not_exists()
            )
        except exceptions.ConditionalCheckFailed:
            raise exceptions.UserAlreadyExists('User with this email already exists')

    def _release_email(self):
        utils_db.delete_db_record(self._email_key())

    def _get_pk_sk(self) -> Tuple[str, str]:
        return self.pk, self.sk.format(user_id=self.id_)

    def _to_dict(self):
        return {
            'id_': self.id_,
            'email': self.email,
            'password_hash': self.password_hash,
            'name_': self.name_,
            'role': self.role,
            'status_': self.status_,
            'university_id': self.university_id,
            'phone': self.phone,
            'student_id': self.student_id,
            'room_number': self.room_number,
            'course': self.course,
            'year': self.year,
            'last_login_at': self.last_login_at,
            'date_created': self.date_created,
            'date_updated': self.date_updated,
            'updated_by': self.updated_by
        }

    def _to_ui(self):
        return {key: value for key, value in super()._to_ui().items() if value is not None}


def get_user_db_records(university_id=None, status=None, role=None) -> List[Dict]:
    filter_expression = None
    for attr_name, value in (('university_id', university_id), ('status_', status), ('role', role)):
        if value:
            condition = Attr(attr_name).eq(value)
            filter_expression = condition if filter_expression is None else filter_expression & condition
    return utils_db.query_items_paged(
        Key('partkey').eq(keys_structure.users_pk),
        filter_expression=filter_expression
    )


@utils_app.request_exception_handler
def endpoint_signup(request) -> Response:
    set_request_id(request)
    return User.init_request_signup(request).endpoint_create()


@utils_app.request_exception_handler
def endpoint_signin(request) -> Response:
    set_request_id(request)
    request_body = utils_data.parse_raw_body(request)
    check_mandatory_fields(request_body, ('email', 'password'))
    try:
        user = User.init_by_email(request_body['email'])
    except exceptions.UserNotFound:
        raise exceptions.AuthorizationException('Invalid email or password')
    return Response(status_code=http200, body=user.sign_in(request_body['password']))


@utils_app.request_exception_handler
@utils_auth.authenticate
def endpoint_get_me(request) -> Response:
    return User.init_request_user(request).endpoint_get_user()


@utils_app.request_exception_handler
@utils_auth.authenticate
def endpoint_update_me(request) -> Response:
    request_body = utils_data.parse_raw_body(request)
    return User.init_request_user(request).endpoint_update_profile(request_body)


@utils_app.request_exception_handler
@utils_auth.authenticate
def endpoint_get_users(request) -> Response:
    auth_result = request.auth_result
    utils_auth.require_roles(auth_result, (MANAGER, ADMIN))
    qp = request.query_params or {}
    if auth_result['role'] == MANAGER:
        university_id = auth_result['university_id']
    else:
        university_id = qp.get('university_id')
    status = qp.get('status') if qp.get('status') not in (None, '', 'all') else None
    db_records = get_user_db_records(university_id=university_id, status=status, role=qp.get('role'))
    users: List[Dict] = sorted(
        [User(**record)._to_ui() for record in db_records],
        key=lambda user: user.get('date_created', ''),
        reverse=True
    )
    logger.info(f'endpoint_get_users ::: returning {len(users)} users')
    return Response(status_code=http200, body={'users': users})


@utils_app.request_exception_handler
@utils_auth.authenticate
def endpoint_create_staff_user(request) -> Response:
    utils_auth.require_roles(request.auth_result, (ADMIN,))
    return User.init_request_create_staff(request).endpoint_create()


@utils_app.request_exception_handler
@utils_auth.authenticate
def endpoint_update_user_status(request, user_id) -> Response:
    utils_auth.require_roles(request.auth_result, (MANAGER, ADMIN))
    request_body = utils_data.parse_raw_body(request)
    check_mandatory_fields(request_body, ('status',))
    return User.init_by_id(user_id).endpoint_set_status(request_body['status'], request.auth_result)
