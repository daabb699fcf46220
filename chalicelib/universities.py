import os
from datetime import datetime
from decimal import Decimal
from typing import Tuple, List, Dict
from uuid import uuid4

from boto3.dynamodb.conditions import Attr, Key
from chalice import Response

from chalicelib.base_class_entity import EntityBase
from chalicelib.constants import keys_structure
from chalicelib.constants.constants import ADMIN, DEFAULT_TAX_RATE
from chalicelib.constants.status_codes import http200, http201
from chalicelib.utils import auth as utils_auth, data as utils_data, exceptions, db as utils_db, app as utils_app
from chalicelib.utils.logger import logger


def is_valid_tax_rate(value) -> bool:
    return isinstance(value, Decimal) and Decimal('0') <= value < Decimal('1')


def parse_tax_rate(value):
    """ Decimal tax rate from the request value, None when it is not a finite number """
    if isinstance(value, bool) or not isinstance(value, (int, str, Decimal)):
        return None
    try:
        tax_rate = Decimal(str(value).strip())
    except ArithmeticError:
        return None
    return tax_rate if tax_rate.is_finite() else None


class University(EntityBase):
    pk = keys_structure.universities_pk
    sk = keys_structure.universities_sk

    required_immutable_fields_validation = {
        'id_': lambda x: isinstance(x, str),
        'code': lambda x: isinstance(x, str) and len(x) > 0,
        'created_by': lambda x: isinstance(x, str),
        "date_created": lambda x: isinstance(x, str)
    }

    required_mutable_fields_validation = {
        'name_': lambda x: isinstance(x, str) and len(x.strip()) > 0,
        'is_active': lambda x: isinstance(x, bool),
        'settings': lambda x: isinstance(x, dict) and is_valid_tax_rate(x.get('tax_rate')),
        "date_updated": lambda x: isinstance(x, str),
    }

    optional_fields_validation = {
        'address': lambda x: isinstance(x, str),
    }

    def __init__(self, id_, **kwargs):
        EntityBase.__init__(self, id_)

        self.request_data = kwargs.get('request_data', {})

        self.name_: str = kwargs.get('name_') or kwargs.get('name')
        self.code: str = (kwargs.get('code') or '').strip().upper() or None
        self.address: str = kwargs.get('address')
        self.is_active: bool = kwargs.get('is_active', True)
        settings = dict(kwargs.get('settings') or {})
        if 'tax_rate' not in settings:
            settings['tax_rate'] = default_tax_rate()
        else:
            settings['tax_rate'] = parse_tax_rate(settings['tax_rate'])
        self.settings: dict = settings
        self.created_by: str = kwargs.get('created_by') or self.request_data.get('auth_result', {}).get('user_id')
        self.date_created: str = kwargs.get('date_created') or datetime.now().isoformat(timespec="seconds")
        self.date_updated: str = kwargs.get('date_updated') or datetime.now().isoformat(timespec="seconds")
        self.record_type = 'university'

    @classmethod
    def init_request_create(cls, request):
        logger.info("init_request_create ::: started")
        request_body = utils_data.parse_raw_body(request)
        request_body.pop('id', None)
        return cls(id_=str(uuid4()), request_data={'auth_result': request.auth_result}, **request_body)

    @classmethod
    def init_get_by_id(cls, university_id):
        logger.info("init_get_by_id ::: started")
        c = cls(university_id)
        try:
            c.__init__(**c._get_db_item())
        except exceptions.RecordNotFound:
            raise exceptions.RecordNotFound(f'University {university_id} not found')
        return c

    @classmethod
    def init_get_by_id_or_none(cls, university_id):
        if not isinstance(university_id, str) or not university_id:
            return None
        try:
            return cls.init_get_by_id(university_id)
        except exceptions.RecordNotFound:
            return None

    @utils_app.log_start_finish
    def endpoint_create(self) -> Response:
        if self.code and get_university_by_code(self.code):
            raise exceptions.ValidationException(f'University with code {self.code} already exists')
        self._create_db_record(condition_expression=Attr('partkey').not_exists())
        return Response(status_code=http201, body={'message': 'University successfully created', 'id': self.id_})

    def get_tax_rate(self) -> Decimal:
        tax_rate = parse_tax_rate(self.settings.get('tax_rate'))
        return tax_rate if tax_rate is not None else default_tax_rate()

    def _get_pk_sk(self) -> Tuple[str, str]:
        return self.pk, self.sk.format(university_id=self.id_)

    def _to_dict(self):
        return {
            'id_': self.id_,
            'name_': self.name_,
            'code': self.code,
            'address': self.address,
            'is_active': self.is_active,
            'settings': self.settings,
            'created_by': self.created_by,
            "date_created": self.date_created,
            "date_updated": self.date_updated
        }


def default_tax_rate() -> Decimal:
    return Decimal(os.environ.get('DEFAULT_TAX_RATE', DEFAULT_TAX_RATE))


def get_all_university_records() -> List[Dict]:
    return utils_db.query_items_paged(Key('partkey').eq(keys_structure.universities_pk))


def get_university_by_code(code: str):
    for record in get_all_university_records():
        if record.get('code') == code:
            return record
    return None


def get_university_tax_rate(university_id: str) -> Decimal:
    try:
        return University.init_get_by_id(university_id).get_tax_rate()
    except exceptions.RecordNotFound:
        logger.warning(f'get_university_tax_rate ::: university {university_id} not found, using default tax rate')
        return default_tax_rate()


@utils_app.request_exception_handler
@utils_app.log_start_finish
def endpoint_get_universities(request) -> Response:
    records = [record for record in get_all_university_records() if record.get('is_active', True)]
    universities: List[Dict] = sorted(
        [University(**record)._to_ui() for record in records],
        key=lambda university: (university.get('name') or '').lower()
    )
    logger.info(f"endpoint_get_universities ::: returning universities={[u['id'] for u in universities]}")
    return Response(status_code=http200, body=universities)


@utils_app.request_exception_handler
@utils_auth.authenticate
def endpoint_create_university(request) -> Response:
    utils_auth.require_roles(request.auth_result, (ADMIN,))
    return University.init_request_create(request).endpoint_create()
