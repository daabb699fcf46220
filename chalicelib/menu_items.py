from datetime import datetime, date, timedelta
from decimal import Decimal
from typing import List, Dict, Tuple, Optional
from uuid import uuid4

from boto3.dynamodb.conditions import Attr, Key
from chalice import Response

from chalicelib.base_class_entity import EntityBase
from chalicelib.constants import keys_structure
from chalicelib.constants.constants import MENU_CATEGORIES, MANAGER, ADMIN, STUDENT, MENU_MANAGEMENT_ROLES
from chalicelib.constants.status_codes import http200, http201
from chalicelib.universities import University
from chalicelib.utils import auth as utils_auth, data as utils_data, exceptions, db as utils_db, app as utils_app
from chalicelib.utils import ordering_time
from chalicelib.utils.logger import logger

MENU_STATUS_FILTERS = ('active', 'inactive', 'all')

# Request field -> attribute, for fields which are copied as is on create and update
EDITABLE_FIELDS = {
    'name': 'name_',
    'description': 'description',
    'is_vegetarian': 'is_vegetarian',
    'is_vegan': 'is_vegan',
    'is_active': 'is_active',
    'image': 'image'
}


def is_positive_money(value) -> bool:
    return isinstance(value, Decimal) and value > 0


def normalize_categories(categories) -> List[str]:
    if isinstance(categories, str):
        categories = [categories]
    if not isinstance(categories, list) or not categories:
        raise exceptions.ValidationException('At least one category is required')
    normalized = []
    for category in categories:
        if not isinstance(category, str) or category.strip().upper() not in MENU_CATEGORIES:
            raise exceptions.ValidationException(
                f'Invalid category {category}, expected one of {list(MENU_CATEGORIES)}')
        if category.strip().upper() not in normalized:
            normalized.append(category.strip().upper())
    return normalized


def normalize_variants(variants) -> List[Dict]:
    """
    Validates a full replacement list of variants.
    At least one variant is required and exactly one of them must be the default one.
    """
    if not isinstance(variants, list) or not variants:
        raise exceptions.ValidationException('At least one variant is required')
    normalized = []
    for variant in variants:
        if not isinstance(variant, dict) or not isinstance(variant.get('name'), str) or not variant['name'].strip():
            raise exceptions.ValidationException('Each variant must have a name')
        price = utils_data.to_money(variant.get('price'))
        if not is_positive_money(price):
            raise exceptions.ValidationException(f"Variant {variant['name']} must have a positive price")
        normalized_variant = {
            'id': variant.get('id') or str(uuid4()),
            'name': variant['name'].strip(),
            'price': price,
            'is_default': variant.get('is_default', False) is True,
            'is_active': variant.get('is_active', True) is not False
        }
        offer_price = utils_data.to_money(variant.get('offer_price'))
        if offer_price is not None:
            if not is_positive_money(offer_price):
                raise exceptions.ValidationException(f"Variant {variant['name']} offer price must be positive")
            normalized_variant['offer_price'] = offer_price
        normalized.append(normalized_variant)
    if len([variant for variant in normalized if variant['is_default']]) != 1:
        raise exceptions.ValidationException('Exactly one variant must be set as default')
    if len({variant['id'] for variant in normalized}) != len(normalized):
        raise exceptions.ValidationException('Variant ids must be unique')
    return normalized


def normalize_availability(availability) -> Dict:
    if not isinstance(availability, dict):
        raise exceptions.ValidationException('availability must be a map of YYYY-MM-DD to availability settings')
    normalized = {}
    for day, settings in availability.items():
        day_key = ordering_time.parse_order_date(day).isoformat()
        if isinstance(settings, bool):
            settings = {'is_available': settings}
        if not isinstance(settings, dict):
            raise exceptions.ValidationException(f'Invalid availability settings for {day}')
        day_settings = {'is_available': settings.get('is_available', True) is not False}
        max_quantity = settings.get('max_quantity')
        if max_quantity is not None:
            if not isinstance(max_quantity, (int, Decimal)) or int(max_quantity) < 0:
                raise exceptions.ValidationException(f'Invalid max_quantity for {day}')
            day_settings['max_quantity'] = int(max_quantity)
        normalized[day_key] = day_settings
    return normalized


class MenuItem(EntityBase):
    pk = keys_structure.menu_items_pk
    sk = keys_structure.menu_items_sk

    required_immutable_fields_validation = {
        'id_': lambda x: isinstance(x, str),
        'university_id': lambda x: isinstance(x, str),
        'created_by': lambda x: isinstance(x, str),
        "date_created": lambda x: isinstance(x, str)
    }

    required_mutable_fields_validation = {
        'name_': lambda x: isinstance(x, str) and len(x.strip()) > 0,
        'base_price': is_positive_money,
        'categories': lambda x: isinstance(x, list) and len(x) > 0 and all(c in MENU_CATEGORIES for c in x),
        'variants': lambda x: isinstance(x, list) and len([v for v in x if v.get('is_default')]) == 1,
        'availability': lambda x: isinstance(x, dict),
        'is_vegetarian': lambda x: isinstance(x, bool),
        'is_vegan': lambda x: isinstance(x, bool),
        'is_active': lambda x: isinstance(x, bool),
        "date_updated": lambda x: isinstance(x, str),
        "updated_by": lambda x: isinstance(x, str),
        "archived": lambda x: isinstance(x, bool)
    }

    optional_fields_validation = {
        'description': lambda x: isinstance(x, str),
        'offer_price': lambda x: x == '' or is_positive_money(x),
        'image': lambda x: isinstance(x, str)
    }

    removable_fields = ['offer_price', 'description', 'image']

    def __init__(self, id_, university_id=None, **kwargs):
        EntityBase.__init__(self, id_)

        self.request_data = kwargs.get('request_data', {})

        self.university_id: str = university_id
        self.name_: str = kwargs.get('name_')
        self.description: str = kwargs.get('description')
        self.base_price: Decimal = utils_data.to_money(kwargs.get('base_price'))
        self.offer_price: Decimal = utils_data.to_money(kwargs.get('offer_price'))
        self.categories: list = kwargs.get('categories', [])
        self.is_vegetarian: bool = kwargs.get('is_vegetarian', False)
        self.is_vegan: bool = kwargs.get('is_vegan', False)
        self.image: str = kwargs.get('image')
        self.variants: list = kwargs.get('variants', [])
        self.availability: dict = kwargs.get('availability', {})
        self.is_active: bool = kwargs.get('is_active', True)
        self.created_by: str = kwargs.get('created_by') or self.request_data.get('auth_result', {}).get('user_id')
        self.updated_by: str = kwargs.get('updated_by') or self.request_data.get('auth_result', {}).get('user_id')
        self.date_created: str = kwargs.get('date_created') or datetime.now().isoformat(timespec="seconds")
        self.date_updated: str = kwargs.get('date_updated') or datetime.now().isoformat(timespec="seconds")
        self.archived: bool = kwargs.get('archived', False)
        self.record_type = 'menu_item'

    @classmethod
    def init_request_create(cls, request):
        logger.info("init_request_create ::: started")
        auth_result = request.auth_result
        request_body = utils_data.parse_raw_body(request)
        university_id = get_scoped_university_id(auth_result, request_body.get('university_id'))
        if auth_result['role'] == ADMIN and not university_id:
            raise exceptions.MandatoryFieldsAreNotFilled('university_id is required')
        if University.init_get_by_id_or_none(university_id) is None:
            raise exceptions.ValidationException('University not found')
        for field in ('name', 'base_price', 'categories', 'variants'):
            if request_body.get(field) in (None, '', []):
                raise exceptions.MandatoryFieldsAreNotFilled(f'Missing required field: {field}')
        c = cls(id_=str(uuid4()), university_id=university_id, request_data={'auth_result': auth_result})
        c.apply_changes(request_body)
        return c

    @classmethod
    def init_get_by_id(cls, menu_item_id):
        logger.info("init_get_by_id ::: started")
        c = cls(id_=menu_item_id)
        try:
            c.__init__(**c._get_db_item())
        except exceptions.RecordNotFound:
            raise exceptions.MenuItemNotFound(f'Menu item {menu_item_id} not found')
        return c

    @classmethod
    def init_request_manage(cls, request, menu_item_id):
        """ Loads a menu item the requesting manager/admin is allowed to manage """
        c = cls.init_get_by_id(menu_item_id)
        auth_result = request.auth_result
        if auth_result['role'] == MANAGER and c.university_id != auth_result['university_id']:
            raise exceptions.MenuItemNotFound(f'Menu item {menu_item_id} not found')
        c.request_data = {'auth_result': auth_result}
        return c

    def apply_changes(self, request_body: Dict):
        for request_field, attr_name in EDITABLE_FIELDS.items():
            if request_field in request_body:
                setattr(self, attr_name, request_body[request_field])
        if 'base_price' in request_body:
            self.base_price = utils_data.to_money(request_body['base_price'])
            if not is_positive_money(self.base_price):
                raise exceptions.ValidationException('base_price must be a positive amount')
        if 'offer_price' in request_body:
            offer_price = request_body['offer_price']
            # empty value or zero removes the offer
            self.offer_price = utils_data.to_money(offer_price) if offer_price not in ('', 0) else ''
            if self.offer_price is None:
                raise exceptions.ValidationException('offer_price must be a positive amount')
        if 'categories' in request_body:
            self.categories = normalize_categories(request_body['categories'])
        if 'variants' in request_body:
            self.variants = normalize_variants(request_body['variants'])
        if 'availability' in request_body:
            self.availability = {**self.availability, **normalize_availability(request_body['availability'])}

    @utils_app.log_start_finish
    def endpoint_create_menu_item(self) -> Response:
        self._create_db_record(condition_expression=Attr('partkey').not_exists())
        return Response(status_code=http201, body={'message': 'Menu item successfully created', 'id': self.id_})

    @utils_app.log_start_finish
    def endpoint_get_menu_item(self) -> Response:
        return Response(status_code=http200, body=self._to_ui())

    @utils_app.log_start_finish
    def endpoint_update_menu_item(self, request_body: Dict) -> Response:
        request_body.pop('university_id', None)
        self.apply_changes(request_body)
        self._update_db_record()
        return Response(status_code=http200, body={'message': 'Menu item was successfully updated', 'id': self.id_})

    @utils_app.log_start_finish
    def endpoint_archive_menu_item(self) -> Response:
        self.archived = True
        self.is_active = False
        self._update_db_record()
        return Response(status_code=http200, body={'message': 'Menu item was successfully archived', 'id': self.id_})

    def _get_pk_sk(self) -> Tuple[str, str]:
        return self.pk, self.sk.format(menu_item_id=self.id_)

    def get_variant(self, variant_id: str) -> Optional[Dict]:
        for variant in self.variants:
            if variant.get('id') == variant_id:
                return variant
        return None

    def get_default_variant(self) -> Optional[Dict]:
        for variant in self.variants:
            if variant.get('is_default') and variant.get('is_active', True):
                return variant
        return None

    def is_available_on(self, order_date) -> bool:
        """
        Dates without an availability entry are available.
        """
        if not self.is_active or self.archived:
            return False
        day = ordering_time.parse_order_date(order_date).isoformat()
        return self.availability.get(day, {}).get('is_available', True) is not False

    def get_max_quantity(self, order_date) -> Optional[int]:
        day = ordering_time.parse_order_date(order_date).isoformat()
        max_quantity = self.availability.get(day, {}).get('max_quantity')
        return int(max_quantity) if max_quantity is not None else None

    def resolve_price(self, variant_id: str = None) -> Tuple[Decimal, Optional[Dict]]:
        """
        Price of one unit of the item:
        explicit variant (must exist and be active), else the default variant, else the base price.
        An offer price replaces the price when it is lower.
        The item's own offer price only applies when no explicit variant was requested.
        """
        if variant_id:
            variant = self.get_variant(variant_id)
            if variant is None or not variant.get('is_active', True):
                raise exceptions.SomeItemsAreNotAvailable(
                    f'Variant {variant_id} of {self.name_} not found or not available')
        else:
            variant = self.get_default_variant()
        price = utils_data.to_money(variant['price']) if variant else self.base_price
        offers = [utils_data.to_money((variant or {}).get('offer_price'))]
        if not variant_id:
            offers.append(self.offer_price if self.offer_price != '' else None)
        offers = [offer for offer in offers if is_positive_money(offer) and offer < price]
        if offers:
            price = min(offers)
        return price, variant

    def _to_dict(self):
        return {
            'id_': self.id_,
            'university_id': self.university_id,
            'name_': self.name_,
            'description': self.description,
            'base_price': self.base_price,
            'offer_price': self.offer_price,
            'categories': self.categories,
            'is_vegetarian': self.is_vegetarian,
            'is_vegan': self.is_vegan,
            'image': self.image,
            'variants': self.variants,
            'availability': self.availability,
            'is_active': self.is_active,
            "date_created": self.date_created,
            "date_updated": self.date_updated,
            'created_by': self.created_by,
            'updated_by': self.updated_by,
            "archived": self.archived
        }

    def _init_db_record(self) -> None:
        EntityBase._init_db_record(self)
        self.db_record = {key: value for key, value in self.db_record.items() if value not in (None, '')}

    def _to_ui(self):
        item = super()._to_ui()
        if item.get('offer_price') == '':
            item['offer_price'] = None
        # default variant first
        item['variants'] = sorted(item.get('variants', []), key=lambda variant: not variant.get('is_default'))
        return item

    def to_ui(self):
        return self._to_ui()


def get_scoped_university_id(auth_result: Dict, requested_university_id: Optional[str]) -> Optional[str]:
    if auth_result['role'] in (MANAGER, STUDENT):
        return auth_result['university_id']
    return requested_university_id


def get_menu_item_db_records(university_id: Optional[str] = None, include_archived: bool = False) -> List[Dict]:
    filter_expression = None
    if university_id:
        filter_expression = Attr('university_id').eq(university_id)
    if not include_archived:
        not_archived = Attr('archived').eq(False)
        filter_expression = not_archived if filter_expression is None else filter_expression & not_archived
    return utils_db.query_items_paged(
        Key('partkey').eq(keys_structure.menu_items_pk),
        filter_expression=filter_expression
    )


def filter_menu_items(menu_items: List[MenuItem], category=None, status=None, search=None) -> List[MenuItem]:
    if category and category.lower() != 'all':
        category = category.strip().upper()
        menu_items = [item for item in menu_items if category in item.categories]
    if status == 'active':
        menu_items = [item for item in menu_items if item.is_active]
    elif status == 'inactive':
        menu_items = [item for item in menu_items if not item.is_active]
    if search:
        search = search.strip().lower()
        menu_items = [item for item in menu_items
                      if search in (item.name_ or '').lower() or search in (item.description or '').lower()]
    return menu_items


@utils_app.request_exception_handler
@utils_auth.authenticate
def endpoint_get_admin_menu(request) -> Response:
    auth_result = request.auth_result
    utils_auth.require_roles(auth_result, MENU_MANAGEMENT_ROLES)
    qp = request.query_params or {}
    status = qp.get('status', 'all')
    if status not in MENU_STATUS_FILTERS:
        raise exceptions.ValidationException(f'Invalid status filter {status}, expected one of {MENU_STATUS_FILTERS}')
    university_id = get_scoped_university_id(auth_result, qp.get('university_id'))
    menu_items = filter_menu_items(
        [MenuItem(**record) for record in get_menu_item_db_records(university_id)],
        category=qp.get('category'), status=status, search=qp.get('search')
    )
    menu_items.sort(key=lambda item: item.date_created, reverse=True)
    logger.info(f"endpoint_get_admin_menu ::: returning menu items={[item.id_ for item in menu_items]}")
    return Response(status_code=http200, body=[item.to_ui() for item in menu_items])


@utils_app.request_exception_handler
@utils_auth.authenticate
def endpoint_create_menu_item(request) -> Response:
    utils_auth.require_roles(request.auth_result, MENU_MANAGEMENT_ROLES)
    return MenuItem.init_request_create(request).endpoint_create_menu_item()


@utils_app.request_exception_handler
@utils_auth.authenticate
def endpoint_get_menu_item(request, menu_item_id) -> Response:
    utils_auth.require_roles(request.auth_result, MENU_MANAGEMENT_ROLES)
    return MenuItem.init_request_manage(request, menu_item_id).endpoint_get_menu_item()


@utils_app.request_exception_handler
@utils_auth.authenticate
def endpoint_update_menu_item(request, menu_item_id) -> Response:
    utils_auth.require_roles(request.auth_result, MENU_MANAGEMENT_ROLES)
    request_body = utils_data.parse_raw_body(request)
    return MenuItem.init_request_manage(request, menu_item_id).endpoint_update_menu_item(request_body)


@utils_app.request_exception_handler
@utils_auth.authenticate
def endpoint_archive_menu_item(request, menu_item_id) -> Response:
    utils_auth.require_roles(request.auth_result, MENU_MANAGEMENT_ROLES)
    return MenuItem.init_request_manage(request, menu_item_id).endpoint_archive_menu_item()


def get_student_menu(university_id: str, order_date: date, category: str = None) -> List[MenuItem]:
    menu_items = [MenuItem(**record) for record in get_menu_item_db_records(university_id)]
    menu_items = [item for item in menu_items if item.is_available_on(order_date)]
    menu_items = filter_menu_items(menu_items, category=category)
    menu_items.sort(key=lambda item: (item.name_ or '').lower())
    return menu_items


@utils_app.request_exception_handler
@utils_auth.authenticate
def endpoint_get_student_menu(request) -> Response:
    auth_result = request.auth_result
    utils_auth.require_roles(auth_result, (STUDENT,))
    qp = request.query_params or {}
    if qp.get('date'):
        order_date = ordering_time.parse_order_date(qp['date'])
    else:
        order_date = ordering_time.local_today() + timedelta(days=1)
    menu_items = get_student_menu(auth_result['university_id'], order_date, category=qp.get('category'))
    return Response(
        status_code=http200,
        body={
            'date': order_date.isoformat(),
            'cutoff': ordering_time.get_order_cutoff_time(order_date).isoformat(),
            'is_past_cutoff': ordering_time.is_past_ordering_cutoff(order_date),
            'countdown': ordering_time.get_ordering_countdown(order_date),
            'next_orderable_date': ordering_time.next_orderable_date().isoformat(),
            'items': [item.to_ui() for item in menu_items]
        }
    )
