import os
from datetime import datetime, date
from decimal import Decimal
from typing import Tuple, List, Dict, Optional
from uuid import uuid4

from boto3.dynamodb.conditions import Key, Attr
from chalice import Response

from chalicelib import order_workflow, qr_codes
from chalicelib.base_class_entity import EntityBase
from chalicelib.carts import Cart, split_cart_key, parse_quantity
from chalicelib.constants import keys_structure
from chalicelib.constants.constants import STUDENT, MANAGER, ADMIN, PAYMENT_METHODS, PAYMENT_PENDING, \
    DEFAULT_ORDER_NUMBER_PREFIX, ORDER_NUMBER_DIGITS, ORDERS_COUNTER, DEFAULT_PAGE_SIZE
from chalicelib.constants.status_codes import http200, http201
from chalicelib.menu_items import MenuItem
from chalicelib.universities import get_university_tax_rate
from chalicelib.utils import auth as utils_auth, \
    data as utils_data, \
    db as utils_db, \
    app as utils_app, \
    notifications as utils_notifications, \
    exceptions, \
    email_templates, \
    ordering_time
from chalicelib.utils.logger import logger

MAX_PAGE_SIZE = 100


def order_number_prefix() -> str:
    return os.environ.get('ORDER_NUMBER_PREFIX', DEFAULT_ORDER_NUMBER_PREFIX)


def next_order_number() -> str:
    sequence = utils_db.increment_counter(key={
        'partkey': keys_structure.counters_pk,
        'sortkey': keys_structure.counters_sk.format(counter_name=ORDERS_COUNTER)
    })
    return f'{order_number_prefix()}{str(sequence).zfill(ORDER_NUMBER_DIGITS)}'


def calculate_totals(items: List[Dict], tax_rate: Decimal) -> Tuple[Decimal, Decimal, Decimal]:
    """
    :return: subtotal, tax, total. Tax is rounded half up to a whole currency unit.
    """
    subtotal = sum((item['price'] * item['quantity'] for item in items), Decimal('0.00'))
    tax = utils_data.round_half_up(subtotal * tax_rate)
    return subtotal, tax, subtotal + tax


def merge_order_lines(lines: List[Dict]) -> List[Dict]:
    merged: Dict[Tuple, Dict] = {}
    for line in lines:
        key = (line['menu_item_id'], line.get('variant_id'))
        if key in merged:
            merged[key]['quantity'] += line['quantity']
        else:
            merged[key] = dict(line)
    return list(merged.values())


def parse_request_lines(raw_items) -> List[Dict]:
    if not isinstance(raw_items, list):
        raise exceptions.ValidationException('items must be a list')
    lines = []
    for raw_item in raw_items:
        if not isinstance(raw_item, dict) or not raw_item.get('menu_item_id'):
            raise exceptions.MandatoryFieldsAreNotFilled('Each item requires menu_item_id')
        quantity = parse_quantity(raw_item.get('quantity', 1))
        if quantity < 1:
            raise exceptions.ValidationException(f'Quantity of {raw_item["menu_item_id"]} must be at least 1')
        lines.append({
            'menu_item_id': raw_item['menu_item_id'],
            'variant_id': raw_item.get('variant_id') or None,
            'quantity': quantity
        })
    return lines


def cart_to_lines(cart: Cart, order_date: date) -> List[Dict]:
    if cart.order_date != order_date.isoformat():
        return []
    lines = []
    for cart_key, quantity in cart.items.items():
        menu_item_id, variant_id = split_cart_key(cart_key)
        lines.append({'menu_item_id': menu_item_id, 'variant_id': variant_id, 'quantity': int(quantity)})
    return lines


class Order(EntityBase):
    """
    An order and its items are one db record, so they are always written and deleted together.
    """
    pk = keys_structure.orders_pk
    sk = keys_structure.orders_sk

    required_immutable_fields_validation = {
        'id_': lambda x: isinstance(x, str),
        'order_number': lambda x: isinstance(x, str),
        'user_id': lambda x: isinstance(x, str),
        'university_id': lambda x: isinstance(x, str),
        'order_date': lambda x: isinstance(x, str),
        'items': lambda x: isinstance(x, list) and len(x) > 0,
        'subtotal': lambda x: isinstance(x, Decimal),
        'tax_amount': lambda x: isinstance(x, Decimal),
        'total_amount': lambda x: isinstance(x, Decimal),
        'payment_method': lambda x: x in PAYMENT_METHODS,
        'date_created': lambda x: isinstance(x, str)
    }

    required_mutable_fields_validation = {
        'status_': lambda x: x in order_workflow.ORDER_STATUSES,
        'payment_status': lambda x: isinstance(x, str),
        'history': lambda x: isinstance(x, list),
        'date_updated': lambda x: isinstance(x, str)
    }

    optional_fields_validation = {
        'student_name': lambda x: isinstance(x, str),
        'student_email': lambda x: isinstance(x, str),
        'special_instructions': lambda x: isinstance(x, str),
        'tax_rate': lambda x: isinstance(x, Decimal)
    }

    def __init__(self, id_, **kwargs):
        EntityBase.__init__(self, id_)

        self.request_data = kwargs.get('request_data', {})

        self.order_number: str = kwargs.get('order_number')
        self.user_id: str = kwargs.get('user_id')
        self.student_name: str = kwargs.get('student_name')
        self.student_email: str = kwargs.get('student_email')
        self.university_id: str = kwargs.get('university_id')
        self.order_date: str = kwargs.get('order_date')
        self.items: List[Dict] = kwargs.get('items', [])
        self.subtotal: Decimal = utils_data.to_money(kwargs.get('subtotal'))
        self.tax_rate: Decimal = kwargs.get('tax_rate')
        self.tax_amount: Decimal = utils_data.to_money(kwargs.get('tax_amount'))
        self.total_amount: Decimal = utils_data.to_money(kwargs.get('total_amount'))
        self.payment_method: str = kwargs.get('payment_method', 'cash')
        self.payment_status: str = kwargs.get('payment_status', PAYMENT_PENDING)
        self.status_: str = kwargs.get('status_', order_workflow.PENDING)
        self.special_instructions: str = kwargs.get('special_instructions')
        self.history: list = kwargs.get('history', [])
        self.approved_at: str = kwargs.get('approved_at')
        self.completed_at: str = kwargs.get('completed_at')
        self.rejection_reason: str = kwargs.get('rejection_reason')
        self.cancellation_reason: str = kwargs.get('cancellation_reason')
        self.date_created: str = kwargs.get('date_created') or datetime.now().isoformat(timespec='seconds')
        self.date_updated: str = kwargs.get('date_updated') or self.date_created
        self.updated_by: str = kwargs.get('updated_by')
        self.record_type = 'order'

    @classmethod
    def init_get_by_id(cls, order_id):
        logger.info("init_get_by_id ::: started")
        c = cls(order_id)
        try:
            c.__init__(**c._get_db_item())
        except exceptions.RecordNotFound:
            raise exceptions.OrderNotFound(f'Order {order_id} not found')
        return c

    @classmethod
    def init_request_get_own_order(cls, request, order_id):
        c = cls.init_get_by_id(order_id)
        if c.user_id != request.auth_result['user_id']:
            raise exceptions.OrderNotFound(f'Order {order_id} not found')
        return c

    @classmethod
    def init_request_get_managed_order(cls, request, order_id):
        c = cls.init_get_by_id(order_id)
        auth_result = request.auth_result
        if auth_result['role'] == MANAGER and c.university_id != auth_result['university_id']:
            raise exceptions.AccessDenied('Cannot access orders from other universities')
        return c

    @classmethod
    def init_request_create(cls, request, now: Optional[datetime] = None):
        """
        Builds a new order from the request items or, when items are omitted, from the student's cart.
        Prices and totals are always computed here, a client total is only compared and logged.
        """
        logger.info("init_request_create ::: started")
        auth_result = request.auth_result
        request_body = utils_data.parse_raw_body(request)
        if not request_body.get('order_date'):
            raise exceptions.MandatoryFieldsAreNotFilled('order_date is required')
        order_date = ordering_time.parse_order_date(request_body['order_date'])

        payment_method = request_body.get('payment_method', 'cash')
        if payment_method not in PAYMENT_METHODS:
            raise exceptions.ValidationException(f'Invalid payment method {payment_method}')

        if request_body.get('items') is not None:
            lines = parse_request_lines(request_body['items'])
        else:
            lines = cart_to_lines(Cart.init_by_user_id(auth_result['user_id']), order_date)
        if not lines:
            raise exceptions.EmptyCart('Order must contain at least one item')
        if ordering_time.is_past_ordering_cutoff(order_date, now):
            cutoff = ordering_time.get_order_cutoff_time(order_date)
            raise exceptions.OrderingClosed(
                f'Ordering for {order_date.isoformat()} closed at {cutoff.isoformat()}')

        c = cls(
            id_=str(uuid4()),
            user_id=auth_result['user_id'],
            student_name=auth_result.get('name'),
            student_email=auth_result.get('email'),
            university_id=auth_result['university_id'],
            order_date=order_date.isoformat(),
            payment_method=payment_method,
            special_instructions=request_body.get('special_instructions'),
            request_data={'auth_result': auth_result}
        )
        c.fill_items(merge_order_lines(lines))
        c.calculate_amount(client_total=request_body.get('total_amount'))
        return c

    def fill_items(self, lines: List[Dict]):
        self.items = []
        for line in lines:
            try:
                menu_item = MenuItem.init_get_by_id(line['menu_item_id'])
            except exceptions.MenuItemNotFound:
                raise exceptions.SomeItemsAreNotAvailable(f"Menu item {line['menu_item_id']} is not available")
            if menu_item.university_id != self.university_id or not menu_item.is_available_on(self.order_date):
                raise exceptions.SomeItemsAreNotAvailable(
                    f'{menu_item.name_} is not available on {self.order_date}, '
                    f'please delete it from cart and recreate the order')
            max_quantity = menu_item.get_max_quantity(self.order_date)
            if max_quantity is not None and line['quantity'] > max_quantity:
                raise exceptions.SomeItemsAreNotAvailable(
                    f'Only {max_quantity} x {menu_item.name_} can be ordered for {self.order_date}')
            price, variant = menu_item.resolve_price(line.get('variant_id'))
            self.items.append({
                'menu_item_id': menu_item.id_,
                'name': menu_item.name_,
                'variant_id': variant['id'] if variant else None,
                'variant_name': variant['name'] if variant else None,
                'quantity': line['quantity'],
                'price': price,
                'line_total': price * line['quantity']
            })

    def calculate_amount(self, client_total=None):
        self.tax_rate = get_university_tax_rate(self.university_id)
        self.subtotal, self.tax_amount, self.total_amount = calculate_totals(self.items, self.tax_rate)
        client_total = utils_data.to_money(client_total)
        if client_total is not None and client_total != self.total_amount:
            logger.warning(f'calculate_amount ::: client total {client_total} differs from computed '
                           f'{self.total_amount} for order {self.id_}, using computed total')

    @utils_app.log_start_finish
    def endpoint_create_order(self) -> Response:
        self.order_number = next_order_number()
        self.history = [{
            'status': order_workflow.PENDING,
            'date': self.date_created,
            'changed_by': self.user_id
        }]
        self.updated_by = self.user_id
        self._create_db_record(condition_expression=Attr('partkey').not_exists())
        cart = Cart.init_by_user_id(self.user_id)
        # a cart kept for another collection date stays untouched
        if cart.order_date == self.order_date:
            cart.delete_db_record()
        return Response(status_code=http201, body={
            'message': 'Order placed successfully',
            'order': self.to_ui(with_qr=True)
        })

    @utils_app.log_start_finish
    def endpoint_get_by_id(self) -> Response:
        return Response(status_code=http200, body=self.to_ui(with_qr=True))

    @utils_app.log_start_finish
    def endpoint_change_status(self, new_status: str, changed_by: str, reason: Optional[str] = None) -> Response:
        self.transition(new_status, changed_by, reason)
        return Response(status_code=http200, body=self.to_ui(with_qr=True))

    @utils_app.log_start_finish
    def endpoint_delete_order(self) -> Response:
        self._delete_db_record()
        return Response(status_code=http200, body={'message': 'Order was successfully deleted', 'id': self.id_})

    def transition(self, new_status: str, changed_by: str, reason: Optional[str] = None):
        """
        Moves the order to new_status only if its stored status is still the one read before.
        Raises InvalidStatusTransition for moves outside the workflow, StatusConflict if the order changed meanwhile.
        """
        expected_status = self.status_
        order_workflow.check_transition(expected_status, new_status)
        fields, history_entry = order_workflow.get_transition_fields(new_status, changed_by, reason)

        expr_attr_names = {'#status_expected': 'status_', '#history': 'history'}
        expr_attr_values = {
            ':status_expected': expected_status,
            ':empty_list': [],
            ':history_entry': [history_entry]
        }
        set_parts = ['#history = list_append(if_not_exists(#history, :empty_list), :history_entry)']
        for field, value in fields.items():
            expr_attr_names[f'#{field}'] = field
            expr_attr_values[f':{field}'] = value
            set_parts.append(f'#{field} = :{field}')

        try:
            updated_record = utils_db.conditional_update(
                key=self._db_key(),
                update_expression='SET ' + ', '.join(set_parts),
                expr_attr_values=expr_attr_values,
                condition_expression='#status_expected = :status_expected',
                expr_attr_names=expr_attr_names
            )
        except exceptions.ConditionalCheckFailed:
            current_status = self._get_current_status()
            logger.warning(f'transition ::: order {self.id_} expected {expected_status} -> {new_status}, '
                           f'but it is {current_status} now')
            raise exceptions.StatusConflict(
                f'Order {self.order_number} was changed by someone else, current status is {current_status}')
        logger.info(f'transition ::: order {self.id_} {expected_status} -> {new_status} by {changed_by}')
        self.__init__(**updated_record)

    def _get_current_status(self) -> Optional[str]:
        try:
            return self._get_db_item().get('status_')
        except exceptions.RecordNotFound:
            return None

    def _get_pk_sk(self) -> Tuple[str, str]:
        return self.pk, self.sk.format(order_id=self.id_)

    def _to_dict(self):
        return {
            'id_': self.id_,
            'order_number': self.order_number,
            'user_id': self.user_id,
            'student_name': self.student_name,
            'student_email': self.student_email,
            'university_id': self.university_id,
            'order_date': self.order_date,
            'items': self.items,
            'subtotal': self.subtotal,
            'tax_rate': self.tax_rate,
            'tax_amount': self.tax_amount,
            'total_amount': self.total_amount,
            'payment_method': self.payment_method,
            'payment_status': self.payment_status,
            'status_': self.status_,
            'special_instructions': self.special_instructions,
            'history': self.history,
            'approved_at': self.approved_at,
            'completed_at': self.completed_at,
            'rejection_reason': self.rejection_reason,
            'cancellation_reason': self.cancellation_reason,
            'date_created': self.date_created,
            'date_updated': self.date_updated,
            'updated_by': self.updated_by
        }

    def _init_db_record(self):
        EntityBase._init_db_record(self)
        self.db_record.update(get_order_index_keys(self.id_, self.user_id, self.university_id,
                                                   self.order_date, self.date_created))
        self.db_record = {key: value for key, value in self.db_record.items() if value is not None}

    def to_ui(self, with_qr: bool = False):
        item = self._to_ui()
        if with_qr:
            item['qr_payload'] = qr_codes.dump_qr_payload(qr_codes.build_qr_payload(self._to_dict()))
        return item


def get_order_index_keys(order_id: str, user_id: str, university_id: str, order_date: str, date_created: str) -> Dict:
    return {
        'gsi_user_pk': keys_structure.gsi_user_orders_pk.format(user_id=user_id),
        'gsi_user_sk': keys_structure.gsi_user_orders_sk.format(date_created=date_created, order_id=order_id),
        'gsi_university_pk': keys_structure.gsi_university_orders_pk.format(university_id=university_id),
        'gsi_university_sk': keys_structure.gsi_university_orders_sk.format(order_date=order_date, order_id=order_id)
    }


def get_db_orders(university_id: Optional[str] = None, user_id: Optional[str] = None,
                  status: Optional[str] = None, order_date: Optional[str] = None) -> List[Dict]:
    """
    Student orders are read from the user index, university orders from the university index
    (narrowed to one collection date when order_date is given). Only an unscoped admin listing reads all orders.
    """
    index_name = None
    if user_id:
        index_name = keys_structure.user_orders_index
        key_condition = Key('gsi_user_pk').eq(keys_structure.gsi_user_orders_pk.format(user_id=user_id))
    elif university_id:
        index_name = keys_structure.university_orders_index
        key_condition = Key('gsi_university_pk').eq(
            keys_structure.gsi_university_orders_pk.format(university_id=university_id))
        if order_date:
            key_condition = key_condition & Key('gsi_university_sk').begins_with(f'{order_date}_')
    else:
        key_condition = Key('partkey').eq(keys_structure.orders_pk)

    filter_expression = None
    for attr_name, value in (('university_id', university_id), ('status_', status), ('order_date', order_date)):
        if value:
            condition = Attr(attr_name).eq(value)
            filter_expression = condition if filter_expression is None else filter_expression & condition
    records = utils_db.query_items_paged(key_condition, filter_expression=filter_expression, index_name=index_name)
    # newest first
    return sorted(records, key=lambda record: (record.get('date_created', ''), record.get('order_number', '')),
                  reverse=True)


def get_status_filter(qp: Dict, default: Optional[str] = None) -> Optional[str]:
    status = qp.get('status', default)
    if status in (None, '', 'all'):
        return None
    return order_workflow.validate_status(status.upper())


def parse_positive_int(value, default: int, name: str) -> int:
    if value in (None, ''):
        return default
    try:
        value = int(value)
    except (TypeError, ValueError):
        raise exceptions.ValidationException(f'{name} must be a positive integer')
    if value < 1:
        raise exceptions.ValidationException(f'{name} must be a positive integer')
    return value


@utils_app.request_exception_handler
@utils_auth.authenticate
def endpoint_create_order(request) -> Response:
    utils_auth.require_roles(request.auth_result, (STUDENT,))
    return Order.init_request_create(request).endpoint_create_order()


@utils_app.request_exception_handler
@utils_auth.authenticate
def endpoint_get_student_orders(request) -> Response:
    auth_result = request.auth_result
    utils_auth.require_roles(auth_result, (STUDENT,))
    qp = request.query_params or {}
    page = parse_positive_int(qp.get('page'), 1, 'page')
    limit = min(parse_positive_int(qp.get('limit'), DEFAULT_PAGE_SIZE, 'limit'), MAX_PAGE_SIZE)
    db_records = get_db_orders(user_id=auth_result['user_id'], status=get_status_filter(qp))
    total = len(db_records)
    page_records = db_records[(page - 1) * limit: page * limit]
    return Response(
        status_code=http200,
        body={
            'orders': [Order(**record).to_ui() for record in page_records],
            'pagination': {
                'page': page,
                'limit': limit,
                'total': total,
                'has_more': page * limit < total
            }
        }
    )


@utils_app.request_exception_handler
@utils_auth.authenticate
def endpoint_get_student_order(request, order_id) -> Response:
    utils_auth.require_roles(request.auth_result, (STUDENT,))
    return Order.init_request_get_own_order(request, order_id).endpoint_get_by_id()


@utils_app.request_exception_handler
@utils_auth.authenticate
def endpoint_get_admin_orders(request) -> Response:
    auth_result = request.auth_result
    utils_auth.require_roles(auth_result, (MANAGER, ADMIN))
    qp = request.query_params or {}
    if auth_result['role'] == MANAGER:
        university_id = auth_result['university_id']
    else:
        university_id = qp.get('university_id')
    order_date = ordering_time.parse_order_date(qp['date']).isoformat() if qp.get('date') else None
    db_records = get_db_orders(university_id=university_id, status=get_status_filter(qp), order_date=order_date)
    logger.info(f'endpoint_get_admin_orders ::: returning {len(db_records)} orders')
    return Response(status_code=http200, body={'orders': [Order(**record).to_ui() for record in db_records]})


@utils_app.request_exception_handler
@utils_auth.authenticate
def endpoint_get_admin_order(request, order_id) -> Response:
    utils_auth.require_roles(request.auth_result, (MANAGER, ADMIN))
    return Order.init_request_get_managed_order(request, order_id).endpoint_get_by_id()


@utils_app.request_exception_handler
@utils_auth.authenticate
def endpoint_update_order_status(request, order_id) -> Response:
    utils_auth.require_roles(request.auth_result, (MANAGER, ADMIN))
    request_body = utils_data.parse_raw_body(request)
    if not request_body.get('status'):
        raise exceptions.MandatoryFieldsAreNotFilled('status is required')
    new_status = order_workflow.validate_status(str(request_body['status']).upper())
    reason = request_body.get('reason') or request_body.get('rejection_reason') or \
        request_body.get('cancellation_reason')
    return Order.init_request_get_managed_order(request, order_id).endpoint_change_status(
        new_status, request.auth_result['user_id'], reason)


@utils_app.request_exception_handler
@utils_auth.authenticate
def endpoint_delete_order(request, order_id) -> Response:
    utils_auth.require_roles(request.auth_result, (ADMIN,))
    return Order.init_get_by_id(order_id).endpoint_delete_order()


def notifications_email_from() -> Optional[str]:
    return os.environ.get('ORDER_NOTIFICATION_EMAIL_FROM') or None


@utils_app.log_start_finish
def db_trigger_order_record(record_old: dict, record_new: dict, event_id: str, event_name: str):
    logger.info(f'db_trigger_order_record ::: order={record_new.get("id_") or record_old.get("id_")}, '
                f'{event_id=}, {event_name=}')
    if event_name.lower() == 'insert':
        logger.info(f'db_trigger_order_record ::: new order '
                    f'{email_templates.get_new_order_notification_message(record_new)}')
        return None
    if event_name.lower() != 'modify' or record_old.get('status_') == record_new.get('status_'):
        return None
    status = record_new.get('status_')
    message = email_templates.get_order_status_message(
        status, record_new.get('rejection_reason') or record_new.get('cancellation_reason'))
    logger.info(f'db_trigger_order_record ::: order {record_new.get("order_number")} '
                f'{record_old.get("status_")} -> {status}, notification: {message}')
    email_from = notifications_email_from()
    if email_from and record_new.get('student_email'):
        return utils_notifications.send_email_ses(
            [record_new['student_email']],
            email_from,
            email_templates.get_order_status_notification_subject(record_new),
            email_templates.get_order_status_notification_message(record_new)
        )
    return None
