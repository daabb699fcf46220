from datetime import datetime
from decimal import Decimal
from typing import Tuple, List, Dict, Optional

from chalice import Response

from chalicelib.base_class_entity import EntityBase
from chalicelib.constants import keys_structure
from chalicelib.constants.constants import STUDENT
from chalicelib.constants.status_codes import http200
from chalicelib.menu_items import MenuItem
from chalicelib.utils import auth as utils_auth, db as utils_db, app as utils_app, data as utils_data, exceptions
from chalicelib.utils import ordering_time
from chalicelib.utils.logger import logger

CART_KEY_SEPARATOR = ':'


def make_cart_key(menu_item_id: str, variant_id: Optional[str] = None) -> str:
    return f'{menu_item_id}{CART_KEY_SEPARATOR}{variant_id}' if variant_id else menu_item_id


def split_cart_key(cart_key: str) -> Tuple[str, Optional[str]]:
    menu_item_id, _, variant_id = cart_key.partition(CART_KEY_SEPARATOR)
    return menu_item_id, variant_id or None


def parse_quantity(quantity) -> int:
    if isinstance(quantity, bool) or not isinstance(quantity, (int, Decimal)) or int(quantity) != quantity:
        raise exceptions.ValidationException(f'Invalid quantity {quantity}, expected an integer')
    return int(quantity)


class Cart(EntityBase):
    """
    One cart per student, scoped to a single collection date.
    Lines are stored as a map "<menu_item_id>[:<variant_id>]" -> quantity.
    """
    pk = keys_structure.carts_pk
    sk = keys_structure.carts_sk

    required_immutable_fields_validation = {
        'id_': lambda x: isinstance(x, str),
    }

    required_mutable_fields_validation = {
        'order_date': lambda x: isinstance(x, str),
        'items': lambda x: isinstance(x, dict),
        'date_updated': lambda x: isinstance(x, str)
    }

    def __init__(self, id_, university_id=None):
        EntityBase.__init__(self, id_)

        self.university_id: str = university_id
        self.order_date: Optional[str] = None
        self.items: Dict = {}
        self.date_updated: Optional[str] = None
        self.record_type: str = 'cart'

    def _fill_db_item(self):
        try:
            self.db_record = self._get_db_item()
            self.order_date = self.db_record.get('order_date')
            self.items = {key: int(qty) for key, qty in self.db_record.get('items', {}).items()}
            self.date_updated = self.db_record.get('date_updated')
        except exceptions.RecordNotFound:
            self.order_date = None
            self.items = {}

    @classmethod
    def init_by_user_id(cls, user_id, university_id=None):
        c = cls(id_=user_id, university_id=university_id)
        c._fill_db_item()
        return c

    @classmethod
    def init_endpoint(cls, request):
        logger.info("init_endpoint ::: started")
        auth_result = request.auth_result
        return cls.init_by_user_id(auth_result['user_id'], auth_result['university_id'])

    def switch_date(self, order_date) -> bool:
        """
        Lines belong to one collection date, moving the cart to another date discards them.
        Returns True if lines were discarded.
        """
        order_date = ordering_time.parse_order_date(order_date).isoformat()
        if self.order_date == order_date:
            return False
        discarded = bool(self.items)
        if discarded:
            logger.info(f'switch_date ::: cart {self.id_} moved {self.order_date} -> {order_date}, lines discarded')
        self.order_date = order_date
        self.items = {}
        return discarded

    def set_quantity(self, menu_item_id: str, variant_id: Optional[str], quantity: int):
        key = make_cart_key(menu_item_id, variant_id)
        if quantity <= 0:
            self.items.pop(key, None)
            return
        menu_item = MenuItem.init_get_by_id(menu_item_id)
        if menu_item.university_id != self.university_id:
            raise exceptions.MenuItemNotFound(f'Menu item {menu_item_id} not found')
        if not menu_item.is_available_on(self.order_date):
            raise exceptions.SomeItemsAreNotAvailable(f'{menu_item.name_} is not available on {self.order_date}')
        menu_item.resolve_price(variant_id)
        self.items[key] = quantity

    def get_lines(self) -> List[Dict]:
        """
        Cart lines with current menu data. Lines whose item or variant is gone are dropped.
        """
        lines = []
        for key, quantity in list(self.items.items()):
            menu_item_id, variant_id = split_cart_key(key)
            try:
                menu_item = MenuItem.init_get_by_id(menu_item_id)
                if not menu_item.is_available_on(self.order_date):
                    raise exceptions.SomeItemsAreNotAvailable(f'{menu_item_id} is not available')
                price, variant = menu_item.resolve_price(variant_id)
            except (exceptions.MenuItemNotFound, exceptions.SomeItemsAreNotAvailable) as error:
                logger.warning(f'get_lines ::: removing line {key} from cart {self.id_}, {error}')
                self.items.pop(key)
                continue
            lines.append({
                'key': key,
                'menu_item_id': menu_item_id,
                'variant_id': variant['id'] if variant else None,
                'name': menu_item.name_,
                'variant_name': variant['name'] if variant else None,
                'quantity': quantity,
                'price': price,
                'line_total': price * quantity
            })
        return lines

    def save(self):
        self.date_updated = datetime.now().isoformat(timespec="seconds")
        if not self.items:
            self.delete_db_record()
            return
        self._init_db_record()
        self._validate_mandatory_fields()
        utils_db.put_db_record(self.db_record)
        logger.info(f"save ::: cart {self.id_} saved with {len(self.items)} lines")

    @utils_app.log_start_finish
    def endpoint_get_cart(self, order_date=None):
        message = None
        if order_date and self.switch_date(order_date):
            self.save()
            message = 'Your cart was for another date and has been cleared'
        lines_count = len(self.items)
        lines = self.get_lines()
        if len(lines) != lines_count:
            self.save()
            message = 'Some items in your cart are no longer available and were deleted from the cart'
        return Response(status_code=http200, body={'cart': self._to_ui(lines), 'message': message})

    @utils_app.log_start_finish
    def endpoint_update_cart(self, request_body: Dict):
        if not request_body.get('order_date'):
            raise exceptions.MandatoryFieldsAreNotFilled('order_date is required')
        message = None
        if self.switch_date(request_body['order_date']):
            message = 'Your cart was for another date and has been cleared'
        updates = request_body.get('items')
        if updates is None:
            updates = [request_body]
        if not isinstance(updates, list):
            raise exceptions.ValidationException('items must be a list')
        for update in updates:
            if not isinstance(update, dict) or not update.get('menu_item_id') or 'quantity' not in update:
                raise exceptions.MandatoryFieldsAreNotFilled('menu_item_id and quantity are required')
            self.set_quantity(update['menu_item_id'], update.get('variant_id'), parse_quantity(update['quantity']))
        self.save()
        return Response(status_code=http200, body={'cart': self._to_ui(self.get_lines()), 'message': message})

    @utils_app.log_start_finish
    def endpoint_clear_cart(self):
        self.delete_db_record()
        return Response(status_code=http200, body={'message': 'Cart was successfully cleared'})

    def _get_pk_sk(self) -> Tuple[str, str]:
        return self.pk, self.sk.format(user_id=self.id_)

    def _to_dict(self):
        return {
            'id_': self.id_,
            'order_date': self.order_date,
            'items': self.items,
            'date_updated': self.date_updated
        }

    def _to_ui(self, lines: List[Dict] = None):
        item = super()._to_ui()
        if lines is not None:
            item['lines'] = lines
            item['subtotal'] = sum((line['line_total'] for line in lines), Decimal('0.00'))
        return item

    def delete_db_record(self):
        self._delete_db_record()


@utils_app.request_exception_handler
@utils_auth.authenticate
def endpoint_get_cart(request) -> Response:
    utils_auth.require_roles(request.auth_result, (STUDENT,))
    qp = request.query_params or {}
    return Cart.init_endpoint(request).endpoint_get_cart(qp.get('date'))


@utils_app.request_exception_handler
@utils_auth.authenticate
def endpoint_update_cart(request) -> Response:
    utils_auth.require_roles(request.auth_result, (STUDENT,))
    return Cart.init_endpoint(request).endpoint_update_cart(utils_data.parse_raw_body(request))


@utils_app.request_exception_handler
@utils_auth.authenticate
def endpoint_clear_cart(request) -> Response:
    utils_auth.require_roles(request.auth_result, (STUDENT,))
    return Cart.init_endpoint(request).endpoint_clear_cart()
