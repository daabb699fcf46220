import pytest

from chalicelib.carts import make_cart_key, split_cart_key, parse_quantity
from chalicelib.constants import keys_structure
from chalicelib.constants.status_codes import http200, http400, http403, http404
from chalicelib.utils import db, exceptions
from test.utils import records_data
from test.utils.request_utils import make_request

from test.utils.fixtures import chalice_gateway, aws_environment


def create_test_menu(order_date=None):
    university = records_data.put_records(records_data.get_university_record())
    student = records_data.put_user(university['id_'])
    dosa = records_data.get_menu_item_record(university['id_'])
    idli = records_data.get_menu_item_record(university['id_'], name='Idli', base_price='30', variants=[
        records_data.get_variant('Plate', '30', is_default=True)
    ], availability={order_date: {'is_available': False}} if order_date else None)
    records_data.put_records(dosa, idli)
    return university, student, dosa, idli


def get_cart_db_item(user_id):
    return db.get_gen_table().get_item(Key={
        'partkey': keys_structure.carts_pk,
        'sortkey': keys_structure.carts_sk.format(user_id=user_id)
    }).get('Item')


def test_cart_key():
    assert make_cart_key('item-1') == 'item-1'
    assert make_cart_key('item-1', 'variant-1') == 'item-1:variant-1'
    assert split_cart_key('item-1:variant-1') == ('item-1', 'variant-1')
    assert split_cart_key('item-1') == ('item-1', None)


def test_parse_quantity():
    assert parse_quantity(3) == 3
    for quantity in ('3', 1.5, True, None):
        with pytest.raises(exceptions.ValidationException):
            parse_quantity(quantity)


@pytest.mark.local_db_test
def test_add_items_to_cart(chalice_gateway):
    _, student, dosa, _ = create_test_menu()
    regular, large = dosa['variants']
    order_date = records_data.future_order_date()
    token = records_data.get_token(student)

    response = make_request(chalice_gateway, endpoint='/api/cart', method='POST', token=token, json_body={
        'order_date': order_date, 'menu_item_id': dosa['id_'], 'variant_id': regular['id'], 'quantity': 2})
    assert response.status_code == http200, response.json_body

    response = make_request(chalice_gateway, endpoint='/api/cart', method='POST', token=token, json_body={
        'order_date': order_date, 'items': [{'menu_item_id': dosa['id_'], 'variant_id': large['id'], 'quantity': 1}]})
    assert response.status_code == http200

    cart = response.json_body['cart']
    assert cart['order_date'] == order_date
    assert cart['subtotal'] == 150
    assert sorted((line['variant_name'], line['quantity'], line['line_total']) for line in cart['lines']) == [
        ('Large', 1, 60), ('Regular', 2, 90)]

    db_item = get_cart_db_item(student['id_'])
    assert db_item['items'] == {make_cart_key(dosa['id_'], regular['id']): 2,
                                make_cart_key(dosa['id_'], large['id']): 1}


@pytest.mark.local_db_test
def test_get_cart(chalice_gateway):
    _, student, dosa, _ = create_test_menu()
    order_date = records_data.future_order_date()
    token = records_data.get_token(student)
    make_request(chalice_gateway, endpoint='/api/cart', method='POST', token=token, json_body={
        'order_date': order_date, 'menu_item_id': dosa['id_'], 'quantity': 3})

    response = make_request(chalice_gateway, endpoint='/api/cart', token=token)

    assert response.status_code == http200
    assert response.json_body['message'] is None
    assert response.json_body['cart']['subtotal'] == 135
    assert response.json_body['cart']['lines'][0]['variant_name'] == 'Regular'


@pytest.mark.local_db_test
def test_quantity_zero_removes_line(chalice_gateway):
    _, student, dosa, idli = create_test_menu()
    order_date = records_data.future_order_date()
    token = records_data.get_token(student)
    make_request(chalice_gateway, endpoint='/api/cart', method='POST', token=token, json_body={
        'order_date': order_date, 'items': [{'menu_item_id': dosa['id_'], 'quantity': 1},
                                            {'menu_item_id': idli['id_'], 'quantity': 2}]})

    response = make_request(chalice_gateway, endpoint='/api/cart', method='POST', token=token, json_body={
        'order_date': order_date, 'menu_item_id': dosa['id_'], 'quantity': 0})
    assert [line['name'] for line in response.json_body['cart']['lines']] == ['Idli']

    response = make_request(chalice_gateway, endpoint='/api/cart', method='POST', token=token, json_body={
        'order_date': order_date, 'menu_item_id': idli['id_'], 'quantity': 0})
    assert response.json_body['cart']['lines'] == []
    assert get_cart_db_item(student['id_']) is None


@pytest.mark.local_db_test
def test_cart_date_switch_clears_lines(chalice_gateway):
    _, student, dosa, _ = create_test_menu()
    order_date = records_data.future_order_date()
    next_date = records_data.future_order_date(days=8)
    token = records_data.get_token(student)
    make_request(chalice_gateway, endpoint='/api/cart', method='POST', token=token, json_body={
        'order_date': order_date, 'menu_item_id': dosa['id_'], 'quantity': 1})

    response = make_request(chalice_gateway, endpoint='/api/cart', query=f'date={next_date}', token=token)

    assert response.status_code == http200
    assert response.json_body['cart']['lines'] == []
    assert 'another date' in response.json_body['message']
    assert get_cart_db_item(student['id_']) is None

    make_request(chalice_gateway, endpoint='/api/cart', method='POST', token=token, json_body={
        'order_date': order_date, 'menu_item_id': dosa['id_'], 'quantity': 1})
    response = make_request(chalice_gateway, endpoint='/api/cart', method='POST', token=token, json_body={
        'order_date': next_date, 'menu_item_id': dosa['id_'], 'quantity': 4})
    assert 'another date' in response.json_body['message']
    assert response.json_body['cart']['order_date'] == next_date
    assert [line['quantity'] for line in response.json_body['cart']['lines']] == [4]


@pytest.mark.local_db_test
def test_add_unavailable_item(chalice_gateway):
    order_date = records_data.future_order_date()
    _, student, _, idli = create_test_menu(order_date)

    response = make_request(chalice_gateway, endpoint='/api/cart', method='POST',
                            token=records_data.get_token(student), json_body={
                                'order_date': order_date, 'menu_item_id': idli['id_'], 'quantity': 1})

    assert response.status_code == http400
    assert response.json_body['exception'] == 'SomeItemsAreNotAvailable'


@pytest.mark.local_db_test
def test_add_item_of_other_university(chalice_gateway):
    _, student, _, _ = create_test_menu()
    other_university = records_data.put_records(records_data.get_university_record())
    other_item = records_data.put_records(records_data.get_menu_item_record(other_university['id_']))

    response = make_request(chalice_gateway, endpoint='/api/cart', method='POST',
                            token=records_data.get_token(student), json_body={
                                'order_date': records_data.future_order_date(),
                                'menu_item_id': other_item['id_'], 'quantity': 1})

    assert response.status_code == http404


@pytest.mark.local_db_test
def test_update_cart_validation(chalice_gateway):
    _, student, dosa, _ = create_test_menu()
    token = records_data.get_token(student)

    response = make_request(chalice_gateway, endpoint='/api/cart', method='POST', token=token,
                            json_body={'menu_item_id': dosa['id_'], 'quantity': 1})
    assert response.status_code == http400

    response = make_request(chalice_gateway, endpoint='/api/cart', method='POST', token=token, json_body={
        'order_date': records_data.future_order_date(), 'menu_item_id': dosa['id_'], 'quantity': 1.5})
    assert response.status_code == http400

    response = make_request(chalice_gateway, endpoint='/api/cart', method='POST', token=token, json_body={
        'order_date': records_data.future_order_date(), 'menu_item_id': dosa['id_'], 'variant_id': 'missing',
        'quantity': 1})
    assert response.status_code == http400


@pytest.mark.local_db_test
def test_archived_item_is_dropped_from_cart(chalice_gateway):
    _, student, dosa, idli = create_test_menu()
    order_date = records_data.future_order_date()
    token = records_data.get_token(student)
    make_request(chalice_gateway, endpoint='/api/cart', method='POST', token=token, json_body={
        'order_date': order_date, 'items': [{'menu_item_id': dosa['id_'], 'quantity': 1},
                                            {'menu_item_id': idli['id_'], 'quantity': 1}]})
    records_data.put_records({**idli, 'archived': True, 'is_active': False})

    response = make_request(chalice_gateway, endpoint='/api/cart', token=token)

    assert [line['name'] for line in response.json_body['cart']['lines']] == ['Masala Dosa']
    assert 'no longer available' in response.json_body['message']
    assert len(get_cart_db_item(student['id_'])['items']) == 1


@pytest.mark.local_db_test
def test_clear_cart(chalice_gateway):
    _, student, dosa, _ = create_test_menu()
    token = records_data.get_token(student)
    make_request(chalice_gateway, endpoint='/api/cart', method='POST', token=token, json_body={
        'order_date': records_data.future_order_date(), 'menu_item_id': dosa['id_'], 'quantity': 1})

    response = make_request(chalice_gateway, endpoint='/api/cart', method='DELETE', token=token)

    assert response.status_code == http200
    assert get_cart_db_item(student['id_']) is None


@pytest.mark.local_db_test
def test_staff_has_no_cart(chalice_gateway):
    university, _, _, _ = create_test_menu()
    manager = records_data.put_user(university['id_'], role='MANAGER', name='Hostel Manager')

    response = make_request(chalice_gateway, endpoint='/api/cart', token=records_data.get_token(manager))

    assert response.status_code == http403
