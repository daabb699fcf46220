import pytest

from chalicelib import order_workflow, qr_codes
from chalicelib.constants import keys_structure
from chalicelib.constants.status_codes import http200, http400, http403, http404
from chalicelib.utils import db
from test.utils import records_data
from test.utils.request_utils import make_request

from test.utils.fixtures import chalice_gateway, aws_environment


def create_test_kitchen():
    university = records_data.put_records(records_data.get_university_record())
    caterer = records_data.put_user(university['id_'], role='CATERER', name='Kitchen Lead')
    student = records_data.put_user(university['id_'], name='Asha Nair')
    dosa = records_data.put_records(records_data.get_menu_item_record(university['id_']))
    return university, caterer, student, dosa


def get_order_db_record(order_id):
    return db.get_db_item(keys_structure.orders_pk, keys_structure.orders_sk.format(order_id=order_id))


@pytest.mark.local_db_test
def test_get_caterer_orders(chalice_gateway):
    university, caterer, student, dosa = create_test_kitchen()
    other_university = records_data.put_records(records_data.get_university_record())
    other_student = records_data.put_user(other_university['id_'])
    records_data.put_records(
        records_data.get_order_record(student, dosa, order_number='AH000001', status=order_workflow.READY),
        records_data.get_order_record(student, dosa, order_number='AH000002', status=order_workflow.PREPARING),
        records_data.get_order_record(student, dosa, order_number='AH000003', status=order_workflow.READY,
                                      order_date=records_data.future_order_date()),
        records_data.get_order_record(other_student, dosa, order_number='AH000004', status=order_workflow.READY)
    )
    token = records_data.get_token(caterer)

    response = make_request(chalice_gateway, endpoint='/api/caterer/orders', token=token)
    assert response.status_code == http200
    assert response.json_body['date'] == records_data.today_order_date()
    assert [order['order_number'] for order in response.json_body['orders']] == ['AH000001']

    response = make_request(chalice_gateway, endpoint='/api/caterer/orders', query='status=all', token=token)
    assert sorted(order['order_number'] for order in response.json_body['orders']) == ['AH000001', 'AH000002']


@pytest.mark.local_db_test
def test_serve_order(chalice_gateway):
    _, caterer, student, dosa = create_test_kitchen()
    order = records_data.put_records(records_data.get_order_record(student, dosa, status=order_workflow.READY))
    token = records_data.get_token(caterer)

    response = make_request(chalice_gateway, endpoint=f"/api/caterer/orders/{order['id_']}/serve", method='POST',
                            token=token)
    assert response.status_code == http200, response.json_body
    assert response.json_body['order']['status'] == 'SERVED'
    assert response.json_body['order']['student_name'] == 'Asha Nair'
    assert response.json_body['order']['completed_at']

    db_record = get_order_db_record(order['id_'])
    assert db_record['status_'] == 'SERVED'
    assert db_record['history'][-1] == {'status': 'SERVED', 'date': db_record['completed_at'],
                                        'changed_by': caterer['id_']}

    response = make_request(chalice_gateway, endpoint=f"/api/caterer/orders/{order['id_']}/serve", method='POST',
                            token=token)
    assert response.status_code == http400
    assert response.json_body['exception'] == 'OrderNotReady'


@pytest.mark.local_db_test
def test_serve_order_which_is_not_ready(chalice_gateway):
    _, caterer, student, dosa = create_test_kitchen()
    order = records_data.put_records(records_data.get_order_record(student, dosa, status=order_workflow.PREPARING))

    response = make_request(chalice_gateway, endpoint=f"/api/caterer/orders/{order['id_']}/serve", method='POST',
                            token=records_data.get_token(caterer))

    assert response.status_code == http400
    assert get_order_db_record(order['id_'])['status_'] == 'PREPARING'


@pytest.mark.local_db_test
def test_serve_order_of_other_university(chalice_gateway):
    _, caterer, _, dosa = create_test_kitchen()
    other_university = records_data.put_records(records_data.get_university_record())
    other_student = records_data.put_user(other_university['id_'])
    order = records_data.put_records(records_data.get_order_record(other_student, dosa, status=order_workflow.READY))

    response = make_request(chalice_gateway, endpoint=f"/api/caterer/orders/{order['id_']}/serve", method='POST',
                            token=records_data.get_token(caterer))

    assert response.status_code == http403
    assert get_order_db_record(order['id_'])['status_'] == 'READY'


@pytest.mark.local_db_test
def test_scan_order(chalice_gateway):
    _, caterer, student, dosa = create_test_kitchen()
    order = records_data.put_records(records_data.get_order_record(student, dosa, status=order_workflow.READY))
    token = records_data.get_token(caterer)
    qr_data = qr_codes.dump_qr_payload(qr_codes.build_qr_payload(order))

    response = make_request(chalice_gateway, endpoint='/api/caterer/scan', method='POST',
                            json_body={'qr_data': qr_data}, token=token)
    assert response.status_code == http200, response.json_body
    assert response.json_body['order']['id'] == order['id_']
    assert response.json_body['order']['status'] == 'SERVED'

    response = make_request(chalice_gateway, endpoint='/api/caterer/scan', method='POST',
                            json_body={'qr_data': qr_data}, token=token)
    assert response.status_code == http400
    assert response.json_body['exception'] == 'OrderNotReady'


@pytest.mark.local_db_test
def test_scan_order_by_decoded_payload(chalice_gateway):
    _, caterer, student, dosa = create_test_kitchen()
    order = records_data.put_records(records_data.get_order_record(student, dosa, status=order_workflow.READY,
                                                                   order_number='AH000042'))

    response = make_request(chalice_gateway, endpoint='/api/caterer/scan', method='POST',
                            json_body={'payload': {'orderNumber': 'AH000042'}},
                            token=records_data.get_token(caterer))

    assert response.status_code == http200
    assert response.json_body['order']['order_number'] == 'AH000042'
    assert get_order_db_record(order['id_'])['status_'] == 'SERVED'


@pytest.mark.local_db_test
def test_scan_invalid_payload(chalice_gateway):
    _, caterer, _, _ = create_test_kitchen()
    token = records_data.get_token(caterer)

    response = make_request(chalice_gateway, endpoint='/api/caterer/scan', method='POST',
                            json_body={'qr_data': 'https://example.com/menu'}, token=token)
    assert response.status_code == http400
    assert response.json_body['exception'] == 'InvalidQRPayload'

    response = make_request(chalice_gateway, endpoint='/api/caterer/scan', method='POST', json_body={}, token=token)
    assert response.status_code == http400


@pytest.mark.local_db_test
def test_scan_order_of_other_day(chalice_gateway):
    _, caterer, student, dosa = create_test_kitchen()
    order = records_data.put_records(records_data.get_order_record(
        student, dosa, status=order_workflow.READY, order_date=records_data.future_order_date()))

    response = make_request(chalice_gateway, endpoint='/api/caterer/scan', method='POST',
                            json_body={'qr_data': qr_codes.dump_qr_payload(qr_codes.build_qr_payload(order))},
                            token=records_data.get_token(caterer))

    assert response.status_code == http404


@pytest.mark.local_db_test
def test_student_cannot_serve(chalice_gateway):
    _, _, student, dosa = create_test_kitchen()
    order = records_data.put_records(records_data.get_order_record(student, dosa, status=order_workflow.READY))

    response = make_request(chalice_gateway, endpoint=f"/api/caterer/orders/{order['id_']}/serve", method='POST',
                            token=records_data.get_token(student))

    assert response.status_code == http403
