import json
from datetime import datetime, timezone

import pytest

from chalicelib import qr_codes
from chalicelib.utils import exceptions
from test.utils import records_data


def get_order_record():
    student = {'id_': 'student-1', 'name_': 'Asha Nair', 'email': 'asha@hostel.test', 'university_id': 'uni-1'}
    return records_data.get_order_record(student, records_data.get_menu_item_record('uni-1'), quantity=2)


def test_build_qr_payload():
    order_record = get_order_record()

    payload = qr_codes.build_qr_payload(order_record, now=datetime(2030, 1, 10, 7, 0, tzinfo=timezone.utc))

    assert payload == {
        'orderId': order_record['id_'],
        'orderNumber': 'AH000001',
        'studentName': 'Asha Nair',
        'totalAmount': order_record['total_amount'],
        'status': 'PENDING',
        'timestamp': '2030-01-10T07:00:00+00:00',
        'items': [{'name': 'Masala Dosa', 'quantity': 2, 'variant': 'Regular'}]
    }


def test_dump_and_parse_qr_payload():
    order_record = get_order_record()
    raw_payload = qr_codes.dump_qr_payload(qr_codes.build_qr_payload(order_record))

    assert json.loads(raw_payload)['totalAmount'] == 99.0
    payload = qr_codes.parse_qr_payload(raw_payload)
    assert qr_codes.payload_matches_order(payload, order_record) is True


def test_parse_decoded_qr_payload():
    assert qr_codes.parse_qr_payload({'orderNumber': 'AH000001'}) == {'orderNumber': 'AH000001'}


@pytest.mark.parametrize('raw_payload', [
    'not json',
    '[1, 2, 3]',
    '{"studentName": "Asha"}',
    '{"orderId": 42}',
    {'orderId': ''},
])
def test_parse_invalid_qr_payload(raw_payload):
    with pytest.raises(exceptions.InvalidQRPayload):
        qr_codes.parse_qr_payload(raw_payload)


def test_payload_matches_order():
    order_record = get_order_record()

    assert qr_codes.payload_matches_order({'orderNumber': 'AH000001'}, order_record) is True
    assert qr_codes.payload_matches_order({'orderId': order_record['id_']}, order_record) is True
    assert qr_codes.payload_matches_order({'orderId': 'AH000001'}, order_record) is True
    assert qr_codes.payload_matches_order({'orderNumber': 'AH000002'}, order_record) is False
