"""
Collection QR payload.

The QR image itself is rendered by the client, the API only produces and reads the JSON text it encodes.
"""
import json
from datetime import datetime, timezone
from typing import Dict, Optional

from chalicelib.utils.exceptions import InvalidQRPayload
from chalicelib.utils.logger import CustomJSONEncoder, logger


def build_qr_payload(order_record: Dict, now: Optional[datetime] = None) -> Dict:
    """
    :param order_record: order as stored in the db
    """
    return {
        'orderId': order_record.get('id_'),
        'orderNumber': order_record.get('order_number'),
        'studentName': order_record.get('student_name'),
        'totalAmount': order_record.get('total_amount'),
        'status': order_record.get('status_'),
        'timestamp': (now or datetime.now(timezone.utc)).isoformat(timespec='seconds'),
        'items': [
            {
                'name': item.get('name'),
                'quantity': item.get('quantity'),
                'variant': item.get('variant_name')
            }
            for item in order_record.get('items', [])
        ]
    }


def dump_qr_payload(payload: Dict) -> str:
    return json.dumps(payload, cls=CustomJSONEncoder, separators=(',', ':'))


def parse_qr_payload(raw_payload) -> Dict:
    """
    Accepts the scanned text (or an already decoded object) and returns the payload.
    At least one of orderId and orderNumber is required.
    """
    if isinstance(raw_payload, str):
        try:
            payload = json.loads(raw_payload)
        except ValueError:
            logger.warning(f'parse_qr_payload ::: not a JSON payload {raw_payload[:100]}')
            raise InvalidQRPayload('Scanned code is not a valid order QR code')
    else:
        payload = raw_payload
    if not isinstance(payload, dict):
        raise InvalidQRPayload('Scanned code is not a valid order QR code')
    order_id, order_number = payload.get('orderId'), payload.get('orderNumber')
    if not (isinstance(order_id, str) and order_id) and not (isinstance(order_number, str) and order_number):
        raise InvalidQRPayload('QR code does not contain an order id or order number')
    return payload


def payload_matches_order(payload: Dict, order_record: Dict) -> bool:
    scanned = {value for value in (payload.get('orderId'), payload.get('orderNumber'))
               if isinstance(value, str) and value}
    return order_record.get('id_') in scanned or order_record.get('order_number') in scanned
