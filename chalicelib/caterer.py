from typing import Dict, List

from chalice import Response

from chalicelib import order_workflow, qr_codes
from chalicelib.constants.constants import CATERER
from chalicelib.constants.status_codes import http200
from chalicelib.orders import Order, get_db_orders, get_status_filter
from chalicelib.utils import auth as utils_auth, app as utils_app, data as utils_data, exceptions, ordering_time
from chalicelib.utils.logger import logger


def get_todays_orders(university_id: str, status=None) -> List[Dict]:
    return get_db_orders(
        university_id=university_id,
        status=status,
        order_date=ordering_time.local_today().isoformat()
    )


def serve_order(order: Order, auth_result: Dict) -> Response:
    if order.university_id != auth_result['university_id']:
        raise exceptions.AccessDenied('Order is not from your university')
    if order.status_ != order_workflow.READY:
        raise exceptions.OrderNotReady(
            f'Order {order.order_number} cannot be served, current status is {order.status_}. '
            f'Order must be READY to be served')
    order.transition(order_workflow.SERVED, auth_result['user_id'])
    logger.info(f'serve_order ::: order {order.order_number} served by {auth_result["user_id"]}')
    return Response(
        status_code=http200,
        body={
            'message': 'Order marked as served successfully',
            'order': {
                'id': order.id_,
                'order_number': order.order_number,
                'status': order.status_,
                'student_name': order.student_name,
                'completed_at': order.completed_at
            }
        }
    )


@utils_app.request_exception_handler
@utils_auth.authenticate
def endpoint_get_caterer_orders(request) -> Response:
    auth_result = request.auth_result
    utils_auth.require_roles(auth_result, (CATERER,))
    qp = request.query_params or {}
    status = get_status_filter(qp, default=order_workflow.READY)
    db_records = get_todays_orders(auth_result['university_id'], status)
    return Response(
        status_code=http200,
        body={
            'date': ordering_time.local_today().isoformat(),
            'orders': [Order(**record).to_ui() for record in db_records]
        }
    )


@utils_app.request_exception_handler
@utils_auth.authenticate
def endpoint_serve_order(request, order_id) -> Response:
    utils_auth.require_roles(request.auth_result, (CATERER,))
    return serve_order(Order.init_get_by_id(order_id), request.auth_result)


@utils_app.request_exception_handler
@utils_auth.authenticate
def endpoint_scan_order(request) -> Response:
    """
    Serves the order encoded in a scanned QR payload.
    Only today's orders of the caterer's university are matched.
    """
    auth_result = request.auth_result
    utils_auth.require_roles(auth_result, (CATERER,))
    request_body = utils_data.parse_raw_body(request)
    raw_payload = request_body.get('qr_data', request_body.get('payload'))
    if raw_payload is None:
        raise exceptions.InvalidQRPayload('qr_data is required')
    payload = qr_codes.parse_qr_payload(raw_payload)
    matches = [record for record in get_todays_orders(auth_result['university_id'])
               if qr_codes.payload_matches_order(payload, record)]
    if not matches:
        raise exceptions.OrderNotFound(
            f"No order for today matches {payload.get('orderNumber') or payload.get('orderId')}")
    return serve_order(Order(**matches[0]), auth_result)
