ORDER_STATUS_MESSAGES = {
    'APPROVED': 'Your order has been approved and is being prepared.',
    'PREPARING': 'Your order is now being prepared in the kitchen.',
    'READY': 'Your order is ready for pickup!',
    'SERVED': 'Your order has been served. Thank you!',
    'REJECTED': 'Your order has been rejected.',
    'CANCELLED': 'Your order has been cancelled.'
}
DEFAULT_STATUS_MESSAGE = 'Your order status has been updated.'


def get_order_status_message(status: str, reason: str = None) -> str:
    message = ORDER_STATUS_MESSAGES.get(status, DEFAULT_STATUS_MESSAGE)
    if reason and status in ('REJECTED', 'CANCELLED'):
        message = f'{message} Reason: {reason}'
    return message


def format_order_line(item) -> str:
    name = item.get('name')
    if item.get('variant_name'):
        name = f"{name} ({item['variant_name']})"
    return f"{name} x {item.get('quantity')}"


def get_order_status_notification_subject(order_record) -> str:
    return f"Order {order_record.get('order_number')} is {order_record.get('status_')}"


def get_order_status_notification_message(order_record):
    status = order_record.get('status_')
    reason = order_record.get('rejection_reason') or order_record.get('cancellation_reason')
    items = ', '.join(format_order_line(item) for item in order_record.get('items', []))
    return f"""
        Hello {order_record.get('student_name') or ''},\n
        {get_order_status_message(status, reason)}\n
        Order details: \n
        Number: {order_record.get('order_number')}\n
        Collection date: {order_record.get('order_date')}\n
        Items: {items}\n
        Total: {order_record.get('total_amount')}\n
    """


def get_new_order_notification_message(order_record):
    return f"""
        Order details: \n
        Number: {order_record.get('order_number')}\n
        ID: {order_record.get('id_')}\n
        Student: {order_record.get('student_name')}\n
        Collection date: {order_record.get('order_date')}\n
        Items: {len(order_record.get('items', []))}\n
        Total: {order_record.get('total_amount')}\n
        Comment: {order_record.get('special_instructions')}
    """
