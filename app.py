import os

from chalice import Chalice

from chalicelib import auth, caterer, carts, menu_items, orders, triggers, universities, users

app = Chalice(app_name='hostel-food-ordering')

app.debug = os.environ.get('CHALICE_DEBUG', 'false').lower() == 'true'


def get_gen_table_stream_arn():
    return os.environ.get("GEN_TABLE_STREAM_ARN", "")


@app.authorizer()
def role_authorizer(auth_request):
    return auth.role_authorizer(auth_request)


if get_gen_table_stream_arn():
    @app.on_dynamodb_record(stream_arn=get_gen_table_stream_arn())
    def db_gen_table_stream_trigger(event):
        return triggers.db_gen_table_stream_trigger(event)


@app.route('/health-check', methods=['GET'], cors=True)
def health_check():
    return {'health': 'check'}


# AUTH
@app.route('/api/auth/signup', methods=['POST'], cors=True)
def signup():
    """
    Public student registration, the account stays PENDING until approved
    """
    return users.endpoint_signup(app.current_request)


@app.route('/api/auth/signin', methods=['POST'], cors=True)
def signin():
    return users.endpoint_signin(app.current_request)


# UNIVERSITIES
@app.route('/api/universities', methods=['GET'], cors=True)
def get_universities():
    return universities.endpoint_get_universities(app.current_request)


@app.route('/api/admin/universities', methods=['POST'], authorizer=role_authorizer, cors=True)
def create_university():
    """
    admin operation
    """
    return universities.endpoint_create_university(app.current_request)


# USERS
@app.route('/api/users/me', methods=['GET'], authorizer=role_authorizer, cors=True)
def get_user():
    return users.endpoint_get_me(app.current_request)


@app.route('/api/users/me', methods=['PUT'], authorizer=role_authorizer, cors=True)
def update_user():
    return users.endpoint_update_me(app.current_request)


@app.route('/api/admin/users', methods=['GET'], authorizer=role_authorizer, cors=True)
def get_users():
    """
    manager gets users of own university
    admin gets all users (optionally filtered by university_id)
    """
    return users.endpoint_get_users(app.current_request)


@app.route('/api/admin/users', methods=['POST'], authorizer=role_authorizer, cors=True)
def create_staff_user():
    """
    admin operation, creates MANAGER/CATERER/ADMIN accounts which are approved right away
    """
    return users.endpoint_create_staff_user(app.current_request)


@app.route('/api/admin/users/{user_id}', methods=['PATCH'], authorizer=role_authorizer, cors=True)
def update_user_status(user_id):
    return users.endpoint_update_user_status(app.current_request, user_id)


# MENU ITEMS
@app.route('/api/student/menu', methods=['GET'], authorizer=role_authorizer, cors=True)
def get_student_menu():
    return menu_items.endpoint_get_student_menu(app.current_request)


@app.route('/api/admin/menu', methods=['GET'], authorizer=role_authorizer, cors=True)
def get_admin_menu():
    return menu_items.endpoint_get_admin_menu(app.current_request)


@app.route('/api/admin/menu', methods=['POST'], authorizer=role_authorizer, cors=True)
def create_menu_item():
    """
    manager/admin operation
    """
    return menu_items.endpoint_create_menu_item(app.current_request)


@app.route('/api/admin/menu/{menu_item_id}', methods=['GET'], authorizer=role_authorizer, cors=True)
def get_menu_item(menu_item_id):
    return menu_items.endpoint_get_menu_item(app.current_request, menu_item_id)


@app.route('/api/admin/menu/{menu_item_id}', methods=['PUT'], authorizer=role_authorizer, cors=True)
def update_menu_item(menu_item_id):
    return menu_items.endpoint_update_menu_item(app.current_request, menu_item_id)


@app.route('/api/admin/menu/{menu_item_id}', methods=['DELETE'], authorizer=role_authorizer, cors=True)
def delete_menu_item(menu_item_id):
    """
    archives the item, orders keep their captured names and prices
    """
    return menu_items.endpoint_archive_menu_item(app.current_request, menu_item_id)


# CART
@app.route('/api/cart', methods=['GET'], authorizer=role_authorizer, cors=True)
def get_cart():
    return carts.endpoint_get_cart(app.current_request)


@app.route('/api/cart', methods=['POST'], authorizer=role_authorizer, cors=True)
def update_cart():
    return carts.endpoint_update_cart(app.current_request)


@app.route('/api/cart', methods=['DELETE'], authorizer=role_authorizer, cors=True)
def clear_cart():
    return carts.endpoint_clear_cart(app.current_request)


# ORDERS
@app.route('/api/orders', methods=['GET'], authorizer=role_authorizer, cors=True)
def get_orders():
    """
    student gets own orders, newest first, paginated
    """
    return orders.endpoint_get_student_orders(app.current_request)


@app.route('/api/orders', methods=['POST'], authorizer=role_authorizer, cors=True)
def create_order():
    """
    items are taken from the request or, when omitted, from the student's cart
    """
    return orders.endpoint_create_order(app.current_request)


@app.route('/api/orders/{order_id}', methods=['GET'], authorizer=role_authorizer, cors=True)
def get_order_by_id(order_id):
    return orders.endpoint_get_student_order(app.current_request, order_id)


@app.route('/api/admin/orders', methods=['GET'], authorizer=role_authorizer, cors=True)
def get_admin_orders():
    return orders.endpoint_get_admin_orders(app.current_request)


@app.route('/api/admin/orders/{order_id}', methods=['GET'], authorizer=role_authorizer, cors=True)
def get_admin_order(order_id):
    return orders.endpoint_get_admin_order(app.current_request, order_id)


@app.route('/api/admin/orders/{order_id}', methods=['PATCH'], authorizer=role_authorizer, cors=True)
def update_order_status(order_id):
    return orders.endpoint_update_order_status(app.current_request, order_id)


@app.route('/api/admin/orders/{order_id}', methods=['DELETE'], authorizer=role_authorizer, cors=True)
def delete_order(order_id):
    """
    admin operation
    """
    return orders.endpoint_delete_order(app.current_request, order_id)


# CATERER
@app.route('/api/caterer/orders', methods=['GET'], authorizer=role_authorizer, cors=True)
def get_caterer_orders():
    """
    today's orders of the caterer's university, READY by default
    """
    return caterer.endpoint_get_caterer_orders(app.current_request)


@app.route('/api/caterer/orders/{order_id}/serve', methods=['POST'], authorizer=role_authorizer, cors=True)
def serve_order(order_id):
    return caterer.endpoint_serve_order(app.current_request, order_id)


@app.route('/api/caterer/scan', methods=['POST'], authorizer=role_authorizer, cors=True)
def scan_order():
    return caterer.endpoint_scan_order(app.current_request)
