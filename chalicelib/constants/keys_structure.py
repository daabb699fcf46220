universities_pk = 'universities'
universities_sk = '{university_id}'

users_pk = 'users'
users_sk = '{user_id}'

# email -> user id, keeps e-mails unique
user_emails_pk = 'user_emails'
user_emails_sk = '{email}'

menu_items_pk = 'menu_items'
menu_items_sk = '{menu_item_id}'

carts_pk = 'carts'
carts_sk = '{user_id}'

orders_pk = 'orders'
orders_sk = '{order_id}'

counters_pk = 'counters'
counters_sk = '{counter_name}'

# order indexes, both project all attributes
user_orders_index = 'user_orders-index'
gsi_user_orders_pk = 'orders_user_{user_id}'
gsi_user_orders_sk = '{date_created}_{order_id}'

university_orders_index = 'university_orders-index'
gsi_university_orders_pk = 'orders_university_{university_id}'
gsi_university_orders_sk = '{order_date}_{order_id}'
