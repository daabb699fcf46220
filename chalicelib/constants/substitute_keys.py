# UI key -> DB attribute, for attribute names reserved by DynamoDB
to_db = {
    'id': 'id_',
    'name': 'name_',
    'status': 'status_',
    'comment': 'comment_',
}

# DB attribute -> UI key, None means "drop from the UI representation"
from_db = {
    'partkey': None,
    'sortkey': None,
    'password_hash': None,
    'id_': 'id',
    'name_': 'name',
    'status_': 'status',
    'comment_': 'comment',
}
