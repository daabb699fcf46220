from boto3.dynamodb.types import TypeDeserializer
from chalice.app import DynamoDBEvent

from chalicelib.orders import db_trigger_order_record
from chalicelib.utils.logger import logger, log_exception


deserializer = TypeDeserializer()

gen_table_trigger_func_dict = {
    'order': db_trigger_order_record
}


def deserialize_ddb_rec(record=None):
    if record is None:
        record = {}
    return {key: deserializer.deserialize(value) for key, value in record.items()}


def db_gen_table_stream_trigger(ddb_event: DynamoDBEvent):
    """
    Notification failures are logged and never re-raised, the write which caused the event has already succeeded.
    """
    logger.debug(f'db_gen_table_stream_trigger ::: function triggered ddb_event={ddb_event.to_dict()}')
    for record in ddb_event:
        try:
            normalized_new = deserialize_ddb_rec(record.new_image)
            normalized_old = deserialize_ddb_rec(record.old_image)
            func_key = normalized_new.get('record_type') or normalized_old.get('record_type')
            if func_key in gen_table_trigger_func_dict.keys():
                gen_table_trigger_func_dict[func_key](normalized_old, normalized_new,
                                                      record.event_id, record.event_name)
        except Exception as e:
            log_exception(e, status_code=500, msg=f'db_gen_table_stream_trigger ::: event_id={record.event_id}')
