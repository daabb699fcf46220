import functools
import os
from random import uniform
from time import sleep
from typing import Dict, List, Optional

from botocore.exceptions import ClientError

from chalicelib.constants import substitute_keys
from chalicelib.utils import data
from chalicelib.utils import exceptions
from chalicelib.utils.boto_clients import get_dynamodb_resource
from chalicelib.utils.logger import logger

# For safe db operations
RETRY_EXCEPTIONS = ('ProvisionedThroughputExceededException', 'ThrottlingException')
need_return_capacity = ('put_item', 'get_item', 'update_item', 'delete_item')


def exp_db_backoff(func):
    """
        should be used for any atomic
        get/put item in the code
    """

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        logger.debug(f'{func.__name__}:: args={args}, kwargs={kwargs}')
        max_retries = 15
        timeout_seed = uniform(0.1, 0.99)

        if func.__name__ not in need_return_capacity:
            raise RuntimeError("This decorator only for DynamoDB methods")
        kwargs.update({'ReturnConsumedCapacity': 'TOTAL'})

        for retries in range(max_retries):
            try:
                result = func(*args, **kwargs)
                logger.info(f'{func.__name__}:: SUCCESS')
                return result
            except ClientError as e:
                if e.response['Error']['Code'] not in RETRY_EXCEPTIONS:
                    raise
                logger.warning(f'{func.__name__}:: throttled, retry {retries + 1} of {max_retries}')
                sleep(min(timeout_seed * 2 ** retries, 20))

        raise exceptions.NumberOfRetriesExceeded(
            f"MaxNumber={max_retries} of DB retries has exceeded"
        )

    return wrapper


def get_table(table_name: str):
    table = get_dynamodb_resource().Table(table_name)

    table.put_item = exp_db_backoff(table.put_item)
    table.get_item = exp_db_backoff(table.get_item)
    table.update_item = exp_db_backoff(table.update_item)
    table.delete_item = exp_db_backoff(table.delete_item)

    return table


def get_gen_table():
    return get_table(os.environ['GEN_TABLE_NAME'])


def _is_conditional_check_failed(error: ClientError) -> bool:
    return error.response['Error']['Code'] == 'ConditionalCheckFailedException'


def put_db_record(item: dict, condition_expression=None, table=get_gen_table):
    kwargs = {'Item': item}
    if condition_expression is not None:
        kwargs['ConditionExpression'] = condition_expression
    try:
        table().put_item(**kwargs)
    except ClientError as error:
        if _is_conditional_check_failed(error):
            raise exceptions.ConditionalCheckFailed(
                f"record partkey={item.get('partkey')} sortkey={item.get('sortkey')} condition failed")
        raise


def delete_db_record(key: dict, table=get_gen_table):
    table().delete_item(Key=key)


def update_db_record(key: dict, update_body: dict, allowed_attrs_to_update: list,
                     allowed_attrs_to_delete: list, table=get_gen_table):
    data.substitute_keys(dict_to_process=update_body, base_keys=substitute_keys.to_db)
    set_expr, expr_attr_values, remove_expr = generate_update_expression(
        update_body=update_body,
        allowed_attrs_to_update=allowed_attrs_to_update,
        allowed_attrs_to_delete=allowed_attrs_to_delete
    )
    update_item_dict = {"Key": key, "ReturnValues": "UPDATED_NEW", }

    set_response = None
    if set_expr:
        set_item_dict = {
            **update_item_dict,
            "UpdateExpression": set_expr[0],
            "ExpressionAttributeNames": set_expr[1],
            "ExpressionAttributeValues": expr_attr_values
        }
        set_response = table().update_item(**set_item_dict)

    remove_response = None
    if remove_expr:
        remove_item_dict = {
            **update_item_dict,
            "UpdateExpression": remove_expr[0],
            "ExpressionAttributeNames": remove_expr[1]
        }
        remove_response = table().update_item(**remove_item_dict)

    return set_response, remove_response


def generate_update_expression(update_body: dict, allowed_attrs_to_update: list, allowed_attrs_to_delete: list):
    """
    Generate expressions to update and delete attributes.
    if a key of update_body is empty - the attribute is deleted, else - attribute is updated
    Expressions are returned as (expression, attribute names) pairs,
    attribute names are always aliased as some of them are DynamoDB reserved words (year, name, status...)
    """
    expr_attr_values = {}
    set_names, remove_names = {}, {}
    for field in allowed_attrs_to_update:
        field_value = update_body.get(field, None)
        if field_value is None:
            continue
        # if field is in update_body but is equal to empty string, list etc. - delete field
        if field_value in ['', [], {}] and field in allowed_attrs_to_delete:
            remove_names[f'#{field}'] = field
        else:
            expr_attr_values[f':{field}'] = field_value
            set_names[f'#{field}'] = field

    set_expr, remove_expr = None, None
    if set_names:
        set_expr = ('SET ' + ', '.join(f'{alias}=:{field}' for alias, field in set_names.items()), set_names)
    if remove_names:
        remove_expr = ('REMOVE ' + ', '.join(remove_names.keys()), remove_names)
    return set_expr, expr_attr_values, remove_expr


def conditional_update(key: dict, update_expression: str, expr_attr_values: Dict,
                       condition_expression, expr_attr_names: Optional[Dict] = None, table=get_gen_table) -> Dict:
    """
    Single-item update which is applied only if condition_expression holds for the stored item.
    Raises ConditionalCheckFailed otherwise.
    Returns all attributes of the item after the update.
    """
    kwargs = {
        'Key': key,
        'UpdateExpression': update_expression,
        'ExpressionAttributeValues': expr_attr_values,
        'ConditionExpression': condition_expression,
        'ReturnValues': 'ALL_NEW'
    }
    if expr_attr_names:
        kwargs['ExpressionAttributeNames'] = expr_attr_names
    try:
        return table().update_item(**kwargs)['Attributes']
    except ClientError as error:
        if _is_conditional_check_failed(error):
            raise exceptions.ConditionalCheckFailed(f'record {key} condition failed')
        raise


def increment_counter(key: dict, attr_name: str = 'value_', table=get_gen_table) -> int:
    response = table().update_item(
        Key=key,
        UpdateExpression='ADD #counter :one',
        ExpressionAttributeNames={'#counter': attr_name},
        ExpressionAttributeValues={':one': 1},
        ReturnValues='UPDATED_NEW'
    )
    return int(response['Attributes'][attr_name])


def get_db_item(partkey, sortkey, table=get_gen_table):
    result = table().get_item(
        Key={
            'partkey': partkey,
            'sortkey': sortkey
        }
    )

    if 'Item' in result:
        return result['Item']
    else:
        logger.error(f"get_db_item ::: record partkey={partkey} sortkey={sortkey} not found")
        raise exceptions.RecordNotFound(f'record partkey={partkey} sortkey={sortkey} not found')


def query_items_paginated(
        key_condition_expression,
        filter_expression=None,
        projection_expression=None,
        table=get_gen_table,
        index_name=None,
        expr_attr_names=None,
        limit=None,
        start_key=None
):
    kwargs = {'KeyConditionExpression': key_condition_expression}
    if filter_expression:
        kwargs.update({'FilterExpression': filter_expression})

    if projection_expression:
        kwargs.update({'ProjectionExpression': projection_expression})

    if expr_attr_names:
        kwargs.update({'ExpressionAttributeNames': expr_attr_names})

    if limit:
        kwargs.update({'Limit': int(limit)})

    if index_name:
        kwargs.update({'IndexName': index_name})

    if start_key:
        kwargs.update({'ExclusiveStartKey': start_key})

    resp = table().query(**kwargs)
    return resp['Items'], resp.get('LastEvaluatedKey')


def query_items_paged(key_condition_expression, filter_expression=None, projection_expression=None,
                      table=get_gen_table, index_name=None, expr_attr_names=None) -> List[Dict]:
    """ This method shall be used whenever you think the query will
        return more than 1mb of data at once"""
    all_items = []
    items, last_evaluated_key = query_items_paginated(
        key_condition_expression,
        filter_expression=filter_expression,
        projection_expression=projection_expression,
        table=table,
        index_name=index_name,
        expr_attr_names=expr_attr_names
    )
    all_items.extend(items)

    while last_evaluated_key is not None:
        items, last_evaluated_key = query_items_paginated(
            key_condition_expression,
            filter_expression=filter_expression,
            projection_expression=projection_expression,
            table=table,
            index_name=index_name,
            expr_attr_names=expr_attr_names,
            start_key=last_evaluated_key
        )
        all_items.extend(items)

    return all_items
