import functools
import os
from random import uniform
from time import sleep

import boto3 as boto3
from botocore.exceptions import ClientError

from chalicelib.constants import substitute_keys
from chalicelib.utils import data
from chalicelib.utils import exceptions
from chalicelib.utils.boto_clients import aws_config_ddb
from chalicelib.utils.logger import logger, log_exception

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

        if func.__name__ in need_return_capacity:
            kwargs.update({'ReturnConsumedCapacity': 'TOTAL'})
        else:
            raise RuntimeError("This decorator only for DynamoDB methods")

        for retries in range(max_retries):
            try:
                result = func(*args, **kwargs)
                logger.info(f'{func.__name__}:: SUCCESS')
                return result

            except ClientError as e:
                if e.response['Error']['Code'] not in RETRY_EXCEPTIONS:
                    log_exception(e, msg=f'Got exception while trying to {func.__name__}: ')
                    raise
                logger.warning(f'{func.__name__}:: throttled, retry number {retries + 1}')
                sleep(timeout_seed * 2 ** retries / 100)

        raise exceptions.NumberOfRetriesExceeded(
            f"MaxNumber={max_retries} of DB retries has exceeded"
        )

    return wrapper


def get_table(table_name: str):
    if os.environ.get('ENDPOINT_URL'):
        table = boto3.resource('dynamodb', endpoint_url=os.environ.get('ENDPOINT_URL')).Table(table_name)
    else:
        table = boto3.resource('dynamodb', config=aws_config_ddb).Table(table_name)

    table.put_item = exp_db_backoff(table.put_item)
    table.get_item = exp_db_backoff(table.get_item)
    table.update_item = exp_db_backoff(table.update_item)
    table.delete_item = exp_db_backoff(table.delete_item)

    return table


def get_gen_table():
    return get_table(os.environ.get('GEN_TABLE_NAME'))


def put_db_record(item: dict, table=get_gen_table):
    table().put_item(Item=item)


def delete_db_record(partkey: str, sortkey: str, table=get_gen_table):
    table().delete_item(Key={'partkey': partkey, 'sortkey': sortkey})


def update_db_record(key: dict, update_body: dict, allowed_attrs_to_update: list,
                     allowed_attrs_to_delete: list, condition_expression=None, table=get_gen_table):
    """
    Updates allowed attributes of a record.
    If condition_expression is passed and is not met - ConditionalCheckFailedException is raised by boto3
    """
    data.substitute_keys(dict_to_process=update_body, base_keys=substitute_keys.to_db)
    set_expr, expr_attr_values, remove_expr, expr_attr_names = generate_update_expression(
        update_body=update_body,
        allowed_attrs_to_update=allowed_attrs_to_update,
        allowed_attrs_to_delete=allowed_attrs_to_delete
    )
    update_item_dict = {"Key": key, "ReturnValues": "ALL_NEW"}
    if condition_expression is not None:
        update_item_dict['ConditionExpression'] = condition_expression

    update_expr = ' '.join(expr for expr in (set_expr, remove_expr) if expr)
    if not update_expr:
        logger.warning(f'update_db_record ::: nothing to update for {key=}')
        return None

    update_item_dict.update({
        "UpdateExpression": update_expr,
        "ExpressionAttributeNames": expr_attr_names
    })
    if expr_attr_values:
        update_item_dict["ExpressionAttributeValues"] = expr_attr_values

    return table().update_item(**update_item_dict).get('Attributes')


def _set_fields_expression(update_body: dict):
    names = {f'#{field}': field for field in update_body}
    values = {f':{field}': value for field, value in update_body.items()}
    return [f'#{field} = :{field}' for field in update_body], names, values


def append_to_list(key: dict, attr_name: str, value, update_body: dict = None, table=get_gen_table) -> bool:
    """
    Appends value to a list attribute in a single update, concurrent appends don't overwrite each other.
    Fields of update_body are set in the same update.
    :return:
    False if the list already contains the value
    """
    set_parts, names, values = _set_fields_expression(update_body or {})
    set_parts.insert(0, f'#{attr_name} = list_append(if_not_exists(#{attr_name}, :empty_list), :new_items)')
    try:
        table().update_item(
            Key=key,
            UpdateExpression='SET ' + ', '.join(set_parts),
            ConditionExpression=f'NOT contains(#{attr_name}, :new_item)',
            ExpressionAttributeNames={**names, f'#{attr_name}': attr_name},
            ExpressionAttributeValues={**values, ':empty_list': [], ':new_items': [value], ':new_item': value}
        )
    except ClientError as error:
        if not is_condition_check_failed(error):
            raise
        logger.info(f'append_to_list ::: {value=} is already in {attr_name} of {key=}')
        return False
    return True


def remove_from_list(key: dict, attr_name: str, value, update_body: dict = None, max_attempts: int = 5,
                     table=get_gen_table) -> bool:
    """
    Removes value from a list attribute by its index.
    The update only passes if the value is still at that index, otherwise the list is re-read and it's retried.
    :return:
    False if the list doesn't contain the value
    """
    set_parts, names, values = _set_fields_expression(update_body or {})
    for attempt in range(max_attempts):
        items = get_db_item(key['partkey'], key['sortkey'], table=table).get(attr_name) or []
        if value not in items:
            return False
        index = items.index(value)
        update_expr = f'REMOVE #{attr_name}[{index}]'
        if set_parts:
            update_expr += ' SET ' + ', '.join(set_parts)
        try:
            table().update_item(
                Key=key,
                UpdateExpression=update_expr,
                ConditionExpression=f'#{attr_name}[{index}] = :old_item',
                ExpressionAttributeNames={**names, f'#{attr_name}': attr_name},
                ExpressionAttributeValues={**values, ':old_item': value}
            )
            return True
        except ClientError as error:
            if not is_condition_check_failed(error):
                raise
            logger.warning(f'remove_from_list ::: {attr_name} of {key=} changed, attempt {attempt + 1}')
    raise exceptions.NumberOfRetriesExceeded(f'MaxNumber={max_attempts} of attempts to remove {value=} '
                                             f'from {attr_name} has exceeded')


def generate_update_expression(update_body: dict, allowed_attrs_to_update: list, allowed_attrs_to_delete: list):
    """
    Generate expressions to update and delete attributes.
    if a key of update_body is empty - the attribute is deleted, else - attribute is updated
    Attribute names are always referenced via placeholders (#name), values via :name
    """
    expr_attr_values = {}
    expr_attr_names = {}
    set_expr = 'SET '
    remove_expr = 'REMOVE '
    return_value = [None, None, None, expr_attr_names]
    for field in allowed_attrs_to_update:
        if field not in update_body:
            continue
        field_value = update_body[field]
        if field_value in [None, '', [], {}] and field in allowed_attrs_to_delete:
            remove_expr += f'#{field}, '
            expr_attr_names[f'#{field}'] = field
        elif field_value is not None:
            expr_attr_values[f':{field}'] = field_value
            set_expr += f'#{field}=:{field}, '
            expr_attr_names[f'#{field}'] = field

    if set_expr != 'SET ':
        return_value[0] = set_expr[:-2]
        return_value[1] = expr_attr_values

    if remove_expr != 'REMOVE ':
        return_value[2] = remove_expr[:-2]

    return return_value


def is_condition_check_failed(error: Exception) -> bool:
    return isinstance(error, ClientError) and \
        error.response.get('Error', {}).get('Code') == 'ConditionalCheckFailedException'


def get_db_item(partkey, sortkey, table=get_gen_table):
    result = table().get_item(
        Key={
            'partkey': partkey,
            'sortkey': sortkey
        }
    )

    if result.__contains__('Item'):
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
                      table=get_gen_table, index_name=None, expr_attr_names=None):
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
