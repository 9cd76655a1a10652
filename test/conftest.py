import os

# must be set before chalicelib creates boto3 clients
TEST_REGION = 'us-east-1'
TEST_TABLE_NAME = 'food-delivery-admin-test'
TEST_TOPIC_NAME = 'food-delivery-admin-notifications-test'
TEST_EMAIL_FROM = 'orders@food-delivery-admin.com'

os.environ.update({
    'AWS_ACCESS_KEY_ID': 'testing',
    'AWS_SECRET_ACCESS_KEY': 'testing',
    'AWS_SECURITY_TOKEN': 'testing',
    'AWS_SESSION_TOKEN': 'testing',
    'AWS_DEFAULT_REGION': TEST_REGION,
    'AWS_REGION': TEST_REGION,
    'MAIN_BOTO_REGION': TEST_REGION,
    'GEN_TABLE_NAME': TEST_TABLE_NAME,
    'ORDERS_TABLE_STREAM_ARN': f'arn:aws:dynamodb:{TEST_REGION}:123456789012:table/{TEST_TABLE_NAME}/stream/test',
    'NOTIFICATIONS_TOPIC_ARN': f'arn:aws:sns:{TEST_REGION}:123456789012:{TEST_TOPIC_NAME}',
    'ORDER_EMAIL_FROM': TEST_EMAIL_FROM,
    'ORDER_NOTIFICATION_EMAILS': 'kitchen@food-delivery-admin.com',
    'DEFAULT_COMMISSION_RATE': '15',
    'NOTIFICATION_BATCH_SIZE': '500',
    'AUTO_NOTIFY_PARTNERS': 'true',
    'LOG_LEVEL': 'DEBUG',
    'stage': 'test'
})
os.environ.pop('ENDPOINT_URL', None)

import boto3  # noqa: E402
import pytest  # noqa: E402
from moto import mock_aws  # noqa: E402

from utils.records import get_admin_record, id_super_admin, id_sub_admin, id_inactive_admin  # noqa: E402


@pytest.fixture(autouse=True)
def aws_resources():
    """
    Every test gets an empty table, the notifications topic and a verified sender identity
    """
    with mock_aws():
        boto3.client('dynamodb', region_name=TEST_REGION).create_table(
            TableName=TEST_TABLE_NAME,
            KeySchema=[
                {'AttributeName': 'partkey', 'KeyType': 'HASH'},
                {'AttributeName': 'sortkey', 'KeyType': 'RANGE'}
            ],
            AttributeDefinitions=[
                {'AttributeName': 'partkey', 'AttributeType': 'S'},
                {'AttributeName': 'sortkey', 'AttributeType': 'S'}
            ],
            BillingMode='PAY_PER_REQUEST'
        )
        boto3.client('sns', region_name=TEST_REGION).create_topic(Name=TEST_TOPIC_NAME)
        boto3.client('ses', region_name='us-east-1').verify_email_identity(EmailAddress=TEST_EMAIL_FROM)

        table = boto3.resource('dynamodb', region_name=TEST_REGION).Table(TEST_TABLE_NAME)
        table.put_item(Item=get_admin_record(id_super_admin, 'super_admin'))
        table.put_item(Item=get_admin_record(id_sub_admin, 'sub_admin'))
        table.put_item(Item=get_admin_record(id_inactive_admin, 'super_admin', is_active=False))
        yield
