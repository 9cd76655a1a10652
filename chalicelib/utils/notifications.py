import json
import os
from typing import List, Dict, Optional

from chalicelib.utils.boto_clients import ses_client, sns_client
from chalicelib.utils.logger import logger, CustomJSONEncoder


SNS_SUBJECT_MAX_LENGTH = 100
DEFAULT_SNS_SUBJECT = 'Notification'


def get_notifications_topic_arn() -> str:
    return os.environ['NOTIFICATIONS_TOPIC_ARN']


def get_sns_subject(text: Optional[str]) -> str:
    """
    SNS rejects subjects with non ASCII characters or line breaks,
    the full title is still delivered in the message payload
    """
    printable = ''.join(char for char in text or '' if char.isspace() or (char.isascii() and char.isprintable()))
    subject = ' '.join(printable.split())
    return subject[:SNS_SUBJECT_MAX_LENGTH].strip() or DEFAULT_SNS_SUBJECT


def send_email_ses(emails_to: List, email_from: str, subject: str, message: str):
    emails_to = [email for email in emails_to if email]
    if not emails_to:
        logger.warning(f'send_email_ses ::: no recipients for {subject=}, skipping')
        return
    logger.info(f'Sending message to emails {emails_to=}, {subject=}')
    charset = "UTF-8"
    response = ses_client.send_email(
        Destination={"ToAddresses": emails_to},
        Message={
            "Body": {"Text": {"Charset": charset, "Data": message}},
            "Subject": {"Charset": charset, "Data": subject},
        },
        Source=email_from,
    )
    logger.info(f'Message has been sent, message_id={response.get("MessageId")}')


def publish_sns(subject: str, payload: Dict, attributes: Optional[Dict[str, str]] = None,
                topic_arn: Optional[str] = None) -> str:
    """
    Publishes a JSON payload to the notifications topic.
    Subscribers (push gateway for partner/user apps) filter messages by attributes.
    :return:
    SNS message id
    """
    message_attributes = {
        key: {'DataType': 'String', 'StringValue': str(value)}
        for key, value in (attributes or {}).items()
    }
    response = sns_client.publish(
        TopicArn=topic_arn or get_notifications_topic_arn(),
        Subject=get_sns_subject(subject),
        Message=json.dumps(payload, cls=CustomJSONEncoder),
        MessageAttributes=message_attributes
    )
    logger.info(f'publish_sns ::: message has been published, {subject=}, message_id={response.get("MessageId")}')
    return response.get('MessageId')
