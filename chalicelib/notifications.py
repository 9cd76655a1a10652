import os
from datetime import datetime, timezone
from typing import Dict, List, Tuple
from uuid import uuid4

from boto3.dynamodb.conditions import Attr, Key
from botocore.exceptions import ClientError
from chalice import Response

from chalicelib.base_class_entity import EntityBase
from chalicelib.constants import keys_structure
from chalicelib.constants.constants import (
    NOTIFICATION_TYPES, NOTIFICATION_AUDIENCE_TYPES, NOTIFICATION_STATUS_SCHEDULED, NOTIFICATION_STATUS_SENDING,
    NOTIFICATION_STATUS_SENT, NOTIFICATION_STATUS_FAILED, NOTIFICATION_STATUS_CANCELLED, NOTIFICATION_TITLE_MAX_LENGTH,
    NOTIFICATION_MESSAGE_MAX_LENGTH, NOTIFICATION_TEMPLATES
)
from chalicelib.constants.status_codes import http200
from chalicelib.delivery_partners import DeliveryPartner
from chalicelib.users import User
from chalicelib.utils import auth as utils_auth, app as utils_app, data as utils_data, db as utils_db, exceptions
from chalicelib.utils import notifications as utils_notifications
from chalicelib.utils.logger import logger, log_exception

NOTIFICATION_STATUSES = (NOTIFICATION_STATUS_SCHEDULED, NOTIFICATION_STATUS_SENDING, NOTIFICATION_STATUS_SENT,
                         NOTIFICATION_STATUS_FAILED, NOTIFICATION_STATUS_CANCELLED)


def get_batch_size() -> int:
    return int(os.environ.get('NOTIFICATION_BATCH_SIZE', '500'))


def _is_audience(value) -> bool:
    if not isinstance(value, dict) or value.get('type') not in NOTIFICATION_AUDIENCE_TYPES:
        return False
    if value['type'] == 'specific_users':
        user_ids = value.get('user_ids')
        return isinstance(user_ids, list) and len(user_ids) > 0
    return True


class Notification(EntityBase):
    pk = keys_structure.notifications_pk
    sk = keys_structure.notifications_sk
    record_type = 'notification'

    required_immutable_fields_validation = {
        'id_': lambda x: isinstance(x, str),
        'created_by': lambda x: isinstance(x, str),
        'date_created': lambda x: isinstance(x, str)
    }

    required_mutable_fields_validation = {
        'title': lambda x: isinstance(x, str) and 0 < len(x.strip()) <= NOTIFICATION_TITLE_MAX_LENGTH,
        'message': lambda x: isinstance(x, str) and 0 < len(x.strip()) <= NOTIFICATION_MESSAGE_MAX_LENGTH,
        'notification_type': lambda x: x in NOTIFICATION_TYPES,
        'audience': _is_audience,
        'status': lambda x: x in NOTIFICATION_STATUSES,
        'stats': lambda x: isinstance(x, dict),
        'date_updated': lambda x: isinstance(x, str)
    }

    optional_fields_validation = {
        'image_url': lambda x: isinstance(x, str),
        'scheduled_at': lambda x: isinstance(x, str),
        'sent_at': lambda x: isinstance(x, str),
        'updated_by': lambda x: isinstance(x, str)
    }

    def __init__(self, id_, **kwargs):
        EntityBase.__init__(self, id_, **kwargs)

        self.title: str = kwargs.get('title')
        self.message: str = kwargs.get('message')
        self.notification_type: str = kwargs.get('notification_type') or kwargs.get('type')
        self.audience: Dict = kwargs.get('audience') or {'type': 'all'}
        self.image_url: str = kwargs.get('image_url')
        self.scheduled_at: str = utils_data.normalize_timestamp(kwargs.get('scheduled_at')) \
            if kwargs.get('scheduled_at') is not None else None
        self.sent_at: str = kwargs.get('sent_at')
        self.status: str = kwargs.get('status', NOTIFICATION_STATUS_SCHEDULED)
        self.stats: Dict = kwargs.get('stats') or {'recipients': 0, 'sent': 0, 'failed': 0}
        self.created_by: str = kwargs.get('created_by') or self.admin_id
        self.updated_by: str = kwargs.get('updated_by')
        self.date_created: str = kwargs.get('date_created') or utils_data.now_iso()
        self.date_updated: str = kwargs.get('date_updated') or utils_data.now_iso()

    @classmethod
    def init_request(cls, request, notification_id):
        return cls.init_by_id(notification_id, request_data={'auth_result': request.auth_result})

    def _get_pk_sk(self) -> Tuple[str, str]:
        return self.pk, self.sk.format(notification_id=self.id_)

    def _to_dict(self) -> Dict:
        return {
            'id_': self.id_,
            'title': self.title,
            'message': self.message,
            'notification_type': self.notification_type,
            'audience': self.audience,
            'image_url': self.image_url,
            'scheduled_at': self.scheduled_at,
            'sent_at': self.sent_at,
            'status': self.status,
            'stats': self.stats,
            'created_by': self.created_by,
            'updated_by': self.updated_by,
            'date_created': self.date_created,
            'date_updated': self.date_updated
        }

    def is_due(self, now: datetime = None) -> bool:
        scheduled_at = utils_data.parse_timestamp(self.scheduled_at)
        return scheduled_at is None or scheduled_at <= (now or datetime.now(timezone.utc))

    def resolve_recipients(self) -> List[str]:
        audience_type = self.audience.get('type')
        if audience_type == 'specific_users':
            return list(dict.fromkeys(self.audience.get('user_ids') or []))
        if audience_type == 'delivery_partners':
            return [record['id_'] for record in DeliveryPartner.get_db_records(only_active=True)]
        users = User.get_db_records()
        if audience_type == 'active_users':
            users = [record for record in users if record.get('status', 'active') == 'active']
        return [record['id_'] for record in users]

    def send(self) -> None:
        """
        Publishes the notification in batches of recipients.
        A failed batch doesn't stop the others, it is counted in stats.failed
        """
        recipients = self.resolve_recipients()
        batch_size = get_batch_size()
        sent, failed = 0, 0
        for start in range(0, len(recipients), batch_size):
            batch = recipients[start:start + batch_size]
            try:
                utils_notifications.publish_sns(
                    subject=self.title,
                    payload={
                        'notification_id': self.id_,
                        'title': self.title,
                        'message': self.message,
                        'image_url': self.image_url,
                        'recipient_ids': batch
                    },
                    attributes={'audience': self.audience.get('type'), 'notification_type': self.notification_type}
                )
                sent += len(batch)
            except ClientError as error:
                log_exception(error, msg=f'send ::: batch of {len(batch)} recipients of notification '
                                         f'{self.id_} failed')
                failed += len(batch)
        self.stats = {'recipients': len(recipients), 'sent': sent, 'failed': failed}
        self.status = NOTIFICATION_STATUS_FAILED if recipients and sent == 0 else NOTIFICATION_STATUS_SENT
        self.sent_at = utils_data.now_iso()
        logger.info(f'send ::: notification {self.id_} {self.status}, stats={self.stats}')

    def claim(self) -> bool:
        """
        Moves a scheduled notification to sending, only one caller can claim it
        :return:
        False if the notification was cancelled or claimed by another run
        """
        self.status = NOTIFICATION_STATUS_SENDING
        try:
            self._update_db_record(fields=['status'],
                                   condition_expression=Attr('status').eq(NOTIFICATION_STATUS_SCHEDULED))
        except ClientError as error:
            if not utils_db.is_condition_check_failed(error):
                raise
            logger.info(f'claim ::: notification {self.id_} is not scheduled anymore, skipping')
            return False
        return True

    @classmethod
    def get_notifications(cls, filter_expression=None) -> List['Notification']:
        records = utils_db.query_items_paged(
            Key('partkey').eq(keys_structure.notifications_pk),
            filter_expression=filter_expression
        )
        return sorted((cls(**record) for record in records), key=lambda n: n.date_created, reverse=True)

    @classmethod
    @utils_app.request_exception_handler
    @utils_auth.authenticate
    @utils_app.log_start_finish
    def endpoint_create(cls, request) -> Response:
        request_body = utils_data.parse_raw_body(request)
        for key in ('id', 'status', 'stats', 'sent_at', 'created_by'):
            request_body.pop(key, None)
        notification = cls(id_=str(uuid4()), request_data={'auth_result': request.auth_result}, **request_body)
        if request_body.get('scheduled_at') is not None and notification.scheduled_at is None:
            raise exceptions.ValidationException('scheduled_at must be a valid date')
        if notification.is_due():
            notification.validate()
            notification.send()
        notification._create_db_record()
        return Response(status_code=http200, body={
            'message': 'Notification scheduled successfully' if notification.status == NOTIFICATION_STATUS_SCHEDULED
            else 'Notification sent successfully',
            'notification': notification.to_ui()
        })

    @classmethod
    @utils_app.request_exception_handler
    @utils_auth.authenticate
    @utils_app.log_start_finish
    def endpoint_get_notifications(cls, request) -> Response:
        qp = request.query_params or {}
        notifications = cls.get_notifications()
        if qp.get('status'):
            notifications = [n for n in notifications if n.status == qp.get('status')]
        return Response(status_code=http200, body=[notification.to_ui() for notification in notifications])

    @classmethod
    @utils_app.request_exception_handler
    @utils_auth.authenticate
    @utils_app.log_start_finish
    def endpoint_cancel(cls, request, notification_id) -> Response:
        notification = cls.init_request(request, notification_id)
        if notification.status != NOTIFICATION_STATUS_SCHEDULED:
            raise exceptions.NotificationNotCancellable(
                f'Only scheduled notifications can be cancelled, notification is {notification.status}')
        notification.status = NOTIFICATION_STATUS_CANCELLED
        try:
            notification._update_db_record(fields=['status'],
                                           condition_expression=Attr('status').eq(NOTIFICATION_STATUS_SCHEDULED))
        except ClientError as error:
            if not utils_db.is_condition_check_failed(error):
                raise
            raise exceptions.NotificationNotCancellable('Notification was already processed')
        return Response(status_code=http200, body={'message': 'Notification cancelled successfully',
                                                   'id': notification_id})


@utils_app.request_exception_handler
@utils_auth.authenticate
@utils_app.log_start_finish
def endpoint_get_templates(request) -> Response:
    return Response(status_code=http200, body=NOTIFICATION_TEMPLATES)


def send_due_notifications(now: datetime = None) -> List[str]:
    """
    Called by schedule, sends every scheduled notification whose time has come.
    A notification is claimed before sending, so a cancelled one is never sent
    and overlapping runs don't send it twice. If sending crashes the notification
    stays in sending status and is not retried.
    :return:
    ids of processed notifications
    """
    now = now or datetime.now(timezone.utc)
    scheduled = Notification.get_notifications(filter_expression=Attr('status').eq(NOTIFICATION_STATUS_SCHEDULED))
    processed = []
    for notification in scheduled:
        if not notification.is_due(now):
            continue
        try:
            if not notification.claim():
                continue
            notification.send()
            notification._update_db_record(fields=['status', 'stats', 'sent_at'],
                                           condition_expression=Attr('status').eq(NOTIFICATION_STATUS_SENDING))
            processed.append(notification.id_)
        except Exception as e:
            log_exception(e, msg=f'send_due_notifications ::: notification {notification.id_} failed')
    logger.info(f'send_due_notifications ::: processed notifications={processed}')
    return processed
