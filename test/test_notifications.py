import json
from datetime import datetime, timezone

import pytest as pytest
from botocore.exceptions import ClientError

from chalicelib.constants import keys_structure
from chalicelib.constants.status_codes import http200, http400, http404, http409
from chalicelib.notifications import Notification, send_due_notifications
from chalicelib.utils import db
from chalicelib.utils import notifications as utils_notifications
from utils.fixtures import chalice_gateway
from utils.records import get_user_record, get_partner_record, id_super_admin, id_sub_admin
from utils.request_utils import make_request

NOW = datetime(2024, 6, 15, 12, 0, tzinfo=timezone.utc)


def get_notification_record(notification_id, status='scheduled', scheduled_at='2024-06-15T10:00:00+00:00',
                            **kwargs):
    return {
        'partkey': keys_structure.notifications_pk,
        'sortkey': keys_structure.notifications_sk.format(notification_id=notification_id),
        'record_type': 'notification',
        'id_': notification_id,
        'title': 'Lunch deals',
        'message': 'Flat 20% off on all thalis till 3 PM',
        'notification_type': 'promotional',
        'audience': {'type': 'all'},
        'scheduled_at': scheduled_at,
        'status': status,
        'stats': {'recipients': 0, 'sent': 0, 'failed': 0},
        'created_by': id_super_admin,
        'date_created': '2024-06-01T09:00:00+00:00',
        'date_updated': '2024-06-01T09:00:00+00:00',
        **kwargs
    }


def get_notification_db_record(notification_id):
    return db.get_db_item(keys_structure.notifications_pk,
                          keys_structure.notifications_sk.format(notification_id=notification_id))


@pytest.fixture
def published(monkeypatch):
    """Replaces SNS publishing, collects the published payloads"""
    payloads = []

    def fake_publish_sns(subject, payload, attributes=None, topic_arn=None):
        payloads.append(payload)
        return f'message-{len(payloads)}'

    monkeypatch.setattr(utils_notifications, 'publish_sns', fake_publish_sns)
    return payloads


def test_is_due():
    assert Notification(id_='n-1').is_due(NOW) is True
    assert Notification(id_='n-1', scheduled_at='2024-06-15T11:59:59Z').is_due(NOW) is True
    assert Notification(id_='n-1', scheduled_at='2024-06-15T12:00:01Z').is_due(NOW) is False
    assert Notification(id_='n-1', scheduled_at='2024-06-15T17:00:00+05:30').is_due(NOW) is True


@pytest.mark.local_db_test
def test_resolve_recipients():
    active_user = get_user_record()
    banned_user = get_user_record(status='banned')
    archived_user = get_user_record(archived=True)
    active_partner = get_partner_record()
    blocked_partner = get_partner_record(is_active=False)
    for record in (active_user, banned_user, archived_user, active_partner, blocked_partner):
        db.put_db_record(record)

    assert set(Notification(id_='n-1', audience={'type': 'all'}).resolve_recipients()) == \
        {active_user['id_'], banned_user['id_']}
    assert Notification(id_='n-1', audience={'type': 'active_users'}).resolve_recipients() == [active_user['id_']]
    assert Notification(id_='n-1', audience={'type': 'delivery_partners'}).resolve_recipients() == \
        [active_partner['id_']]
    assert Notification(id_='n-1', audience={'type': 'specific_users', 'user_ids': ['u-2', 'u-1', 'u-2']}) \
        .resolve_recipients() == ['u-2', 'u-1']


@pytest.mark.local_db_test
def test_send_in_batches_counts_failed_batch(monkeypatch):
    monkeypatch.setenv('NOTIFICATION_BATCH_SIZE', '2')
    calls = []

    def publish_failing_second_batch(subject, payload, attributes=None, topic_arn=None):
        calls.append(payload['recipient_ids'])
        if len(calls) == 2:
            raise ClientError({'Error': {'Code': 'InternalError', 'Message': 'SNS is down'}}, 'Publish')
        return 'message-id'

    monkeypatch.setattr(utils_notifications, 'publish_sns', publish_failing_second_batch)
    notification = Notification(id_='n-1', title='Hello', message='World', notification_type='system',
                                audience={'type': 'specific_users', 'user_ids': ['u-1', 'u-2', 'u-3', 'u-4', 'u-5']})
    notification.send()

    assert calls == [['u-1', 'u-2'], ['u-3', 'u-4'], ['u-5']]
    assert notification.stats == {'recipients': 5, 'sent': 3, 'failed': 2}
    assert notification.status == 'sent'
    assert notification.sent_at is not None


@pytest.mark.local_db_test
def test_send_fails_when_every_batch_fails(monkeypatch):
    def publish_failing(subject, payload, attributes=None, topic_arn=None):
        raise ClientError({'Error': {'Code': 'InternalError', 'Message': 'SNS is down'}}, 'Publish')

    monkeypatch.setattr(utils_notifications, 'publish_sns', publish_failing)
    notification = Notification(id_='n-1', title='Hello', message='World', notification_type='system',
                                audience={'type': 'specific_users', 'user_ids': ['u-1']})
    notification.send()
    assert notification.status == 'failed'
    assert notification.stats == {'recipients': 1, 'sent': 0, 'failed': 1}


@pytest.mark.local_db_test
def test_create_notification_sends_immediately(chalice_gateway):
    db.put_db_record(get_user_record())
    db.put_db_record(get_user_record(status='inactive'))

    notification_to_create = {
        'title': 'Weekend offer',
        'message': 'Free delivery on all orders this weekend',
        'type': 'promotional',
        'audience': {'type': 'active_users'},
        'status': 'cancelled'
    }
    response = make_request(chalice_gateway, endpoint='/notifications', method='POST',
                            json_body=notification_to_create, token=id_sub_admin)
    response_body = json.loads(response['body'])
    assert response['statusCode'] == http200, f"status code not as expected"
    assert response_body['message'] == 'Notification sent successfully'

    db_record = get_notification_db_record(response_body['notification']['id'])
    assert db_record['status'] == 'sent'
    assert db_record['notification_type'] == 'promotional'
    assert db_record['stats'] == {'recipients': 1, 'sent': 1, 'failed': 0}
    assert db_record['created_by'] == id_sub_admin
    assert 'sent_at' in db_record


@pytest.mark.local_db_test
def test_create_scheduled_notification(chalice_gateway, published):
    notification_to_create = {
        'title': 'New year menu',
        'message': 'Our festive menu is live',
        'notification_type': 'promotional',
        'scheduled_at': '2099-01-01T00:00:00Z'
    }
    response = make_request(chalice_gateway, endpoint='/notifications', method='POST',
                            json_body=notification_to_create, token=id_sub_admin)
    response_body = json.loads(response['body'])
    assert response['statusCode'] == http200, f"status code not as expected"
    assert response_body['message'] == 'Notification scheduled successfully'
    assert response_body['notification']['scheduled_at'] == '2099-01-01T00:00:00+00:00'
    assert published == []

    db_record = get_notification_db_record(response_body['notification']['id'])
    assert db_record['status'] == 'scheduled'
    assert db_record['audience'] == {'type': 'all'}


@pytest.mark.local_db_test
@pytest.mark.parametrize('changes', [
    {'title': None},
    {'title': 'x' * 101},
    {'message': '  '},
    {'notification_type': 'spam'},
    {'audience': {'type': 'specific_users', 'user_ids': []}},
    {'audience': {'type': 'restaurants'}},
    {'scheduled_at': 'tomorrow morning'},
])
def test_create_notification_validation(chalice_gateway, published, changes):
    notification_to_create = {'title': 'Hello', 'message': 'World', 'notification_type': 'system', **changes}
    response = make_request(chalice_gateway, endpoint='/notifications', method='POST',
                            json_body=notification_to_create, token=id_sub_admin)
    assert response['statusCode'] == http400, f"status code not as expected"
    assert published == []


@pytest.mark.local_db_test
def test_get_notifications_newest_first(chalice_gateway):
    db.put_db_record(get_notification_record('n-old', status='sent', date_created='2024-05-01T09:00:00+00:00'))
    db.put_db_record(get_notification_record('n-new', date_created='2024-06-10T09:00:00+00:00'))
    db.put_db_record(get_notification_record('n-middle', status='cancelled',
                                             date_created='2024-05-20T09:00:00+00:00'))

    response = make_request(chalice_gateway, endpoint='/notifications', method='GET', token=id_sub_admin)
    assert response['statusCode'] == http200, f"status code not as expected"
    assert [n['id'] for n in json.loads(response['body'])] == ['n-new', 'n-middle', 'n-old']

    response = make_request(chalice_gateway, endpoint='/notifications', method='GET', query='status=sent',
                            token=id_sub_admin)
    assert [n['id'] for n in json.loads(response['body'])] == ['n-old']


@pytest.mark.local_db_test
def test_get_templates(chalice_gateway, caplog):
    with caplog.at_level('INFO'):
        response = make_request(chalice_gateway, endpoint='/notifications/templates', method='GET',
                                token=id_sub_admin)
    response_body = json.loads(response['body'])
    assert response['statusCode'] == http200, f"status code not as expected"
    assert [template['name'] for template in response_body] == ['Welcome', 'Promo']
    assert 'endpoint_get_templates ::: started' in caplog.text
    assert 'endpoint_get_templates ::: finished' in caplog.text


@pytest.mark.local_db_test
def test_cancel_notification(chalice_gateway):
    db.put_db_record(get_notification_record('n-1', scheduled_at='2099-01-01T00:00:00+00:00'))
    db.put_db_record(get_notification_record('n-sent', status='sent'))

    response = make_request(chalice_gateway, endpoint='/notifications/n-1', method='DELETE', token=id_super_admin)
    assert response['statusCode'] == http200, f"status code not as expected"
    assert json.loads(response['body'])['message'] == 'Notification cancelled successfully'
    assert get_notification_db_record('n-1')['status'] == 'cancelled'

    for notification_id in ('n-1', 'n-sent'):
        response = make_request(chalice_gateway, endpoint=f'/notifications/{notification_id}', method='DELETE',
                                token=id_super_admin)
        assert response['statusCode'] == http409

    response = make_request(chalice_gateway, endpoint='/notifications/not-existing', method='DELETE',
                            token=id_super_admin)
    assert response['statusCode'] == http404


@pytest.mark.local_db_test
def test_send_due_notifications(published):
    db.put_db_record(get_user_record())
    db.put_db_record(get_notification_record('n-due', scheduled_at='2024-06-15T11:00:00+00:00'))
    db.put_db_record(get_notification_record('n-future', scheduled_at='2024-06-15T13:00:00+00:00'))
    db.put_db_record(get_notification_record('n-cancelled', status='cancelled',
                                             scheduled_at='2024-06-15T11:00:00+00:00'))

    assert send_due_notifications(now=NOW) == ['n-due']
    assert len(published) == 1
    assert published[0]['notification_id'] == 'n-due'

    db_record = get_notification_db_record('n-due')
    assert db_record['status'] == 'sent'
    assert db_record['stats'] == {'recipients': 1, 'sent': 1, 'failed': 0}
    assert get_notification_db_record('n-future')['status'] == 'scheduled'
    assert get_notification_db_record('n-cancelled')['status'] == 'cancelled'


@pytest.mark.local_db_test
def test_send_due_notifications_skips_notification_cancelled_after_listing(monkeypatch, published):
    db.put_db_record(get_user_record())
    db.put_db_record(get_notification_record('n-due', scheduled_at='2024-06-15T11:00:00+00:00'))
    get_scheduled_notifications = Notification.get_notifications

    def get_then_cancel(filter_expression=None):
        notifications = get_scheduled_notifications(filter_expression=filter_expression)
        db.put_db_record(get_notification_record('n-due', status='cancelled',
                                                 scheduled_at='2024-06-15T11:00:00+00:00'))
        return notifications

    monkeypatch.setattr(Notification, 'get_notifications', get_then_cancel)

    assert send_due_notifications(now=NOW) == []
    assert published == []
    assert get_notification_db_record('n-due')['status'] == 'cancelled'


@pytest.mark.local_db_test
def test_send_due_notifications_claims_each_notification_once(monkeypatch, published):
    db.put_db_record(get_user_record())
    db.put_db_record(get_notification_record('n-due', scheduled_at='2024-06-15T11:00:00+00:00'))
    get_scheduled_notifications = Notification.get_notifications
    overlapping_runs = []

    def get_during_another_run(filter_expression=None):
        notifications = get_scheduled_notifications(filter_expression=filter_expression)
        if not overlapping_runs:
            overlapping_runs.append('started')
            overlapping_runs.append(send_due_notifications(now=NOW))
        return notifications

    monkeypatch.setattr(Notification, 'get_notifications', get_during_another_run)

    assert send_due_notifications(now=NOW) == []
    assert overlapping_runs == ['started', ['n-due']]
    assert len(published) == 1
    assert get_notification_db_record('n-due')['status'] == 'sent'

    assert send_due_notifications(now=NOW) == []
    assert len(published) == 1


@pytest.mark.local_db_test
def test_send_due_notifications_continues_after_a_failed_notification(monkeypatch):
    db.put_db_record(get_user_record())
    db.put_db_record(get_notification_record('n-broken', scheduled_at='2024-06-15T10:00:00+00:00'))
    db.put_db_record(get_notification_record('n-ok', scheduled_at='2024-06-15T11:00:00+00:00'))
    published_ids = []

    def publish_crashing_for_broken(subject, payload, attributes=None, topic_arn=None):
        if payload['notification_id'] == 'n-broken':
            raise RuntimeError('push gateway payload rejected')
        published_ids.append(payload['notification_id'])
        return 'message-id'

    monkeypatch.setattr(utils_notifications, 'publish_sns', publish_crashing_for_broken)

    assert send_due_notifications(now=NOW) == ['n-ok']
    assert published_ids == ['n-ok']
    assert get_notification_db_record('n-ok')['status'] == 'sent'
    assert get_notification_db_record('n-broken')['status'] == 'sending'

    assert send_due_notifications(now=NOW) == []
    assert published_ids == ['n-ok']


@pytest.mark.local_db_test
def test_sending_notification_can_not_be_cancelled(chalice_gateway):
    db.put_db_record(get_notification_record('n-1', status='sending'))
    response = make_request(chalice_gateway, endpoint='/notifications/n-1', method='DELETE', token=id_super_admin)
    assert response['statusCode'] == http409, f"status code not as expected"


@pytest.mark.parametrize('title, expected', [
    ('Lunch deals', 'Lunch deals'),
    ('Diwali offers 🎉\nup to 50% off', 'Diwali offers up to 50% off'),
    ('दिवाली ऑफर', 'Notification'),
    ('Holi\r\n\tspecial\x07', 'Holi special'),
    ('', 'Notification'),
    (None, 'Notification'),
    ('x' * 150, 'x' * 100),
])
def test_get_sns_subject(title, expected):
    assert utils_notifications.get_sns_subject(title) == expected


def test_publish_sns_sends_ascii_subject(monkeypatch):
    calls = []

    class FakeSnsClient:
        @staticmethod
        def publish(**kwargs):
            calls.append(kwargs)
            return {'MessageId': 'message-1'}

    monkeypatch.setattr(utils_notifications, 'sns_client', FakeSnsClient)
    title = 'नमस्ते 👋\nWelcome to Biryani House'
    message_id = utils_notifications.publish_sns(subject=title, payload={'title': title})

    assert message_id == 'message-1'
    assert calls[0]['Subject'] == 'Welcome to Biryani House'
    assert json.loads(calls[0]['Message']) == {'title': title}
