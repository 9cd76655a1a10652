import json

import pytest
from chalice.local import ForbiddenError, NotAuthorizedError
from chalice.test import Client

from app import app
from chalicelib.constants.status_codes import http200, http401
from chalicelib.utils import auth as utils_auth
from utils.fixtures import chalice_gateway
from utils.records import id_super_admin, id_sub_admin, id_inactive_admin
from utils.request_utils import make_request, build_request


def test_index():
    with Client(app, stage_name='test') as client:
        response = client.http.get('/health-check')
        assert response.json_body == {'health': 'check'}


def test_get_admin_id_from_token():
    assert utils_auth.get_admin_id_from_token('Bearer abc') == 'abc'
    assert utils_auth.get_admin_id_from_token('bearer  abc ') == 'abc'
    assert utils_auth.get_admin_id_from_token('abc') == 'abc'
    assert utils_auth.get_admin_id_from_token('Bearer ') is None
    assert utils_auth.get_admin_id_from_token('Bearer') is None
    assert utils_auth.get_admin_id_from_token(' BEARER abc') == 'abc'
    assert utils_auth.get_admin_id_from_token('Bearer\tabc') == 'abc'
    assert utils_auth.get_admin_id_from_token('Bearer abc def') is None
    assert utils_auth.get_admin_id_from_token('   ') is None
    assert utils_auth.get_admin_id_from_token(None) is None


@pytest.mark.local_db_test
def test_missing_authorization_header_is_unauthorized(chalice_gateway):
    with pytest.raises(NotAuthorizedError):
        make_request(chalice_gateway, endpoint='/orders', method='GET')


@pytest.mark.local_db_test
def test_unknown_admin_is_forbidden(chalice_gateway):
    with pytest.raises(ForbiddenError):
        make_request(chalice_gateway, endpoint='/orders', method='GET', token='unknown-admin')


@pytest.mark.local_db_test
def test_inactive_admin_is_forbidden(chalice_gateway):
    with pytest.raises(ForbiddenError):
        make_request(chalice_gateway, endpoint='/orders', method='GET', token=id_inactive_admin)


@pytest.mark.local_db_test
def test_super_admin_can_call_any_route(chalice_gateway):
    response = make_request(chalice_gateway, endpoint='/payments/commission-rate', method='PUT',
                            json_body={'commission_rate': 20}, token=id_super_admin)
    assert response['statusCode'] == http200, f"status code not as expected"


@pytest.mark.local_db_test
def test_sub_admin_routes(chalice_gateway):
    response = make_request(chalice_gateway, endpoint='/orders', method='GET', token=id_sub_admin)
    assert response['statusCode'] == http200, f"status code not as expected"
    assert json.loads(response['body']) == []

    with pytest.raises(ForbiddenError):
        make_request(chalice_gateway, endpoint='/payments/commission-rate', method='PUT',
                     json_body={'commission_rate': 20}, token=id_sub_admin)
    with pytest.raises(ForbiddenError):
        make_request(chalice_gateway, endpoint='/promo-codes/some-id', method='DELETE', token=id_sub_admin)


@pytest.mark.local_db_test
def test_endpoint_authentication_rechecks_admin():
    """
    The endpoint itself answers 401 for a missing header or a deactivated admin
    """
    from chalicelib.orders import Order

    assert Order.endpoint_get_orders(build_request()).status_code == http401
    assert Order.endpoint_get_orders(build_request(token=id_inactive_admin)).status_code == http401
    assert Order.endpoint_get_orders(build_request(token=id_super_admin)).status_code == http200
