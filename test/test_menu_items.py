import json
from decimal import Decimal

import pytest as pytest

from chalicelib.constants import keys_structure
from chalicelib.constants.status_codes import http200, http400, http404
from chalicelib.utils import db
from utils.fixtures import chalice_gateway
from utils.records import get_category_record, id_super_admin, id_sub_admin
from utils.request_utils import make_request


def create_test_category(**kwargs) -> str:
    record = get_category_record(**kwargs)
    db.put_db_record(record)
    return record['id_']


def create_test_menu_item(chalice_gateway, category_id, **kwargs) -> str:
    menu_item_to_create = {
        'name': 'Paneer Tikka',
        'description': 'Cottage cheese grilled in tandoor',
        'price': 249.99,
        'category_id': category_id,
        **kwargs
    }
    response = make_request(chalice_gateway, endpoint='/menu-items', method='POST',
                            json_body=menu_item_to_create, token=id_sub_admin)
    return json.loads(response['body'])['id']


def get_menu_item_db_record(menu_item_id):
    return db.get_db_item(keys_structure.menu_items_pk, keys_structure.menu_items_sk.format(menu_item_id=menu_item_id))


@pytest.mark.local_db_test
def test_create_menu_item(chalice_gateway):
    category_id = create_test_category()
    menu_item_to_create = {
        'name': 'Paneer Tikka',
        'price': 249.99,
        'discounted_price': 199,
        'category_id': category_id,
        'sub_category': 'Veg',
        'tags': ['bestseller', 'spicy'],
        'is_veg': True,
        'preparation_time': 20,
        'add_ons': [{'name': 'Extra mint chutney', 'price': 15}]
    }
    response = make_request(chalice_gateway, endpoint='/menu-items', method='POST',
                            json_body=menu_item_to_create, token=id_sub_admin)
    response_body = json.loads(response['body'])
    assert response['statusCode'] == http200, f"status code not as expected"
    assert 'id' in response_body

    db_record = get_menu_item_db_record(response_body['id'])
    assert db_record['price'] == Decimal('249.99')
    assert db_record['discounted_price'] == Decimal('199.00')
    assert db_record['tags'] == ['bestseller', 'spicy']
    assert db_record['add_ons'] == [{'name': 'Extra mint chutney', 'price': Decimal('15.00')}]
    assert db_record['is_available'] is True
    assert db_record['archived'] is False
    assert db_record['created_by'] == id_sub_admin


@pytest.mark.local_db_test
@pytest.mark.parametrize('changes', [
    {'price': -1},
    {'price': 'NaN'},
    {'price': 'Infinity'},
    {'name': ''},
    {'discounted_price': 300},
    {'tags': ['unknown_tag']},
    {'add_ons': [{'name': 'Cheese', 'price': -5}]},
    {'category_id': 'not-existing'},
    {'sub_category': 'Desserts'},
])
def test_create_menu_item_validation(chalice_gateway, changes):
    category_id = create_test_category()
    menu_item_to_create = {'name': 'Paneer Tikka', 'price': 249.99, 'category_id': category_id, **changes}
    response = make_request(chalice_gateway, endpoint='/menu-items', method='POST',
                            json_body=menu_item_to_create, token=id_sub_admin)
    assert response['statusCode'] == http400, f"status code not as expected"


@pytest.mark.local_db_test
def test_create_menu_item_in_archived_category(chalice_gateway):
    category_id = create_test_category(archived=True)
    response = make_request(chalice_gateway, endpoint='/menu-items', method='POST',
                            json_body={'name': 'Paneer Tikka', 'price': 100, 'category_id': category_id},
                            token=id_sub_admin)
    assert response['statusCode'] == http400, f"status code not as expected"


@pytest.mark.local_db_test
def test_get_menu_items_with_filters(chalice_gateway):
    starters_id = create_test_category()
    mains_id = create_test_category(name='Main Course')
    tikka_id = create_test_menu_item(chalice_gateway, starters_id)
    curry_id = create_test_menu_item(chalice_gateway, mains_id, name='Dal Makhani', price=199)
    sold_out_id = create_test_menu_item(chalice_gateway, mains_id, name='Biryani', price=299, is_available=False)

    response = make_request(chalice_gateway, endpoint='/menu-items', method='GET', token=id_sub_admin)
    response_body = json.loads(response['body'])
    assert response['statusCode'] == http200, f"status code not as expected"
    assert {item['id'] for item in response_body} == {tikka_id, curry_id, sold_out_id}
    assert [item['price'] for item in response_body if item['id'] == tikka_id] == [249.99]

    response = make_request(chalice_gateway, endpoint='/menu-items', method='GET',
                            query=f'category_id={mains_id}', token=id_sub_admin)
    assert {item['id'] for item in json.loads(response['body'])} == {curry_id, sold_out_id}

    response = make_request(chalice_gateway, endpoint='/menu-items', method='GET',
                            query=f'category_id={mains_id}&available=true', token=id_sub_admin)
    assert [item['id'] for item in json.loads(response['body'])] == [curry_id]


@pytest.mark.local_db_test
def test_get_menu_items_includes_records_without_archived_flag(chalice_gateway):
    category_id = create_test_category()
    db.put_db_record({
        'partkey': keys_structure.menu_items_pk,
        'sortkey': keys_structure.menu_items_sk.format(menu_item_id='legacy-item'),
        'record_type': 'menu_item',
        'id_': 'legacy-item',
        'name': 'Masala Chai',
        'price': Decimal('40.00'),
        'category_id': category_id,
        'is_available': True,
        'created_by': id_super_admin,
        'date_created': '2023-01-01T00:00:00+00:00',
        'date_updated': '2023-01-01T00:00:00+00:00'
    })
    archived_id = create_test_menu_item(chalice_gateway, category_id, name='Old Special')
    make_request(chalice_gateway, endpoint=f'/menu-items/{archived_id}', method='DELETE', token=id_super_admin)

    response = make_request(chalice_gateway, endpoint='/menu-items', method='GET', token=id_sub_admin)
    assert response['statusCode'] == http200, f"status code not as expected"
    assert [item['id'] for item in json.loads(response['body'])] == ['legacy-item']


@pytest.mark.local_db_test
def test_update_menu_item(chalice_gateway):
    category_id = create_test_category()
    menu_item_id = create_test_menu_item(chalice_gateway, category_id)

    update_body = {'name': 'Achari Paneer Tikka', 'price': 279, 'is_available': False, 'created_by': 'someone'}
    response = make_request(chalice_gateway, endpoint=f'/menu-items/{menu_item_id}', method='PUT',
                            json_body=update_body, token=id_sub_admin)
    assert response['statusCode'] == http200, f"status code not as expected"

    db_record = get_menu_item_db_record(menu_item_id)
    assert db_record['name'] == 'Achari Paneer Tikka'
    assert db_record['price'] == Decimal('279.00')
    assert db_record['is_available'] is False
    assert db_record['created_by'] == id_sub_admin
    assert db_record['updated_by'] == id_sub_admin

    response = make_request(chalice_gateway, endpoint=f'/menu-items/{menu_item_id}', method='PUT',
                            json_body={'discounted_price': 500}, token=id_sub_admin)
    assert response['statusCode'] == http400


@pytest.mark.local_db_test
def test_delete_menu_item(chalice_gateway):
    category_id = create_test_category()
    menu_item_id = create_test_menu_item(chalice_gateway, category_id)

    response = make_request(chalice_gateway, endpoint=f'/menu-items/{menu_item_id}', method='DELETE',
                            token=id_super_admin)
    assert response['statusCode'] == http200, f"status code not as expected"
    assert get_menu_item_db_record(menu_item_id)['archived'] is True

    response = make_request(chalice_gateway, endpoint=f'/menu-items/{menu_item_id}', method='GET',
                            token=id_sub_admin)
    assert response['statusCode'] == http404

    response = make_request(chalice_gateway, endpoint='/menu-items', method='GET', token=id_sub_admin)
    assert json.loads(response['body']) == []
