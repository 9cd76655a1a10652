from decimal import Decimal
from typing import List, Dict, Tuple
from uuid import uuid4

from boto3.dynamodb.conditions import Attr, Key
from chalice import Response

from chalicelib.base_class_entity import EntityBase
from chalicelib.constants import keys_structure
from chalicelib.constants.constants import MENU_ITEM_TAGS
from chalicelib.constants.status_codes import http200
from chalicelib.menu_categories import MenuCategory
from chalicelib.utils import auth as utils_auth, data as utils_data, db as utils_db, app as utils_app, exceptions
from chalicelib.utils.logger import logger


def _is_add_on(value) -> bool:
    return isinstance(value, dict) and isinstance(value.get('name'), str) and len(value['name'].strip()) > 0 and \
        isinstance(value.get('price'), Decimal) and value['price'] >= 0


class MenuItem(EntityBase):
    pk = keys_structure.menu_items_pk
    sk = keys_structure.menu_items_sk
    record_type = 'menu_item'

    required_immutable_fields_validation = {
        'id_': lambda x: isinstance(x, str),
        'created_by': lambda x: isinstance(x, str),
        "date_created": lambda x: isinstance(x, str)
    }

    required_mutable_fields_validation = {
        'name': lambda x: isinstance(x, str) and len(x.strip()) > 0,
        'price': lambda x: isinstance(x, Decimal) and x >= 0,
        'category_id': lambda x: isinstance(x, str),
        'is_available': lambda x: isinstance(x, bool),
        'is_veg': lambda x: isinstance(x, bool),
        'tags': lambda x: isinstance(x, list) and all(tag in MENU_ITEM_TAGS for tag in x),
        'add_ons': lambda x: isinstance(x, list) and all(_is_add_on(add_on) for add_on in x),
        "date_updated": lambda x: isinstance(x, str),
        "archived": lambda x: isinstance(x, bool)
    }

    optional_fields_validation = {
        'description': lambda x: isinstance(x, str),
        'discounted_price': lambda x: isinstance(x, Decimal) and x >= 0,
        'sub_category': lambda x: isinstance(x, str),
        'preparation_time': lambda x: isinstance(x, Decimal) and x > 0,
        'image': lambda x: isinstance(x, str),
        "updated_by": lambda x: isinstance(x, str)
    }

    def __init__(self, id_, **kwargs):
        EntityBase.__init__(self, id_, **kwargs)

        self.name: str = kwargs.get('name')
        self.description: str = kwargs.get('description')
        self.price: Decimal = utils_data.to_decimal(kwargs.get('price'))
        self.discounted_price: Decimal = utils_data.to_decimal(kwargs.get('discounted_price'))
        self.category_id: str = kwargs.get('category_id')
        self.sub_category: str = kwargs.get('sub_category')
        self.tags: List[str] = list(kwargs.get('tags') or [])
        self.is_veg: bool = kwargs.get('is_veg', False)
        self.is_available: bool = kwargs.get('is_available', True)
        self.preparation_time: Decimal = utils_data.to_decimal(kwargs.get('preparation_time'), places='1')
        self.add_ons: List[Dict] = [
            {**add_on, 'price': utils_data.to_decimal(add_on.get('price'))} if isinstance(add_on, dict) else add_on
            for add_on in kwargs.get('add_ons') or []
        ]
        self.image: str = kwargs.get('image')
        self.created_by: str = kwargs.get('created_by') or self.admin_id
        self.updated_by: str = kwargs.get('updated_by')
        self.date_created: str = kwargs.get('date_created') or utils_data.now_iso()
        self.date_updated: str = kwargs.get('date_updated') or utils_data.now_iso()
        self.archived: bool = kwargs.get('archived', False)

    @classmethod
    def init_request(cls, request, menu_item_id):
        menu_item = cls.init_by_id(menu_item_id, request_data={'auth_result': request.auth_result})
        if menu_item.archived:
            raise exceptions.RecordNotFound(f'menu item {menu_item_id} not found')
        return menu_item

    def _get_pk_sk(self) -> Tuple[str, str]:
        return self.pk, self.sk.format(menu_item_id=self.id_)

    def _to_dict(self):
        return {
            'id_': self.id_,
            'name': self.name,
            'description': self.description,
            'price': self.price,
            'discounted_price': self.discounted_price,
            'category_id': self.category_id,
            'sub_category': self.sub_category,
            'tags': self.tags,
            'is_veg': self.is_veg,
            'is_available': self.is_available,
            'preparation_time': self.preparation_time,
            'add_ons': self.add_ons,
            'image': self.image,
            "date_created": self.date_created,
            "date_updated": self.date_updated,
            'created_by': self.created_by,
            'updated_by': self.updated_by,
            "archived": self.archived
        }

    def _validate_business_rules(self):
        if self.archived:
            return
        if self.discounted_price is not None and self.discounted_price > self.price:
            self.raise_validation_error('discounted_price', self.discounted_price,
                                        message='Discounted price can not be greater than price')
        try:
            category = MenuCategory.init_by_id(self.category_id)
        except exceptions.RecordNotFound:
            category = None
        if category is None or category.archived:
            self.raise_validation_error('category_id', self.category_id,
                                        message=f'Menu category {self.category_id} does not exist')
        if self.sub_category is not None and \
                self.sub_category not in [sub.get('name') for sub in category.sub_categories]:
            self.raise_validation_error('sub_category', self.sub_category,
                                        message=f'Subcategory {self.sub_category} does not exist '
                                                f'in category {category.name}')

    @staticmethod
    @utils_app.request_exception_handler
    @utils_auth.authenticate
    @utils_app.log_start_finish
    def endpoint_get_menu_items(request) -> Response:
        qp = request.query_params or {}
        filter_expression = Attr('archived').not_exists() | Attr('archived').eq(False)
        if qp.get('category_id'):
            filter_expression = filter_expression & Attr('category_id').eq(qp.get('category_id'))
        if qp.get('available') in ('true', 'false'):
            filter_expression = filter_expression & Attr('is_available').eq(qp.get('available') == 'true')
        menu_item_db_records: List[Dict] = utils_db.query_items_paged(
            Key('partkey').eq(keys_structure.menu_items_pk),
            filter_expression=filter_expression
        )
        menu_items: List[Dict] = [MenuItem(**record)._to_ui() for record in menu_item_db_records]
        logger.info(f"endpoint_get_menu_items ::: returning menu items={[item['id'] for item in menu_items]}")
        return Response(status_code=http200, body=menu_items)

    @classmethod
    @utils_app.request_exception_handler
    @utils_auth.authenticate
    @utils_app.log_start_finish
    def endpoint_get_by_id(cls, request, menu_item_id) -> Response:
        return Response(status_code=http200, body=cls.init_request(request, menu_item_id).to_ui())

    @classmethod
    @utils_app.request_exception_handler
    @utils_auth.authenticate
    @utils_app.log_start_finish
    def endpoint_create_menu_item(cls, request) -> Response:
        request_body = utils_data.parse_raw_body(request)
        request_body.pop('id', None)
        menu_item = cls(id_=str(uuid4()), request_data={'auth_result': request.auth_result}, **request_body)
        menu_item._create_db_record()
        return Response(status_code=http200, body={'message': 'Menu item successfully created', 'id': menu_item.id_})

    @classmethod
    @utils_app.request_exception_handler
    @utils_auth.authenticate
    @utils_app.log_start_finish
    def endpoint_update_menu_item(cls, request, menu_item_id) -> Response:
        menu_item = cls.init_request(request, menu_item_id)
        changed_fields = menu_item.apply_changes(utils_data.parse_raw_body(request))
        menu_item._update_db_record(fields=changed_fields)
        return Response(status_code=http200, body={'message': 'Menu item was successfully updated',
                                                   'id': menu_item.id_})

    @classmethod
    @utils_app.request_exception_handler
    @utils_auth.authenticate
    @utils_app.log_start_finish
    def endpoint_archive_menu_item(cls, request, menu_item_id) -> Response:
        menu_item = cls.init_request(request, menu_item_id)
        menu_item.archived = True
        menu_item._update_db_record(fields=['archived'])
        return Response(status_code=http200, body={'message': 'Menu item was successfully deleted',
                                                   'id': menu_item.id_})
