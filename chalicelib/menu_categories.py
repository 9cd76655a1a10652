from typing import List, Dict, Tuple
from uuid import uuid4

from boto3.dynamodb.conditions import Attr, Key
from chalice import Response

from chalicelib.base_class_entity import EntityBase
from chalicelib.constants import keys_structure
from chalicelib.constants.constants import MENU_CATEGORY_NAME_MAX_LENGTH, MENU_CATEGORY_DESCRIPTION_MAX_LENGTH
from chalicelib.constants.status_codes import http200
from chalicelib.utils import auth as utils_auth, data as utils_data, db as utils_db, app as utils_app, exceptions
from chalicelib.utils.logger import logger


def _is_name(value) -> bool:
    return isinstance(value, str) and 0 < len(value.strip()) <= MENU_CATEGORY_NAME_MAX_LENGTH


def _is_description(value) -> bool:
    return isinstance(value, str) and len(value) <= MENU_CATEGORY_DESCRIPTION_MAX_LENGTH


def _is_sub_category(value) -> bool:
    return isinstance(value, dict) and isinstance(value.get('id'), str) and _is_name(value.get('name')) and \
        (value.get('description') is None or _is_description(value.get('description')))


class MenuCategory(EntityBase):
    pk = keys_structure.menu_categories_pk
    sk = keys_structure.menu_categories_sk
    record_type = 'menu_category'

    required_immutable_fields_validation = {
        'id_': lambda x: isinstance(x, str),
        'created_by': lambda x: isinstance(x, str),
        'date_created': lambda x: isinstance(x, str)
    }

    required_mutable_fields_validation = {
        'name': _is_name,
        'is_active': lambda x: isinstance(x, bool),
        'sub_categories': lambda x: isinstance(x, list) and all(_is_sub_category(sub) for sub in x),
        'archived': lambda x: isinstance(x, bool),
        'date_updated': lambda x: isinstance(x, str)
    }

    optional_fields_validation = {
        'description': _is_description,
        'image': lambda x: isinstance(x, str),
        'updated_by': lambda x: isinstance(x, str)
    }

    def __init__(self, id_, **kwargs):
        EntityBase.__init__(self, id_, **kwargs)

        self.name: str = kwargs.get('name').strip() if isinstance(kwargs.get('name'), str) else kwargs.get('name')
        self.description: str = kwargs.get('description')
        self.image: str = kwargs.get('image')
        self.is_active: bool = kwargs.get('is_active', True)
        self.sub_categories: List[Dict] = list(kwargs.get('sub_categories') or [])
        self.created_by: str = kwargs.get('created_by') or self.admin_id
        self.updated_by: str = kwargs.get('updated_by')
        self.date_created: str = kwargs.get('date_created') or utils_data.now_iso()
        self.date_updated: str = kwargs.get('date_updated') or utils_data.now_iso()
        self.archived: bool = kwargs.get('archived', False)

    @classmethod
    def init_request(cls, request, category_id):
        category = cls.init_by_id(category_id, request_data={'auth_result': request.auth_result})
        if category.archived:
            raise exceptions.RecordNotFound(f'menu category {category_id} not found')
        return category

    def _get_pk_sk(self) -> Tuple[str, str]:
        return self.pk, self.sk.format(category_id=self.id_)

    def _to_dict(self) -> Dict:
        return {
            'id_': self.id_,
            'name': self.name,
            'description': self.description,
            'image': self.image,
            'is_active': self.is_active,
            'sub_categories': self.sub_categories,
            'created_by': self.created_by,
            'updated_by': self.updated_by,
            'date_created': self.date_created,
            'date_updated': self.date_updated,
            'archived': self.archived
        }

    def _validate_business_rules(self):
        names = [sub['name'].strip().lower() for sub in self.sub_categories]
        if len(names) != len(set(names)):
            raise exceptions.SubCategoryAlreadyExists('Subcategory names must be unique within a category')

    def add_sub_category(self, name: str, description: str = None) -> Dict:
        if not _is_name(name):
            self.raise_validation_error('name', name, message=f'Subcategory name is required and must not '
                                                              f'exceed {MENU_CATEGORY_NAME_MAX_LENGTH} characters')
        if any(sub['name'].strip().lower() == name.strip().lower() for sub in self.sub_categories):
            raise exceptions.SubCategoryAlreadyExists(f'Subcategory {name} already exists in category {self.name}')
        sub_category = {'id': str(uuid4()), 'name': name.strip(), 'is_active': True}
        if description is not None:
            sub_category['description'] = description
        self.sub_categories.append(sub_category)
        self._update_db_record(fields=['sub_categories'])
        return sub_category

    def update_sub_category(self, sub_category_id: str, changes: Dict) -> Dict:
        sub_category = next((sub for sub in self.sub_categories if sub.get('id') == sub_category_id), None)
        if sub_category is None:
            raise exceptions.SubCategoryNotFound('Subcategory not found')
        updated = {**sub_category, **{key: changes[key] for key in ('name', 'description', 'is_active')
                                      if key in changes}}
        if not _is_name(updated.get('name')):
            self.raise_validation_error('name', updated.get('name'),
                                        message=f'Subcategory name is required and must not '
                                                f'exceed {MENU_CATEGORY_NAME_MAX_LENGTH} characters')
        if not isinstance(updated.get('is_active', True), bool):
            self.raise_validation_error('is_active', updated.get('is_active'))
        updated['name'] = updated['name'].strip()
        if any(sub.get('id') != sub_category_id and sub['name'].strip().lower() == updated['name'].lower()
               for sub in self.sub_categories):
            raise exceptions.SubCategoryAlreadyExists(
                f'Subcategory {updated["name"]} already exists in category {self.name}')
        self.sub_categories = [updated if sub.get('id') == sub_category_id else sub for sub in self.sub_categories]
        self._update_db_record(fields=['sub_categories'])
        return updated

    def remove_sub_category(self, sub_category_id: str) -> None:
        sub_categories = [sub for sub in self.sub_categories if sub.get('id') != sub_category_id]
        if len(sub_categories) == len(self.sub_categories):
            raise exceptions.SubCategoryNotFound('Subcategory not found')
        self.sub_categories = sub_categories
        self._update_db_record(fields=['sub_categories'])

    @staticmethod
    def get_db_records() -> List[Dict]:
        return utils_db.query_items_paged(
            Key('partkey').eq(keys_structure.menu_categories_pk),
            filter_expression=Attr('archived').not_exists() | Attr('archived').eq(False)
        )

    @classmethod
    @utils_app.request_exception_handler
    @utils_auth.authenticate
    @utils_app.log_start_finish
    def endpoint_get_categories(cls, request) -> Response:
        categories = sorted((cls(**record) for record in cls.get_db_records()), key=lambda c: c.name.lower())
        logger.info(f"endpoint_get_categories ::: returning categories={[category.id_ for category in categories]}")
        return Response(status_code=http200, body=[category.to_ui() for category in categories])

    @classmethod
    @utils_app.request_exception_handler
    @utils_auth.authenticate
    @utils_app.log_start_finish
    def endpoint_get_by_id(cls, request, category_id) -> Response:
        return Response(status_code=http200, body=cls.init_request(request, category_id).to_ui())

    @classmethod
    @utils_app.request_exception_handler
    @utils_auth.authenticate
    @utils_app.log_start_finish
    def endpoint_create(cls, request) -> Response:
        request_body = utils_data.parse_raw_body(request)
        request_body.pop('id', None)
        request_body['sub_categories'] = [
            {'id': str(uuid4()), 'is_active': True, **sub}
            for sub in request_body.get('sub_categories') or [] if isinstance(sub, dict)
        ]
        category = cls(id_=str(uuid4()), request_data={'auth_result': request.auth_result}, **request_body)
        category._create_db_record()
        return Response(status_code=http200, body={'message': 'Menu category successfully created',
                                                   'id': category.id_})

    @classmethod
    @utils_app.request_exception_handler
    @utils_auth.authenticate
    @utils_app.log_start_finish
    def endpoint_update(cls, request, category_id) -> Response:
        category = cls.init_request(request, category_id)
        request_body = utils_data.parse_raw_body(request)
        request_body.pop('sub_categories', None)
        changed_fields = category.apply_changes(request_body)
        category._update_db_record(fields=changed_fields)
        return Response(status_code=http200, body={'message': 'Menu category was successfully updated',
                                                   'id': category.id_})

    @classmethod
    @utils_app.request_exception_handler
    @utils_auth.authenticate
    @utils_app.log_start_finish
    def endpoint_archive(cls, request, category_id) -> Response:
        category = cls.init_request(request, category_id)
        category.archived = True
        category.is_active = False
        category._update_db_record(fields=['archived', 'is_active'])
        return Response(status_code=http200, body={'message': 'Menu category was successfully deleted',
                                                   'id': category.id_})

    @classmethod
    @utils_app.request_exception_handler
    @utils_auth.authenticate
    @utils_app.log_start_finish
    def endpoint_add_sub_category(cls, request, category_id) -> Response:
        request_body = utils_data.parse_raw_body(request)
        category = cls.init_request(request, category_id)
        sub_category = category.add_sub_category(request_body.get('name'), request_body.get('description'))
        return Response(status_code=http200, body={'message': 'Subcategory successfully added',
                                                   'sub_category': sub_category})

    @classmethod
    @utils_app.request_exception_handler
    @utils_auth.authenticate
    @utils_app.log_start_finish
    def endpoint_remove_sub_category(cls, request, category_id, sub_category_id) -> Response:
        category = cls.init_request(request, category_id)
        category.remove_sub_category(sub_category_id)
        return Response(status_code=http200, body={'message': 'Subcategory successfully removed',
                                                   'id': sub_category_id})

    @classmethod
    @utils_app.request_exception_handler
    @utils_auth.authenticate
    @utils_app.log_start_finish
    def endpoint_update_sub_category(cls, request, category_id, sub_category_id) -> Response:
        request_body = utils_data.parse_raw_body(request)
        category = cls.init_request(request, category_id)
        sub_category = category.update_sub_category(sub_category_id, request_body)
        return Response(status_code=http200, body={'message': 'Subcategory successfully updated',
                                                   'sub_category': sub_category})
