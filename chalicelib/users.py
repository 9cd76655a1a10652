from typing import Tuple, List, Dict

from boto3.dynamodb.conditions import Key, Attr
from chalice import Response

from chalicelib.base_class_entity import EntityBase
from chalicelib.constants import keys_structure
from chalicelib.constants.constants import USER_STATUSES
from chalicelib.constants.status_codes import http200
from chalicelib.delivery_partners import DeliveryPartner
from chalicelib.utils import auth as utils_auth, app as utils_app, data as utils_data, db as utils_db, exceptions
from chalicelib.utils.logger import logger


class User(EntityBase):
    pk = keys_structure.users_pk
    sk = keys_structure.users_sk
    record_type = 'user'

    required_immutable_fields_validation = {
        'id_': lambda x: isinstance(x, str),
        'date_created': lambda x: isinstance(x, str)
    }

    required_mutable_fields_validation = {
        'status': lambda x: x in USER_STATUSES,
        'update_history': lambda x: isinstance(x, list),
        'archived': lambda x: isinstance(x, bool),
        'date_updated': lambda x: isinstance(x, str)
    }

    optional_fields_validation = {
        'display_name': lambda x: isinstance(x, str) and len(x.strip()) > 0,
        'email': lambda x: isinstance(x, str) and '@' in x,
        'phone': lambda x: isinstance(x, str),
        'role': lambda x: isinstance(x, str),
        'updated_by': lambda x: isinstance(x, str)
    }

    def __init__(self, id_, **kwargs):
        EntityBase.__init__(self, id_, **kwargs)

        self.display_name: str = kwargs.get('display_name') or kwargs.get('name')
        self.email: str = kwargs.get('email')
        self.phone: str = kwargs.get('phone') or kwargs.get('phone_number')
        self.role: str = kwargs.get('role', 'customer')
        self.status: str = kwargs.get('status', 'active')
        self.update_history: List[Dict] = list(kwargs.get('update_history') or [])
        self.date_created: str = utils_data.normalize_timestamp(
            utils_data.first_present(kwargs, ('date_created', 'created_at', 'createdAt'))) or utils_data.now_iso()
        self.date_updated: str = kwargs.get('date_updated') or utils_data.now_iso()
        self.updated_by: str = kwargs.get('updated_by')
        self.archived: bool = kwargs.get('archived', False)

    @classmethod
    def init_request(cls, request, user_id):
        user = cls.init_by_id(user_id, request_data={'auth_result': request.auth_result})
        if user.archived:
            raise exceptions.RecordNotFound(f'user {user_id} not found')
        return user

    def _get_pk_sk(self) -> Tuple[str, str]:
        return self.pk, self.sk.format(user_id=self.id_)

    def _to_dict(self):
        return {
            'id_': self.id_,
            'display_name': self.display_name,
            'email': self.email,
            'phone': self.phone,
            'role': self.role,
            'status': self.status,
            'update_history': self.update_history,
            'date_created': self.date_created,
            'date_updated': self.date_updated,
            'updated_by': self.updated_by,
            'archived': self.archived
        }

    def change_status(self, status: str, reason: str = None) -> None:
        if status not in USER_STATUSES:
            raise exceptions.ValidationException('Invalid status. Must be one of: active, inactive, or banned')
        self.update_history.append({
            'field': 'status',
            'old_value': self.status,
            'new_value': status,
            'reason': reason,
            'changed_at': utils_data.now_iso(),
            'changed_by': self.admin_id
        })
        self.status = status
        self._update_db_record(fields=['status', 'update_history'])
        logger.info(f'change_status ::: user {self.id_} status changed to {status}')

    @staticmethod
    def get_db_records() -> List[Dict]:
        return utils_db.query_items_paged(
            Key('partkey').eq(keys_structure.users_pk),
            filter_expression=Attr('archived').not_exists() | Attr('archived').eq(False)
        )

    @classmethod
    @utils_app.request_exception_handler
    @utils_auth.authenticate
    @utils_app.log_start_finish
    def endpoint_get_users(cls, request) -> Response:
        qp = request.query_params or {}
        users = [cls(**record) for record in cls.get_db_records()]
        if qp.get('status'):
            users = [user for user in users if user.status == qp.get('status')]
        if qp.get('role'):
            users = [user for user in users if user.role == qp.get('role')]
        users.sort(key=lambda user: user.date_created, reverse=True)
        logger.info(f'endpoint_get_users ::: returning {len(users)} users')
        return Response(status_code=http200, body=[user.to_ui() for user in users])

    @classmethod
    @utils_app.request_exception_handler
    @utils_auth.authenticate
    @utils_app.log_start_finish
    def endpoint_get_counts(cls, request) -> Response:
        return Response(status_code=http200, body={
            'total_users': len(cls.get_db_records()),
            'total_delivery_partners': len(DeliveryPartner.get_db_records())
        })

    @classmethod
    @utils_app.request_exception_handler
    @utils_auth.authenticate
    @utils_app.log_start_finish
    def endpoint_get_user(cls, request, user_id) -> Response:
        return Response(status_code=http200, body=cls.init_request(request, user_id).to_ui())

    @classmethod
    @utils_app.request_exception_handler
    @utils_auth.authenticate
    @utils_app.log_start_finish
    def endpoint_update_user(cls, request, user_id) -> Response:
        user = cls.init_request(request, user_id)
        request_body = utils_data.parse_raw_body(request)
        changes = {key: value for key, value in request_body.items() if key in ('display_name', 'email', 'phone')}
        changed_fields = user.apply_changes(changes)
        user._update_db_record(fields=changed_fields)
        return Response(status_code=http200, body={'message': 'User updated successfully', 'user': user.to_ui()})

    @classmethod
    @utils_app.request_exception_handler
    @utils_auth.authenticate
    @utils_app.log_start_finish
    def endpoint_update_status(cls, request, user_id) -> Response:
        request_body = utils_data.parse_raw_body(request)
        user = cls.init_request(request, user_id)
        user.change_status(request_body.get('status'), reason=request_body.get('reason'))
        return Response(status_code=http200, body={'message': 'User status updated successfully',
                                                   'user': user.to_ui()})
