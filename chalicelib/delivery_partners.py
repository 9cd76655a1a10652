from decimal import Decimal
from typing import List, Dict, Tuple

from boto3.dynamodb.conditions import Attr, Key
from chalice import Response

from chalicelib.base_class_entity import EntityBase
from chalicelib.constants import keys_structure
from chalicelib.constants.constants import PARTNER_ACCOUNT_STATUSES
from chalicelib.constants.status_codes import http200
from chalicelib.utils import auth as utils_auth, data as utils_data, db as utils_db, app as utils_app, exceptions
from chalicelib.utils.logger import logger


def is_eligible_for_assignment(partner) -> bool:
    """
    The only rule deciding whether a partner may get an order:
    listing, manual assignment and broadcast all go through it
    """
    if isinstance(partner, dict):
        return partner.get('is_active') is True and partner.get('is_online') is True
    return partner.is_active is True and partner.is_online is True


def _is_vehicle(value) -> bool:
    return isinstance(value, dict) and all(isinstance(value.get(key), str) for key in ('name', 'number'))


def _is_coordinate(value, limit) -> bool:
    return utils_data.is_number(value) and -limit <= value <= limit


class DeliveryPartner(EntityBase):
    pk = keys_structure.delivery_partners_pk
    sk = keys_structure.delivery_partners_sk
    record_type = 'delivery_partner'
    not_found_exception = exceptions.PartnerNotFound

    required_immutable_fields_validation = {
        'id_': lambda x: isinstance(x, str),
        'date_created': lambda x: isinstance(x, str)
    }

    required_mutable_fields_validation = {
        'display_name': lambda x: isinstance(x, str) and len(x.strip()) > 0,
        'phone': lambda x: isinstance(x, str) and len(x.strip()) > 0,
        'is_active': lambda x: isinstance(x, bool),
        'is_online': lambda x: isinstance(x, bool),
        'is_verified': lambda x: isinstance(x, bool),
        'account_status': lambda x: x in PARTNER_ACCOUNT_STATUSES,
        'orders': lambda x: isinstance(x, list),
        'archived': lambda x: isinstance(x, bool),
        'date_updated': lambda x: isinstance(x, str)
    }

    optional_fields_validation = {
        'email': lambda x: isinstance(x, str) and '@' in x,
        'vehicle': _is_vehicle,
        'documents': lambda x: isinstance(x, dict),
        'rating': lambda x: utils_data.is_number(x) and 0 <= x <= 5,
        'total_deliveries': lambda x: isinstance(x, (int, Decimal)) and x >= 0,
        'current_location': lambda x: isinstance(x, dict) and _is_coordinate(x.get('latitude'), 90) and
        _is_coordinate(x.get('longitude'), 180),
        'last_active': lambda x: isinstance(x, str),
        'updated_by': lambda x: isinstance(x, str)
    }

    def __init__(self, id_, **kwargs):
        EntityBase.__init__(self, id_, **kwargs)

        self.display_name: str = kwargs.get('display_name') or kwargs.get('name')
        self.phone: str = kwargs.get('phone') or kwargs.get('phone_number')
        self.email: str = kwargs.get('email').strip().lower() if isinstance(kwargs.get('email'), str) \
            else kwargs.get('email')
        self.vehicle: Dict = kwargs.get('vehicle')
        self.is_active: bool = kwargs.get('is_active', True)
        self.is_online: bool = kwargs.get('is_online', False)
        self.is_verified: bool = kwargs.get('is_verified', False)
        self.account_status: str = kwargs.get('account_status', 'pending')
        self.documents: Dict = kwargs.get('documents')
        self.rating = kwargs.get('rating')
        self.total_deliveries = kwargs.get('total_deliveries', 0)
        self.orders: List[str] = list(kwargs.get('orders') or [])
        self.current_location: Dict = kwargs.get('current_location')
        self.last_active: str = kwargs.get('last_active')
        self.date_created: str = kwargs.get('date_created') or utils_data.now_iso()
        self.date_updated: str = kwargs.get('date_updated') or utils_data.now_iso()
        self.updated_by: str = kwargs.get('updated_by')
        self.archived: bool = kwargs.get('archived', False)

    @classmethod
    def init_request(cls, request, partner_id):
        return cls.init_by_id(partner_id, request_data={'auth_result': request.auth_result})

    def _get_pk_sk(self) -> Tuple[str, str]:
        return self.pk, self.sk.format(partner_id=self.id_)

    def _to_dict(self) -> Dict:
        return {
            'id_': self.id_,
            'display_name': self.display_name,
            'phone': self.phone,
            'email': self.email,
            'vehicle': self.vehicle,
            'is_active': self.is_active,
            'is_online': self.is_online,
            'is_verified': self.is_verified,
            'account_status': self.account_status,
            'documents': self.documents,
            'rating': self.rating,
            'total_deliveries': self.total_deliveries,
            'orders': self.orders,
            'current_location': self.current_location,
            'last_active': self.last_active,
            'date_created': self.date_created,
            'date_updated': self.date_updated,
            'updated_by': self.updated_by,
            'archived': self.archived
        }

    @property
    def is_eligible(self) -> bool:
        return is_eligible_for_assignment(self)

    def _to_ui(self) -> Dict:
        item = EntityBase._to_ui(self)
        item['is_eligible'] = self.is_eligible
        return item

    def get_snapshot(self) -> Dict:
        """
        Denormalized partner data written onto an order
        """
        return {'partner_id': self.id_, 'name': self.display_name, 'phone': self.phone}

    def _stamp_update(self) -> Dict:
        self.date_updated = utils_data.now_iso()
        update_body = {'date_updated': self.date_updated}
        if self.admin_id is not None:
            self.updated_by = self.admin_id
            update_body['updated_by'] = self.updated_by
        return update_body

    def add_order(self, order_id: str):
        """
        Changed in place in the db, concurrent assignments to the same partner keep each other's orders
        """
        pk, sk = self._get_pk_sk()
        if utils_db.append_to_list({'partkey': pk, 'sortkey': sk}, 'orders', order_id, self._stamp_update()):
            logger.info(f'add_order ::: order {order_id} added to partner {self.id_}')
        if order_id not in self.orders:
            self.orders.append(order_id)

    def remove_order(self, order_id: str):
        pk, sk = self._get_pk_sk()
        if utils_db.remove_from_list({'partkey': pk, 'sortkey': sk}, 'orders', order_id, self._stamp_update()):
            logger.info(f'remove_order ::: order {order_id} removed from partner {self.id_}')
        if order_id in self.orders:
            self.orders.remove(order_id)

    @staticmethod
    def get_db_records(only_active: bool = False, only_eligible: bool = False) -> List[Dict]:
        filter_expression = Attr('archived').not_exists() | Attr('archived').eq(False)
        if only_active or only_eligible:
            filter_expression = filter_expression & Attr('is_active').eq(True)
        if only_eligible:
            filter_expression = filter_expression & Attr('is_online').eq(True)
        return utils_db.query_items_paged(
            Key('partkey').eq(keys_structure.delivery_partners_pk),
            filter_expression=filter_expression
        )

    @classmethod
    def get_eligible_partners(cls) -> List['DeliveryPartner']:
        partners = [cls(**record) for record in cls.get_db_records(only_eligible=True)]
        return [partner for partner in partners if partner.is_eligible]

    @classmethod
    @utils_app.request_exception_handler
    @utils_auth.authenticate
    @utils_app.log_start_finish
    def endpoint_get_partners(cls, request) -> Response:
        qp = request.query_params or {}
        only_eligible = str(qp.get('eligible', '')).lower() == 'true'
        only_active = str(qp.get('active', '')).lower() == 'true'
        partners = [cls(**record) for record in cls.get_db_records(only_active, only_eligible)]
        if only_eligible:
            partners = [partner for partner in partners if partner.is_eligible]
        logger.info(f"endpoint_get_partners ::: returning {len(partners)} partners, {only_active=}, {only_eligible=}")
        return Response(status_code=http200, body=[partner.to_ui() for partner in partners])

    @classmethod
    @utils_app.request_exception_handler
    @utils_auth.authenticate
    @utils_app.log_start_finish
    def endpoint_get_by_id(cls, request, partner_id) -> Response:
        partner = cls.init_request(request, partner_id)
        if partner.archived:
            raise exceptions.PartnerNotFound(f'delivery partner {partner_id} not found')
        return Response(status_code=http200, body=partner.to_ui())

    @classmethod
    @utils_app.request_exception_handler
    @utils_auth.authenticate
    @utils_app.log_start_finish
    def endpoint_update(cls, request, partner_id) -> Response:
        partner = cls.init_request(request, partner_id)
        request_body = utils_data.parse_raw_body(request)
        allowed_keys = ('display_name', 'phone', 'email', 'vehicle')
        changes = {key: value for key, value in request_body.items() if key in allowed_keys}
        for key in set(request_body) - set(allowed_keys):
            logger.warning(f'endpoint_update ::: {key=} can not be updated by admin, skipping..')
        changed_fields = partner.apply_changes(changes)
        partner._update_db_record(fields=changed_fields)
        return Response(status_code=http200, body={
            'message': 'Delivery partner updated successfully', 'partner': partner.to_ui()})

    @classmethod
    @utils_app.request_exception_handler
    @utils_auth.authenticate
    @utils_app.log_start_finish
    def endpoint_toggle_block(cls, request, partner_id) -> Response:
        partner = cls.init_request(request, partner_id)
        partner.is_active = not partner.is_active
        partner._update_db_record(fields=['is_active'])
        action = 'unblocked' if partner.is_active else 'blocked'
        logger.info(f'endpoint_toggle_block ::: partner {partner_id} {action}')
        return Response(status_code=http200, body={
            'message': f'Delivery partner {action} successfully', 'partner': partner.to_ui()})

    @classmethod
    @utils_app.request_exception_handler
    @utils_auth.authenticate
    @utils_app.log_start_finish
    def endpoint_toggle_approve(cls, request, partner_id) -> Response:
        partner = cls.init_request(request, partner_id)
        partner.is_verified = not partner.is_verified
        partner.account_status = 'approved' if partner.is_verified else 'rejected'
        partner._update_db_record(fields=['is_verified', 'account_status'])
        return Response(status_code=http200, body={
            'message': f'Delivery partner {partner.account_status} successfully', 'partner': partner.to_ui()})

    @classmethod
    @utils_app.request_exception_handler
    @utils_auth.authenticate
    @utils_app.log_start_finish
    def endpoint_update_location(cls, request, partner_id) -> Response:
        request_body = utils_data.parse_raw_body(request)
        latitude, longitude = request_body.get('latitude'), request_body.get('longitude')
        if not _is_coordinate(latitude, 90):
            raise exceptions.ValidationException('Latitude must be a number between -90 and 90')
        if not _is_coordinate(longitude, 180):
            raise exceptions.ValidationException('Longitude must be a number between -180 and 180')
        partner = cls.init_request(request, partner_id)
        partner.current_location = {'latitude': Decimal(str(latitude)), 'longitude': Decimal(str(longitude))}
        partner.last_active = utils_data.now_iso()
        partner._update_db_record(fields=['current_location', 'last_active'])
        return Response(status_code=http200, body={
            'message': 'Location updated successfully', 'current_location': partner.current_location})

    @classmethod
    @utils_app.request_exception_handler
    @utils_auth.authenticate
    @utils_app.log_start_finish
    def endpoint_archive(cls, request, partner_id) -> Response:
        partner = cls.init_request(request, partner_id)
        partner.archived = True
        partner._update_db_record(fields=['archived'])
        return Response(status_code=http200, body={'message': 'Delivery partner deleted successfully',
                                                   'id': partner_id})
