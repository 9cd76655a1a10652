from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Dict, Tuple, Optional
from uuid import uuid4

from boto3.dynamodb.conditions import Attr, Key
from chalice import Response

from chalicelib.base_class_entity import EntityBase
from chalicelib.constants import keys_structure
from chalicelib.constants.constants import PROMO_DISCOUNT_TYPES, PROMO_APPLICABLE_ON_TYPES, PROMO_USER_TYPES
from chalicelib.constants.status_codes import http200
from chalicelib.utils import auth as utils_auth, data as utils_data, db as utils_db, app as utils_app, exceptions
from chalicelib.utils.logger import logger

CENTS = Decimal('0.01')

PROMO_STATUS_ACTIVE = 'active'
PROMO_STATUS_INACTIVE = 'inactive'
PROMO_STATUS_SCHEDULED = 'scheduled'
PROMO_STATUS_EXPIRED = 'expired'
PROMO_STATUS_EXHAUSTED = 'exhausted'

STATUS_MESSAGES = {
    PROMO_STATUS_INACTIVE: 'Promo code is inactive',
    PROMO_STATUS_SCHEDULED: 'Promo code is not yet active',
    PROMO_STATUS_EXPIRED: 'Promo code has expired',
    PROMO_STATUS_EXHAUSTED: 'Promo code usage limit reached'
}


def normalize_code(code) -> Optional[str]:
    return code.strip().upper() if isinstance(code, str) else code


def _decimal_or_raw(value):
    """Unparseable input is kept as is, so validation can report it"""
    parsed = utils_data.to_decimal(value)
    return value if parsed is None else parsed


def _timestamp_or_raw(value):
    parsed = utils_data.normalize_timestamp(value)
    return value if parsed is None else parsed


def _is_positive_integer(value) -> bool:
    parsed = utils_data.to_decimal(value) if utils_data.is_number(value) else None
    return parsed is not None and parsed > 0 and parsed == parsed.to_integral_value()


class PromoCode(EntityBase):
    pk = keys_structure.promo_codes_pk
    sk = keys_structure.promo_codes_sk
    record_type = 'promo_code'

    required_immutable_fields_validation = {
        'id_': lambda x: isinstance(x, str),
        'created_by': lambda x: isinstance(x, str),
        'date_created': lambda x: isinstance(x, str)
    }

    required_mutable_fields_validation = {
        'code': lambda x: isinstance(x, str) and len(x) > 0,
        'discount_type': lambda x: x in PROMO_DISCOUNT_TYPES,
        'discount_value': lambda x: isinstance(x, Decimal),
        'min_order_value': lambda x: isinstance(x, Decimal),
        'start_date': lambda x: isinstance(x, str),
        'is_active': lambda x: isinstance(x, bool),
        'usage_count': lambda x: isinstance(x, (int, Decimal)) and x >= 0,
        'applicable_on': lambda x: isinstance(x, dict),
        'user_specific': lambda x: isinstance(x, dict),
        'date_updated': lambda x: isinstance(x, str)
    }

    optional_fields_validation = {
        'description': lambda x: isinstance(x, str),
        'max_discount': lambda x: isinstance(x, Decimal),
        'end_date': lambda x: isinstance(x, str),
        'usage_limit': lambda x: isinstance(x, (int, Decimal)) and not isinstance(x, bool),
        'updated_by': lambda x: isinstance(x, str)
    }

    def __init__(self, id_, **kwargs):
        EntityBase.__init__(self, id_, **kwargs)

        self.code: str = normalize_code(kwargs.get('code'))
        self.description: str = kwargs.get('description')
        self.discount_type: str = kwargs.get('discount_type')
        self.discount_value: Decimal = _decimal_or_raw(kwargs.get('discount_value', 0))
        self.min_order_value: Decimal = _decimal_or_raw(kwargs.get('min_order_value', 0))
        self.max_discount: Decimal = _decimal_or_raw(kwargs.get('max_discount'))
        self.start_date: str = _timestamp_or_raw(kwargs.get('start_date'))
        self.end_date: str = _timestamp_or_raw(kwargs.get('end_date'))
        self.is_active: bool = kwargs.get('is_active', True)
        self.usage_limit = kwargs.get('usage_limit')
        self.usage_count = kwargs.get('usage_count', 0)
        self.applicable_on: Dict = kwargs.get('applicable_on') or {'type': 'all', 'items': []}
        self.user_specific: Dict = kwargs.get('user_specific') or {'type': 'all', 'user_ids': []}
        self.created_by: str = kwargs.get('created_by') or self.admin_id
        self.updated_by: str = kwargs.get('updated_by')
        self.date_created: str = kwargs.get('date_created') or utils_data.now_iso()
        self.date_updated: str = kwargs.get('date_updated') or utils_data.now_iso()

    @classmethod
    def init_request(cls, request, promo_code_id):
        return cls.init_by_id(promo_code_id, request_data={'auth_result': request.auth_result})

    def _get_pk_sk(self) -> Tuple[str, str]:
        return self.pk, self.sk.format(promo_code_id=self.id_)

    def _to_dict(self) -> Dict:
        return {
            'id_': self.id_,
            'code': self.code,
            'description': self.description,
            'discount_type': self.discount_type,
            'discount_value': self.discount_value,
            'min_order_value': self.min_order_value,
            'max_discount': self.max_discount,
            'start_date': self.start_date,
            'end_date': self.end_date,
            'is_active': self.is_active,
            'usage_limit': self.usage_limit,
            'usage_count': self.usage_count,
            'applicable_on': self.applicable_on,
            'user_specific': self.user_specific,
            'created_by': self.created_by,
            'updated_by': self.updated_by,
            'date_created': self.date_created,
            'date_updated': self.date_updated
        }

    def _to_ui(self) -> Dict:
        item = EntityBase._to_ui(self)
        item['status'] = self.get_status()
        return item

    def validate(self):
        # cross-field rules first, they carry the messages shown in the console
        self._validate_business_rules()
        self._validate_mandatory_fields()
        self._validate_optional_fields()

    def _validate_business_rules(self):
        if not isinstance(self.code, str) or not self.code:
            self.raise_validation_error('code', self.code, message='Promo code is required')
        if not isinstance(self.discount_value, Decimal):
            self.raise_validation_error('discount_value', self.discount_value,
                                        message='Discount value must be a number')
        if self.discount_type != 'free_shipping' and self.discount_value <= 0:
            self.raise_validation_error('discount_value', self.discount_value,
                                        message='Discount value must be greater than 0')
        if self.discount_type == 'percentage' and self.discount_value > 100:
            self.raise_validation_error('discount_value', self.discount_value,
                                        message='Percentage discount can not exceed 100')
        if not isinstance(self.min_order_value, Decimal):
            self.raise_validation_error('min_order_value', self.min_order_value,
                                        message='Minimum order value must be a number')
        if self.min_order_value < 0:
            self.raise_validation_error('min_order_value', self.min_order_value,
                                        message='Minimum order value can not be negative')
        if self.max_discount is not None and not isinstance(self.max_discount, Decimal):
            self.raise_validation_error('max_discount', self.max_discount,
                                        message='Maximum discount must be a number')
        if self.max_discount is not None and self.max_discount < 0:
            self.raise_validation_error('max_discount', self.max_discount,
                                        message='Maximum discount can not be negative')
        self._validate_dates()
        if self.usage_limit is not None and not _is_positive_integer(self.usage_limit):
            self.raise_validation_error('usage_limit', self.usage_limit,
                                        message='Usage limit must be greater than 0 or null')
        if self.discount_type not in PROMO_DISCOUNT_TYPES:
            self.raise_validation_error('discount_type', self.discount_type,
                                        message=f'Invalid discount type. '
                                                f'Must be one of: {", ".join(PROMO_DISCOUNT_TYPES)}')

        user_specific = self.user_specific if isinstance(self.user_specific, dict) else {}
        user_type = user_specific.get('type')
        if user_type not in PROMO_USER_TYPES:
            self.raise_validation_error('user_specific', user_type,
                                        message=f'Invalid user type. Must be one of: {", ".join(PROMO_USER_TYPES)}')
        if user_type == 'specific_users':
            self._validate_ids(user_specific.get('user_ids'), 'user_specific', 'At least one user must be selected')

        applicable_on = self.applicable_on if isinstance(self.applicable_on, dict) else {}
        applicable_type = applicable_on.get('type')
        if applicable_type not in PROMO_APPLICABLE_ON_TYPES:
            self.raise_validation_error('applicable_on', applicable_type,
                                        message=f'Invalid applicable on type. '
                                                f'Must be one of: {", ".join(PROMO_APPLICABLE_ON_TYPES)}')
        if applicable_type != 'all':
            self._validate_ids(applicable_on.get('items'), 'applicable_on',
                               f'At least one {applicable_type} must be selected')

    def _validate_dates(self):
        if self.start_date is None:
            self.raise_validation_error('start_date', message='Start date is required')
        start_date = utils_data.parse_timestamp(self.start_date)
        if start_date is None:
            self.raise_validation_error('start_date', self.start_date, message='Start date must be a valid date')
        if self.end_date is None:
            return
        end_date = utils_data.parse_timestamp(self.end_date)
        if end_date is None:
            self.raise_validation_error('end_date', self.end_date, message='End date must be a valid date')
        if end_date <= start_date:
            self.raise_validation_error('end_date', self.end_date, message='End date must be after start date')

    def _validate_ids(self, ids, key: str, empty_message: str):
        if not isinstance(ids, list) or not all(isinstance(id_, str) for id_ in ids):
            self.raise_validation_error(key, ids, message=f'{key} ids must be a list of strings')
        if not ids:
            self.raise_validation_error(key, ids, message=empty_message)

    def get_status(self, now: Optional[datetime] = None) -> str:
        now = now or datetime.now(timezone.utc)
        if not self.is_active:
            return PROMO_STATUS_INACTIVE
        start_date = utils_data.parse_timestamp(self.start_date)
        if start_date is not None and now < start_date:
            return PROMO_STATUS_SCHEDULED
        end_date = utils_data.parse_timestamp(self.end_date)
        if end_date is not None and now > end_date:
            return PROMO_STATUS_EXPIRED
        if self.usage_limit is not None and self.usage_count >= self.usage_limit:
            return PROMO_STATUS_EXHAUSTED
        return PROMO_STATUS_ACTIVE

    def is_applicable_to_user(self, user_id: Optional[str], is_new_user: bool = False) -> bool:
        user_specific = self.user_specific if isinstance(self.user_specific, dict) else {}
        user_type = user_specific.get('type', 'all')
        if user_type == 'new_users':
            return is_new_user is True
        if user_type == 'existing_users':
            return is_new_user is False
        if user_type == 'specific_users':
            user_ids = user_specific.get('user_ids')
            return isinstance(user_ids, list) and user_id in user_ids
        return True

    def is_applicable_to_items(self, items: List[Dict]) -> bool:
        applicable_on = self.applicable_on if isinstance(self.applicable_on, dict) else {}
        applicable_type = applicable_on.get('type', 'all')
        if applicable_type == 'all':
            return True
        allowed = applicable_on.get('items')
        if not isinstance(allowed, list) or not isinstance(items, list):
            return False
        allowed = {id_ for id_ in allowed if isinstance(id_, str)}
        key = 'category_id' if applicable_type == 'category' else 'menu_item_id'
        return any(isinstance(item, dict) and isinstance(item.get(key), str) and item[key] in allowed
                   for item in items)

    def calculate_discount(self, order_total: Decimal) -> Decimal:
        order_total = utils_data.to_decimal(order_total) or Decimal('0.00')
        if self.discount_type == 'percentage':
            discount = order_total * self.discount_value / 100
            if self.max_discount is not None:
                discount = min(discount, self.max_discount)
        elif self.discount_type == 'flat':
            discount = min(self.discount_value, order_total)
        else:
            discount = Decimal('0')
        return discount.quantize(CENTS, rounding=ROUND_HALF_UP)

    def evaluate(self, order_total, items: List[Dict] = None, user_id: str = None,
                 is_new_user: bool = False, now: Optional[datetime] = None) -> Dict:
        """
        Checks if the promo code can be applied to an order
        :return:
        {'valid', 'message', 'discount', 'free_shipping'}
        """
        result = {'valid': False, 'discount': Decimal('0.00'), 'free_shipping': False}
        status = self.get_status(now)
        order_total = utils_data.to_decimal(order_total) or Decimal('0.00')
        if status != PROMO_STATUS_ACTIVE:
            return {**result, 'message': STATUS_MESSAGES[status]}
        if order_total < self.min_order_value:
            return {**result, 'message': f'Minimum order value of {self.min_order_value} required'}
        if not self.is_applicable_to_user(user_id, is_new_user):
            return {**result, 'message': 'Promo code is not applicable to this user'}
        if not self.is_applicable_to_items(items):
            return {**result, 'message': 'Promo code is not applicable to the items in this order'}
        return {
            'valid': True,
            'message': 'Promo code applied successfully',
            'discount': self.calculate_discount(order_total),
            'free_shipping': self.discount_type == 'free_shipping'
        }

    @staticmethod
    def get_db_records() -> List[Dict]:
        return utils_db.query_items_paged(Key('partkey').eq(keys_structure.promo_codes_pk))

    @classmethod
    def find_by_code(cls, code: str) -> Optional['PromoCode']:
        records = utils_db.query_items_paged(
            Key('partkey').eq(keys_structure.promo_codes_pk),
            filter_expression=Attr('code').eq(normalize_code(code))
        )
        return cls(**records[0]) if records else None

    def _check_code_is_unique(self):
        existing = self.find_by_code(self.code)
        if existing is not None and existing.id_ != self.id_:
            raise exceptions.PromoCodeAlreadyExists(f'Promo code {self.code} already exists')

    @classmethod
    @utils_app.request_exception_handler
    @utils_auth.authenticate
    @utils_app.log_start_finish
    def endpoint_get_promo_codes(cls, request) -> Response:
        qp = request.query_params or {}
        promo_codes = [cls(**record) for record in cls.get_db_records()]
        if qp.get('status'):
            promo_codes = [promo for promo in promo_codes if promo.get_status() == qp.get('status')]
        if qp.get('discount_type'):
            promo_codes = [promo for promo in promo_codes if promo.discount_type == qp.get('discount_type')]
        promo_codes.sort(key=lambda promo: promo.date_created, reverse=True)
        return Response(status_code=http200, body=[promo.to_ui() for promo in promo_codes])

    @classmethod
    @utils_app.request_exception_handler
    @utils_auth.authenticate
    @utils_app.log_start_finish
    def endpoint_get_active(cls, request) -> Response:
        promo_codes = [cls(**record) for record in cls.get_db_records()]
        active = [promo.to_ui() for promo in promo_codes if promo.get_status() == PROMO_STATUS_ACTIVE]
        return Response(status_code=http200, body=active)

    @classmethod
    @utils_app.request_exception_handler
    @utils_auth.authenticate
    @utils_app.log_start_finish
    def endpoint_get_by_id(cls, request, promo_code_id) -> Response:
        return Response(status_code=http200, body=cls.init_request(request, promo_code_id).to_ui())

    @classmethod
    @utils_app.request_exception_handler
    @utils_auth.authenticate
    @utils_app.log_start_finish
    def endpoint_create(cls, request) -> Response:
        request_body = utils_data.parse_raw_body(request)
        for key in ('id', 'usage_count', 'created_by'):
            request_body.pop(key, None)
        if not normalize_code(request_body.get('code')):
            raise exceptions.MandatoryFieldsAreNotFilled('Promo code is required')
        promo_code = cls(id_=str(uuid4()), request_data={'auth_result': request.auth_result}, **request_body)
        promo_code._check_code_is_unique()
        promo_code._create_db_record()
        return Response(status_code=http200, body={'message': 'Promo code created successfully',
                                                   'promo_code': promo_code.to_ui()})

    @classmethod
    @utils_app.request_exception_handler
    @utils_auth.authenticate
    @utils_app.log_start_finish
    def endpoint_update(cls, request, promo_code_id) -> Response:
        promo_code = cls.init_request(request, promo_code_id)
        request_body = utils_data.parse_raw_body(request)
        request_body.pop('usage_count', None)
        changed_fields = promo_code.apply_changes(request_body)
        if 'code' in changed_fields:
            promo_code._check_code_is_unique()
        promo_code._update_db_record(fields=changed_fields)
        return Response(status_code=http200, body={'message': 'Promo code updated successfully',
                                                   'promo_code': promo_code.to_ui()})

    @classmethod
    @utils_app.request_exception_handler
    @utils_auth.authenticate
    @utils_app.log_start_finish
    def endpoint_delete(cls, request, promo_code_id) -> Response:
        promo_code = cls.init_request(request, promo_code_id)
        promo_code._delete_db_record()
        return Response(status_code=http200, body={'message': 'Promo code deleted successfully',
                                                   'id': promo_code_id})

    @classmethod
    @utils_app.request_exception_handler
    @utils_auth.authenticate
    @utils_app.log_start_finish
    def endpoint_evaluate(cls, request) -> Response:
        request_body = utils_data.parse_raw_body(request)
        if not request_body.get('code') or request_body.get('order_total') is None:
            raise exceptions.MandatoryFieldsAreNotFilled('code and order_total are required')
        promo_code = cls.find_by_code(request_body['code'])
        if promo_code is None:
            raise exceptions.RecordNotFound(f'Promo code {normalize_code(request_body["code"])} not found')
        result = promo_code.evaluate(
            order_total=request_body['order_total'],
            items=request_body.get('items') or [],
            user_id=request_body.get('user_id'),
            is_new_user=request_body.get('is_new_user', False)
        )
        logger.info(f'endpoint_evaluate ::: code={promo_code.code}, {result=}')
        return Response(status_code=http200, body=result)
