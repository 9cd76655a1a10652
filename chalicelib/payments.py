import os
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, List, Optional, Tuple

from chalice import Response

from chalicelib.base_class_entity import EntityBase
from chalicelib.constants import keys_structure
from chalicelib.constants.constants import COMMISSION_SETTING_NAME, ORDER_STATUS_DELIVERED
from chalicelib.constants.status_codes import http200
from chalicelib.orders import Order
from chalicelib.utils import auth as utils_auth, app as utils_app, data as utils_data, exceptions
from chalicelib.utils.logger import logger

CENTS = Decimal('0.01')
COMMISSION_RATE_ERROR = 'Commission rate must be a number between 0 and 100.'


def validate_commission_rate(rate) -> Decimal:
    if isinstance(rate, str):
        rate = rate.strip()
    elif not utils_data.is_number(rate):
        raise exceptions.ValidationException(COMMISSION_RATE_ERROR)
    rate = utils_data.to_decimal(rate)
    if rate is None or not 0 <= rate <= 100:
        raise exceptions.ValidationException(COMMISSION_RATE_ERROR)
    return rate


def calculate_commission(order_total, commission_rate) -> Tuple[Decimal, Decimal]:
    """
    :return:
    (commission, payout), payout is what is left of the order total after the commission
    """
    order_total = utils_data.to_decimal(order_total) or Decimal('0.00')
    commission = (order_total * Decimal(commission_rate) / 100).quantize(CENTS, rounding=ROUND_HALF_UP)
    return commission, order_total - commission


def _parse_report_date(value: Optional[str], name: str) -> Optional[date]:
    if not value:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise exceptions.ValidationException(f'{name} must be a date in YYYY-MM-DD format')


def build_payment_report(orders: List[Order], commission_rate, date_from: Optional[date] = None,
                         date_to: Optional[date] = None) -> Dict:
    commission_rate = validate_commission_rate(commission_rate)
    transactions = []
    for order in orders:
        if order.order_status != ORDER_STATUS_DELIVERED or not order.partner_id:
            continue
        created_at = utils_data.parse_timestamp(order.created_at)
        order_date = created_at.date() if created_at else None
        if (date_from or date_to) and order_date is None:
            continue
        if date_from and order_date < date_from:
            continue
        if date_to and order_date > date_to:
            continue
        commission, payout = calculate_commission(order.order_total, commission_rate)
        transactions.append({
            'order_id': order.id_,
            'date': order_date.isoformat() if order_date else None,
            'order_total': order.order_total,
            'partner_id': order.partner_id,
            'partner_name': order.partner_assigned.get('name'),
            'commission': commission,
            'payout': payout
        })
    return {
        'commission_rate': commission_rate,
        'date_from': date_from.isoformat() if date_from else None,
        'date_to': date_to.isoformat() if date_to else None,
        'transactions': transactions,
        'totals': {
            'total_orders': len(transactions),
            'restaurant_earnings': sum((t['commission'] for t in transactions), Decimal('0.00')),
            'delivery_partner_payouts': sum((t['payout'] for t in transactions), Decimal('0.00'))
        }
    }


class CommissionSettings(EntityBase):
    pk = keys_structure.settings_pk
    sk = keys_structure.settings_sk
    record_type = 'settings'

    required_mutable_fields_validation = {
        'commission_rate': lambda x: utils_data.is_number(x) and 0 <= x <= 100,
        'date_updated': lambda x: isinstance(x, str)
    }

    optional_fields_validation = {
        'updated_by': lambda x: isinstance(x, str)
    }

    def __init__(self, id_=COMMISSION_SETTING_NAME, **kwargs):
        EntityBase.__init__(self, id_, **kwargs)

        self.commission_rate: Decimal = utils_data.to_decimal(
            kwargs.get('commission_rate', os.environ.get('DEFAULT_COMMISSION_RATE', '15')))
        self.date_updated: str = kwargs.get('date_updated') or utils_data.now_iso()
        self.updated_by: str = kwargs.get('updated_by')

    @classmethod
    def load(cls, request_data=None) -> 'CommissionSettings':
        try:
            return cls.init_by_id(COMMISSION_SETTING_NAME, request_data=request_data)
        except exceptions.RecordNotFound:
            logger.info('CommissionSettings.load ::: no stored commission rate, using default')
            return cls(request_data=request_data)

    def _get_pk_sk(self) -> Tuple[str, str]:
        return self.pk, self.sk.format(setting_name=self.id_)

    def _to_dict(self) -> Dict:
        return {
            'id_': self.id_,
            'commission_rate': self.commission_rate,
            'date_updated': self.date_updated,
            'updated_by': self.updated_by
        }

    def save(self) -> None:
        self.date_updated = utils_data.now_iso()
        self.updated_by = self.admin_id
        self._create_db_record()


@utils_app.request_exception_handler
@utils_auth.authenticate
@utils_app.log_start_finish
def endpoint_get_commission_rate(request) -> Response:
    settings = CommissionSettings.load()
    return Response(status_code=http200, body={'commission_rate': settings.commission_rate})


@utils_app.request_exception_handler
@utils_auth.authenticate
@utils_app.log_start_finish
def endpoint_update_commission_rate(request) -> Response:
    request_body = utils_data.parse_raw_body(request)
    settings = CommissionSettings.load(request_data={'auth_result': request.auth_result})
    settings.commission_rate = validate_commission_rate(request_body.get('commission_rate'))
    settings.save()
    logger.info(f'endpoint_update_commission_rate ::: commission rate set to {settings.commission_rate}')
    return Response(status_code=http200, body={'message': 'Commission rate updated successfully',
                                               'commission_rate': settings.commission_rate})


@utils_app.request_exception_handler
@utils_auth.authenticate
@utils_app.log_start_finish
def endpoint_get_payment_report(request) -> Response:
    qp = request.query_params or {}
    date_from = _parse_report_date(qp.get('date_from'), 'date_from')
    date_to = _parse_report_date(qp.get('date_to'), 'date_to')
    if date_from and date_to and date_from > date_to:
        raise exceptions.ValidationException('date_from must not be after date_to')
    commission_rate = qp.get('commission_rate') or CommissionSettings.load().commission_rate
    report = build_payment_report(Order.get_orders(), commission_rate, date_from, date_to)
    logger.info(f"endpoint_get_payment_report ::: {len(report['transactions'])} transactions, "
                f"{date_from=}, {date_to=}")
    return Response(status_code=http200, body=report)
