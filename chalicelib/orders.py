import os
from decimal import Decimal
from typing import List, Dict, Tuple, Optional

from boto3.dynamodb.conditions import Attr, Key
from botocore.exceptions import ClientError
from chalice import Response

from chalicelib.base_class_entity import EntityBase
from chalicelib.constants import keys_structure
from chalicelib.constants.constants import (
    ORDER_STATUS_TRANSITIONS, ORDER_STATUSES_ASSIGNABLE, ORDER_STATUS_PREPARING,
    ORDER_STATUS_PREPARED, ORDER_STATUS_DISPATCHED, ORDER_STATUS_DECLINED, ORDER_CREATED_AT_FIELDS,
    ORDER_TOTAL_FIELDS, ORDER_STATUS_FIELDS, ORDER_ADDRESS_FIELDS, ORDER_EMAIL_FROM
)
from chalicelib.constants.status_codes import http200
from chalicelib.delivery_partners import DeliveryPartner
from chalicelib.utils import auth as utils_auth, data as utils_data, db as utils_db, app as utils_app, exceptions
from chalicelib.utils import notifications as utils_notifications, email_templates
from chalicelib.utils.logger import logger


def can_transition(current_status: Optional[str], new_status: str) -> bool:
    return new_status in ORDER_STATUS_TRANSITIONS.get(current_status, ())


def validate_transition(current_status: Optional[str], new_status: str) -> None:
    if new_status not in ORDER_STATUS_TRANSITIONS:
        raise exceptions.ValidationException(
            f'Invalid order status {new_status}. Must be one of: {", ".join(ORDER_STATUS_TRANSITIONS)}')
    if not can_transition(current_status, new_status):
        raise exceptions.InvalidStatusTransition(
            f'Order status can not be changed from {current_status} to {new_status}')


def _get_partner_snapshot(record: Dict) -> Optional[Dict]:
    partner = record.get('partner_assigned') or record.get('partnerAssigned')
    if not isinstance(partner, dict):
        return None
    partner_id = partner.get('partner_id') or partner.get('partnerId') or partner.get('id')
    if not partner_id:
        return None
    return {
        'partner_id': partner_id,
        'name': partner.get('name') or partner.get('partnerName') or record.get('partner_name'),
        'phone': partner.get('phone') or record.get('partner_phone')
    }


class Order(EntityBase):
    pk = keys_structure.orders_pk
    sk = keys_structure.orders_sk
    record_type = 'order'
    not_found_exception = exceptions.OrderNotFound

    required_immutable_fields_validation = {
        'id_': lambda x: isinstance(x, str)
    }

    required_mutable_fields_validation = {
        'order_status': lambda x: x in ORDER_STATUS_TRANSITIONS,
        'status_history': lambda x: isinstance(x, list),
        'notified_partners': lambda x: isinstance(x, list),
        'date_updated': lambda x: isinstance(x, str)
    }

    optional_fields_validation = {
        'partner_assigned': lambda x: isinstance(x, dict) and isinstance(x.get('partner_id'), str),
        'assigned_at': lambda x: isinstance(x, str),
        'partner_notified_at': lambda x: isinstance(x, str),
        'decline_reason': lambda x: isinstance(x, str),
        'updated_by': lambda x: isinstance(x, str)
    }

    def __init__(self, id_, **kwargs):
        EntityBase.__init__(self, id_, **kwargs)

        self.order_status: str = utils_data.first_present(kwargs, ORDER_STATUS_FIELDS)
        self.products: List[Dict] = kwargs.get('products') or []
        self.order_total: Decimal = utils_data.to_decimal(utils_data.first_present(kwargs, ORDER_TOTAL_FIELDS)) \
            or Decimal('0.00')
        self.delivery_address = utils_data.first_present(kwargs, ORDER_ADDRESS_FIELDS)
        self.user_id: str = kwargs.get('user_id') or kwargs.get('userId')
        self.created_at: str = utils_data.normalize_timestamp(
            utils_data.first_present(kwargs, ORDER_CREATED_AT_FIELDS))
        self.partner_assigned: Optional[Dict] = _get_partner_snapshot(kwargs)
        self.assigned_at: str = utils_data.normalize_timestamp(kwargs.get('assigned_at'))
        self.notified_partners: List[str] = list(kwargs.get('notified_partners') or [])
        self.partner_notified_at: str = kwargs.get('partner_notified_at')
        self.status_history: List[Dict] = list(kwargs.get('status_history') or [])
        self.decline_reason: str = kwargs.get('decline_reason')
        self.date_updated: str = kwargs.get('date_updated') or self.created_at or utils_data.now_iso()
        self.updated_by: str = kwargs.get('updated_by')

    @classmethod
    def init_request(cls, request, order_id):
        return cls.init_by_id(order_id, request_data={'auth_result': request.auth_result})

    def _get_pk_sk(self) -> Tuple[str, str]:
        return self.pk, self.sk.format(order_id=self.id_)

    def _to_dict(self) -> Dict:
        return {
            'id_': self.id_,
            'order_status': self.order_status,
            'products': self.products,
            'order_total': self.order_total,
            'delivery_address': self.delivery_address,
            'user_id': self.user_id,
            'created_at': self.created_at,
            'partner_assigned': self.partner_assigned,
            'assigned_at': self.assigned_at,
            'notified_partners': self.notified_partners,
            'partner_notified_at': self.partner_notified_at,
            'status_history': self.status_history,
            'decline_reason': self.decline_reason,
            'date_updated': self.date_updated,
            'updated_by': self.updated_by
        }

    @property
    def partner_id(self) -> Optional[str]:
        return (self.partner_assigned or {}).get('partner_id')

    def _update_if_status(self, fields: List[str], expected_statuses) -> Dict:
        """
        Updates fields only if the stored status is still one of expected_statuses,
        so two admins can't move the same order concurrently
        """
        expected_statuses = list(expected_statuses)
        # documents imported from the legacy store keep the status under orderStatus
        condition = Attr('order_status').is_in(expected_statuses) | \
            (Attr('order_status').not_exists() & Attr('orderStatus').is_in(expected_statuses))
        try:
            return self._update_db_record(fields=fields, condition_expression=condition)
        except ClientError as error:
            if utils_db.is_condition_check_failed(error):
                raise exceptions.OrderStatusConflict(
                    f'Order {self.id_} was changed by someone else, reload the order and try again')
            raise

    def change_status(self, new_status: str, decline_reason: Optional[str] = None) -> None:
        current_status = self.order_status
        validate_transition(current_status, new_status)
        if new_status == ORDER_STATUS_DISPATCHED and not self.partner_id:
            raise exceptions.InvalidStatusTransition(
                f'Order {self.id_} can not be dispatched without an assigned delivery partner')

        fields = ['order_status', 'status_history']
        self.order_status = new_status
        self.status_history.append({
            'from_status': current_status,
            'to_status': new_status,
            'changed_at': utils_data.now_iso(),
            'changed_by': self.admin_id
        })
        if new_status == ORDER_STATUS_DECLINED and decline_reason:
            self.decline_reason = decline_reason
            fields.append('decline_reason')
        self._update_if_status(fields, [current_status])
        logger.info(f'change_status ::: order {self.id_} status changed: {current_status} → {new_status}')

    def assign_partner(self, partner: DeliveryPartner) -> Optional[str]:
        """
        Manual assignment, writes partner's name/phone snapshot to the order
        :return:
        id of the previously assigned partner if the order was reassigned
        """
        if self.order_status not in ORDER_STATUSES_ASSIGNABLE:
            raise exceptions.OrderNotAssignable(
                f'Delivery partner can not be assigned to an order in status {self.order_status}')
        if partner.archived or not partner.is_eligible:
            raise exceptions.PartnerNotEligible(
                f'Delivery partner {partner.id_} is not eligible for assignment, partner must be active and online')

        previous_partner_id = self.partner_id
        self.partner_assigned = partner.get_snapshot()
        self.assigned_at = utils_data.now_iso()
        self._update_if_status(['partner_assigned', 'assigned_at'], ORDER_STATUSES_ASSIGNABLE)

        if previous_partner_id and previous_partner_id != partner.id_:
            try:
                DeliveryPartner.init_by_id(previous_partner_id, request_data=self.request_data). \
                    remove_order(self.id_)
            except exceptions.PartnerNotFound:
                logger.warning(f'assign_partner ::: previous partner {previous_partner_id} not found')
        partner.add_order(self.id_)
        logger.info(f'assign_partner ::: order {self.id_} assigned to partner {partner.id_}, '
                    f'{previous_partner_id=}')
        return previous_partner_id

    def notify_eligible_partners(self) -> List[str]:
        """
        Broadcasts the order to all eligible partners, no acknowledgement is tracked
        :return:
        ids of notified partners
        """
        partners = DeliveryPartner.get_eligible_partners()
        partner_ids = [partner.id_ for partner in partners]
        if not partner_ids:
            logger.warning(f'notify_eligible_partners ::: no eligible delivery partners for order {self.id_}')
            return []
        utils_notifications.publish_sns(
            subject=f'New order {self.id_} is waiting for a delivery partner',
            payload={
                'order_id': self.id_,
                'order_status': self.order_status,
                'order_total': self.order_total,
                'delivery_address': self.delivery_address,
                'recipient_ids': partner_ids
            },
            attributes={'audience': 'delivery_partners', 'notification_type': 'order_assignment'}
        )
        self.notified_partners = partner_ids
        self.partner_notified_at = utils_data.now_iso()
        self._update_db_record(fields=['notified_partners', 'partner_notified_at'])
        logger.info(f'notify_eligible_partners ::: order {self.id_} sent to {len(partner_ids)} partners')
        return partner_ids

    @staticmethod
    def get_db_records(filter_expression=None) -> List[Dict]:
        return utils_db.query_items_paged(
            Key('partkey').eq(keys_structure.orders_pk),
            filter_expression=filter_expression
        )

    @classmethod
    def get_orders(cls, filter_expression=None) -> List['Order']:
        orders = [cls(**record) for record in cls.get_db_records(filter_expression)]
        return sorted(orders, key=lambda order: order.created_at or '', reverse=True)

    @classmethod
    @utils_app.request_exception_handler
    @utils_auth.authenticate
    @utils_app.log_start_finish
    def endpoint_get_orders(cls, request) -> Response:
        qp = request.query_params or {}
        status, assignment = qp.get('status'), qp.get('assignment')
        orders = cls.get_orders()
        if status:
            orders = [order for order in orders if order.order_status == status]
        if assignment == 'assigned':
            orders = [order for order in orders if order.partner_id]
        elif assignment == 'unassigned':
            orders = [order for order in orders if not order.partner_id]
        logger.info(f'endpoint_get_orders ::: returning {len(orders)} orders, {status=}, {assignment=}')
        return Response(status_code=http200, body=[order.to_ui() for order in orders])

    @classmethod
    @utils_app.request_exception_handler
    @utils_auth.authenticate
    @utils_app.log_start_finish
    def endpoint_get_partner_orders(cls, request, partner_id) -> Response:
        orders = [order for order in cls.get_orders() if order.partner_id == partner_id]
        return Response(status_code=http200, body=[order.to_ui() for order in orders])

    @classmethod
    @utils_app.request_exception_handler
    @utils_auth.authenticate
    @utils_app.log_start_finish
    def endpoint_get_by_id(cls, request, order_id) -> Response:
        return Response(status_code=http200, body=cls.init_request(request, order_id).to_ui())

    @classmethod
    @utils_app.request_exception_handler
    @utils_auth.authenticate
    @utils_app.log_start_finish
    def endpoint_update_status(cls, request, order_id) -> Response:
        request_body = utils_data.parse_raw_body(request)
        new_status = request_body.get('order_status') or request_body.get('status')
        if not new_status:
            raise exceptions.MandatoryFieldsAreNotFilled('order_status is required')
        order = cls.init_request(request, order_id)
        order.change_status(new_status, decline_reason=request_body.get('decline_reason'))
        return Response(status_code=http200, body={
            'message': f'Order status updated to {new_status}', 'order': order.to_ui()})

    @classmethod
    @utils_app.request_exception_handler
    @utils_auth.authenticate
    @utils_app.log_start_finish
    def endpoint_accept(cls, request, order_id) -> Response:
        request_body = utils_data.parse_raw_body(request)
        order = cls.init_request(request, order_id)
        order.change_status(ORDER_STATUS_PREPARING)
        notified = []
        if request_body.get('notify_partners', True) is True:
            notified = order.notify_eligible_partners()
        return Response(status_code=http200, body={
            'message': 'Order accepted', 'notified': len(notified), 'order': order.to_ui()})

    @classmethod
    @utils_app.request_exception_handler
    @utils_auth.authenticate
    @utils_app.log_start_finish
    def endpoint_assign_partner(cls, request, order_id) -> Response:
        request_body = utils_data.parse_raw_body(request)
        partner_id = request_body.get('partner_id')
        if not partner_id:
            raise exceptions.MandatoryFieldsAreNotFilled('partner_id is required')
        order = cls.init_request(request, order_id)
        partner = DeliveryPartner.init_request(request, partner_id)
        previous_partner_id = order.assign_partner(partner)
        return Response(status_code=http200, body={
            'message': 'Delivery partner assigned successfully',
            'previous_partner_id': previous_partner_id,
            'order': order.to_ui()
        })

    @classmethod
    @utils_app.request_exception_handler
    @utils_auth.authenticate
    @utils_app.log_start_finish
    def endpoint_notify_partners(cls, request, order_id) -> Response:
        order = cls.init_request(request, order_id)
        if order.order_status not in ORDER_STATUSES_ASSIGNABLE:
            raise exceptions.OrderNotAssignable(
                f'Delivery partners can not be notified about an order in status {order.order_status}')
        notified = order.notify_eligible_partners()
        return Response(status_code=http200, body={
            'message': f'Notification sent to {len(notified)} delivery partners', 'notified': len(notified)})


def db_trigger_order_record(record_old: Dict, record_new: Dict, event_id: str, event_name: str):
    logger.info(f'db_trigger_order_record ::: {event_id=}, {event_name=}, order id={record_new.get("id_")}')
    if event_name.lower() == 'insert':
        send_new_order_email(record_new)
    elif event_name.lower() == 'modify':
        old_status = utils_data.first_present(record_old, ORDER_STATUS_FIELDS)
        new_status = utils_data.first_present(record_new, ORDER_STATUS_FIELDS)
        if old_status != new_status:
            logger.info(f'Order {record_new.get("id_")} status changed: {old_status} → {new_status}')
            if new_status == ORDER_STATUS_PREPARED:
                auto_notify_partners(record_new)


def send_new_order_email(record_new: Dict):
    emails_to = [email.strip() for email in os.environ.get('ORDER_NOTIFICATION_EMAILS', '').split(',')]
    subject = f'New order has been created, order ID - {record_new.get("id_")}'
    email_body = email_templates.get_new_order_notification_message(record_new)
    utils_notifications.send_email_ses(emails_to, ORDER_EMAIL_FROM, subject, email_body)


def auto_notify_partners(record_new: Dict):
    """
    An order became prepared: if nobody has it yet, all eligible partners are notified
    """
    if os.environ.get('AUTO_NOTIFY_PARTNERS', 'true').lower() != 'true':
        logger.info('auto_notify_partners ::: disabled by AUTO_NOTIFY_PARTNERS')
        return
    order = Order(**record_new)
    if order.partner_id or order.notified_partners:
        logger.info(f'auto_notify_partners ::: order {order.id_} already has a partner or partners were notified')
        return
    order.notify_eligible_partners()

