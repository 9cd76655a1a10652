import os

from chalice import Chalice, Rate

from chalicelib import auth, orders, delivery_partners, menu_categories, menu_items, promo_codes, users, payments, \
    notifications, triggers

app = Chalice(app_name='food-delivery-admin')

app.debug = True


def get_orders_table_stream_arn():
    return os.environ["ORDERS_TABLE_STREAM_ARN"]


@app.authorizer()
def role_authorizer(auth_request):
    return auth.role_authorizer(auth_request)


@app.on_dynamodb_record(stream_arn=get_orders_table_stream_arn())
def db_gen_table_stream_trigger(event):
    return triggers.db_gen_table_stream_trigger(event)


@app.schedule(Rate(5, unit=Rate.MINUTES))
def send_scheduled_notifications(event):
    return notifications.send_due_notifications()


@app.route('/health-check', methods=['GET'], cors=True)
def health_check():
    return {'health': 'check'}


# ORDERS
@app.route('/orders', methods=['GET'], authorizer=role_authorizer, cors=True)
def get_orders():
    return orders.Order.endpoint_get_orders(app.current_request)


@app.route('/orders/delivery-partner/{partner_id}', methods=['GET'], authorizer=role_authorizer, cors=True)
def get_partner_orders(partner_id):
    return orders.Order.endpoint_get_partner_orders(app.current_request, partner_id)


@app.route('/orders/{order_id}', methods=['GET'], authorizer=role_authorizer, cors=True)
def get_order_by_id(order_id):
    return orders.Order.endpoint_get_by_id(app.current_request, order_id)


@app.route('/orders/{order_id}/status', methods=['PATCH'], authorizer=role_authorizer, cors=True)
def update_order_status(order_id):
    return orders.Order.endpoint_update_status(app.current_request, order_id)


@app.route('/orders/{order_id}/accept', methods=['POST'], authorizer=role_authorizer, cors=True)
def accept_order(order_id):
    """
    yetToBeAccepted -> preparing, eligible delivery partners are notified unless notify_partners is false
    """
    return orders.Order.endpoint_accept(app.current_request, order_id)


@app.route('/orders/{order_id}/assign', methods=['PATCH'], authorizer=role_authorizer, cors=True)
def assign_order_partner(order_id):
    return orders.Order.endpoint_assign_partner(app.current_request, order_id)


@app.route('/orders/{order_id}/notify-partners', methods=['POST'], authorizer=role_authorizer, cors=True)
def notify_order_partners(order_id):
    return orders.Order.endpoint_notify_partners(app.current_request, order_id)


# DELIVERY PARTNERS
@app.route('/delivery-partners', methods=['GET'], authorizer=role_authorizer, cors=True)
def get_delivery_partners():
    return delivery_partners.DeliveryPartner.endpoint_get_partners(app.current_request)


@app.route('/delivery-partners/{partner_id}', methods=['GET'], authorizer=role_authorizer, cors=True)
def get_delivery_partner(partner_id):
    return delivery_partners.DeliveryPartner.endpoint_get_by_id(app.current_request, partner_id)


@app.route('/delivery-partners/{partner_id}', methods=['PUT'], authorizer=role_authorizer, cors=True)
def update_delivery_partner(partner_id):
    return delivery_partners.DeliveryPartner.endpoint_update(app.current_request, partner_id)


@app.route('/delivery-partners/{partner_id}/block', methods=['PUT'], authorizer=role_authorizer, cors=True)
def toggle_block_delivery_partner(partner_id):
    return delivery_partners.DeliveryPartner.endpoint_toggle_block(app.current_request, partner_id)


@app.route('/delivery-partners/{partner_id}/approve', methods=['PUT'], authorizer=role_authorizer, cors=True)
def toggle_approve_delivery_partner(partner_id):
    return delivery_partners.DeliveryPartner.endpoint_toggle_approve(app.current_request, partner_id)


@app.route('/delivery-partners/{partner_id}/location', methods=['PUT'], authorizer=role_authorizer, cors=True)
def update_delivery_partner_location(partner_id):
    return delivery_partners.DeliveryPartner.endpoint_update_location(app.current_request, partner_id)


@app.route('/delivery-partners/{partner_id}', methods=['DELETE'], authorizer=role_authorizer, cors=True)
def archive_delivery_partner(partner_id):
    return delivery_partners.DeliveryPartner.endpoint_archive(app.current_request, partner_id)


# MENU CATEGORIES
@app.route('/menu-categories', methods=['GET'], authorizer=role_authorizer, cors=True)
def get_menu_categories():
    return menu_categories.MenuCategory.endpoint_get_categories(app.current_request)


@app.route('/menu-categories/{category_id}', methods=['GET'], authorizer=role_authorizer, cors=True)
def get_menu_category(category_id):
    return menu_categories.MenuCategory.endpoint_get_by_id(app.current_request, category_id)


@app.route('/menu-categories', methods=['POST'], authorizer=role_authorizer, cors=True)
def create_menu_category():
    return menu_categories.MenuCategory.endpoint_create(app.current_request)


@app.route('/menu-categories/{category_id}', methods=['PUT'], authorizer=role_authorizer, cors=True)
def update_menu_category(category_id):
    return menu_categories.MenuCategory.endpoint_update(app.current_request, category_id)


@app.route('/menu-categories/{category_id}', methods=['DELETE'], authorizer=role_authorizer, cors=True)
def archive_menu_category(category_id):
    return menu_categories.MenuCategory.endpoint_archive(app.current_request, category_id)


@app.route('/menu-categories/{category_id}/sub-categories', methods=['POST'], authorizer=role_authorizer,
           cors=True)
def add_menu_sub_category(category_id):
    return menu_categories.MenuCategory.endpoint_add_sub_category(app.current_request, category_id)


@app.route('/menu-categories/{category_id}/sub-categories/{sub_category_id}', methods=['PUT'],
           authorizer=role_authorizer, cors=True)
def update_menu_sub_category(category_id, sub_category_id):
    return menu_categories.MenuCategory.endpoint_update_sub_category(app.current_request, category_id,
                                                                     sub_category_id)


@app.route('/menu-categories/{category_id}/sub-categories/{sub_category_id}', methods=['DELETE'],
           authorizer=role_authorizer, cors=True)
def remove_menu_sub_category(category_id, sub_category_id):
    return menu_categories.MenuCategory.endpoint_remove_sub_category(app.current_request, category_id,
                                                                     sub_category_id)


# MENU ITEMS
@app.route('/menu-items', methods=['GET'], authorizer=role_authorizer, cors=True)
def get_menu_items():
    return menu_items.MenuItem.endpoint_get_menu_items(app.current_request)


@app.route('/menu-items/{menu_item_id}', methods=['GET'], authorizer=role_authorizer, cors=True)
def get_menu_item(menu_item_id):
    return menu_items.MenuItem.endpoint_get_by_id(app.current_request, menu_item_id)


@app.route('/menu-items', methods=['POST'], authorizer=role_authorizer, cors=True)
def create_menu_item():
    return menu_items.MenuItem.endpoint_create_menu_item(app.current_request)


@app.route('/menu-items/{menu_item_id}', methods=['PUT'], authorizer=role_authorizer, cors=True)
def update_menu_item(menu_item_id):
    return menu_items.MenuItem.endpoint_update_menu_item(app.current_request, menu_item_id)


@app.route('/menu-items/{menu_item_id}', methods=['DELETE'], authorizer=role_authorizer, cors=True)
def delete_menu_item(menu_item_id):
    return menu_items.MenuItem.endpoint_archive_menu_item(app.current_request, menu_item_id)


# PROMO CODES
@app.route('/promo-codes', methods=['GET'], authorizer=role_authorizer, cors=True)
def get_promo_codes():
    return promo_codes.PromoCode.endpoint_get_promo_codes(app.current_request)


@app.route('/promo-codes/active', methods=['GET'], authorizer=role_authorizer, cors=True)
def get_active_promo_codes():
    return promo_codes.PromoCode.endpoint_get_active(app.current_request)


@app.route('/promo-codes/{promo_code_id}', methods=['GET'], authorizer=role_authorizer, cors=True)
def get_promo_code(promo_code_id):
    return promo_codes.PromoCode.endpoint_get_by_id(app.current_request, promo_code_id)


@app.route('/promo-codes', methods=['POST'], authorizer=role_authorizer, cors=True)
def create_promo_code():
    return promo_codes.PromoCode.endpoint_create(app.current_request)


@app.route('/promo-codes/{promo_code_id}', methods=['PUT'], authorizer=role_authorizer, cors=True)
def update_promo_code(promo_code_id):
    return promo_codes.PromoCode.endpoint_update(app.current_request, promo_code_id)


@app.route('/promo-codes/{promo_code_id}', methods=['DELETE'], authorizer=role_authorizer, cors=True)
def delete_promo_code(promo_code_id):
    return promo_codes.PromoCode.endpoint_delete(app.current_request, promo_code_id)


@app.route('/promo-codes/evaluate', methods=['POST'], authorizer=role_authorizer, cors=True)
def evaluate_promo_code():
    return promo_codes.PromoCode.endpoint_evaluate(app.current_request)


# USERS
@app.route('/users/all', methods=['GET'], authorizer=role_authorizer, cors=True)
def get_users():
    return users.User.endpoint_get_users(app.current_request)


@app.route('/users/counts', methods=['GET'], authorizer=role_authorizer, cors=True)
def get_user_counts():
    return users.User.endpoint_get_counts(app.current_request)


@app.route('/users/{user_id}', methods=['GET'], authorizer=role_authorizer, cors=True)
def get_user(user_id):
    return users.User.endpoint_get_user(app.current_request, user_id)


@app.route('/users/{user_id}', methods=['PUT'], authorizer=role_authorizer, cors=True)
def update_user(user_id):
    return users.User.endpoint_update_user(app.current_request, user_id)


@app.route('/users/{user_id}/status', methods=['PATCH'], authorizer=role_authorizer, cors=True)
def update_user_status(user_id):
    return users.User.endpoint_update_status(app.current_request, user_id)


# PAYMENTS
@app.route('/payments/commission-rate', methods=['GET'], authorizer=role_authorizer, cors=True)
def get_commission_rate():
    return payments.endpoint_get_commission_rate(app.current_request)


@app.route('/payments/commission-rate', methods=['PUT'], authorizer=role_authorizer, cors=True)
def update_commission_rate():
    """
    super admin operation
    """
    return payments.endpoint_update_commission_rate(app.current_request)


@app.route('/payments/report', methods=['GET'], authorizer=role_authorizer, cors=True)
def get_payment_report():
    return payments.endpoint_get_payment_report(app.current_request)


# NOTIFICATIONS
@app.route('/notifications', methods=['POST'], authorizer=role_authorizer, cors=True)
def create_notification():
    return notifications.Notification.endpoint_create(app.current_request)


@app.route('/notifications', methods=['GET'], authorizer=role_authorizer, cors=True)
def get_notifications():
    return notifications.Notification.endpoint_get_notifications(app.current_request)


@app.route('/notifications/templates', methods=['GET'], authorizer=role_authorizer, cors=True)
def get_notification_templates():
    return notifications.endpoint_get_templates(app.current_request)


@app.route('/notifications/{notification_id}', methods=['DELETE'], authorizer=role_authorizer, cors=True)
def cancel_notification(notification_id):
    return notifications.Notification.endpoint_cancel(app.current_request, notification_id)
