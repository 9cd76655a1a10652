import os

ORDER_EMAIL_FROM = os.environ.get('ORDER_EMAIL_FROM', 'orders@food-delivery-admin.com')

# Admin roles
SUPER_ADMIN = 'super_admin'
SUB_ADMIN = 'sub_admin'

# Order lifecycle
ORDER_STATUS_YET_TO_BE_ACCEPTED = 'yetToBeAccepted'
ORDER_STATUS_PREPARING = 'preparing'
ORDER_STATUS_PREPARED = 'prepared'
ORDER_STATUS_DISPATCHED = 'dispatched'
ORDER_STATUS_DELIVERED = 'delivered'
ORDER_STATUS_DECLINED = 'declined'

ORDER_STATUS_TRANSITIONS = {
    ORDER_STATUS_YET_TO_BE_ACCEPTED: (ORDER_STATUS_PREPARING, ORDER_STATUS_DECLINED),
    ORDER_STATUS_PREPARING: (ORDER_STATUS_PREPARED, ORDER_STATUS_DECLINED),
    ORDER_STATUS_PREPARED: (ORDER_STATUS_DISPATCHED,),
    ORDER_STATUS_DISPATCHED: (ORDER_STATUS_DELIVERED,),
    ORDER_STATUS_DELIVERED: (),
    ORDER_STATUS_DECLINED: ()
}

ORDER_STATUSES_ASSIGNABLE = (ORDER_STATUS_YET_TO_BE_ACCEPTED, ORDER_STATUS_PREPARING, ORDER_STATUS_PREPARED)

# Legacy document field names, first present wins
ORDER_CREATED_AT_FIELDS = ('created_at', 'createdAt', 'order_Date', 'orderDate', 'timestamp', 'date')
ORDER_TOTAL_FIELDS = ('order_total', 'orderTotal', 'total')
ORDER_STATUS_FIELDS = ('order_status', 'orderStatus')
ORDER_ADDRESS_FIELDS = ('delivery_address', 'deliveryAddress')

# Delivery partners
PARTNER_ACCOUNT_STATUSES = ('pending', 'approved', 'rejected', 'suspended')

# Users
USER_STATUSES = ('active', 'inactive', 'banned')

# Menu
MENU_ITEM_TAGS = (
    'bestseller', 'chef_special', 'new', 'spicy', 'healthy', 'vegan', 'gluten_free', 'jain', 'kids', 'combo'
)
MENU_CATEGORY_NAME_MAX_LENGTH = 100
MENU_CATEGORY_DESCRIPTION_MAX_LENGTH = 500

# Promo codes
PROMO_DISCOUNT_TYPES = ('percentage', 'flat', 'free_shipping')
PROMO_APPLICABLE_ON_TYPES = ('all', 'category', 'menu_item')
PROMO_USER_TYPES = ('all', 'new_users', 'existing_users', 'specific_users')

# Payments
COMMISSION_SETTING_NAME = 'commission'

# Notifications
NOTIFICATION_TYPES = ('promotional', 'transactional', 'alert', 'system', 'order_update')
NOTIFICATION_AUDIENCE_TYPES = ('all', 'delivery_partners', 'active_users', 'specific_users')
NOTIFICATION_STATUS_SCHEDULED = 'scheduled'
NOTIFICATION_STATUS_SENDING = 'sending'
NOTIFICATION_STATUS_SENT = 'sent'
NOTIFICATION_STATUS_FAILED = 'failed'
NOTIFICATION_STATUS_CANCELLED = 'cancelled'
NOTIFICATION_TITLE_MAX_LENGTH = 100
NOTIFICATION_MESSAGE_MAX_LENGTH = 1000

NOTIFICATION_TEMPLATES = [
    {
        'name': 'Welcome',
        'title': 'Welcome to our food delivery app!',
        'message': 'Thanks for joining us. Explore restaurants near you and place your first order today.',
        'notification_type': 'transactional'
    },
    {
        'name': 'Promo',
        'title': 'Special offer just for you',
        'message': 'Use code WELCOME50 to get 50% off on your next order. Hurry, limited time only!',
        'notification_type': 'promotional'
    }
]
