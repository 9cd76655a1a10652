admins_pk = 'admins'
admins_sk = '{admin_id}'

users_pk = 'users'
users_sk = '{user_id}'

delivery_partners_pk = 'delivery_partners'
delivery_partners_sk = '{partner_id}'

orders_pk = 'orders'
orders_sk = '{order_id}'

menu_categories_pk = 'menu_categories'
menu_categories_sk = '{category_id}'

menu_items_pk = 'menu_items'
menu_items_sk = '{menu_item_id}'

promo_codes_pk = 'promo_codes'
promo_codes_sk = '{promo_code_id}'

notifications_pk = 'notifications'
notifications_sk = '{notification_id}'

settings_pk = 'settings'
settings_sk = '{setting_name}'
