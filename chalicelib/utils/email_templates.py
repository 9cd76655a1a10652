def get_new_order_notification_message(order_record):
    products = ', '.join(
        f"{product.get('name') or product.get('product_ref')} x {product.get('quantity')}"
        for product in order_record.get('products') or []
    )
    return f"""
        Order details: \n
        ID: {order_record.get('id_')}\n
        Status: {order_record.get('order_status')}\n
        Products: {products}\n
        Total: {order_record.get('order_total')}\n
        Address: {order_record.get('delivery_address')}\n
        User ID: {order_record.get('user_id')}\n
        Created at: {order_record.get('created_at')}
    """
