__all__ = ["NotAuthorizedException", "AccessDenied", "RecordNotFound", "NumberOfRetriesExceeded",
           "ValidationException", "MandatoryFieldsAreNotFilled", "OrderNotFound", "PartnerNotFound",
           "PartnerNotEligible", "InvalidStatusTransition", "OrderStatusConflict", "OrderNotAssignable",
           "PromoCodeAlreadyExists", "SubCategoryAlreadyExists", "SubCategoryNotFound",
           "NotificationNotCancellable"]


class NotAuthorizedException(Exception):
    LEVEL = 'warning'


# Generic Exceptions
class AccessDenied(Exception):
    LEVEL = 'warning'


class MandatoryFieldsAreNotFilled(Exception):
    LEVEL = 'warning'


# DynamoDB exceptions
class RecordNotFound(Exception):
    LEVEL = 'warning'


# DB Performance Exception
class NumberOfRetriesExceeded(Exception):
    pass


# Validations exceptions
class ValidationException(Exception):
    LEVEL = 'warning'


# Orders
class OrderNotFound(RecordNotFound):
    pass


class InvalidStatusTransition(Exception):
    LEVEL = 'warning'


class OrderStatusConflict(Exception):
    LEVEL = 'warning'


class OrderNotAssignable(Exception):
    LEVEL = 'warning'


# Delivery partners
class PartnerNotFound(RecordNotFound):
    pass


class PartnerNotEligible(ValidationException):
    pass


# Promo codes
class PromoCodeAlreadyExists(Exception):
    LEVEL = 'warning'


# Menu categories
class SubCategoryAlreadyExists(Exception):
    LEVEL = 'warning'


class SubCategoryNotFound(RecordNotFound):
    pass


# Notifications
class NotificationNotCancellable(Exception):
    LEVEL = 'warning'
