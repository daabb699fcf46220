__all__ = ["NotAuthorizedException", "AccessDenied", "RecordNotFound", "NumberOfRetriesExceeded",
           "MandatoryFieldsAreNotFilled", "ValidationException", "AuthorizationException",
           "SomeItemsAreNotAvailable", "OrderNotFound", "UserNotFound", "MenuItemNotFound",
           "UserAlreadyExists", "EmptyCart", "OrderingClosed", "InvalidStatusTransition", "StatusConflict",
           "OrderNotReady", "InvalidQRPayload", "ConditionalCheckFailed"]


class NotAuthorizedException(Exception):
    pass


# Generic Exceptions
class AccessDenied(Exception):
    pass


class MandatoryFieldsAreNotFilled(Exception):
    pass


# DynamoDB exceptions
class RecordNotFound(Exception):
    pass


class ConditionalCheckFailed(Exception):
    pass


# DB Performance Exception
class NumberOfRetriesExceeded(Exception):
    pass


# Validations exceptions
class ValidationException(Exception):
    pass


class AuthorizationException(Exception):
    LEVEL = 'warning'


class UserAlreadyExists(Exception):
    LEVEL = 'warning'


class UserNotFound(RecordNotFound):
    pass


class MenuItemNotFound(RecordNotFound):
    pass


class OrderNotFound(RecordNotFound):
    pass


# Ordering exceptions
class SomeItemsAreNotAvailable(Exception):
    pass


class EmptyCart(Exception):
    LEVEL = 'warning'


class OrderingClosed(Exception):
    LEVEL = 'warning'


# Order status exceptions
class InvalidStatusTransition(Exception):
    LEVEL = 'warning'


class StatusConflict(Exception):
    LEVEL = 'warning'


class OrderNotReady(Exception):
    LEVEL = 'warning'


class InvalidQRPayload(Exception):
    LEVEL = 'warning'
