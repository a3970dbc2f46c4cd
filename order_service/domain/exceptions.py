class DomainException(Exception):
    pass


class ProductServiceError(DomainException):
    pass


class CartNotFoundError(DomainException):
    pass


class OrderNotFoundError(DomainException):
    pass
