"""
Exceptions raised by the voucher billing services
"""


class VoucherError(Exception):
    """Base class for voucher lifecycle errors"""


class InvalidVoucherTransition(VoucherError):
    """Raised when a status change is not allowed from the voucher's current status"""


class VoucherUpdateError(VoucherError):
    """Raised when a conditional voucher update matched no row"""


class RouterConnectionError(Exception):
    """Raised when a router cannot be reached or has no usable address"""
