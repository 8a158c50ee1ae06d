"""
Business codes shared by every layer.

Generic codes live here; the payment taxonomy is in
``shared.codes.payment_codes``.
"""
from enum import IntEnum


class BusinessCode(IntEnum):
    SUCCESS = 0

    # Input rejected locally (1xxxx)
    PARAM_VALIDATION_ERROR = 10003
    CONFIGURATION_ERROR = 10004


__all__ = ["BusinessCode"]
