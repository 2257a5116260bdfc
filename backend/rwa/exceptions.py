"""
RWA — API exceptions raised by the payment services.
"""
from rest_framework import status
from rest_framework.exceptions import APIException


class PaymentRuleError(APIException):
    """A payment operation violates a business rule (e.g. overpayment)."""
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = 'Payment rule violated.'
    default_code = 'payment_rule'


class RecalculationError(APIException):
    """The edit or its carry-forward recalculation could not be persisted."""
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail = 'Payment recalculation failed; no changes were saved.'
    default_code = 'recalculation_failed'
