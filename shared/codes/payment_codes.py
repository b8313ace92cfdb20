"""
Payment specific codes and vendor result-code tables.

Vendor tables map the raw code a gateway reports to one of the canonical
outcomes: "success", "pending", "failed", "rejected". Anything absent from a
table is treated as "failed" by the translator and logged for follow-up.
"""
from __future__ import annotations

from enum import IntEnum


class PaymentCode(IntEnum):
    # Generic success
    SUCCESS = 0

    # Checkout / intent errors (2xxxx)
    INTENT_NOT_FOUND = 20101
    INTENT_ALREADY_EXISTS = 20102
    GATEWAY_NOT_SUPPORTED = 20103
    TRANSITION_CONFLICT = 20104
    GATEWAY_MISMATCH = 20105

    # Provider/Network errors (6xxxx)
    PROVIDER_ERROR = 60000
    SIGNATURE_ERROR = 60002
    TIMEOUT = 60003
    CALLBACK_REJECTED = 60005


SUCCESS = "success"
PENDING = "pending"
FAILED = "failed"
REJECTED = "rejected"


# VNPay vnp_ResponseCode. "00" is only conclusive together with
# vnp_TransactionStatus, see VNPAY_TRANSACTION_STATUS.
VNPAY_RESPONSE_CODES = {
    "00": SUCCESS,
    "07": PENDING,    # money deducted, transaction flagged as suspicious
    "01": FAILED,     # transaction already exists
    "02": FAILED,     # invalid merchant
    "03": FAILED,     # malformed request
    "04": FAILED,     # merchant website locked
    "05": REJECTED,   # too many wrong passwords
    "06": REJECTED,   # wrong password
    "09": REJECTED,   # card/account not registered for internet banking
    "10": REJECTED,   # wrong card/account verification
    "11": REJECTED,   # payment window expired
    "12": REJECTED,   # card/account locked
    "13": REJECTED,   # wrong OTP
    "24": REJECTED,   # customer cancelled
    "51": REJECTED,   # insufficient balance
    "65": REJECTED,   # daily limit exceeded
    "70": FAILED,     # wrong signature reported by the gateway
    "72": FAILED,     # merchant website does not exist
    "75": FAILED,     # bank under maintenance
    "79": REJECTED,   # too many wrong payment passwords
    "99": FAILED,
}

# Consulted only when vnp_ResponseCode is "00"; any other status is a failure.
VNPAY_TRANSACTION_STATUS = {
    "00": SUCCESS,
    "01": PENDING,    # not completed yet
}


MOMO_RESULT_CODES = {
    "0": SUCCESS,
    "9000": SUCCESS,   # authorized / confirmed
    "43": PENDING,     # conflicting transaction still being processed
    "6000": PENDING,   # succeeded slowly, confirmation outstanding
    "7000": PENDING,   # debited, stuck at the provider
    "7002": PENDING,   # processing by the payment provider
    "8000": PENDING,   # waiting for confirmation
    "1000": REJECTED,  # user refused to confirm
    "1001": REJECTED,  # insufficient balance
    "1002": REJECTED,  # rejected by the issuer
    "1003": REJECTED,  # cancelled
    "1004": REJECTED,  # amount over payment limit
    "1005": REJECTED,  # url or QR expired
    "1006": REJECTED,  # user denied
    "1007": REJECTED,  # account inactive
    "2000": REJECTED,
    "3000": REJECTED,
    "4000": REJECTED,
    "5000": REJECTED,
    "11": FAILED,
    "12": FAILED,
    "13": FAILED,
    "20": FAILED,
    "21": FAILED,
    "40": FAILED,
    "41": FAILED,
    "42": FAILED,
    "1026": FAILED,
    "1080": FAILED,
    "1081": FAILED,
    "99": FAILED,      # ambiguous sandbox code, see MOMO_AMBIGUOUS_CODES
}

# Codes the sandbox reports as a generic error although the payment went
# through. Reclassified only with a corroborating transaction id.
MOMO_AMBIGUOUS_CODES = frozenset({"99"})


PAYPAL_ORDER_STATUS = {
    "COMPLETED": SUCCESS,
    "APPROVED": PENDING,
    "PENDING": PENDING,
    "SAVED": PENDING,
    "PAYER_ACTION_REQUIRED": PENDING,
    "DECLINED": REJECTED,
    "VOIDED": REJECTED,
    "CANCELLED": REJECTED,
    "FAILED": FAILED,
}


VENDOR_RESULT_TABLES = {
    "vnpay": VNPAY_RESPONSE_CODES,
    "momo": MOMO_RESULT_CODES,
    "paypal": PAYPAL_ORDER_STATUS,
}
