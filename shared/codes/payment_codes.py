"""
Payment specific codes and KPay status mapping.
"""

# KPay `statusid` -> internal payment status. Unknown ids stay pending.
KPAY_STATUS_TO_INTERNAL = {
    "01": "completed",
    "02": "pending",
    "03": "failed",
}

# KPay reports a successful call with retcode 0
KPAY_SUCCESS_RETCODE = 0

DEFAULT_CURRENCY = "RWF"
