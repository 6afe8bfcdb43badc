from erp_billing.utils.dates import add_months, months_between

__all__ = [
    "add_months",
    "months_between",
]
