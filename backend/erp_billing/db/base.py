from erp_billing.models.contract import Contract  # noqa: F401
from erp_billing.models.customer import Address, Customer  # noqa: F401
from erp_billing.models.due_schedule import DueSchedule  # noqa: F401
from erp_billing.models.invoice import Invoice, InvoiceItem  # noqa: F401
from erp_billing.models.open_item import OpenItem  # noqa: F401
from erp_billing.models.product import Product  # noqa: F401
from erp_billing.models.subscription import Subscription  # noqa: F401

__all__ = [
    "Address",
    "Contract",
    "Customer",
    "DueSchedule",
    "Invoice",
    "InvoiceItem",
    "OpenItem",
    "Product",
    "Subscription",
]
