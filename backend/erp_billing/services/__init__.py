from erp_billing.services.consistency import ConsistencyService
from erp_billing.services.contract import ContractService
from erp_billing.services.customer import CustomerService
from erp_billing.services.due_schedule import DueScheduleService
from erp_billing.services.invoice import InvoiceService
from erp_billing.services.invoice_batch import InvoiceBatchAnalyzer, InvoiceBatchService
from erp_billing.services.maintenance import MaintenanceService
from erp_billing.services.numbering import NumberGenerator
from erp_billing.services.open_item import OpenItemService
from erp_billing.services.product import ProductService
from erp_billing.services.seeding import SeedService
from erp_billing.services.subscription import SubscriptionService

__all__ = [
    "ConsistencyService",
    "ContractService",
    "CustomerService",
    "DueScheduleService",
    "InvoiceBatchAnalyzer",
    "InvoiceBatchService",
    "InvoiceService",
    "MaintenanceService",
    "NumberGenerator",
    "OpenItemService",
    "ProductService",
    "SeedService",
    "SubscriptionService",
]
