from erp_billing.schemas import billing_batch, common, contract, customer, due_schedule, invoice, maintenance, product, subscription

__all__ = [
    "billing_batch",
    "common",
    "contract",
    "customer",
    "due_schedule",
    "invoice",
    "maintenance",
    "product",
    "subscription",
]
