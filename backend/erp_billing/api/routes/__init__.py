from . import billing_batch, contracts, customers, due_schedules, health, invoices, maintenance, products, subscriptions

__all__ = [
    "billing_batch",
    "contracts",
    "customers",
    "due_schedules",
    "health",
    "invoices",
    "maintenance",
    "products",
    "subscriptions",
]
