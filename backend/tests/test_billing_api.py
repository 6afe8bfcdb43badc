from decimal import Decimal
from uuid import uuid4

from fastapi import status

from erp_billing.core.config import settings

API = settings.api_v1_str


def _create_subscription(client, **overrides) -> dict:
    customer = client.post(
        f"{API}/customers",
        json={
            "first_name": "Jonas",
            "last_name": "Weber",
            "email": f"{uuid4().hex[:8]}@example.com",
            "billing_address": {"street": "Marktplatz 5", "postal_code": "80331", "city": "Muenchen"},
        },
    )
    assert customer.status_code == status.HTTP_201_CREATED, customer.json()
    product = client.post(f"{API}/products", json={"name": "Office Suite", "price": "24.50"})
    assert product.status_code == status.HTTP_201_CREATED, product.json()
    contract = client.post(
        f"{API}/contracts",
        json={"title": "Office agreement", "start_date": "2024-01-01", "customer_id": customer.json()["id"]},
    )
    assert contract.status_code == status.HTTP_201_CREATED, contract.json()
    assert contract.json()["contract_number"].startswith("CONT-2024-")

    payload = {
        "product_name": "Office Suite",
        "monthly_price": "100.00",
        "start_date": "2024-01-01",
        "contract_id": contract.json()["id"],
        "product_id": product.json()["id"],
    }
    payload.update(overrides)
    response = client.post(f"{API}/subscriptions", json=payload)
    assert response.status_code == status.HTTP_201_CREATED, response.json()
    return {"customer": customer.json(), "contract": contract.json(), "subscription": response.json()}


def test_health(client):
    assert client.get("/health/live").json() == {"status": "ok"}
    assert client.get("/health/ready").json() == {"status": "ready"}


def test_subscription_flow_through_billing(client):
    created = _create_subscription(client)
    subscription = created["subscription"]
    assert subscription["end_date"] == "2025-01-01"

    schedules = client.get(f"{API}/due-schedules", params={"subscription_id": subscription["id"]}).json()
    assert len(schedules) == 12
    assert schedules[0]["due_date"] == "2024-01-01"

    preview = client.get(f"{API}/billing-batch/preview", params={"billing_date": "2024-03-01"})
    assert preview.status_code == status.HTTP_200_OK
    assert preview.json()["count"] == 3
    assert Decimal(preview.json()["estimated_total"]) == Decimal("300")
    assert client.get(f"{API}/billing-batch/can-run", params={"billing_date": "2024-03-01"}).json()["can_run"]

    batch = client.post(f"{API}/billing-batch", params={"billing_date": "2024-03-01"})
    assert batch.status_code == status.HTTP_200_OK
    body = batch.json()
    assert body["processed_due_schedules"] == 3
    assert body["created_invoices"] == 3
    assert Decimal(body["total_amount"]) == Decimal("300")
    assert body["is_complete"] is True

    rerun = client.post(f"{API}/billing-batch", params={"billing_date": "2024-03-01"}).json()
    assert rerun["processed_due_schedules"] == 0

    invoices = client.get(f"{API}/invoices", params={"customer_id": created["customer"]["id"]}).json()
    assert len(invoices) == 3
    assert all(len(invoice["items"]) == 1 for invoice in invoices)
    assert invoices[0]["items"][0]["product_name"] == "Office Suite"

    open_items = client.get(f"{API}/invoices/{invoices[0]['id']}/open-items").json()
    payment = client.post(f"{API}/open-items/{open_items[0]['id']}/record-payment", json={"amount": "100.00"})
    assert payment.status_code == status.HTTP_200_OK
    assert payment.json()["status"] == "paid"

    report = client.post(f"{API}/maintenance/repair-consistency").json()
    assert report["before"]["total"] == 0
    assert report["fixed"] == 0


def test_lifecycle_endpoints(client):
    subscription = _create_subscription(client, end_date="2024-07-01")["subscription"]
    sub_url = f"{API}/subscriptions/{subscription['id']}"

    updated = client.patch(sub_url, json={"monthly_price": "120.00"})
    assert updated.status_code == status.HTTP_200_OK
    assert Decimal(updated.json()["monthly_price"]) == Decimal("120")

    paused = client.post(f"{sub_url}/pause").json()
    assert paused["status"] == "paused"
    assert client.post(f"{sub_url}/activate").json()["status"] == "active"

    renewed = client.post(f"{sub_url}/renew", json={"new_end_date": "2024-10-01"})
    assert renewed.json()["end_date"] == "2024-10-01"

    cancelled = client.post(f"{sub_url}/cancel", json={"cancellation_date": "2024-04-15"})
    assert cancelled.json()["status"] == "cancelled"

    schedules = client.get(f"{API}/due-schedules", params={"subscription_id": subscription["id"]}).json()
    by_date = {schedule["due_date"]: schedule for schedule in schedules}
    assert by_date["2024-04-01"]["status"] == "pending"
    assert Decimal(by_date["2024-04-01"]["amount"]) == Decimal("120")
    assert by_date["2024-05-01"]["status"] == "cancelled"

    assert client.delete(sub_url).status_code == status.HTTP_409_CONFLICT


def test_due_schedule_endpoints(client):
    subscription = _create_subscription(client)["subscription"]
    schedules = client.get(f"{API}/due-schedules", params={"subscription_id": subscription["id"]}).json()
    first = schedules[0]

    payment = client.post(f"{API}/due-schedules/{first['id']}/record-payment", json={"amount": "40.00"})
    assert payment.status_code == status.HTTP_200_OK
    assert Decimal(payment.json()["paid_amount"]) == Decimal("40")

    overpay = client.post(f"{API}/due-schedules/{first['id']}/record-payment", json={"amount": "70.00"})
    assert overpay.status_code == status.HTTP_400_BAD_REQUEST

    assert client.post(f"{API}/due-schedules/mark-overdue").json() == {"updated": 2}
    overdue = client.get(f"{API}/due-schedules/overdue").json()
    assert len(overdue) == 3

    stats = client.get(f"{API}/due-schedules/statistics").json()
    assert stats["total"] == 12

    generated = client.post(
        f"{API}/due-schedules/generate", json={"subscription_id": subscription["id"], "months": 3}
    )
    assert generated.status_code == status.HTTP_201_CREATED
    assert generated.json() == []


def test_error_mapping(client):
    assert client.get(f"{API}/subscriptions/{uuid4()}").status_code == status.HTTP_404_NOT_FOUND
    missing_contract = client.post(
        f"{API}/subscriptions",
        json={
            "product_name": "Office Suite",
            "monthly_price": "10.00",
            "start_date": "2024-01-01",
            "contract_id": str(uuid4()),
        },
    )
    assert missing_contract.status_code == status.HTTP_400_BAD_REQUEST
    assert client.get(f"{API}/due-schedules/{uuid4()}").status_code == status.HTTP_404_NOT_FOUND


def test_maintenance_endpoints(client):
    _create_subscription(client, end_date="2024-06-01")

    report = client.get(f"{API}/maintenance/status-report").json()
    assert report["due_schedules"] == {"pending": 5}
    assert report["consistency"]["total"] == 0

    cleared = client.post(f"{API}/maintenance/clear-business-data").json()
    assert cleared["due_schedules"] == 5

    seeded = client.post(f"{API}/maintenance/seed", params={"customers": 1, "subscriptions_per_customer": 1})
    assert seeded.status_code == status.HTTP_200_OK
    assert seeded.json()["subscriptions"] == 1
