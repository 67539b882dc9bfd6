"""Customers and suppliers: display ids and field validation."""

import pytest

from stocksync.errors import ValidationError


def test_customer_display_ids_are_sequential(services):
    first = services.customers.create({"name": "Ali Traders"})
    second = services.customers.create({"name": "Bilal Stores", "phone": "0300-1234567"})
    assert services.customers.find(first)["displayId"] == "CUS-001"
    assert services.customers.find(second)["displayId"] == "CUS-002"
    assert services.customers.find_by_display_id("CUS-002")["name"] == "Bilal Stores"


def test_supplier_numbering_is_separate(services):
    services.customers.create({"name": "Ali Traders"})
    supplier_id = services.suppliers.create({"name": "Global Supply Co", "contactPerson": "Sara"})
    supplier = services.suppliers.find(supplier_id)
    assert supplier["displayId"] == "SUP-001"
    assert supplier["priceType"] == "Wholesale"


def test_customer_defaults(services):
    customer = services.customers.find(services.customers.create({"name": "Walk-in"}))
    assert customer["priceType"] == "Retail"
    assert customer["cnic"] == ""
    assert customer["createdAt"]


def test_display_id_survives_updates(services):
    customer_id = services.customers.create({"name": "Ali Traders"})
    services.customers.update(customer_id, {"name": "Ali & Sons", "priceType": "Wholesale"})
    customer = services.customers.find(customer_id)
    assert customer["name"] == "Ali & Sons"
    assert customer["displayId"] == "CUS-001"


def test_display_id_not_client_writable(services):
    customer_id = services.customers.create({"name": "Ali Traders"})
    with pytest.raises(ValidationError):
        services.customers.update(customer_id, {"displayId": "CUS-999"})


def test_deleted_number_is_never_reused(services):
    customer_id = services.customers.create({"name": "Temp"})
    services.customers.delete(customer_id)
    new_id = services.customers.create({"name": "Next"})
    assert services.customers.find(new_id)["displayId"] == "CUS-002"


@pytest.mark.parametrize("payload", [
    {},
    {"name": "   "},
    {"name": "X", "priceType": "Cost"},
    {"name": "X", "loyaltyPoints": 4},
])
def test_invalid_payloads_rejected(services, payload):
    with pytest.raises(ValidationError):
        services.customers.create(payload)
    assert services.customers.items == []
