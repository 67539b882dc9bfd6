"""
HTTP API tests.

Exercise the blueprints end to end through the Flask test client: error
kinds map to status codes, deletes need confirmation, and offline writes
are refused with 409.
"""

import io

import pytest


@pytest.fixture
def api(client, services):
    """Test client bound to the fresh, signed-in service graph."""
    return client


def create_product(api, sku="PH-1", **extra):
    body = {"sku": sku, "model": "Phone", "brand": "Acme", "category": "Phones"}
    body.update(extra)
    return api.post("/api/products", json=body)


class TestSystem:
    def test_health(self, api):
        resp = api.get("/api/system/health")
        assert resp.status_code == 200
        body = resp.get_json()
        assert body["status"] == "healthy"
        assert body["checks"]["database"]["status"] == "healthy"
        assert body["connectivity"]["session_ready"] is True
        assert body["collections"]["products"]["subscribed"] is True

    def test_offline_online_switch(self, api):
        assert api.post("/api/system/offline").get_json()["online"] is False
        assert api.get("/api/system/connectivity").get_json()["online"] is False
        assert api.post("/api/system/online").get_json()["online"] is True

    def test_sign_out_and_in(self, api, services):
        resp = api.delete("/api/system/session")
        assert resp.get_json()["session_ready"] is False
        assert services.products.is_subscribed is False

        resp = api.post("/api/system/session", json={"userId": "user-2", "displayName": "Other"})
        assert resp.status_code == 201
        assert resp.get_json()["user_id"] == "user-2"

    def test_sign_in_requires_user(self, api):
        assert api.post("/api/system/session", json={}).status_code == 400


class TestProducts:
    def test_create_list_update(self, api):
        resp = create_product(api)
        assert resp.status_code == 201
        product_id = resp.get_json()["id"]

        listing = api.get("/api/products").get_json()
        assert [p["sku"] for p in listing["items"]] == ["PH-1"]
        assert listing["online"] is True

        assert api.put(f"/api/products/{product_id}", json={"model": "Phone X"}).status_code == 200
        assert api.get(f"/api/products/{product_id}").get_json()["product"]["model"] == "Phone X"

    def test_validation_and_conflict_errors(self, api):
        create_product(api)
        resp = create_product(api, sku="ph-1")
        assert resp.status_code == 409
        assert resp.get_json()["error"] == "conflict"

        resp = create_product(api, sku="bad sku")
        assert resp.status_code == 400
        assert resp.get_json()["error"] == "validation"

    def test_delete_requires_confirmation(self, api):
        product_id = create_product(api).get_json()["id"]

        resp = api.delete(f"/api/products/{product_id}")
        assert resp.status_code == 428
        assert resp.get_json()["confirmation"]["message"] == "Are you sure you want to delete this product?"
        assert api.get(f"/api/products/{product_id}").status_code == 200

        assert api.delete(f"/api/products/{product_id}?confirm=true").status_code == 200
        assert api.get(f"/api/products/{product_id}").status_code == 404

    def test_offline_write_refused_but_reads_served_from_cache(self, api):
        create_product(api)
        api.post("/api/system/offline")

        resp = create_product(api, sku="PH-2")
        assert resp.status_code == 409
        body = resp.get_json()
        assert body["error"] == "offline"
        assert body["message"] == "Cannot create a new product while offline. Please go Online first."

        listing = api.get("/api/products").get_json()
        assert [p["sku"] for p in listing["items"]] == ["PH-1"]
        assert listing["online"] is False

    def test_lookups(self, api):
        assert api.post("/api/products/lookups/brands", json={"value": "Acme"}).status_code == 201
        assert api.post("/api/products/lookups/brands", json={"value": "acme"}).status_code == 409
        assert api.get("/api/products/lookups").get_json()["lookups"] == {"brands": ["Acme"]}

    def test_import_validate_then_commit(self, api):
        csv_body = b"SKU,Model,Brand,Category\nPH-1,Phone,acme,phones\nPH-2,Phone 2,Acme,Phones\n"

        resp = api.post(
            "/api/products/import",
            data={"file": (io.BytesIO(csv_body), "products.csv")},
            content_type="multipart/form-data",
        )
        assert resp.status_code == 200
        assert resp.get_json()["ready"] is True
        assert api.get("/api/products").get_json()["items"] == []

        resp = api.post(
            "/api/products/import?commit=true",
            data={"file": (io.BytesIO(csv_body), "products.csv")},
            content_type="multipart/form-data",
        )
        assert resp.status_code == 201
        assert resp.get_json()["committed"]["imported"] == 2
        assert len(api.get("/api/products").get_json()["items"]) == 2

    def test_import_with_errors_not_committed(self, api):
        csv_body = b"SKU,Model,Brand,Category\nPH 1,Phone,Acme,Phones\n"
        resp = api.post(
            "/api/products/import?commit=true",
            data={"file": (io.BytesIO(csv_body), "products.csv")},
            content_type="multipart/form-data",
        )
        assert resp.status_code == 400
        assert resp.get_json()["errorCount"] == 1
        assert api.get("/api/products").get_json()["items"] == []

    def test_import_rejects_unknown_format(self, api):
        resp = api.post(
            "/api/products/import",
            data={"file": (io.BytesIO(b"{}"), "products.json")},
            content_type="multipart/form-data",
        )
        assert resp.status_code == 400

    def test_import_template(self, api):
        headers = api.get("/api/products/import/template").get_json()["headers"]
        assert headers[:4] == ["SKU", "Model", "Brand", "Category"]


class TestInventory:
    def test_locations_transactions_and_stock(self, api):
        assert api.post("/api/inventory/locations", json={"name": "Main Store"}).status_code == 201
        assert api.post("/api/inventory/locations", json={"name": "main store"}).status_code == 409
        product_id = create_product(api, reorderPoint=5).get_json()["id"]

        resp = api.post("/api/inventory/transactions", json={
            "productId": product_id, "locationId": "main_store", "type": "IN", "quantity": 3,
        })
        assert resp.status_code == 201

        stock = api.get(f"/api/inventory/stock?productId={product_id}").get_json()
        assert stock == {"productId": product_id, "byLocation": {"main_store": 3}, "onHand": 3}

        low = api.get("/api/inventory/low-stock").get_json()["items"]
        assert [row["productId"] for row in low] == [product_id]

    def test_bad_transaction(self, api):
        resp = api.post("/api/inventory/transactions", json={
            "productId": "p", "locationId": "a", "type": "ADJUST", "quantity": 1,
        })
        assert resp.status_code == 400


class TestPartiesAndOrders:
    def test_customer_lifecycle(self, api):
        resp = api.post("/api/customers", json={"name": "Ali Traders"})
        assert resp.status_code == 201
        assert resp.get_json()["displayId"] == "CUS-001"
        customer_id = resp.get_json()["id"]

        assert api.put(f"/api/customers/{customer_id}", json={"phone": "0300"}).status_code == 200
        assert api.delete(f"/api/customers/{customer_id}").status_code == 428
        assert api.delete(f"/api/customers/{customer_id}?confirm=1").status_code == 200
        assert api.get("/api/customers").get_json()["items"] == []

    def test_supplier_numbering(self, api):
        assert api.post("/api/suppliers", json={"name": "Global"}).get_json()["displayId"] == "SUP-001"

    def test_sales_order_finalize(self, api):
        api.post("/api/inventory/locations", json={"name": "Main Store"})
        product_id = create_product(api).get_json()["id"]
        customer_id = api.post("/api/customers", json={"name": "Ali"}).get_json()["id"]
        resp = api.post("/api/sales-orders", json={
            "customerId": customer_id,
            "orderDate": "2025-06-02",
            "items": [{"productId": product_id, "quantity": 1, "unitPrice": 59}],
        })
        assert resp.status_code == 201
        assert resp.get_json()["number"] == "SO-2506-001"
        order_id = resp.get_json()["id"]

        resp = api.post(f"/api/sales-orders/{order_id}/finalize", json={"locationId": "main_store"})
        assert resp.status_code == 200
        assert api.get("/api/sales-orders?status=PENDING").get_json()["items"] == []

        resp = api.put(f"/api/sales-orders/{order_id}", json={"notes": "edit"})
        assert resp.status_code == 409
        assert resp.get_json()["error"] == "invalid_state"

    def test_delivery_batch_lifecycle(self, api, services):
        api.post("/api/inventory/locations", json={"name": "Main Store"})
        product_id = create_product(api).get_json()["id"]
        customer_id = api.post("/api/customers", json={"name": "Ali"}).get_json()["id"]
        order_id = api.post("/api/sales-orders", json={
            "customerId": customer_id,
            "orderDate": "2025-06-02",
            "items": [{"productId": product_id, "quantity": 2, "unitPrice": 59}],
        }).get_json()["id"]
        item = {"productId": product_id, "quantity": 1, "locationId": "main_store"}

        resp = api.post(f"/api/sales-orders/{order_id}/deliverables", json={"items": [item]})
        assert resp.status_code == 201
        dropped = resp.get_json()["batchId"]
        assert dropped.startswith("BO-") and dropped.endswith("-001")
        kept = api.post(f"/api/sales-orders/{order_id}/deliverables", json={"items": [item]}).get_json()["batchId"]

        assert api.post(f"/api/sales-orders/{order_id}/deliverables", json={"items": []}).status_code == 400
        assert sorted(api.get("/api/deliverables/batches").get_json()["batches"]) == sorted([dropped, kept])
        assert api.delete(f"/api/deliverables/batches/{dropped}").status_code == 428
        resp = api.delete(f"/api/deliverables/batches/{dropped}?confirm=1")
        assert resp.get_json()["deleted"] == 1
        assert len(api.get(f"/api/deliverables?salesOrderId={order_id}").get_json()["items"]) == 1

        resp = api.post(f"/api/sales-orders/{order_id}/finalize", json={"locationId": "main_store"})
        assert resp.get_json()["releasedBatches"] == [kept]
        assert api.get("/api/deliverables").get_json()["items"] == []

    def test_item_history(self, api, services):
        tenant = services.connectivity.tenant_id
        log_id = services.store.add(tenant, "item_history", {
            "type": "STOCK_ADJUSTED", "productId": "p1", "quantity": 1, "timestamp": "2025-06-02T09:00:00Z",
        })
        assert [log["id"] for log in api.get("/api/inventory/history?productId=p1").get_json()["items"]] == [log_id]
        assert api.get(f"/api/inventory/history/{log_id}").get_json()["log"]["label"] == "Stock Adjusted"
        assert api.get("/api/inventory/history/nope").status_code == 404

    def test_missing_document(self, api):
        assert api.get("/api/purchase-invoices/nope").status_code == 404
        assert api.delete("/api/purchase-invoices/nope?confirm=true").status_code == 404


class TestReconciliationApi:
    def test_receive_assign_finalize(self, api, services, invoice, phone, cable, main_store):
        resp = api.post("/api/receivables/batches", json={
            "locationId": main_store,
            "items": [
                {"productId": phone, "isSerialized": True, "serials": ["SN-1", "SN-2"]},
                {"productId": cable, "quantity": 3},
            ],
        })
        assert resp.status_code == 201
        keys = resp.get_json()["keys"]
        assert len(keys) == 3

        view = api.get(f"/api/reconciliation/{invoice}").get_json()
        assert view["ready"] is False

        resp = api.post(f"/api/reconciliation/{invoice}/assign", json={"key": keys[0], "productId": phone})
        assert resp.status_code == 200

        resp = api.post(f"/api/reconciliation/{invoice}/finalize")
        assert resp.status_code == 422
        body = resp.get_json()
        assert body["error"] == "unsatisfied_lines"
        assert len(body["details"]) == 2

        for key in keys[1:]:
            item = services.receivables.find(key)
            api.post(f"/api/reconciliation/{invoice}/assign", json={"key": key, "productId": item["productId"]})

        resp = api.post(f"/api/reconciliation/{invoice}/finalize")
        assert resp.status_code == 200
        assert resp.get_json()["status"] == "FINALIZED"
        assert api.get("/api/receivables").get_json()["items"] == []

    def test_unknown_invoice(self, api):
        assert api.get("/api/reconciliation/missing").status_code == 404
