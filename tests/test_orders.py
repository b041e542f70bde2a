import pytest

from conftest import make_customer, make_product, missing_id


@pytest.fixture
def customer_id(db):
    return make_customer(db, 1, customer_name="Mona Adel")


@pytest.fixture
def product_ids(db):
    return make_product(db, 100, price=20), make_product(db, 101, price=7.5)


def order_body(customer, lines, order_id=1, **extra):
    body = {
        "order_id": order_id,
        "order_date": "2024-05-01T10:00:00Z",
        "customer": str(customer),
        "shipping_address": {"street": "9 Nile St", "city": "Cairo", "postal_code": 11511},
        "payment_info": {"payment_method": "card", "transaction_id": 555, "billing_postal_code": 11511},
        "products": [{"product_id": str(pid), "quantity": qty} for pid, qty in lines],
    }
    body.update(extra)
    return body


@pytest.fixture
def placed(client, admin_headers, customer_id, product_ids):
    def place(order_id=1, lines=None, **extra):
        lines = lines or [(product_ids[0], 2)]
        res = client.post("/api/orders", json=order_body(customer_id, lines, order_id, **extra),
                          headers=admin_headers)
        assert res.status_code == 201, res.text
        return res.json()["order"]
    return place


def test_create_order_computes_total(client, db, admin_headers, admin_id, customer_id, product_ids):
    lines = [(product_ids[0], 2), (product_ids[1], 4)]
    res = client.post("/api/orders", json=order_body(customer_id, lines), headers=admin_headers)
    assert res.status_code == 201
    order = res.json()["order"]
    assert order["total_price"] == 70
    assert order["status"] == "pending"
    assert order["customer"]["customer_name"] == "Mona Adel"
    assert order["user"]["id"] == str(admin_id)
    assert order["products"][0]["product_id"]["product_id"] == 100

    stored = db["order"].find_one({"order_id": 1})
    assert stored["customer"] == customer_id
    assert stored["customer_name"] == "Mona Adel"


def test_create_order_unknown_customer(client, db, admin_headers, product_ids):
    res = client.post("/api/orders", json=order_body(missing_id(), [(product_ids[0], 1)]), headers=admin_headers)
    assert res.status_code == 400
    assert res.json()["detail"] == "Customer not found"
    assert db["order"].count_documents({}) == 0


def test_create_order_unknown_product(client, db, admin_headers, customer_id):
    ghost = missing_id()
    res = client.post("/api/orders", json=order_body(customer_id, [(ghost, 1)]), headers=admin_headers)
    assert res.status_code == 400
    assert res.json()["detail"] == f"Product with ID {ghost} not found"
    assert db["order"].count_documents({}) == 0


def test_create_order_rejects_zero_quantity(client, admin_headers, customer_id, product_ids):
    res = client.post("/api/orders", json=order_body(customer_id, [(product_ids[0], 0)]), headers=admin_headers)
    assert res.status_code == 400


def test_create_order_rejects_unknown_status(client, admin_headers, customer_id, product_ids):
    body = order_body(customer_id, [(product_ids[0], 1)], status="lost")
    assert client.post("/api/orders", json=body, headers=admin_headers).status_code == 400


def test_duplicate_order_id(client, admin_headers, customer_id, product_ids, placed):
    placed(order_id=7)
    res = client.post("/api/orders", json=order_body(customer_id, [(product_ids[0], 1)], order_id=7),
                      headers=admin_headers)
    assert res.status_code == 400
    assert res.json()["detail"] == "Order id already exists"


def test_list_orders_paginates_and_filters(client, admin_headers, placed, product_ids):
    placed(order_id=1)
    placed(order_id=2, status="shipped")
    placed(order_id=3, lines=[(product_ids[1], 2)])

    body = client.get("/api/orders", headers=admin_headers).json()
    assert body["total_count"] == 3
    assert body["current_page"] == 1

    shipped = client.get("/api/orders", params={"status": "shipped"}, headers=admin_headers).json()
    assert [o["order_id"] for o in shipped["items"]] == [2]

    cheap = client.get("/api/orders", params={"price_max": 20}, headers=admin_headers).json()
    assert [o["order_id"] for o in cheap["items"]] == [3]

    by_product = client.get("/api/orders", params={"product_id": str(product_ids[1])}, headers=admin_headers)
    assert [o["order_id"] for o in by_product.json()["items"]] == [3]


def test_list_orders_sorting(client, admin_headers, placed, product_ids):
    placed(order_id=1, lines=[(product_ids[0], 3)])
    placed(order_id=2, lines=[(product_ids[0], 1)])
    res = client.get("/api/orders", params={"sort_by": "total_price", "order": "asc"}, headers=admin_headers)
    assert [o["order_id"] for o in res.json()["items"]] == [2, 1]


def test_list_orders_search_by_customer_name(client, admin_headers, placed):
    placed()
    res = client.get("/api/orders", params={"search": "mona"}, headers=admin_headers)
    assert res.json()["total_count"] == 1
    res = client.get("/api/orders", params={"search": "zed"}, headers=admin_headers)
    assert res.json()["total_count"] == 0


def test_list_orders_rejects_bad_total_price(client, admin_headers):
    res = client.get("/api/orders", params={"total_price": "lots"}, headers=admin_headers)
    assert res.status_code == 400
    assert res.json()["detail"] == "Invalid price format"


def test_get_order_is_public(client, placed):
    placed(order_id=12)
    res = client.get("/api/orders/12")
    assert res.status_code == 200
    assert res.json()["order"]["order_id"] == 12
    assert client.get("/api/orders/99").status_code == 404


def test_update_order_status(client, admin_headers, placed):
    placed()
    res = client.patch("/api/orders/1", json={"status": "delivered"}, headers=admin_headers)
    assert res.status_code == 200
    assert res.json()["order"]["status"] == "delivered"
    back = client.patch("/api/orders/1", json={"status": "pending"}, headers=admin_headers)
    assert back.json()["order"]["status"] == "pending"


@pytest.mark.parametrize("body, detail", [
    ({}, "Status is required"),
    ({"status": "teleported"}, "Invalid status"),
])
def test_update_order_status_validation(client, admin_headers, placed, body, detail):
    placed()
    res = client.patch("/api/orders/1", json=body, headers=admin_headers)
    assert res.status_code == 400
    assert res.json()["detail"] == detail


def test_add_products_merges_quantities(client, db, admin_headers, placed, product_ids):
    placed(lines=[(product_ids[0], 1)])
    extra = {"products": [
        {"product_id": str(product_ids[0]), "quantity": 2},
        {"product_id": str(product_ids[1]), "quantity": 2},
    ]}
    res = client.patch("/api/orders/1/products", json=extra, headers=admin_headers)
    assert res.status_code == 200
    order = res.json()["order"]
    assert order["status"] == "processing"
    assert order["total_price"] == 75
    stored = db["order"].find_one({"order_id": 1})
    assert {str(l["product_id"]): l["quantity"] for l in stored["products"]} == {
        str(product_ids[0]): 3,
        str(product_ids[1]): 2,
    }


def test_add_unknown_product_leaves_order_untouched(client, db, admin_headers, placed):
    placed()
    res = client.patch("/api/orders/1/products", json={"products": [{"product_id": missing_id(), "quantity": 1}]},
                       headers=admin_headers)
    assert res.status_code == 400
    assert db["order"].find_one({"order_id": 1})["status"] == "pending"


def test_orders_by_date(client, admin_headers, placed):
    placed(order_id=1, order_date="2024-05-01T10:00:00Z")
    placed(order_id=2, order_date="2024-06-15T10:00:00Z")
    res = client.get("/api/orders/by-date", params={"start_date": "2024-05-01", "end_date": "2024-05-31"},
                     headers=admin_headers)
    assert res.status_code == 200
    assert [o["order_id"] for o in res.json()["orders"]] == [1]


def test_orders_by_date_requires_both_bounds(client, admin_headers):
    res = client.get("/api/orders/by-date", params={"start_date": "2024-05-01"}, headers=admin_headers)
    assert res.status_code == 400


def test_orders_by_date_rejects_bad_dates(client, admin_headers):
    res = client.get("/api/orders/by-date", params={"start_date": "yesterday", "end_date": "2024-05-31"},
                     headers=admin_headers)
    assert res.status_code == 400
    assert res.json()["detail"] == "Invalid date format. Use YYYY-MM-DD"


def test_delete_order_is_permanent(client, db, admin_headers, placed):
    placed()
    res = client.delete("/api/orders/1", headers=admin_headers)
    assert res.json() == {"message": "Order deleted successfully"}
    assert db["order"].count_documents({}) == 0
    assert client.delete("/api/orders/1", headers=admin_headers).status_code == 404


def test_orders_require_auth(client):
    assert client.get("/api/orders").status_code == 401


def test_huge_page_number_gives_empty_page(client, admin_headers, placed):
    placed()
    res = client.get("/api/orders", params={"page": "99999999999999999999"}, headers=admin_headers)
    assert res.status_code == 200
    assert res.json()["items"] == []
    assert res.json()["total_count"] == 1


def test_oversized_order_ids_are_rejected(client, admin_headers, customer_id, product_ids):
    huge = 10 ** 20
    assert client.get(f"/api/orders/{huge}").status_code == 400
    res = client.get("/api/orders", params={"order_id": str(huge)}, headers=admin_headers)
    assert res.status_code == 400
    assert res.json()["detail"] == "Invalid order id"
    body = order_body(customer_id, [(product_ids[0], 1)], order_id=huge)
    assert client.post("/api/orders", json=body, headers=admin_headers).status_code == 400
