from datetime import datetime, timedelta, timezone

from conftest import make_customer


def add_order(db, order_id, total_price, created_at):
    db["order"].insert_one({
        "order_id": order_id,
        "status": "pending",
        "total_price": total_price,
        "created_at": created_at,
    })


def test_summary(client, db, admin_headers):
    now = datetime.now(timezone.utc)
    add_order(db, 1, 100, now - timedelta(days=30))
    add_order(db, 2, 50, now - timedelta(days=1))
    make_customer(db, 1, created_at=now - timedelta(days=2))
    make_customer(db, 2, created_at=now - timedelta(days=60))

    res = client.get("/dashboard/summary", headers=admin_headers)
    assert res.status_code == 200
    assert res.json() == {
        "total_revenue": 150,
        "number_of_orders": 2,
        "average_order_value": 75,
        "new_orders": 1,
        "new_customers": 1,
    }


def test_summary_with_no_orders(client, admin_headers):
    body = client.get("/dashboard/summary", headers=admin_headers).json()
    assert body["total_revenue"] == 0
    assert body["average_order_value"] == 0


def test_health_endpoints(client):
    assert client.get("/").status_code == 200
    assert client.get("/test").json()["connection_status"] == "Connected"
