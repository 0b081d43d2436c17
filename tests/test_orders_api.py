import json
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlmodel import func, select

from app.models import Order
from app.services import order_store

from conftest import token_for


def _order_body(address, *items):
    return {
        "address_id": str(address.id),
        "items": [{"product_id": str(p.id), "qty": qty} for p, qty in items],
    }


def _create(client, headers, address, *items):
    return client.post("/api/orders", json=_order_body(address, *items), headers=headers)


@pytest.fixture
def created(client, auth_headers, address, product):
    res = _create(client, auth_headers, address, (product, 2))
    assert res.status_code == 201
    return res.json()["data"]


def _set_status(client, headers, order_id, status):
    return client.patch(f"/api/orders/{order_id}/status", json={"order_status": status}, headers=headers)


# ---------- auth guard ----------

@pytest.mark.parametrize(
    "method, path",
    [
        ("post", "/api/orders"),
        ("get", "/api/orders/my"),
        ("get", f"/api/orders/{uuid4()}"),
        ("patch", f"/api/orders/{uuid4()}/status"),
        ("patch", f"/api/orders/{uuid4()}/cancel"),
        ("get", "/api/orders/stream"),
    ],
)
def test_requires_token(client, method, path):
    res = getattr(client, method)(path)

    assert res.status_code == 401
    assert res.json() == {"success": False, "errors": ["Not authorized, no token"]}


def test_invalid_token(client):
    res = client.get("/api/orders/my", headers={"Authorization": "Bearer invalid.jwt.token"})

    assert res.status_code == 401
    assert res.json()["errors"] == ["Not authorized, token failed"]


def test_malformed_authorization_header(client):
    res = client.get("/api/orders/my", headers={"Authorization": "NotBearer token"})

    assert res.status_code == 401


def test_token_for_deleted_user(client, session, user):
    token = token_for(user)
    session.delete(user)
    session.commit()

    res = client.get("/api/orders/my", headers={"Authorization": f"Bearer {token}"})

    assert res.status_code == 401
    assert res.json()["errors"] == ["User not found"]


def test_cookie_auth(client, user):
    client.cookies.set("jwt", token_for(user))

    res = client.get("/api/orders/my")

    assert res.status_code == 200
    assert res.json() == {"success": True, "data": []}


def test_stream_rejects_invalid_query_token(client):
    res = client.get("/api/orders/stream?token=invalid")

    assert res.status_code == 401


# ---------- place order ----------

def test_place_order_scenario(client, auth_headers, user, address, product):
    res = _create(client, auth_headers, address, (product, 2))

    assert res.status_code == 201
    body = res.json()
    assert body["success"] is True

    order = body["data"]
    assert order["order_code"].startswith("ORD-")
    assert order["user_id"] == str(user.id)
    assert order["total_qty"] == 2
    assert Decimal(str(order["final_amount"])) == Decimal("200.00")
    assert order["order_status"] == "Order Received"

    assert order["address"]["pincode"] == "110001"
    assert order["address"]["city"] == "New Delhi"
    assert order["address"]["house_number"] == "42-B, Test Building"

    [item] = order["items"]
    assert item["product_id"] == str(product.id)
    assert item["product_name"] == "Paneer Tikka"
    assert Decimal(str(item["product_price"])) == Decimal("100.00")
    assert Decimal(str(item["subtotal"])) == Decimal("200.00")


def test_place_order_totals_across_items(client, auth_headers, address, make_product):
    biryani = make_product("Veg Biryani", "249.50")
    lassi = make_product("Mango Lassi", "80.25")

    res = _create(client, auth_headers, address, (biryani, 1), (lassi, 3))
    order = res.json()["data"]

    assert order["total_qty"] == 4
    assert Decimal(str(order["final_amount"])) == Decimal("490.25")
    assert len(order["items"]) == 2


def test_client_supplied_price_is_ignored(client, auth_headers, address, product):
    body = _order_body(address, (product, 1))
    body["items"][0]["price"] = "0.01"
    body["final_amount"] = "0.01"

    res = client.post("/api/orders", json=body, headers=auth_headers)

    assert res.status_code == 201
    assert Decimal(str(res.json()["data"]["final_amount"])) == Decimal("100.00")


@pytest.mark.parametrize(
    "body, message",
    [
        ({"items": []}, "items must be a non-empty array"),
        ({"items": [{"qty": 1}]}, "items[0].product_id is required"),
        ({"items": [{"product_id": "not-a-uuid", "qty": 1}]}, "items[0].product_id must be a valid UUID"),
        ({"items": [{"product_id": str(uuid4()), "qty": 0}]}, "items[0].qty must be a positive integer"),
        ({"items": [{"product_id": str(uuid4()), "qty": -1}]}, "items[0].qty must be a positive integer"),
        ({"items": [{"product_id": str(uuid4()), "qty": 1.5}]}, "items[0].qty must be a positive integer"),
        ({"items": [{"product_id": str(uuid4()), "qty": "2"}]}, "items[0].qty must be a positive integer"),
        ({"items": [{"product_id": str(uuid4()), "qty": True}]}, "items[0].qty must be a positive integer"),
    ],
)
def test_place_order_validation(client, auth_headers, address, body, message):
    body = {"address_id": str(address.id), **body}

    res = client.post("/api/orders", json=body, headers=auth_headers)

    assert res.status_code == 400
    assert res.json()["success"] is False
    assert message in res.json()["errors"]


def test_place_order_requires_address_id(client, auth_headers, product):
    res = client.post(
        "/api/orders",
        json={"items": [{"product_id": str(product.id), "qty": 1}]},
        headers=auth_headers,
    )

    assert res.status_code == 400
    assert res.json()["errors"] == ["address_id is required"]


def test_place_order_rejects_malformed_address_id(client, auth_headers, product):
    res = client.post(
        "/api/orders",
        json={"address_id": "not-a-uuid", "items": [{"product_id": str(product.id), "qty": 1}]},
        headers=auth_headers,
    )

    assert res.status_code == 400
    assert res.json()["errors"] == ["address_id must be a valid UUID"]


def test_place_order_with_someone_elses_address(client, other_auth_headers, address, product):
    res = _create(client, other_auth_headers, address, (product, 1))

    assert res.status_code == 400
    assert res.json()["errors"] == ["Invalid delivery address"]


def test_place_order_with_unknown_address(client, auth_headers, product):
    res = client.post(
        "/api/orders",
        json={"address_id": str(uuid4()), "items": [{"product_id": str(product.id), "qty": 1}]},
        headers=auth_headers,
    )

    assert res.status_code == 400
    assert res.json()["errors"] == ["Invalid delivery address"]


def test_place_order_with_removed_product(client, session, auth_headers, address, product):
    missing = uuid4()

    res = client.post(
        "/api/orders",
        json={
            "address_id": str(address.id),
            "items": [{"product_id": str(product.id), "qty": 1}, {"product_id": str(missing), "qty": 1}],
        },
        headers=auth_headers,
    )

    assert res.status_code == 400
    assert res.json()["errors"] == [f"Product not found: {missing}. It may have been removed."]
    assert session.exec(select(func.count()).select_from(Order)).one() == 0


def test_failed_insert_leaves_no_partial_order(client, session, auth_headers, address, product, monkeypatch):
    def boom(**kwargs):
        raise RuntimeError("disk full")

    monkeypatch.setattr(order_store, "OrderAddress", boom)

    res = _create(client, auth_headers, address, (product, 1))

    assert res.status_code == 500
    assert res.json()["errors"] == ["Failed to place order"]
    assert session.exec(select(func.count()).select_from(Order)).one() == 0


def test_snapshot_is_frozen_after_source_changes(client, session, auth_headers, address, product, created):
    address.pincode = "400001"
    product.price = Decimal("999.00")
    session.add(address)
    session.add(product)
    session.commit()
    session.delete(product)
    session.commit()

    order = client.get(f"/api/orders/{created['id']}", headers=auth_headers).json()["data"]

    assert order["address"]["pincode"] == "110001"
    assert Decimal(str(order["items"][0]["product_price"])) == Decimal("100.00")
    assert Decimal(str(order["final_amount"])) == Decimal("200.00")


# ---------- reads ----------

def test_my_orders_only_lists_own_orders(client, auth_headers, other_auth_headers, other_user, address, product, make_address):
    _create(client, auth_headers, address, (product, 1))
    _create(client, auth_headers, address, (product, 2))
    _create(client, other_auth_headers, make_address(other_user), (product, 5))

    orders = client.get("/api/orders/my", headers=auth_headers).json()["data"]

    assert len(orders) == 2
    assert sorted(o["total_qty"] for o in orders) == [1, 2]
    assert all(o["items"] and o["address"] for o in orders)
    # newest first
    assert orders[0]["created_at"] >= orders[1]["created_at"]


def test_get_order(client, auth_headers, created):
    res = client.get(f"/api/orders/{created['id']}", headers=auth_headers)

    assert res.status_code == 200
    assert res.json()["data"]["order_code"] == created["order_code"]


def test_get_someone_elses_order_is_not_found(client, other_auth_headers, created):
    res = client.get(f"/api/orders/{created['id']}", headers=other_auth_headers)

    assert res.status_code == 404
    assert res.json() == {"success": False, "errors": ["Order not found"]}


def test_get_unknown_order(client, auth_headers):
    res = client.get(f"/api/orders/{uuid4()}", headers=auth_headers)

    assert res.status_code == 404


def test_get_order_with_invalid_id(client, auth_headers):
    res = client.get("/api/orders/not-a-uuid", headers=auth_headers)

    assert res.status_code == 400
    assert res.json()["errors"] == ["Invalid order ID"]


# ---------- status updates ----------

def test_status_walk(client, auth_headers, created):
    for status in ("Preparing", "Out for Delivery", "Delivered"):
        res = _set_status(client, auth_headers, created["id"], status)
        assert res.status_code == 200
        assert res.json()["data"]["order_status"] == status


def test_skipping_a_step_is_rejected(client, auth_headers, created):
    _set_status(client, auth_headers, created["id"], "Preparing")

    res = _set_status(client, auth_headers, created["id"], "Delivered")

    assert res.status_code == 400
    assert "Out for Delivery" in res.json()["errors"][0]


def test_moving_backwards_is_rejected(client, auth_headers, created):
    _set_status(client, auth_headers, created["id"], "Preparing")

    res = _set_status(client, auth_headers, created["id"], "Order Received")

    assert res.status_code == 400
    assert "Out for Delivery" in res.json()["errors"][0]


def test_delivered_is_terminal(client, auth_headers, created):
    for status in ("Preparing", "Out for Delivery", "Delivered"):
        _set_status(client, auth_headers, created["id"], status)

    res = _set_status(client, auth_headers, created["id"], "Delivered")
    assert res.status_code == 400
    assert "already delivered" in res.json()["errors"][0]

    res = client.patch(f"/api/orders/{created['id']}/cancel", headers=auth_headers)
    assert res.status_code == 400
    assert "already delivered" in res.json()["errors"][0]


def test_unknown_status_value(client, auth_headers, created):
    res = _set_status(client, auth_headers, created["id"], "Shipped")

    assert res.status_code == 400
    assert res.json()["errors"][0].startswith("order_status must be one of")


def test_status_of_unknown_order(client, auth_headers):
    res = _set_status(client, auth_headers, uuid4(), "Preparing")

    assert res.status_code == 404


# ---------- cancellation ----------

def test_cancel_from_preparing_then_again(client, auth_headers, created):
    _set_status(client, auth_headers, created["id"], "Preparing")

    res = client.patch(f"/api/orders/{created['id']}/cancel", headers=auth_headers)
    assert res.status_code == 200
    assert res.json()["data"]["order_status"] == "Cancelled"
    assert res.json()["message"] == "Order cancelled successfully"

    res = client.patch(f"/api/orders/{created['id']}/cancel", headers=auth_headers)
    assert res.status_code == 400
    assert "already cancelled" in res.json()["errors"][0]


def test_cancelled_order_rejects_status_updates(client, auth_headers, created):
    client.patch(f"/api/orders/{created['id']}/cancel", headers=auth_headers)

    res = _set_status(client, auth_headers, created["id"], "Preparing")

    assert res.status_code == 400
    assert "already cancelled" in res.json()["errors"][0]


def test_cancel_someone_elses_order(client, other_auth_headers, created):
    res = client.patch(f"/api/orders/{created['id']}/cancel", headers=other_auth_headers)

    assert res.status_code == 404


def test_cancel_with_invalid_id(client, auth_headers):
    res = client.patch("/api/orders/not-a-uuid/cancel", headers=auth_headers)

    assert res.status_code == 400
    assert res.json()["errors"] == ["Invalid order ID"]


# ---------- live updates ----------

def _events(connection):
    events = []
    for frame in connection.frames:
        lines = frame.strip().splitlines()
        event = lines[0][len("event: "):]
        data = json.loads(lines[1][len("data: "):])
        events.append((event, data))
    return events


def test_status_change_is_pushed_to_owner(client, broadcaster, make_connection, auth_headers, user, other_user, created):
    mine, theirs = make_connection(), make_connection()
    broadcaster.add_connection(user.id, mine)
    broadcaster.add_connection(other_user.id, theirs)

    _set_status(client, auth_headers, created["id"], "Preparing")
    client.patch(f"/api/orders/{created['id']}/cancel", headers=auth_headers)

    assert _events(mine) == [
        ("order_status_update", {"order_id": created["id"], "order_code": created["order_code"], "order_status": "Preparing"}),
        ("order_status_update", {"order_id": created["id"], "order_code": created["order_code"], "order_status": "Cancelled"}),
    ]
    assert theirs.frames == []


def test_rejected_change_is_not_pushed(client, broadcaster, make_connection, auth_headers, user, created):
    connection = make_connection()
    broadcaster.add_connection(user.id, connection)

    res = _set_status(client, auth_headers, created["id"], "Delivered")

    assert res.status_code == 400
    assert connection.frames == []


def test_broken_stream_does_not_fail_the_update(client, broadcaster, make_connection, auth_headers, user, created):
    broadcaster.add_connection(user.id, make_connection(fail=True))

    res = _set_status(client, auth_headers, created["id"], "Preparing")

    assert res.status_code == 200
    assert broadcaster.connection_count() == 0


# ---------- misc ----------

def test_health(client):
    res = client.get("/api/health")

    assert res.status_code == 200
    assert res.json()["status"] == "ok"
    assert res.json()["database"] == "ok"
    assert res.json()["order_streams"] == 0


def test_root(client):
    assert client.get("/").json()["message"] == "Food Delivery API is running"
