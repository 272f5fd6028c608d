# tests/test_api.py

from app.models.order import Order
from app.models.user import User
from conftest import auth_header

PINCODE = {
    "pincode": "400001",
    "city": "Mumbai",
    "state": "Maharashtra",
    "standard_days": 3,
    "slots": [{"label": "Morning", "start_hour": 9, "end_hour": 12, "cutoff_hour": 10}],
}


# ────────────── auth ──────────────
async def test_login_with_seeded_admin(client):
    response = await client.post("/auth/token", data={"username": "admin@example.com", "password": "admin"})

    assert response.status_code == 200
    body = response.json()
    assert body["token_type"] == "bearer"
    assert body["user"]["role"] == "admin"

    me = await client.get("/auth/me", headers={"Authorization": f"Bearer {body['access_token']}"})
    assert me.json()["email"] == "admin@example.com"


async def test_login_with_wrong_password(client):
    response = await client.post("/auth/token", data={"username": "admin@example.com", "password": "nope"})

    assert response.status_code == 401
    assert response.json() == {"error": "Wrong email or password"}


async def test_missing_and_invalid_tokens(client):
    assert (await client.get("/rewards/")).status_code == 401

    response = await client.get("/rewards/", headers={"Authorization": "Bearer not-a-jwt"})
    assert response.status_code == 401
    assert response.json() == {"error": "Token invalid"}


async def test_register_with_referral_code(client, make_user):
    await make_user("nikhil@example.com", affiliate_code="BKC9F3A21")

    response = await client.post("/auth/register", json={
        "name": "Divya", "email": "Divya@Example.com", "password": "secret1", "referral_code": "bkc9f3a21",
    })

    assert response.status_code == 201
    body = response.json()
    assert body["referral_applied"] is True
    assert body["discount"] == 100
    assert body["user"]["email"] == "divya@example.com"
    assert body["user"]["affiliate_code"].startswith("BKC")


async def test_register_keeps_account_when_code_is_invalid(client, session_factory):
    response = await client.post("/auth/register", json={
        "email": "solo@example.com", "password": "secret1", "referral_code": "BKCNOPE00",
    })

    assert response.status_code == 201
    assert response.json()["referral_applied"] is False
    assert response.json()["referral_error"] == "Invalid referral code"
    async with session_factory() as fresh:
        assert await fresh.get(User, response.json()["user"]["id"]) is not None


async def test_register_conflict_and_validation(client):
    payload = {"email": "dup@example.com", "password": "secret1"}
    assert (await client.post("/auth/register", json=payload)).status_code == 201

    again = await client.post("/auth/register", json=payload)
    assert again.status_code == 409
    assert "error" in again.json()

    invalid = await client.post("/auth/register", json={"email": "not-an-email", "password": "x"})
    assert invalid.status_code == 400
    assert "email" in invalid.json()["error"]


# ────────────── orders ──────────────
async def test_status_update_through_api(client, admin, make_user, make_order):
    customer = await make_user("asha@example.com")
    order = await make_order(customer)

    forbidden = await client.put(f"/order/{order.id}/status", json={"status": "confirmed"},
                                 headers=auth_header(customer))
    assert forbidden.status_code == 403
    assert forbidden.json() == {"error": "Customers cannot change order status"}

    illegal = await client.put(f"/order/{order.id}/status", json={"status": "delivered"},
                               headers=auth_header(admin))
    assert illegal.status_code == 400
    assert illegal.json() == {"error": "Cannot transition from pending to delivered"}

    response = await client.put(f"/order/{order.id}/status", json={"status": "confirmed", "note": "Stock checked"},
                                headers=auth_header(admin))
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "confirmed"
    assert [entry["status"] for entry in body["status_history"]] == ["pending", "confirmed"]
    assert body["status_history"][-1]["note"] == "Stock checked"


async def test_order_list_and_read(client, admin, make_user, make_order):
    customer = await make_user("asha@example.com")
    other = await make_user("ravi@example.com")
    mine = await make_order(customer)
    theirs = await make_order(other)

    listing = await client.get("/order/", headers=auth_header(customer))
    assert listing.status_code == 200
    assert [o["id"] for o in listing.json()["items"]] == [mine.id]
    assert listing.json()["pagination"]["total"] == 1

    everything = await client.get("/order/", params={"status": "pending"}, headers=auth_header(admin))
    assert everything.json()["pagination"]["total"] == 2

    two_filters = await client.get("/order/", params={"status": "pending", "customer_id": customer.id},
                                   headers=auth_header(admin))
    assert two_filters.status_code == 400

    assert (await client.get(f"/order/{theirs.id}", headers=auth_header(customer))).status_code == 403
    assert (await client.get("/order/9999", headers=auth_header(admin))).status_code == 404


async def test_customer_cancels_through_api(client, make_user, make_order):
    customer = await make_user("asha@example.com")
    order = await make_order(customer)

    response = await client.post(f"/order/{order.id}/cancel", json={"reason": "Changed my mind"},
                                 headers=auth_header(customer))

    assert response.status_code == 200
    assert response.json()["status"] == "cancelled"
    assert response.json()["cancelled_by"] == "customer"


async def test_payment_callback_runs_side_effects_once(client, session_factory, notifier, registrar,
                                                       make_user, make_order):
    customer = await make_user("meera@example.com")
    order = await make_order(customer, payment_method="phonepe")
    payload = {"code": "PAYMENT_SUCCESS", "order_number": order.order_number, "transaction_id": "T-77"}

    first = await client.post("/order/payment/callback", json=payload)
    assert first.status_code == 200
    assert first.json() == {
        "order_number": order.order_number, "confirmed": True, "status": "confirmed", "payment_status": "paid",
    }

    replay = await client.post("/order/payment/callback", json=payload)
    assert replay.json()["confirmed"] is False

    assert registrar.created == [order.order_number]
    assert notifier.sent == [("meera@example.com", order.order_number)]
    async with session_factory() as fresh:
        stored = await fresh.get(Order, order.id)
        assert stored.tracking_number == "AWB123456"
        assert [entry.status for entry in stored.status_history] == ["pending", "confirmed"]


async def test_callback_replay_after_processing(client, admin, registrar, make_user, make_order):
    customer = await make_user("meera@example.com")
    order = await make_order(customer)
    payload = {"code": "PAYMENT_SUCCESS", "order_number": order.order_number, "transaction_id": "T-78"}

    await client.post("/order/payment/callback", json=payload)
    moved = await client.put(f"/order/{order.id}/status", json={"status": "processing"},
                             headers=auth_header(admin))
    assert moved.status_code == 200

    replay = await client.post("/order/payment/callback", json=payload)

    assert replay.status_code == 200
    assert replay.json()["confirmed"] is False
    assert replay.json()["status"] == "processing"
    assert registrar.created == [order.order_number]


async def test_customer_requests_return_through_api(client, admin, make_user, make_order):
    customer = await make_user("asha@example.com")
    order = await make_order(customer)
    for status in ("confirmed", "processing", "shipped", "delivered"):
        await client.put(f"/order/{order.id}/status", json={"status": status}, headers=auth_header(admin))

    response = await client.post(f"/order/{order.id}/return", json={"reason": "Colour differs"},
                                 headers=auth_header(customer))
    assert response.status_code == 200
    assert response.json()["status"] == "return_requested"
    assert response.json()["return_reason"] == "Colour differs"

    again = await client.post(f"/order/{order.id}/return", json={"reason": "Colour differs"},
                              headers=auth_header(customer))
    assert again.status_code == 400
    assert again.json() == {"error": "A return request already exists for this order"}


async def test_payment_confirmed_even_when_carrier_fails(client, session_factory, registrar,
                                                         make_user, make_order):
    registrar.fail = True
    customer = await make_user("meera@example.com")
    order = await make_order(customer)

    response = await client.post("/order/payment/callback", json={
        "code": "PAYMENT_SUCCESS", "order_number": order.order_number,
    })

    assert response.status_code == 200
    async with session_factory() as fresh:
        stored = await fresh.get(Order, order.id)
        assert stored.status == "confirmed"
        assert stored.tracking_number is None


async def test_failed_payment_callback(client, make_user, make_order):
    customer = await make_user("meera@example.com")
    order = await make_order(customer)

    response = await client.post("/order/payment/callback", json={
        "code": "PAYMENT_ERROR", "order_number": order.order_number,
    })

    assert response.json()["payment_status"] == "failed"
    assert response.json()["status"] == "pending"

    unknown = await client.post("/order/payment/callback", json={"code": "PAYMENT_SUCCESS", "order_number": "X"})
    assert unknown.status_code == 404


# ────────────── rewards ──────────────
async def test_credit_and_redeem_through_api(client, admin, make_user):
    customer = await make_user("kavya@example.com")

    credited = await client.post("/rewards/credit", json={"user_id": customer.id, "points": 150, "source": "purchase"},
                                 headers=auth_header(admin))
    assert credited.status_code == 201
    assert credited.json()["balance"] == 150

    redeemed = await client.post("/rewards/redeem", json={"points": 120}, headers=auth_header(customer))
    assert redeemed.status_code == 200
    assert redeemed.json()["discount_value"] == 12
    assert redeemed.json()["remaining_points"] == 30

    short = await client.post("/rewards/redeem", json={"points": 100}, headers=auth_header(customer))
    assert short.status_code == 400
    assert short.json() == {"error": "Insufficient points", "available": 30, "requested": 100}

    overview = await client.get("/rewards/", headers=auth_header(customer))
    assert overview.json()["points"] == 30
    assert [t["type"] for t in overview.json()["transactions"]] == ["redeemed", "earned"]


async def test_only_admin_credits(client, make_user):
    customer = await make_user("kavya@example.com")

    response = await client.post("/rewards/credit", json={"user_id": customer.id, "points": 1000},
                                 headers=auth_header(customer))

    assert response.status_code == 403
    assert response.json() == {"error": "Access denied"}


# ────────────── referral ──────────────
async def test_referral_flow_through_api(client, admin, make_user):
    referrer = await make_user("nikhil@example.com", affiliate_code="BKC9F3A21")
    newcomer = await make_user("divya@example.com")

    applied = await client.post("/referral/apply", json={"referral_code": "BKC9F3A21"},
                                headers=auth_header(newcomer))
    assert applied.status_code == 201
    referral = applied.json()["referral"]
    assert referral["status"] == "pending"
    assert referral["referrer_reward"] == {"type": "points", "value": 100, "claimed": False, "claimed_at": None}

    again = await client.post("/referral/apply", json={"referral_code": "BKC9F3A21"},
                              headers=auth_header(newcomer))
    assert again.status_code == 409
    assert again.json() == {"error": "User already referred"}

    own = await client.post("/referral/apply", json={"referral_code": "BKC9F3A21"}, headers=auth_header(referrer))
    assert own.status_code == 400
    assert own.json() == {"error": "Cannot refer yourself"}

    settled = await client.post(f"/referral/{referral['id']}/settle", json={"order_amount": 1000},
                                headers=auth_header(admin))
    assert settled.json()["settled"] is True
    assert settled.json()["referral"]["status"] == "completed"

    twice = await client.post(f"/referral/{referral['id']}/settle", headers=auth_header(admin))
    assert twice.json()["settled"] is False

    summary = (await client.get("/referral/", headers=auth_header(referrer))).json()
    assert summary["referral_code"] == "BKC9F3A21"
    assert summary["total_earned"] == 100
    assert summary["stats"] == {"total": 1, "completed": 1, "pending": 0}

    rewards = (await client.get("/rewards/", headers=auth_header(referrer))).json()
    assert rewards["points"] == 100


# ────────────── pincode ──────────────
async def test_pincode_admin_and_lookup(client, admin, make_user):
    customer = await make_user("asha@example.com")

    denied = await client.put("/pincode/", json=PINCODE, headers=auth_header(customer))
    assert denied.status_code == 403

    saved = await client.put("/pincode/", json=PINCODE, headers=auth_header(admin))
    assert saved.status_code == 200
    assert saved.json()["is_serviceable"] is True

    found = await client.get("/pincode/", params={"pincode": "400001"})
    assert found.status_code == 200
    assert found.json()["city"] == "Mumbai"
    assert found.json()["delivery"]["standard_days"] == 3
    assert 2 <= len(found.json()["slots"]) <= 3

    unknown = await client.get("/pincode/", params={"pincode": "110001"})
    assert unknown.json()["is_serviceable"] is False
    assert unknown.json()["slots"] == []

    invalid = await client.get("/pincode/", params={"pincode": "12"})
    assert invalid.status_code == 400
    assert invalid.json() == {"error": "Valid 6-digit pincode is required"}
