import json

from sqlmodel import select

from coauthor.models.authorship_purchase import AuthorshipPurchase
from coauthor.models.coupon import Coupon
from coauthor.models.payment_event import PaymentEvent
from coauthor.models.upcoming_book import UpcomingBook
from helpers import signed_webhook, status_response, webhook_payload

BUYER = {"full_name": "Asha Rao", "phone_number": "9876543210", "bio": "Poet"}


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["database"] == "ok"
    assert set(response.json()["gateways"]) == {"wallet", "bank_verify"}


def test_public_books_hide_inactive(client, make_book):
    make_book(title="Open Book")
    hidden = make_book(title="Hidden Book", status="inactive")

    body = client.get("/books").json()

    assert [b["title"] for b in body["results"]] == ["Open Book"]
    assert client.get(f"/books/{hidden.id}").status_code == 404


def test_book_detail_lists_positions(client, book):
    body = client.get(f"/books/{book.id}").json()

    assert body["total_copies"] == 4
    assert body["positions"] == [
        {"number": 1, "price": 10000, "available": True},
        {"number": 2, "price": 9000, "available": True},
    ]


def test_coupon_preview(login, buyer, book, make_coupon):
    client = login(buyer)
    make_coupon("SAVE10", "percentage", 10, max_uses=1)

    response = client.post("/coupons/preview", json={"code": "save10", "book_id": book.id, "position_number": 2})

    assert response.status_code == 200
    assert response.json()["discount_amount"] == 900
    assert response.json()["final_amount"] == 8100


def test_create_purchase(login, buyer, book, session):
    client = login(buyer)

    response = client.post("/purchases", json={"book_id": book.id, "position_number": 2, "buyer": BUYER})

    assert response.status_code == 201
    body = response.json()
    assert body["total_amount"] == 9000
    assert body["payment_status"] == "pending"
    assert session.get(AuthorshipPurchase, body["id"]).user_id == buyer.id


def test_invalid_buyer_phone_is_422(login, buyer, book):
    client = login(buyer)

    response = client.post(
        "/purchases",
        json={"book_id": book.id, "position_number": 2, "buyer": {**BUYER, "phone_number": "12345"}},
    )

    assert response.status_code == 422
    assert response.json()["error"] == "validation_error"
    assert response.json()["context"]["field"] == "phone_number"


def test_sold_position_is_409(login, buyer, other_buyer, book, make_purchase):
    make_purchase(book, other_buyer, 2, status="completed")
    client = login(buyer)

    response = client.post("/purchases", json={"book_id": book.id, "position_number": 2, "buyer": BUYER})

    assert response.status_code == 409
    assert response.json()["error"] == "sold_out"


def test_purchases_are_private(login, buyer, other_buyer, book, make_purchase):
    purchase = make_purchase(book, buyer, 1)

    client = login(other_buyer)
    assert client.get(f"/purchases/{purchase.id}").status_code == 403
    assert client.get("/purchases/me").json()["total_items"] == 0

    client = login(buyer)
    assert client.get(f"/purchases/{purchase.id}").json()["id"] == purchase.id
    assert client.get("/purchases/me").json()["total_items"] == 1


def test_wallet_payment_flow(login, http, buyer, book, make_purchase, session):
    purchase = make_purchase(book, buyer, 2)
    client = login(buyer)
    http.reply({
        "success": True,
        "code": "PAYMENT_INITIATED",
        "data": {"instrumentResponse": {"redirectInfo": {"url": "https://wallet.test/checkout/abc"}}},
    })

    response = client.post(f"/purchases/{purchase.id}/pay/wallet", json={})

    assert response.status_code == 200
    body = response.json()
    assert body["paymentUrl"] == "https://wallet.test/checkout/abc"
    transaction_id = body["paymentId"]

    webhook_body, x_verify = signed_webhook(webhook_payload(transaction_id))
    response = client.post("/payments/webhook", json=webhook_body, headers={"X-VERIFY": x_verify})

    assert response.status_code == 200
    assert response.json()["paymentStatus"] == "completed"

    http.reply(status_response(transaction_id, "PENDING", "PAYMENT_PENDING"))
    response = client.post("/payments/status", json={"transaction_id": transaction_id})

    assert response.json()["paymentStatus"] == "completed"
    assert response.json()["changed"] is False

    assert client.get(f"/books/{book.id}").json()["available_positions"] == 1


def test_wallet_rejection_is_502(login, http, buyer, book, make_purchase):
    purchase = make_purchase(book, buyer, 2)
    client = login(buyer)
    http.reply({"success": False, "code": "BAD_REQUEST", "message": "Invalid merchant"})

    response = client.post(f"/purchases/{purchase.id}/pay/wallet")

    assert response.status_code == 502
    assert response.json()["error"] == "gateway_rejected"


def test_invalid_bank_account_is_402(login, http, buyer, book, make_purchase, session):
    purchase = make_purchase(
        book, buyer, 1,
        payment_method="bank_verify",
        payment_details={"kind": "bank_verify", "extra": {
            "bank_account_number": "123456789012",
            "bank_ifsc_code": "HDFC0001234",
            "account_holder_name": "Asha Rao",
        }},
    )
    client = login(buyer)
    http.reply({"account_status": "INVALID", "account_status_code": "INVALID_ACCOUNT"})

    response = client.post(f"/purchases/{purchase.id}/pay/bank")

    assert response.status_code == 402
    assert response.json()["context"]["reason_code"] == "INVALID_ACCOUNT"
    session.refresh(purchase)
    assert purchase.payment_status == "failed"


def test_forged_webhook_is_rejected(client, book, buyer, make_purchase, session):
    purchase = make_purchase(book, buyer, 2, payment_id="TXN_1_abc")
    body, x_verify = signed_webhook(webhook_payload("TXN_1_abc"), salt_key="wrong-salt")

    response = client.post("/payments/webhook", json=body, headers={"X-VERIFY": x_verify})

    assert response.status_code == 400
    assert response.json()["success"] is False
    session.refresh(purchase)
    assert purchase.payment_status == "pending"
    assert session.exec(select(PaymentEvent)).all() == []


def test_admin_routes_need_admin(login, buyer):
    client = login(buyer)

    assert client.get("/admin/purchases").status_code == 403
    assert client.get("/admin/coupons").status_code == 403
    assert client.get("/admin/payments/analytics").status_code == 403


def test_admin_book_lifecycle(login, admin, session):
    client = login(admin)

    response = client.post("/admin/books", data={
        "title": "Stories From The Coast",
        "genre": "Fiction",
        "total_positions": "2",
        "position_pricing": json.dumps([{"number": 1, "price": 11000}, {"number": 2, "price": 9500}]),
    })

    assert response.status_code == 201
    created = response.json()
    assert created["slug"] == "stories-from-the-coast"
    assert [p["price"] for p in created["positions"]] == [11000, 9500]

    response = client.put(f"/admin/books/{created['id']}", json={"total_positions": 3})
    assert response.status_code == 200
    assert [p["price"] for p in response.json()["positions"]] == [8000, 7000, 6000]

    listing = client.get("/admin/books").json()
    assert listing["total_items"] == 1

    assert client.delete(f"/admin/books/{created['id']}").status_code == 200
    assert session.exec(select(UpcomingBook)).all() == []


def test_admin_book_with_bad_pricing(login, admin):
    client = login(admin)

    response = client.post("/admin/books", data={
        "title": "Broken", "genre": "Essays", "total_positions": "2", "position_pricing": "not json",
    })

    assert response.status_code == 422


def test_admin_book_with_sales_cannot_be_deleted(login, admin, buyer, book, make_purchase):
    make_purchase(book, buyer, 1, status="completed")
    client = login(admin)

    response = client.delete(f"/admin/books/{book.id}")

    assert response.status_code == 409
    assert response.json()["error"] == "not_eligible"


def test_admin_coupons(login, admin, session):
    client = login(admin)

    response = client.post("/admin/coupons", json={"code": "launch20", "discount_type": "percentage", "discount_value": 20})
    assert response.status_code == 201
    coupon_id = response.json()["id"]
    assert response.json()["code"] == "LAUNCH20"

    duplicate = client.post("/admin/coupons", json={"code": "LAUNCH20", "discount_value": 5})
    assert duplicate.status_code == 409

    generated = client.post("/admin/coupons", json={"discount_type": "fixed", "discount_value": 500})
    assert len(generated.json()["code"]) == 8

    too_much = client.post("/admin/coupons", json={"code": "HUGE", "discount_value": 150})
    assert too_much.status_code == 422

    toggled = client.post(f"/admin/coupons/{coupon_id}/toggle").json()
    assert toggled["coupon"]["is_active"] is False

    updated = client.put(f"/admin/coupons/{coupon_id}", json={"max_uses": 50})
    assert updated.json()["max_uses"] == 50

    assert client.delete(f"/admin/coupons/{coupon_id}").status_code == 200
    assert len(session.exec(select(Coupon)).all()) == 1


def test_admin_refund_and_events(login, http, admin, buyer, book, make_purchase):
    purchase = make_purchase(
        book, buyer, 2,
        status="completed",
        payment_id="TXN_1_abc",
        total_amount=8100,
        payment_details={"kind": "wallet", "gateway_transaction_id": "T2409181234"},
    )
    client = login(admin)

    too_much = client.post(f"/admin/purchases/{purchase.id}/refund", json={"refund_amount": 9000, "reason": "duplicate"})
    assert too_much.status_code == 422
    assert too_much.json()["error"] == "amount_exceeds_original"

    http.reply({"success": True, "code": "PAYMENT_PENDING"})
    response = client.post(f"/admin/purchases/{purchase.id}/refund", json={"refund_amount": 8100, "reason": "duplicate"})

    assert response.status_code == 200
    assert response.json()["refund_status"] == "pending"

    events = client.get(f"/admin/purchases/{purchase.id}/events").json()
    assert [e["event_type"] for e in events] == ["refund_initiated"]

    listing = client.get("/admin/purchases", params={"status": "refunded"}).json()
    assert listing["total_items"] == 1
    assert listing["results"][0]["book_title"] == book.title
    assert listing["results"][0]["user_email"] == buyer.email


def test_admin_purchase_search(login, admin, buyer, other_buyer, book, make_purchase):
    make_purchase(book, buyer, 1)
    make_purchase(book, other_buyer, 2)
    client = login(admin)

    results = client.get("/admin/purchases", params={"search": "vikram"}).json()["results"]

    assert [r["user_email"] for r in results] == ["vikram@example.com"]


def test_listing_page_size_is_capped(login, admin, buyer, book, make_purchase):
    make_purchase(book, buyer, 1)
    client = login(admin)

    body = client.get("/admin/purchases", params={"limit": 1000, "page": 0}).json()

    assert body["limit"] == 100
    assert body["current_page"] == 1
    assert body["total_pages"] == 1


def test_admin_delete_purchase(login, admin, buyer, book, make_purchase):
    pending = make_purchase(book, buyer, 1)
    completed = make_purchase(book, buyer, 2, status="completed")
    client = login(admin)

    assert client.delete(f"/admin/purchases/{completed.id}").status_code == 409
    assert client.delete(f"/admin/purchases/{pending.id}").status_code == 200
    assert client.delete(f"/admin/purchases/{pending.id}").status_code == 404


def test_admin_analytics(login, admin, buyer, book, make_purchase):
    make_purchase(book, buyer, 1, status="completed")
    client = login(admin)

    body = client.get("/admin/payments/analytics", params={"days": 7}).json()

    assert body["days"] == 7
    assert len(body["results"]) == 7
    assert body["results"][0]["completed_count"] == 1


class FakeBucket:
    def __init__(self):
        self.uploaded = []
        self.deleted = []

    def upload_fileobj(self, fileobj, bucket, key, ExtraArgs=None):
        self.uploaded.append((key, fileobj.read(), ExtraArgs))

    def delete_object(self, Bucket, Key):
        self.deleted.append(Key)

    def generate_presigned_url(self, operation, Params, ExpiresIn):
        return f"https://covers.test/{Params['Key']}?expires={ExpiresIn}"


def test_admin_cover_upload_and_replace(login, admin, monkeypatch):
    bucket = FakeBucket()
    monkeypatch.setattr("coauthor.services.storage.get_s3_client", lambda: bucket)
    client = login(admin)

    response = client.post(
        "/admin/books",
        data={"title": "Night Trains", "genre": "Travel", "total_positions": "1"},
        files={"cover_image": ("cover.PNG", b"\x89PNG", "image/png")},
    )

    assert response.status_code == 201
    first_key = response.json()["cover_image"]
    assert first_key.startswith("book_covers/night-trains_") and first_key.endswith(".png")
    assert bucket.uploaded[0][1] == b"\x89PNG"
    assert bucket.uploaded[0][2] == {"ContentType": "image/png"}
    assert response.json()["cover_url"] == f"https://covers.test/{first_key}?expires=3600"

    response = client.put(
        f"/admin/books/{response.json()['id']}/cover",
        files={"cover_image": ("new.jpg", b"jpeg", "image/jpeg")},
    )

    assert response.status_code == 200
    assert bucket.deleted == [first_key]


def test_bank_verified_purchase_cannot_be_polled(login, http, buyer, book, make_purchase, session):
    purchase = make_purchase(book, buyer, 1, payment_id="CF_1_abc", payment_method="bank_verify")
    client = login(buyer)

    response = client.post("/payments/status", json={"transaction_id": "CF_1_abc"})

    assert response.status_code == 409
    assert response.json()["error"] == "not_eligible"
    assert http.calls == []
    session.refresh(purchase)
    assert purchase.payment_status == "pending"


def test_webhook_body_must_be_an_object(client, book, buyer, make_purchase, session):
    purchase = make_purchase(book, buyer, 2, payment_id="TXN_1_abc")

    response = client.post("/payments/webhook", json=[], headers={"X-VERIFY": "abc###1"})

    assert response.status_code == 400
    assert response.json()["success"] is False
    session.refresh(purchase)
    assert purchase.payment_status == "pending"
