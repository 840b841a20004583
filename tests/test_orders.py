"""
Order creation: wallet and deferred payment paths, business validations and
order listing.
"""
import re
from datetime import timedelta
from decimal import Decimal

from sqlalchemy import select

from services.audit_service.service import AuditAction
from services.order_service.models import DiscountRequest, DiscountStatus, Order
from services.product_service.models import Product, ProductType, StockReservation
from services.wallet_service.models import Transaction, TransactionStatus, TransactionType, UserBalance
from shared.config.store_settings import CompanySettings


def order_payload(lines, total, payment_method="WALLET", **extra):
    payload = {
        "items": [{"productId": product_id, "quantity": quantity} for product_id, quantity in lines],
        "currency": "USD",
        "total": total,
        "paymentMethod": payment_method,
        "deliveryMethod": "DELIVERY",
        "shippingAddress": {"street": "Av. Libertador", "city": "Caracas"},
    }
    payload.update(extra)
    return payload


async def _rows(session_factory, model, *criteria):
    async with session_factory() as session:
        result = await session.execute(select(model).where(*criteria).order_by(model.id))
        return list(result.scalars().all())


async def _balance(session_factory, user_id):
    rows = await _rows(session_factory, UserBalance, UserBalance.user_id == user_id)
    return rows[0]


class TestWalletCheckout:

    async def test_wallet_order_charges_balance_and_deducts_stock(
        self, client, auth_headers, make_product, make_balance, fetch, session_factory,
    ):
        product = await make_product(price="25.00", stock=10)
        await make_balance("user-1", "80.00")

        resp = await client.post("/orders", json=order_payload([(product.id, 2)], 50),
                                 headers=auth_headers("user-1"))

        assert resp.status_code == 201
        body = resp.json()
        assert body["status"] == "PROCESSING"
        assert body["paymentStatus"] == "PAID"
        assert body["paidAt"] is not None
        assert body["subtotal"] == 50.0
        assert re.fullmatch(r"ORD-\d{4}-0001", body["orderNumber"])
        assert body["items"][0]["productName"] == "Laptop"
        assert body["items"][0]["lineTotal"] == 50.0

        balance = await _balance(session_factory, "user-1")
        assert balance.balance == Decimal("30.00")
        assert balance.total_spent == Decimal("50.00")
        assert (await fetch(Product, product.id)).stock == 8
        assert await _rows(session_factory, StockReservation) == []

        purchases = await _rows(session_factory, Transaction, Transaction.type == TransactionType.PURCHASE)
        assert len(purchases) == 1
        assert purchases[0].status == TransactionStatus.COMPLETED
        assert purchases[0].amount == Decimal("50.00")
        assert purchases[0].details["events"][0]["order_number"] == body["orderNumber"]

        order = await fetch(Order, body["id"])
        assert order.stock_committed is True

    async def test_wallet_order_side_effects(
        self, client, auth_headers, make_product, make_balance, notifications, email_sender, audit_entries,
    ):
        product = await make_product(price="10.00")
        await make_balance("user-1", "100.00")

        resp = await client.post("/orders", json=order_payload([(product.id, 1)], 10),
                                 headers=auth_headers("user-1"))
        assert resp.status_code == 201

        types = [n.type for n in await notifications("user-1")]
        assert types == ["ORDER_RECEIVED", "ORDER_PAID"]
        assert [m.template for m in email_sender.sent] == ["order_confirmation"]
        created = await audit_entries(AuditAction.ORDER_CREATED.value)
        assert len(created) == 1
        assert created[0].actor_id == "user-1"

    async def test_insufficient_balance_creates_nothing(
        self, client, auth_headers, make_product, make_balance, fetch, session_factory,
    ):
        product = await make_product(price="25.00", stock=10)
        await make_balance("user-1", "10.00")

        resp = await client.post("/orders", json=order_payload([(product.id, 2)], 50),
                                 headers=auth_headers("user-1"))

        assert resp.status_code == 400
        assert "Insufficient balance" in resp.json()["error"]
        assert (await _balance(session_factory, "user-1")).balance == Decimal("10.00")
        assert (await fetch(Product, product.id)).stock == 10
        assert await _rows(session_factory, Order) == []
        assert await _rows(session_factory, Transaction) == []

    async def test_order_numbers_are_sequential(self, client, auth_headers, make_product, make_balance):
        product = await make_product(price="5.00", stock=10)
        await make_balance("user-1", "100.00")
        headers = auth_headers("user-1")

        numbers = []
        for _ in range(3):
            resp = await client.post("/orders", json=order_payload([(product.id, 1)], 5), headers=headers)
            assert resp.status_code == 201
            numbers.append(resp.json()["orderNumber"])

        assert [n[-4:] for n in numbers] == ["0001", "0002", "0003"]

    async def test_rejected_order_does_not_consume_an_order_number(
        self, client, auth_headers, make_product, make_balance,
    ):
        product = await make_product(price="5.00", stock=10)
        await make_balance("user-1", "5.00")
        headers = auth_headers("user-1")

        assert (await client.post("/orders", json=order_payload([(product.id, 2)], 10),
                                  headers=headers)).status_code == 400
        resp = await client.post("/orders", json=order_payload([(product.id, 1)], 5), headers=headers)
        assert resp.json()["orderNumber"].endswith("-0001")

    async def test_owner_comes_from_the_token(self, client, auth_headers, make_product, make_balance):
        product = await make_product(price="5.00")
        await make_balance("user-1", "50.00")

        resp = await client.post("/orders", json=order_payload([(product.id, 1)], 5, userId="user-2"),
                                 headers=auth_headers("user-1"))
        assert resp.status_code == 201
        assert resp.json()["userId"] == "user-1"


class TestDeferredCheckout:

    async def test_pago_movil_order_holds_stock_for_fifteen_minutes(
        self, client, auth_headers, make_product, fetch, session_factory,
    ):
        laptop = await make_product(name="Laptop", price="30.00", stock=5)
        mouse = await make_product(name="Mouse", price="10.00", stock=5)

        resp = await client.post(
            "/orders",
            json=order_payload([(laptop.id, 2), (mouse.id, 1)], 70, payment_method="PAGO_MOVIL"),
            headers=auth_headers("user-1"),
        )

        assert resp.status_code == 201
        body = resp.json()
        assert body["status"] == "PENDING"
        assert body["paymentStatus"] == "PENDING"
        assert (await fetch(Product, laptop.id)).stock == 5
        assert (await fetch(Product, mouse.id)).stock == 5

        holds = await _rows(session_factory, StockReservation)
        assert {(h.product_id, h.quantity, h.order_id) for h in holds} == {
            (laptop.id, 2, body["id"]),
            (mouse.id, 1, body["id"]),
        }
        for hold in holds:
            assert hold.expires_at - hold.created_at == timedelta(minutes=15)

        order = await fetch(Order, body["id"])
        assert order.stock_committed is False

    async def test_cart_holds_are_replaced_by_order_holds(
        self, client, auth_headers, make_product, session_factory,
    ):
        product = await make_product(price="10.00", stock=5)
        headers = auth_headers("user-1")
        await client.post("/cart/reserve", json={"items": [{"productId": product.id, "quantity": 3}]},
                          headers=headers)

        resp = await client.post("/orders", json=order_payload([(product.id, 3)], 30, payment_method="ZELLE"),
                                 headers=headers)

        assert resp.status_code == 201
        holds = await _rows(session_factory, StockReservation)
        assert [(h.quantity, h.order_id) for h in holds] == [(3, resp.json()["id"])]

    async def test_own_pending_order_holds_count_against_the_next_order(
        self, client, auth_headers, make_product, session_factory,
    ):
        product = await make_product(price="10.00", stock=5)
        headers = auth_headers("user-1")

        first = await client.post("/orders", json=order_payload([(product.id, 5)], 50, payment_method="PAGO_MOVIL"),
                                  headers=headers)
        second = await client.post("/orders", json=order_payload([(product.id, 5)], 50, payment_method="PAGO_MOVIL"),
                                   headers=headers)

        assert first.status_code == 201
        assert second.status_code == 400
        assert second.json()["details"][0]["available"] == 0
        holds = await _rows(session_factory, StockReservation)
        assert [(h.quantity, h.order_id) for h in holds] == [(5, first.json()["id"])]

    async def test_digital_items_are_never_held_or_deducted(
        self, client, auth_headers, make_product, make_balance, fetch, session_factory,
    ):
        ebook = await make_product(name="E-book", price="8.00", stock=0, product_type=ProductType.DIGITAL)
        await make_balance("user-1", "50.00")
        headers = auth_headers("user-1")

        resp = await client.post("/orders", json=order_payload([(ebook.id, 1)], 8, payment_method="CASH"),
                                 headers=headers)
        assert resp.status_code == 201
        assert await _rows(session_factory, StockReservation) == []

        resp = await client.post("/orders", json=order_payload([(ebook.id, 2)], 16), headers=headers)
        assert resp.status_code == 201
        assert (await fetch(Product, ebook.id)).stock == 0


class TestValidation:

    async def test_every_stock_problem_is_reported(self, client, auth_headers, make_product, make_balance):
        short = await make_product(name="Monitor", stock=1)
        other = await make_product(name="Keyboard", stock=0)
        await make_balance("user-1", "1000.00")

        resp = await client.post("/orders", json=order_payload([(short.id, 2), (other.id, 1)], 300),
                                 headers=auth_headers("user-1"))

        assert resp.status_code == 400
        body = resp.json()
        assert body["error"] == "Stock problems"
        assert {d["productId"] for d in body["details"]} == {short.id, other.id}

    async def test_other_users_holds_reduce_availability(self, client, auth_headers, make_product, make_balance):
        product = await make_product(price="10.00", stock=10)
        await make_balance("user-1", "100.00")
        await client.post("/cart/reserve", json={"items": [{"productId": product.id, "quantity": 9}]},
                          headers=auth_headers("user-2"))

        resp = await client.post("/orders", json=order_payload([(product.id, 2)], 20),
                                 headers=auth_headers("user-1"))

        assert resp.status_code == 400
        assert resp.json()["details"][0]["available"] == 1

    async def test_minimum_order_amount(self, client, auth_headers, make_product, session_factory):
        async with session_factory() as session:
            session.add(CompanySettings(id="default", min_order_amount_usd=Decimal("20.00")))
            await session.commit()
        product = await make_product(price="10.00")

        resp = await client.post("/orders", json=order_payload([(product.id, 1)], 10, payment_method="CASH"),
                                 headers=auth_headers("user-1"))

        assert resp.status_code == 400
        assert resp.json()["error"] == "The minimum order amount is $20.00"

    async def test_maximum_order_amount(self, client, auth_headers, make_product, session_factory):
        async with session_factory() as session:
            session.add(CompanySettings(id="default", max_order_amount_usd=Decimal("100.00")))
            await session.commit()
        product = await make_product(price="60.00")

        resp = await client.post("/orders", json=order_payload([(product.id, 2)], 120, payment_method="CASH"),
                                 headers=auth_headers("user-1"))

        assert resp.status_code == 400
        assert resp.json()["error"] == "The maximum order amount is $100.00"

    async def test_total_must_match_catalogue_prices(self, client, auth_headers, make_product):
        product = await make_product(price="25.00")

        resp = await client.post("/orders", json=order_payload([(product.id, 2)], 1, payment_method="CASH"),
                                 headers=auth_headers("user-1"))

        assert resp.status_code == 400
        assert resp.json()["details"] == {"expectedTotal": 50.0, "submittedTotal": 1.0}

    async def test_tax_shipping_and_discount_are_part_of_the_total(self, client, auth_headers, make_product):
        product = await make_product(price="25.00")

        resp = await client.post(
            "/orders",
            json=order_payload([(product.id, 2)], 52.5, payment_method="CASH", tax=4, shipping=3.5, discount=5),
            headers=auth_headers("user-1"),
        )

        assert resp.status_code == 201
        assert resp.json()["total"] == 52.5

    async def test_empty_order_is_rejected(self, client, auth_headers):
        resp = await client.post("/orders", json=order_payload([], 10), headers=auth_headers("user-1"))
        assert resp.status_code == 400
        assert resp.json()["error"] == "Invalid request"

    async def test_unauthenticated(self, client, make_product):
        product = await make_product()
        resp = await client.post("/orders", json=order_payload([(product.id, 1)], 100))
        assert resp.status_code == 401
        assert "error" in resp.json()


class TestDiscounts:

    async def test_approved_discount_is_marked_used(self, client, auth_headers, make_product, session_factory):
        product = await make_product(price="10.00")
        async with session_factory() as session:
            discount = DiscountRequest(user_id="user-1", percent=Decimal("10"), status=DiscountStatus.APPROVED)
            session.add(discount)
            await session.commit()

        resp = await client.post(
            "/orders",
            json=order_payload([(product.id, 1)], 9, payment_method="CASH", discount=1,
                               appliedDiscountIds=[discount.id]),
            headers=auth_headers("user-1"),
        )

        assert resp.status_code == 201
        used = (await _rows(session_factory, DiscountRequest))[0]
        assert used.status == DiscountStatus.USED
        assert used.order_id == resp.json()["id"]
        assert used.used_at is not None

    async def test_foreign_discount_aborts_the_order(self, client, auth_headers, make_product, session_factory):
        product = await make_product(price="10.00")
        async with session_factory() as session:
            discount = DiscountRequest(user_id="user-2", percent=Decimal("10"), status=DiscountStatus.APPROVED)
            session.add(discount)
            await session.commit()

        resp = await client.post(
            "/orders",
            json=order_payload([(product.id, 1)], 10, payment_method="CASH", appliedDiscountIds=[discount.id]),
            headers=auth_headers("user-1"),
        )

        assert resp.status_code == 400
        assert await _rows(session_factory, Order) == []
        assert await _rows(session_factory, StockReservation) == []
        assert (await _rows(session_factory, DiscountRequest))[0].status == DiscountStatus.APPROVED


class TestListOrders:

    async def test_customers_only_see_their_own_orders(self, client, auth_headers, make_product):
        product = await make_product(price="10.00")
        for user in ("user-1", "user-2"):
            resp = await client.post("/orders", json=order_payload([(product.id, 1)], 10, payment_method="CASH"),
                                     headers=auth_headers(user))
            assert resp.status_code == 201

        resp = await client.get("/orders", params={"userId": "user-2"}, headers=auth_headers("user-1"))
        assert resp.status_code == 200
        assert [o["userId"] for o in resp.json()] == ["user-1"]

    async def test_managers_can_filter_by_user(self, client, auth_headers, make_product):
        product = await make_product(price="10.00")
        for user in ("user-1", "user-2"):
            await client.post("/orders", json=order_payload([(product.id, 1)], 10, payment_method="CASH"),
                              headers=auth_headers(user))

        headers = auth_headers("admin", "MANAGE_ORDERS")
        assert len((await client.get("/orders", headers=headers)).json()) == 2
        resp = await client.get("/orders", params={"userId": "user-2", "status": "PENDING"}, headers=headers)
        assert [o["userId"] for o in resp.json()] == ["user-2"]
