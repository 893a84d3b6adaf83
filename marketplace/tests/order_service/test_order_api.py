from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from marketplace.common import ServiceSettings, create_engine, dispose_engines
from marketplace.order_service.app.main import create_app
from marketplace.order_service.app.models import Base, Coupon, Product

BUYER = {"X-User-Id": "7"}
STRANGER = {"X-User-Id": "8"}
ADMIN = {"X-User-Id": "1", "X-User-Role": "admin"}


async def _prepare_app(tmp_path) -> FastAPI:
    db_file = tmp_path / "orders.db"
    database_url = f"sqlite+aiosqlite:///{db_file}"

    engine = create_engine(database_url)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    settings = ServiceSettings(
        app_name="Order Service Test",
        enable_metrics=False,
        enable_tracing=False,
        database_url=database_url,
    )
    return create_app(settings)


async def _seed(app: FastAPI) -> int:
    async with app.state.session_factory() as session:
        product = Product(seller_id=3, title="Desk Lamp", price_cents=10000, stock=10)
        session.add(product)
        session.add(
            Coupon(
                code="SAVE20",
                type="percentage",
                value=2000,
                min_amount_cents=0,
                expires_at=datetime.now(timezone.utc) + timedelta(days=7),
                created_by=3,
            )
        )
        session.add(
            Coupon(
                code="BIGSPENDER",
                type="fixed",
                value=1000,
                min_amount_cents=50000,
                expires_at=datetime.now(timezone.utc) + timedelta(days=7),
                created_by=3,
            )
        )
        await session.commit()
        return product.id


@asynccontextmanager
async def lifespan(app: FastAPI):
    async with app.router.lifespan_context(app):
        yield


@pytest.mark.asyncio
async def test_create_order_with_coupon_and_read_it_back(tmp_path) -> None:
    app = await _prepare_app(tmp_path)
    try:
        async with lifespan(app):
            product_id = await _seed(app)
            transport = ASGITransport(app=app)
            async with AsyncClient(transport=transport, base_url="http://test") as client:
                add_resp = await client.post("/cart/items", json={"productId": product_id, "quantity": 2}, headers=BUYER)
                assert add_resp.status_code == 201

                create_resp = await client.post("/orders", json={"couponCodes": ["save20"]}, headers=BUYER)
                assert create_resp.status_code == 201
                created = create_resp.json()
                assert created["status"] == "pending"
                assert created["subtotal"] == "200.00"
                assert created["discount"] == "40.00"
                assert created["total"] == "160.00"
                assert created["items"][0]["productTitle"] == "Desk Lamp"
                assert created["items"][0]["priceAtOrder"] == "100.00"
                assert created["coupons"] == [
                    {
                        "couponId": created["coupons"][0]["couponId"],
                        "code": "SAVE20",
                        "type": "percentage",
                        "value": "20.00",
                        "discountAmount": "40.00",
                    }
                ]

                cart_resp = await client.get("/cart", headers=BUYER)
                assert cart_resp.json()["items"] == []

                list_resp = await client.get("/orders", headers=BUYER)
                assert list_resp.status_code == 200
                listing = list_resp.json()
                assert listing["total"] == 1
                assert listing["items"][0]["id"] == created["id"]

                get_resp = await client.get(f"/orders/{created['id']}", headers=BUYER)
                assert get_resp.status_code == 200
                assert get_resp.json()["total"] == "160.00"
    finally:
        await dispose_engines()


@pytest.mark.asyncio
async def test_order_errors_carry_kind_and_context(tmp_path) -> None:
    app = await _prepare_app(tmp_path)
    try:
        async with lifespan(app):
            product_id = await _seed(app)
            transport = ASGITransport(app=app)
            async with AsyncClient(transport=transport, base_url="http://test") as client:
                missing_cart = await client.post("/orders", json={}, headers=BUYER)
                assert missing_cart.status_code == 404
                assert missing_cart.json()["kind"] == "cart_not_found"

                await client.post("/cart/items", json={"productId": product_id, "quantity": 1}, headers=BUYER)

                below_minimum = await client.post("/orders", json={"couponCodes": ["BIGSPENDER"]}, headers=BUYER)
                assert below_minimum.status_code == 400
                assert below_minimum.json() == {
                    "detail": "Minimum amount 500.00 required for coupon: BIGSPENDER",
                    "kind": "minimum_amount_not_met",
                    "code": "BIGSPENDER",
                    "minAmount": "500.00",
                }

                unknown = await client.post("/orders", json={"couponCodes": ["NOPE"]}, headers=BUYER)
                assert unknown.status_code == 400
                assert unknown.json()["kind"] == "invalid_coupon"
                assert unknown.json()["code"] == "NOPE"

                cart_resp = await client.get("/cart", headers=BUYER)
                assert len(cart_resp.json()["items"]) == 1

                created = await client.post("/orders", json={"couponCodes": []}, headers=BUYER)
                assert created.status_code == 201
                empty_cart = await client.post("/orders", json={}, headers=BUYER)
                assert empty_cart.status_code == 400
                assert empty_cart.json()["kind"] == "cart_empty"

                hidden = await client.get(f"/orders/{created.json()['id']}", headers=STRANGER)
                assert hidden.status_code == 403
                missing = await client.get("/orders/999", headers=BUYER)
                assert missing.status_code == 404
    finally:
        await dispose_engines()


@pytest.mark.asyncio
async def test_requests_without_identity_are_rejected(tmp_path) -> None:
    app = await _prepare_app(tmp_path)
    try:
        async with lifespan(app):
            transport = ASGITransport(app=app)
            async with AsyncClient(transport=transport, base_url="http://test") as client:
                anonymous = await client.post("/orders", json={})
                assert anonymous.status_code == 401

                malformed = await client.get("/orders", headers={"X-User-Id": "abc"})
                assert malformed.status_code == 401

                unknown_role = await client.get("/orders", headers={"X-User-Id": "7", "X-User-Role": "root"})
                assert unknown_role.status_code == 401
    finally:
        await dispose_engines()


@pytest.mark.asyncio
async def test_status_update_and_cancellation_over_http(tmp_path) -> None:
    app = await _prepare_app(tmp_path)
    try:
        async with lifespan(app):
            product_id = await _seed(app)
            transport = ASGITransport(app=app)
            async with AsyncClient(transport=transport, base_url="http://test") as client:
                await client.post("/cart/items", json={"productId": product_id, "quantity": 3}, headers=BUYER)
                order_id = (await client.post("/orders", json={"couponCodes": ["SAVE20"]}, headers=BUYER)).json()["id"]

                by_buyer = await client.patch(f"/orders/{order_id}/status", json={"status": "paid"}, headers=BUYER)
                assert by_buyer.status_code == 403
                assert by_buyer.json()["kind"] == "forbidden"

                via_status = await client.patch(f"/orders/{order_id}/status", json={"status": "cancelled"}, headers=ADMIN)
                assert via_status.status_code == 400
                assert via_status.json()["kind"] == "invalid_status"

                repeated = await client.patch(f"/orders/{order_id}/status", json={"status": "pending"}, headers=ADMIN)
                assert repeated.status_code == 400
                assert repeated.json()["kind"] == "invalid_transition"

                by_stranger = await client.post(f"/orders/{order_id}/cancel", headers=STRANGER)
                assert by_stranger.status_code == 403

                cancelled = await client.post(f"/orders/{order_id}/cancel", headers=BUYER)
                assert cancelled.status_code == 200
                assert cancelled.json()["status"] == "cancelled"
                assert cancelled.json()["total"] == "240.00"

                again = await client.post(f"/orders/{order_id}/cancel", headers=BUYER)
                assert again.status_code == 400
                assert again.json()["kind"] == "already_cancelled"

                frozen = await client.patch(f"/orders/{order_id}/status", json={"status": "paid"}, headers=ADMIN)
                assert frozen.status_code == 400
                assert frozen.json()["detail"] == "Cannot update cancelled order"

                # Stock and the coupon are available again.
                await client.post("/cart/items", json={"productId": product_id, "quantity": 10}, headers=BUYER)
                reorder = await client.post("/orders", json={"couponCodes": ["SAVE20"]}, headers=BUYER)
                assert reorder.status_code == 201
                assert reorder.json()["discount"] == "200.00"

                paid = await client.patch(
                    f"/orders/{reorder.json()['id']}/status", json={"status": "paid"}, headers=ADMIN
                )
                assert paid.status_code == 200
                assert paid.json()["status"] == "paid"

                late_cancel = await client.post(f"/orders/{reorder.json()['id']}/cancel", headers=BUYER)
                assert late_cancel.status_code == 400
                assert late_cancel.json()["kind"] == "only_pending_cancellable"
    finally:
        await dispose_engines()
