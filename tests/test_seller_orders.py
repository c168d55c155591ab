from datetime import datetime, timedelta

from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from marketplace.core.config import settings
from marketplace.models.order import OrderStatus
from marketplace.models.user import UserRole
from marketplace.services.order_service import OrderService


def test_seller_orders_lists_each_order_once(client: TestClient, make_user, make_product, make_order, auth_headers):
    seller = make_user(UserRole.SELLER)
    buyer = make_user(UserRole.BUYER, full_name="Grace Buyer")
    shirt = make_product(seller, name="Shirt")
    scarf = make_product(seller, name="Scarf")
    order = make_order(buyer, [(shirt, 1, "10.00"), (scarf, 2, "5.00")])

    response = client.get("/api/orders/seller", headers=auth_headers(seller))
    assert response.status_code == 200

    rows = response.json()["data"]
    assert len(rows) == 1
    row = rows[0]
    assert row["order_id"] == order.id
    assert row["buyer_name"] == "Grace Buyer"
    assert row["buyer_email"] == buyer.email
    assert row["item_count"] == 2
    assert set(row["product_names"].split(", ")) == {"Shirt (M)", "Scarf (M)"}


def test_seller_orders_excludes_other_sellers(client: TestClient, make_user, make_product, make_order, auth_headers):
    seller = make_user(UserRole.SELLER)
    rival = make_user(UserRole.SELLER)
    buyer = make_user(UserRole.BUYER)
    make_order(buyer, [(make_product(rival), 1, "3.00")])
    own = make_order(buyer, [(make_product(seller), 1, "3.00")])

    response = client.get("/api/orders/seller", headers=auth_headers(seller))
    assert [row["order_id"] for row in response.json()["data"]] == [own.id]


def test_buyer_name_falls_back_to_username(db_session: Session, make_user, make_product, make_order):
    seller = make_user(UserRole.SELLER)
    buyer = make_user(UserRole.BUYER, full_name=None)
    make_order(buyer, [(make_product(seller), 1, "3.00")])

    rows = OrderService.get_seller_orders(db_session, seller.id)

    assert rows[0].buyer_name == buyer.username


def test_seller_orders_filters_searches_and_pages(db_session: Session, make_user, make_product, make_order):
    seller = make_user(UserRole.SELLER)
    alice = make_user(UserRole.BUYER, full_name="Alice Smith")
    bob = make_user(UserRole.BUYER, full_name="Bob Jones")
    product = make_product(seller)
    now = datetime.utcnow()

    oldest = make_order(alice, [(product, 1, "1.00")], created_at=now - timedelta(days=3))
    middle = make_order(bob, [(product, 1, "1.00")], status=OrderStatus.SHIPPED, created_at=now - timedelta(days=2))
    newest = make_order(alice, [(product, 1, "1.00")], status=OrderStatus.SHIPPED, created_at=now - timedelta(days=1))

    assert [row.order_id for row in OrderService.get_seller_orders(db_session, seller.id)] == [newest.id, middle.id, oldest.id]

    shipped = OrderService.get_seller_orders(db_session, seller.id, status_filter="Shipped")
    assert [row.order_id for row in shipped] == [newest.id, middle.id]

    by_name = OrderService.get_seller_orders(db_session, seller.id, search="alice")
    assert [row.order_id for row in by_name] == [newest.id, oldest.id]

    by_id = OrderService.get_seller_orders(db_session, seller.id, search=middle.id[-6:])
    assert [row.order_id for row in by_id] == [middle.id]

    page = OrderService.get_seller_orders(db_session, seller.id, limit=1, offset=1)
    assert [row.order_id for row in page] == [middle.id]


def test_seller_orders_clamps_limit(db_session: Session, make_user, make_product, make_order, monkeypatch):
    seller = make_user(UserRole.SELLER)
    buyer = make_user(UserRole.BUYER)
    product = make_product(seller)
    for _ in range(3):
        make_order(buyer, [(product, 1, "1.00")])

    monkeypatch.setattr(settings, "SELLER_ORDERS_MAX_LIMIT", 2)

    assert len(OrderService.get_seller_orders(db_session, seller.id, limit=500)) == 2
    assert len(OrderService.get_seller_orders(db_session, seller.id, offset=-5, limit=2)) == 2


def test_buyer_cannot_list_seller_orders(client: TestClient, make_user, auth_headers):
    buyer = make_user(UserRole.BUYER)

    response = client.get("/api/orders/seller", headers=auth_headers(buyer))
    assert response.status_code == 403


def test_seller_orders_requires_authentication(client: TestClient):
    assert client.get("/api/orders/seller").status_code == 401
