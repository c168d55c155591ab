from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError, OperationalError, ProgrammingError
from sqlalchemy.orm import Session

from marketplace.core.exceptions import ConflictError, DependencyFailure
from marketplace.db.resilient import Outcome, ResilientExecutor
from marketplace.models.order import OrderStatus
from marketplace.models.user import UserRole
from marketplace.services.report_service import ReportService


class FakeDriverError(Exception):
    def __init__(self, message, sqlstate=None, sqlite_errorcode=None):
        super().__init__(message)
        self.sqlstate = sqlstate
        self.sqlite_errorcode = sqlite_errorcode


def _raise(exc):
    def runner(db):
        raise exc

    return runner


def _returns(value, calls=None):
    def runner(db):
        if calls is not None:
            calls.append(value)
        return value

    return runner


# --------------------------------------------------
# Executor outcomes
# --------------------------------------------------

def test_primary_success_skips_fallback(db_session: Session):
    calls = []
    result = ResilientExecutor(db_session).run("demo", _returns("primary"), _returns("fallback", calls))

    assert result.outcome is Outcome.PRIMARY_SUCCEEDED
    assert result.unwrap() == "primary"
    assert calls == []


def test_structural_failure_runs_fallback_once(db_session: Session):
    calls = []
    missing_routine = ProgrammingError("CALL usp_demo()", {}, FakeDriverError("function does not exist", sqlstate="42883"))

    result = ResilientExecutor(db_session).run("demo", _raise(missing_routine), _returns("fallback", calls))

    assert result.outcome is Outcome.FALLBACK_SUCCEEDED
    assert result.unwrap() == "fallback"
    assert result.primary_error is missing_routine
    assert calls == ["fallback"]


def test_routine_raising_internally_is_structural(db_session: Session):
    raised = OperationalError("CALL usp_demo()", {}, FakeDriverError("raise_exception", sqlstate="P0001"))

    result = ResilientExecutor(db_session).run("demo", _raise(raised), _returns([]))

    assert result.outcome is Outcome.FALLBACK_SUCCEEDED


def test_runtime_failure_is_reported_without_fallback(db_session: Session):
    calls = []
    duplicate = IntegrityError("INSERT", {}, FakeDriverError("duplicate key", sqlstate="23505"))

    result = ResilientExecutor(db_session).run("demo", _raise(duplicate), _returns("fallback", calls))

    assert result.outcome is Outcome.PRIMARY_FAILED
    assert calls == []
    with pytest.raises(ConflictError):
        result.unwrap()


def test_lost_connection_is_runtime(db_session: Session):
    calls = []
    lost = OperationalError("SELECT 1", {}, FakeDriverError("server closed the connection"), connection_invalidated=True)

    result = ResilientExecutor(db_session).run("demo", _raise(lost), _returns("fallback", calls))

    assert result.outcome is Outcome.PRIMARY_FAILED
    assert calls == []
    with pytest.raises(DependencyFailure):
        result.unwrap()


def test_both_tiers_failing_is_dependency_failure(db_session: Session):
    missing_routine = OperationalError("CALL usp_demo()", {}, FakeDriverError("no such function", sqlite_errorcode=1))
    broken_query = OperationalError("SELECT", {}, FakeDriverError("database disk image is malformed", sqlite_errorcode=11))

    result = ResilientExecutor(db_session).run("demo", _raise(missing_routine), _raise(broken_query))

    assert result.outcome is Outcome.BOTH_FAILED
    with pytest.raises(DependencyFailure) as exc_info:
        result.unwrap()
    assert [error["tier"] for error in exc_info.value.errors] == ["primary", "fallback"]
    assert "malformed" in exc_info.value.errors[1]["detail"]


# --------------------------------------------------
# Order details
# --------------------------------------------------

def _seed_orders(make_user, make_product, make_order):
    seller = make_user(UserRole.SELLER)
    buyer = make_user(UserRole.BUYER, full_name="Ada Buyer")
    shirt = make_product(seller, name="Shirt")
    scarf = make_product(seller, name="Scarf")
    now = datetime.utcnow()

    single = make_order(buyer, [(shirt, 1, "10.00")], created_at=now - timedelta(days=2))
    double = make_order(buyer, [(shirt, 1, "10.00"), (scarf, 2, "5.00")], status=OrderStatus.DELIVERED, created_at=now - timedelta(days=1))
    latest = make_order(buyer, [(scarf, 3, "5.00"), (shirt, 2, "10.00")], status=OrderStatus.DELIVERED, created_at=now)
    return seller, buyer, shirt, scarf, single, double, latest


def test_order_details_falls_back_when_procedure_is_absent(db_session: Session, make_user, make_product, make_order):
    _, buyer, _, _, single, double, latest = _seed_orders(make_user, make_product, make_order)

    result = ReportService.run_order_details(db_session)

    assert result.outcome is Outcome.FALLBACK_SUCCEEDED
    rows = result.unwrap()
    assert [row["order_id"] for row in rows] == [latest.id, double.id, single.id]
    assert rows[0]["buyer_name"] == "Ada Buyer"
    assert rows[0]["item_count"] == 2
    assert set(rows[0]) == {"order_id", "status", "total", "address", "buyer_id", "buyer_name", "item_count", "created_at"}


def test_order_details_endpoint_applies_filters(client: TestClient, make_user, make_product, make_order, auth_headers):
    _, buyer, _, _, single, double, latest = _seed_orders(make_user, make_product, make_order)

    response = client.get("/api/orders/details", params={"minItems": 2}, headers=auth_headers(buyer))
    assert response.status_code == 200
    assert [row["order_id"] for row in response.json()["data"]] == [latest.id, double.id]

    response = client.get("/api/orders/details", params={"status": "Pending"}, headers=auth_headers(buyer))
    assert response.status_code == 200
    assert [row["order_id"] for row in response.json()["data"]] == [single.id]


def test_order_details_rejects_unknown_status(client: TestClient, make_user, auth_headers):
    buyer = make_user(UserRole.BUYER)

    response = client.get("/api/orders/details", params={"status": "Lost"}, headers=auth_headers(buyer))
    assert response.status_code == 400


def test_order_details_requires_authentication(client: TestClient):
    assert client.get("/api/orders/details").status_code == 401


def test_order_details_reports_503_when_both_tiers_fail(client: TestClient, monkeypatch, make_user, auth_headers):
    buyer = make_user(UserRole.BUYER)
    monkeypatch.setattr(
        ReportService,
        "order_details_query",
        staticmethod(lambda *args, **kwargs: text("SELECT * FROM table_that_does_not_exist")),
    )

    response = client.get("/api/orders/details", headers=auth_headers(buyer))

    assert response.status_code == 503
    body = response.json()
    assert body["success"] is False
    assert [error["tier"] for error in body["errors"]] == ["primary", "fallback"]


# --------------------------------------------------
# Top selling
# --------------------------------------------------

def test_top_selling_counts_delivered_orders_only(db_session: Session, make_user, make_product, make_order):
    seller, _, shirt, scarf, *_ = _seed_orders(make_user, make_product, make_order)

    rows = ReportService.get_top_selling_products(db_session)

    assert [(row.barcode, row.total_quantity_sold) for row in rows] == [
        (scarf.barcode, 5),
        (shirt.barcode, 3),
    ]
    assert rows[0].product_name == "Scarf"
    assert rows[0].seller_id == seller.id


def test_top_selling_min_quantity_threshold(db_session: Session, make_user, make_product, make_order):
    _, _, _, scarf, *_ = _seed_orders(make_user, make_product, make_order)

    rows = ReportService.get_top_selling_products(db_session, min_quantity=4)

    assert [row.barcode for row in rows] == [scarf.barcode]


def test_top_selling_falls_back_to_the_same_rows_as_the_query(db_session: Session, make_user, make_product, make_order):
    seller, *_ = _seed_orders(make_user, make_product, make_order)

    result = ReportService.run_top_selling(db_session, min_quantity=1, seller_id=seller.id)

    assert result.outcome is Outcome.FALLBACK_SUCCEEDED
    expected = db_session.execute(ReportService.top_selling_query(1, seller.id)).mappings().all()
    assert result.unwrap() == [dict(row) for row in expected]
    assert len(expected) == 2


def test_seller_sees_only_own_products(client: TestClient, make_user, make_product, make_order, auth_headers):
    seller, buyer, *_ = _seed_orders(make_user, make_product, make_order)
    rival = make_user(UserRole.SELLER)
    rival_product = make_product(rival, name="Rival Hat")
    make_order(buyer, [(rival_product, 9, "1.00")], status=OrderStatus.DELIVERED)

    response = client.get("/api/orders/reports/top-selling", headers=auth_headers(seller))
    assert response.status_code == 200
    assert {row["seller_id"] for row in response.json()["data"]} == {seller.id}


def test_seller_cannot_request_another_sellers_report(client: TestClient, make_user, auth_headers):
    seller = make_user(UserRole.SELLER)
    rival = make_user(UserRole.SELLER)

    response = client.get(
        "/api/orders/reports/top-selling",
        params={"sellerId": rival.id},
        headers=auth_headers(seller),
    )
    assert response.status_code == 403


def test_admin_can_scope_or_see_everything(client: TestClient, make_user, make_product, make_order, auth_headers):
    seller, buyer, *_ = _seed_orders(make_user, make_product, make_order)
    rival = make_user(UserRole.SELLER)
    rival_product = make_product(rival, name="Rival Hat")
    make_order(buyer, [(rival_product, 9, "1.00")], status=OrderStatus.DELIVERED)
    admin = make_user(UserRole.ADMIN)

    everything = client.get("/api/orders/reports/top-selling", headers=auth_headers(admin))
    assert everything.status_code == 200
    assert everything.json()["data"][0]["product_name"] == "Rival Hat"
    assert {row["seller_id"] for row in everything.json()["data"]} == {seller.id, rival.id}

    scoped = client.get(
        "/api/orders/reports/top-selling",
        params={"sellerId": rival.id, "minQuantity": 1},
        headers=auth_headers(admin),
    )
    assert [row["seller_id"] for row in scoped.json()["data"]] == [rival.id]


def test_buyer_cannot_view_top_selling(client: TestClient, make_user, auth_headers):
    buyer = make_user(UserRole.BUYER)

    response = client.get("/api/orders/reports/top-selling", headers=auth_headers(buyer))
    assert response.status_code == 403
