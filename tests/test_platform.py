import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from marketplace.core.exceptions import ConflictError, ValidationError
from marketplace.core.ids import IdKind, PrefixedIdGenerator
from marketplace.db.transaction import atomic
from marketplace.models.user import User, UserRole
from marketplace.utils.enrichment import best_effort


def test_health_endpoint(client: TestClient):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_responses_carry_tracing_headers(client: TestClient):
    response = client.get("/health", headers={"X-Correlation-ID": "abc-123"})
    assert response.headers["X-Correlation-ID"] == "abc-123"
    assert response.headers["X-Request-ID"]
    assert "X-Process-Time" in response.headers


def test_best_effort_returns_value():
    enrichment = best_effort("double", lambda value: value * 2, 21)
    assert enrichment.ok
    assert enrichment.value == 42


def test_best_effort_swallows_and_reports_failure():
    def boom():
        raise RuntimeError("lookup failed")

    enrichment = best_effort("boom", boom, default="n/a", review_id="REV1")
    assert not enrichment.ok
    assert enrichment.value == "n/a"
    assert isinstance(enrichment.error, RuntimeError)


def test_prefixed_ids_are_unique_and_prefixed():
    generator = PrefixedIdGenerator({IdKind.ORDER: "ORD", IdKind.ORDER_ITEM: "OIT", IdKind.REVIEW: "REV"})
    ids = {generator.new_id(IdKind.REVIEW) for _ in range(200)}

    assert len(ids) == 200
    assert all(value.startswith("REV") and len(value) == 23 for value in ids)


def _user(user_id: str, username: str) -> User:
    return User(id=user_id, username=username, email=f"{username}@example.com", role=UserRole.BUYER)


def test_atomic_commits_on_success(db_session: Session):
    with atomic(db_session, "demo"):
        db_session.add(_user("u-1", "first"))

    assert db_session.query(User).count() == 1


def test_atomic_rolls_back_typed_errors(db_session: Session):
    with pytest.raises(ValidationError):
        with atomic(db_session, "demo"):
            db_session.add(_user("u-1", "first"))
            db_session.flush()
            raise ValidationError("nope")

    assert db_session.query(User).count() == 0


def test_atomic_translates_store_errors(db_session: Session):
    with atomic(db_session, "seed"):
        db_session.add(_user("u-1", "first"))

    with pytest.raises(ConflictError):
        with atomic(db_session, "demo"):
            db_session.add(_user("u-2", "first"))
            db_session.flush()

    assert db_session.query(User).count() == 1


def test_atomic_rolls_back_unexpected_errors(db_session: Session):
    with pytest.raises(RuntimeError):
        with atomic(db_session, "demo"):
            db_session.add(_user("u-1", "first"))
            db_session.flush()
            raise RuntimeError("unexpected")

    assert db_session.query(User).count() == 0
