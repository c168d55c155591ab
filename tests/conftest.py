import os
import tempfile
import uuid
from collections.abc import Callable, Generator
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, sessionmaker

os.environ["ENVIRONMENT"] = "development"
os.environ.setdefault("DATABASE_URL", "sqlite:///./marketplace_test.db")
os.environ.setdefault("SECRET_KEY", "test-secret-key-for-marketplace-suite")

from marketplace.core.security import create_access_token  # noqa: E402
from marketplace.db.base import Base  # noqa: E402
from marketplace.db.session import get_db  # noqa: E402
from marketplace.main import app  # noqa: E402
from marketplace.models.order import Order, OrderItem, OrderStatus  # noqa: E402
from marketplace.models.product import Product  # noqa: E402
from marketplace.models.user import User, UserRole  # noqa: E402


@pytest.fixture()
def db_session() -> Generator[Session, None, None]:
    db_file = tempfile.NamedTemporaryFile(suffix=".db", delete=False)
    db_file.close()

    engine = create_engine(
        f"sqlite:///{db_file.name}",
        connect_args={"check_same_thread": False},
    )

    @event.listens_for(engine, "connect")
    def enable_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()
        os.unlink(db_file.name)


@pytest.fixture()
def client(db_session: Session) -> Generator[TestClient, None, None]:
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.state.limiter.reset()
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture()
def make_user(db_session: Session) -> Callable[..., User]:
    def _make_user(role: UserRole = UserRole.BUYER, full_name: str = None, is_active: bool = True) -> User:
        suffix = uuid.uuid4().hex[:8]
        user = User(
            id=str(uuid.uuid4()),
            username=f"{role.value}-{suffix}",
            full_name=full_name,
            email=f"{role.value}-{suffix}@example.com",
            role=role,
            is_active=is_active,
        )
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user

    return _make_user


@pytest.fixture()
def make_product(db_session: Session) -> Callable[..., Product]:
    def _make_product(seller: User, name: str = "Linen Shirt", barcode: str = None) -> Product:
        product = Product(
            barcode=barcode or f"BC-{uuid.uuid4().hex[:10]}",
            name=name,
            seller_id=seller.id,
        )
        db_session.add(product)
        db_session.commit()
        db_session.refresh(product)
        return product

    return _make_product


@pytest.fixture()
def make_order(db_session: Session) -> Callable[..., Order]:
    """Insert an order directly, bypassing the service, with the given (product, quantity, price) lines."""

    def _make_order(
        buyer: User,
        lines,
        status: OrderStatus = OrderStatus.PENDING,
        address: str = "221B Baker Street",
        created_at=None,
    ) -> Order:
        order = Order(
            id=f"ORD-{uuid.uuid4().hex[:12]}",
            buyer_id=buyer.id,
            address=address,
            status=status,
            total=Decimal("0"),
        )
        if created_at is not None:
            order.created_at = created_at
        db_session.add(order)
        db_session.flush()

        total = Decimal("0")
        for product, quantity, price in lines:
            price = Decimal(str(price))
            db_session.add(
                OrderItem(
                    id=f"OIT-{uuid.uuid4().hex[:12]}",
                    order_id=order.id,
                    barcode=product.barcode,
                    variation_name="M",
                    price=price,
                    quantity=quantity,
                )
            )
            total += price * quantity
        order.total = total
        db_session.commit()
        db_session.refresh(order)
        return order

    return _make_order


@pytest.fixture()
def auth_headers() -> Callable[[User], dict]:
    def _auth_headers(user: User) -> dict:
        token = create_access_token({"sub": user.id})
        return {"Authorization": f"Bearer {token}"}

    return _auth_headers
