# tests/conftest.py
# Общие фикстуры: in-memory SQLite, чистая схема на каждый тест,
# пользователи/группы/позиции напрямую через ORM и Bearer-токены через PyJWT.

import os

os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["AUTH_JWT_SECRET"] = "test-jwt-secret"
os.environ["AUTH_WEBHOOK_SECRET"] = "test-webhook-secret"
os.environ["CLAIM_SWEEP_ENABLED"] = "0"
os.environ.pop("AUTH_JWT_AUDIENCE", None)
os.environ.pop("AUTH_JWT_ISSUER", None)
os.environ.pop("SMTP_HOST", None)
os.environ.pop("EMAIL_FROM", None)

from datetime import datetime, timedelta, timezone  # noqa: E402

import jwt  # noqa: E402
import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import select  # noqa: E402

from giftlist.db import Base, SessionLocal, engine  # noqa: E402
from giftlist.main import app  # noqa: E402
from giftlist.models.claim import Claim  # noqa: E402
from giftlist.models.group import Group  # noqa: E402
from giftlist.models.group_member import GroupMember, MemberRole  # noqa: E402
from giftlist.models.item import Item, ItemStatus  # noqa: E402
from giftlist.models.item_recipient import ItemRecipient  # noqa: E402
from giftlist.models.notification import Notification  # noqa: E402
from giftlist.models.user import User  # noqa: E402
from giftlist.utils.ids import utcnow  # noqa: E402


@pytest.fixture(autouse=True)
def _schema():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client():
    with TestClient(app) as c:
        yield c


# =========================
# ФАБРИКИ
# =========================

@pytest.fixture
def make_user(db):
    def _make(name: str, email: str = None) -> User:
        u = User(external_id=f"ext-{name}", email=email or f"{name}@example.com", name=name.title())
        db.add(u)
        db.commit()
        db.refresh(u)
        return u
    return _make


@pytest.fixture
def make_group(db):
    """Группа владельца owner; members: простые участники, admins: администраторы."""
    def _make(owner: User, members=(), admins=(), name: str = "Family") -> Group:
        g = Group(name=name, owner_id=owner.id)
        db.add(g)
        db.flush()
        db.add(GroupMember(group_id=g.id, user_id=owner.id, role=MemberRole.owner))
        for u in admins:
            db.add(GroupMember(group_id=g.id, user_id=u.id, role=MemberRole.admin))
        for u in members:
            db.add(GroupMember(group_id=g.id, user_id=u.id, role=MemberRole.member))
        db.commit()
        db.refresh(g)
        return g
    return _make


@pytest.fixture
def make_item(db):
    def _make(owner: User, name: str = "Headphones", price: int = None, groups=(), status=ItemStatus.active) -> Item:
        it = Item(owner_id=owner.id, name=name, price=price, status=status)
        db.add(it)
        db.flush()
        for g in groups:
            db.add(ItemRecipient(item_id=it.id, group_id=g.id))
        db.commit()
        db.refresh(it)
        return it
    return _make


@pytest.fixture
def make_claim(db):
    """Бронь напрямую в БД, в обход проверок движка."""
    def _make(item: Item, user: User, amount: int = None, expires_in_days: float = 30, purchased: bool = False) -> Claim:
        now = utcnow()
        c = Claim(
            item_id=item.id,
            user_id=user.id,
            amount=amount,
            created_at=now,
            expires_at=now + timedelta(days=expires_in_days),
            purchased_at=now if purchased else None,
        )
        db.add(c)
        db.commit()
        db.refresh(c)
        return c
    return _make


# =========================
# АВТОРИЗАЦИЯ
# =========================

def make_token(sub: str, email: str = None, **extra) -> str:
    payload = {"sub": sub, "exp": datetime.now(timezone.utc) + timedelta(hours=1), **extra}
    if email:
        payload["email"] = email
    return jwt.encode(payload, os.environ["AUTH_JWT_SECRET"], algorithm="HS256")


@pytest.fixture
def auth():
    def _headers(user: User) -> dict:
        return {"Authorization": f"Bearer {make_token(user.external_id, user.email)}"}
    return _headers


@pytest.fixture
def token_headers():
    def _headers(sub: str, email: str = None, **extra) -> dict:
        return {"Authorization": f"Bearer {make_token(sub, email, **extra)}"}
    return _headers


# =========================
# ЧТЕНИЕ
# =========================

@pytest.fixture
def notifications_of(db):
    """Доставленные уведомления пользователя (после deliver_pending)."""
    def _read(user: User, type: str = None):
        db.expire_all()
        stmt = select(Notification).where(Notification.user_id == user.id)
        if type:
            stmt = stmt.where(Notification.type == type)
        return list(db.scalars(stmt.order_by(Notification.created_at.asc())).all())
    return _read


@pytest.fixture
def claims_on(db):
    def _read(item: Item):
        db.expire_all()
        return list(db.scalars(select(Claim).where(Claim.item_id == item.id)).all())
    return _read
