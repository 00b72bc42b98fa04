"""
Fixtures compartidas.

Cada test corre contra una base SQLite nueva (aiosqlite) y un cliente httpx
sobre la app ASGI; get_db se reemplaza por una sesión de esa base.
"""

import os
import tempfile

# Variables de entorno antes de importar la app
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("SECRET_KEY", "test-secret")
os.environ.setdefault("LOG_LEVEL", "WARNING")
os.environ.setdefault("UPLOAD_DIR", tempfile.mkdtemp(prefix="bagami-uploads-"))

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy import event, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from bagami.core.database import Base, get_db
from bagami.core.security import create_access_token, create_subadmin_token, get_password_hash
from bagami.main import app
from bagami.models import Conversation, Delivery, Message, Subadmin, User, Wallet
from bagami.services.message_payloads import dump_payload


# =============================================================================
# BASE DE DATOS
# =============================================================================

@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", poolclass=NullPool)

    # SAVEPOINT requiere que el BEGIN lo emita SQLAlchemy y no el driver
    @event.listens_for(engine.sync_engine, "connect")
    def do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def do_begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(engine):
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def client(session_maker):
    async def override_get_db():
        async with session_maker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


# =============================================================================
# FACTORIES
# =============================================================================

def auth_headers(user) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user.id, extra_claims={'role': user.role})}"}


@pytest.fixture
def make_user(session_maker):
    counter = {"n": 0}

    async def _make_user(
        name: str = None,
        role: str = "user",
        balance: int = 0,
        is_active: bool = True,
        password: str = "secreto123",
        **fields
    ) -> User:
        counter["n"] += 1
        n = counter["n"]
        fields.setdefault("email", f"user{n}@example.com")
        async with session_maker() as session:
            user = User(
                name=name or f"User {n}",
                role=role,
                is_active=is_active,
                password_hash=get_password_hash(password),
                **fields,
            )
            session.add(user)
            await session.flush()
            session.add(Wallet(user_id=user.id, balance=balance, currency="XOF"))
            await session.commit()
            return user

    return _make_user


@pytest.fixture
def make_subadmin(session_maker, make_user):
    async def _make_subadmin(permissions, email: str = "ops@bagami.com"):
        admin = await make_user(role="admin")
        async with session_maker() as session:
            subadmin = Subadmin(
                email=email,
                password_hash=get_password_hash("subadmin123"),
                name="Ops",
                permissions=list(permissions),
                is_active=True,
                created_by_id=admin.id,
            )
            session.add(subadmin)
            await session.commit()
        token = create_subadmin_token(subadmin.id, subadmin.email, list(permissions))
        return subadmin, {"Authorization": f"Bearer {token}"}

    return _make_subadmin


@pytest.fixture
def make_delivery(session_maker):
    async def _make_delivery(sender, price: float = 10000, type: str = "request", **fields) -> Delivery:
        async with session_maker() as session:
            delivery = Delivery(
                type=type,
                title=fields.pop("title", "Space request: Documents delivery"),
                description="Sobre con documentos",
                price=price,
                currency="XOF",
                from_country="Senegal",
                from_city="Dakar",
                to_country="France",
                to_city="Paris",
                status=fields.pop("status", "PENDING"),
                sender_id=sender.id,
                **fields,
            )
            session.add(delivery)
            await session.commit()
            return delivery

    return _make_delivery


@pytest.fixture
def make_conversation(session_maker):
    async def _make_conversation(delivery, participant1, participant2, messages=()) -> Conversation:
        """messages: lista de (sender, message_type, payload dict o texto)."""
        async with session_maker() as session:
            conversation = Conversation(
                delivery_id=delivery.id,
                participant1_id=participant1.id,
                participant2_id=participant2.id,
                is_active=True,
                extra_data={},
            )
            session.add(conversation)
            await session.flush()
            for sender, message_type, content in messages:
                session.add(Message(
                    conversation_id=conversation.id,
                    sender_id=sender.id,
                    message_type=message_type,
                    content=dump_payload(content) if isinstance(content, dict) else content,
                ))
            await session.commit()
            return conversation

    return _make_conversation


@pytest.fixture
def fetch(session_maker):
    """Lee una fila en una sesión nueva."""
    async def _fetch(model, id):
        async with session_maker() as session:
            return await session.get(model, id)

    return _fetch


@pytest.fixture
def balance_of(session_maker):
    async def _balance_of(user) -> int:
        async with session_maker() as session:
            result = await session.execute(select(Wallet.balance).where(Wallet.user_id == user.id))
            return result.scalar_one()

    return _balance_of
