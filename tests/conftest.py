"""Test configuration."""
import os
from collections.abc import AsyncIterator, Callable, Iterator
from datetime import date
from decimal import Decimal
from pathlib import Path

from alembic import command
from alembic.config import Config
import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, sessionmaker

os.environ.setdefault("DATABASE_URL", "sqlite:///./drawdesk_test.db")
os.environ.setdefault("DRAWDESK_ENV", "test")
os.environ.setdefault("EXTRACTION_CALLBACK_SECRET", "test-callback-secret")
os.environ.pop("OPENAI_API_KEY", None)

from drawdesk.main import app  # noqa: E402
from drawdesk.db import get_db  # noqa: E402
from drawdesk.models import (  # noqa: E402
    Budget,
    DrawRequest,
    DrawRequestLine,
    DrawStatus,
    Invoice,
    Lender,
    Project,
)
from drawdesk.services.ai_selection import get_disambiguator, reset_ai_state  # noqa: E402

DB_PATH = Path("./drawdesk_test.db")


def _run_migrations() -> None:
    cfg = Config(str(Path(__file__).resolve().parents[1] / "alembic.ini"))
    cfg.set_main_option("sqlalchemy.url", os.environ["DATABASE_URL"])
    command.upgrade(cfg, "head")


if DB_PATH.exists():
    DB_PATH.unlink()

engine = create_engine(
    os.environ["DATABASE_URL"],
    connect_args={"check_same_thread": False},
    future=True,
)


# pysqlite defers BEGIN on its own; emit it ourselves so SAVEPOINTs nest.
@event.listens_for(engine, "connect")
def _disable_pysqlite_transactions(dbapi_connection, connection_record) -> None:
    dbapi_connection.isolation_level = None


@event.listens_for(engine, "begin")
def _emit_begin(connection) -> None:
    connection.exec_driver_sql("BEGIN")


TestingSessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False,
                                   future=True, expire_on_commit=False)

# Schema comes from Alembic only.
_run_migrations()


@pytest.fixture
def db_session() -> Iterator[Session]:
    connection = engine.connect()
    transaction = connection.begin()
    # Service commits and rollbacks only touch a savepoint inside the test transaction.
    session = TestingSessionLocal(bind=connection, join_transaction_mode="create_savepoint")
    try:
        yield session
    finally:
        session.close()
        transaction.rollback()
        connection.close()


@pytest.fixture(autouse=True)
def override_db_dependency(db_session: Session) -> Iterator[None]:
    def _get_db() -> Iterator[Session]:
        yield db_session
    app.dependency_overrides[get_db] = _get_db
    yield
    app.dependency_overrides.pop(get_db, None)


@pytest.fixture(autouse=True)
def clean_ai_state() -> Iterator[None]:
    reset_ai_state()
    yield
    reset_ai_state()
    app.dependency_overrides.pop(get_disambiguator, None)


@pytest.fixture
async def client() -> AsyncIterator[AsyncClient]:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as async_client:
        yield async_client


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def callback_headers() -> dict[str, str]:
    return {"X-Extraction-Secret": os.environ["EXTRACTION_CALLBACK_SECRET"]}


@pytest.fixture
def make_project(db_session: Session) -> Callable[..., Project]:
    def _factory(
        *,
        name: str = "Maple Street Build",
        loan_amount: str | None = "500000",
        loan_start_date: date | None = None,
        loan_term_months: int | None = 12,
        interest_rate_annual: str | None = None,
        term_overrides: dict | None = None,
    ) -> Project:
        lender = Lender(name="First Builder Capital", term_overrides=term_overrides)
        db_session.add(lender)
        db_session.flush()
        project = Project(
            name=name,
            lender_id=lender.id,
            loan_amount=Decimal(loan_amount) if loan_amount is not None else None,
            loan_start_date=loan_start_date,
            loan_term_months=loan_term_months,
            interest_rate_annual=Decimal(interest_rate_annual) if interest_rate_annual else None,
        )
        db_session.add(project)
        db_session.flush()
        return project

    return _factory


@pytest.fixture
def make_budget(db_session: Session) -> Callable[..., Budget]:
    def _factory(
        project: Project,
        category: str,
        current: str = "20000",
        spent: str = "0",
        *,
        nahb_category: str | None = None,
    ) -> Budget:
        current_amount = Decimal(current)
        spent_amount = Decimal(spent)
        budget = Budget(
            project_id=project.id,
            category=category,
            nahb_category=nahb_category,
            original_amount=current_amount,
            current_amount=current_amount,
            spent_amount=spent_amount,
            remaining_amount=current_amount - spent_amount,
        )
        db_session.add(budget)
        db_session.flush()
        return budget

    return _factory


@pytest.fixture
def make_draw(db_session: Session) -> Callable[..., DrawRequest]:
    def _factory(
        project: Project,
        *lines: tuple[Budget | None, str],
        draw_number: int = 1,
        status: DrawStatus = DrawStatus.SUBMITTED,
        request_date: date | None = None,
    ) -> DrawRequest:
        total = sum((Decimal(amount) for _, amount in lines), Decimal("0"))
        draw = DrawRequest(
            project_id=project.id,
            draw_number=draw_number,
            total_amount=total,
            status=status,
            request_date=request_date,
        )
        db_session.add(draw)
        db_session.flush()
        for budget, amount in lines:
            db_session.add(
                DrawRequestLine(
                    draw_request_id=draw.id,
                    budget_id=budget.id if budget is not None else None,
                    amount_requested=Decimal(amount),
                )
            )
        db_session.flush()
        db_session.refresh(draw)
        return draw

    return _factory


@pytest.fixture
def make_invoice(db_session: Session) -> Callable[..., Invoice]:
    def _factory(draw: DrawRequest, *, file_name: str = "invoice.pdf") -> Invoice:
        invoice = Invoice(project_id=draw.project_id, draw_request_id=draw.id, file_name=file_name)
        db_session.add(invoice)
        db_session.flush()
        return invoice

    return _factory
