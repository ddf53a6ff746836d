"""
SQL store built on SQLAlchemy.

Tables: users, instruments, quotes, orders. There is no
balance or holdings table; the ledger is always folded from orders.
"""

import logging
from contextlib import contextmanager
from datetime import datetime
from decimal import Decimal
from typing import Iterator, List, Optional, Tuple

from sqlalchemy import (
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
    create_engine,
    func,
    or_,
    select,
    update,
)
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, sessionmaker

from brokerage.events.models import (
    Instrument,
    Order,
    OrderKind,
    OrderSide,
    OrderStatus,
    Quote,
    User,
)

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    pass


class UserRow(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True)
    email: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    account_number: Mapped[str] = mapped_column(String(64), nullable=False, default="")


class InstrumentRow(Base):
    __tablename__ = "instruments"

    id: Mapped[int] = mapped_column(primary_key=True)
    ticker: Mapped[str] = mapped_column(String(16), index=True, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    category: Mapped[str] = mapped_column(String(32), index=True, nullable=False)


class QuoteRow(Base):
    __tablename__ = "quotes"
    __table_args__ = (UniqueConstraint("instrument_id", "as_of"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    instrument_id: Mapped[int] = mapped_column(ForeignKey("instruments.id"), nullable=False)
    open: Mapped[Optional[Decimal]] = mapped_column(Numeric(18, 6), nullable=True)
    high: Mapped[Optional[Decimal]] = mapped_column(Numeric(18, 6), nullable=True)
    low: Mapped[Optional[Decimal]] = mapped_column(Numeric(18, 6), nullable=True)
    close: Mapped[Decimal] = mapped_column(Numeric(18, 6), nullable=False)
    previous_close: Mapped[Optional[Decimal]] = mapped_column(Numeric(18, 6), nullable=True)
    as_of: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class OrderRow(Base):
    __tablename__ = "orders"

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True, nullable=False)
    instrument_id: Mapped[int] = mapped_column(ForeignKey("instruments.id"), index=True, nullable=False)
    side: Mapped[str] = mapped_column(String(8), nullable=False)
    size: Mapped[int] = mapped_column(Integer, nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    order_kind: Mapped[Optional[str]] = mapped_column(String(8), nullable=True)
    status: Mapped[str] = mapped_column(String(16), index=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


def _to_user(row: UserRow) -> User:
    return User(id=row.id, email=row.email, account_number=row.account_number)


def _to_instrument(row: InstrumentRow) -> Instrument:
    return Instrument(id=row.id, ticker=row.ticker, name=row.name, category=row.category)


def _to_quote(row: QuoteRow) -> Quote:
    return Quote(
        instrument_id=row.instrument_id,
        close=Decimal(row.close),
        as_of=row.as_of,
        open=row.open,
        high=row.high,
        low=row.low,
        previous_close=row.previous_close,
    )


def _to_order(row: OrderRow) -> Order:
    return Order(
        id=row.id,
        user_id=row.user_id,
        instrument_id=row.instrument_id,
        side=OrderSide(row.side),
        size=row.size,
        price=Decimal(row.price),
        order_kind=OrderKind(row.order_kind) if row.order_kind else None,
        status=OrderStatus(row.status),
        created_at=row.created_at,
    )


class SqlStore:
    """Unit of work over a SQLAlchemy engine."""

    def __init__(self, engine: Engine, read_isolation_level: Optional[str] = None):
        """
        Args:
            engine: SQLAlchemy engine
            read_isolation_level: Isolation level for read-only transactions,
                e.g. 'REPEATABLE READ' on PostgreSQL. None keeps the default.
        """
        self.engine = engine
        self.read_isolation_level = read_isolation_level
        self._sessions = sessionmaker(bind=engine, expire_on_commit=False)

    @classmethod
    def from_url(cls, url: str, read_isolation_level: Optional[str] = None) -> "SqlStore":
        return cls(create_engine(url), read_isolation_level=read_isolation_level)

    def create_schema(self) -> None:
        Base.metadata.create_all(self.engine)

    # -- Reference data seeding --

    def add_user(self, user: User) -> User:
        with self._sessions.begin() as session:
            session.add(UserRow(id=user.id, email=user.email, account_number=user.account_number))
        return user

    def add_instrument(self, instrument: Instrument) -> Instrument:
        with self._sessions.begin() as session:
            session.add(InstrumentRow(
                id=instrument.id,
                ticker=instrument.ticker,
                name=instrument.name,
                category=instrument.category,
            ))
        return instrument

    def add_quote(self, quote: Quote) -> Quote:
        with self._sessions.begin() as session:
            session.add(QuoteRow(
                instrument_id=quote.instrument_id,
                open=quote.open,
                high=quote.high,
                low=quote.low,
                close=quote.close,
                previous_close=quote.previous_close,
                as_of=quote.as_of,
            ))
        return quote

    # -- Unit of work --

    @contextmanager
    def transaction(self, read_only: bool = False) -> Iterator["SqlTransaction"]:
        session = self._sessions()
        try:
            if read_only and self.read_isolation_level:
                session.connection(
                    execution_options={"isolation_level": self.read_isolation_level}
                )
            yield SqlTransaction(session)
            if read_only:
                session.rollback()
            else:
                session.commit()
        except Exception:
            logger.debug("Rolling back SQL transaction")
            session.rollback()
            raise
        finally:
            session.close()


class SqlTransaction:
    """Port implementation bound to one SQLAlchemy session."""

    def __init__(self, session: Session):
        self.session = session

    def get_user(self, user_id: int, for_update: bool = False) -> Optional[User]:
        stmt = select(UserRow).where(UserRow.id == user_id)
        if for_update:
            stmt = stmt.with_for_update()
        row = self.session.scalars(stmt).first()
        return _to_user(row) if row else None

    def get_instrument(self, instrument_id: int) -> Optional[Instrument]:
        row = self.session.get(InstrumentRow, instrument_id)
        return _to_instrument(row) if row else None

    def instruments_in_category(self, category: str) -> List[Instrument]:
        rows = self.session.scalars(
            select(InstrumentRow).where(InstrumentRow.category == category)
        ).all()
        return [_to_instrument(r) for r in rows]

    def search_instruments(
        self, query: Optional[str], limit: int, offset: int
    ) -> Tuple[List[Instrument], int]:
        stmt = select(InstrumentRow)
        if query:
            pattern = f"%{query.lower()}%"
            stmt = stmt.where(or_(
                func.lower(InstrumentRow.ticker).like(pattern),
                func.lower(InstrumentRow.name).like(pattern),
            ))
        total = self.session.scalar(select(func.count()).select_from(stmt.subquery()))
        rows = self.session.scalars(
            stmt.order_by(InstrumentRow.id).limit(limit).offset(offset)
        ).all()
        return [_to_instrument(r) for r in rows], total or 0

    def latest_quote(self, instrument_id: int) -> Optional[Quote]:
        row = self.session.scalars(
            select(QuoteRow)
            .where(QuoteRow.instrument_id == instrument_id)
            .order_by(QuoteRow.as_of.desc())
            .limit(1)
        ).first()
        return _to_quote(row) if row else None

    def get_order(self, order_id: int) -> Optional[Order]:
        row = self.session.get(OrderRow, order_id)
        return _to_order(row) if row else None

    def filled_orders(
        self, user_id: int, instrument_id: Optional[int] = None
    ) -> List[Order]:
        stmt = select(OrderRow).where(
            OrderRow.user_id == user_id,
            OrderRow.status == OrderStatus.FILLED.value,
        )
        if instrument_id is not None:
            stmt = stmt.where(OrderRow.instrument_id == instrument_id)
        return [_to_order(r) for r in self.session.scalars(stmt.order_by(OrderRow.id))]

    def add_order(self, order: Order) -> Order:
        row = OrderRow(
            user_id=order.user_id,
            instrument_id=order.instrument_id,
            side=order.side.value,
            size=order.size,
            price=order.price,
            order_kind=order.order_kind.value if order.order_kind else None,
            status=order.status.value,
            created_at=order.created_at,
        )
        self.session.add(row)
        self.session.flush()
        return _to_order(row)

    def transition_status(
        self, order_id: int, expected: OrderStatus, new: OrderStatus
    ) -> bool:
        result = self.session.execute(
            update(OrderRow)
            .where(OrderRow.id == order_id, OrderRow.status == expected.value)
            .values(status=new.value)
        )
        return result.rowcount == 1
