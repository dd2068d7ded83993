"""
Embedded SQLite store for clients, services, appointments and work windows.

A single SQLAlchemy session on a single connection is shared by every
caller and guarded by one exclusive lock. There is no read/write split:
availability reads and booking writes serialize on the same lock.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Sequence

import pendulum
from pendulum import DateTime
from sqlalchemy import (
    Boolean,
    Column,
    DateTime as SADateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Table,
    create_engine,
    delete,
    event,
    func,
    select,
)
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, relationship
from sqlalchemy.pool import StaticPool

from ..domain.exceptions import (
    InvalidRequestError,
    NotFoundError,
    ReferentialIntegrityError,
    StorageError,
)
from ..domain.models import (
    Appointment,
    Client,
    Service,
    WorkWindow,
    format_time_of_day,
    parse_time_of_day,
)

logger = logging.getLogger(__name__)

Base = declarative_base()


appointment_services = Table(
    "appointment_services",
    Base.metadata,
    Column("appointment_id", Integer, ForeignKey("appointments.id", ondelete="CASCADE"), primary_key=True),
    Column("service_id", Integer, ForeignKey("services.id", ondelete="CASCADE"), primary_key=True),
)


class ClientRecord(Base):
    __tablename__ = "clients"

    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False)
    phone = Column(String, nullable=False)
    email = Column(String, nullable=True)


class ServiceRecord(Base):
    __tablename__ = "services"

    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False)
    price = Column(Float, nullable=False)
    duration_minutes = Column(Integer, nullable=False, default=30)


class AppointmentRecord(Base):
    __tablename__ = "appointments"

    id = Column(Integer, primary_key=True)
    client_id = Column(Integer, ForeignKey("clients.id", ondelete="CASCADE"), nullable=False, index=True)
    start = Column(SADateTime(timezone=False), nullable=False, index=True)
    price = Column(Float, nullable=False)
    completed = Column(Boolean, nullable=False, default=False)

    services = relationship(ServiceRecord, secondary=appointment_services, lazy="selectin")


class WorkWindowRecord(Base):
    __tablename__ = "work_windows"

    id = Column(Integer, primary_key=True, autoincrement=True)
    weekday = Column(Integer, nullable=False, index=True)  # 0=Monday, 6=Sunday
    start_time = Column(String(5), nullable=False)  # HH:MM
    end_time = Column(String(5), nullable=False)


def _naive(value: datetime) -> DateTime:
    return pendulum.naive(
        value.year, value.month, value.day,
        value.hour, value.minute, value.second, value.microsecond
    )


def _unique(ids: Sequence[int]) -> List[int]:
    seen: set[int] = set()
    ordered: List[int] = []
    for ref in ids:
        if ref not in seen:
            ordered.append(ref)
            seen.add(ref)
    return ordered


class BookingStore:
    """
    Owned handle over the embedded database.

    Every public method acquires the store lock for its full duration.
    ``locked()`` lets a caller hold the lock across several calls, e.g. a
    conflict check followed by the insert it guards.
    """

    def __init__(
        self,
        database_path: str | Path = ":memory:",
        echo: bool = False,
        create_tables: bool = True,
    ):
        """
        Open (and create if needed) the database.

        Args:
            database_path: SQLite file path, or ``:memory:`` for a private in-memory database
            echo: Log every SQL statement
            create_tables: Create missing tables right away
        """
        self.database_path = str(database_path)

        if self.database_path == ":memory:":
            url = "sqlite://"
        else:
            path = Path(self.database_path)
            path.parent.mkdir(parents=True, exist_ok=True)
            url = f"sqlite:///{path}"
            logger.info("Opening database file at %s", path.resolve())

        # One shared connection, as all access is serialized anyway
        self._engine = create_engine(
            url,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False, "timeout": 5},
            echo=echo,
        )
        event.listen(self._engine, "connect", self._enable_foreign_keys)

        self._lock = threading.RLock()
        self._session = Session(bind=self._engine, autoflush=False, expire_on_commit=False)

        if create_tables:
            self.create_tables()

    @staticmethod
    def _enable_foreign_keys(dbapi_connection, connection_record) -> None:
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    def create_tables(self) -> None:
        """Create all tables that do not exist yet."""
        with self.locked():
            try:
                Base.metadata.create_all(bind=self._engine)
            except SQLAlchemyError as exc:
                logger.error("Failed to create tables: %s", exc)
                raise StorageError(f"Failed to create tables: {exc}") from exc

    def close(self) -> None:
        with self.locked():
            self._session.close()
            self._engine.dispose()

    def __enter__(self) -> "BookingStore":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @contextmanager
    def locked(self) -> Iterator["BookingStore"]:
        """Hold the store lock for the duration of the block."""
        with self._lock:
            yield self

    @contextmanager
    def _transaction(self, action: str) -> Iterator[Session]:
        with self._lock:
            try:
                yield self._session
                self._session.commit()
            except SQLAlchemyError as exc:
                self._session.rollback()
                logger.error("Storage failure while trying to %s: %s", action, exc)
                raise StorageError(f"Failed to {action}: {exc}") from exc
            except Exception:
                self._session.rollback()
                raise

    # ------------------------------------------------------------------
    # Clients
    # ------------------------------------------------------------------

    def add_client(self, client: Client) -> Client:
        with self._transaction("save client") as session:
            record = ClientRecord(name=client.name, phone=client.phone, email=client.email)
            session.add(record)
            session.flush()
            return self._to_client(record)

    def update_client(self, client_id: int, client: Client) -> Client:
        with self._transaction("update client") as session:
            record = self._get(session, ClientRecord, client_id, "Client")
            record.name = client.name
            record.phone = client.phone
            record.email = client.email
            return self._to_client(record)

    def get_client(self, client_id: int) -> Client:
        with self._transaction("fetch client") as session:
            return self._to_client(self._get(session, ClientRecord, client_id, "Client"))

    def list_clients(self, search: Optional[str] = None, limit: Optional[int] = None) -> List[Client]:
        with self._transaction("list clients") as session:
            stmt = select(ClientRecord)
            if search:
                stmt = stmt.where(ClientRecord.name.ilike(f"%{search}%")).order_by(ClientRecord.name)
            else:
                stmt = stmt.order_by(ClientRecord.id)
            if limit is not None:
                stmt = stmt.limit(limit)
            return [self._to_client(r) for r in session.scalars(stmt)]

    def delete_client(self, client_id: int) -> None:
        """
        Remove a client.

        Raises:
            ReferentialIntegrityError: If the client still has appointments
        """
        with self._transaction("delete client") as session:
            record = self._get(session, ClientRecord, client_id, "Client")
            count = session.scalar(
                select(func.count()).select_from(AppointmentRecord).where(AppointmentRecord.client_id == client_id)
            )
            if count:
                raise ReferentialIntegrityError(
                    f"Client {client_id} still has {count} appointment(s) and cannot be deleted"
                )
            session.delete(record)

    # ------------------------------------------------------------------
    # Services
    # ------------------------------------------------------------------

    def add_service(self, service: Service) -> Service:
        with self._transaction("save service") as session:
            record = ServiceRecord(
                name=service.name,
                price=service.price,
                duration_minutes=service.duration_minutes,
            )
            session.add(record)
            session.flush()
            return self._to_service(record)

    def update_service(self, service_id: int, service: Service) -> Service:
        with self._transaction("update service") as session:
            record = self._get(session, ServiceRecord, service_id, "Service")
            record.name = service.name
            record.price = service.price
            record.duration_minutes = service.duration_minutes
            return self._to_service(record)

    def get_service(self, service_id: int) -> Service:
        with self._transaction("fetch service") as session:
            return self._to_service(self._get(session, ServiceRecord, service_id, "Service"))

    def list_services(self, search: Optional[str] = None, limit: Optional[int] = None) -> List[Service]:
        with self._transaction("list services") as session:
            stmt = select(ServiceRecord)
            if search:
                stmt = stmt.where(ServiceRecord.name.ilike(f"%{search}%")).order_by(ServiceRecord.name)
            else:
                stmt = stmt.order_by(ServiceRecord.id)
            if limit is not None:
                stmt = stmt.limit(limit)
            return [self._to_service(r) for r in session.scalars(stmt)]

    def delete_service(self, service_id: int) -> None:
        """
        Remove a service and its links to appointments.

        Appointments that referenced it keep existing; their occupancy falls
        back to the default duration if no other service remains.
        """
        with self._transaction("delete service") as session:
            record = self._get(session, ServiceRecord, service_id, "Service")
            session.execute(delete(appointment_services).where(appointment_services.c.service_id == service_id))
            session.delete(record)
            session.expire_all()

    def service_durations(self, service_ids: Sequence[int]) -> Dict[int, int]:
        """
        Look up durations for a set of service ids.

        Ids that no longer exist are simply absent from the result.
        """
        ids = _unique(service_ids)
        if not ids:
            return {}
        with self._transaction("fetch service durations") as session:
            rows = session.execute(
                select(ServiceRecord.id, ServiceRecord.duration_minutes).where(ServiceRecord.id.in_(ids))
            )
            return {row.id: row.duration_minutes or 0 for row in rows}

    # ------------------------------------------------------------------
    # Appointments
    # ------------------------------------------------------------------

    def add_appointment(self, appointment: Appointment) -> Appointment:
        with self._transaction("save appointment") as session:
            self._get(session, ClientRecord, appointment.client_id, "Client")
            record = AppointmentRecord(
                client_id=appointment.client_id,
                start=appointment.start,
                price=appointment.price,
                completed=appointment.completed,
            )
            record.services = self._load_services(session, appointment.service_ids)
            session.add(record)
            session.flush()
            return self._to_appointment(record)

    def update_appointment(
        self,
        appointment_id: int,
        start: Optional[DateTime] = None,
        service_ids: Optional[Sequence[int]] = None,
        price: Optional[float] = None,
        completed: Optional[bool] = None,
    ) -> Appointment:
        """Update only the fields that are given."""
        with self._transaction("update appointment") as session:
            record = self._get(session, AppointmentRecord, appointment_id, "Appointment")
            if start is not None:
                record.start = start
            if price is not None:
                record.price = price
            if completed is not None:
                record.completed = completed
            if service_ids is not None:
                record.services = self._load_services(session, service_ids)
            session.flush()
            return self._to_appointment(record)

    def get_appointment(self, appointment_id: int) -> Appointment:
        with self._transaction("fetch appointment") as session:
            return self._to_appointment(self._get(session, AppointmentRecord, appointment_id, "Appointment"))

    def list_appointments(
        self,
        completed: Optional[bool] = None,
        client_id: Optional[int] = None,
    ) -> List[Appointment]:
        with self._transaction("list appointments") as session:
            stmt = select(AppointmentRecord).order_by(AppointmentRecord.start, AppointmentRecord.id)
            if completed is not None:
                stmt = stmt.where(AppointmentRecord.completed == completed)
            if client_id is not None:
                stmt = stmt.where(AppointmentRecord.client_id == client_id)
            return [self._to_appointment(r) for r in session.scalars(stmt)]

    def list_appointments_in_range(self, start: DateTime, end: DateTime) -> List[Appointment]:
        """
        List pending appointments whose start lies in [start, end], inclusive.

        Completed appointments never occupy the calendar and are excluded.
        """
        with self._transaction("list appointments in range") as session:
            stmt = (
                select(AppointmentRecord)
                .where(AppointmentRecord.start.between(start, end))
                .where(AppointmentRecord.completed == False)  # noqa: E712
                .order_by(AppointmentRecord.start, AppointmentRecord.id)
            )
            return [self._to_appointment(r) for r in session.scalars(stmt)]

    def has_conflict(self, start: DateTime) -> bool:
        """Check whether a pending appointment starts at exactly this instant."""
        with self._transaction("check appointment conflict") as session:
            count = session.scalar(
                select(func.count())
                .select_from(AppointmentRecord)
                .where(AppointmentRecord.start == start)
                .where(AppointmentRecord.completed == False)  # noqa: E712
            )
            return bool(count)

    def delete_appointment(self, appointment_id: int) -> None:
        with self._transaction("delete appointment") as session:
            session.delete(self._get(session, AppointmentRecord, appointment_id, "Appointment"))

    # ------------------------------------------------------------------
    # Work windows
    # ------------------------------------------------------------------

    def add_work_window(self, window: WorkWindow) -> WorkWindow:
        with self._transaction("save work window") as session:
            record = WorkWindowRecord(
                weekday=window.weekday,
                start_time=format_time_of_day(window.start),
                end_time=format_time_of_day(window.end),
            )
            session.add(record)
            session.flush()
            return WorkWindow(weekday=window.weekday, start=window.start, end=window.end, id=record.id)

    def delete_work_window(self, window_id: int) -> None:
        with self._transaction("delete work window") as session:
            session.delete(self._get(session, WorkWindowRecord, window_id, "Work window"))

    def list_work_windows(self) -> List[WorkWindow]:
        """All windows ordered by weekday, then start time."""
        with self._transaction("list work windows") as session:
            stmt = select(WorkWindowRecord).order_by(WorkWindowRecord.weekday, WorkWindowRecord.start_time)
            return self._to_windows(session.scalars(stmt))

    def work_windows_for_weekday(self, weekday: int) -> List[WorkWindow]:
        with self._transaction("fetch work windows") as session:
            stmt = (
                select(WorkWindowRecord)
                .where(WorkWindowRecord.weekday == weekday)
                .order_by(WorkWindowRecord.start_time)
            )
            return self._to_windows(session.scalars(stmt))

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _get(session: Session, model, record_id: int, label: str):
        record = session.get(model, record_id)
        if record is None:
            raise NotFoundError(f"{label} {record_id} not found")
        return record

    @staticmethod
    def _load_services(session: Session, service_ids: Sequence[int]) -> List[ServiceRecord]:
        ids = _unique(service_ids)
        if not ids:
            return []
        records = list(session.scalars(select(ServiceRecord).where(ServiceRecord.id.in_(ids))))
        found = {r.id for r in records}
        missing = [ref for ref in ids if ref not in found]
        if missing:
            raise NotFoundError(f"Service(s) not found: {', '.join(str(m) for m in missing)}")
        by_id = {r.id: r for r in records}
        return [by_id[ref] for ref in ids]

    @staticmethod
    def _to_client(record: ClientRecord) -> Client:
        return Client(id=record.id, name=record.name, phone=record.phone, email=record.email)

    @staticmethod
    def _to_service(record: ServiceRecord) -> Service:
        return Service(
            id=record.id,
            name=record.name,
            price=record.price,
            duration_minutes=record.duration_minutes,
        )

    @staticmethod
    def _to_appointment(record: AppointmentRecord) -> Appointment:
        return Appointment(
            id=record.id,
            client_id=record.client_id,
            start=_naive(record.start),
            service_ids=sorted(s.id for s in record.services),
            price=record.price,
            completed=bool(record.completed),
        )

    @staticmethod
    def _to_windows(records) -> List[WorkWindow]:
        windows: List[WorkWindow] = []
        for record in records:
            try:
                windows.append(
                    WorkWindow(
                        weekday=record.weekday,
                        start=parse_time_of_day(record.start_time),
                        end=parse_time_of_day(record.end_time),
                        id=record.id,
                    )
                )
            except InvalidRequestError as exc:
                logger.warning("Skipping unreadable work window %s: %s", record.id, exc)
        return windows
