# record_store.py

import asyncio
import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import Boolean, Column, DateTime, Float, Integer, String, Text, create_engine, func, select
from sqlalchemy.orm import declarative_base, sessionmaker

from minefleet.models.domain import (
    Alert,
    CommandLog,
    CommandLogStatus,
    Reading,
    SiteState,
    ThresholdSet,
    utcnow,
)


logger = logging.getLogger(__name__)

Base = declarative_base()


###############################################################################
# TABLES ----------------------------------------------------------------------
###############################################################################

class SiteRow(Base):
    __tablename__ = "sites"

    site_id = Column(String(64), primary_key=True)
    name = Column(String(255), nullable=False)
    location = Column(String(255))
    status = Column(String(16), default=SiteState.OFFLINE.value)
    last_seen = Column(DateTime)


class ReadingRow(Base):
    __tablename__ = "readings"

    id = Column(Integer, primary_key=True, index=True)
    site_id = Column(String(64), nullable=False, index=True)
    device_id = Column(Integer, nullable=False, index=True)
    timestamp = Column(DateTime, nullable=False, index=True)
    hash_rate = Column(Float)
    temperature = Column(Float)
    fan_speed = Column(Float)
    power_consumption = Column(Float)
    energy_reading = Column(Float)
    heat_meter_reading = Column(Float)

    def to_reading(self) -> Reading:
        return Reading(
            device_id=self.device_id,
            timestamp=_aware(self.timestamp),
            site_id=self.site_id,
            hash_rate=self.hash_rate,
            temperature=self.temperature,
            fan_speed=self.fan_speed,
            power_consumption=self.power_consumption,
            energy_reading=self.energy_reading,
            heat_meter_reading=self.heat_meter_reading,
        )


class AlertRow(Base):
    __tablename__ = "alerts"

    id = Column(Integer, primary_key=True, index=True)
    site_id = Column(String(64), nullable=False, index=True)
    device_id = Column(Integer)
    type = Column(String(64), nullable=False)
    severity = Column(String(16), nullable=False)
    value = Column(Float)
    message = Column(Text)
    timestamp = Column(DateTime, nullable=False)
    resolved = Column(Boolean, default=False)


class CommandLogRow(Base):
    __tablename__ = "command_logs"

    command_id = Column(String(64), primary_key=True)
    site_id = Column(String(64), nullable=False, index=True)
    device_id = Column(Integer, nullable=False)
    command_type = Column(String(32), nullable=False)
    parameters = Column(Text, default="{}")
    status = Column(String(16), nullable=False)
    timestamp = Column(DateTime, nullable=False)
    error = Column(Text)
    completed_at = Column(DateTime)

    def to_entry(self) -> CommandLog:
        return CommandLog(
            command_id=self.command_id,
            site_id=self.site_id,
            device_id=self.device_id,
            command_type=self.command_type,
            parameters=json.loads(self.parameters or "{}"),
            status=CommandLogStatus(self.status),
            timestamp=_aware(self.timestamp),
            error=self.error,
        )


class DeviceErrorRow(Base):
    __tablename__ = "device_errors"

    id = Column(Integer, primary_key=True, index=True)
    site_id = Column(String(64), nullable=False, index=True)
    device_id = Column(Integer, nullable=False)
    error_type = Column(String(64), nullable=False)
    message = Column(Text)
    data = Column(Text)
    timestamp = Column(DateTime, nullable=False)


class DeviceConfigurationRow(Base):
    __tablename__ = "device_configurations"

    site_id = Column(String(64), primary_key=True)
    device_id = Column(Integer, primary_key=True)
    max_temperature = Column(Float)
    min_hash_rate = Column(Float)
    max_power = Column(Float)


class BillingRow(Base):
    __tablename__ = "billing"

    id = Column(Integer, primary_key=True, index=True)
    site_id = Column(String(64), nullable=False, index=True)
    period_start = Column(DateTime, nullable=False)
    period_end = Column(DateTime, nullable=False)
    energy_consumed = Column(Float, nullable=False)
    created_at = Column(DateTime, nullable=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "siteId": self.site_id,
            "periodStart": _aware(self.period_start).isoformat(),
            "periodEnd": _aware(self.period_end).isoformat(),
            "energyConsumed": self.energy_consumed,
        }


###############################################################################
# STORE -----------------------------------------------------------------------
###############################################################################

class SqlRecordStore:
    """
    Append-mostly persistence for readings, alerts, command logs, device
    errors and billing, plus the site/device configuration the hub reads.

    SQLAlchemy sessions are synchronous; every public method runs its unit of
    work on a worker thread so the event loop never blocks on the database.
    """

    def __init__(self, database_url: str, echo: bool = False):
        connect_args = {"check_same_thread": False} if database_url.startswith("sqlite") else {}
        self.engine = create_engine(database_url, connect_args=connect_args, echo=echo)
        self.Session = sessionmaker(bind=self.engine, autoflush=False, expire_on_commit=False)

    def create_schema(self):
        """Create any missing tables."""
        Base.metadata.create_all(self.engine)
        logger.info(f"Database schema ready at {self.engine.url.render_as_string(hide_password=True)}")

    def dispose(self):
        self.engine.dispose()

    # ---- Readings ----
    async def append_reading(self, site_id: str, reading: Reading) -> None:
        await asyncio.to_thread(self._append_reading, site_id, reading)

    def _append_reading(self, site_id: str, reading: Reading):
        with self.Session.begin() as session:
            session.add(ReadingRow(
                site_id=site_id,
                device_id=reading.device_id,
                timestamp=_naive(reading.timestamp),
                **reading.measured(),
            ))

    async def query_readings(self, site_id: str, device_id: int,
                             start: datetime, end: datetime) -> List[Reading]:
        """Readings of one device with start <= timestamp <= end, oldest first."""
        return await asyncio.to_thread(self._query_readings, site_id, device_id, start, end)

    def _query_readings(self, site_id, device_id, start, end):
        stmt = (
            select(ReadingRow)
            .where(
                ReadingRow.site_id == site_id,
                ReadingRow.device_id == device_id,
                ReadingRow.timestamp >= _naive(start),
                ReadingRow.timestamp <= _naive(end),
            )
            .order_by(ReadingRow.timestamp)
        )
        with self.Session() as session:
            return [row.to_reading() for row in session.scalars(stmt)]

    async def sum_energy(self, site_id: str, start: datetime, end: datetime) -> float:
        """Total of energy readings a site reported in the period."""
        return await asyncio.to_thread(self._sum_energy, site_id, start, end)

    def _sum_energy(self, site_id, start, end):
        stmt = select(func.coalesce(func.sum(ReadingRow.energy_reading), 0.0)).where(
            ReadingRow.site_id == site_id,
            ReadingRow.timestamp >= _naive(start),
            ReadingRow.timestamp <= _naive(end),
        )
        with self.Session() as session:
            return float(session.scalar(stmt))

    # ---- Alerts & errors ----
    async def append_alert(self, alert: Alert) -> None:
        await asyncio.to_thread(self._append_alert, alert)

    def _append_alert(self, alert: Alert):
        with self.Session.begin() as session:
            session.add(AlertRow(
                site_id=alert.site_id,
                device_id=alert.device_id,
                type=alert.type,
                severity=alert.severity.value,
                value=alert.value,
                message=alert.message,
                timestamp=_naive(alert.timestamp),
            ))

    async def list_alerts(self, site_id: str) -> List[Dict[str, Any]]:
        return await asyncio.to_thread(self._list_alerts, site_id)

    def _list_alerts(self, site_id):
        stmt = select(AlertRow).where(AlertRow.site_id == site_id).order_by(AlertRow.id)
        with self.Session() as session:
            return [
                {
                    "deviceId": row.device_id,
                    "type": row.type,
                    "severity": row.severity,
                    "value": row.value,
                    "message": row.message,
                    "timestamp": _aware(row.timestamp).isoformat(),
                }
                for row in session.scalars(stmt)
            ]

    async def append_device_error(self, site_id: str, device_id: int, error_type: str,
                                  message: str, timestamp: datetime,
                                  data: Optional[Dict[str, Any]] = None) -> None:
        await asyncio.to_thread(
            self._append_device_error, site_id, device_id, error_type, message, timestamp, data
        )

    def _append_device_error(self, site_id, device_id, error_type, message, timestamp, data):
        with self.Session.begin() as session:
            session.add(DeviceErrorRow(
                site_id=site_id,
                device_id=device_id,
                error_type=error_type,
                message=message,
                data=json.dumps(data) if data is not None else None,
                timestamp=_naive(timestamp),
            ))

    # ---- Command log ----
    async def append_command_log(self, entry: CommandLog) -> None:
        await asyncio.to_thread(self._append_command_log, entry)

    def _append_command_log(self, entry: CommandLog):
        with self.Session.begin() as session:
            session.add(CommandLogRow(
                command_id=entry.command_id,
                site_id=entry.site_id,
                device_id=entry.device_id,
                command_type=entry.command_type,
                parameters=json.dumps(entry.parameters),
                status=entry.status.value,
                timestamp=_naive(entry.timestamp),
                error=entry.error,
            ))

    async def update_command_log_status(self, command_id: str, status: CommandLogStatus,
                                        error: Optional[str] = None) -> bool:
        """Returns False when no entry carries ``command_id``."""
        return await asyncio.to_thread(self._update_command_log_status, command_id, status, error)

    def _update_command_log_status(self, command_id, status, error):
        with self.Session.begin() as session:
            row = session.get(CommandLogRow, command_id)
            if row is None:
                return False
            row.status = status.value
            row.error = error
            row.completed_at = _naive(utcnow())
            return True

    async def get_command_log(self, command_id: str) -> Optional[CommandLog]:
        return await asyncio.to_thread(self._get_command_log, command_id)

    def _get_command_log(self, command_id):
        with self.Session() as session:
            row = session.get(CommandLogRow, command_id)
            return row.to_entry() if row else None

    # ---- Sites ----
    async def update_site_status(self, site_id: str, status: SiteState,
                                 last_seen: Optional[datetime] = None) -> None:
        await asyncio.to_thread(self._update_site_status, site_id, status, last_seen)

    def _update_site_status(self, site_id, status, last_seen):
        with self.Session.begin() as session:
            row = session.get(SiteRow, site_id)
            if row is None:
                # Sites are provisioned elsewhere; keep status updates from failing
                row = SiteRow(site_id=site_id, name=site_id)
                session.add(row)
            row.status = status.value
            if last_seen is not None:
                row.last_seen = _naive(last_seen)

    async def get_site_status(self, site_id: str) -> Optional[SiteState]:
        return await asyncio.to_thread(self._get_site_status, site_id)

    def _get_site_status(self, site_id):
        with self.Session() as session:
            row = session.get(SiteRow, site_id)
            return SiteState(row.status) if row and row.status else None

    # ---- Device configuration ----
    async def get_device_configuration(self, site_id: str, device_id: int) -> Optional[Dict[str, Any]]:
        return await asyncio.to_thread(self._get_device_configuration, site_id, device_id)

    def _get_device_configuration(self, site_id, device_id):
        with self.Session() as session:
            row = session.get(DeviceConfigurationRow, (site_id, device_id))
            if row is None:
                return None
            return {
                "max_temperature": row.max_temperature,
                "min_hash_rate": row.min_hash_rate,
                "max_power": row.max_power,
            }

    async def put_device_configuration(self, site_id: str, device_id: int,
                                       thresholds: ThresholdSet) -> None:
        await asyncio.to_thread(self._put_device_configuration, site_id, device_id, thresholds)

    def _put_device_configuration(self, site_id, device_id, thresholds):
        with self.Session.begin() as session:
            row = session.get(DeviceConfigurationRow, (site_id, device_id))
            if row is None:
                row = DeviceConfigurationRow(site_id=site_id, device_id=device_id)
                session.add(row)
            row.max_temperature = thresholds.max_temperature
            row.min_hash_rate = thresholds.min_hash_rate
            row.max_power = thresholds.max_power

    # ---- Billing ----
    async def append_billing(self, site_id: str, start: datetime, end: datetime,
                             energy_consumed: float) -> Dict[str, Any]:
        return await asyncio.to_thread(self._append_billing, site_id, start, end, energy_consumed)

    def _append_billing(self, site_id, start, end, energy_consumed):
        with self.Session.begin() as session:
            row = BillingRow(
                site_id=site_id,
                period_start=_naive(start),
                period_end=_naive(end),
                energy_consumed=energy_consumed,
                created_at=_naive(utcnow()),
            )
            session.add(row)
            return row.to_dict()


# All timestamps are stored as naive UTC
def _naive(ts: datetime) -> datetime:
    if ts.tzinfo is None:
        return ts
    return ts.astimezone(timezone.utc).replace(tzinfo=None)


def _aware(ts: Optional[datetime]) -> Optional[datetime]:
    if ts is None:
        return None
    return ts if ts.tzinfo else ts.replace(tzinfo=timezone.utc)
