# resume_tailor/app/core/job_store.py
"""Job persistence backed by SQLModel. Every status change is a guarded UPDATE checked by rowcount."""

import json
import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy import Column, DateTime, LargeBinary, Text, and_, event, or_
from sqlalchemy import update as sa_update
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Field, Session, SQLModel, col, create_engine, select

from resume_tailor.app.core.errors import DatabaseError, ValidationError
from resume_tailor.app.models.job_models import CustomizeResumeRequest, Job, JobStatus

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class JobRecord(SQLModel, table=True):
    __tablename__ = "jobs"

    job_id: str = Field(primary_key=True)
    owner_id: str = Field(index=True)
    status: str = Field(default=JobStatus.PENDING.value, index=True)
    resume_format: str = "text"
    is_job_description_url: bool = False
    output_format: str = "text"
    optimization_preset: str = "default"
    profiler_model: Optional[str] = None
    researcher_model: Optional[str] = None
    strategist_model: Optional[str] = None
    inputs_json: str = Field(sa_column=Column(Text, nullable=False))
    attempts: int = 0
    max_attempts: int = 3
    lease_token: Optional[str] = Field(default=None, index=True)
    lease_expires_at: Optional[datetime] = Field(default=None, sa_column=Column(DateTime))
    available_at: datetime = Field(sa_column=Column(DateTime, nullable=False))
    result: Optional[str] = Field(default=None, sa_column=Column(Text))
    formatted_result: Optional[bytes] = Field(default=None, sa_column=Column(LargeBinary))
    result_mime_type: Optional[str] = None
    error: Optional[str] = Field(default=None, sa_column=Column(Text))
    metadata_json: Optional[str] = Field(default=None, sa_column=Column(Text))
    created_at: datetime = Field(sa_column=Column(DateTime, nullable=False))
    started_at: Optional[datetime] = Field(default=None, sa_column=Column(DateTime))
    completed_at: Optional[datetime] = Field(default=None, sa_column=Column(DateTime))
    updated_at: datetime = Field(sa_column=Column(DateTime, nullable=False))


# Transitions `update` accepts; everything else (including any write to a terminal row) is refused.
ALLOWED_TRANSITIONS = {
    JobStatus.PENDING: {JobStatus.PROCESSING},
    JobStatus.PROCESSING: {JobStatus.PROCESSING, JobStatus.COMPLETED, JobStatus.FAILED},
    JobStatus.COMPLETED: set(),
    JobStatus.FAILED: set(),
}


def _to_db(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def _from_db(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    return value.replace(tzinfo=timezone.utc) if value.tzinfo is None else value


def _enable_sqlite_wal(dbapi_connection, _record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA busy_timeout=5000")
    cursor.close()


class SQLJobStore:
    """Job Store with create / find / guarded update."""

    def __init__(self, database_url: str, clock: Callable[[], datetime] = utc_now):
        self.database_url = database_url
        self._clock = clock
        connect_args = {"check_same_thread": False} if database_url.startswith("sqlite") else {}
        self.engine = create_engine(database_url, connect_args=connect_args)
        if database_url.startswith("sqlite") and ":memory:" not in database_url:
            event.listen(self.engine, "connect", _enable_sqlite_wal)

    def init_schema(self) -> None:
        try:
            SQLModel.metadata.create_all(self.engine)
        except SQLAlchemyError as exc:
            raise DatabaseError(f"Could not create job tables: {exc}") from exc

    def close(self) -> None:
        self.engine.dispose()

    # ---------- Create / read ----------

    def create(self, owner_id: str, inputs: CustomizeResumeRequest, max_attempts: int = 3) -> Job:
        now = _to_db(self._clock())
        row = JobRecord(
            job_id=uuid.uuid4().hex,
            owner_id=owner_id,
            status=JobStatus.PENDING.value,
            resume_format=inputs.resume_format,
            is_job_description_url=inputs.is_job_description_url,
            output_format=inputs.output_format,
            optimization_preset=inputs.optimization_preset,
            profiler_model=inputs.profiler_model,
            researcher_model=inputs.researcher_model,
            strategist_model=inputs.strategist_model,
            inputs_json=inputs.model_dump_json(),
            max_attempts=max_attempts,
            available_at=now,
            created_at=now,
            updated_at=now,
        )
        try:
            with Session(self.engine) as session:
                session.add(row)
                session.commit()
                session.refresh(row)
                return _to_job(row)
        except SQLAlchemyError as exc:
            raise DatabaseError(f"Could not create job: {exc}") from exc

    def find(self, job_id: str) -> Optional[Job]:
        try:
            with Session(self.engine) as session:
                row = session.exec(select(JobRecord).where(JobRecord.job_id == job_id)).one_or_none()
                return _to_job(row) if row is not None else None
        except SQLAlchemyError as exc:
            raise DatabaseError(f"Could not load job {job_id}: {exc}") from exc

    # ---------- Guarded transitions ----------

    def update(self, job_id: str, status: JobStatus, *, token: Optional[str],
               expected_status: JobStatus = JobStatus.PROCESSING, **fields: Any) -> bool:
        """
        Move a job from `expected_status` to `status` if the caller still holds the lease `token`.
        Returns False when another writer got there first or the job already finished.
        """
        if status not in ALLOWED_TRANSITIONS[expected_status]:
            raise ValidationError(f"Illegal job transition {expected_status.value} -> {status.value}")

        conditions = [col(JobRecord.job_id) == job_id, col(JobRecord.status) == expected_status.value]
        if token is not None:
            conditions.append(col(JobRecord.lease_token) == token)
        values = {k: _to_db(v) if isinstance(v, datetime) else v for k, v in fields.items()}
        values.update(status=status.value, updated_at=_to_db(self._clock()))
        return self._guarded_update(job_id, and_(*conditions), values)

    def claim(self, job_id: str, lease_seconds: float) -> Optional[Job]:
        """
        Take exclusive ownership of a job: pending jobs, released jobs waiting for a retry,
        and processing jobs whose lease expired (abandoned by a crashed worker).
        Increments `attempts` exactly once per successful claim and never past `max_attempts`.
        """
        now = self._clock()
        db_now = _to_db(now)
        token = uuid.uuid4().hex
        claimable = and_(
            col(JobRecord.job_id) == job_id,
            col(JobRecord.available_at) <= db_now,
            col(JobRecord.attempts) < col(JobRecord.max_attempts),
            or_(
                col(JobRecord.status) == JobStatus.PENDING.value,
                and_(
                    col(JobRecord.status) == JobStatus.PROCESSING.value,
                    or_(col(JobRecord.lease_token).is_(None), col(JobRecord.lease_expires_at) < db_now),
                ),
            ),
        )
        values = {
            "status": JobStatus.PROCESSING.value,
            "attempts": col(JobRecord.attempts) + 1,
            "lease_token": token,
            "lease_expires_at": _to_db(now + timedelta(seconds=lease_seconds)),
            "started_at": db_now,
            "updated_at": db_now,
        }
        if not self._guarded_update(job_id, claimable, values):
            return None
        return self.find(job_id)

    def complete(self, job_id: str, lease_token: str, result: str,
                 formatted_result: Optional[bytes] = None, result_mime_type: str = "text/plain",
                 metadata: Optional[Dict[str, Any]] = None) -> bool:
        return self._terminal(job_id, lease_token, JobStatus.COMPLETED, {
            "result": result,
            "formatted_result": formatted_result,
            "result_mime_type": result_mime_type,
            "metadata_json": json.dumps(metadata or {}),
            "error": None,
        })

    def fail(self, job_id: str, lease_token: str, error: str) -> bool:
        return self._terminal(job_id, lease_token, JobStatus.FAILED, {"error": error, "result": None})

    def release(self, job_id: str, lease_token: str, delay_seconds: float, refund_attempt: bool = False) -> bool:
        """Give the job back for a later retry; it stays `processing` with no lease holder."""
        fields: Dict[str, Any] = {
            "lease_token": None,
            "lease_expires_at": None,
            "available_at": self._clock() + timedelta(seconds=delay_seconds),
        }
        if refund_attempt:
            fields["attempts"] = col(JobRecord.attempts) - 1
        return self.update(job_id, JobStatus.PROCESSING, token=lease_token, **fields)

    def fail_abandoned(self, job_id: str, error: str) -> bool:
        """Fail a job whose lease expired with no attempts left."""
        now = _to_db(self._clock())
        condition = and_(
            col(JobRecord.job_id) == job_id,
            col(JobRecord.status) == JobStatus.PROCESSING.value,
            col(JobRecord.lease_expires_at) < now,
            col(JobRecord.attempts) >= col(JobRecord.max_attempts),
        )
        values = {
            "status": JobStatus.FAILED.value,
            "error": error,
            "lease_token": None,
            "lease_expires_at": None,
            "completed_at": now,
            "updated_at": now,
        }
        return self._guarded_update(job_id, condition, values)

    def find_recoverable(self, stale_after_seconds: float, limit: int = 100) -> List[Job]:
        """
        Jobs that need a fresh queue message: expired leases, and pending or
        retry-waiting jobs that have been runnable for longer than `stale_after_seconds`.
        """
        now = self._clock()
        db_now = _to_db(now)
        stale_before = _to_db(now - timedelta(seconds=stale_after_seconds))
        condition = or_(
            and_(
                col(JobRecord.status) == JobStatus.PROCESSING.value,
                col(JobRecord.lease_token).is_not(None),
                col(JobRecord.lease_expires_at) < db_now,
            ),
            and_(
                or_(
                    col(JobRecord.status) == JobStatus.PENDING.value,
                    and_(col(JobRecord.status) == JobStatus.PROCESSING.value, col(JobRecord.lease_token).is_(None)),
                ),
                col(JobRecord.available_at) < stale_before,
            ),
        )
        try:
            with Session(self.engine) as session:
                rows = session.exec(
                    select(JobRecord).where(condition).order_by(col(JobRecord.created_at).asc()).limit(limit)
                ).all()
                return [_to_job(r) for r in rows]
        except SQLAlchemyError as exc:
            raise DatabaseError(f"Could not scan for recoverable jobs: {exc}") from exc

    def list_for_owner(self, owner_id: str, limit: int = 50) -> List[Job]:
        """An owner's jobs, newest first."""
        try:
            with Session(self.engine) as session:
                rows = session.exec(
                    select(JobRecord)
                    .where(col(JobRecord.owner_id) == owner_id)
                    .order_by(col(JobRecord.created_at).desc())
                    .limit(limit)
                ).all()
                return [_to_job(r) for r in rows]
        except SQLAlchemyError as exc:
            raise DatabaseError(f"Could not list jobs for owner {owner_id}: {exc}") from exc

    # ---------- Internals ----------

    def _terminal(self, job_id: str, lease_token: str, status: JobStatus, fields: Dict[str, Any]) -> bool:
        now = self._clock()
        fields.update(completed_at=now, lease_expires_at=None, lease_token=None)
        return self.update(job_id, status, token=lease_token, **fields)

    def _guarded_update(self, job_id: str, condition, values: Dict[str, Any]) -> bool:
        try:
            with Session(self.engine) as session:
                result = session.exec(sa_update(JobRecord).where(condition).values(**values))
                if result.rowcount != 1:
                    session.rollback()
                    logger.debug("Guarded update on job %s matched no row", job_id)
                    return False
                session.commit()
                return True
        except SQLAlchemyError as exc:
            raise DatabaseError(f"Could not update job {job_id}: {exc}") from exc


def _to_job(row: JobRecord) -> Job:
    return Job(
        job_id=row.job_id,
        owner_id=row.owner_id,
        status=JobStatus(row.status),
        inputs=CustomizeResumeRequest.model_validate_json(row.inputs_json),
        attempts=row.attempts,
        max_attempts=row.max_attempts,
        lease_token=row.lease_token,
        lease_expires_at=_from_db(row.lease_expires_at),
        available_at=_from_db(row.available_at),
        result=row.result,
        formatted_result=row.formatted_result,
        result_mime_type=row.result_mime_type,
        error=row.error,
        metadata=json.loads(row.metadata_json) if row.metadata_json else {},
        created_at=_from_db(row.created_at),
        started_at=_from_db(row.started_at),
        completed_at=_from_db(row.completed_at),
    )
