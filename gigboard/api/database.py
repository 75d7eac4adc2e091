"""Database utilities for Supabase integration.

Storage adapters implementing the lifecycle, identity and OTP storage
protocols on top of PostgREST. A conditional write is one ``update()`` or
``delete()`` call with the predicate chained as ``.eq()/.is_()/.in_()``
filters, which PostgREST executes as a single SQL statement.
"""

from dataclasses import asdict, is_dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from postgrest.exceptions import APIError
from supabase import Client, create_client

from gigboard.errors import DuplicateRecordError
from gigboard.geo import Address
from gigboard.identity.models import Client as ClientUser
from gigboard.identity.models import IdentityDocument, Role, Worker
from gigboard.identity.otp import OTPRecord
from gigboard.identity.storage import AnyUser, role_value
from gigboard.lifecycle.models import Job, JobStateTransition, Review
from gigboard.logging_config import get_logger

from .config import Settings, get_settings

logger = get_logger("gigboard.database")

_supabase_client: Client | None = None


def get_supabase_client(settings: Settings | None = None) -> Client:
    """Get cached Supabase client."""
    global _supabase_client
    if _supabase_client is None:
        if settings is None:
            settings = get_settings()
        if not settings.supabase_url or not settings.supabase_secret_key:
            raise ValueError("SUPABASE_URL and SUPABASE_SECRET_KEY must be set")
        _supabase_client = create_client(settings.supabase_url, settings.supabase_secret_key)
    return _supabase_client


# =============================================================================
# Table Names
# =============================================================================

JOBS_TABLE = "jobs"
JOB_TRANSITIONS_TABLE = "job_state_transitions"
REVIEWS_TABLE = "reviews"
CLIENTS_TABLE = "clients"
WORKERS_TABLE = "workers"
OTPS_TABLE = "otps"

UNIQUE_VIOLATION = "23505"


# =============================================================================
# Helpers
# =============================================================================


def _to_column(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (Address, IdentityDocument)):
        return value.to_dict()
    if is_dataclass(value) and not isinstance(value, type):
        return asdict(value)
    return value


def to_row(changes: Mapping[str, Any]) -> Dict[str, Any]:
    """Convert domain values to JSON-friendly column values."""
    return {key: _to_column(value) for key, value in changes.items()}


def apply_expected(query, expected: Mapping[str, Any]):
    """Chain a conditional-write predicate onto a PostgREST query."""
    for name, wanted in expected.items():
        if wanted is None:
            query = query.is_(name, "null")
        elif isinstance(wanted, (tuple, list, set, frozenset)):
            query = query.in_(name, [_to_column(v) for v in wanted])
        else:
            query = query.eq(name, _to_column(wanted))
    return query


def _is_unique_violation(error: APIError) -> bool:
    return getattr(error, "code", None) == UNIQUE_VIOLATION


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _window(query, limit: Optional[int], offset: int):
    if limit is not None:
        return query.range(offset, offset + limit - 1)
    if offset:
        return query.range(offset, offset + 10_000)
    return query


# =============================================================================
# Jobs
# =============================================================================


class SupabaseJobStorage:
    """Jobs and their transition log in Postgres."""

    def __init__(self, db: Client):
        self.db = db

    def insert_job(self, job: Job) -> Job:
        row = job.to_dict()
        now = _utc_now()
        row["created_at"] = row["created_at"] or now
        row["updated_at"] = row["updated_at"] or now
        try:
            result = self.db.table(JOBS_TABLE).insert(row).execute()
        except APIError as e:
            if _is_unique_violation(e):
                raise DuplicateRecordError(f"Job {job.id} already exists") from e
            raise
        return Job.from_dict(result.data[0])

    def get_job(self, job_id: str) -> Optional[Job]:
        result = self.db.table(JOBS_TABLE).select("*").eq("id", job_id).execute()
        return Job.from_dict(result.data[0]) if result.data else None

    def update_job_where(
        self, job_id: str, expected: Mapping[str, Any], changes: Mapping[str, Any]
    ) -> Optional[Job]:
        data = {**to_row(changes), "updated_at": _utc_now()}
        query = self.db.table(JOBS_TABLE).update(data).eq("id", job_id)
        result = apply_expected(query, expected).execute()
        return Job.from_dict(result.data[0]) if result.data else None

    def delete_job_where(self, job_id: str, expected: Mapping[str, Any]) -> Optional[Job]:
        query = self.db.table(JOBS_TABLE).delete().eq("id", job_id)
        result = apply_expected(query, expected).execute()
        return Job.from_dict(result.data[0]) if result.data else None

    def _filtered(
        self,
        query,
        statuses: Optional[Sequence[str]] = None,
        client_id: Optional[str] = None,
        worker_id: Optional[str] = None,
        skills: Optional[Sequence[str]] = None,
        urgent_only: bool = False,
        unassigned_only: bool = False,
    ):
        if statuses is not None:
            query = query.in_("status", list(statuses))
        if client_id is not None:
            query = query.eq("client_id", client_id)
        if worker_id is not None:
            query = query.eq("worker_id", worker_id)
        if skills is not None:
            query = query.in_("skill", list(skills))
        if urgent_only:
            query = query.eq("urgency", True)
        if unassigned_only:
            query = query.is_("worker_id", "null")
        return query

    def list_jobs(
        self,
        statuses: Optional[Sequence[str]] = None,
        client_id: Optional[str] = None,
        worker_id: Optional[str] = None,
        skills: Optional[Sequence[str]] = None,
        urgent_only: bool = False,
        unassigned_only: bool = False,
        order_by: str = "created_at",
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[Job]:
        if (statuses is not None and not statuses) or (skills is not None and not skills):
            return []
        query = self._filtered(
            self.db.table(JOBS_TABLE).select("*"),
            statuses, client_id, worker_id, skills, urgent_only, unassigned_only,
        )
        query = _window(query.order(order_by, desc=True), limit, offset)
        result = query.execute()
        return [Job.from_dict(row) for row in result.data or []]

    def count_jobs(
        self,
        statuses: Optional[Sequence[str]] = None,
        client_id: Optional[str] = None,
        worker_id: Optional[str] = None,
    ) -> int:
        if statuses is not None and not statuses:
            return 0
        query = self._filtered(
            self.db.table(JOBS_TABLE).select("id", count="exact"), statuses, client_id, worker_id
        )
        result = query.execute()
        return result.count or 0

    def _tally(self, column: str, client_id: Optional[str] = None) -> Dict[str, int]:
        query = self.db.table(JOBS_TABLE).select(column)
        if client_id is not None:
            query = query.eq("client_id", client_id)
        counts: Dict[str, int] = {}
        for row in query.execute().data or []:
            counts[row[column]] = counts.get(row[column], 0) + 1
        return counts

    def count_jobs_by_status(self, client_id: Optional[str] = None) -> Dict[str, int]:
        return self._tally("status", client_id)

    def count_jobs_by_skill(self) -> Dict[str, int]:
        return self._tally("skill")

    def save_transition(self, transition: JobStateTransition) -> str:
        self.db.table(JOB_TRANSITIONS_TABLE).insert(transition.to_dict()).execute()
        return transition.id

    def get_transitions(self, job_id: str) -> List[JobStateTransition]:
        result = (
            self.db.table(JOB_TRANSITIONS_TABLE)
            .select("*")
            .eq("job_id", job_id)
            .order("created_at")
            .execute()
        )
        return [JobStateTransition.from_dict(row) for row in result.data or []]


# =============================================================================
# Reviews
# =============================================================================


class SupabaseReviewStorage:
    """Reviews, with a unique (job_id, review_type) constraint in the table."""

    def __init__(self, db: Client):
        self.db = db

    def insert_review(self, review: Review) -> Review:
        row = review.to_dict()
        row["created_at"] = row["created_at"] or _utc_now()
        try:
            result = self.db.table(REVIEWS_TABLE).insert(row).execute()
        except APIError as e:
            if _is_unique_violation(e):
                raise DuplicateRecordError(
                    f"Review {review.review_type} already exists for job {review.job_id}"
                ) from e
            raise
        return Review.from_dict(result.data[0])

    def get_review(self, job_id: str, review_type: str) -> Optional[Review]:
        result = (
            self.db.table(REVIEWS_TABLE)
            .select("*")
            .eq("job_id", job_id)
            .eq("review_type", review_type)
            .execute()
        )
        return Review.from_dict(result.data[0]) if result.data else None

    def list_reviews(
        self,
        job_ids: Optional[Sequence[str]] = None,
        review_type: Optional[str] = None,
        worker_id: Optional[str] = None,
        client_id: Optional[str] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[Review]:
        if job_ids is not None and not job_ids:
            return []
        query = self.db.table(REVIEWS_TABLE).select("*")
        if job_ids is not None:
            query = query.in_("job_id", list(job_ids))
        if review_type is not None:
            query = query.eq("review_type", review_type)
        if worker_id is not None:
            query = query.eq("worker_id", worker_id)
        if client_id is not None:
            query = query.eq("client_id", client_id)
        query = _window(query.order("created_at", desc=True), limit, offset)
        return [Review.from_dict(row) for row in query.execute().data or []]

    def count_reviews(self) -> int:
        result = self.db.table(REVIEWS_TABLE).select("id", count="exact").execute()
        return result.count or 0

    def delete_review(self, review_id: str) -> bool:
        result = self.db.table(REVIEWS_TABLE).delete().eq("id", review_id).execute()
        return bool(result.data)


# =============================================================================
# Identity
# =============================================================================


def _table_for(role: Union[Role, str]) -> str:
    return CLIENTS_TABLE if role_value(role) == Role.CLIENT.value else WORKERS_TABLE


def _user_from_row(role: Union[Role, str], row: Dict[str, Any]) -> AnyUser:
    model = ClientUser if role_value(role) == Role.CLIENT.value else Worker
    return model.from_dict(row)


class SupabaseIdentityStorage:
    """Clients and workers in two tables."""

    def __init__(self, db: Client):
        self.db = db

    def insert_user(self, user: AnyUser) -> AnyUser:
        row = user.to_dict()
        now = _utc_now()
        row["created_at"] = row["created_at"] or now
        row["updated_at"] = now
        try:
            result = self.db.table(_table_for(user.role)).insert(row).execute()
        except APIError as e:
            if _is_unique_violation(e):
                raise DuplicateRecordError("A user with this email or phone already exists") from e
            raise
        return _user_from_row(user.role, result.data[0])

    def get_user(self, role: Union[Role, str], user_id: str) -> Optional[AnyUser]:
        result = self.db.table(_table_for(role)).select("*").eq("id", user_id).execute()
        return _user_from_row(role, result.data[0]) if result.data else None

    def get_worker(self, worker_id: str) -> Optional[Worker]:
        return self.get_user(Role.WORKER, worker_id)

    def get_client(self, client_id: str) -> Optional[ClientUser]:
        return self.get_user(Role.CLIENT, client_id)

    def _find_one(self, role: Union[Role, str], column: str, value: str) -> Optional[AnyUser]:
        result = (
            self.db.table(_table_for(role)).select("*").eq(column, value).limit(1).execute()
        )
        return _user_from_row(role, result.data[0]) if result.data else None

    def find_by_email(self, email: str, role: Union[Role, str, None] = None) -> Optional[AnyUser]:
        email = email.strip().lower()
        roles = [role_value(role)] if role else [Role.CLIENT.value, Role.WORKER.value]
        for name in roles:
            user = self._find_one(name, "email", email)
            if user is not None:
                return user
        return None

    def find_by_contact(
        self, role: Union[Role, str], email: Optional[str], phone: Optional[str]
    ) -> Optional[AnyUser]:
        if email:
            user = self._find_one(role, "email", email.strip().lower())
            if user is not None:
                return user
        if phone:
            return self._find_one(role, "phone", phone)
        return None

    def update_user(
        self, role: Union[Role, str], user_id: str, changes: Mapping[str, Any]
    ) -> Optional[AnyUser]:
        current = self.get_user(role, user_id)
        if current is None:
            return None
        # Validate through the model before writing
        _user_from_row(role, {**current.to_dict(), **to_row(changes)})
        data = {**to_row(changes), "updated_at": _utc_now()}
        result = self.db.table(_table_for(role)).update(data).eq("id", user_id).execute()
        return _user_from_row(role, result.data[0]) if result.data else None

    def delete_user(self, role: Union[Role, str], user_id: str) -> bool:
        result = self.db.table(_table_for(role)).delete().eq("id", user_id).execute()
        return bool(result.data)

    def increment_completed_jobs(self, worker_id: str) -> None:
        # Read-modify-write; the counter is informational only
        worker = self.get_worker(worker_id)
        if worker is None:
            return
        self.db.table(WORKERS_TABLE).update(
            {"completed_jobs": worker.completed_jobs + 1}
        ).eq("id", worker_id).execute()

    def _users_query(self, role, select: str, blocked=None, verification_status=None, count=None):
        query = self.db.table(_table_for(role)).select(select, count=count)
        if blocked is not None:
            query = query.eq("blocked", blocked)
        if verification_status is not None:
            query = query.eq("aadhaar->>verification_status", verification_status)
        return query

    def list_users(
        self,
        role: Union[Role, str],
        blocked: Optional[bool] = None,
        verification_status: Optional[str] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[AnyUser]:
        query = self._users_query(role, "*", blocked, verification_status)
        query = _window(query.order("created_at", desc=True), limit, offset)
        return [_user_from_row(role, row) for row in query.execute().data or []]

    def count_users(
        self, role: Union[Role, str], verification_status: Optional[str] = None
    ) -> int:
        query = self._users_query(role, "id", verification_status=verification_status, count="exact")
        return query.execute().count or 0

    def count_workers_by_skill(self) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for row in self.db.table(WORKERS_TABLE).select("skills").execute().data or []:
            for skill in row.get("skills") or []:
                counts[skill] = counts.get(skill, 0) + 1
        return counts


# =============================================================================
# OTP
# =============================================================================


class SupabaseOTPStorage:
    """One row per (subject, purpose)."""

    MAX_CAS_RETRIES = 3

    def __init__(self, db: Client):
        self.db = db

    def get(self, subject: str, purpose: str) -> Optional[OTPRecord]:
        result = (
            self.db.table(OTPS_TABLE)
            .select("*")
            .eq("subject", subject)
            .eq("purpose", purpose)
            .execute()
        )
        return OTPRecord.from_dict(result.data[0]) if result.data else None

    def put(self, record: OTPRecord) -> None:
        self.db.table(OTPS_TABLE).upsert(
            record.to_dict(), on_conflict="subject,purpose"
        ).execute()

    def increment_attempts(self, subject: str, purpose: str) -> Optional[OTPRecord]:
        for _ in range(self.MAX_CAS_RETRIES):
            record = self.get(subject, purpose)
            if record is None:
                return None
            result = (
                self.db.table(OTPS_TABLE)
                .update({"attempts": record.attempts + 1})
                .eq("subject", subject)
                .eq("purpose", purpose)
                .eq("attempts", record.attempts)
                .execute()
            )
            if result.data:
                return OTPRecord.from_dict(result.data[0])
        logger.warning(f"OTP attempt counter contended | purpose={purpose}")
        return self.get(subject, purpose)

    def delete(self, subject: str, purpose: str) -> None:
        self.db.table(OTPS_TABLE).delete().eq("subject", subject).eq("purpose", purpose).execute()
