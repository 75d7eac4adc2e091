"""
Identity storage layer.

Clients and workers live in separate collections; most lookups take the role
so the backend knows which one to hit.
"""

import copy
import dataclasses
import threading
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Protocol, Union

from gigboard.identity.models import Client, Role, Worker
from gigboard.errors import DuplicateRecordError

AnyUser = Union[Client, Worker]


def role_value(role: Union[Role, str]) -> str:
    return role.value if isinstance(role, Role) else str(role)


class IdentityStorage(Protocol):
    """Protocol for identity persistence backends."""

    def insert_user(self, user: AnyUser) -> AnyUser:
        """Insert a client or worker. Raises DuplicateRecordError on email/phone clash."""
        ...

    def get_user(self, role: Union[Role, str], user_id: str) -> Optional[AnyUser]:
        ...

    def get_worker(self, worker_id: str) -> Optional[Worker]:
        ...

    def get_client(self, client_id: str) -> Optional[Client]:
        ...

    def find_by_email(self, email: str, role: Union[Role, str, None] = None) -> Optional[AnyUser]:
        """Look up by email, across both roles unless one is given."""
        ...

    def find_by_contact(
        self, role: Union[Role, str], email: Optional[str], phone: Optional[str]
    ) -> Optional[AnyUser]:
        """First user of ``role`` matching the email or the phone."""
        ...

    def update_user(
        self, role: Union[Role, str], user_id: str, changes: Mapping[str, Any]
    ) -> Optional[AnyUser]:
        ...

    def delete_user(self, role: Union[Role, str], user_id: str) -> bool:
        ...

    def increment_completed_jobs(self, worker_id: str) -> None:
        """Bump a worker's completed-job counter (best effort, not transactional)."""
        ...

    def list_users(
        self,
        role: Union[Role, str],
        blocked: Optional[bool] = None,
        verification_status: Optional[str] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[AnyUser]:
        ...

    def count_users(
        self, role: Union[Role, str], verification_status: Optional[str] = None
    ) -> int:
        ...

    def count_workers_by_skill(self) -> Dict[str, int]:
        ...


class InMemoryIdentityStorage:
    """In-memory identity storage for testing and local development."""

    def __init__(self):
        self._users: Dict[str, Dict[str, AnyUser]] = {Role.CLIENT.value: {}, Role.WORKER.value: {}}
        self._lock = threading.RLock()

    def _table(self, role: Union[Role, str]) -> Dict[str, AnyUser]:
        return self._users[role_value(role)]

    def insert_user(self, user: AnyUser) -> AnyUser:
        with self._lock:
            table = self._table(user.role)
            for existing in table.values():
                if existing.email == user.email or existing.phone == user.phone:
                    raise DuplicateRecordError("A user with this email or phone already exists")
            now = datetime.now(timezone.utc)
            stored = dataclasses.replace(user, created_at=user.created_at or now, updated_at=now)
            table[stored.id] = stored
            return copy.deepcopy(stored)

    def get_user(self, role: Union[Role, str], user_id: str) -> Optional[AnyUser]:
        with self._lock:
            user = self._table(role).get(user_id)
            return copy.deepcopy(user) if user else None

    def get_worker(self, worker_id: str) -> Optional[Worker]:
        return self.get_user(Role.WORKER, worker_id)

    def get_client(self, client_id: str) -> Optional[Client]:
        return self.get_user(Role.CLIENT, client_id)

    def find_by_email(self, email: str, role: Union[Role, str, None] = None) -> Optional[AnyUser]:
        email = email.strip().lower()
        roles = [role_value(role)] if role else [Role.CLIENT.value, Role.WORKER.value]
        with self._lock:
            for name in roles:
                for user in self._users[name].values():
                    if user.email == email:
                        return copy.deepcopy(user)
            return None

    def find_by_contact(
        self, role: Union[Role, str], email: Optional[str], phone: Optional[str]
    ) -> Optional[AnyUser]:
        email = email.strip().lower() if email else None
        with self._lock:
            for user in self._table(role).values():
                if (email and user.email == email) or (phone and user.phone == phone):
                    return copy.deepcopy(user)
            return None

    def update_user(
        self, role: Union[Role, str], user_id: str, changes: Mapping[str, Any]
    ) -> Optional[AnyUser]:
        with self._lock:
            table = self._table(role)
            user = table.get(user_id)
            if user is None:
                return None
            updated = dataclasses.replace(
                user, **{**changes, "updated_at": datetime.now(timezone.utc)}
            )
            table[user_id] = updated
            return copy.deepcopy(updated)

    def delete_user(self, role: Union[Role, str], user_id: str) -> bool:
        with self._lock:
            return self._table(role).pop(user_id, None) is not None

    def increment_completed_jobs(self, worker_id: str) -> None:
        with self._lock:
            worker = self._table(Role.WORKER).get(worker_id)
            if worker is not None:
                worker.completed_jobs += 1

    def list_users(
        self,
        role: Union[Role, str],
        blocked: Optional[bool] = None,
        verification_status: Optional[str] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[AnyUser]:
        with self._lock:
            users = list(self._table(role).values())
            if blocked is not None:
                users = [u for u in users if u.blocked == blocked]
            if verification_status is not None:
                users = [u for u in users if u.aadhaar.verification_status == verification_status]
            users.sort(key=lambda u: u.created_at or datetime.min.replace(tzinfo=timezone.utc), reverse=True)
            end = None if limit is None else offset + limit
            return copy.deepcopy(users[offset:end])

    def count_users(
        self, role: Union[Role, str], verification_status: Optional[str] = None
    ) -> int:
        return len(self.list_users(role, verification_status=verification_status))

    def count_workers_by_skill(self) -> Dict[str, int]:
        with self._lock:
            counts: Dict[str, int] = {}
            for worker in self._table(Role.WORKER).values():
                for skill in worker.skills:
                    counts[skill] = counts.get(skill, 0) + 1
            return counts
