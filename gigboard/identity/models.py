"""Client and Worker identity records."""

from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from gigboard.geo import Address
from gigboard.skills import is_known_skill

MAX_BIO_LENGTH = 500


class Role(str, Enum):
    CLIENT = "client"
    WORKER = "worker"
    ADMIN = "admin"


class VerificationStatus(str, Enum):
    """Identity document review state."""

    PENDING = "pending"
    VERIFIED = "verified"
    REJECTED = "rejected"


def _parse_dt(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


@dataclass
class IdentityDocument:
    """Aadhaar submission attached to a profile."""

    number: Optional[str] = None
    document_url: Optional[str] = None
    document_handle: Optional[str] = None
    verification_status: Optional[str] = None
    submitted_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "number": self.number,
            "document_url": self.document_url,
            "document_handle": self.document_handle,
            "verification_status": self.verification_status,
            "submitted_at": self.submitted_at.isoformat() if self.submitted_at else None,
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "IdentityDocument":
        data = data or {}
        return cls(
            number=data.get("number"),
            document_url=data.get("document_url"),
            document_handle=data.get("document_handle"),
            verification_status=data.get("verification_status"),
            submitted_at=_parse_dt(data.get("submitted_at")),
        )


@dataclass
class User:
    """Fields shared by clients and workers."""

    id: str
    name: str
    email: str
    phone: str
    password_hash: str
    email_verified: bool = False
    phone_verified: bool = False
    address: Address = field(default_factory=Address)
    profile_picture_url: Optional[str] = None
    profile_picture_handle: Optional[str] = None
    aadhaar: IdentityDocument = field(default_factory=IdentityDocument)
    blocked: bool = False
    is_temporary: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    role = Role.CLIENT

    def __post_init__(self):
        if not self.name or not self.name.strip():
            raise ValueError("Name is required")
        self.name = self.name.strip()
        self.email = self.email.strip().lower()
        if isinstance(self.address, dict):
            self.address = Address.from_dict(self.address)
        if isinstance(self.aadhaar, dict):
            self.aadhaar = IdentityDocument.from_dict(self.aadhaar)

    def to_dict(self) -> Dict[str, Any]:
        data = {f.name: getattr(self, f.name) for f in fields(self)}
        data["address"] = self.address.to_dict()
        data["aadhaar"] = self.aadhaar.to_dict()
        for key in ("created_at", "updated_at"):
            data[key] = data[key].isoformat() if data[key] else None
        return data

    def to_public_dict(self) -> Dict[str, Any]:
        """Profile view without credentials."""
        data = self.to_dict()
        data.pop("password_hash", None)
        data["role"] = self.role.value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]):
        known = {f.name for f in fields(cls)}
        values = {k: v for k, v in data.items() if k in known}
        values["address"] = Address.from_dict(data.get("address"))
        values["aadhaar"] = IdentityDocument.from_dict(data.get("aadhaar"))
        for key in ("created_at", "updated_at"):
            values[key] = _parse_dt(values.get(key))
        return cls(**values)


@dataclass
class Client(User):
    role = Role.CLIENT


@dataclass
class Worker(User):
    skills: List[str] = field(default_factory=list)
    experience: Optional[int] = None
    bio: Optional[str] = None
    completed_jobs: int = 0

    role = Role.WORKER

    def __post_init__(self):
        super().__post_init__()
        unknown = [s for s in self.skills if not is_known_skill(s)]
        if unknown:
            raise ValueError(f"Unknown skills: {', '.join(unknown)}")
        if self.experience is not None and self.experience < 0:
            raise ValueError("Experience cannot be negative")
        if self.bio and len(self.bio) > MAX_BIO_LENGTH:
            raise ValueError(f"Bio too long (max {MAX_BIO_LENGTH} chars)")

    def has_skill(self, skill: str) -> bool:
        return skill in self.skills


def utc_now() -> datetime:
    return datetime.now(timezone.utc)
