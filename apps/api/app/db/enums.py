"""Enum definitions for application constants."""

from enum import Enum


class Role(str, Enum):
    """
    Account roles.

    - CLIENT: joins provider organizations via invite codes and owns tasks
    - SERVICE_PROVIDER: owns exactly one organization (agency)
    - MASTER_ADMIN: platform operator with unrestricted scope
    """
    CLIENT = "client"
    SERVICE_PROVIDER = "service_provider"
    MASTER_ADMIN = "master_admin"

    @classmethod
    def has_value(cls, value: str) -> bool:
        """Check if value is a valid role."""
        return value in cls._value2member_map_


# Roles a user may pick for themselves at signup
SELF_SERVICE_ROLES = (Role.CLIENT, Role.SERVICE_PROVIDER)


class AuthProvider(str, Enum):
    """Supported identity providers."""
    GOOGLE = "google"


class TaskStatus(str, Enum):
    """
    Task lifecycle.

    draft -> started -> done -> archive (providers may move freely).
    """
    DRAFT = "draft"
    STARTED = "started"
    DONE = "done"
    ARCHIVE = "archive"

    @classmethod
    def parse(cls, value: str) -> "TaskStatus":
        """Parse a status string, accepting legacy spellings.

        Raises:
            ValueError: unknown status
        """
        normalized = (value or "").strip().lower()
        normalized = LEGACY_TASK_STATUS_MAP.get(normalized, normalized)
        return cls(normalized)


# One-time mapping for statuses written by earlier releases
LEGACY_TASK_STATUS_MAP: dict[str, str] = {
    "in_progress": TaskStatus.STARTED.value,
    "completed": TaskStatus.DONE.value,
    "archived": TaskStatus.ARCHIVE.value,
    "pending": TaskStatus.DRAFT.value,
}


class MessageRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


class ProductStatus(str, Enum):
    """Progress of the asynchronous website analysis."""
    PENDING = "pending"
    ANALYZING = "analyzing"
    COMPLETED = "completed"
    FAILED = "failed"


class SubscriptionPlan(str, Enum):
    ONE_MONTH = "1_month"
    THREE_MONTH = "3_month"
    SIX_MONTH = "6_month"

    @property
    def months(self) -> int:
        return {"1_month": 1, "3_month": 3, "6_month": 6}[self.value]


class SubscriptionStatus(str, Enum):
    ACTIVE = "active"
    CANCELLED = "cancelled"


class StorageTier(str, Enum):
    """Where an uploaded file physically lives."""
    DRIVE = "drive"
    S3 = "s3"
    LOCAL = "local"


class BriefStatus(str, Enum):
    """Observable state of the brief compiled for a task."""
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class JobType(str, Enum):
    """Background job types."""
    GENERATE_BRIEF = "generate_brief"
    ANALYZE_PRODUCT = "analyze_product"


class JobStatus(str, Enum):
    """Background job status."""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


DEFAULT_TASK_STATUS = TaskStatus.DRAFT
DEFAULT_JOB_STATUS = JobStatus.PENDING
