"""SQLAlchemy ORM models for accounts, tenancy, tasks, catalog and jobs."""

import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    JSON, Boolean, ForeignKey, Index, Integer, Numeric, String, Text,
    UniqueConstraint, Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import Base
from app.db.enums import (
    DEFAULT_JOB_STATUS, DEFAULT_TASK_STATUS, ProductStatus, Role,
    SubscriptionStatus,
)
from app.db.types import utcnow


# =============================================================================
# Auth Models
# =============================================================================

class User(Base):
    """
    An account: client, service provider or master admin.

    `role` is the stored role string; `is_master_admin` overrides it and
    grants unrestricted scope regardless of the stored value.
    """
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True, nullable=False)
    display_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    role: Mapped[str] = mapped_column(String(30), default=Role.CLIENT.value, nullable=False)
    is_master_admin: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    company_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    password_hash: Mapped[str | None] = mapped_column(String(255), nullable=True)
    token_version: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(default=utcnow, onupdate=utcnow, nullable=False)

    # Relationships (cascades implement the admin purge)
    identities: Mapped[list["AuthIdentity"]] = relationship(
        back_populates="user", cascade="all, delete-orphan"
    )
    organization: Mapped["Organization | None"] = relationship(
        back_populates="owner", cascade="all, delete-orphan", uselist=False
    )
    provider_links: Mapped[list["ClientProviderLink"]] = relationship(
        back_populates="client", cascade="all, delete-orphan"
    )
    tasks: Mapped[list["Task"]] = relationship(
        back_populates="owner", cascade="all, delete-orphan"
    )
    products: Mapped[list["Product"]] = relationship(
        back_populates="owner", cascade="all, delete-orphan"
    )


class AuthIdentity(Base):
    """Links a user to an external identity provider subject."""
    __tablename__ = "auth_identities"
    __table_args__ = (
        UniqueConstraint("provider", "provider_subject", name="uq_auth_identity"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    provider: Mapped[str] = mapped_column(String(30), nullable=False)
    provider_subject: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    user: Mapped["User"] = relationship(back_populates="identities")


# =============================================================================
# Tenancy Models
# =============================================================================

class Organization(Base):
    """
    A tenant owned by exactly one service-provider account.

    Clients join through `invite_code`; all tasks, products and catalog rows
    resolve back to an organization for access control.
    """
    __tablename__ = "organizations"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    owner_user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[str] = mapped_column(String(60), unique=True, nullable=False)
    service_id: Mapped[str] = mapped_column(String(20), unique=True, nullable=False)
    invite_code: Mapped[str] = mapped_column(String(32), unique=True, index=True, nullable=False)
    invite_link: Mapped[str] = mapped_column(String(500), nullable=False)

    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(default=utcnow, onupdate=utcnow, nullable=False)

    owner: Mapped["User"] = relationship(back_populates="organization")
    subscription: Mapped["Subscription | None"] = relationship(
        back_populates="organization", cascade="all, delete-orphan", uselist=False
    )
    client_links: Mapped[list["ClientProviderLink"]] = relationship(
        back_populates="organization", cascade="all, delete-orphan"
    )
    pricing_rules: Mapped[list["PricingRule"]] = relationship(cascade="all, delete-orphan")
    services: Mapped[list["Service"]] = relationship(cascade="all, delete-orphan")


class Subscription(Base):
    """
    Time-boxed plan attached one-to-one to an organization.

    Active means status == active and the period has not ended; expiry is a
    timestamp comparison, nothing flips the status when it lapses.
    """
    __tablename__ = "subscriptions"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("organizations.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    plan: Mapped[str] = mapped_column(String(20), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), default=SubscriptionStatus.ACTIVE.value, nullable=False
    )
    current_period_start: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    current_period_end: Mapped[datetime] = mapped_column(nullable=False)
    client_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    stripe_customer_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    stripe_checkout_session_id: Mapped[str | None] = mapped_column(String(255), nullable=True)

    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(default=utcnow, onupdate=utcnow, nullable=False)

    organization: Mapped["Organization"] = relationship(back_populates="subscription")

    def is_active(self, now: datetime | None = None) -> bool:
        now = now or utcnow()
        return (
            self.status == SubscriptionStatus.ACTIVE.value
            and self.current_period_end > now
        )


class ClientProviderLink(Base):
    """A client that joined an organization by redeeming its invite code."""
    __tablename__ = "client_provider_links"
    __table_args__ = (
        UniqueConstraint("client_user_id", "organization_id", name="uq_client_provider_link"),
        Index("idx_links_org", "organization_id", "joined_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    client_user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    organization_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )
    joined_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    client: Mapped["User"] = relationship(back_populates="provider_links")
    organization: Mapped["Organization"] = relationship(back_populates="client_links")


# =============================================================================
# Task Models
# =============================================================================

class Task(Base):
    """
    A unit of client work gathered through the chat assistant.

    The structured fields (client/product/deadline/price) are filled in by
    the extraction agent; status and final price are set by the provider.
    """
    __tablename__ = "tasks"
    __table_args__ = (
        Index("idx_tasks_org_owner", "organization_id", "owner_user_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    owner_user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    organization_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("organizations.id", ondelete="SET NULL"), nullable=True
    )

    title: Mapped[str] = mapped_column(String(255), default="New Task", nullable=False)
    client_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    client_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    product_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    product_description: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(
        String(20), default=DEFAULT_TASK_STATUS.value, nullable=False
    )
    deadline: Mapped[datetime | None] = mapped_column(nullable=True)
    estimated_price: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    final_price: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)

    # Brief job state
    brief_status: Mapped[str | None] = mapped_column(String(20), nullable=True)
    brief_url: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    brief_generated_at: Mapped[datetime | None] = mapped_column(nullable=True)
    brief_error: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(default=utcnow, onupdate=utcnow, nullable=False)

    owner: Mapped["User"] = relationship(back_populates="tasks")
    organization: Mapped["Organization | None"] = relationship()
    messages: Mapped[list["Message"]] = relationship(
        back_populates="task",
        cascade="all, delete-orphan",
        order_by=lambda: (Message.sequence, Message.created_at),
    )
    assets: Mapped[list["Asset"]] = relationship(
        back_populates="task",
        cascade="all, delete-orphan",
        order_by="Asset.created_at",
    )


class Message(Base):
    """Append-only transcript entry under a task."""
    __tablename__ = "messages"
    __table_args__ = (
        Index("idx_messages_task", "task_id", "created_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    task_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False
    )
    # Per-task position; breaks created_at ties
    sequence: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    role: Mapped[str] = mapped_column(String(20), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    image_urls: Mapped[list] = mapped_column(JSON, default=list, nullable=False)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    task: Mapped["Task"] = relationship(back_populates="messages")


class Asset(Base):
    """Uploaded file reference; the storage tier is recorded in metadata."""
    __tablename__ = "assets"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    task_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False
    )
    uploaded_by_user_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    filename: Mapped[str] = mapped_column(String(255), nullable=False)
    original_name: Mapped[str] = mapped_column(String(255), nullable=False)
    mime_type: Mapped[str] = mapped_column(String(100), nullable=False)
    size_bytes: Mapped[int] = mapped_column(Integer, nullable=False)
    url: Mapped[str] = mapped_column(String(1000), nullable=False)
    storage_tier: Mapped[str] = mapped_column(String(20), nullable=False)
    # "metadata" is reserved on declarative classes
    asset_metadata: Mapped[dict] = mapped_column("metadata", JSON, default=dict, nullable=False)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    task: Mapped["Task"] = relationship(back_populates="assets")


# =============================================================================
# Product & Catalog Models
# =============================================================================

class Product(Base):
    """A client's product whose website is analyzed into brand guidelines."""
    __tablename__ = "products"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    owner_user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    organization_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("organizations.id", ondelete="SET NULL"), nullable=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    website_url: Mapped[str] = mapped_column(String(1000), nullable=False)
    product_type: Mapped[str | None] = mapped_column(String(255), nullable=True)
    brand_guidelines: Mapped[str | None] = mapped_column(Text, nullable=True)
    analysis_data: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    status: Mapped[str] = mapped_column(
        String(20), default=ProductStatus.PENDING.value, nullable=False
    )

    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(default=utcnow, onupdate=utcnow, nullable=False)

    owner: Mapped["User"] = relationship(back_populates="products")


class PricingRule(Base):
    """Provider-managed price guidance row."""
    __tablename__ = "pricing_rules"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    category: Mapped[str] = mapped_column(String(100), nullable=False)
    base_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    min_price: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    max_price: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(default=utcnow, onupdate=utcnow, nullable=False)


class Service(Base):
    """Provider-managed service offering with matching keywords."""
    __tablename__ = "catalog_services"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    keywords: Mapped[list] = mapped_column(JSON, default=list, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(default=utcnow, onupdate=utcnow, nullable=False)


# =============================================================================
# Jobs
# =============================================================================

class Job(Base):
    """
    Background job for async processing.

    Used for: brief generation, product website analysis.
    Worker polls for pending jobs and processes them.
    """
    __tablename__ = "jobs"
    __table_args__ = (
        Index("idx_jobs_pending", "status", "run_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("organizations.id", ondelete="SET NULL"), nullable=True
    )

    job_type: Mapped[str] = mapped_column(String(50), nullable=False)
    payload: Mapped[dict] = mapped_column(JSON, default=dict, nullable=False)
    run_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), default=DEFAULT_JOB_STATUS.value, nullable=False
    )
    attempts: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    max_attempts: Mapped[int] = mapped_column(Integer, default=3, nullable=False)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)

    # Deduplication key; NULLs never collide
    idempotency_key: Mapped[str | None] = mapped_column(String(255), unique=True, nullable=True)
