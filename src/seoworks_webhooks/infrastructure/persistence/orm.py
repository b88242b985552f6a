from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Enum,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import registry

from seoworks_webhooks.domain.model import (
    OrphanedTask,
    PackageType,
    RequestStatus,
    SeoRequest,
    User,
)

# SQLAlchemy 2.0 style metadata
metadata = MetaData()
mapper_registry = registry(metadata=metadata)


requests_table = Table(
    "requests",
    mapper_registry.metadata,
    Column("request_id", String(64), primary_key=True),
    Column("user_id", String(64), nullable=True, index=True),
    Column("title", String(500), nullable=False, default=""),
    Column("status", Enum(RequestStatus, name="request_status"), nullable=False),
    Column("package_type", Enum(PackageType, name="package_type"), nullable=True),
    Column("dealership_id", String(64), nullable=True, index=True),
    Column("agency_id", String(64), nullable=True),
    Column("seoworks_task_id", String(128), nullable=True, unique=True),
    Column("pages_completed", Integer, nullable=False, default=0),
    Column("blogs_completed", Integer, nullable=False, default=0),
    Column("gbp_posts_completed", Integer, nullable=False, default=0),
    Column("improvements_completed", Integer, nullable=False, default=0),
    # list of CompletedTaskRecord.to_dict()
    Column("completed_tasks", JSON, nullable=False, default=list),
    Column("completed_at", DateTime(timezone=True), nullable=True),
    Column(
        "updated_at",
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    ),
)

users_table = Table(
    "users",
    mapper_registry.metadata,
    Column("user_id", String(64), primary_key=True),
    Column("email", String(255), nullable=True),
    Column("name", String(255), nullable=True),
    Column("agency_id", String(64), nullable=True),
    Column("dealership_id", String(64), nullable=True),
    Column("email_notifications", Boolean, nullable=False, default=True),
    Column("notify_task_completed", Boolean, nullable=False, default=True),
    Column("notify_status_changed", Boolean, nullable=False, default=True),
)

orphaned_tasks_table = Table(
    "orphaned_tasks",
    mapper_registry.metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("external_id", String(128), nullable=False, index=True),
    Column("event_type", String(64), nullable=False),
    Column("task_type", String(64), nullable=False),
    Column("status", String(64), nullable=False),
    Column("client_id", String(64), nullable=True, index=True),
    Column("client_email", String(255), nullable=True, index=True),
    Column("completion_date", String(64), nullable=True),
    Column("deliverables", JSON, nullable=True),
    Column("processed", Boolean, nullable=False, default=False),
    Column("linked_request_id", String(64), nullable=True),
    Column("notes", Text, nullable=False, default=""),
    Column("created_at", DateTime(timezone=True), server_default=func.now(), nullable=False),
)

# Usage counters are only touched through Core statements so increments stay atomic.
usage_counters_table = Table(
    "usage_counters",
    mapper_registry.metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("scope_type", String(20), nullable=False),
    Column("scope_id", String(64), nullable=False),
    Column("pages_used", Integer, nullable=False, default=0),
    Column("blogs_used", Integer, nullable=False, default=0),
    Column("gbp_posts_used", Integer, nullable=False, default=0),
    Column("improvements_used", Integer, nullable=False, default=0),
    Column("period_start", DateTime(timezone=True), nullable=False),
    Column("period_end", DateTime(timezone=True), nullable=False),
    UniqueConstraint("scope_type", "scope_id", name="uq_usage_counters_scope"),
)

monthly_usage_table = Table(
    "monthly_usage",
    mapper_registry.metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("scope_type", String(20), nullable=False),
    Column("scope_id", String(64), nullable=False, index=True),
    Column("year", Integer, nullable=False),
    Column("month", Integer, nullable=False),
    Column("pages_used", Integer, nullable=False),
    Column("blogs_used", Integer, nullable=False),
    Column("gbp_posts_used", Integer, nullable=False),
    Column("improvements_used", Integer, nullable=False),
    Column("created_at", DateTime(timezone=True), server_default=func.now(), nullable=False),
)

processed_events_table = Table(
    "processed_webhook_events",
    mapper_registry.metadata,
    Column("event_key", String(100), primary_key=True),
    Column("external_id", String(128), nullable=False),
    Column("event_type", String(64), nullable=False),
    Column("processed_at", DateTime(timezone=True), server_default=func.now(), nullable=False),
)

_mapped = False


def start_mappers():
    """
    Map the domain classes onto their tables.
    Safe to call more than once; only the first call maps.
    """
    global _mapped
    if _mapped:
        return

    # The repository converts completed_tasks_json <-> CompletedTaskRecord
    mapper_registry.map_imperatively(
        SeoRequest,
        requests_table,
        properties={
            "completed_tasks_json": requests_table.c.completed_tasks,
        },
    )
    mapper_registry.map_imperatively(User, users_table)
    # created_at comes from the database; fetch it at flush so it never lazy loads
    mapper_registry.map_imperatively(OrphanedTask, orphaned_tasks_table, eager_defaults=True)
    _mapped = True
