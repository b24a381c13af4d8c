from sqlalchemy import Column, String, ForeignKey, Text, DateTime, Enum as SQLEnum, Uuid
from roof_finder.db.base import Base, TimestampMixin
from enum import Enum
import uuid


class TaskStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class TaskPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class Task(Base, TimestampMixin):
    __tablename__ = "tasks"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    category = Column(String(50), nullable=True)
    status = Column(SQLEnum(TaskStatus), default=TaskStatus.PENDING)
    priority = Column(SQLEnum(TaskPriority), default=TaskPriority.MEDIUM)
    due_date = Column(DateTime(timezone=True), nullable=False)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    # Optional links; a follow-up may exist before any CRM record does
    account_id = Column(Uuid, nullable=True)
    property_id = Column(Uuid, ForeignKey("properties.id"), nullable=True)
    prospect_id = Column(Uuid, ForeignKey("prospects.id"), nullable=True)
    roof_lead_id = Column(Uuid, ForeignKey("roof_leads.id", ondelete="SET NULL"), nullable=True, index=True)
    assigned_by = Column(Uuid, nullable=True)
