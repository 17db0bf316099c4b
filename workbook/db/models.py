from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    MetaData,
    String,
    UniqueConstraint,
    CheckConstraint,
    func,
)
from sqlalchemy.orm import declarative_base, relationship

# Define naming conventions for constraints and indexes
convention = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}

metadata = MetaData(naming_convention=convention)
Base = declarative_base(metadata=metadata)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class User(Base):
    __tablename__ = "users"

    # Identifier issued by the external identity provider
    id = Column(String(128), primary_key=True)
    role = Column(String(20), nullable=False, default="sponsee")
    display_name = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())


class StepProgress(Base):
    __tablename__ = "step_progress"

    # "<user_id>_step<N>"
    id = Column(String(160), primary_key=True)
    user_id = Column(String(128), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    step_number = Column(Integer, nullable=False)
    part_number = Column(Integer, nullable=True)
    assignment_date = Column(DateTime(timezone=True), nullable=True)
    completion_date = Column(DateTime(timezone=True), nullable=True)
    data = Column(JSON, nullable=False, default=dict)
    last_updated = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    user = relationship("User")

    __table_args__ = (
        UniqueConstraint("user_id", "step_number", name="uq_step_progress_user_step"),
        CheckConstraint("step_number BETWEEN 1 AND 12", name="step_number_range"),
    )
