# backend/tutordesk/models/family.py
"""
Family models for the tutordesk platform.

Parents and students are managed elsewhere; only their shape matters for
scheduling and billing. A parent belongs to exactly one tutor.
"""

import logging

from sqlalchemy import Column, DateTime, ForeignKey, Index, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import ulid

from ..database import Base

logger = logging.getLogger(__name__)


class Parent(Base):
    """A billed family account."""

    __tablename__ = "parents"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    tutor_id = Column(String(26), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=True)
    phone = Column(String(50), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    students = relationship(
        "Student", back_populates="parent", cascade="all, delete-orphan", order_by="Student.name"
    )
    payments = relationship("Payment", back_populates="parent", cascade="all, delete-orphan")

    def __repr__(self) -> str:
        return f"<Parent {self.id}: {self.name}>"


class Student(Base):
    __tablename__ = "students"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    parent_id = Column(String(26), ForeignKey("parents.id", ondelete="CASCADE"), nullable=False)
    name = Column(String(255), nullable=False)
    grade_level = Column(String(50), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    parent = relationship("Parent", back_populates="students")
    lessons = relationship("Lesson", back_populates="student", cascade="all, delete-orphan")

    __table_args__ = (Index("idx_students_parent_id", "parent_id"),)

    def __repr__(self) -> str:
        return f"<Student {self.id}: {self.name}>"
