"""Recommendation model; one row per recommendation in a snapshot."""

import uuid

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, Float, Index, Integer, JSON, String, Text

from database import Base


class RecommendationRecord(Base):
    """Persisted recommendation. Rows sharing (target, created_at) form one snapshot."""

    __tablename__ = "recommendations"
    __table_args__ = (
        CheckConstraint("user_rating IS NULL OR (user_rating BETWEEN 1 AND 5)", name="ck_recommendations_rating"),
        Index("ix_recommendations_target_created", "target_id", "target_type", "created_at"),
    )

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    target_id = Column(String, nullable=False, index=True)
    target_type = Column(String, nullable=False)
    category = Column(String, nullable=False)
    priority = Column(String, nullable=False, index=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=False)
    action_items = Column(JSON, nullable=False)
    expected_impact = Column(JSON, nullable=False)
    confidence = Column(Float, nullable=False)
    generated_by = Column(String, nullable=False)
    reasoning = Column(Text, nullable=False, default="")
    prompt = Column(Text, nullable=False, default="")
    project_value = Column(Integer, nullable=True)
    status = Column(String, nullable=False, default="pending", index=True)
    implemented_at = Column(DateTime(timezone=True), nullable=True)
    implementation_notes = Column(Text, nullable=True)
    user_rating = Column(Integer, nullable=True)
    user_feedback = Column(Text, nullable=True)
    helpful = Column(Boolean, nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False)
