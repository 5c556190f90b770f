"""Channel algorithm score history."""

import uuid

from sqlalchemy import Column, DateTime, JSON, String, UniqueConstraint

from database import Base


class ChannelSnapshot(Base):
    """Algorithm score computed alongside a channel recommendation snapshot."""

    __tablename__ = "channel_snapshots"
    __table_args__ = (
        UniqueConstraint("channel_id", "created_at", name="uq_channel_snapshots_channel_created"),
    )

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    channel_id = Column(String, nullable=False, index=True)
    algorithm_score = Column(JSON, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False)
