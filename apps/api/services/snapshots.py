"""Snapshot persistence for recommendations and channel algorithm scores."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence

from sqlalchemy import delete, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from analysis.models import (
    ActionItem,
    AlgorithmScore,
    ImpactEstimate,
    Recommendation,
    RecommendationStats,
    RecommendationStatus,
    Snapshot,
    TargetType,
)
from models.channel_snapshot import ChannelSnapshot
from models.recommendation import RecommendationRecord
from services.recommendations import prioritize_recommendations

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS: Dict[RecommendationStatus, frozenset] = {
    RecommendationStatus.PENDING: frozenset(
        {
            RecommendationStatus.IN_PROGRESS,
            RecommendationStatus.IMPLEMENTED,
            RecommendationStatus.DISMISSED,
            RecommendationStatus.EXPIRED,
        }
    ),
    RecommendationStatus.IN_PROGRESS: frozenset(
        {
            RecommendationStatus.IMPLEMENTED,
            RecommendationStatus.DISMISSED,
            RecommendationStatus.EXPIRED,
        }
    ),
    RecommendationStatus.IMPLEMENTED: frozenset(),
    RecommendationStatus.DISMISSED: frozenset(),
    RecommendationStatus.EXPIRED: frozenset(),
}


class RecommendationNotFound(LookupError):
    def __init__(self, recommendation_id: str):
        super().__init__(f"Recommendation {recommendation_id} not found")
        self.recommendation_id = recommendation_id


class InvalidStatusTransition(ValueError):
    def __init__(self, current: RecommendationStatus, requested: RecommendationStatus):
        super().__init__(f"Cannot move recommendation from {current.value} to {requested.value}")
        self.current = current
        self.requested = requested


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _to_record(rec: Recommendation, created_at: datetime) -> RecommendationRecord:
    return RecommendationRecord(
        id=rec.id,
        target_id=rec.target_id,
        target_type=rec.target_type.value,
        category=rec.category.value,
        priority=rec.priority.value,
        title=rec.title,
        description=rec.description,
        action_items=[item.model_dump(mode="json") for item in rec.action_items],
        expected_impact=rec.expected_impact.model_dump(mode="json"),
        confidence=rec.confidence,
        generated_by=rec.generated_by,
        reasoning=rec.reasoning,
        prompt=rec.prompt,
        project_value=rec.project_value,
        status=rec.status.value,
        implemented_at=_as_utc(rec.implemented_at),
        implementation_notes=rec.implementation_notes,
        user_rating=rec.user_rating,
        user_feedback=rec.user_feedback,
        helpful=rec.helpful,
        expires_at=_as_utc(rec.expires_at),
        created_at=created_at,
    )


def _to_recommendation(row: RecommendationRecord) -> Recommendation:
    return Recommendation(
        id=row.id,
        target_id=row.target_id,
        target_type=row.target_type,
        category=row.category,
        priority=row.priority,
        title=row.title,
        description=row.description,
        action_items=[ActionItem.model_validate(item) for item in row.action_items or []],
        expected_impact=ImpactEstimate.model_validate(row.expected_impact),
        confidence=row.confidence,
        generated_by=row.generated_by,
        reasoning=row.reasoning or "",
        prompt=row.prompt or "",
        project_value=row.project_value,
        status=row.status,
        implemented_at=_as_utc(row.implemented_at),
        implementation_notes=row.implementation_notes,
        user_rating=row.user_rating,
        user_feedback=row.user_feedback,
        helpful=row.helpful,
        expires_at=_as_utc(row.expires_at),
        created_at=_as_utc(row.created_at),
    )


class SnapshotStore:
    """Reads and writes recommendation snapshots through one AsyncSession.

    A snapshot is every recommendation row for a target that shares one
    `created_at`. Channel snapshots also carry a score row with the same
    timestamp.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def save_snapshot(
        self,
        target_id: str,
        target_type: TargetType,
        score: Optional[AlgorithmScore],
        recommendations: Sequence[Recommendation],
        timestamp: Optional[datetime] = None,
    ) -> datetime:
        """Write all rows for one snapshot in a single transaction."""
        target_type = TargetType(target_type)
        created_at = _as_utc(timestamp) or datetime.now(timezone.utc)

        try:
            for rec in recommendations:
                self.session.add(_to_record(rec, created_at))

            if target_type == TargetType.CHANNEL and score is not None:
                await self._upsert_channel_score(target_id, score, created_at)

            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

        for rec in recommendations:
            rec.created_at = created_at

        logger.info(
            "Saved snapshot for %s %s: %d recommendations at %s",
            target_type.value,
            target_id,
            len(recommendations),
            created_at.isoformat(),
        )
        return created_at

    async def _upsert_channel_score(self, channel_id: str, score: AlgorithmScore, created_at: datetime) -> None:
        result = await self.session.execute(
            select(ChannelSnapshot).where(
                ChannelSnapshot.channel_id == channel_id,
                ChannelSnapshot.created_at == created_at,
            )
        )
        row = result.scalar_one_or_none()
        payload = score.model_dump(mode="json")
        if row is None:
            self.session.add(ChannelSnapshot(channel_id=channel_id, algorithm_score=payload, created_at=created_at))
        else:
            row.algorithm_score = payload

    async def _latest_timestamp(self, target_id: str, target_type: TargetType) -> Optional[datetime]:
        result = await self.session.execute(
            select(func.max(RecommendationRecord.created_at)).where(
                RecommendationRecord.target_id == target_id,
                RecommendationRecord.target_type == target_type.value,
            )
        )
        return result.scalar_one_or_none()

    async def get_latest_snapshot(self, target_id: str, target_type: TargetType) -> Optional[Snapshot]:
        target_type = TargetType(target_type)
        latest = await self._latest_timestamp(target_id, target_type)
        if latest is None:
            return None

        result = await self.session.execute(
            select(RecommendationRecord).where(
                RecommendationRecord.target_id == target_id,
                RecommendationRecord.target_type == target_type.value,
                RecommendationRecord.created_at == latest,
            )
        )
        recommendations = [_to_recommendation(row) for row in result.scalars().all()]

        score = None
        if target_type == TargetType.CHANNEL:
            score_result = await self.session.execute(
                select(ChannelSnapshot).where(
                    ChannelSnapshot.channel_id == target_id,
                    ChannelSnapshot.created_at == latest,
                )
            )
            score_row = score_result.scalar_one_or_none()
            if score_row is not None:
                score = AlgorithmScore.model_validate(score_row.algorithm_score)

        return Snapshot(
            target_id=target_id,
            target_type=target_type,
            generated_at=_as_utc(latest),
            recommendations=prioritize_recommendations(recommendations),
            score=score,
        )

    async def get_recommendations_by_target(
        self,
        target_id: str,
        target_type: TargetType,
        limit: int = 50,
    ) -> List[Recommendation]:
        target_type = TargetType(target_type)
        result = await self.session.execute(
            select(RecommendationRecord)
            .where(
                RecommendationRecord.target_id == target_id,
                RecommendationRecord.target_type == target_type.value,
            )
            .order_by(RecommendationRecord.created_at.desc())
            .limit(limit)
        )
        return [_to_recommendation(row) for row in result.scalars().all()]

    async def get_latest_algorithm_score(self, channel_id: str) -> Optional[AlgorithmScore]:
        result = await self.session.execute(
            select(ChannelSnapshot)
            .where(ChannelSnapshot.channel_id == channel_id)
            .order_by(ChannelSnapshot.created_at.desc())
            .limit(1)
        )
        row = result.scalar_one_or_none()
        if row is None:
            return None
        return AlgorithmScore.model_validate(row.algorithm_score)

    async def _get_record(self, recommendation_id: str) -> RecommendationRecord:
        result = await self.session.execute(
            select(RecommendationRecord).where(RecommendationRecord.id == recommendation_id)
        )
        row = result.scalar_one_or_none()
        if row is None:
            raise RecommendationNotFound(recommendation_id)
        return row

    async def update_status(
        self,
        recommendation_id: str,
        status: RecommendationStatus,
        notes: Optional[str] = None,
    ) -> Recommendation:
        status = RecommendationStatus(status)
        row = await self._get_record(recommendation_id)
        current = RecommendationStatus(row.status)
        if status not in ALLOWED_TRANSITIONS[current]:
            raise InvalidStatusTransition(current, status)

        row.status = status.value
        if status == RecommendationStatus.IMPLEMENTED:
            row.implemented_at = datetime.now(timezone.utc)
        if notes is not None:
            row.implementation_notes = notes
        updated = _to_recommendation(row)
        await self.session.commit()

        logger.info("Recommendation %s moved %s -> %s", recommendation_id, current.value, status.value)
        return updated

    async def add_feedback(
        self,
        recommendation_id: str,
        rating: Optional[int] = None,
        text: Optional[str] = None,
        helpful: Optional[bool] = None,
    ) -> Recommendation:
        """Overwrite only the supplied feedback fields."""
        if rating is not None and not 1 <= rating <= 5:
            raise ValueError("Rating must be between 1 and 5")

        row = await self._get_record(recommendation_id)
        if rating is not None:
            row.user_rating = rating
        if text is not None:
            row.user_feedback = text
        if helpful is not None:
            row.helpful = helpful
        updated = _to_recommendation(row)
        await self.session.commit()
        return updated

    async def cleanup_old_snapshots(
        self,
        target_id: str,
        target_type: TargetType,
        keep_latest: int = 1,
    ) -> int:
        """Delete rows outside the newest `keep_latest` snapshots; returns deleted recommendation count."""
        target_type = TargetType(target_type)
        keep_latest = max(keep_latest, 0)

        kept_result = await self.session.execute(
            select(RecommendationRecord.created_at)
            .where(
                RecommendationRecord.target_id == target_id,
                RecommendationRecord.target_type == target_type.value,
            )
            .distinct()
            .order_by(RecommendationRecord.created_at.desc())
            .limit(keep_latest)
        )
        kept = list(kept_result.scalars().all())

        stmt = (
            delete(RecommendationRecord)
            .where(
                RecommendationRecord.target_id == target_id,
                RecommendationRecord.target_type == target_type.value,
            )
            .execution_options(synchronize_session=False)
        )
        if kept:
            stmt = stmt.where(RecommendationRecord.created_at.not_in(kept))

        try:
            result = await self.session.execute(stmt)
            deleted = result.rowcount or 0

            if target_type == TargetType.CHANNEL:
                score_stmt = (
                    delete(ChannelSnapshot)
                    .where(ChannelSnapshot.channel_id == target_id)
                    .execution_options(synchronize_session=False)
                )
                if kept:
                    score_stmt = score_stmt.where(ChannelSnapshot.created_at.not_in(kept))
                await self.session.execute(score_stmt)

            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

        if deleted:
            logger.info("Pruned %d old recommendations for %s %s", deleted, target_type.value, target_id)
        return deleted

    async def get_stats(self, target_id: str, target_type: TargetType) -> RecommendationStats:
        target_type = TargetType(target_type)
        filters = (
            RecommendationRecord.target_id == target_id,
            RecommendationRecord.target_type == target_type.value,
        )

        totals = await self.session.execute(
            select(
                func.count(RecommendationRecord.id),
                func.avg(RecommendationRecord.user_rating),
                func.max(RecommendationRecord.created_at),
            ).where(*filters)
        )
        total, avg_rating, last_generated = totals.one()

        by_priority_result = await self.session.execute(
            select(RecommendationRecord.priority, func.count(RecommendationRecord.id))
            .where(*filters)
            .group_by(RecommendationRecord.priority)
        )
        by_status_result = await self.session.execute(
            select(RecommendationRecord.status, func.count(RecommendationRecord.id))
            .where(*filters)
            .group_by(RecommendationRecord.status)
        )

        return RecommendationStats(
            total=total or 0,
            by_priority={priority: count for priority, count in by_priority_result.all()},
            by_status={status: count for status, count in by_status_result.all()},
            avg_rating=round(float(avg_rating), 2) if avg_rating is not None else None,
            last_generated=_as_utc(last_generated),
        )


def get_snapshot_store(session: AsyncSession) -> SnapshotStore:
    return SnapshotStore(session)
