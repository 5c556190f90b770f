"""Models package."""

from .recommendation import RecommendationRecord
from .channel_snapshot import ChannelSnapshot
