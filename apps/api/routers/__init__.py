"""Routers package."""

from . import (
    health,
    scoring,
    recommendations,
)
