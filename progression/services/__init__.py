"""
Service Layer Package

ProgressionManager is the facade other subsystems call; it composes the
gamification components over a ProgressionStore.
"""

from progression.services.progression_service import (
    ProgressionManager,
    get_progression_manager,
    init_progression_manager,
)

__all__ = [
    "ProgressionManager",
    "get_progression_manager",
    "init_progression_manager",
]
