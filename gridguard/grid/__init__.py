from .spacing import GridSpacingEngine, SpacingResult, SpacingSource
from .levels import GridBook, GridLevel, GridLevelError, LevelStatus, VALID_LEVEL_TRANSITIONS

__all__ = [
    "GridSpacingEngine",
    "SpacingResult",
    "SpacingSource",
    "GridBook",
    "GridLevel",
    "GridLevelError",
    "LevelStatus",
    "VALID_LEVEL_TRANSITIONS",
]
