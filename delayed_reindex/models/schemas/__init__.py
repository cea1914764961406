"""
Pydantic schemas shared across the delayed reindex core.
"""
from .strategy import StrategyConfig
from .reindex import ReindexRequest

__all__ = ["StrategyConfig", "ReindexRequest"]
