"""
data_engine — Sensor history access layer.

Public API
----------
    from data_engine import HistoryRepository, HistoricalDataset
"""

from data_engine.history import HistoricalDataset, HistoryRepository

__all__ = ["HistoricalDataset", "HistoryRepository"]
