"""Optimistic row editing."""

from packplant.editing.coordinator import EditCoordinator, merge_entity
from packplant.editing.weighing import WeighingTable

__all__ = ["EditCoordinator", "WeighingTable", "merge_entity"]
