from featuregate.storage.base import FlagRepository
from featuregate.storage.memory import InMemoryFlagRepository

__all__ = ["FlagRepository", "InMemoryFlagRepository"]
