from .base import BaseDatabase
from .users import Increment, UserMixin
from .quests import QuestMixin

__all__ = [
    "BaseDatabase",
    "Increment",
    "UserMixin",
    "QuestMixin",
]
