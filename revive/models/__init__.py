"""
Database models - import all models here so Alembic can discover them.
"""
from revive.models.lead import Lead
from revive.models.event_log import EventLog
from revive.models.suppression import Suppression

__all__ = [
    "Lead",
    "EventLog",
    "Suppression",
]
