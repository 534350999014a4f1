"""ORM models exposed for metadata discovery."""
from app.db.models.agent_action_log import AgentActionLog
from app.db.models.agent_decision import AgentDecision
from app.db.models.agent_event import AgentEvent
from app.db.models.calendar_event import CalendarEvent
from app.db.models.proactive_suggestion import ProactiveSuggestion
from app.db.models.schedule_alert import ScheduleAlert
from app.db.models.schedule_block import ScheduleBlock
from app.db.models.user import User
from app.db.models.user_preferences import UserPreferences

__all__ = [
    "AgentActionLog",
    "AgentDecision",
    "AgentEvent",
    "CalendarEvent",
    "ProactiveSuggestion",
    "ScheduleAlert",
    "ScheduleBlock",
    "User",
    "UserPreferences",
]
