# outreach/models/__init__.py
# Central import surface for SQLModel table registration.
# Keeping these imports ensures init_db() sees all models and creates tables.

from .member import Bacenta, Member
from .event import Event, EventMemberTarget
from .contact import Contact

# Telepastoring
from .call import Call, CallOutcome
from .visit import Visit, VisitVisitee, VisitVisitor

__all__ = [
    "Bacenta",
    "Member",
    "Event",
    "EventMemberTarget",
    "Contact",
    "Call",
    "CallOutcome",
    "Visit",
    "VisitVisitee",
    "VisitVisitor",
]
