# Import all models in correct order so string relationships resolve
from roof_finder.models.prospect import Prospect, ProspectStatus
from roof_finder.models.property import Property
from roof_finder.models.roof_lead import (
    RoofLead,
    RoofLeadTag,
    RoofLeadImage,
    RoofLeadStatus,
    ConditionLabel,
    TERMINAL_STATUSES,
)
from roof_finder.models.task import Task, TaskStatus, TaskPriority

__all__ = [
    "Prospect",
    "ProspectStatus",
    "Property",
    "RoofLead",
    "RoofLeadTag",
    "RoofLeadImage",
    "RoofLeadStatus",
    "ConditionLabel",
    "TERMINAL_STATUSES",
    "Task",
    "TaskStatus",
    "TaskPriority",
]
