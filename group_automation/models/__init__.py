from group_automation.models.automation_rule import AutomationRule, ActionType, DataType, AggregateOperation
from group_automation.models.collected_datum import CollectedDatum

__all__ = [
    "AutomationRule",
    "ActionType",
    "DataType",
    "AggregateOperation",
    "CollectedDatum",
]
