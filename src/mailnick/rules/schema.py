"""
JSON schema for cleanup rule match criteria
"""
from typing import Any, Dict, List, Literal, Union

from pydantic import BaseModel, ConfigDict, Field

from mailnick.models import Condition, MatchCriteria


class ConditionSchema(BaseModel):
    """Schema for a single field condition"""
    model_config = ConfigDict(populate_by_name=True)

    field: Literal["from", "fromDomain", "to", "subject", "category", "snippet"]
    # Kept open: unknown operators are stored as-is and never match.
    operator: str
    value: Union[str, List[str]]
    case_sensitive: bool = Field(default=False, alias="caseSensitive")


class MatchCriteriaSchema(BaseModel):
    """Schema for the boolean combinator over conditions"""
    type: Literal["all", "any"]
    conditions: List[ConditionSchema] = Field(default_factory=list)

    def to_model(self) -> MatchCriteria:
        return MatchCriteria(
            type=self.type,
            conditions=[
                Condition(
                    field=c.field,
                    operator=c.operator,
                    value=c.value,
                    case_sensitive=c.case_sensitive,
                )
                for c in self.conditions
            ],
        )


def criteria_from_dict(data: Dict[str, Any]) -> MatchCriteria:
    """Validate raw JSON criteria (API body or stored column) into a MatchCriteria."""
    return MatchCriteriaSchema.model_validate(data).to_model()
