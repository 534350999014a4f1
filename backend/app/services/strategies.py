"""Typed remediation strategies and the schedule operations they carry."""
from __future__ import annotations

from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic.alias_generators import to_camel

IMPACT_LEVELS = ("Low", "Medium", "High")
STRATEGY_ACTIONS = ("move", "shorten", "delete", "split", "swap")
IMPACT_RANK = {level: rank for rank, level in enumerate(IMPACT_LEVELS)}


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class MoveParams(_CamelModel):
    shift_minutes: int
    new_start_time: Optional[str] = None


class ResizeParams(_CamelModel):
    duration_minutes: int


class _OperationBase(_CamelModel):
    """Common operation fields.

    Only ``target_block_id`` drives application. The title and original times,
    like ``MoveParams.new_start_time``, are the model's own description of the
    change; they are kept so the action log records the operation as proposed.
    """

    target_block_id: Optional[str] = None
    target_block_title: Optional[str] = None
    original_start: Optional[str] = None
    original_end: Optional[str] = None


class MoveOperation(_OperationBase):
    type: Literal["move"]
    params: MoveParams


class ResizeOperation(_OperationBase):
    type: Literal["resize"]
    params: ResizeParams


class DeleteOperation(_OperationBase):
    type: Literal["delete"]
    params: Dict[str, Any] = Field(default_factory=dict)


Operation = Annotated[Union[MoveOperation, ResizeOperation, DeleteOperation], Field(discriminator="type")]
OPERATION_ADAPTER: TypeAdapter[Operation] = TypeAdapter(Operation)


class Strategy(_CamelModel):
    id: str
    title: str
    description: str
    impact: Literal["Low", "Medium", "High"]
    action: Literal["move", "shorten", "delete", "split", "swap"]
    operations: List[Operation] = Field(default_factory=list)
    feasible: bool = True
    violations: List[str] = Field(default_factory=list)

    @property
    def impact_rank(self) -> int:
        return IMPACT_RANK[self.impact]

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")
