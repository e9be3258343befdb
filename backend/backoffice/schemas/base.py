from __future__ import annotations

from typing import Any, Dict, Generic, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, model_serializer
from pydantic.alias_generators import to_camel


T = TypeVar("T")


class ORMModel(BaseModel):
    model_config = ConfigDict(from_attributes=True, alias_generator=to_camel, populate_by_name=True)


class ApiResponse(BaseModel, Generic[T]):
    """``{success, data?, message?, count?}`` envelope shared by every endpoint."""

    success: bool = True
    data: Optional[T] = None
    message: Optional[str] = None
    count: Optional[int] = None

    @model_serializer(mode="wrap")
    def _omit_empty_keys(self, handler) -> Dict[str, Any]:
        return {key: value for key, value in handler(self).items() if value is not None}
