"""Uniform response envelopes shared by every endpoint."""

from __future__ import annotations

from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

DataT = TypeVar("DataT")


class CamelModel(BaseModel):
    """Base model serialising field names as camelCase on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class ApiResponse(CamelModel, Generic[DataT]):
    """Success envelope; ``success`` mirrors the status code."""

    status_code: int = 200
    data: DataT
    message: str = "Success"
    success: bool = True

    @model_validator(mode="after")
    def _derive_success(self) -> "ApiResponse[DataT]":
        self.success = self.status_code < 400
        return self


class ErrorResponse(CamelModel):
    """Failure envelope produced by the top-level exception handlers."""

    status_code: int = 500
    data: Any = None
    message: str = "Something went wrong"
    success: bool = False
    errors: list[str] = Field(default_factory=list)
