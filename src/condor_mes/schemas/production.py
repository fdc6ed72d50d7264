"""Pydantic schemas for shop-floor writes: sensor readings and work-order completions.

Field names of the completion body follow the PascalCase keys the
terminal clients already send.
"""

from datetime import date, datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class SensorReadingCreate(BaseModel):
    sensor_id: int
    value: float
    comment: str = ""


class WorkOrderCompletion(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    work_order_number: int | str = Field(alias="WorkOrderNumber")
    execution_date: date | datetime = Field(alias="ExecutionDate")
    number: int | str = Field(alias="Number")
    ready: float = Field(alias="Ready", gt=0)
    scrap: float = Field(0, alias="Scrap", ge=0)
    reject: float = Field(0, alias="Reject", ge=0)
    tare: float = Field(0, alias="Tare", ge=0)
    container: float = Field(0, alias="Container", ge=0)


class MesEnvelope(BaseModel):
    """Response envelope shared by the MES endpoints."""

    errors_exist_flag: bool = Field(False, serialization_alias="errorsExistFlag")
    message: str = "OK"
    total_results: int = Field(0, serialization_alias="totalResults")
    items: Optional[Any] = None
