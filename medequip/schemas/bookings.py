from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict


class CreateRentalRequestDto(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    machineID: str
    userName: Optional[str] = None
    phone: Optional[str] = None
    location: Optional[str] = None
    rentalDuration: Optional[str] = None


class RentalRequestDecision(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    decision: Literal["approve", "reject"]
    reason: Optional[str] = None


class RentalStatusUpdate(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    status: Literal["ongoing", "completed", "returned"]


class CreatePurchaseDto(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    machineID: str
