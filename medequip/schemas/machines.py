from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


MachineCondition = Literal["Excellent", "Good", "Fair"]


class RentalPricingDto(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    perDay: float = Field(0, ge=0)
    perWeek: float = Field(0, ge=0)
    perMonth: float = Field(0, ge=0)


class MachineRecord(BaseModel):
    """Validated catalog entry, shared by both machine stores."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str
    machineName: str
    type: str
    category: str
    condition: MachineCondition = "Good"
    description: str
    price: float = 0
    image: str = ""
    availability: bool = True
    repairHistory: List[str] = []
    sparePartsReplaced: List[str] = []
    warrantyInfo: str = ""
    rentalPricing: RentalPricingDto = Field(default_factory=RentalPricingDto)


class MachineUpsert(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: Optional[str] = None
    machineName: Optional[str] = None
    type: Optional[str] = None
    category: Optional[str] = None
    condition: MachineCondition = "Good"
    description: Optional[str] = None
    price: float = Field(0, ge=0)
    image: Optional[str] = None
    availability: bool = True
    repairHistory: List[str] = []
    sparePartsReplaced: List[str] = []
    warrantyInfo: Optional[str] = None
    rentalPricing: RentalPricingDto = Field(default_factory=RentalPricingDto)
