# app/schemas/pincode.py

from pydantic import BaseModel, Field, model_validator
from typing import List, Optional
from datetime import date


class SlotConfig(BaseModel):
    label: str = Field(..., description="Morning, Afternoon, Evening")
    start_hour: int = Field(..., ge=0, le=23)
    end_hour: int = Field(..., ge=1, le=24)
    cutoff_hour: int = Field(..., ge=0, le=24)
    extra_charge: float = Field(0, ge=0)

    @model_validator(mode="after")
    def check_window(self):
        if self.end_hour <= self.start_hour:
            raise ValueError("end_hour must be after start_hour")
        return self


class PincodeIn(BaseModel):
    pincode: str = Field(..., pattern=r"^\d{6}$")
    city: str
    state: str
    country: str = "India"
    is_serviceable: bool = True
    cod_available: bool = True
    express_delivery: bool = False
    standard_days: int = Field(5, ge=1)
    express_days: int = Field(2, ge=1)
    delivery_charge: float = Field(40, ge=0)
    express_charge: float = Field(99, ge=0)
    free_delivery_above: float = Field(499, ge=0)
    slots: List[SlotConfig] = []


class OfferedSlot(BaseModel):
    label: str            # "Wed, 21 Oct, Morning (9:00 - 12:00)"
    date: date
    extra_charge: float


class DeliveryTerms(BaseModel):
    standard_days: int
    express_days: Optional[int] = None
    delivery_charge: float
    express_charge: Optional[float] = None
    free_delivery_above: float
    standard_date: date
    express_date: Optional[date] = None
    estimated_date: str   # "Wed, 21 Oct"


class Serviceability(BaseModel):
    pincode: str
    is_serviceable: bool
    city: Optional[str] = None
    state: Optional[str] = None
    country: Optional[str] = None
    cod_available: bool = False
    delivery: Optional[DeliveryTerms] = None
    slots: List[OfferedSlot] = []
