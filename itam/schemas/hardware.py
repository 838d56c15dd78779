from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field


class HardwareCreate(BaseModel):
    hostname: str
    category: Optional[str] = None
    brand: Optional[str] = None
    model: Optional[str] = None
    serial_number: Optional[str] = None
    location: Optional[str] = None
    department: Optional[str] = None
    issued_to: Optional[int] = None
    status: Optional[str] = None
    remarks: Optional[str] = None


class HardwareUpdate(BaseModel):
    hostname: Optional[str] = None
    category: Optional[str] = None
    brand: Optional[str] = None
    model: Optional[str] = None
    serial_number: Optional[str] = None
    location: Optional[str] = None
    department: Optional[str] = None
    status: Optional[str] = None
    remarks: Optional[str] = None


class HardwarePartOut(BaseModel):
    id: int
    part_type: str
    brand: str
    model: str
    specifications: str
    serial_number: Optional[str] = None
    condition: Optional[str] = None
    source_inventory_id: Optional[int] = None
    status: str
    installed_date: Optional[str] = None

    class Config:
        from_attributes = True


class HardwareSoftwareOut(BaseModel):
    id: int
    software_inventory_id: int
    software_license_id: Optional[int] = None
    status: str
    installation_date: Optional[str] = None
    remarks: Optional[str] = None

    class Config:
        from_attributes = True


class HardwareOut(BaseModel):
    id: int
    hostname: str
    category: Optional[str] = None
    brand: Optional[str] = None
    model: Optional[str] = None
    serial_number: Optional[str] = None
    location: Optional[str] = None
    issued_to: Optional[int] = None
    date_issued: Optional[str] = None
    status: Optional[str] = None
    created_at: str
    parts: list[HardwarePartOut] = Field(default_factory=list)
    software: list[HardwareSoftwareOut] = Field(default_factory=list)

    class Config:
        from_attributes = True
