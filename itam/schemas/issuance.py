from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field, PositiveInt, field_validator


class HostnameAssignment(BaseModel):
    hostname: str
    issued_to: PositiveInt
    location: Optional[str] = None
    remarks: Optional[str] = None

    @field_validator("hostname")
    @classmethod
    def hostname_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("hostname must not be blank")
        return value.strip()


class WholeUnitIssuanceRequest(BaseModel):
    """Hand one or more complete units to employees in a single batch."""

    request_number: Optional[str] = None
    remarks: Optional[str] = None
    items: list[HostnameAssignment] = Field(min_length=1)


class IssuanceDetailOut(BaseModel):
    id: int
    operation_type: str
    component_type: str
    old_component_id: Optional[int] = None
    old_component_condition: Optional[str] = None
    old_component_data: Optional[dict] = None
    new_component_id: Optional[int] = None
    new_component_condition: Optional[str] = None
    new_component_data: Optional[dict] = None
    reason: Optional[str] = None
    remarks: Optional[str] = None

    class Config:
        from_attributes = True


class IssuanceOut(BaseModel):
    id: int
    issuance_number: str
    issuance_type: int
    request_number: Optional[str] = None
    hostname: Optional[str] = None
    hardware_id: Optional[int] = None
    issued_to: Optional[int] = None
    location: Optional[str] = None
    remarks: Optional[str] = None
    created_by: Optional[int] = None
    created_at: str
    details: list[IssuanceDetailOut] = Field(default_factory=list)

    class Config:
        from_attributes = True
