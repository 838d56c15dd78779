from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, PositiveInt, model_validator


class OperationType(str, Enum):
    ADD = "add"
    REPLACE = "replace"
    REMOVE = "remove"


class ComponentType(str, Enum):
    PART = "part"
    SOFTWARE = "software"


class PartSpec(BaseModel):
    """Catalog identity of a part: type, brand, model and specifications."""

    part_type: str
    brand: str
    model: str
    specifications: str = ""


class SoftwareSpec(BaseModel):
    software_name: str
    software_type: str
    version: str = ""


class PartInstall(PartSpec):
    condition: Optional[str] = None
    serial_number: Optional[str] = None
    remarks: Optional[str] = None


class SoftwareInstall(SoftwareSpec):
    license_key: Optional[str] = None
    account_user: Optional[str] = None
    remarks: Optional[str] = None


class ComponentRemoval(BaseModel):
    id: PositiveInt
    condition: Optional[str] = None
    reason: Optional[str] = None
    remarks: Optional[str] = None


class ComponentOperation(BaseModel):
    """One add/replace/remove request against a hardware unit.

    ``component_id`` names the installed row being removed or replaced. The
    new-side fields describe what to install for ``add`` and ``replace``.
    """

    model_config = ConfigDict(use_enum_values=False, extra="ignore")

    hardware_id: PositiveInt
    operation: OperationType
    component_type: ComponentType
    component_id: Optional[PositiveInt] = None
    old_component_condition: Optional[str] = None

    part_type: Optional[str] = None
    brand: Optional[str] = None
    model: Optional[str] = None
    specifications: Optional[str] = None
    serial_number: Optional[str] = None
    condition: Optional[str] = None

    software_name: Optional[str] = None
    software_type: Optional[str] = None
    version: Optional[str] = None
    license_key: Optional[str] = None
    account_user: Optional[str] = None

    reason: Optional[str] = None
    remarks: Optional[str] = None
    issued_to: Optional[PositiveInt] = None
    request_number: Optional[str] = None

    @model_validator(mode="after")
    def check_sides(self) -> "ComponentOperation":
        if self.operation in (OperationType.REMOVE, OperationType.REPLACE) and self.component_id is None:
            raise ValueError(f"component_id is required for {self.operation.value}")
        if self.operation in (OperationType.ADD, OperationType.REPLACE):
            if self.component_type is ComponentType.PART:
                missing = [f for f in ("part_type", "brand", "model") if not (getattr(self, f) or "").strip()]
            else:
                missing = [f for f in ("software_name", "software_type") if not (getattr(self, f) or "").strip()]
            if missing:
                raise ValueError(f"missing fields for {self.operation.value}: {', '.join(missing)}")
        return self

    def part_install(self) -> PartInstall:
        return PartInstall(
            part_type=self.part_type or "",
            brand=self.brand or "",
            model=self.model or "",
            specifications=self.specifications or "",
            condition=self.condition,
            serial_number=self.serial_number,
            remarks=self.remarks,
        )

    def software_install(self) -> SoftwareInstall:
        return SoftwareInstall(
            software_name=self.software_name or "",
            software_type=self.software_type or "",
            version=self.version or "",
            license_key=self.license_key,
            account_user=self.account_user,
            remarks=self.remarks,
        )

    def removal(self) -> ComponentRemoval:
        return ComponentRemoval(
            id=self.component_id,
            condition=self.old_component_condition,
            reason=self.reason,
            remarks=self.remarks,
        )


class PartEdit(BaseModel):
    serial_number: Optional[str] = None
    remarks: Optional[str] = None


class SoftwareEdit(BaseModel):
    remarks: Optional[str] = None

