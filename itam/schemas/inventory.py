from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, PositiveInt, field_validator

_TEXT_FIELDS = ("license_key", "account_user", "account_password", "remarks")


class LicenseBase(BaseModel):
    license_key: Optional[str] = None
    account_user: Optional[str] = None
    account_password: Optional[str] = None
    remarks: Optional[str] = None

    @field_validator(*_TEXT_FIELDS, mode="before")
    @classmethod
    def blank_to_none(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip() or None
        return value


class LicenseCreate(LicenseBase):
    software_inventory_id: PositiveInt
    max_activations: PositiveInt = 1


class LicenseUpdate(LicenseBase):
    max_activations: Optional[PositiveInt] = None
