from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel


class ActivityLogOut(BaseModel):
    """Display form of an audit entry, with the actor's name resolved."""

    id: int
    loggable_type: str
    loggable_id: int
    action_type: str
    action_label: str
    action_by: Optional[int] = None
    action_by_name: str = "N/A"
    action_at: str
    old_values: Optional[dict[str, Any]] = None
    new_values: Optional[dict[str, Any]] = None
    remarks: Optional[str] = None
    related_type: Optional[str] = None
    related_id: Optional[int] = None
    metadata: Optional[dict[str, Any]] = None
