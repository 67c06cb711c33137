"""
View-state request/response schemas.
"""

from typing import Any

from pydantic import BaseModel


class ViewStateValue(BaseModel):
    route: str
    widget_id: str
    value: Any = None


class ViewStateUpdate(BaseModel):
    value: Any
