# relaykit/config/models.py
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class BusSettings(BaseModel):
    name: str = "default"
    allow_no_handlers: bool = False
    max_concurrent_handlers: int = Field(default=20, ge=1)


class HandlerBindingConfig(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    message_path: str = Field(alias="message")
    handler_path: str = Field(alias="handler")
    name: Optional[str] = None
    from_transport: Optional[str] = None
    alias: Optional[str] = None


class BusDocument(BaseModel):
    """Top-level shape of bus.yaml."""
    bus: BusSettings = Field(default_factory=BusSettings)
    handlers: list[HandlerBindingConfig] = Field(default_factory=list)
