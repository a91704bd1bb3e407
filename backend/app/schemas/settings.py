"""Studio setting schemas."""

from typing import Optional

from pydantic import BaseModel, ConfigDict


class SettingRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    key: str
    value: str
    description: Optional[str]


class SettingUpdate(BaseModel):
    value: str
