"""Shared schema types."""

from datetime import datetime
from typing import Annotated

from pydantic import AfterValidator

from backend.app.core.time import from_storage

# Stored timestamps are naive UTC; responses carry the offset explicitly
UTCDateTime = Annotated[datetime, AfterValidator(from_storage)]
