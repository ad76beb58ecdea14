"""Base class for the custom resource specs the operator reads."""

from pydantic import BaseModel, ConfigDict


class CRDSpec(BaseModel):
    """Base class for spec blocks. Fields the operator does not act on are ignored."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)
