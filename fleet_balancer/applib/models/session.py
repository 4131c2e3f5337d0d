from pydantic import BaseModel, ConfigDict, Field


class Session(BaseModel):
    """One live WebSocket connection, bound to the server terminating it."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str
    owner_id: str = Field(alias="ownerId")
    host_id: str = Field(alias="hostId")
