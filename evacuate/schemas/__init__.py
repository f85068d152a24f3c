"""
evacuate.schemas
~~~~~~~~~~~~~~~~
Pydantic schemas and models for the API.
"""
from evacuate.schemas.api_response import ApiResponse
from evacuate.schemas.location_events import (
    HistoryResponseData,
    LocationUpdateRecord,
    NewRoomData,
    Position,
    RoomInfoData,
)

# Call model_rebuild to resolve forward references in generic Pydantic models.
ApiResponse.model_rebuild()
