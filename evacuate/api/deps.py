from fastapi import Request

from evacuate.db.location_repository import LocationRepository
from evacuate.services.location_system import LocationSystem


def get_location_system(request: Request) -> LocationSystem:
    return request.app.state.location_system


def get_location_repository(request: Request) -> LocationRepository | None:
    return request.app.state.location_repository
