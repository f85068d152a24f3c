"""
evacuate.api.room_endpoints
~~~~~~~~~~~~~~~~~~~~~~~~~~~

房间 REST 接口 —— 房间码生成 + 房间查询 + 位置历史回看。

端点:
  - ``POST /rooms``                      → 生成新的房间码（房间在首次加入时才创建）
  - ``GET  /rooms``                      → 获取存活房间列表
  - ``GET  /rooms/{room_id}``            → 获取房间详情
  - ``GET  /rooms/{room_id}/history``    → 获取内存中的位置历史（分页，房间销毁后仍可查）
  - ``GET  /rooms/{room_id}/archive``    → 获取 MongoDB 中归档的位置历史（分页）
"""
from fastapi import APIRouter, Depends, Query, Request

from evacuate.api.deps import get_location_repository, get_location_system
from evacuate.core.rate_limit import limiter
from evacuate.core.settings import settings
from evacuate.db.location_repository import LocationRepository
from evacuate.schemas.api_response import ApiResponse
from evacuate.schemas.location_events import (
    HistoryResponseData,
    LocationUpdateRecord,
    NewRoomData,
    RoomInfoData,
)
from evacuate.services.location_system import LocationSystem
from evacuate.services.room_registry import new_room_id

router: APIRouter = APIRouter()


# ── 房间管理端点 ──────────────────────────────────────────────────────

@router.post("/rooms", summary="生成房间码", response_model=ApiResponse[NewRoomData])
@limiter.limit("5/second")
async def create_room_code(request: Request):
    """返回一个随机房间码。第一个用它加入的连接成为房主。"""
    return ApiResponse.ok(data=NewRoomData(room_id=new_room_id(settings.ROOM_ID_LENGTH)))


@router.get("/rooms", summary="获取存活房间列表", response_model=ApiResponse[list[RoomInfoData]])
@limiter.limit("10/second")
async def list_rooms(request: Request, system: LocationSystem = Depends(get_location_system)):
    """返回所有存活房间的摘要。"""
    return ApiResponse.ok(data=system.registry.list_rooms())


@router.get("/rooms/{room_id}", summary="获取房间详情", response_model=ApiResponse[RoomInfoData])
@limiter.limit("10/second")
async def room_info(request: Request, room_id: str, system: LocationSystem = Depends(get_location_system)):
    """返回指定房间的摘要；房间不存在或已销毁时返回 404。"""
    room = system.registry.get(room_id)
    if room is None:
        return ApiResponse.fail_response(msg=f"房间不存在: {room_id}", code=404)
    return ApiResponse.ok(data=room.info())


# ── 历史回看端点 ──────────────────────────────────────────────────────

@router.get(
    "/rooms/{room_id}/history",
    summary="获取位置历史",
    response_model=ApiResponse[HistoryResponseData],
)
@limiter.limit("10/second")
async def get_history(
    request: Request,
    room_id: str,
    skip: int = Query(0, ge=0, description="跳过条数（分页偏移）"),
    limit: int = Query(100, ge=1, description="每页最大条数"),
    system: LocationSystem = Depends(get_location_system),
):
    """按追加顺序分页返回内存中的位置历史，不做成员校验。

    Args:
        request: FastAPI Request 对象（用于限流判断）。
        room_id: 房间码。
        skip: 跳过条数（分页偏移）。
        limit: 每页最大条数（不超过 ``HISTORY_PAGE_LIMIT``）。
    """
    limit = min(limit, settings.HISTORY_PAGE_LIMIT)
    return ApiResponse.ok(
        data=HistoryResponseData(
            room_id=room_id,
            records=system.history.read_page(room_id, skip=skip, limit=limit),
            total=system.history.count(room_id),
        ),
    )


@router.get(
    "/rooms/{room_id}/archive",
    summary="获取归档的位置历史",
    response_model=ApiResponse[HistoryResponseData],
)
@limiter.limit("5/second")
async def get_archive(
    request: Request,
    room_id: str,
    skip: int = Query(0, ge=0, description="跳过条数（分页偏移）"),
    limit: int = Query(100, ge=1, description="每页最大条数"),
    repo: LocationRepository | None = Depends(get_location_repository),
):
    """从 MongoDB 读取归档记录（跨进程重启保留）；未开启 MongoDB 持久化时返回 404。"""
    if repo is None:
        return ApiResponse.fail_response(msg="未开启 MongoDB 持久化", code=404)

    limit = min(limit, settings.HISTORY_PAGE_LIMIT)
    documents = await repo.get_history(room_id, skip=skip, limit=limit)
    total = await repo.count_locations(room_id)
    return ApiResponse.ok(
        data=HistoryResponseData(
            room_id=room_id,
            records=[LocationUpdateRecord(**doc) for doc in documents],
            total=total,
        ),
    )
