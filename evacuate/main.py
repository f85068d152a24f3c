"""
evacuate.main
~~~~~~~~~~~~~

FastAPI 应用入口 —— 注册路由、挂载中间件、定义生命周期。
"""
from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from evacuate.api import location_ws, room_endpoints
from evacuate.core.logging import get_logger, setup_logging
from evacuate.core.rate_limit import LocationUpdateThrottle, limiter
from evacuate.core.settings import settings
from evacuate.db import close_mongo, connect_mongo, get_database
from evacuate.db.history_snapshot import HistorySnapshotWriter
from evacuate.db.location_repository import LocationRepository
from evacuate.schemas.api_response import ApiResponse
from evacuate.services.connection_hub import ConnectionHub
from evacuate.services.location_history import LocationHistoryStore
from evacuate.services.location_system import LocationSystem
from evacuate.services.persistence import LocationSink, PersistenceDispatcher

# 初始化日志系统（必须在其他模块之前）
setup_logging()
logger = get_logger(__name__)


def build_location_system(
    hub: ConnectionHub,
    repo: LocationRepository | None = None,
) -> LocationSystem:
    """按配置组装注册表、历史存储和持久化 sink。"""
    dispatcher = PersistenceDispatcher()
    history = LocationHistoryStore(persistence=dispatcher)

    sinks: list[LocationSink] = []
    if repo is not None:
        sinks.append(repo)
    if settings.HISTORY_SNAPSHOT_FILE:
        sinks.append(HistorySnapshotWriter(settings.HISTORY_SNAPSHOT_FILE, history.snapshot))
    dispatcher.sinks = sinks

    return LocationSystem(
        transport=hub,
        history=history,
        throttle=LocationUpdateThrottle(settings.LOCATION_UPDATE_MIN_INTERVAL),
    )


# ── 生命周期 ──────────────────────────────────────────────────────────

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """应用生命周期钩子，仅在 worker 启动/关闭时各执行一次。"""
    # ── 启动 ──
    repo: LocationRepository | None = None
    if settings.PERSIST_TO_MONGO:
        await connect_mongo()
        repo = LocationRepository(get_database())

    hub = ConnectionHub()
    system = build_location_system(hub, repo)
    app.state.connection_hub = hub
    app.state.location_system = system
    app.state.location_repository = repo

    logger.info(
        "🚀 应用已启动 | env=%s | debug=%s | log_level=%s | sinks=%s",
        settings.ENVIRONMENT,
        settings.debug,
        settings.effective_log_level,
        [sink.name for sink in system.persistence.sinks],
    )
    yield
    # ── 关闭 ──
    await system.persistence.drain()
    if repo is not None:
        await close_mongo()
    logger.info("👋 应用已关闭")


# ── 创建 FastAPI 实例 ─────────────────────────────────────────────────

app: FastAPI = FastAPI(
    title=settings.PROJECT_NAME,
    description="实时位置共享后端 API",
    version=settings.VERSION,
    debug=settings.debug,
    lifespan=lifespan,
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# ── CORS 中间件 ───────────────────────────────────────────────────────
if settings.allow_cors_all_origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
else:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[],
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

# ── 路由挂载 ──────────────────────────────────────────────────────────
app.include_router(room_endpoints.router, prefix="/api", tags=["Rooms & History"])
app.include_router(location_ws.router, tags=["WebSocket Location"])


# ── 全局异常处理器 ────────────────────────────────────────────────────

@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """捕获所有未处理异常，返回统一的 ApiResponse.fail() 格式。"""
    logger.error("未捕获异常: %s %s -> %s", request.method, request.url, exc, exc_info=True)
    # 非 prod 环境返回详细错误信息，prod 环境隐藏内部细节
    detail = str(exc) if not settings.is_prod else "服务器内部错误"
    return ApiResponse.fail_response(msg=detail, code=500)


@app.get("/", tags=["System"], response_class=PlainTextResponse)
async def index() -> str:
    return "Welcome to Evacuate Server!"


@app.get("/health", tags=["System"])
async def health_check(request: Request) -> JSONResponse:
    """验证服务是否正常运行。

    Returns:
        服务状态、存活房间数、在线连接数与持久化失败次数。
    """
    system: LocationSystem = request.app.state.location_system
    hub: ConnectionHub = request.app.state.connection_hub
    return JSONResponse(
        content={
            "status": "ok",
            "environment": settings.ENVIRONMENT,
            "debug": settings.debug,
            "log_level": settings.effective_log_level,
            "rooms": system.registry.room_count,
            "connections": hub.online_count,
            "persistence_failures": system.persistence.failure_count,
        },
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "evacuate.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.reload,  # 仅 dev 环境开启热重载
        log_level=settings.effective_log_level.lower(),
    )
