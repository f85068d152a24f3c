"""
evacuate.schemas.api_response
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~

HTTP 接口统一应答体。

房间查询、房间码生成、位置历史等 REST 接口都用它包装返回值，
WebSocket 事件不走这一层。
"""
from __future__ import annotations

from typing import Any, Generic, TypeVar

from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

T = TypeVar("T")


class ApiResponse(BaseModel, Generic[T]):
    """统一 JSON 应答体。

    .. code-block:: json

        {"code": 200, "data": {"room_id": "abc12"}, "msg": "success"}

    Attributes:
        code: 业务状态码，与 HTTP 状态码保持一致。
        data: 实际业务数据，失败时为 ``None``。
        msg: 人类可读的状态消息。
    """

    code: int = Field(default=200, description="业务状态码")
    data: T = Field(..., description="业务数据")
    msg: str = Field(default="success", description="状态消息")

    @classmethod
    def ok(cls, data: T, msg: str = "success") -> ApiResponse[T]:
        """快捷构造成功响应。"""
        return cls(code=200, data=data, msg=msg)

    @classmethod
    def fail(cls, msg: str = "error", code: int = 500, data: Any = None) -> ApiResponse[Any]:
        """快捷构造失败响应。"""
        return cls(code=code, data=data, msg=msg)

    @classmethod
    def fail_response(cls, msg: str, code: int) -> JSONResponse:
        """构造带对应 HTTP 状态码的失败 ``JSONResponse``。"""
        return JSONResponse(
            status_code=code,
            content=cls.fail(msg=msg, code=code).model_dump(),
        )
