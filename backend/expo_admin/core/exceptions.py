# expo_admin/core/exceptions.py
# 业务异常定义
#
# 功能说明：
# 1. 地区模块的统一异常基类 LocationError（错误码 + 上下文）
# 2. 各类业务异常：校验失败、唯一冲突、不存在、存在子级、搜索同步失败
# 3. API 层根据 error_code 映射 HTTP 状态码（见 expo_admin/main.py）
#
# 传播规则：
# - 批量导入中的行级错误只收集，不抛出
# - IndexSyncError 只在搜索同步内部使用，永远不会传到调用方
#
# 使用方法：
#   from expo_admin.core.exceptions import NotFoundError
#   raise NotFoundError("城市", city_id)

from typing import Any, Optional


class LocationError(Exception):
    """
    地区模块异常基类

    Attributes:
        error_code: 机器可读的错误码
        message: 可读的错误描述
        context: 结构化的调试信息（ID、字段名等）
    """

    error_code: str = "LOCATION_ERROR"

    def __init__(self, message: str, context: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def __str__(self) -> str:
        return self.message

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, context={self.context!r})"


class ValidationError(LocationError):
    """输入字段缺失或格式错误（导入时为行级错误，不会中断整批）"""

    error_code = "VALIDATION_ERROR"

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"{field}: {reason}", {"field": field})


class ConflictError(LocationError):
    """唯一约束冲突，message 中说明冲突的字段"""

    error_code = "CONFLICT"

    def __init__(self, message: str, field: str, value: Any = None):
        self.field = field
        self.value = value
        super().__init__(message, {"field": field, "value": value})


class NotFoundError(LocationError):
    """引用的记录不存在"""

    error_code = "NOT_FOUND"

    def __init__(self, resource_type: str, resource_id: str):
        self.resource_type = resource_type
        self.resource_id = resource_id
        super().__init__(
            f"{resource_type}不存在: {resource_id}",
            {"resource_type": resource_type, "resource_id": str(resource_id)},
        )


class DependencyExistsError(LocationError):
    """存在下级记录，拒绝删除"""

    error_code = "DEPENDENCY_EXISTS"

    def __init__(self, resource_type: str, name: str, child_type: str, child_count: int):
        self.resource_type = resource_type
        self.child_type = child_type
        self.child_count = child_count
        super().__init__(
            f"无法删除{resource_type}「{name}」：其下仍有 {child_count} 个{child_type}，请先删除{child_type}",
            {"child_type": child_type, "child_count": child_count},
        )


class IndexSyncError(LocationError):
    """搜索索引同步失败（只记录日志，不影响主操作）"""

    error_code = "INDEX_SYNC_ERROR"
