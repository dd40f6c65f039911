# expo_admin/schemas/location.py
# 地区数据验证模式
#
# 功能说明：
# 1. 定义国家/州/城市/邮编 API 请求和响应的数据格式
# 2. 批量导入、使用次数重算、删除等批量操作的结构化结果
#
# 命名规范：
# - XxxCreate: 创建数据时使用（不包含 id）
# - XxxUpdate: 更新数据时使用（所有字段可选）
# - XxxResponse: 返回数据时使用
# - XxxResult: 批量操作的统计结果（部分失败时也正常返回）

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field


# 格式校验（只做长度/字符检查，不做各国邮编规则校验）
COUNTRY_CODE_PATTERN = r"^[A-Za-z]{2}$"
STATE_CODE_PATTERN = r"^[A-Za-z0-9]{1,10}$"
PINCODE_PATTERN = r"^[A-Za-z0-9][A-Za-z0-9 \-]{2,9}$"


# ==================== Country 相关 ====================

class CountryCreate(BaseModel):
    """创建国家请求"""
    name: str = Field(..., min_length=2, max_length=100, description="国家名称")
    code: str = Field(..., pattern=COUNTRY_CODE_PATTERN, description="ISO 3166-1 alpha-2 代码")
    is_active: bool = Field(default=True, description="是否启用")


class CountryUpdate(BaseModel):
    """更新国家请求（所有字段可选）"""
    name: Optional[str] = Field(None, min_length=2, max_length=100)
    code: Optional[str] = Field(None, pattern=COUNTRY_CODE_PATTERN)
    is_active: Optional[bool] = None


class CountryResponse(BaseModel):
    """国家响应"""
    id: str
    name: str
    code: str
    is_active: bool
    state_count: int = 0
    usage_count: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


# ==================== State 相关 ====================

class StateCreate(BaseModel):
    """创建州/省请求"""
    country_id: str = Field(..., description="所属国家 ID")
    name: str = Field(..., min_length=2, max_length=100, description="州/省名称")
    code: str = Field(..., pattern=STATE_CODE_PATTERN, description="州/省编码（全局唯一）")
    is_active: bool = True


class StateUpdate(BaseModel):
    """更新州/省请求"""
    country_id: Optional[str] = None
    name: Optional[str] = Field(None, min_length=2, max_length=100)
    code: Optional[str] = Field(None, pattern=STATE_CODE_PATTERN)
    is_active: Optional[bool] = None


class StateResponse(BaseModel):
    """州/省响应"""
    id: str
    country_id: str
    name: str
    code: str
    is_active: bool
    city_count: int = 0
    usage_count: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


# ==================== City 相关 ====================

class CityCreate(BaseModel):
    """创建城市请求"""
    state_id: str = Field(..., description="所属州/省 ID")
    name: str = Field(..., min_length=2, max_length=100, description="城市名称")
    is_active: bool = True


class CityUpdate(BaseModel):
    """更新城市请求"""
    state_id: Optional[str] = None
    name: Optional[str] = Field(None, min_length=2, max_length=100)
    is_active: Optional[bool] = None


class CityResponse(BaseModel):
    """城市响应"""
    id: str
    state_id: str
    name: str
    is_active: bool
    pincode_count: int = 0
    usage_count: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


# ==================== PostalCode 相关 ====================

class PostalCodeCreate(BaseModel):
    """创建邮编请求"""
    city_id: str = Field(..., description="所属城市 ID")
    pincode: str = Field(..., pattern=PINCODE_PATTERN, description="邮编")
    area: Optional[str] = Field(None, max_length=200, description="区域名称")
    is_active: bool = True


class PostalCodeUpdate(BaseModel):
    """更新邮编请求"""
    city_id: Optional[str] = None
    pincode: Optional[str] = Field(None, pattern=PINCODE_PATTERN)
    area: Optional[str] = Field(None, max_length=200)
    is_active: Optional[bool] = None


class PostalCodeResponse(BaseModel):
    """邮编响应"""
    id: str
    city_id: str
    pincode: str
    area: str = ""
    is_active: bool
    usage_count: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class LocationListResponse(BaseModel):
    """地区列表响应（任意层级）"""
    items: List[dict]
    total: int


# ==================== 批量导入 ====================

class LocationImportRow(BaseModel):
    """
    批量导入的一行扁平地区数据

    所有字段都允许缺失：缺失必填字段只让这一行失败，不拒绝整个请求
    """
    country: Optional[str] = Field(None, description="国家名称，如 India")
    country_code: Optional[str] = Field(None, description="国家编码，如 IN")
    state: Optional[str] = Field(None, description="州/省名称，如 Gujarat")
    state_code: Optional[str] = Field(None, description="州/省编码，如 GJ")
    city: Optional[str] = Field(None, description="城市名称，如 Ahmedabad")
    pincode: Optional[str] = Field(None, description="邮编，如 380001")
    area: Optional[str] = Field(None, description="区域名称，如 Ellis Bridge")


class BulkImportRequest(BaseModel):
    """批量导入请求"""
    locations: List[LocationImportRow]


class ImportDetails(BaseModel):
    """批量导入明细统计"""
    countries_created: int = 0
    states_created: int = 0
    cities_created: int = 0
    pincodes_created: int = 0
    pincodes_skipped: int = 0


class BulkImportResult(BaseModel):
    """批量导入结果"""
    success: int = 0
    skipped: int = 0
    failed: int = 0
    errors: List[str] = Field(default_factory=list)
    details: ImportDetails = Field(default_factory=ImportDetails)


class RowImportResult(BaseModel):
    """单行导入结果"""
    status: Literal["created", "skipped", "failed"]
    postal_code_id: Optional[str] = None
    city_id: Optional[str] = None
    state_id: Optional[str] = None
    country_id: Optional[str] = None
    country_created: bool = False
    state_created: bool = False
    city_created: bool = False
    error: Optional[str] = None


# ==================== 使用次数重算 ====================

class UsageRecalcResult(BaseModel):
    """单个层级的使用次数重算结果"""
    total: int = 0
    updated: int = 0
    error_count: int = 0
    errors: List[str] = Field(default_factory=list)


class UsageRecalcSummary(BaseModel):
    """全部层级的使用次数重算结果"""
    countries: UsageRecalcResult
    states: UsageRecalcResult
    cities: UsageRecalcResult
    postal_codes: UsageRecalcResult


# ==================== 删除 ====================

class DeleteResult(BaseModel):
    """删除结果：物理删除或停用"""
    deleted: bool = False
    soft_deleted: bool = False
    usage_count: int = 0


class BulkDeleteRequest(BaseModel):
    """批量删除请求"""
    ids: List[str] = Field(..., min_length=1)


class BulkDeleteError(BaseModel):
    """批量删除中单条失败的原因"""
    id: str
    reason: str


class BulkDeleteResult(BaseModel):
    """批量删除结果"""
    deleted: int = 0
    soft_deleted: int = 0
    failed: int = 0
    errors: List[BulkDeleteError] = Field(default_factory=list)


# ==================== 查询 / 搜索 ====================

class LocationBrief(BaseModel):
    """层级中的一个节点（名称 + 编码）"""
    id: str
    name: str
    code: Optional[str] = None


class PincodeLookupResponse(BaseModel):
    """按邮编查询完整层级"""
    found: bool
    postal_code_id: Optional[str] = None
    pincode: Optional[str] = None
    area: Optional[str] = None
    areas: List[str] = Field(default_factory=list, description="该邮编下所有启用的区域")
    city: Optional[LocationBrief] = None
    state: Optional[LocationBrief] = None
    country: Optional[LocationBrief] = None


class PostalCodeSearchItem(BaseModel):
    """数据库前缀搜索结果"""
    id: str
    pincode: str
    area: str = ""
    city_id: str
    city_name: str
    state_name: str
    usage_count: int = 0


class AutocompleteResponse(BaseModel):
    """搜索引擎自动补全结果"""
    hits: List[dict] = Field(default_factory=list)
    estimated_total_hits: int = 0
    processing_time_ms: int = 0
