# expo_admin/api/locations.py
# 地区管理 API
#
# 功能说明：
# 1. 国家 / 州省 / 城市 / 邮编 四个层级的增删改查
# 2. 批量导入（JSON 或 CSV 文本）、CSV 导出
# 3. 使用次数重算（单个层级 / 全部）
# 4. 按邮编查询完整层级、邮编搜索与自动补全
# 5. 搜索索引全量重建
#
# 路由（{level} 为 countries / states / cities / pincodes）：
#   POST   /admin/locations/bulk-import                  批量导入（JSON）
#   POST   /admin/locations/import-csv                   批量导入（CSV 文本）
#   GET    /admin/locations/export                       导出 CSV
#   POST   /admin/locations/recalculate-all-usage        重算全部层级使用次数
#   POST   /admin/locations/reindex                      重建搜索索引
#   GET    /admin/locations/pincode/{code}               按邮编查询层级
#   GET    /admin/locations/search/pincodes              邮编前缀搜索
#   GET    /admin/locations/search/pincodes/autocomplete 邮编自动补全
#   POST   /admin/locations/{level}                      创建
#   PUT    /admin/locations/{level}/{id}                 更新
#   GET    /admin/locations/{level}                      列表（分页 + 搜索）
#   GET    /admin/locations/{level}/{id}                 详情
#   DELETE /admin/locations/{level}/{id}                 删除（有下级拒绝，已使用则停用）
#   POST   /admin/locations/{level}/bulk-delete          批量删除
#   POST   /admin/locations/{level}/recalculate-usage    重算该层级使用次数
#
# 业务异常（LocationError）由 main.py 中的全局处理器转换为 HTTP 状态码

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession

from expo_admin.core.database import get_db
from expo_admin.core.exceptions import ValidationError
from expo_admin.core.logging import get_logger
from expo_admin.schemas.location import (
    AutocompleteResponse,
    BulkDeleteRequest,
    BulkDeleteResult,
    BulkImportRequest,
    BulkImportResult,
    CityCreate,
    CityResponse,
    CityUpdate,
    CountryCreate,
    CountryResponse,
    CountryUpdate,
    DeleteResult,
    LocationListResponse,
    PincodeLookupResponse,
    PostalCodeCreate,
    PostalCodeResponse,
    PostalCodeSearchItem,
    PostalCodeUpdate,
    StateCreate,
    StateResponse,
    StateUpdate,
    UsageRecalcResult,
    UsageRecalcSummary,
)
from expo_admin.services.location_csv import parse_location_csv, render_location_csv
from expo_admin.services.location_deletion_service import location_deletion_service
from expo_admin.services.location_import_service import location_import_service
from expo_admin.services.location_levels import LevelSpec, LocationLevel, get_level
from expo_admin.services.location_service import location_service
from expo_admin.services.location_usage_service import location_usage_service

logger = get_logger(__name__)

router = APIRouter(prefix="/admin/locations", tags=["地区管理"])


# 各层级的响应模型
RESPONSE_MODELS = {
    LocationLevel.COUNTRY: CountryResponse,
    LocationLevel.STATE: StateResponse,
    LocationLevel.CITY: CityResponse,
    LocationLevel.POSTAL_CODE: PostalCodeResponse,
}


def resolve_level(level: str) -> LevelSpec:
    """路径中的层级参数，未知层级返回 404"""
    try:
        return get_level(level)
    except ValidationError:
        raise HTTPException(status_code=404, detail=f"未知的地区层级: {level}")


def to_response(spec: LevelSpec, entity) -> dict:
    return RESPONSE_MODELS[spec.level].model_validate(entity).model_dump()


# ==================== 批量导入 / 导出 ====================

@router.post("/bulk-import", response_model=BulkImportResult)
async def bulk_import(
    data: BulkImportRequest,
    session: AsyncSession = Depends(get_db),
):
    """批量导入扁平地区数据（单行失败不影响整批）"""
    return await location_import_service.bulk_import(data.locations, session=session)


@router.post("/import-csv", response_model=BulkImportResult)
async def import_csv(
    request: Request,
    session: AsyncSession = Depends(get_db),
):
    """
    批量导入 CSV 文本（请求体为 CSV 原文，UTF-8）

    表头：Country, Country Code, State, State Code, City, PIN Code, Area
    """
    body = await request.body()
    try:
        text = body.decode("utf-8")
    except UnicodeDecodeError:
        raise HTTPException(status_code=400, detail="CSV 必须是 UTF-8 编码")

    rows = parse_location_csv(text)
    if not rows:
        raise HTTPException(status_code=400, detail="CSV 中没有可导入的数据")
    return await location_import_service.bulk_import(rows, session=session)


@router.get("/export")
async def export_locations(session: AsyncSession = Depends(get_db)):
    """导出全部邮编及其层级为 CSV"""
    rows = await location_service.export_locations(session)
    filename = f"locations_{datetime.utcnow().strftime('%Y%m%d')}.csv"
    return StreamingResponse(
        iter([render_location_csv(rows)]),
        media_type="text/csv",
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )


# ==================== 使用次数 / 索引维护 ====================

@router.post("/recalculate-all-usage", response_model=UsageRecalcSummary)
async def recalculate_all_usage(session: AsyncSession = Depends(get_db)):
    """按访客报名数据重算全部层级的使用次数"""
    return await location_usage_service.recalculate_all(session=session)


@router.post("/reindex")
async def reindex(session: AsyncSession = Depends(get_db)):
    """全量重建邮编搜索索引"""
    indexed = await location_service.reindex_postal_codes(session)
    return {"indexed": indexed}


# ==================== 查询 / 搜索 ====================

@router.get("/pincode/{code}", response_model=PincodeLookupResponse)
async def lookup_pincode(
    code: str,
    session: AsyncSession = Depends(get_db),
):
    """按邮编查询国家/州/城市及所有区域"""
    return await location_service.lookup_by_code(code, session)


@router.get("/search/pincodes", response_model=List[PostalCodeSearchItem])
async def search_pincodes(
    q: str = Query(..., min_length=1, description="邮编前缀"),
    limit: Optional[int] = Query(None, ge=1, le=50, description="返回条数"),
    session: AsyncSession = Depends(get_db),
):
    """邮编前缀搜索（数据库）"""
    return await location_service.search_postal_codes(q, session, limit=limit)


@router.get("/search/pincodes/autocomplete", response_model=AutocompleteResponse)
async def autocomplete_pincodes(
    q: str = Query("", description="搜索词，至少 2 个字符"),
    limit: Optional[int] = Query(None, ge=1, le=50, description="返回条数"),
    session: AsyncSession = Depends(get_db),
):
    """邮编自动补全（搜索引擎，不可用时退回数据库搜索）"""
    return await location_service.autocomplete(q, session, limit=limit)


# ==================== 创建 / 更新 ====================

@router.post("/countries", response_model=CountryResponse, status_code=201)
async def create_country(data: CountryCreate, session: AsyncSession = Depends(get_db)):
    """创建国家"""
    return await location_service.create_country(data, session)


@router.post("/states", response_model=StateResponse, status_code=201)
async def create_state(data: StateCreate, session: AsyncSession = Depends(get_db)):
    """创建州/省"""
    return await location_service.create_state(data, session)


@router.post("/cities", response_model=CityResponse, status_code=201)
async def create_city(data: CityCreate, session: AsyncSession = Depends(get_db)):
    """创建城市"""
    return await location_service.create_city(data, session)


@router.post("/pincodes", response_model=PostalCodeResponse, status_code=201)
async def create_pincode(data: PostalCodeCreate, session: AsyncSession = Depends(get_db)):
    """创建邮编"""
    return await location_service.create_postal_code(data, session)


@router.put("/countries/{entity_id}", response_model=CountryResponse)
async def update_country(entity_id: str, data: CountryUpdate, session: AsyncSession = Depends(get_db)):
    return await location_service.update(LocationLevel.COUNTRY, entity_id, data, session)


@router.put("/states/{entity_id}", response_model=StateResponse)
async def update_state(entity_id: str, data: StateUpdate, session: AsyncSession = Depends(get_db)):
    return await location_service.update(LocationLevel.STATE, entity_id, data, session)


@router.put("/cities/{entity_id}", response_model=CityResponse)
async def update_city(entity_id: str, data: CityUpdate, session: AsyncSession = Depends(get_db)):
    return await location_service.update(LocationLevel.CITY, entity_id, data, session)


@router.put("/pincodes/{entity_id}", response_model=PostalCodeResponse)
async def update_pincode(entity_id: str, data: PostalCodeUpdate, session: AsyncSession = Depends(get_db)):
    return await location_service.update(LocationLevel.POSTAL_CODE, entity_id, data, session)


# ==================== 通用层级路由 ====================

@router.get("/{level}", response_model=LocationListResponse)
async def list_locations(
    spec: LevelSpec = Depends(resolve_level),
    parent_id: Optional[str] = Query(None, description="上级 ID"),
    search: Optional[str] = Query(None, description="搜索名称（邮编按前缀/区域）"),
    is_active: Optional[bool] = Query(None, description="是否启用"),
    page: int = Query(1, ge=1, description="页码"),
    page_size: int = Query(20, ge=1, le=200, description="每页数量"),
    session: AsyncSession = Depends(get_db),
):
    """获取地区列表"""
    entities, total = await location_service.list_locations(
        spec.level,
        session,
        parent_id=parent_id,
        search=search,
        is_active=is_active,
        page=page,
        page_size=page_size,
    )
    return LocationListResponse(items=[to_response(spec, e) for e in entities], total=total)


@router.get("/{level}/{entity_id}")
async def get_location(
    entity_id: str,
    spec: LevelSpec = Depends(resolve_level),
    session: AsyncSession = Depends(get_db),
):
    """获取地区详情"""
    entity = await location_service.get(spec.level, entity_id, session)
    return to_response(spec, entity)


@router.delete("/{level}/{entity_id}", response_model=DeleteResult)
async def delete_location(
    entity_id: str,
    spec: LevelSpec = Depends(resolve_level),
    session: AsyncSession = Depends(get_db),
):
    """
    删除地区

    - 有下级记录：400，提示先删除下级
    - 已被访客使用：停用（soft_deleted = true）
    - 否则物理删除
    """
    return await location_deletion_service.delete(spec.level, entity_id, session=session)


@router.post("/{level}/bulk-delete", response_model=BulkDeleteResult)
async def bulk_delete_locations(
    data: BulkDeleteRequest,
    spec: LevelSpec = Depends(resolve_level),
    session: AsyncSession = Depends(get_db),
):
    """批量删除（逐条应用删除规则，单条失败不影响其他）"""
    return await location_deletion_service.bulk_delete(spec.level, data.ids, session=session)


@router.post("/{level}/recalculate-usage", response_model=UsageRecalcResult)
async def recalculate_usage(
    spec: LevelSpec = Depends(resolve_level),
    session: AsyncSession = Depends(get_db),
):
    """重算该层级的使用次数"""
    return await location_usage_service.recalculate(spec.level, session=session)
