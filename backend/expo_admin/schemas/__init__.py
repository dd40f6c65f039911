# expo_admin/schemas/__init__.py
# Pydantic Schema 包
#
# 使用方式：from expo_admin.schemas import BulkImportResult

from expo_admin.schemas.location import (
    CountryCreate,
    CountryUpdate,
    CountryResponse,
    StateCreate,
    StateUpdate,
    StateResponse,
    CityCreate,
    CityUpdate,
    CityResponse,
    PostalCodeCreate,
    PostalCodeUpdate,
    PostalCodeResponse,
    LocationListResponse,
    LocationImportRow,
    BulkImportRequest,
    BulkImportResult,
    ImportDetails,
    RowImportResult,
    UsageRecalcResult,
    UsageRecalcSummary,
    DeleteResult,
    BulkDeleteRequest,
    BulkDeleteError,
    BulkDeleteResult,
    LocationBrief,
    PincodeLookupResponse,
    PostalCodeSearchItem,
    AutocompleteResponse,
)

__all__ = [
    "CountryCreate",
    "CountryUpdate",
    "CountryResponse",
    "StateCreate",
    "StateUpdate",
    "StateResponse",
    "CityCreate",
    "CityUpdate",
    "CityResponse",
    "PostalCodeCreate",
    "PostalCodeUpdate",
    "PostalCodeResponse",
    "LocationListResponse",
    "LocationImportRow",
    "BulkImportRequest",
    "BulkImportResult",
    "ImportDetails",
    "RowImportResult",
    "UsageRecalcResult",
    "UsageRecalcSummary",
    "DeleteResult",
    "BulkDeleteRequest",
    "BulkDeleteError",
    "BulkDeleteResult",
    "LocationBrief",
    "PincodeLookupResponse",
    "PostalCodeSearchItem",
    "AutocompleteResponse",
]
