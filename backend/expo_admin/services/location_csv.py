# expo_admin/services/location_csv.py
# 地区数据 CSV 导入导出
#
# 功能说明：
# 1. parse_location_csv - 把 CSV 文本解析为导入行，表头不区分大小写，
#    支持 "Country Code" / "country_code" / "countryCode" 等写法
# 2. render_location_csv - 把导出数据渲染为 CSV 文本，表头与导入格式一致
#
# CSV 表头：
#   Country, Country Code, State, State Code, City, PIN Code, Area, Usage Count, Active
#   导入时只读取前 7 列，Usage Count / Active 忽略

import csv
import io
from typing import Iterable

from expo_admin.schemas.location import LocationImportRow

EXPORT_HEADERS = [
    "Country",
    "Country Code",
    "State",
    "State Code",
    "City",
    "PIN Code",
    "Area",
    "Usage Count",
    "Active",
]

# 归一化后的表头 → LocationImportRow 字段
_HEADER_FIELDS = {
    "country": "country",
    "countryname": "country",
    "countrycode": "country_code",
    "state": "state",
    "statename": "state",
    "statecode": "state_code",
    "city": "city",
    "cityname": "city",
    "pincode": "pincode",
    "pin": "pincode",
    "postalcode": "pincode",
    "zipcode": "pincode",
    "area": "area",
}


def _normalize_header(header: str) -> str:
    return "".join(ch for ch in header.lower() if ch.isalnum())


def parse_location_csv(text: str) -> list[LocationImportRow]:
    """
    解析 CSV 文本

    无法识别的列忽略；整行为空的行跳过。
    """
    text = text.lstrip("\ufeff")
    reader = csv.DictReader(io.StringIO(text))
    if not reader.fieldnames:
        return []

    columns = {
        name: _HEADER_FIELDS[_normalize_header(name)]
        for name in reader.fieldnames
        if name and _normalize_header(name) in _HEADER_FIELDS
    }

    rows = []
    for record in reader:
        values = {
            field: (record.get(name) or "").strip()
            for name, field in columns.items()
        }
        if not any(values.values()):
            continue
        rows.append(LocationImportRow(**{k: v or None for k, v in values.items()}))
    return rows


def render_location_csv(rows: Iterable[dict]) -> str:
    """渲染导出 CSV（行格式见 LocationService.export_locations）"""
    output = io.StringIO()
    writer = csv.writer(output)
    writer.writerow(EXPORT_HEADERS)
    for row in rows:
        writer.writerow([
            row["country"],
            row["country_code"],
            row["state"],
            row["state_code"],
            row["city"],
            row["pincode"],
            row["area"],
            row["usage_count"],
            "Yes" if row["is_active"] else "No",
        ])
    return output.getvalue()
