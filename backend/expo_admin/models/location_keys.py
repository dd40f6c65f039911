# expo_admin/models/location_keys.py
# 地区名称/编码归一化
#
# 功能说明：
# 数据库里名称比较不区分大小写（"Mumbai" 与 "mumbai" 是同一个城市），
# 通过额外的 name_key 列存储归一化后的名称，并在 name_key 上建唯一索引，
# 这样 PostgreSQL 和 SQLite 的行为一致，不依赖数据库排序规则。

from typing import Optional


def normalize_name_key(name: Optional[str]) -> str:
    """名称归一化：去首尾空白、合并连续空白、转小写"""
    if not name:
        return ""
    return " ".join(name.split()).lower()


def normalize_code(code: Optional[str]) -> str:
    """编码归一化：去空白、转大写"""
    if not code:
        return ""
    return code.strip().upper()


def normalize_area(area: Optional[str]) -> str:
    """区域名只去首尾空白，空值统一为空字符串（参与邮编复合唯一键）"""
    if not area:
        return ""
    return area.strip()
