# expo_admin/models/__init__.py
# 数据模型包
#
# 这个文件用于导出所有数据模型，方便其他模块导入
# 使用方式：from expo_admin.models import Country

from expo_admin.models.country import Country
from expo_admin.models.state import State
from expo_admin.models.city import City
from expo_admin.models.postal_code import PostalCode
from expo_admin.models.visitor import GlobalVisitor, ExhibitionRegistration, RegistrationStatus

# 导出所有模型（方便 Alembic 自动发现）
__all__ = [
    "Country",
    "State",
    "City",
    "PostalCode",
    "GlobalVisitor",
    "ExhibitionRegistration",
    "RegistrationStatus",
]
