#!/usr/bin/env python3
# scripts/import_locations.py
# 从 CSV 文件批量导入地区数据
#
# 功能说明：
# 1. 读取 CSV 文件（表头：Country, Country Code, State, State Code, City, PIN Code, Area）
# 2. 按批次调用批量导入服务，自动创建国家/州/城市并按 (邮编, 城市, 区域) 去重
# 3. 输出每批及汇总统计
# 4. 可选：导入完成后重算使用次数
#
# 使用方法：
#   python scripts/import_locations.py data/india_pincodes.csv
#
#   # 每批 5000 行，导入后重算使用次数
#   python scripts/import_locations.py data/india_pincodes.csv --batch-size 5000 --recalculate
#
# 注意事项：
# - 同一个文件重复导入是安全的，已存在的邮编计为"跳过"
# - 导入中断后直接重新运行即可

import asyncio
import argparse
import sys
import os

# 将 backend 目录添加到 Python 路径
# 这样才能正确导入 expo_admin 模块
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'backend'))

from expo_admin.core.database import async_session_maker, close_db
from expo_admin.core.logging import setup_logging
from expo_admin.schemas.location import BulkImportResult
from expo_admin.services.location_csv import parse_location_csv
from expo_admin.services.location_import_service import location_import_service
from expo_admin.services.location_usage_service import location_usage_service


def merge_result(total: BulkImportResult, batch: BulkImportResult) -> None:
    """把一批的统计累加到汇总"""
    total.success += batch.success
    total.skipped += batch.skipped
    total.failed += batch.failed
    total.errors.extend(batch.errors)
    for field in type(batch.details).model_fields:
        setattr(total.details, field, getattr(total.details, field) + getattr(batch.details, field))


async def import_file(path: str, batch_size: int, recalculate: bool) -> bool:
    """
    导入 CSV 文件

    Args:
        path: CSV 文件路径
        batch_size: 每批行数
        recalculate: 导入完成后是否重算使用次数
    """
    with open(path, encoding="utf-8-sig") as f:
        rows = parse_location_csv(f.read())

    if not rows:
        print(f"❌ 文件中没有可导入的数据: {path}")
        return False

    print(f"共 {len(rows)} 行，每批 {batch_size} 行")

    total = BulkImportResult()
    try:
        async with async_session_maker() as session:
            for start in range(0, len(rows), batch_size):
                batch = rows[start:start + batch_size]
                result = await location_import_service.bulk_import(batch, session=session)
                merge_result(total, result)
                print(
                    f"  第 {start + 1}-{start + len(batch)} 行: "
                    f"成功 {result.success}, 跳过 {result.skipped}, 失败 {result.failed}"
                )

            if recalculate:
                print("")
                print("正在重算使用次数...")
                summary = await location_usage_service.recalculate_all(session=session)
                for name, level_result in summary.model_dump().items():
                    print(f"  {name}: 共 {level_result['total']}, 更新 {level_result['updated']}")
    finally:
        await close_db()

    details = total.details
    print("")
    print("=" * 50)
    print(f"✅ 导入完成: 成功 {total.success}, 跳过 {total.skipped}, 失败 {total.failed}")
    print(
        f"   新建国家 {details.countries_created}, 州/省 {details.states_created}, "
        f"城市 {details.cities_created}, 邮编 {details.pincodes_created}"
    )
    if total.errors:
        print("")
        print("⚠️  错误（最多显示 20 条）:")
        for error in total.errors[:20]:
            print(f"   {error}")
    print("=" * 50)
    return total.failed == 0


def main():
    """
    主函数：解析命令行参数并导入
    """
    parser = argparse.ArgumentParser(
        description="从 CSV 文件批量导入地区数据",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
示例:
  python scripts/import_locations.py data/india_pincodes.csv
  python scripts/import_locations.py data/india_pincodes.csv --batch-size 5000 --recalculate
        """
    )

    parser.add_argument("path", help="CSV 文件路径")

    parser.add_argument(
        "-b", "--batch-size",
        type=int,
        default=1000,
        help="每批导入行数（默认: 1000）"
    )

    parser.add_argument(
        "--recalculate",
        action="store_true",
        help="导入完成后重算所有层级的使用次数"
    )

    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="输出 DEBUG 日志（显示每条新建的国家、州/省、城市）"
    )

    args = parser.parse_args()

    if not os.path.isfile(args.path):
        print(f"❌ 文件不存在: {args.path}")
        sys.exit(1)

    if args.batch_size < 1:
        print("❌ --batch-size 必须大于 0")
        sys.exit(1)

    setup_logging(level="DEBUG" if args.verbose else None)

    print("=" * 50)
    print("   Expo Admin - 地区数据导入")
    print("=" * 50)
    print(f"文件: {args.path}")
    print("=" * 50)
    print("")

    success = asyncio.run(import_file(args.path, args.batch_size, args.recalculate))

    sys.exit(0 if success else 1)


if __name__ == "__main__":
    main()
