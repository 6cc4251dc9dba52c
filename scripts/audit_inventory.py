"""
库存台账审计脚本

功能：
- 检查每个物品的位置台账（分区总数超量、非正数量、重复分区、未知状态）
- --apply 时把旧格式状态 / 单位置字段迁移为新格式

使用方式：
python scripts/audit_inventory.py
python scripts/audit_inventory.py --apply
FS__DOCUMENT_STORE=sql python scripts/audit_inventory.py --item-id abc123
"""
import argparse
import asyncio
import sys
from typing import Optional

from fs_core.api.deps import get_document_store
from fs_core.config import get_settings
from fs_core.database import get_db_manager
from fs_core.services import ReconciliationService
from fs_core.utils.errors import FleetStockException
from fs_core.utils.logger import setup_logging


async def main(item_id: Optional[str] = None, apply: bool = False) -> int:
    """主函数，返回发现问题的物品数"""
    settings = get_settings()
    setup_logging(log_level=settings.log_level, log_format="text")

    print("=" * 60)
    print("FleetStock 库存台账审计")
    print("=" * 60)

    service = ReconciliationService(get_document_store())

    try:
        if item_id:
            reports = [await service.audit_item(item_id)]
            reports = [r for r in reports if r["issues"]]
        else:
            reports = await service.audit_all()

        for report in reports:
            print(f"✗ {report['item_id']} {report.get('name') or ''}".rstrip())
            for issue in report["issues"]:
                print(f"    - {issue}")

        if not reports:
            print("✓ 没有发现台账问题")

        if apply:
            result = await service.migrate_legacy_statuses()
            print("-" * 60)
            print(f"✓ 已迁移: {len(result.data['migrated'])} / 扫描 {result.metadata['scanned']}")
            for failure in result.data["failed"]:
                print(f"✗ 迁移失败 {failure['item_id']}: {failure['error']}")

        return len(reports)

    except FleetStockException as e:
        print(f"❌ 错误：[{e.code}] {e.detail}")
        return 1

    finally:
        if settings.document_store == "sql":
            await get_db_manager().close()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description='审计库存位置台账')
    parser.add_argument('--item-id', help='只检查指定物品')
    parser.add_argument('--apply', action='store_true', help='迁移旧格式状态和位置字段')

    args = parser.parse_args()
    issues = asyncio.run(main(item_id=args.item_id, apply=args.apply))
    sys.exit(1 if issues else 0)
