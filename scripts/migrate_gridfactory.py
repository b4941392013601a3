""""轻量迁移：创建 jobDefinition / jobHistory / nodeInformation 三张表（若不存在），不修改既有表。

用 SQLAlchemy 的 Base.metadata.create_all()
只创建缺失的表，不会破坏现有数据；生产库的表结构以 GridFactory 自身为准。"""

# scripts/migrate_gridfactory.py
import os
import sys

# 确保脚本在控制台有输出；不影响主服务的日志设置
os.environ.setdefault("LOG_TO_FILE", "false")
os.environ.setdefault("PYTHONUNBUFFERED", "1")

from sqlalchemy import inspect  # noqa: E402
from gridfactory_db.infra.db import engine  # noqa: E402
from gridfactory_db.infra.logger import emit  # noqa: E402
from gridfactory_db.core.models import Base  # noqa: E402


def run():
    emit("migrate_tables_begin", database_url=os.getenv("DATABASE_URL"))
    print("[migrate_gridfactory] creating tables if not exists ...", flush=True)
    Base.metadata.create_all(bind=engine)
    tables = sorted(inspect(engine).get_table_names())
    emit("migrate_tables_done", status="ok", tables=tables)
    print(f"[migrate_gridfactory] done: {', '.join(tables)}", flush=True)
    return tables


if __name__ == "__main__":
    print(f"[migrate_gridfactory] DATABASE_URL={os.getenv('DATABASE_URL')}", flush=True)
    try:
        run()
        sys.exit(0)
    except Exception as e:
        emit("migrate_tables_error", error=str(e))
        print(f"[migrate_gridfactory] ERROR: {e}", file=sys.stderr, flush=True)
        sys.exit(1)
