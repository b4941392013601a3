""""写入一组示例数据：两个作业（一个 requested、一个已被节点认领的 ready）、一条历史、一个节点。

可作为脚本执行，也可被测试直接导入调用（提供 run() 函数）。
identifier 的前缀取 GF_SEED_URL（默认 https://localhost/gridfactory），重复执行时按主键跳过。"""
# scripts/seed_gridfactory.py
import os
import sys

# 确保脚本在控制台有输出；不影响主服务的日志设置
os.environ.setdefault("LOG_TO_FILE", "false")
os.environ.setdefault("PYTHONUNBUFFERED", "1")

from sqlalchemy.orm import Session  # noqa: E402
from gridfactory_db.infra.db import SessionLocal  # noqa: E402
from gridfactory_db.infra.logger import emit  # noqa: E402
from gridfactory_db.core.models import JobDefinition, JobHistory, NodeInformation  # noqa: E402


def _get_env(k: str, default: str) -> str:
    v = os.getenv(k)
    return v if v is not None and v != "" else default


def _samples(prefix: str):
    return [
        JobDefinition(
            identifier=f"{prefix}/jobs/3a86aacc-2d5f-11dd-80f2-c3b981785945",
            name="hello_world", csStatus="requested", userInfo="/O=Grid/CN=Demo User",
            ramMb=512, opSys="linux", allowedVOs="gridfactory ndgf",
            runtimeEnvironments="APPS/BIO/BLAST-2.2.18",
            inputFileURLs="https://localhost/files/in1.txt https://localhost/files/in2.txt",
            outFileMapping="out.txt gsiftp://se.example.org/out.txt",
            virtualize="false",
        ),
        JobDefinition(
            identifier=f"{prefix}/jobs/7f1e2b40-2d60-11dd-9a3c-0019b9f7b3a1",
            name="render_frames", csStatus="ready:node-17", userInfo="/O=Grid/CN=Demo User",
            providerInfo="/O=Grid/CN=node-17.example.org", nodeId="node-17",
            ramMb=2048, opSys="linux", allowedVOs="gridfactory", virtualize="true",
        ),
        JobHistory(
            identifier=f"{prefix}/jobs/0c2d6e1a-2d5e-11dd-8b2a-0019b9f7b3a1",
            name="old_job", csStatus="done", userInfo="/O=Grid/CN=Demo User",
            runningSeconds=321, opSys="linux",
        ),
        NodeInformation(
            identifier=f"{prefix}/nodes/node-17",
            host="node-17.example.org", maxJobs=4, allowedVOs="gridfactory",
            virtualize="true", hypervisors="kvm xen", maxMBPerJob=4096,
            providerInfo="/O=Grid/CN=node-17.example.org",
        ),
    ]


def insert_if_missing(db: Session, obj) -> str:
    if db.get(type(obj), obj.identifier) is not None:
        action = "skipped"
    else:
        db.add(obj)
        action = "created"
    emit("seed_record", table=obj.__tablename__, identifier=obj.identifier, action=action)
    print(f"[seed_gridfactory] {action} {obj.__tablename__}: {obj.identifier}", flush=True)
    return action


def run():
    prefix = _get_env("GF_SEED_URL", "https://localhost/gridfactory").rstrip("/")
    emit("seed_begin", database_url=os.getenv("DATABASE_URL"), prefix=prefix)
    print("[seed_gridfactory] seeding records ...", flush=True)

    with SessionLocal() as db:
        for obj in _samples(prefix):
            insert_if_missing(db, obj)
        db.commit()

    emit("seed_done", status="ok")
    print("[seed_gridfactory] done.", flush=True)


if __name__ == "__main__":
    try:
        run()
        sys.exit(0)
    except Exception as e:
        emit("seed_error", error=str(e))
        print(f"[seed_gridfactory] ERROR: {e}", file=sys.stderr, flush=True)
        sys.exit(1)
