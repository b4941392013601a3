""""模块职能：

声明 GridFactory 的三张表，仅用于开发/测试库的建表（init_db / scripts/migrate_gridfactory.py）。

网关运行时并不依赖这里的列定义：字段列表一律在首次访问时从库里自省
（services/schema.py），生产库多出来或少掉的列都能正常展示。

主要类型：

JobDefinition：jobDefinition 表，待拉取/运行中的作业

JobHistory：jobHistory 表，已结束作业的归档（与 jobDefinition 同构）

NodeInformation：nodeInformation 表，拉取作业的计算节点登记信息"""

# gridfactory_db/core/models.py
from sqlalchemy.orm import declarative_base
from sqlalchemy import Column, Integer, String, Text, DateTime
from sqlalchemy.sql import func

Base = declarative_base()


class _JobColumns:
    # jobDefinition 与 jobHistory 共用的列
    identifier = Column(String(255), primary_key=True)   # https://<host>/gridfactory/jobs/<uuid>
    name = Column(String(255))
    csStatus = Column(String(64), index=True)            # requested / ready:<node> / running / done ...
    userInfo = Column(String(255))
    providerInfo = Column(String(255))
    nodeId = Column(String(255))
    created = Column(DateTime, server_default=func.now())
    lastModified = Column(DateTime, server_default=func.now())
    runningSeconds = Column(Integer)
    ramMb = Column(Integer)
    opSys = Column(String(255))
    runtimeEnvironments = Column(Text)                   # 空格分隔列表
    allowedVOs = Column(Text)                            # 空格分隔列表
    virtualize = Column(String(8))
    inputFileURLs = Column(Text)                         # 空格分隔列表
    outFileMapping = Column(Text)                        # "src1 dst1 src2 dst2 ..."
    trials = Column(Integer)


class JobDefinition(_JobColumns, Base):
    __tablename__ = "jobDefinition"


class JobHistory(_JobColumns, Base):
    __tablename__ = "jobHistory"


class NodeInformation(Base):
    __tablename__ = "nodeInformation"
    identifier = Column(String(255), primary_key=True)
    host = Column(String(255))
    subnodesDbUrl = Column(String(255))
    maxJobs = Column(Integer)
    allowedVOs = Column(Text)
    virtualize = Column(String(8))
    hypervisors = Column(Text)                           # 空格分隔列表
    maxMBPerJob = Column(Integer)
    providerInfo = Column(String(255))                   # 建档时的客户端证书主题，写权限以它为准
    created = Column(DateTime, server_default=func.now())
    lastModified = Column(DateTime, server_default=func.now())
