"""
监控数据类型定义

定义监控过程中使用的各种数据结构
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Any, List, Optional


@dataclass(frozen=True)
class ChainIdentity:
    """链标识 - 启动时由静态配置创建，进程生命周期内不变"""
    name: str
    chain_id: int
    provider_endpoint: str

    def __str__(self) -> str:
        return f"{self.name}({self.chain_id})"


class MonitorState(Enum):
    """链监控器生命周期状态"""
    IDLE = "idle"          # 已创建，尚未启动
    STARTING = "starting"  # 正在检查网络、确定起始区块
    RUNNING = "running"
    STOPPED = "stopped"


class PollOutcome(Enum):
    """单次区块轮询结果"""
    FOUND = "found"              # 取到区块，高度前进
    NOT_MINED = "not_mined"      # 区块尚未产生
    FAILED = "failed"            # RPC 调用失败


@dataclass
class PollState:
    """轮询状态 - 每个链监控器独占"""
    next_block_height: int
    current_poll_delay: float
    running: bool = False


@dataclass
class CandidateContract:
    """待获取字节码的新部署合约地址"""
    address: str
    retries_remaining: int
    block_number: Optional[int] = None
    tx_hash: Optional[str] = None

    def __str__(self) -> str:
        return f"CandidateContract(address={self.address}, retries={self.retries_remaining})"


@dataclass(frozen=True)
class MetadataPointer:
    """指向链下构建元数据的内容寻址指针"""
    origin: str                  # ipfs / bzzr1 / bzzr0
    identifier: str              # CIDv0 或 Swarm 哈希（hex）
    address: str
    chain: ChainIdentity
    compiler_version: Optional[str] = None

    def __str__(self) -> str:
        return f"{self.origin}:{self.identifier}"


@dataclass
class ContractArtifact:
    """根据元数据还原出的合约源码"""
    name: str
    compiler_version: Optional[str]
    metadata: Dict[str, Any]
    sources: Dict[str, str] = field(default_factory=dict)
    raw_metadata: str = ""

    def get_files(self) -> Dict[str, str]:
        """返回提交给验证服务的文件集合（包含 metadata.json）"""
        files = dict(self.sources)
        files["metadata.json"] = self.raw_metadata
        return files


@dataclass
class InjectionRequest:
    """注入请求 - 交给验证服务后由其负责生命周期"""
    contract: ContractArtifact
    bytecode: str
    chain_id: int
    addresses: List[str]


@dataclass
class InjectionOutcome:
    """验证服务的处理结果"""
    success: bool
    status_code: Optional[int] = None
    message: str = ""
    response: Optional[Dict[str, Any]] = None


@dataclass
class PerformanceMetrics:
    """RPC 调用统计"""
    rpc_calls: int = 0
    rpc_failures: int = 0
    avg_rpc_per_second: float = 0.0
    rpc_calls_by_type: Dict[str, int] = None

    def __post_init__(self):
        if self.rpc_calls_by_type is None:
            self.rpc_calls_by_type = {}


@dataclass
class MonitorStatus:
    """监控状态数据类"""
    chain: str = ""
    state: str = MonitorState.IDLE.value
    is_running: bool = False
    next_block: int = 0
    current_poll_delay: float = 0.0
    blocks_processed: int = 0
    contracts_found: int = 0
    contracts_injected: int = 0
    pending_tasks: int = 0
    start_time: float = 0.0
    runtime_hours: float = 0.0

    def update_runtime(self, current_time: float) -> None:
        """更新运行时间"""
        if self.start_time > 0:
            self.runtime_hours = (current_time - self.start_time) / 3600
