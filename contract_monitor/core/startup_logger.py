"""
启动信息记录模块

负责记录监控器启动时的配置状态
"""

from contract_monitor.config.monitor_config import MonitorConfig
from contract_monitor.models.data_types import ChainIdentity
from contract_monitor.utils.log_utils import get_logger

logger = get_logger(__name__)


class StartupLogger:
    """启动信息记录器"""

    def __init__(self, chain: ChainIdentity, config: MonitorConfig):
        self.chain = chain
        self.config = config

    def log_startup_info(self, start_block: int, from_override: bool) -> None:
        """记录启动信息"""
        source = "配置指定" if from_override else "链头"
        logger.info(f"🚀 [startup] 开始监控 {self.chain} 新部署合约，起始区块 #{start_block}（{source}）")
        logger.info(
            f"⏱️ 轮询间隔: {self.config.block_pause:.2f}s "
            f"[{self.config.block_pause_lower_limit:.2f}s, {self.config.block_pause_upper_limit:.2f}s] "
            f"系数 {self.config.block_pause_factor}"
        )
        logger.info(
            f"🔁 字节码重试: {self.config.initial_bytecode_tries} 次，"
            f"间隔 {self.config.bytecode_retry_pause:.2f}s"
        )
        logger.debug(f"{self.chain} 完整配置: {self.config.to_dict()}")
