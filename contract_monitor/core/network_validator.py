"""
网络连接验证模块

负责验证网络连接并核对节点的 chain id
"""

from typing import Dict, Any

from contract_monitor.models.data_types import ChainIdentity
from contract_monitor.utils.log_utils import get_logger

logger = get_logger(__name__)


class NetworkValidator:
    """网络连接验证器"""

    def __init__(self, chain: ChainIdentity, rpc_manager):
        """
        初始化网络验证器

        Args:
            chain: 配置中的链标识
            rpc_manager: RPC管理器
        """
        self.chain = chain
        self.rpc_manager = rpc_manager

    async def check_network_connection(self) -> Dict[str, Any]:
        """
        检查网络连接

        Returns:
            连接信息字典

        Raises:
            ConnectionError: 连接失败时抛出
        """
        logger.info(f"🌐 正在检查 {self.chain} 网络连接...")

        connection_info = await self.rpc_manager.test_connection()

        if not connection_info['success']:
            error_msg = f"{self.chain} 网络连接失败: {connection_info['error']}"
            logger.error(error_msg)
            raise ConnectionError(f"无法连接到RPC: {connection_info['error']}")

        logger.info(
            f"🌐 {connection_info['network']} 连接成功 - "
            f"区块: {connection_info['latest_block']}, "
            f"Chain ID: {connection_info['chain_id']}"
        )

        if connection_info['chain_id'] != self.chain.chain_id:
            logger.warning(
                f"⚠️ {self.chain.name} 节点返回的 chain id ({connection_info['chain_id']}) "
                f"与配置 ({self.chain.chain_id}) 不一致"
            )
        return connection_info
