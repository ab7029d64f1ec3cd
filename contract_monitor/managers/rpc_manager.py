"""
RPC调用管理器

负责单条链的 Web3 连接管理和调用统计
"""

import time
from collections import defaultdict
from typing import Dict, Any, Optional

from web3 import AsyncWeb3
from web3.exceptions import BlockNotFound
from web3.middleware import ExtraDataToPOAMiddleware

from contract_monitor.models.data_types import ChainIdentity, PerformanceMetrics
from contract_monitor.utils.log_utils import get_logger

logger = get_logger(__name__)


class RPCManager:
    """RPC调用管理器 - 每条链独占一个连接"""

    def __init__(self, chain: ChainIdentity, request_timeout: int = 30):
        self.chain = chain
        self.w3 = AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(
            chain.provider_endpoint,
            request_kwargs={"timeout": request_timeout},
        ))
        # 兼容 POA 链（BSC、Polygon 等）的 extraData
        self.w3.middleware_onion.inject(ExtraDataToPOAMiddleware, layer=0)

        # 统计相关
        self.rpc_calls: int = 0
        self.rpc_failures: int = 0
        self.rpc_calls_by_type: Dict[str, int] = defaultdict(int)
        self.start_time: float = time.time()

    def log_rpc_call(self, call_type: str = 'other') -> None:
        """记录RPC调用统计"""
        self.rpc_calls += 1
        self.rpc_calls_by_type[call_type] += 1

    async def get_block_number(self) -> int:
        """获取链头区块号"""
        self.log_rpc_call('get_block_number')
        try:
            return await self.w3.eth.get_block_number()
        except Exception:
            self.rpc_failures += 1
            raise

    async def get_block(self, block_number: int):
        """获取区块（包含完整交易），区块尚未产生时返回 None"""
        self.log_rpc_call('get_block')
        try:
            return await self.w3.eth.get_block(block_number, full_transactions=True)
        except BlockNotFound:
            return None
        except Exception:
            self.rpc_failures += 1
            raise

    async def get_code(self, address: str) -> bytes:
        """获取地址上的字节码，没有代码时返回空字节串"""
        self.log_rpc_call('get_code')
        try:
            code = await self.w3.eth.get_code(AsyncWeb3.to_checksum_address(address))
        except Exception:
            self.rpc_failures += 1
            raise
        return bytes(code) if code else b""

    async def get_chain_id(self) -> int:
        """获取节点报告的 chain id"""
        self.log_rpc_call('get_chain_id')
        try:
            return await self.w3.eth.chain_id
        except Exception:
            self.rpc_failures += 1
            raise

    def get_performance_stats(self) -> PerformanceMetrics:
        """获取性能统计信息"""
        runtime = time.time() - self.start_time
        avg_rpc_per_second = self.rpc_calls / runtime if runtime > 0 else 0

        return PerformanceMetrics(
            rpc_calls=self.rpc_calls,
            rpc_failures=self.rpc_failures,
            avg_rpc_per_second=avg_rpc_per_second,
            rpc_calls_by_type=dict(self.rpc_calls_by_type)
        )

    async def test_connection(self) -> Dict[str, Any]:
        """测试网络连接并返回基本信息"""
        logger.info(f"正在测试 {self.chain} RPC 连接...")
        try:
            latest_block = await self.get_block_number()
            chain_id = await self.get_chain_id()

            return {
                'success': True,
                'latest_block': latest_block,
                'chain_id': chain_id,
                'network': self.chain.name,
            }
        except Exception as e:
            return {
                'success': False,
                'error': str(e),
                'network': self.chain.name,
            }
