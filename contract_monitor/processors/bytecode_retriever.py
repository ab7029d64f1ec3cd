"""
字节码获取器

获取新部署合约的字节码，节点尚未同步到部署时（返回空代码）或 RPC 失败时
按固定间隔重试，重试次数耗尽后放弃该候选合约。
"""

import asyncio
from typing import Any, Awaitable, Callable, Optional

from eth_utils import encode_hex, to_bytes

from contract_monitor.models.data_types import ChainIdentity
from contract_monitor.utils.log_utils import get_logger

logger = get_logger(__name__)


class BytecodeRetriever:
    """字节码获取器 - 有限次重试"""

    def __init__(
        self,
        chain: ChainIdentity,
        rpc_manager,
        retry_pause: float,
        is_running: Callable[[], bool],
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.chain = chain
        self.rpc_manager = rpc_manager
        self.retry_pause = retry_pause
        self.is_running = is_running
        self._sleep = sleep

        # 统计信息
        self.fetch_attempts: int = 0
        self.exhausted: int = 0

    async def fetch_bytecode(self, address: str, retries_remaining: int) -> Optional[str]:
        """
        获取合约字节码

        Args:
            address: 合约地址
            retries_remaining: 剩余尝试次数，为 0 时不发起任何请求

        Returns:
            Optional[str]: 0x 开头的字节码；重试耗尽或监控已停止时返回 None
        """
        while retries_remaining > 0:
            retries_remaining -= 1
            self.fetch_attempts += 1

            try:
                code = await self.rpc_manager.get_code(address)
            except Exception as e:
                logger.error(
                    f"❌ [bytecode-failed] {self.chain} 获取 {address} 字节码失败: {e}，"
                    f"剩余重试: {retries_remaining}"
                )
            else:
                if isinstance(code, str):
                    code = to_bytes(hexstr=code)
                if code:
                    return encode_hex(code)
                logger.info(
                    f"📭 [bytecode-empty] {self.chain} {address} 字节码为空，剩余重试: {retries_remaining}"
                )

            if retries_remaining <= 0 or not self.is_running():
                break
            await self._sleep(self.retry_pause)
            if not self.is_running():
                break

        if retries_remaining <= 0:
            self.exhausted += 1
            logger.info(f"🗑️ [bytecode-exhausted] {self.chain} {address} 重试次数耗尽，放弃")
        return None
