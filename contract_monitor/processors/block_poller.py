"""
区块轮询器

按高度逐个获取区块，并根据是否取到区块自适应调整轮询间隔：
- 区块未产生：间隔乘以系数（退避），不超过上限
- 取到区块：间隔除以系数（加速），不低于下限
- RPC 失败：间隔不变，原高度重试
"""

import asyncio
from typing import Any, Awaitable, Callable, List

from eth_utils import encode_hex

from contract_monitor.config.monitor_config import MonitorConfig
from contract_monitor.models.data_types import (
    CandidateContract, ChainIdentity, PollOutcome, PollState
)
from contract_monitor.utils.contract_address import creates_contract, get_transaction_contract_address
from contract_monitor.utils.log_utils import get_logger

logger = get_logger(__name__)

SleepFunc = Callable[[float], Awaitable[Any]]


class BlockPoller:
    """区块轮询器 - 产出合约创建交易对应的候选地址"""

    def __init__(
        self,
        chain: ChainIdentity,
        rpc_manager,
        config: MonitorConfig,
        state: PollState,
        on_candidate: Callable[[CandidateContract], None],
        sleep: SleepFunc = asyncio.sleep,
    ):
        """
        初始化区块轮询器

        Args:
            chain: 链标识
            rpc_manager: RPC管理器（需提供 get_block）
            config: 监控配置
            state: 所属链监控器的轮询状态，running 为 False 时停止调度
            on_candidate: 每发现一个候选合约时的回调
            sleep: 延时函数，测试中可替换
        """
        self.chain = chain
        self.rpc_manager = rpc_manager
        self.config = config
        self.state = state
        self.on_candidate = on_candidate
        self._sleep = sleep

        self.blocks_processed: int = 0
        self.contracts_found: int = 0

    def _grow_delay(self) -> None:
        self.state.current_poll_delay = self.config.clamp_delay(
            self.state.current_poll_delay * self.config.block_pause_factor
        )

    def _shrink_delay(self) -> None:
        self.state.current_poll_delay = self.config.clamp_delay(
            self.state.current_poll_delay / self.config.block_pause_factor
        )

    def scan_block(self, block) -> List[CandidateContract]:
        """扫描区块中的合约创建交易，按交易顺序返回候选合约"""
        candidates = []
        block_number = block.get('number')
        for tx in block.get('transactions', []):
            if not creates_contract(tx):
                continue
            tx_hash = tx.get('hash')
            candidates.append(CandidateContract(
                address=get_transaction_contract_address(tx),
                retries_remaining=self.config.initial_bytecode_tries,
                block_number=block_number,
                tx_hash=encode_hex(tx_hash) if isinstance(tx_hash, (bytes, bytearray)) else tx_hash,
            ))
        return candidates

    async def poll_next(self) -> PollOutcome:
        """轮询一次 next_block_height 对应的区块"""
        block_number = self.state.next_block_height

        try:
            block = await self.rpc_manager.get_block(block_number)
        except Exception as e:
            logger.error(f"❌ [block-failed] {self.chain} 获取区块 #{block_number} 失败: {e}")
            return PollOutcome.FAILED

        if block is None:
            self._grow_delay()
            logger.info(
                f"⏳ [block-wait] {self.chain} 等待新区块 #{block_number}，"
                f"轮询间隔: {self.state.current_poll_delay:.2f}s"
            )
            return PollOutcome.NOT_MINED

        try:
            candidates = self.scan_block(block)
        except Exception as e:
            logger.error(f"❌ [block-failed] {self.chain} 解析区块 #{block_number} 失败: {e}", exc_info=True)
            return PollOutcome.FAILED

        self._shrink_delay()
        self.state.next_block_height = block_number + 1
        self.blocks_processed += 1

        for candidate in candidates:
            self.contracts_found += 1
            logger.info(
                f"🆕 {self.chain} 区块 #{block_number} 发现合约部署: {candidate.address}"
            )
            try:
                self.on_candidate(candidate)
            except Exception as e:
                logger.error(f"❌ {self.chain} 分发候选合约 {candidate.address} 失败: {e}", exc_info=True)

        return PollOutcome.FOUND

    async def run(self) -> None:
        """轮询循环，running 标记为 False 后不再调度新的轮询"""
        while self.state.running:
            await self.poll_next()
            if not self.state.running:
                break
            await self._sleep(self.state.current_poll_delay)

        logger.info(f"🛑 {self.chain} 区块轮询已停止，下一个区块: #{self.state.next_block_height}")
