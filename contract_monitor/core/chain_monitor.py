"""
单链合约监控器

持有一条链的区块轮询器和字节码获取器，负责：
候选合约 -> 获取字节码 -> 提取元数据指针 -> 源码获取服务 -> 验证注入服务
"""

import asyncio
import time
from typing import Any, Awaitable, Callable, Optional, Set

from contract_monitor.config.monitor_config import MonitorConfig
from contract_monitor.core.network_validator import NetworkValidator
from contract_monitor.core.startup_logger import StartupLogger
from contract_monitor.managers.rpc_manager import RPCManager
from contract_monitor.models.data_types import (
    CandidateContract, ChainIdentity, ContractArtifact, InjectionRequest,
    MonitorState, MonitorStatus, PollState
)
from contract_monitor.models.errors import MetadataDecodeError, MonitorStateError
from contract_monitor.processors.block_poller import BlockPoller
from contract_monitor.processors.bytecode_retriever import BytecodeRetriever
from contract_monitor.utils.log_utils import extended_seconds_to_hms, get_logger
from contract_monitor.utils.metadata_extractor import extract_pointer

logger = get_logger(__name__)


class ChainMonitor:
    """单链监控器 - 定期检查链上新部署的合约"""

    def __init__(
        self,
        chain: ChainIdentity,
        config: MonitorConfig,
        source_fetcher,
        injector,
        rpc_manager=None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        validate_network: bool = True,
    ):
        """
        初始化监控器

        Args:
            chain: 链标识
            config: 监控配置
            source_fetcher: 共享的源码获取服务（resolve(pointer, on_resolved)）
            injector: 共享的验证注入服务（async inject(request)）
            rpc_manager: RPC管理器，默认按 chain.provider_endpoint 创建
            sleep: 延时函数，测试中可替换
            validate_network: 启动时是否检查网络连接
        """
        self.chain = chain
        self.config = config
        self.source_fetcher = source_fetcher
        self.injector = injector
        self.rpc_manager = rpc_manager or RPCManager(chain)

        self.state = PollState(
            next_block_height=0,
            current_poll_delay=config.clamp_delay(config.block_pause),
        )
        self.lifecycle = MonitorState.IDLE

        self.poller = BlockPoller(
            chain, self.rpc_manager, config, self.state, self._dispatch_candidate, sleep=sleep
        )
        self.retriever = BytecodeRetriever(
            chain, self.rpc_manager, config.bytecode_retry_pause, self._is_running, sleep=sleep
        )
        self.network_validator = NetworkValidator(chain, self.rpc_manager) if validate_network else None
        self.startup_logger = StartupLogger(chain, config)

        self._poll_task: Optional[asyncio.Task] = None
        self._pending: Set[asyncio.Task] = set()

        self.contracts_injected: int = 0
        self.start_time: float = 0.0

    def _is_running(self) -> bool:
        return self.state.running

    @property
    def is_running(self) -> bool:
        return self.state.running

    async def start(self) -> None:
        """
        启动监控：确定起始区块并开始轮询

        启动过程中调用 stop() 时直接返回，不再开始轮询。

        Raises:
            MonitorStateError: 监控器正在启动、已在运行或已停止（不支持重启，需要新建实例）
            ConnectionError: 网络检查失败
        """
        if self.lifecycle in (MonitorState.STARTING, MonitorState.RUNNING):
            raise MonitorStateError(f"{self.chain} 监控器已在运行中")
        if self.lifecycle is MonitorState.STOPPED:
            raise MonitorStateError(f"{self.chain} 监控器已停止，不支持重新启动，请创建新的监控器")

        self.lifecycle = MonitorState.STARTING
        try:
            if self.network_validator:
                await self.network_validator.check_network_connection()

            start_block = self.config.get_start_block(self.chain.chain_id)
            from_override = start_block is not None
            if not from_override:
                start_block = await self.rpc_manager.get_block_number()
        except Exception:
            if self.lifecycle is MonitorState.STARTING:
                self.lifecycle = MonitorState.IDLE
            raise

        if self.lifecycle is not MonitorState.STARTING:
            logger.info(f"🛑 [shutdown] {self.chain} 启动过程中已收到停止请求，不再开始轮询")
            return

        self.state.next_block_height = start_block
        self.state.running = True
        self.lifecycle = MonitorState.RUNNING
        self.start_time = time.time()

        self._poll_task = asyncio.create_task(self.poller.run(), name=f"poller_{self.chain.name}")
        self._poll_task.add_done_callback(self._on_poll_task_done)

        self.startup_logger.log_startup_info(start_block, from_override)

    def _on_poll_task_done(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f"❌ {self.chain} 轮询任务异常退出: {error}", exc_info=error)

    def stop(self) -> None:
        """停止监控：不再调度新的任务，进行中的请求继续完成"""
        if self.lifecycle is MonitorState.STARTING:
            logger.info(f"🛑 [shutdown] {self.chain} 监控器正在启动，取消启动")
        elif self.lifecycle is not MonitorState.RUNNING:
            logger.info(f"{self.chain} 监控器未在运行")
            self.lifecycle = MonitorState.STOPPED
            return

        self.state.running = False
        self.lifecycle = MonitorState.STOPPED
        logger.info(f"🛑 [shutdown] 正在停止 {self.chain} 监控...")

    def _spawn(self, coro, name: Optional[str] = None) -> asyncio.Task:
        task = asyncio.create_task(coro, name=name)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    def _dispatch_candidate(self, candidate: CandidateContract) -> None:
        self._spawn(self._process_candidate(candidate), name=f"candidate_{candidate.address}")

    async def _process_candidate(self, candidate: CandidateContract) -> None:
        """处理单个候选合约：获取字节码并提取元数据指针"""
        bytecode = await self.retriever.fetch_bytecode(candidate.address, candidate.retries_remaining)
        if bytecode is None:
            return

        try:
            pointer = extract_pointer(bytecode, candidate.address, self.chain)
        except MetadataDecodeError as e:
            logger.error(f"❌ [metadata-decode-failed] {self.chain} {candidate.address} 元数据读取失败: {e}")
            return

        logger.info(f"🔗 {self.chain} {candidate.address} 元数据指针: {pointer}")

        def on_resolved(artifact: ContractArtifact) -> None:
            self._spawn(
                self._inject(artifact, bytecode, candidate.address),
                name=f"inject_{candidate.address}",
            )

        try:
            self.source_fetcher.resolve(pointer, on_resolved)
        except Exception as e:
            logger.error(f"❌ [source-failed] {self.chain} {candidate.address} 提交源码获取失败 ({pointer}): {e}")

    async def _inject(self, artifact: ContractArtifact, bytecode: str, address: str) -> None:
        """提交注入请求，失败只记录日志"""
        request = InjectionRequest(
            contract=artifact,
            bytecode=bytecode,
            chain_id=self.chain.chain_id,
            addresses=[address],
        )
        try:
            outcome = await self.injector.inject(request)
        except Exception as e:
            logger.error(f"❌ [injection-failed] {self.chain} {artifact.name} ({address}): {e}")
            return

        if outcome is not None and not outcome.success:
            logger.error(f"❌ [injection-failed] {self.chain} {artifact.name} ({address}): {outcome.message}")
            return

        self.contracts_injected += 1
        logger.info(f"✅ [injected] {self.chain} {artifact.name} ({address}) 注入成功")

    async def wait_pending(self) -> None:
        """等待所有进行中的字节码获取和注入任务完成"""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def graceful_shutdown(self) -> None:
        """优雅关闭：停止调度后等待进行中的任务完成"""
        self.stop()

        if self._poll_task is not None:
            await asyncio.gather(self._poll_task, return_exceptions=True)

        await self.wait_pending()
        self.log_final_report()

    def log_final_report(self) -> None:
        """记录运行汇总"""
        runtime = time.time() - self.start_time if self.start_time else 0
        logger.info(
            f"✅ {self.chain} 监控器已关闭 | 运行时长: {extended_seconds_to_hms(runtime)} | "
            f"区块: {self.poller.blocks_processed} | 发现合约: {self.poller.contracts_found} | "
            f"字节码放弃: {self.retriever.exhausted} | 注入成功: {self.contracts_injected}"
        )

        get_performance_stats = getattr(self.rpc_manager, 'get_performance_stats', None)
        if get_performance_stats is not None:
            stats = get_performance_stats()
            logger.info(
                f"📊 {self.chain} RPC 调用: {stats.rpc_calls} (失败 {stats.rpc_failures}) | "
                f"平均 {stats.avg_rpc_per_second:.2f}/s | 分类: {stats.rpc_calls_by_type}"
            )

    def get_status(self) -> MonitorStatus:
        """获取当前监控状态"""
        status = MonitorStatus(
            chain=self.chain.name,
            state=self.lifecycle.value,
            is_running=self.state.running,
            next_block=self.state.next_block_height,
            current_poll_delay=self.state.current_poll_delay,
            blocks_processed=self.poller.blocks_processed,
            contracts_found=self.poller.contracts_found,
            contracts_injected=self.contracts_injected,
            pending_tasks=len(self._pending),
            start_time=self.start_time,
        )
        status.update_runtime(time.time())
        return status
