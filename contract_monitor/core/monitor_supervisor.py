"""
多链监控管理器

为每条配置的链创建一个 ChainMonitor，共享源码获取服务和验证注入服务
"""

import asyncio
from dataclasses import asdict
from typing import Any, Callable, Dict, List, Optional

from contract_monitor.config.base_config import SourceFetcherConfig, VerificationConfig
from contract_monitor.config.monitor_config import MonitorConfig, load_chain_identities
from contract_monitor.core.chain_monitor import ChainMonitor
from contract_monitor.models.data_types import ChainIdentity
from contract_monitor.services.injector import VerificationInjector
from contract_monitor.services.source_fetcher import SourceFetcher
from contract_monitor.utils.log_utils import get_logger

logger = get_logger(__name__)

MonitorFactory = Callable[[ChainIdentity, MonitorConfig, Any, Any], ChainMonitor]


class MonitorSupervisor:
    """多链监控器管理器"""

    def __init__(
        self,
        chains: List[ChainIdentity],
        config: MonitorConfig,
        source_fetcher,
        injector,
        monitor_factory: Optional[MonitorFactory] = None,
    ):
        self.config = config
        self.source_fetcher = source_fetcher
        self.injector = injector

        factory = monitor_factory or ChainMonitor
        self.monitors: Dict[str, ChainMonitor] = {}
        for chain in chains:
            if chain.name in self.monitors:
                logger.warning(f"⚠️ {chain.name} 链监控器已存在，忽略重复配置")
                continue
            self.monitors[chain.name] = factory(chain, config, source_fetcher, injector)
            logger.info(f"✅ {chain} 链监控器已添加")

    @classmethod
    def from_config(
        cls,
        selected: Optional[List[str]] = None,
        start_block: Optional[int] = None,
    ) -> 'MonitorSupervisor':
        """根据已加载的配置文件创建管理器

        Args:
            selected: 只监控这些链，默认为所有 enabled 的链
            start_block: 命令行指定的起始区块（仅限单链）
        """
        chains = load_chain_identities(selected=selected)
        if not chains:
            raise ValueError("没有需要监控的链")

        config = MonitorConfig.from_settings()
        if start_block is not None:
            if len(chains) != 1:
                raise ValueError("--start-block 只能在监控单条链时使用")
            config = config.with_start_block(chains[0].chain_id, start_block)

        source_fetcher = SourceFetcher.from_config(SourceFetcherConfig)
        injector = VerificationInjector.from_config(VerificationConfig)
        return cls(chains, config, source_fetcher, injector)

    async def start(self) -> Dict[str, bool]:
        """启动所有链监控器，单条链启动失败不影响其他链

        Returns:
            Dict[str, bool]: 每条链是否启动成功
        """
        if not self.monitors:
            logger.error("❌ 没有可启动的监控器")
            return {}

        names = list(self.monitors.keys())
        results = await asyncio.gather(
            *(self._start_single(name, self.monitors[name]) for name in names)
        )
        started = dict(zip(names, results))
        logger.info(f"🚀 已启动 {sum(results)}/{len(names)} 个链监控器")
        return started

    async def _start_single(self, chain_name: str, monitor: ChainMonitor) -> bool:
        """启动单个监控器"""
        try:
            await monitor.start()
            return True
        except Exception as e:
            logger.error(f"❌ {chain_name} 链监控器启动失败: {e}")
            return False

    def stop(self) -> None:
        """停止所有监控器和源码获取服务，进行中的请求继续完成"""
        logger.info("🛑 正在停止所有链监控器...")
        for monitor in self.monitors.values():
            monitor.stop()
        self.source_fetcher.stop()

    async def graceful_shutdown(self) -> None:
        """停止后等待所有进行中的任务完成"""
        self.stop()

        results = await asyncio.gather(
            *(monitor.graceful_shutdown() for monitor in self.monitors.values()),
            return_exceptions=True
        )
        for name, result in zip(self.monitors.keys(), results):
            if isinstance(result, Exception):
                logger.error(f"❌ 关闭 {name} 链监控器时出错: {result}")

        wait_pending = getattr(self.source_fetcher, 'wait_pending', None)
        if wait_pending is not None:
            await wait_pending()
            # 源码解析完成后可能产生新的注入任务
            await asyncio.gather(*(monitor.wait_pending() for monitor in self.monitors.values()))

        logger.info("✅ 所有链监控器已停止")

    def get_all_status(self) -> Dict[str, Dict[str, Any]]:
        """获取所有链的状态"""
        return {name: asdict(monitor.get_status()) for name, monitor in self.monitors.items()}
