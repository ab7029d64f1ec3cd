"""
监控配置管理模块

统一管理所有监控相关的配置参数，便于维护和调整
"""

import os
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Any

from contract_monitor.config.base_config import (
    ConfigMap, MonitorSettings, find_placeholders, substitute_placeholders
)
from contract_monitor.models.data_types import ChainIdentity
from contract_monitor.utils.log_utils import get_logger

logger = get_logger(__name__)

START_BLOCK_ENV_PREFIX = "MONITOR_START_"


@dataclass(frozen=True)
class MonitorConfig:
    """监控配置类 - 集中管理轮询和重试参数（单位：秒）"""

    block_pause: float = 10.0                 # 初始区块轮询间隔
    block_pause_factor: float = 1.1           # 退避/加速系数
    block_pause_upper_limit: float = 30.0
    block_pause_lower_limit: float = 0.5
    bytecode_retry_pause: float = 5.0         # 字节码重试间隔
    initial_bytecode_tries: int = 3
    # chain_id -> 起始区块，优先于链头高度
    start_blocks: Dict[int, int] = field(default_factory=dict)

    def __post_init__(self):
        self.validate()

    def validate(self) -> None:
        """校验参数取值"""
        if self.block_pause_factor <= 1:
            raise ValueError(f"block_pause_factor 必须大于 1，当前: {self.block_pause_factor}")
        if self.block_pause_lower_limit <= 0:
            raise ValueError(f"block_pause_lower_limit 必须为正数，当前: {self.block_pause_lower_limit}")
        if self.block_pause_lower_limit > self.block_pause_upper_limit:
            raise ValueError(
                f"block_pause_lower_limit ({self.block_pause_lower_limit}) "
                f"不能大于 block_pause_upper_limit ({self.block_pause_upper_limit})"
            )
        if self.block_pause < 0 or self.bytecode_retry_pause < 0:
            raise ValueError("轮询间隔和重试间隔不能为负数")
        if self.initial_bytecode_tries < 0:
            raise ValueError(f"initial_bytecode_tries 不能为负数，当前: {self.initial_bytecode_tries}")
        for chain_id, height in self.start_blocks.items():
            if height < 0:
                raise ValueError(f"链 {chain_id} 的起始区块不能为负数: {height}")

    def clamp_delay(self, delay: float) -> float:
        """将轮询间隔限制在 [lower, upper] 区间"""
        return min(max(delay, self.block_pause_lower_limit), self.block_pause_upper_limit)

    def get_start_block(self, chain_id: int) -> Optional[int]:
        """获取指定链的起始区块（未配置时返回 None）"""
        return self.start_blocks.get(chain_id)

    def with_start_block(self, chain_id: int, height: int) -> 'MonitorConfig':
        """返回覆盖了某条链起始区块的新配置"""
        start_blocks = dict(self.start_blocks)
        start_blocks[chain_id] = height
        return MonitorConfig(
            block_pause=self.block_pause,
            block_pause_factor=self.block_pause_factor,
            block_pause_upper_limit=self.block_pause_upper_limit,
            block_pause_lower_limit=self.block_pause_lower_limit,
            bytecode_retry_pause=self.bytecode_retry_pause,
            initial_bytecode_tries=self.initial_bytecode_tries,
            start_blocks=start_blocks,
        )

    def to_dict(self) -> Dict[str, Any]:
        """转换为字典格式，便于序列化"""
        return {
            'block_pause': self.block_pause,
            'block_pause_factor': self.block_pause_factor,
            'block_pause_upper_limit': self.block_pause_upper_limit,
            'block_pause_lower_limit': self.block_pause_lower_limit,
            'bytecode_retry_pause': self.bytecode_retry_pause,
            'initial_bytecode_tries': self.initial_bytecode_tries,
            'start_blocks': dict(self.start_blocks),
        }

    @classmethod
    def from_settings(
        cls,
        settings: Optional[Dict[str, Any]] = None,
        chains: Optional[Dict[str, Dict[str, Any]]] = None,
        environ: Optional[Dict[str, str]] = None,
    ) -> 'MonitorConfig':
        """通过配置文件的 monitor 段和 chains 段创建配置实例

        Args:
            settings: monitor 配置段，默认使用已加载的 MonitorSettings
            chains: chains 配置段，用于读取每条链的 start_block
            environ: 环境变量（MONITOR_START_<chainId> 优先于配置文件）

        Returns:
            MonitorConfig: 配置实例
        """
        settings = MonitorSettings if settings is None else settings
        chains = ConfigMap if chains is None else chains
        env = os.environ if environ is None else environ

        defaults = cls.__dataclass_fields__
        kwargs: Dict[str, Any] = {}
        for key in ('block_pause', 'block_pause_factor', 'block_pause_upper_limit',
                    'block_pause_lower_limit', 'bytecode_retry_pause'):
            if settings.get(key) is not None:
                kwargs[key] = float(settings[key])
        if settings.get('initial_bytecode_tries') is not None:
            kwargs['initial_bytecode_tries'] = int(settings['initial_bytecode_tries'])

        start_blocks: Dict[int, int] = {}
        for chain_name, chain_config in chains.items():
            chain_id = chain_config.get('chain_id')
            if chain_id is None:
                continue
            chain_id = int(chain_id)
            raw_start = env.get(f"{START_BLOCK_ENV_PREFIX}{chain_id}")
            if raw_start is None:
                raw_start = chain_config.get('start_block')
            if raw_start is not None and str(raw_start).strip() != "":
                start_blocks[chain_id] = int(raw_start)
        kwargs['start_blocks'] = start_blocks

        unknown = set(settings) - set(defaults)
        if unknown:
            raise ValueError(f"未知的 monitor 配置项: {sorted(unknown)}")

        return cls(**kwargs)


def load_chain_identities(
    chains: Optional[Dict[str, Dict[str, Any]]] = None,
    selected: Optional[List[str]] = None,
    environ: Optional[Dict[str, str]] = None,
) -> List[ChainIdentity]:
    """根据 chains 配置段构建需要监控的链列表

    Args:
        chains: chains 配置段，默认使用已加载的 ConfigMap
        selected: 只加载指定名称的链；为 None 时加载所有 enabled 的链
        environ: 用于替换 RPC URL 中 ${NAME} 占位符的环境变量

    Returns:
        List[ChainIdentity]: 链标识列表

    Raises:
        ValueError: 指定的链不存在或链配置不完整时
    """
    chains = ConfigMap if chains is None else chains

    if selected:
        missing = [name for name in selected if name not in chains]
        if missing:
            raise ValueError(f"链 {missing} 不存在。可用的链: {list(chains.keys())}")
        names = list(selected)
    else:
        names = [name for name, cfg in chains.items() if cfg.get('enabled', True)]

    identities = []
    for name in names:
        chain_config = chains[name]
        if chain_config.get('chain_id') is None:
            raise ValueError(f"链 '{name}' 缺少 chain_id 配置")

        rpc_urls = chain_config.get('rpc_urls') or []
        if isinstance(rpc_urls, str):
            rpc_urls = [rpc_urls]
        if not rpc_urls and chain_config.get('rpc_url'):
            rpc_urls = [chain_config['rpc_url']]
        if not rpc_urls:
            raise ValueError(f"链 '{name}' 缺少 rpc_urls 配置")

        endpoint = substitute_placeholders(str(rpc_urls[0]), environ)
        unresolved = find_placeholders(endpoint)
        if unresolved:
            logger.warning(f"⚠️ 链 '{name}' 的 RPC URL 中存在未设置的环境变量: {unresolved}")

        identities.append(ChainIdentity(
            name=name,
            chain_id=int(chain_config['chain_id']),
            provider_endpoint=endpoint,
        ))
    return identities
