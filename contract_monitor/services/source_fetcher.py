"""
源码获取服务

根据元数据指针，通过 IPFS / Swarm 网关下载 metadata.json 及其中列出的全部源文件，
组装成 ContractArtifact 后异步回调。多条链共享同一个实例。
"""

import asyncio
import inspect
import json
from typing import Any, Awaitable, Callable, Dict, Optional, Set, Union

import aiohttp
from eth_utils import encode_hex, keccak

from contract_monitor.models.data_types import ContractArtifact, MetadataPointer
from contract_monitor.models.errors import SourceFetchError
from contract_monitor.utils.log_utils import get_logger

logger = get_logger(__name__)

ResolvedCallback = Callable[[ContractArtifact], Union[None, Awaitable[None]]]

DEFAULT_IPFS_GATEWAY = "https://ipfs.io/ipfs/"
DEFAULT_SWARM_GATEWAY = "https://swarm-gateways.net/bzz-raw:/"


class SourceFetcher:
    """源码获取服务 - 负责把元数据指针还原为源码"""

    def __init__(self, ipfs_gateway: str = DEFAULT_IPFS_GATEWAY,
                 swarm_gateway: str = DEFAULT_SWARM_GATEWAY,
                 timeout: int = 30, max_retry_attempts: int = 3, retry_delay: int = 5):
        self.ipfs_gateway = ipfs_gateway if ipfs_gateway.endswith("/") else ipfs_gateway + "/"
        self.swarm_gateway = swarm_gateway if swarm_gateway.endswith("/") else swarm_gateway + "/"
        self.timeout = timeout
        self.max_retry_attempts = max(1, max_retry_attempts)
        self.retry_delay = retry_delay

        self.running = True
        self._pending: Set[asyncio.Task] = set()

        # 统计信息
        self.total_resolved = 0
        self.total_failed = 0

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> 'SourceFetcher':
        """通过 source_fetcher 配置段创建实例"""
        return cls(
            ipfs_gateway=config.get('ipfs_gateway', DEFAULT_IPFS_GATEWAY),
            swarm_gateway=config.get('swarm_gateway', DEFAULT_SWARM_GATEWAY),
            timeout=int(config.get('timeout', 30)),
            max_retry_attempts=int(config.get('max_retry_attempts', 3)),
            retry_delay=int(config.get('retry_delay', 5)),
        )

    def resolve(self, pointer: MetadataPointer, on_resolved: ResolvedCallback) -> Optional[asyncio.Task]:
        """
        异步解析元数据指针，成功后调用 on_resolved(artifact)

        调用方不等待结果；失败只记录日志，不会回调。
        """
        if not self.running:
            logger.warning(f"源码获取服务已停止，忽略 {pointer}")
            return None

        task = asyncio.create_task(self._resolve(pointer, on_resolved))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def _resolve(self, pointer: MetadataPointer, on_resolved: ResolvedCallback) -> None:
        try:
            artifact = await self.assemble(pointer)
        except Exception as e:
            self.total_failed += 1
            logger.error(f"❌ [source-failed] {pointer.chain} {pointer.address} 源码获取失败 ({pointer}): {e}")
            return

        self.total_resolved += 1
        logger.info(f"📦 {pointer.chain} {pointer.address} 源码已获取: {artifact.name}")
        result = on_resolved(artifact)
        if inspect.isawaitable(result):
            await result

    def _pointer_url(self, pointer: MetadataPointer) -> str:
        if pointer.origin == "ipfs":
            return self.ipfs_gateway + pointer.identifier
        return self.swarm_gateway + pointer.identifier

    def source_url(self, url: str) -> Optional[str]:
        """将 metadata 中的 dweb:/ipfs/ 或 bzz-raw:// 链接转换为网关地址"""
        if url.startswith("dweb:/ipfs/"):
            return self.ipfs_gateway + url[len("dweb:/ipfs/"):]
        if url.startswith("bzz-raw://"):
            return self.swarm_gateway + url[len("bzz-raw://"):]
        if url.startswith(("http://", "https://")):
            return url
        return None

    async def assemble(self, pointer: MetadataPointer) -> ContractArtifact:
        """
        下载 metadata.json 和全部源文件

        Raises:
            SourceFetchError: 元数据或任一源文件无法获取
        """
        raw_metadata = await self.fetch_text(self._pointer_url(pointer))
        try:
            metadata = json.loads(raw_metadata)
        except ValueError as e:
            raise SourceFetchError(f"metadata.json 不是合法的 JSON: {e}") from e

        sources: Dict[str, str] = {}
        for path, info in (metadata.get('sources') or {}).items():
            sources[path] = await self._fetch_source(path, info or {})

        compilation_target = (metadata.get('settings') or {}).get('compilationTarget') or {}
        name = next(iter(compilation_target.values()), pointer.address)
        compiler_version = (metadata.get('compiler') or {}).get('version') or pointer.compiler_version

        return ContractArtifact(
            name=name,
            compiler_version=compiler_version,
            metadata=metadata,
            sources=sources,
            raw_metadata=raw_metadata,
        )

    async def _fetch_source(self, path: str, info: Dict[str, Any]) -> str:
        expected_hash = info.get('keccak256')

        if info.get('content') is not None:
            return info['content']

        for url in info.get('urls') or []:
            gateway_url = self.source_url(url)
            if gateway_url is None:
                continue
            try:
                content = await self.fetch_text(gateway_url)
            except SourceFetchError as e:
                logger.warning(f"源文件 {path} 从 {url} 获取失败: {e}")
                continue
            if expected_hash and encode_hex(keccak(text=content)) != expected_hash.lower():
                logger.warning(f"源文件 {path} 的 keccak256 与元数据不一致: {url}")
                continue
            return content

        raise SourceFetchError(f"源文件 {path} 无法获取")

    async def fetch_text(self, url: str) -> str:
        """带重试的 GET 请求"""
        attempt = 0
        last_error = None

        while attempt < self.max_retry_attempts:
            attempt += 1
            try:
                async with aiohttp.ClientSession() as session:
                    async with session.get(
                        url,
                        timeout=aiohttp.ClientTimeout(total=self.timeout),
                        headers={"User-Agent": "Contract-Monitor/1.0"}
                    ) as response:
                        if response.status == 200:
                            return await response.text()
                        last_error = f"HTTP {response.status}"
                        logger.debug(f"获取 {url} 失败 (尝试 {attempt}): {last_error}")

            except asyncio.TimeoutError:
                last_error = f"请求超时 ({self.timeout}s)"
                logger.debug(f"获取 {url} 超时 (尝试 {attempt})")

            except aiohttp.ClientError as e:
                last_error = f"网络错误: {str(e)}"
                logger.debug(f"获取 {url} 网络错误 (尝试 {attempt}): {last_error}")

            if attempt < self.max_retry_attempts:
                await asyncio.sleep(self.retry_delay)

        raise SourceFetchError(f"{url}: {last_error}")

    async def wait_pending(self) -> None:
        """等待所有进行中的解析任务完成"""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def stop(self) -> None:
        """停止接收新的解析请求，进行中的任务继续完成"""
        self.running = False

    def get_stats(self) -> Dict[str, int]:
        return {
            'resolved': self.total_resolved,
            'failed': self.total_failed,
            'pending': len(self._pending),
        }
