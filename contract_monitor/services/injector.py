"""
验证注入服务

将还原出的源码、元数据和合约地址提交给验证服务器进行匹配和记录
"""

import asyncio
import json
from typing import Dict, Any

import aiohttp

from contract_monitor.models.data_types import InjectionOutcome, InjectionRequest
from contract_monitor.models.errors import InjectionError
from contract_monitor.utils.log_utils import get_logger

logger = get_logger(__name__)


class VerificationInjector:
    """验证注入服务 - 每个请求只提交一次，不做重试"""

    def __init__(self, server_url: str, timeout: int = 30):
        self.server_url = server_url.rstrip("/")
        self.timeout = timeout

        # 统计信息
        self.total_injected = 0
        self.total_failed = 0

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> 'VerificationInjector':
        """通过 verification 配置段创建实例"""
        server_url = config.get('server_url')
        if not server_url:
            raise ValueError("verification.server_url 未配置")
        return cls(server_url=server_url, timeout=int(config.get('timeout', 30)))

    @property
    def verify_url(self) -> str:
        return f"{self.server_url}/verify"

    def build_payload(self, request: InjectionRequest) -> Dict[str, Any]:
        """构造提交给验证服务器的请求体"""
        if not request.addresses:
            raise InjectionError("注入请求缺少合约地址")
        return {
            "address": request.addresses[0],
            "addresses": list(request.addresses),
            "chain": str(request.chain_id),
            "files": request.contract.get_files(),
            "bytecode": request.bytecode,
        }

    async def inject(self, request: InjectionRequest) -> InjectionOutcome:
        """
        提交注入请求

        Returns:
            InjectionOutcome: 服务器返回的结果

        Raises:
            InjectionError: 请求无法送达验证服务器
        """
        payload = self.build_payload(request)

        try:
            async with aiohttp.ClientSession() as session:
                async with session.post(
                    self.verify_url,
                    json=payload,
                    timeout=aiohttp.ClientTimeout(total=self.timeout),
                    headers={
                        "Content-Type": "application/json",
                        "User-Agent": "Contract-Monitor/1.0"
                    }
                ) as response:
                    status = response.status
                    response_text = await response.text()
        except asyncio.TimeoutError as e:
            self.total_failed += 1
            raise InjectionError(f"请求超时 ({self.timeout}s)") from e
        except aiohttp.ClientError as e:
            self.total_failed += 1
            raise InjectionError(f"网络错误: {str(e)}") from e

        try:
            response_data = json.loads(response_text)
        except ValueError:
            response_data = {"raw_response": response_text}

        if status == 200:
            self.total_injected += 1
            return InjectionOutcome(
                success=True,
                status_code=status,
                message="ok",
                response=response_data,
            )

        self.total_failed += 1
        message = response_data.get("error") if isinstance(response_data, dict) else None
        return InjectionOutcome(
            success=False,
            status_code=status,
            message=message or f"HTTP {status}: {response_text[:200]}",
            response=response_data,
        )
