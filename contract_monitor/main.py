#!/usr/bin/env python3
"""
新部署合约监控器

程序入口点，启动多链监控
"""

import argparse
import asyncio
import signal
import sys
from typing import List, Optional

from contract_monitor.config.base_config import reload_config
from contract_monitor.core.monitor_supervisor import MonitorSupervisor
from contract_monitor.utils.log_utils import get_logger, reconfigure_loggers

logger = get_logger(__name__)


def parse_arguments(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """解析命令行参数"""
    parser = argparse.ArgumentParser(description='新部署合约监控器')
    parser.add_argument(
        '--config',
        default=None,
        help='配置文件路径（默认 config.yml 或环境变量 CONTRACT_MONITOR_CONFIG）'
    )
    parser.add_argument(
        '--chains',
        default=None,
        help='只监控指定的链，逗号分隔，例如 ethereum,polygon'
    )
    parser.add_argument(
        '--start-block',
        type=int,
        default=None,
        help='起始区块（仅在监控单条链时可用）'
    )
    return parser.parse_args(argv)


def load_configuration(config_path: str) -> None:
    """加载指定的配置文件，并按其中的 logging 段重建日志处理器"""
    reload_config(config_path)
    reconfigure_loggers()
    logger.info(f"已加载配置文件: {config_path}")


def setup_signal_handlers(stop_event: asyncio.Event) -> None:
    """设置信号处理器"""
    loop = asyncio.get_running_loop()

    def signal_handler(signum):
        logger.info(f"接收到信号 {signum}，开始优雅退出...")
        stop_event.set()

    for signum in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(signum, signal_handler, signum)
        except (NotImplementedError, RuntimeError) as e:
            logger.warning(f"注册信号处理器失败: {e}")


async def main(argv: Optional[List[str]] = None) -> int:
    """主函数 - 启动所有链监控器直到收到退出信号"""
    args = parse_arguments(argv)

    if args.config:
        load_configuration(args.config)

    selected = [name.strip() for name in args.chains.split(',') if name.strip()] if args.chains else None

    try:
        supervisor = MonitorSupervisor.from_config(selected=selected, start_block=args.start_block)
    except ValueError as e:
        logger.error(f"❌ 配置错误: {e}")
        return 1

    stop_event = asyncio.Event()
    setup_signal_handlers(stop_event)

    started = await supervisor.start()
    if not any(started.values()):
        logger.error("❌ 没有链监控器启动成功")
        await supervisor.graceful_shutdown()
        return 1

    try:
        await stop_event.wait()
    finally:
        await supervisor.graceful_shutdown()

    return 0


def run() -> None:
    try:
        exit_code = asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("程序被用户中断")
        exit_code = 0
    sys.exit(exit_code)


if __name__ == '__main__':
    run()
