import os
import re
from typing import Dict, Any, Optional

import yaml

CONFIG_ENV_VAR = "CONTRACT_MONITOR_CONFIG"

_PLACEHOLDER_PATTERN = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")


def _load_config(config_path: Optional[str] = None) -> Optional[Dict[str, Any]]:
    """
    内部函数：加载并解析 YAML 配置文件。

    Args:
        config_path: 配置文件路径，默认读取环境变量 CONTRACT_MONITOR_CONFIG，再退回 config.yml

    Returns:
        配置字典或 None（如果加载失败）
    """
    if config_path is None:
        config_path = os.environ.get(CONFIG_ENV_VAR, "config.yml")

    # 如果是相对路径，则相对于项目根目录
    if not os.path.isabs(config_path):
        current_dir = os.path.dirname(os.path.abspath(__file__))
        project_root = os.path.dirname(os.path.dirname(current_dir))
        config_path = os.path.join(project_root, config_path)

    try:
        with open(config_path, 'r', encoding='utf-8') as f:
            config_data = yaml.safe_load(f)
    except FileNotFoundError:
        print(f"Warning: Config file not found at {config_path}. Using default configuration.")
        return None
    except yaml.YAMLError as exc:
        print(f"Error parsing YAML file: {exc}. Using default configuration.")
        return None

    if config_data is not None and not isinstance(config_data, dict):
        print(f"Error: Config file {config_path} must contain a mapping. Using default configuration.")
        return None
    return config_data


def substitute_placeholders(value: str, environ: Optional[Dict[str, str]] = None) -> str:
    """
    将字符串中的 ${NAME} 占位符替换为环境变量值

    未设置的变量保持原样，由调用方决定如何提示
    """
    env = os.environ if environ is None else environ

    def _replace(match: "re.Match") -> str:
        return env.get(match.group(1), match.group(0))

    return _PLACEHOLDER_PATTERN.sub(_replace, value)


def find_placeholders(value: str) -> list:
    """返回字符串中尚未替换的占位符名称"""
    return _PLACEHOLDER_PATTERN.findall(value)


def reload_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    """重新加载配置文件并刷新模块级配置映射"""
    global _loaded_config
    _loaded_config = _load_config(config_path)
    _refresh_sections()
    return _loaded_config or {}


def _refresh_sections() -> None:
    data = _loaded_config or {}
    ConfigMap.clear()
    ConfigMap.update(data.get('chains') or {})
    MonitorSettings.clear()
    MonitorSettings.update(data.get('monitor') or {})
    SourceFetcherConfig.clear()
    SourceFetcherConfig.update(data.get('source_fetcher') or {})
    VerificationConfig.clear()
    VerificationConfig.update(data.get('verification') or {})
    LoggingConfig.clear()
    LoggingConfig.update(data.get('logging') or {})


# 全局变量，用于存储各配置段（原地更新，方便其他模块直接引用）
ConfigMap: Dict[str, Dict[str, Any]] = {}

# 监控调优参数
MonitorSettings: Dict[str, Any] = {}

# 源码获取服务配置
SourceFetcherConfig: Dict[str, Any] = {}

# 验证服务配置
VerificationConfig: Dict[str, Any] = {}

# 日志配置
LoggingConfig: Dict[str, Any] = {}

# 在模块加载时执行配置加载和解析
_loaded_config = _load_config()
_refresh_sections()


if __name__ == "__main__":
    print("\n--- ConfigMap (所有链的配置) ---")
    for chain_name, config in ConfigMap.items():
        print(f"Chain: {chain_name}")
        for key, value in config.items():
            print(f"  {key}: {value}")

    print("--- MonitorSettings ---")
    for key, value in MonitorSettings.items():
        print(f"  {key}: {value}")
