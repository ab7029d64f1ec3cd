"""
监控异常定义
"""


class MonitorError(Exception):
    """合约监控相关异常的基类"""


class MetadataDecodeError(MonitorError):
    """字节码末尾的 CBOR 元数据缺失或格式错误"""


class MonitorStateError(MonitorError):
    """监控器生命周期调用不合法（重复启动、停止后再启动）"""


class SourceFetchError(MonitorError):
    """无法通过网关获取合约元数据或源码"""


class InjectionError(MonitorError):
    """验证服务拒绝或无法处理注入请求"""
