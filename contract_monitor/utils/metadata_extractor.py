"""
元数据指针提取

Solidity 编译出的运行时字节码末尾附带一段 CBOR 编码的映射，
最后两个字节（大端）是这段 CBOR 的长度。映射中的 ipfs / bzzr1 / bzzr0
字段是链下 metadata.json 的内容哈希，solc 字段是编译器版本。
"""

from typing import Any, Dict, Optional, Union

import base58
import cbor2
from eth_utils import to_bytes

from contract_monitor.models.data_types import ChainIdentity, MetadataPointer
from contract_monitor.models.errors import MetadataDecodeError

# 按优先级排列
POINTER_ORIGINS = ("ipfs", "bzzr1", "bzzr0")

_LENGTH_SUFFIX_SIZE = 2


def _to_bytes(bytecode: Union[str, bytes, bytearray]) -> bytes:
    if isinstance(bytecode, (bytes, bytearray)):
        return bytes(bytecode)
    try:
        return to_bytes(hexstr=bytecode)
    except (ValueError, TypeError) as e:
        raise MetadataDecodeError(f"字节码不是合法的 hex 字符串: {e}") from e


def decode_cbor_metadata(bytecode: Union[str, bytes, bytearray]) -> Dict[str, Any]:
    """
    解码字节码末尾的 CBOR 元数据

    Args:
        bytecode: 运行时字节码（hex 字符串或原始字节）

    Returns:
        Dict[str, Any]: 解码后的映射

    Raises:
        MetadataDecodeError: 元数据缺失或格式错误
    """
    code = _to_bytes(bytecode)
    if len(code) <= _LENGTH_SUFFIX_SIZE:
        raise MetadataDecodeError(f"字节码过短 ({len(code)} 字节)，不包含元数据")

    cbor_length = int.from_bytes(code[-_LENGTH_SUFFIX_SIZE:], "big")
    if cbor_length == 0 or cbor_length > len(code) - _LENGTH_SUFFIX_SIZE:
        raise MetadataDecodeError(f"元数据长度非法: {cbor_length}，字节码长度 {len(code)}")

    cbor_data = code[-_LENGTH_SUFFIX_SIZE - cbor_length:-_LENGTH_SUFFIX_SIZE]
    try:
        decoded = cbor2.loads(cbor_data)
    except Exception as e:
        raise MetadataDecodeError(f"CBOR 解码失败: {e}") from e

    if not isinstance(decoded, dict):
        raise MetadataDecodeError(f"CBOR 元数据不是映射类型: {type(decoded).__name__}")
    return decoded


def format_compiler_version(raw: Any) -> Optional[str]:
    """solc 字段：发布版为 3 字节 (major, minor, patch)，nightly 版为字符串"""
    if raw is None:
        return None
    if isinstance(raw, (bytes, bytearray)) and len(raw) == 3:
        return ".".join(str(part) for part in raw)
    if isinstance(raw, str):
        return raw
    return None


def _render_identifier(origin: str, raw: Any) -> str:
    if not isinstance(raw, (bytes, bytearray)) or not raw:
        raise MetadataDecodeError(f"{origin} 字段不是合法的字节串")
    if origin == "ipfs":
        # CIDv0：sha2-256 multihash 的 base58 编码
        return base58.b58encode(bytes(raw)).decode("ascii")
    return bytes(raw).hex()


def extract_pointer(
    bytecode: Union[str, bytes, bytearray],
    address: str,
    chain: ChainIdentity,
) -> MetadataPointer:
    """
    从字节码中提取元数据指针

    Raises:
        MetadataDecodeError: 元数据缺失、格式错误或不含内容哈希
    """
    metadata = decode_cbor_metadata(bytecode)

    for origin in POINTER_ORIGINS:
        if origin in metadata:
            return MetadataPointer(
                origin=origin,
                identifier=_render_identifier(origin, metadata[origin]),
                address=address,
                chain=chain,
                compiler_version=format_compiler_version(metadata.get("solc")),
            )

    raise MetadataDecodeError(f"元数据中没有内容哈希字段，现有字段: {list(metadata.keys())}")
