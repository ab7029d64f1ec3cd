"""
合约地址工具

识别合约创建交易，并按 CREATE 规则推导新合约地址：
address = keccak256(rlp([sender, nonce]))[12:]
"""

from typing import Any, Mapping, Union

import rlp
from eth_utils import keccak, to_canonical_address, to_checksum_address


def creates_contract(tx: Mapping[str, Any]) -> bool:
    """判断交易是否为合约创建交易（没有接收方）"""
    return not tx.get('to')


def get_contract_address(sender: Union[str, bytes], nonce: int) -> str:
    """
    计算 CREATE 部署的合约地址

    Args:
        sender: 部署者地址（hex 字符串或 20 字节）
        nonce: 部署交易的 nonce

    Returns:
        str: 校验和格式的合约地址
    """
    if nonce < 0:
        raise ValueError(f"nonce 不能为负数: {nonce}")
    sender_bytes = to_canonical_address(sender)
    encoded = rlp.encode([sender_bytes, int(nonce)])
    return to_checksum_address(keccak(encoded)[12:])


def get_transaction_contract_address(tx: Mapping[str, Any]) -> str:
    """从合约创建交易中推导部署地址"""
    return get_contract_address(tx['from'], tx['nonce'])
