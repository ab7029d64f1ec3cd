import pytest
from eth_utils import is_checksum_address

from contract_monitor.tests.fakes import SENDER, SENDER_NONCE0_ADDRESS, SENDER_NONCE1_ADDRESS
from contract_monitor.utils.contract_address import (
    creates_contract, get_contract_address, get_transaction_contract_address
)


def test_creates_contract_only_without_recipient():
    assert creates_contract({'to': None})
    assert creates_contract({'to': ''})
    assert creates_contract({})
    assert not creates_contract({'to': "0x000000000000000000000000000000000000dEaD"})


def test_contract_address_known_vectors():
    assert get_contract_address(SENDER, 0).lower() == SENDER_NONCE0_ADDRESS
    assert get_contract_address(SENDER, 1).lower() == SENDER_NONCE1_ADDRESS


def test_contract_address_is_deterministic_and_checksummed():
    first = get_contract_address(SENDER, 42)
    second = get_contract_address(SENDER.upper().replace("0X", "0x"), 42)
    assert first == second
    assert first.startswith("0x") and len(first) == 42
    assert is_checksum_address(first)


def test_contract_address_accepts_raw_bytes():
    raw = bytes.fromhex(SENDER[2:])
    assert get_contract_address(raw, 0).lower() == SENDER_NONCE0_ADDRESS


def test_transaction_contract_address_uses_sender_and_nonce():
    tx = {'from': SENDER, 'nonce': 1, 'to': None}
    assert get_transaction_contract_address(tx).lower() == SENDER_NONCE1_ADDRESS


def test_negative_nonce_rejected():
    with pytest.raises(ValueError):
        get_contract_address(SENDER, -1)
