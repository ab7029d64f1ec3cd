import cbor2
import pytest

from contract_monitor.models.errors import MetadataDecodeError
from contract_monitor.tests.fakes import IPFS_DIGEST, RUNTIME_BYTECODE, TEST_CHAIN
from contract_monitor.utils.metadata_extractor import (
    decode_cbor_metadata, extract_pointer, format_compiler_version
)

ADDRESS = "0xcd234a471B72ba2F1Ccf0A70FCABA648a5eeCD8d"


def _with_metadata(metadata: dict, prefix: bytes = b"\x60\x80\x60\x40\x52") -> bytes:
    encoded = cbor2.dumps(metadata)
    return prefix + encoded + len(encoded).to_bytes(2, "big")


def test_decode_solc_metadata_suffix():
    metadata = decode_cbor_metadata(RUNTIME_BYTECODE)
    assert metadata["ipfs"] == b"\x12\x20" + IPFS_DIGEST
    assert metadata["solc"] == b"\x00\x08\x13"


def test_extract_ipfs_pointer_reference_vector():
    pointer = extract_pointer(RUNTIME_BYTECODE, ADDRESS, TEST_CHAIN)

    assert pointer.origin == "ipfs"
    assert pointer.identifier == "QmNLfbof5rLekrACjeuLk9JmGZD2HDBHCU4z16iYKmx5SE"
    assert pointer.compiler_version == "0.8.19"
    assert pointer.address == ADDRESS
    assert pointer.chain == TEST_CHAIN


def test_extract_accepts_raw_bytes():
    code = bytes.fromhex(RUNTIME_BYTECODE[2:])
    assert extract_pointer(code, ADDRESS, TEST_CHAIN) == extract_pointer(RUNTIME_BYTECODE, ADDRESS, TEST_CHAIN)


def test_ipfs_preferred_over_swarm():
    code = _with_metadata({"bzzr1": b"\xaa" * 32, "ipfs": b"\x12\x20" + IPFS_DIGEST})
    assert extract_pointer(code, ADDRESS, TEST_CHAIN).origin == "ipfs"


def test_swarm_pointer_rendered_as_hex():
    code = _with_metadata({"bzzr0": b"\xab" * 32, "solc": "0.5.0-nightly"})
    pointer = extract_pointer(code, ADDRESS, TEST_CHAIN)
    assert pointer.origin == "bzzr0"
    assert pointer.identifier == "ab" * 32
    assert pointer.compiler_version == "0.5.0-nightly"


def test_bytecode_without_metadata_fails():
    with pytest.raises(MetadataDecodeError):
        extract_pointer("0x6080604052600080fd", ADDRESS, TEST_CHAIN)


@pytest.mark.parametrize("bytecode", ["0x", "0x00", "not-hex", "0xffff"])
def test_malformed_bytecode_fails(bytecode):
    with pytest.raises(MetadataDecodeError):
        decode_cbor_metadata(bytecode)


def test_metadata_without_content_hash_fails():
    code = _with_metadata({"solc": b"\x00\x08\x13"})
    with pytest.raises(MetadataDecodeError):
        extract_pointer(code, ADDRESS, TEST_CHAIN)


def test_non_map_metadata_fails():
    encoded = cbor2.dumps([1, 2, 3])
    code = b"\x60\x80" + encoded + len(encoded).to_bytes(2, "big")
    with pytest.raises(MetadataDecodeError):
        decode_cbor_metadata(code)


def test_format_compiler_version():
    assert format_compiler_version(b"\x00\x08\x13") == "0.8.19"
    assert format_compiler_version(None) is None
    assert format_compiler_version(12) is None
