import pytest

from contract_monitor.config.base_config import substitute_placeholders
from contract_monitor.config.monitor_config import MonitorConfig, load_chain_identities

CHAINS = {
    "ethereum": {
        "chain_id": 1,
        "rpc_urls": ["https://mainnet.infura.io/v3/${INFURA_API_KEY}", "https://backup"],
        "start_block": 17000000,
    },
    "sepolia": {"chain_id": 11155111, "rpc_urls": ["https://sepolia.example/${INFURA_API_KEY}"]},
    "polygon": {"chain_id": 137, "rpc_url": "https://polygon-rpc.com", "enabled": False},
}


def test_defaults():
    config = MonitorConfig()
    assert config.block_pause == 10.0
    assert config.block_pause_factor == 1.1
    assert config.block_pause_upper_limit == 30.0
    assert config.block_pause_lower_limit == 0.5
    assert config.bytecode_retry_pause == 5.0
    assert config.initial_bytecode_tries == 3
    assert config.start_blocks == {}


@pytest.mark.parametrize("kwargs", [
    {"block_pause_factor": 1.0},
    {"block_pause_factor": 0.5},
    {"block_pause_lower_limit": 40.0},
    {"block_pause_lower_limit": 0},
    {"bytecode_retry_pause": -1},
    {"initial_bytecode_tries": -1},
    {"start_blocks": {1: -5}},
])
def test_invalid_values_rejected(kwargs):
    with pytest.raises(ValueError):
        MonitorConfig(**kwargs)


def test_clamp_delay():
    config = MonitorConfig(block_pause_lower_limit=1.0, block_pause_upper_limit=4.0)
    assert config.clamp_delay(0.1) == 1.0
    assert config.clamp_delay(2.5) == 2.5
    assert config.clamp_delay(100) == 4.0


def test_from_settings_reads_tunables_and_start_blocks():
    settings = {"block_pause": 2, "block_pause_factor": 1.5, "initial_bytecode_tries": 5}
    config = MonitorConfig.from_settings(settings, CHAINS, environ={})

    assert config.block_pause == 2.0
    assert config.block_pause_factor == 1.5
    assert config.initial_bytecode_tries == 5
    assert config.block_pause_upper_limit == 30.0
    assert config.get_start_block(1) == 17000000
    assert config.get_start_block(137) is None


def test_environment_start_block_wins():
    config = MonitorConfig.from_settings({}, CHAINS, environ={"MONITOR_START_1": "123", "MONITOR_START_137": "7"})
    assert config.get_start_block(1) == 123
    assert config.get_start_block(137) == 7


def test_unknown_setting_rejected():
    with pytest.raises(ValueError):
        MonitorConfig.from_settings({"block_pase": 3}, {}, environ={})


def test_with_start_block_returns_new_config():
    config = MonitorConfig()
    updated = config.with_start_block(5, 42)
    assert updated.get_start_block(5) == 42
    assert config.get_start_block(5) is None


def test_substitute_placeholders():
    env = {"INFURA_API_KEY": "secret"}
    assert substitute_placeholders("https://x/${INFURA_API_KEY}", env) == "https://x/secret"
    assert substitute_placeholders("https://x/${MISSING}", env) == "https://x/${MISSING}"


def test_load_chain_identities_enabled_only_with_substitution():
    identities = load_chain_identities(CHAINS, environ={"INFURA_API_KEY": "abc"})

    assert [c.name for c in identities] == ["ethereum", "sepolia"]
    assert identities[0].chain_id == 1
    assert identities[0].provider_endpoint == "https://mainnet.infura.io/v3/abc"


def test_load_selected_chains_including_disabled():
    identities = load_chain_identities(CHAINS, selected=["polygon"], environ={})
    assert len(identities) == 1
    assert identities[0].provider_endpoint == "https://polygon-rpc.com"


def test_load_unknown_chain_rejected():
    with pytest.raises(ValueError):
        load_chain_identities(CHAINS, selected=["solana"], environ={})


def test_chain_without_rpc_rejected():
    with pytest.raises(ValueError):
        load_chain_identities({"broken": {"chain_id": 5}}, environ={})
