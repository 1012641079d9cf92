"""
tests/unit/test_config.py - Chain and executor configuration loading.
"""

import pytest

from config import ChainConfig, load_chain_config, load_chains, load_executor_addresses, load_yaml
from core.constants import ErrorCode, NATIVE_TOKEN
from core.exceptions import TradewireError


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("TRADEWIRE_EXECUTORS_FILE", "TRADEWIRE_DISPATCHER_ADDRESS", "RPC_URL"):
        monkeypatch.delenv(name, raising=False)


CHAINS = {
    "devnet": {
        "chain_id": 31337,
        "wrapped_token": "0x" + "EE" * 20,
        "dispatcher_address": "0x" + "d1" * 20,
        "rpc_urls": ["http://localhost:8545"],
    }
}


class TestYaml:
    def test_bundled_chains(self):
        chains = load_chains()
        assert chains["ethereum"]["chain_id"] == 1
        assert {"ethereum", "base", "arbitrum"} <= set(chains)

    def test_absolute_path(self, tmp_path):
        path = tmp_path / "extra.yaml"
        path.write_text("devnet:\n  uniswap_v2: '0x" + "ab" * 20 + "'\n")
        assert load_yaml(str(path))["devnet"]["uniswap_v2"] == "0x" + "ab" * 20

    def test_empty_file_is_empty_mapping(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert load_yaml(str(path)) == {}

    def test_missing_file(self):
        with pytest.raises(FileNotFoundError):
            load_yaml("does_not_exist.yaml")


class TestChainConfig:
    def test_from_dict_normalizes(self):
        config = load_chain_config("devnet", CHAINS)
        assert config.chain_id == 31337
        assert config.wrapped_token == "0x" + "ee" * 20
        assert config.native_token == NATIVE_TOKEN
        assert config.safety_window_blocks == 2
        assert config.rpc_urls == ["http://localhost:8545"]

    def test_unknown_chain(self):
        with pytest.raises(KeyError):
            load_chain_config("nope", CHAINS)

    def test_safety_window_must_be_positive(self):
        with pytest.raises(TradewireError) as exc_info:
            ChainConfig("devnet", 1, "0x" + "ee" * 20, "0x" + "d1" * 20, safety_window_blocks=0)
        assert exc_info.value.code == ErrorCode.INVALID_INPUT

    def test_invalid_address(self):
        with pytest.raises(TradewireError):
            ChainConfig("devnet", 1, "0x1234", "0x" + "d1" * 20)

    def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv("TRADEWIRE_DISPATCHER_ADDRESS", "0x" + "D2" * 20)
        monkeypatch.setenv("RPC_URL", "http://node:8545")
        config = load_chain_config("devnet", CHAINS)
        assert config.dispatcher_address == "0x" + "d2" * 20
        assert config.rpc_urls == ["http://node:8545"]


class TestExecutors:
    def test_bundled_ethereum(self):
        executors = load_executor_addresses("ethereum")
        assert executors["uniswap_v2"] == "0x00000000000000000000000000000000e0e00002"
        assert "curve" in executors

    def test_env_file(self, tmp_path, monkeypatch):
        path = tmp_path / "executors.yaml"
        path.write_text("devnet:\n  uniswap_v3: '0x" + "E3" * 20 + "'\n")
        monkeypatch.setenv("TRADEWIRE_EXECUTORS_FILE", str(path))
        assert load_executor_addresses("devnet") == {"uniswap_v3": "0x" + "e3" * 20}

    def test_explicit_path_wins(self, tmp_path, monkeypatch):
        path = tmp_path / "executors.yaml"
        path.write_text("devnet: {}\n")
        monkeypatch.setenv("TRADEWIRE_EXECUTORS_FILE", str(tmp_path / "other.yaml"))
        assert load_executor_addresses("devnet", str(path)) == {}

    def test_unknown_chain(self):
        with pytest.raises(KeyError):
            load_executor_addresses("nope")
