"""
CLI tests.

Run with: pytest tests/test_cli.py -v
"""

import json

import pytest
import yaml

from conftest import MemoryCheckpointStorage, root
from xchain_agents import __version__
from xchain_agents.cli import CLIError, OutputFormat, _parse_routers, format_output, main

S3_ENV = {
    "environment": "testnet3",
    "chains": ["alfajores", "fuji"],
    "validatorSets": {
        chain: {
            "threshold": 1,
            "validators": [
                {
                    "name": f"{chain}-{i}",
                    "address": "0x" + format(10 * n + i + 1, "040x"),
                    "checkpointSyncer": {"type": "s3", "bucket": f"{chain}-{i}", "region": "us-east-1"},
                }
                for i in range(2)
            ],
        }
        for n, chain in enumerate(["alfajores", "fuji"])
    },
    "agents": {"hyperlane": {"relayer": {"default": {"gasPaymentEnforcement": {"policy": {"type": "none"}}}}}},
}


def _run(capsys, *argv):
    code = main(list(argv))
    captured = capsys.readouterr()
    return code, captured.out, captured.err


class TestFormatting:
    """Output helpers."""

    def test_formats(self):
        data = {"chain": "fuji", "domain": 43113}
        assert json.loads(format_output(data)) == data
        assert yaml.safe_load(format_output(data, OutputFormat.YAML)) == data
        assert format_output(data, OutputFormat.TEXT) == "chain: fuji\ndomain: 43113"

    def test_parse_routers(self):
        assert _parse_routers(["fuji=0xab", "goerli=0xcd"]) == {"fuji": "0xab", "goerli": "0xcd"}
        with pytest.raises(CLIError):
            _parse_routers(["fuji"])


class TestGlobalOptions:
    """Top-level behaviour."""

    def test_version(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            main(["--version"])
        assert exc_info.value.code == 0
        assert __version__ in capsys.readouterr().out

    def test_no_command_prints_help(self, capsys):
        code, out, _ = _run(capsys)
        assert code == 0
        assert "usage: xchain-agents" in out

    def test_missing_subcommand(self, capsys):
        code, _, err = _run(capsys, "config")
        assert code == 1
        assert "Unknown command: config" in err


class TestConfigCommands:
    """config show|get|set|validate|schema."""

    def test_get(self, capsys):
        code, out, _ = _run(capsys, "config", "get", "aws.region")
        assert code == 0
        assert json.loads(out) == {"path": "aws.region", "value": "us-east-1"}

    def test_set(self, capsys):
        code, out, _ = _run(capsys, "config", "set", "verifier.max_concurrent_chains", "8")
        assert code == 0
        assert json.loads(out)["value"] == 8

    def test_invalid_path(self, capsys):
        code, _, err = _run(capsys, "config", "get", "aws.zone")
        assert code == 1
        assert "Invalid config path: aws.zone" in err

    def test_validate(self, capsys, monkeypatch):
        code, out, _ = _run(capsys, "config", "validate")
        assert code == 0
        assert json.loads(out) == {"valid": True, "errors": []}

        monkeypatch.setenv("XCHAIN_VERIFIER_MAX_CHAINS", "0")
        code, out, _ = _run(capsys, "config", "validate")
        assert code == 1
        assert json.loads(out)["valid"] is False

    def test_show_yaml_with_config_file(self, capsys, tmp_path):
        path = tmp_path / "tool.yaml"
        path.write_text("aws: {region: eu-west-1}\n")
        code, out, _ = _run(capsys, "--format", "yaml", "--config", str(path), "config", "show")
        assert code == 0
        assert yaml.safe_load(out)["aws"]["region"] == "eu-west-1"

    def test_schema(self, capsys):
        code, out, _ = _run(capsys, "config", "schema")
        assert code == 0
        assert "verifier" in json.loads(out)["properties"]


class TestAgentsCommands:
    """agents relayer|validator|values."""

    def test_values_for_local_environment(self, capsys, environments_dir):
        code, out, _ = _run(
            capsys,
            "agents", "values",
            "--env-file", str(environments_dir / "test.yaml"),
            "--context", "hyperlane",
            "--secret", "unused",
        )
        assert code == 0
        values = json.loads(out)
        assert list(values) == ["test1", "test2", "test3"]
        assert values["test2"]["relayer"]["originChainName"] == "test2"

    def test_relayer_for_one_chain(self, capsys, environments_dir):
        code, out, _ = _run(
            capsys,
            "agents", "relayer",
            "-e", str(environments_dir / "test.yaml"),
            "-x", "hyperlane",
            "--chain", "test1",
            "--secret", "unused",
        )
        assert code == 0
        relayer = json.loads(out)
        assert relayer["gasPaymentEnforcement"] == {"policy": {"type": "none"}}
        assert list(relayer["multisigCheckpointSyncer"]["checkpointSyncers"]) == [
            "0x70997970c51812dc3a010c7d01b50e0d17dc79c8",
        ]

    def test_validator_for_one_chain(self, capsys, environments_dir):
        code, out, _ = _run(
            capsys,
            "agents", "validator",
            "-e", str(environments_dir / "test.yaml"),
            "-x", "hyperlane",
            "--chain", "test3",
        )
        assert code == 0
        assert json.loads(out)[0]["validator"] == {"type": "hexKey"}

    def test_chain_outside_context(self, capsys, environments_dir):
        code, _, err = _run(
            capsys,
            "agents", "relayer",
            "-e", str(environments_dir / "test.yaml"),
            "-x", "hyperlane",
            "--chain", "fuji",
        )
        assert code == 1
        assert "Chain fuji is not part of context hyperlane" in err

    def test_unknown_context(self, capsys, environments_dir):
        code, _, err = _run(
            capsys,
            "agents", "values",
            "-e", str(environments_dir / "test.yaml"),
            "-x", "rc",
        )
        assert code == 1
        assert "No agent config found for test:rc" in err


class TestKeysCommands:
    """keys derive."""

    def test_derive_from_seed(self, capsys):
        seed = "000102030405060708090a0b0c0d0e0f"
        code, out, _ = _run(
            capsys,
            "keys", "derive",
            "--environment", "testnet3",
            "--role", "create2-factory",
            "--seed", seed,
        )
        assert code == 0
        result = json.loads(out)
        assert result["role"] == "create2_factory"
        assert result["path"] == "m/44'/60'/0'/2/0"
        assert result["address"].startswith("0x")
        assert "privateKey" not in result

    def test_show_private_key(self, capsys):
        code, out, _ = _run(
            capsys,
            "keys", "derive",
            "--environment", "testnet3",
            "--role", "test-recipient",
            "--seed", "000102030405060708090a0b0c0d0e0f",
            "--show-private-key",
        )
        assert code == 0
        assert len(json.loads(out)["privateKey"]) == 66


class TestMatchingCommands:
    """matching routers."""

    def test_inline_routers(self, capsys):
        code, out, _ = _run(
            capsys,
            "matching", "routers",
            "--router", "alfajores=0x1111111111111111111111111111111111111111",
            "--router", "fuji=0x2222222222222222222222222222222222222222",
        )
        assert code == 0
        result = json.loads(out)
        assert result["count"] == 2
        assert json.loads(result["serialized"]) == result["elements"]

    def test_router_set_from_environment(self, capsys, environments_dir):
        code, out, _ = _run(
            capsys,
            "matching", "routers",
            "-e", str(environments_dir / "testnet3.yaml"),
            "--router-set", "helloworldReleaseCandidate",
        )
        assert code == 0
        assert json.loads(out)["count"] == 6

    def test_single_router_rejected(self, capsys):
        code, _, err = _run(capsys, "matching", "routers", "--router", "fuji=0xab")
        assert code == 1
        assert "At least two routers" in err


class TestValidatorsVerify:
    """validators verify."""

    @pytest.fixture
    def storages(self, monkeypatch):
        storages = {
            "alfajores-0": MemoryCheckpointStorage("alfajores-0", {i: root(i) for i in range(3)}),
            "alfajores-1": MemoryCheckpointStorage("alfajores-1", {i: root(i) for i in range(3)}),
            "fuji-0": MemoryCheckpointStorage("fuji-0", {i: root(i) for i in range(3)}),
            "fuji-1": MemoryCheckpointStorage("fuji-1", {0: root(0), 1: root(9), 2: root(2)}),
        }

        def fake_storage(bucket, region, unsigned=False):
            return storages[bucket]

        monkeypatch.setattr("xchain_agents.aws.S3CheckpointStorage", fake_storage)
        return storages

    @pytest.fixture
    def env_file(self, tmp_path):
        path = tmp_path / "testnet3.yaml"
        path.write_text(yaml.safe_dump(S3_ENV))
        return path

    def test_all_valid(self, capsys, storages, env_file):
        code, out, err = _run(capsys, "validators", "verify", "-e", str(env_file), "--chain", "alfajores")
        assert code == 0
        assert json.loads(out)["alfajores"]["valid"] is True
        assert "alfajores-1 has valid checkpoints for alfajores" in err

    def test_invalid_checkpoint_fails(self, capsys, storages, env_file):
        code, out, err = _run(capsys, "validators", "verify", "-e", str(env_file))
        assert code == 1
        result = json.loads(out)
        assert result["alfajores"]["valid"] is True
        assert result["fuji"]["candidates"][0]["firstNonValidIndex"] == 1
        assert "fuji-1 has >=1 non-valid checkpoints for fuji" in err

    def test_unknown_chain(self, capsys, storages, env_file):
        code, _, err = _run(capsys, "validators", "verify", "-e", str(env_file), "--chain", "goerli")
        assert code == 1
        assert "No validator set for: goerli" in err

    def test_local_storage_is_unsupported(self, capsys, storages, environments_dir):
        code, out, _ = _run(
            capsys, "validators", "verify", "-e", str(environments_dir / "test.yaml"), "--chain", "test1",
        )
        assert code == 1
        assert "Cannot check non-s3 validator" in json.loads(out)["test1"]["error"]
