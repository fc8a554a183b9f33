"""Tests for the command line entry point."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
import yaml
from solders.keypair import Keypair

from cli import main as cli_main
from utils.credentials import DEFAULT_PASSPHRASE_ENV
from utils.wallet_store import WalletStore

TOKEN = "4k3Dyjzvzp8eMZWUXbBCjEvwSkkk59S5iCNLY3QrkX6R"


def test_quote_command_prints_json(capsys):
    exit_code = cli_main.main(
        [
            "quote",
            "--input",
            "1",
            "--reserve-sol",
            "10",
            "--reserve-token",
            "1000",
            "--token-decimals",
            "6",
        ]
    )

    assert exit_code == 0
    output = json.loads(capsys.readouterr().out)
    assert output["min_amount_out"] == 89795408
    assert output["degenerate"] is False
    assert output["estimated_output"].startswith("90.7024")


def test_quote_command_reports_degenerate_pool(capsys):
    exit_code = cli_main.main(
        [
            "quote",
            "--input",
            "1",
            "--side",
            "sell",
            "--reserve-sol",
            "0",
            "--reserve-token",
            "1000",
        ]
    )

    assert exit_code == 0
    output = json.loads(capsys.readouterr().out)
    assert output["degenerate"] is True
    assert output["min_amount_out"] == 0


def test_quote_command_rejects_invalid_input():
    exit_code = cli_main.main(
        ["quote", "--input", "-1", "--reserve-sol", "1", "--reserve-token", "1"]
    )

    assert exit_code == 2


def test_strategies_command_lists_registry(capsys):
    assert cli_main.main(["strategies"]) == 0

    output = capsys.readouterr().out
    for name in ("heartbeat", "random_swap", "price_band"):
        assert name in output


def test_load_config_supports_yaml_json_and_toml(tmp_path):
    yaml_path = tmp_path / "config.yml"
    yaml_path.write_text(yaml.safe_dump({"network": "devnet"}), encoding="utf-8")
    json_path = tmp_path / "config.json"
    json_path.write_text(json.dumps({"network": "devnet"}), encoding="utf-8")
    toml_path = tmp_path / "config.toml"
    toml_path.write_text('network = "devnet"\n', encoding="utf-8")

    for path in (yaml_path, json_path, toml_path):
        assert cli_main.load_config(path) == {"network": "devnet"}


def test_load_config_errors(tmp_path):
    with pytest.raises(FileNotFoundError):
        cli_main.load_config(tmp_path / "missing.yml")

    bad_suffix = tmp_path / "config.ini"
    bad_suffix.write_text("[x]", encoding="utf-8")
    with pytest.raises(ValueError, match="Unsupported config format"):
        cli_main.load_config(bad_suffix)

    bad_json = tmp_path / "config.json"
    bad_json.write_text("{", encoding="utf-8")
    with pytest.raises(ValueError, match="Invalid JSON"):
        cli_main.load_config(bad_json)

    listing = tmp_path / "list.yml"
    listing.write_text("- a\n- b\n", encoding="utf-8")
    with pytest.raises(ValueError):
        cli_main.load_config(listing)


def test_fund_command_rejects_invalid_config(tmp_path):
    config_path = tmp_path / "fund.yml"
    config_path.write_text(
        yaml.safe_dump({"total_amount": "0", "duration_minutes": 5, "network": "devnet"}),
        encoding="utf-8",
    )

    assert cli_main.main(["fund", "--config", str(config_path)]) == 2


def test_fund_command_missing_config_file(tmp_path):
    assert cli_main.main(["fund", "--config", str(tmp_path / "nope.yml")]) == 2


def test_fleet_command_runs_ephemeral_fleet(tmp_path):
    config_path = tmp_path / "fleet.yml"
    config_path.write_text(
        yaml.safe_dump(
            {
                "network": "devnet",
                "wallets": "ephemeral",
                "wallet_count": 2,
                "interval_ms": 10,
                "strategy": "heartbeat",
                "pool": {
                    "token_address": TOKEN,
                    "token_decimals": 6,
                    "reserve_sol": "10",
                    "reserve_token": "1000",
                },
            }
        ),
        encoding="utf-8",
    )

    exit_code = cli_main.main(
        ["fleet", "--config", str(config_path), "--run-seconds", "0.05"]
    )

    assert exit_code == 0


def test_fleet_command_rejects_unknown_strategy(tmp_path):
    config_path = tmp_path / "fleet.yml"
    config_path.write_text(
        yaml.safe_dump(
            {
                "network": "devnet",
                "wallets": "ephemeral",
                "strategy": "eval_me",
                "run_seconds": 0.01,
            }
        ),
        encoding="utf-8",
    )

    assert cli_main.main(["fleet", "--config", str(config_path)]) == 2


def test_wallets_list_and_clear(tmp_path, monkeypatch, capsys):
    monkeypatch.setenv(DEFAULT_PASSPHRASE_ENV, "cli wallets passphrase")
    wallet = Keypair()
    store = WalletStore(Path(tmp_path), "cli wallets passphrase")
    store.save("devnet", [wallet])

    assert (
        cli_main.main(
            ["wallets", "list", "--network", "devnet", "--wallet-dir", str(tmp_path)]
        )
        == 0
    )
    assert str(wallet.pubkey()) in capsys.readouterr().out

    assert (
        cli_main.main(
            ["wallets", "clear", "--network", "devnet", "--wallet-dir", str(tmp_path)]
        )
        == 0
    )
    assert not store.path_for("devnet").exists()


def test_wallets_list_with_wrong_passphrase_keeps_file(tmp_path, monkeypatch):
    WalletStore(Path(tmp_path), "the original passphrase").save("devnet", [Keypair()])
    monkeypatch.setenv(DEFAULT_PASSPHRASE_ENV, "a different passphrase")

    exit_code = cli_main.main(
        ["wallets", "list", "--network", "devnet", "--wallet-dir", str(tmp_path)]
    )

    assert exit_code == 2
    assert (tmp_path / "bot-wallets-devnet.json").exists()
