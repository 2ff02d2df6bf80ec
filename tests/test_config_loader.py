from pathlib import Path

import pytest

from ethclient.config import ClientConfig, ConfigurationError, load_client_config


def test_load_client_config_prefers_environment_over_yaml(tmp_path: Path) -> None:
    config_path = tmp_path / "config.yaml"
    config_path.write_text(
        """
        rpc:
          url: http://filehost:8545
          timeout: 9
          wait_timeout: 90
        client:
          keystore: /file/keystore
          token_file: /file/tokens.json
        """
    )

    env_map = {
        "ETHCLIENT_RPC_URL": "https://envhost:8545",
        "ETHCLIENT_RPC_TIMEOUT": "2.5",
        "ETHCLIENT_KEYSTORE": "/env/keystore",
    }

    config = load_client_config(config_path=config_path, env=env_map)

    assert isinstance(config, ClientConfig)
    assert config.url == "https://envhost:8545"
    assert config.timeout == 2.5
    assert config.wait_timeout == 90.0
    assert config.keystore == "/env/keystore"
    assert config.token_file == "/file/tokens.json"


def test_load_client_config_reads_yaml_when_env_missing(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    config_path = tmp_path / ".ethclient.yaml"
    monkeypatch.setattr("ethclient.config.DEFAULT_CONFIG_PATH", config_path)
    config_path.write_text(
        """
        rpc:
          url: http://yamlhost:8545
          poll_interval: 0.5
        """
    )

    config = load_client_config(env={})

    assert config.url == "http://yamlhost:8545"
    assert config.timeout == 5.0
    assert config.wait_timeout == 60.0
    assert config.poll_interval == 0.5
    assert config.keystore == "keystore"
    assert config.token_file is None


def test_overrides_win_over_environment(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("ethclient.config.DEFAULT_CONFIG_PATH", tmp_path / "missing.yaml")

    config = load_client_config(
        env={"ETHCLIENT_RPC_URL": "http://envhost:8545", "ETHCLIENT_TOKEN_FILE": "env.json"},
        overrides={"url": "http://flaghost:8545", "token_file": None, "keystore": "flagkeys"},
    )

    assert config.url == "http://flaghost:8545"
    assert config.token_file == "env.json"
    assert config.keystore == "flagkeys"


def test_load_client_config_requires_url(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("ethclient.config.DEFAULT_CONFIG_PATH", tmp_path / "missing.yaml")

    with pytest.raises(ConfigurationError):
        load_client_config(env={})

    config = load_client_config(env={}, require_url=False)
    assert config.url == ""


def test_explicit_missing_config_path_is_an_error(tmp_path: Path) -> None:
    with pytest.raises(ConfigurationError):
        load_client_config(config_path=tmp_path / "nope.yaml", env={})


@pytest.mark.parametrize(
    "content",
    [
        "- just\n- a list\n",
        "rpc: [1, 2]\n",
        "rpc:\n  url: http://host:8545\n  timeout: soon\n",
        "rpc:\n  url: http://host:8545\n  timeout: 0\n",
        "rpc:\n  url: ftp://host\n",
    ],
)
def test_invalid_config_is_rejected(tmp_path: Path, content: str) -> None:
    config_path = tmp_path / "config.yaml"
    config_path.write_text(content)

    with pytest.raises(ConfigurationError):
        load_client_config(config_path=config_path, env={})
