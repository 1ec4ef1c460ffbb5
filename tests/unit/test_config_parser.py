import pytest

from wstack.errors import ConfigError
from wstack.PARSERS.config_parser import ConfigParser, load_config


def test_parse(tmp_path):
    config_file = tmp_path / "world.yaml"
    config_file.write_text(
        "cardinal:\n"
        "  CARDINAL_NAMESPACE: demo\n"
        "  CARDINAL_ROLLUP_ENABLED: false\n"
        "evm:\n"
        "  CHAIN_ID: world-1\n"
        "  FAUCET_AMOUNT: 10\n"
    )
    config = ConfigParser({}).parse(str(config_file))
    assert config.namespace == "demo"
    assert config.docker_env["CARDINAL_ROLLUP_ENABLED"] == "false"
    assert config.docker_env["FAUCET_AMOUNT"] == "10"
    assert config.docker_env["CHAIN_ID"] == "world-1"
    assert config.root_dir == str(tmp_path)


def test_duplicate_key(tmp_path):
    content = "cardinal:\n  ROUTER_KEY: a\nevm:\n  ROUTER_KEY: b\n"
    with pytest.raises(ConfigError, match="ROUTER_KEY"):
        ConfigParser({}).parse_from_string(content, {})


def test_root_dir_and_interpolation():
    content = "root_dir: /srv/game\ncardinal:\n  CARDINAL_NAMESPACE: ${NS:-fallback}\n  DB_PASSWORD: ${PASS}\n"
    config = ConfigParser().parse_from_string(content, {"PASS": "secret"})
    assert config.root_dir == "/srv/game"
    assert config.namespace == "fallback"
    assert config.docker_env["DB_PASSWORD"] == "secret"


def test_dotenv_next_to_config(tmp_path, monkeypatch):
    monkeypatch.delenv("GAME_NS", raising=False)
    (tmp_path / ".env").write_text("GAME_NS=from-dotenv\n")
    config_file = tmp_path / "world.yaml"
    config_file.write_text("cardinal:\n  CARDINAL_NAMESPACE: ${GAME_NS}\n")
    assert ConfigParser().parse(str(config_file)).namespace == "from-dotenv"

    monkeypatch.setenv("GAME_NS", "from-env")
    assert ConfigParser().parse(str(config_file)).namespace == "from-env"


def test_invalid_yaml():
    with pytest.raises(ConfigError):
        ConfigParser().parse_from_string("cardinal: [unclosed", {})
    with pytest.raises(ConfigError):
        ConfigParser().parse_from_string("cardinal: 3\n", {})


def test_load_config_search(tmp_path, monkeypatch):
    (tmp_path / "world.yaml").write_text("cardinal:\n  CARDINAL_NAMESPACE: found\n")
    nested = tmp_path / "a" / "b"
    nested.mkdir(parents=True)
    monkeypatch.chdir(nested)
    monkeypatch.delenv("WORLD_CLI_CONFIG_FILE", raising=False)
    assert load_config().namespace == "found"


def test_load_config_env_variable(tmp_path, monkeypatch):
    config_file = tmp_path / "custom.yaml"
    config_file.write_text("cardinal:\n  CARDINAL_NAMESPACE: custom\n")
    monkeypatch.setenv("WORLD_CLI_CONFIG_FILE", str(config_file))
    assert load_config().namespace == "custom"


def test_load_config_missing(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("WORLD_CLI_CONFIG_FILE", raising=False)
    with pytest.raises(ConfigError):
        load_config(str(tmp_path / "nope.yaml"))
    with pytest.raises(ConfigError):
        load_config("")
