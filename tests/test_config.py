import json

import pytest

from attendance_core import config as agent_config
from attendance_core.errors import ConfigError


@pytest.fixture(autouse=True)
def agent_home(tmp_path, monkeypatch):
    monkeypatch.setenv("ATTENDANCE_AGENT_HOME", str(tmp_path))
    return tmp_path


def write(path, data):
    path.write_text(json.dumps(data), encoding="utf-8")


def test_home_from_environment(agent_home):
    assert agent_config.agent_home() == agent_home
    assert agent_config.config_file() == agent_home / "config.json"


def test_missing_file(agent_home):
    with pytest.raises(ConfigError):
        agent_config.load_config()


def test_defaults_are_merged(agent_home):
    write(agent_home / "config.json", {"serverUrl": "https://srv.example.com/", "secretKey": "k"})

    config = agent_config.load_config()

    assert config["serverUrl"] == "https://srv.example.com"
    assert config["maxBatchSize"] == 1000
    assert config["pollIntervalSec"] == 60
    assert config["heartbeatEveryCycles"] == 5
    assert config["agentId"] is None
    assert config["databasePath"] == str(agent_home / "agent.db")


def test_server_url_required(agent_home):
    write(agent_home / "config.json", {"secretKey": "k"})
    with pytest.raises(ConfigError):
        agent_config.load_config()


def test_secret_key_required(agent_home):
    write(agent_home / "config.json", {"serverUrl": "https://srv"})
    with pytest.raises(ConfigError):
        agent_config.load_config()


@pytest.mark.parametrize("content", ["{broken", "[1, 2]"])
def test_unreadable_file(agent_home, content):
    (agent_home / "config.json").write_text(content, encoding="utf-8")
    with pytest.raises(ConfigError):
        agent_config.load_config()


def test_batch_size_must_be_positive(agent_home):
    write(agent_home / "config.json", {"serverUrl": "https://srv", "secretKey": "k", "maxBatchSize": 0})
    with pytest.raises(ConfigError):
        agent_config.load_config()


def test_save_then_load(agent_home):
    write(agent_home / "config.json", {"serverUrl": "https://srv", "secretKey": "k"})
    config = agent_config.load_config()
    config.update(agentId=12, apiKey="abc")

    agent_config.save_config(config)

    reloaded = agent_config.load_config()
    assert reloaded["agentId"] == 12
    assert reloaded["apiKey"] == "abc"


def test_setup_logging_writes_to_home(agent_home):
    logger = agent_config.setup_logging("DEBUG")
    agent_config.setup_logging("DEBUG")
    logger.info("hello from test")
    for handler in logger.handlers:
        handler.flush()

    assert len(logger.handlers) == 2
    assert "hello from test" in (agent_home / "agent.log").read_text(encoding="utf-8")

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
