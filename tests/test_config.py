"""Tests for settings.conf and node configuration loading."""

import pytest

import config
from config import NodeConfigError, SettingsError, load_node_conf, load_settings_conf


def _write_settings(path, node_root, **extra):
    lines = ["[DEFAULT]", f"node_root = {node_root}", "db_url = postgresql://root@localhost:26257/ledger"]
    lines.extend(f"{key} = {value}" for key, value in extra.items())
    (path / "settings.conf").write_text("\n".join(lines) + "\n")


def _write_node_conf(path, body):
    (path / "node.conf").write_text(body)


@pytest.fixture(autouse=True)
def clear_cache():
    config.reset()
    yield
    config.reset()


def test_settings_defaults(tmp_path):
    """Test optional settings fall back to typed defaults."""
    _write_settings(tmp_path, tmp_path)

    settings = load_settings_conf(str(tmp_path))

    assert settings['node_root'] == str(tmp_path.resolve())
    assert settings['chain_id'] == 'main'
    assert settings['coin_units'] == 8
    assert settings['sync_lookback'] == 1
    assert settings['rpc_timeout'] == 30.0
    assert settings['show_op_return'] is False
    assert settings['show_algo'] is False


def test_settings_overrides(tmp_path):
    _write_settings(tmp_path, tmp_path, chain_id="evrmore", coin_units=2, show_op_return="yes", sync_lookback=0)

    settings = load_settings_conf(str(tmp_path))

    assert settings['chain_id'] == 'evrmore'
    assert settings['coin_units'] == 2
    assert settings['show_op_return'] is True
    assert settings['sync_lookback'] == 0


def test_settings_missing_file(tmp_path):
    with pytest.raises(SettingsError, match="Settings file not found"):
        load_settings_conf(str(tmp_path))


def test_settings_missing_required(tmp_path):
    (tmp_path / "settings.conf").write_text("[DEFAULT]\nchain_id = main\n")

    with pytest.raises(SettingsError) as exc_info:
        load_settings_conf(str(tmp_path))

    assert "node_root" in str(exc_info.value)
    assert "db_url" in str(exc_info.value)


def test_settings_invalid_path(tmp_path):
    _write_settings(tmp_path, tmp_path / "absent")

    with pytest.raises(SettingsError, match="Invalid paths"):
        load_settings_conf(str(tmp_path))


@pytest.mark.parametrize("key, value", [
    ("coin_units", "twenty"),
    ("coin_units", "19"),
    ("sync_lookback", "-1"),
    ("show_algo", "maybe"),
    ("store_timeout", "0"),
])
def test_settings_invalid_values(tmp_path, key, value):
    _write_settings(tmp_path, tmp_path, **{key: value})

    with pytest.raises(SettingsError, match="Invalid settings configuration"):
        load_settings_conf(str(tmp_path))


def test_node_conf_parsing(tmp_path, caplog):
    """Test node.conf values are typed and a missing txindex is reported."""
    _write_node_conf(tmp_path, "# rpc\nserver=1\nrpcuser=user\nrpcpassword=12345\nrpcport=8819\n[test]\n")

    node_conf = load_node_conf(str(tmp_path))

    assert node_conf['rpcuser'] == 'user'
    assert node_conf['rpcpassword'] == '12345'
    assert node_conf['rpcport'] == 8819
    assert node_conf['server'] is True
    assert "txindex is not enabled" in caplog.text


def test_node_conf_validation(tmp_path):
    _write_node_conf(tmp_path, "server=0\nrpcuser=user\nrpcport=abc\n")

    with pytest.raises(NodeConfigError) as exc_info:
        load_node_conf(str(tmp_path))

    message = str(exc_info.value)
    assert "rpcpassword" in message
    assert "rpcport (expected int)" in message
    assert "server" in message


def test_node_conf_missing_file(tmp_path):
    with pytest.raises(NodeConfigError, match="not found"):
        load_node_conf(str(tmp_path), "bitcoin.conf")


def test_get_node_conf_uses_settings(tmp_path, monkeypatch):
    """Test the cached accessors read node.conf from node_root."""
    _write_settings(tmp_path, tmp_path, node_conf="chain.conf")
    (tmp_path / "chain.conf").write_text("server=1\nrpcuser=u\nrpcpassword=p\nrpcport=1234\ntxindex=1\n")
    monkeypatch.chdir(tmp_path)

    node_conf = config.get_node_conf()

    assert node_conf['rpcport'] == 1234
    assert config.get_settings() is config.get_settings()


def test_get_settings_wraps_errors(tmp_path):
    with pytest.raises(SettingsError, match="Configuration Error"):
        config.get_settings(str(tmp_path))
