import pytest

from config import load_config


@pytest.fixture(autouse=True)
def setup_env(monkeypatch):
    monkeypatch.setenv('SOLANA_RPC_ENDPOINT', 'http://mock-rpc')
    monkeypatch.setenv('TELEGRAM_BOT_TOKEN', 'mock-token')
    monkeypatch.delenv('JUPITER_API_BASE_URL', raising=False)
    monkeypatch.delenv('JUPITER_API_KEY', raising=False)


def test_default_values():
    config = load_config([])
    assert config.interval == 60
    assert config.window_minutes == 30
    assert config.slippage_bps == 500
    assert config.use_relay is True
    assert config.relay_tip_lamports == 1_000_000
    assert config.confirm_timeout == 30.0
    assert config.telegram_enabled is True
    assert config.rpc_url == 'http://mock-rpc'
    assert config.jupiter_base_url == 'https://api.jup.ag/swap/v1'
    assert config.jupiter_api_key is None


def test_flags_override_defaults(monkeypatch):
    monkeypatch.setenv('JUPITER_API_BASE_URL', 'https://quote.example/v6/')
    monkeypatch.setenv('JUPITER_API_KEY', 'key')
    config = load_config([
        '--interval', '15',
        '--slippage-bps', '250',
        '--no-relay',
        '--confirm-timeout', '45',
        '--no-telegram',
    ])
    assert config.interval == 15
    assert config.slippage_bps == 250
    assert config.use_relay is False
    assert config.confirm_timeout == 45.0
    assert config.telegram_enabled is False
    assert config.jupiter_base_url == 'https://quote.example/v6'
    assert config.jupiter_api_key == 'key'


def test_missing_rpc_endpoint_exits(monkeypatch):
    monkeypatch.delenv('SOLANA_RPC_ENDPOINT')
    with pytest.raises(SystemExit) as excinfo:
        load_config(['--no-telegram'])
    assert excinfo.value.code == 1


def test_missing_bot_token_exits_unless_headless(monkeypatch):
    monkeypatch.delenv('TELEGRAM_BOT_TOKEN')
    with pytest.raises(SystemExit):
        load_config([])
    assert load_config(['--no-telegram']).telegram_enabled is False


def test_show_trend_needs_no_credentials(monkeypatch):
    monkeypatch.delenv('SOLANA_RPC_ENDPOINT')
    monkeypatch.delenv('TELEGRAM_BOT_TOKEN')
    config = load_config(['--show-trend', 'MINT'])
    assert config.show_trend == 'MINT'
    assert config.telegram_enabled is False
