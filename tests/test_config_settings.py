from pulsefolio.config import Settings


def test_rpc_url_falls_back_to_legacy_env(monkeypatch):
    """PULSECHAIN_RPC_URL is used when RPC_URL is not set."""

    monkeypatch.delenv("RPC_URL", raising=False)
    monkeypatch.setenv("PULSECHAIN_RPC_URL", "https://rpc.example.org")

    settings = Settings()

    assert settings.rpc_url == "https://rpc.example.org"


def test_rpc_url_direct_env(monkeypatch):
    """RPC_URL remains the primary source."""

    monkeypatch.setenv("RPC_URL", "https://primary.example.org")
    monkeypatch.setenv("PULSECHAIN_RPC_URL", "https://rpc.example.org")

    settings = Settings()

    assert settings.rpc_url == "https://primary.example.org"


def test_known_missing_tokens_are_lowercased(monkeypatch):
    monkeypatch.setenv("KNOWN_MISSING_TOKENS", '["0xABCDEF0000000000000000000000000000000001", " "]')

    settings = Settings()

    assert settings.known_missing_tokens == ["0xabcdef0000000000000000000000000000000001"]


def test_defaults_match_cache_and_poller_windows(monkeypatch):
    for name in (
        "LOGO_CACHE_TTL_SECONDS",
        "PRICE_CACHE_TTL_SECONDS",
        "BACKGROUND_BATCH_MAX_POLLS",
        "BACKGROUND_BATCH_BUDGET_SECONDS",
        "SWAP_DETECTOR_INITIAL_BLOCKS",
    ):
        monkeypatch.delenv(name, raising=False)

    settings = Settings()

    assert settings.logo_cache_ttl_seconds == 24 * 60 * 60
    assert settings.price_cache_ttl_seconds == 30 * 60
    assert settings.background_batch_max_polls == 24
    assert settings.background_batch_budget_seconds == 120.0
    assert settings.swap_detector_initial_blocks == 100


def test_portfolio_server_url_alias(monkeypatch):
    monkeypatch.delenv("PORTFOLIO_SERVER_URL", raising=False)
    monkeypatch.setenv("API_BASE_URL", "http://localhost:9000")

    settings = Settings()

    assert settings.portfolio_server_url == "http://localhost:9000"
