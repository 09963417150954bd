"""
Unit Tests: Configuration

Test cases:
- Defaults match the documented settlement parameters
- Nested environment overrides
- YAML section merge
"""

from doomsettle.config import Settings


def test_defaults(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    settings = Settings()

    assert settings.queue.max_attempts == 3
    assert settings.queue.resolution_concurrency == 2
    assert settings.queue.payout_concurrency == 5
    assert settings.settlement.payout_batch_size == 100
    assert settings.settlement.platform_fee_bps == 0
    assert settings.dispute.window_hours == 24


def test_nested_env_override(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("QUEUE__MAX_ATTEMPTS", "5")
    monkeypatch.setenv("SETTLEMENT__PLATFORM_FEE_BPS", "200")

    settings = Settings()

    assert settings.queue.max_attempts == 5
    assert settings.settlement.platform_fee_bps == 200


def test_yaml_merges_per_section(tmp_path):
    config_file = tmp_path / "config.yaml"
    config_file.write_text("settlement:\n  payout_batch_size: 25\ndispute:\n  window_hours: 48\n")

    settings = Settings(config_path=config_file)
    settings.load_yaml_config()

    assert settings.settlement.payout_batch_size == 25
    assert settings.settlement.platform_fee_bps == 0
    assert settings.dispute.window_hours == 48
    assert settings.dispute.escalation_window_hours == 24


def test_cors_origins_split(tmp_path):
    settings = Settings(
        allowed_origins="http://a.test, http://b.test,",
        config_path=tmp_path / "none.yaml",
    )
    assert settings.cors_origins == ["http://a.test", "http://b.test"]
