from swaply_rewards.core.settings import Settings


def test_qualifying_statuses_accept_comma_separated_env(monkeypatch) -> None:
    monkeypatch.setenv("REWARD_QUALIFYING_STATUSES", "active, published,,")

    config = Settings()

    assert config.reward_qualifying_statuses == ["active", "published"]


def test_qualifying_statuses_default_to_active(monkeypatch) -> None:
    monkeypatch.delenv("REWARD_QUALIFYING_STATUSES", raising=False)

    assert Settings().reward_qualifying_statuses == ["active"]
