import pydantic
import pytest

from config import Config
from games.rules import HouseRules


def test_admin_ids_are_parsed():
    cfg = Config(ADMIN_IDS="111, 222", ENVIRONMENT="test")
    assert cfg.admin_ids == [111, 222]
    assert cfg.is_admin(222)
    assert not cfg.is_admin(333)


def test_bad_admin_id_is_rejected():
    with pytest.raises(pydantic.ValidationError):
        Config(ADMIN_IDS="111,boss", ENVIRONMENT="test")


def test_webhook_url_from_host():
    cfg = Config(ENVIRONMENT="prod", WEBHOOK_HOST="https://duna.example", WEBHOOK_URL=None)
    assert cfg.WEBHOOK_URL == "https://duna.example/webhook"
    assert cfg.use_webhook


def test_polling_outside_production():
    cfg = Config(ENVIRONMENT="dev", WEBHOOK_HOST="https://duna.example")
    assert not cfg.use_webhook


def test_house_rules_follow_config():
    cfg = Config(
        ENVIRONMENT="test",
        MIN_STAKE=5,
        MAX_STAKE_MULTIPLIER=10,
        HISTORY_LIMIT=7,
        BACCARAT_HISTORY_DISPLAY=4,
    )
    rules = HouseRules.from_config(cfg)
    assert rules.blackjack.min_stake == 5
    assert rules.three_dice.max_multiplier == 10
    assert rules.roulette.history_limit == 7
    assert rules.baccarat.history_display == 4
