from __future__ import annotations

import json

import settings


def test_defaults_without_config() -> None:
    app_settings = settings.build_settings({}, {"BOT_TOKEN": "123:abc"})

    assert app_settings.telegram.bot_token == "123:abc"
    assert app_settings.telegram.authorized_chat_ids == frozenset()
    assert app_settings.telegram.poll_timeout_secs == 60
    assert app_settings.scheduler.crawl_interval_secs == 60.0
    assert app_settings.marktplaats.enabled
    assert app_settings.marktplaats.search_limit == 30
    assert not app_settings.marktplaats.search_in_title_and_description
    assert app_settings.marktplaats.seller_ids == ()
    assert app_settings.vinted.search_limit == 30
    assert app_settings.db_path == settings.DB_PATH


def test_authorized_chat_ids_are_merged() -> None:
    config = {"telegram": {"authorized_chat_ids": [1, "2"]}}

    app_settings = settings.build_settings(config, {"AUTHORIZED_CHAT_IDS": "2, -1003"})

    assert app_settings.telegram.authorized_chat_ids == frozenset({1, 2, -1003})


def test_load_settings_from_file(tmp_path, monkeypatch) -> None:
    config_path = tmp_path / "config.json"
    config_path.write_text(
        json.dumps(
            {
                "db_path": str(tmp_path / "bot.db"),
                "scheduler": {"crawl_interval_secs": 15},
                "vinted": {"enabled": False, "heartbeat_url": "https://hc.example.com/vinted"},
                "logging": {"level": "DEBUG"},
            }
        ),
        encoding="utf-8",
    )
    monkeypatch.setenv("BOT_TOKEN", "123:abc")
    monkeypatch.delenv("AUTHORIZED_CHAT_IDS", raising=False)

    app_settings = settings.load_settings(str(config_path))

    assert app_settings.db_path == str(tmp_path / "bot.db")
    assert app_settings.scheduler.crawl_interval_secs == 15.0
    assert not app_settings.vinted.enabled
    assert app_settings.vinted.heartbeat_url == "https://hc.example.com/vinted"
    assert app_settings.logging == {"level": "DEBUG"}
    assert app_settings.telegram.bot_token == "123:abc"


def test_marktplaats_seller_ids() -> None:
    config = {"marktplaats": {"seller_ids": [42, "43"]}}

    app_settings = settings.build_settings(config, {})

    assert app_settings.marktplaats.seller_ids == (42, 43)
