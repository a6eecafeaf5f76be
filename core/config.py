from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List

DEFAULT_API_URL = "https://tiltify.com/api/v3/"
DEFAULT_ALERT_TEMPLATE = "{tiltifyDonationFrom} donated ${tiltifyDonationAmount} to {tiltifyDonationCampaignName}"


@dataclass(frozen=True)
class TiltifyConfig:
    token: str
    campaign_id: str
    poll_interval: int = 5
    api_url: str = DEFAULT_API_URL
    request_timeout: float = 10.0
    # 0 keeps every delivered id
    dedup_window: int = 0


@dataclass(frozen=True)
class StorageConfig:
    db_path: str = "relay_state.db"


@dataclass(frozen=True)
class DiscordConfig:
    enabled: bool
    webhooks: List[str]
    username: str = "Tiltify"


@dataclass(frozen=True)
class TelegramConfig:
    enabled: bool
    token: str
    chat_ids: List[int]


@dataclass(frozen=True)
class AlertConfig:
    template: str = DEFAULT_ALERT_TEMPLATE
    filters: List[Dict[str, Any]] = field(default_factory=list)


@dataclass(frozen=True)
class AppConfig:
    tiltify: TiltifyConfig
    storage: StorageConfig
    discord: DiscordConfig
    telegram: TelegramConfig
    alerts: AlertConfig
    log_level: str = "INFO"


def _as_int(value: Any, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def parse_tiltify(raw: Dict[str, Any]) -> TiltifyConfig:
    token = raw.get("token") or os.environ.get("TILTIFY_TOKEN", "")
    return TiltifyConfig(
        token=str(token),
        campaign_id=str(raw.get("campaign_id", "") or ""),
        poll_interval=_as_int(raw.get("poll_interval", 5), 0),
        api_url=str(raw.get("api_url", DEFAULT_API_URL)),
        request_timeout=float(raw.get("request_timeout", 10.0)),
        dedup_window=_as_int(raw.get("dedup_window", 0), 0),
    )


def parse_config(raw: Dict[str, Any]) -> AppConfig:
    tiltify_raw = raw.get("tiltify", {})
    storage_raw = raw.get("storage", {})
    discord_raw = raw.get("discord", {})
    telegram_raw = raw.get("telegram", {})
    alerts_raw = raw.get("alerts", {})

    discord = DiscordConfig(
        enabled=bool(discord_raw.get("enabled", False)),
        webhooks=[str(url) for url in discord_raw.get("webhooks", [])],
        username=str(discord_raw.get("username", "Tiltify")),
    )

    telegram = TelegramConfig(
        enabled=bool(telegram_raw.get("enabled", False)),
        token=str(telegram_raw.get("token", "")),
        chat_ids=[int(value) for value in telegram_raw.get("chat_ids", [])],
    )

    alerts = AlertConfig(
        template=str(alerts_raw.get("template", DEFAULT_ALERT_TEMPLATE)),
        filters=list(alerts_raw.get("filters", [])),
    )

    return AppConfig(
        tiltify=parse_tiltify(tiltify_raw),
        storage=StorageConfig(db_path=str(storage_raw.get("db_path", "relay_state.db"))),
        discord=discord,
        telegram=telegram,
        alerts=alerts,
        log_level=str(raw.get("log_level", "INFO")).upper(),
    )


def load_config(path: str) -> AppConfig:
    with open(path, "r", encoding="utf-8") as handle:
        raw = json.load(handle)
    return parse_config(raw)
