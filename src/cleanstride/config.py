from __future__ import annotations

import tomllib
from dataclasses import dataclass, field
from datetime import time
from decimal import Decimal, InvalidOperation
from pathlib import Path


class ConfigError(Exception):
    pass


DEFAULT_PICKUP_SLOTS = ("09:00", "11:00", "13:00", "15:00")


@dataclass(frozen=True)
class DbConfig:
    host: str
    port: int
    name: str
    user: str
    password: str
    sslmode: str = "disable"


@dataclass(frozen=True)
class BusinessConfig:
    # express orders cost price * quantity * (1 + rate)
    urgent_surcharge_rate: Decimal = Decimal("0.5")
    max_quantity: int = 10
    pickup_slots: tuple[str, ...] = DEFAULT_PICKUP_SLOTS
    currency: str = "IDR"

    def slot_time(self, slot: str) -> time:
        if slot not in self.pickup_slots:
            raise ValueError(f"Unknown pickup slot: {slot}")
        hours, minutes = slot.split(":")
        return time(int(hours), int(minutes))


@dataclass(frozen=True)
class WebConfig:
    host: str = "127.0.0.1"
    port: int = 5000
    debug: bool = False


@dataclass(frozen=True)
class AppConfig:
    name: str
    log_level: str
    secret_key: str
    db: DbConfig
    business: BusinessConfig = field(default_factory=BusinessConfig)
    web: WebConfig = field(default_factory=WebConfig)


def _parse_rate(raw) -> Decimal:
    try:
        rate = Decimal(str(raw))
    except InvalidOperation as e:
        raise ConfigError(f"urgent_surcharge_rate is not a number: {raw!r}") from e
    if rate < 0 or rate > 1:
        raise ConfigError("urgent_surcharge_rate must be between 0 and 1.")
    return rate


def _parse_slots(raw) -> tuple[str, ...]:
    slots = tuple(str(s) for s in raw)
    if not slots:
        raise ConfigError("pickup_slots cannot be empty.")
    for s in slots:
        hours, _, minutes = s.partition(":")
        if not (hours.isdigit() and minutes.isdigit()):
            raise ConfigError(f"Invalid pickup slot {s!r}, expected HH:MM.")
    return slots


def load_config(path: str | Path) -> AppConfig:
    p = Path(path)
    if not p.exists():
        raise ConfigError(f"Config file not found: {p.resolve()}")

    try:
        data = tomllib.loads(p.read_text(encoding="utf-8"))
    except Exception as e:
        raise ConfigError(f"Failed to read config TOML: {e}") from e

    try:
        app = data["app"]
        db = data["db"]
        business = data.get("business", {})
        web = data.get("web", {})
        return AppConfig(
            name=str(app.get("name", "CleanStride")),
            log_level=str(app.get("log_level", "INFO")).upper(),
            secret_key=str(app["secret_key"]),
            db=DbConfig(
                host=str(db["host"]),
                port=int(db.get("port", 5432)),
                name=str(db["name"]),
                user=str(db["user"]),
                password=str(db["password"]),
                sslmode=str(db.get("sslmode", "disable")),
            ),
            business=BusinessConfig(
                urgent_surcharge_rate=_parse_rate(business.get("urgent_surcharge_rate", "0.5")),
                max_quantity=int(business.get("max_quantity", 10)),
                pickup_slots=_parse_slots(business.get("pickup_slots", DEFAULT_PICKUP_SLOTS)),
                currency=str(business.get("currency", "IDR")),
            ),
            web=WebConfig(
                host=str(web.get("host", "127.0.0.1")),
                port=int(web.get("port", 5000)),
                debug=bool(web.get("debug", False)),
            ),
        )
    except ConfigError:
        raise
    except KeyError as e:
        raise ConfigError(f"Missing config key: {e}") from e
    except Exception as e:
        raise ConfigError(f"Invalid config values: {e}") from e
