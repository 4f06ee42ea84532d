from __future__ import annotations

import logging
import os

from .cli import run_cli
from .config import ConfigError, load_config
from .db import Db, DbError

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: str) -> None:
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT)


def config_path() -> str:
    return os.environ.get("CLEANSTRIDE_CONFIG", "config.toml")


def main() -> int:
    try:
        cfg = load_config(config_path())
        configure_logging(cfg.log_level)
        db = Db(cfg.db)
        run_cli(db, cfg)
        return 0
    except ConfigError as e:
        print(f"[CONFIG ERROR] {e}")
        return 2
    except DbError as e:
        print(f"[DB ERROR] {e}")
        return 3
    except KeyboardInterrupt:
        print("\nInterrupted.")
        return 130


if __name__ == "__main__":
    raise SystemExit(main())
