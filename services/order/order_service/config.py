"""
Order Service — 設定

各サービスと同じく、接続先などの設定はすべて環境変数から読む。
DATABASE_URL だけは必須で、起動時 (lifespan) に参照する。
"""

import logging
import os

REDIS_URL = os.environ.get("REDIS_URL", "redis://localhost:6379")
ORDER_EVENTS_CHANNEL = os.environ.get("ORDER_EVENTS_CHANNEL", "order_events")
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
SQL_ECHO = os.environ.get("SQL_ECHO", "").lower() in ("1", "true", "yes")
CREATE_SCHEMA = os.environ.get("CREATE_SCHEMA", "").lower() in ("1", "true", "yes")

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def database_url() -> str:
    """DATABASE_URL を返す。未設定なら KeyError で起動を止める。"""
    return os.environ["DATABASE_URL"]


def configure_logging() -> None:
    logging.basicConfig(level=LOG_LEVEL.upper(), format=LOG_FORMAT)
