"""Loguru setup shared by the whole package.

Import ``logger`` from here, never from loguru directly, so the sinks below
are installed exactly once.

Environment Variables:
    CITYSCAN_LOG_LEVEL: DEBUG|INFO|WARNING|ERROR (default: INFO)
    CITYSCAN_LOG_JSON: 0|1, emit NDJSON on stderr instead of text
    CITYSCAN_LOG_FILE: also append NDJSON records to this file
    CITYSCAN_REQUEST_ID: id stamped on every JSON record
"""

import json
import os
import sys
import uuid

from loguru import logger

# Numeric levels understood by Pino-based log viewers.
PINO_LEVELS = {
    "TRACE": 10,
    "DEBUG": 20,
    "INFO": 30,
    "SUCCESS": 30,
    "WARNING": 40,
    "ERROR": 50,
    "CRITICAL": 60,
}

LEVEL = os.environ.get("CITYSCAN_LOG_LEVEL", "INFO").upper()
REQUEST_ID = os.environ.get("CITYSCAN_REQUEST_ID") or uuid.uuid4().hex

HUMAN_FORMAT = "<green>{time:HH:mm:ss}</green> <level>{level: <7}</level> <cyan>{name}</cyan> {message}"


def to_ndjson(record) -> str:
    """One loguru record as a single JSON line."""
    entry = {
        "level": PINO_LEVELS.get(record["level"].name, 30),
        "time": int(record["time"].timestamp() * 1000),
        "name": "cityscan",
        "module": record["name"],
        "msg": record["message"],
        "pid": record["process"].id,
        "request_id": REQUEST_ID,
        **record["extra"],
    }
    exc = record["exception"]
    if exc:
        entry["err"] = {
            "type": exc.type.__name__ if exc.type else "Error",
            "message": str(exc.value) if exc.value else "",
        }
    return json.dumps(entry, default=str)


def _stderr_json_sink(message) -> None:
    # Result documents own stdout.
    sys.stderr.write(to_ndjson(message.record) + "\n")
    sys.stderr.flush()


def _file_json_sink(path: str):
    def sink(message) -> None:
        with open(path, "a", encoding="utf-8") as f:
            f.write(to_ndjson(message.record) + "\n")

    return sink


logger.remove()
if os.environ.get("CITYSCAN_LOG_JSON", "0") == "1":
    logger.add(_stderr_json_sink, level=LEVEL, colorize=False)
else:
    logger.add(sys.stderr, level=LEVEL, format=HUMAN_FORMAT, colorize=None)

if os.environ.get("CITYSCAN_LOG_FILE"):
    logger.add(_file_json_sink(os.environ["CITYSCAN_LOG_FILE"]), level="DEBUG")


__all__ = ["logger"]
