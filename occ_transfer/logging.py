"""이체 엔진 로그를 한 줄 JSON 으로 stdout 에 출력"""

import json
import logging
import logging.config
import os
from decimal import Decimal

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
SERVICE_NAME = os.getenv("SERVICE_NAME", "occ-transfer")

# LogRecord 기본 속성. 이 밖의 속성은 extra={...} 로 넘어온 이체 정보다
_RECORD_ATTRS = set(vars(logging.makeLogRecord({}))) | {"message", "asctime", "taskName"}


def _json_value(value):
    # 잔액/금액(Decimal)은 소수점 자리를 잃지 않도록 문자열로
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    return repr(value)


class TransferLogFormatter(logging.Formatter):
    def __init__(self, service=SERVICE_NAME):
        super().__init__()
        self.service = service

    def format(self, record):
        entry = {
            "service": self.service,
            "time": self.formatTime(record, "%Y-%m-%dT%H:%M:%S%z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key, value in vars(record).items():
            if key not in _RECORD_ATTRS:
                entry[key] = _json_value(value)
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False)


def configure_logging(level: str = LOG_LEVEL, service: str = SERVICE_NAME):
    """루트 로거에 JSON 핸들러 설치 (앱 시작 시 한 번)"""
    level = level.upper()
    logging.config.dictConfig({
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "transfer": {"()": TransferLogFormatter, "service": service},
        },
        "handlers": {
            "stdout": {
                "class": "logging.StreamHandler",
                "stream": "ext://sys.stdout",
                "formatter": "transfer",
            },
        },
        "root": {"handlers": ["stdout"], "level": level},
    })
