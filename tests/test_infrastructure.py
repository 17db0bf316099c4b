import json
import logging
from unittest.mock import AsyncMock, patch

import pytest

from workbook.cache import connection
from workbook.config import AppSettings
from workbook.logging_config import CustomJsonFormatter, setup_logging


def test_setup_logging_adds_a_single_json_handler():
    root = logging.getLogger()
    before = list(root.handlers)
    level = root.level
    try:
        setup_logging("debug")
        setup_logging("warning")
        json_handlers = [h for h in root.handlers if isinstance(h.formatter, CustomJsonFormatter)]
        assert len(json_handlers) == 1
        assert root.level == logging.WARNING
        assert logging.getLogger("sqlalchemy.engine").level == logging.WARNING
    finally:
        root.setLevel(level)
        for handler in list(root.handlers):
            if handler not in before:
                root.removeHandler(handler)


def test_json_formatter_fields():
    formatter = CustomJsonFormatter('%(timestamp)s %(level)s %(logger)s %(message)s')
    record = logging.LogRecord("workbook.test", logging.WARNING, __file__, 12, "saved %s", ("x",), None)
    payload = json.loads(formatter.format(record))
    assert payload["message"] == "saved x"
    assert payload["level"] == "WARNING"
    assert payload["service"] == "recovery-workbook"
    assert payload["logger"] == "workbook.test"
    assert payload["location"].endswith(":12")


def test_cors_origin_list():
    assert AppSettings(cors_origins="http://a.test, http://b.test ,").cors_origin_list == [
        "http://a.test",
        "http://b.test",
    ]


@pytest.mark.asyncio
async def test_redis_client_is_shared_and_closed():
    await connection.close_redis()
    fake = AsyncMock()
    with patch.object(connection.aioredis, "from_url", return_value=fake) as from_url:
        first = await connection.get_redis()
        second = await connection.get_redis()
    assert first is fake and second is fake
    from_url.assert_called_once()

    await connection.close_redis()
    fake.aclose.assert_awaited_once()


@pytest.mark.asyncio
async def test_redis_creation_failure_backs_off():
    await connection.close_redis()
    with patch.object(connection.aioredis, "from_url", side_effect=ValueError("bad url")) as from_url:
        assert await connection.get_redis() is None
        assert await connection.get_redis() is None
    from_url.assert_called_once()
    await connection.close_redis()
