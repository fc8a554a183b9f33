import json
import logging

from utils.logging_config import LogContext, SanitizingFormatter, StructuredFormatter


def _record(message, *args, **extra):
    record = logging.LogRecord(
        name="amm_fleet.test",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg=message,
        args=args,
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_sanitizing_formatter_redacts_passphrase():
    formatter = SanitizingFormatter("%(message)s")

    output = formatter.format(_record("wallet_passphrase=%s", "hunter2hunter2"))

    assert "hunter2hunter2" not in output
    assert "[REDACTED]" in output


def test_sanitizing_formatter_redacts_secret_key_arrays():
    formatter = SanitizingFormatter("%(message)s")

    output = formatter.format(_record("secret_key: [1, 2, 3, 4]"))

    assert "1, 2, 3" not in output


def test_sanitizing_formatter_leaves_plain_messages():
    formatter = SanitizingFormatter("%(message)s")

    assert formatter.format(_record("Funded %s wallets", 6)) == "Funded 6 wallets"


def test_structured_formatter_includes_extras():
    formatter = StructuredFormatter()

    payload = json.loads(formatter.format(_record("tick", bot_id="abc")))

    assert payload["message"] == "tick"
    assert payload["bot_id"] == "abc"
    assert payload["logger"] == "amm_fleet.test"


def test_log_context_adds_fields_and_restores_factory():
    original = logging.getLogRecordFactory()

    with LogContext(network="devnet"):
        record = logging.getLogRecordFactory()(
            "amm_fleet.test", logging.INFO, __file__, 1, "msg", (), None
        )
        assert record.network == "devnet"

    assert logging.getLogRecordFactory() is original
