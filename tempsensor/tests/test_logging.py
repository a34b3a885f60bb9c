"""
Structured Logging Tests
========================

Invariantes testeadas:
1. Cada línea es JSON con timestamp, level, logger y message
2. trace_id del contexto se agrega automáticamente
3. Helpers agregan campos estructurados vía extra
"""
import json
import logging

import pytest

from tempsensor.logging import (
    generate_trace_id,
    get_component_logger,
    get_trace_id,
    log_error_with_context,
    log_mqtt_publish,
    setup_logging,
    trace_context,
)


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers = root.handlers[:]
    level = root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


def json_lines(capsys):
    return [json.loads(line) for line in capsys.readouterr().out.splitlines() if line.strip()]


@pytest.mark.unit
class TestTraceContext:

    def test_generate_trace_id_prefix(self):
        trace_id = generate_trace_id("tick")

        assert trace_id.startswith("tick-")
        assert len(trace_id) == len("tick-") + 8

    def test_context_sets_and_resets(self):
        assert get_trace_id() is None

        with trace_context("cmd-1234") as trace_id:
            assert trace_id == "cmd-1234"
            assert get_trace_id() == "cmd-1234"

        assert get_trace_id() is None

    def test_context_generates_id_when_missing(self):
        with trace_context() as trace_id:
            assert trace_id.startswith("trace-")


@pytest.mark.unit
class TestJsonOutput:

    def test_record_fields(self, capsys, restore_root_logger):
        setup_logging(level="INFO")

        logging.getLogger("tempsensor.test").info("hola")

        [record] = json_lines(capsys)
        assert record["message"] == "hola"
        assert record["level"] == "INFO"
        assert record["logger"] == "tempsensor.test"
        assert "timestamp" in record

    def test_level_filter(self, capsys, restore_root_logger):
        setup_logging(level="WARNING")

        logging.getLogger("tempsensor.test").info("oculto")

        assert json_lines(capsys) == []

    def test_trace_id_from_context(self, capsys, restore_root_logger):
        setup_logging(level="INFO")

        with trace_context("tick-abcd1234"):
            logging.getLogger("tempsensor.test").info("en contexto")

        [record] = json_lines(capsys)
        assert record["trace_id"] == "tick-abcd1234"

    def test_global_fields(self, capsys, restore_root_logger):
        setup_logging(level="INFO", add_fields={"environment": "test"})

        logging.getLogger("tempsensor.test").info("x")

        [record] = json_lines(capsys)
        assert record["environment"] == "test"

    def test_log_file_rotation_handler(self, tmp_path, restore_root_logger):
        log_file = tmp_path / "logs" / "tempsensor.log"
        setup_logging(level="INFO", log_file=str(log_file))

        logging.getLogger("tempsensor.test").info("a disco")
        for handler in logging.getLogger().handlers:
            handler.flush()

        record = json.loads(log_file.read_text().splitlines()[0])
        assert record["message"] == "a disco"


@pytest.mark.unit
class TestHelpers:

    def test_log_mqtt_publish_failure_is_warning(self, caplog):
        logger = get_component_logger("cloud_client")

        with caplog.at_level("INFO"):
            log_mqtt_publish(logger, "site/app/data", qos=1, payload_size=10, success=False, error_code=4)

        [record] = caplog.records
        assert record.levelname == "WARNING"
        assert record.mqtt_topic == "site/app/data"
        assert record.mqtt_error_code == 4
        assert record.name == "tempsensor.cloud_client"

    def test_log_error_with_context(self, caplog):
        logger = get_component_logger("control_plane")

        with caplog.at_level("ERROR"), trace_context("cmd-0001"):
            log_error_with_context(
                logger, "Fallo", exception=ValueError("bad"), component="control_plane", topic="t"
            )

        [record] = caplog.records
        assert record.getMessage() == "Fallo: bad"
        assert record.error_type == "ValueError"
        assert record.trace_id == "cmd-0001"
        assert record.topic == "t"
        assert record.exc_info is not None
