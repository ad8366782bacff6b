import json
import logging

from community_app.utils.logging_config import PACKAGE_LOGGER, JsonFormatter, setup_logging


def _own_handlers(logger):
    return [handler for handler in logger.handlers if getattr(handler, "_community_app_handler", False)]


def test_setup_logging_replaces_its_own_handlers(app):
    setup_logging(app)
    setup_logging(app)

    assert len(_own_handlers(app.logger)) == 1
    assert len(_own_handlers(logging.getLogger(PACKAGE_LOGGER))) == 1
    assert app.logger.level == logging.DEBUG


def test_file_logging_writes_rotating_log(app, tmp_path):
    app.config.update({"ENABLE_FILE_LOGGING": True, "LOG_DIR": str(tmp_path), "LOG_LEVEL": "INFO"})

    handlers = setup_logging(app)
    logging.getLogger("community_app.importer").info("import finished")
    for handler in handlers:
        handler.flush()

    assert any(type(handler).__name__ == "RotatingFileHandler" for handler in handlers)
    assert "import finished" in (tmp_path / "community_app.log").read_text(encoding="utf-8")


def test_json_formatter_includes_request_and_extra_fields(app):
    record = logging.LogRecord("community_app.routes", logging.INFO, __file__, 1, "saved %s", ("x",), None)
    record.member_id = "member.nairobi"

    with app.test_request_context("/api/priority/apply", method="POST"):
        payload = json.loads(JsonFormatter().format(record))

    assert payload["message"] == "saved x"
    assert payload["level"] == "INFO"
    assert payload["path"] == "/api/priority/apply"
    assert payload["method"] == "POST"
    assert payload["member_id"] == "member.nairobi"


def test_json_formatter_outside_request(app):
    record = logging.LogRecord("community_app", logging.WARNING, __file__, 1, "plain", (), None)

    payload = json.loads(JsonFormatter().format(record))

    assert "path" not in payload
    assert payload["logger"] == "community_app"
