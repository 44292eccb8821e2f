from __future__ import annotations

import json
import logging

import pytest

from abstract_bot_api.core.logging_utils import log_event


def test_log_event_renders_event_name_and_sorted_json(
    caplog: pytest.LogCaptureFixture,
) -> None:
    logger = logging.getLogger("abstract_bot_api.tests.log_event")
    with caplog.at_level(logging.INFO, logger=logger.name):
        log_event(logger, logging.INFO, "bouncer.task.forwarded", url="/slow", attempt=1)

    record = caplog.records[-1]
    event, _, payload = record.getMessage().partition(" ")
    assert event == "bouncer.task.forwarded"
    assert json.loads(payload) == {"attempt": 1, "url": "/slow"}


def test_log_event_attaches_errors(caplog: pytest.LogCaptureFixture) -> None:
    logger = logging.getLogger("abstract_bot_api.tests.log_event")
    with caplog.at_level(logging.ERROR, logger=logger.name):
        log_event(logger, logging.ERROR, "bouncer.request.failed", exc=ValueError("bad"))

    record = caplog.records[-1]
    payload = json.loads(record.getMessage().partition(" ")[2])
    assert payload == {"error": "bad", "error_type": "ValueError"}
    assert record.exc_info is not None


def test_log_event_skips_disabled_levels(caplog: pytest.LogCaptureFixture) -> None:
    logger = logging.getLogger("abstract_bot_api.tests.log_event")
    with caplog.at_level(logging.WARNING, logger=logger.name):
        log_event(logger, logging.DEBUG, "quiet.event", value=object())

    assert caplog.records == []
