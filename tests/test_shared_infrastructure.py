import json
import logging

import pytest

from supportdesk.core import ConflictException
from supportdesk.shared.infrastructure.logging import CustomJsonFormatter, get_context_logger
from supportdesk.shared.infrastructure.retry import RetryPolicy, retry_on_conflict


def format_record(**extra):
    formatter = CustomJsonFormatter("%(name)s %(levelname)s %(message)s", environment="test")
    record = logging.LogRecord("supportdesk.test", logging.INFO, __file__, 1, "hello", None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return json.loads(formatter.format(record))


def test_json_formatter_adds_context_fields():
    payload = format_record(ticket_id="t-1", correlation_id="decision-1")

    assert payload["message"] == "hello"
    assert payload["ticket_id"] == "t-1"
    assert payload["correlation_id"] == "decision-1"
    assert payload["environment"] == "test"
    assert "timestamp" in payload


def test_json_formatter_redacts_secrets():
    payload = format_record(
        slack_webhook_url="https://hooks.slack.com/secret",
        openai_api_key="sk-live",
        access_token="abc",
        prompt_tokens=120,
    )

    assert payload["slack_webhook_url"] == "***REDACTED***"
    assert payload["openai_api_key"] == "***REDACTED***"
    assert payload["access_token"] == "***REDACTED***"
    assert payload["prompt_tokens"] == 120


def test_context_logger_merges_extra(caplog):
    logger = get_context_logger("supportdesk.test", "decision-7")

    with caplog.at_level(logging.INFO, logger="supportdesk.test"):
        logger.info("Ticket triaged", extra={"ticket_id": "t-9"})

    record = caplog.records[-1]
    assert record.correlation_id == "decision-7"
    assert record.ticket_id == "t-9"


def test_retry_policy_backoff_is_capped():
    policy = RetryPolicy(max_attempts=5, base_delay=0.1, max_delay=0.3, jitter=0.05, rng=lambda: 1.0)

    assert policy.delay_for(1) == pytest.approx(0.15)
    assert policy.delay_for(2) == pytest.approx(0.25)
    assert policy.delay_for(5) == pytest.approx(0.35)
    assert policy.has_attempts_left(4)
    assert not policy.has_attempts_left(5)


def test_retry_policy_validates():
    with pytest.raises(ValueError):
        RetryPolicy(max_attempts=0)
    with pytest.raises(ValueError):
        RetryPolicy(base_delay=-1)


@pytest.mark.asyncio
async def test_retry_on_conflict_reruns_operation():
    attempts = []

    async def operation():
        attempts.append(1)
        if len(attempts) < 3:
            raise ConflictException("t-1", 1, 2)
        return "done"

    result = await retry_on_conflict(RetryPolicy.immediate(3), operation, name="test", ticket_id="t-1")

    assert result == "done"
    assert len(attempts) == 3


@pytest.mark.asyncio
async def test_retry_on_conflict_gives_up():
    async def operation():
        raise ConflictException("t-1", 1, 2)

    with pytest.raises(ConflictException):
        await retry_on_conflict(RetryPolicy.immediate(2), operation, name="test", ticket_id="t-1")


@pytest.mark.asyncio
async def test_retry_on_conflict_does_not_retry_other_errors():
    attempts = []

    async def operation():
        attempts.append(1)
        raise ValueError("nope")

    with pytest.raises(ValueError):
        await retry_on_conflict(RetryPolicy.immediate(5), operation, name="test", ticket_id="t-1")
    assert len(attempts) == 1
