"""Tests for the domain event publisher and handlers."""
import logging

from deployhub.application.event_handlers import register_event_handlers
from deployhub.domain.events import (
    DeploymentStatusChanged,
    DomainEventPublisher,
    ModelCreated,
    UploadFinished,
    event_publisher,
)


def make_status_changed(new_status):
    return DeploymentStatusChanged(
        event_id="", timestamp=None, aggregate_id="d-1", name="iris", old_status="deploying", new_status=new_status,
    )


def test_publisher_is_singleton():
    assert DomainEventPublisher() is event_publisher


def test_event_defaults():
    event = ModelCreated(event_id="", timestamp=None, aggregate_id="m-1", organization="acme", repository="iris", version="v1")
    assert event.event_id
    assert event.timestamp is not None


def test_handlers_receive_only_their_event_type():
    received = []
    event_publisher.subscribe(ModelCreated, received.append)

    event_publisher.publish(make_status_changed("running"))
    event_publisher.publish(ModelCreated(
        event_id="", timestamp=None, aggregate_id="m-1", organization="acme", repository="iris", version="v1",
    ))

    assert [type(e) for e in received] == [ModelCreated]


def test_failing_handler_does_not_stop_others(caplog):
    received = []

    def broken(event):
        raise RuntimeError("handler bug")

    event_publisher.subscribe(UploadFinished, broken)
    event_publisher.subscribe(UploadFinished, received.append)

    event_publisher.publish(UploadFinished(
        event_id="", timestamp=None, aggregate_id="m-1", kind="Model", tag="iris:v1", status="success", reason="",
    ))

    assert len(received) == 1
    assert "Event handler error for UploadFinished" in caplog.text


def test_registered_handlers_log(caplog):
    register_event_handlers()

    with caplog.at_level(logging.INFO):
        event_publisher.publish(make_status_changed("failed"))
        event_publisher.publish(make_status_changed("running"))

    levels = [(r.levelno, r.getMessage()) for r in caplog.records if "[DEPLOYMENT]" in r.getMessage()]
    assert levels == [
        (logging.WARNING, "[DEPLOYMENT] iris: deploying -> failed"),
        (logging.INFO, "[DEPLOYMENT] iris: deploying -> running"),
    ]
