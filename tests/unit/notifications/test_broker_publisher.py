import json
from uuid import uuid4

import pytest
from botocore.exceptions import ClientError

from conftest import FIFO_TOPIC_ARN, TOPIC_ARN, make_payload
from src.notifications.domain.envelope import decode_envelope
from src.notifications.domain.exceptions import EnvelopeDecodeError
from src.notifications.infrastructure.broker_publisher import SnsBrokerPublisher, build_message_attributes
from src.shared.config import BrokerSettings


def _client_error(code: str) -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": code}}, "DeleteEndpoint")


async def test_non_fifo_publishes_payload_unchanged(sns_client, store):
    recipients = [uuid4(), uuid4(), uuid4()]
    payload = make_payload(recipients, correlation_id="corr-7")
    event = store.add(payload)
    publisher = SnsBrokerPublisher(sns_client, BrokerSettings(topic_arn=TOPIC_ARN))

    await publisher.publish(event, decode_envelope(payload))

    assert len(sns_client.calls) == 1
    call = sns_client.calls[0]
    assert call["TopicArn"] == TOPIC_ARN
    assert call["Message"] == payload
    assert "MessageGroupId" not in call
    assert call["MessageAttributes"]["correlation_id"] == {"DataType": "String", "StringValue": "corr-7"}


async def test_fifo_fans_out_one_message_per_recipient(sns_client, store):
    recipients = [uuid4(), uuid4(), uuid4()]
    payload = make_payload(recipients, custom_field={"keep": True})
    event = store.add(payload)
    publisher = SnsBrokerPublisher(sns_client, BrokerSettings(topic_arn=FIFO_TOPIC_ARN, fifo=True))

    await publisher.publish(event, decode_envelope(payload))

    assert len(sns_client.calls) == 3
    assert [c["MessageGroupId"] for c in sns_client.calls] == [f"user-{r}" for r in recipients]
    dedup_ids = [c["MessageDeduplicationId"] for c in sns_client.calls]
    assert dedup_ids == [f"{event.id.hex}-{r.hex}" for r in recipients]
    assert len(set(dedup_ids)) == 3

    for call, recipient in zip(sns_client.calls, recipients):
        message = json.loads(call["Message"])
        assert message["recipients"] == [str(recipient)]
        # Fields unknown to the envelope model survive the per-recipient copy
        assert message["custom_field"] == {"keep": True}
        assert message["title"] == "Invoice paid"


async def test_fifo_failure_on_any_recipient_fails_the_record(sns_client, store):
    payload = make_payload([uuid4(), uuid4()])
    event = store.add(payload)
    sns_client.error = RuntimeError("throttled")
    sns_client.fail_after = 1
    publisher = SnsBrokerPublisher(sns_client, BrokerSettings(topic_arn=FIFO_TOPIC_ARN, fifo=True))

    with pytest.raises(RuntimeError):
        await publisher.publish(event, decode_envelope(payload))
    assert len(sns_client.calls) == 1


def test_fifo_requires_object_payload(sns_client, store):
    payload = make_payload([uuid4()])
    envelope = decode_envelope(payload)
    event = store.add("[1, 2]")
    publisher = SnsBrokerPublisher(sns_client, BrokerSettings(topic_arn=FIFO_TOPIC_ARN, fifo=True))

    with pytest.raises(EnvelopeDecodeError):
        list(publisher.build_fifo_requests(event, envelope, build_message_attributes(envelope)))


async def test_disabled_publisher_skips(sns_client, store):
    payload = make_payload([uuid4()])
    publisher = SnsBrokerPublisher(sns_client, BrokerSettings())

    assert not publisher.is_enabled
    assert not publisher.should_handle(decode_envelope(payload))
    await publisher.publish(store.add(payload), decode_envelope(payload))
    assert sns_client.calls == []


def test_blank_correlation_id_is_not_an_attribute():
    envelope = decode_envelope(make_payload([uuid4()], correlation_id="   "))
    attributes = build_message_attributes(envelope)
    assert set(attributes) == {"event_type"}
    assert attributes["event_type"] == {"DataType": "String", "StringValue": "invoice.paid"}


async def test_delete_endpoint(sns_client):
    publisher = SnsBrokerPublisher(sns_client, BrokerSettings(topic_arn=TOPIC_ARN))
    assert await publisher.delete_endpoint("arn:aws:sns:endpoint/1") is True
    assert sns_client.deleted == ["arn:aws:sns:endpoint/1"]


async def test_delete_endpoint_not_found_is_benign(sns_client):
    sns_client.delete_error = _client_error("NotFound")
    publisher = SnsBrokerPublisher(sns_client, BrokerSettings(topic_arn=TOPIC_ARN))
    assert await publisher.delete_endpoint("arn:aws:sns:endpoint/gone") is False


async def test_delete_endpoint_other_errors_propagate(sns_client):
    sns_client.delete_error = _client_error("AuthorizationError")
    publisher = SnsBrokerPublisher(sns_client, BrokerSettings(topic_arn=TOPIC_ARN))
    with pytest.raises(ClientError):
        await publisher.delete_endpoint("arn:aws:sns:endpoint/1")
