"""
MQTT Cloud Service Tests
========================

Cloud service sobre paho-mqtt, con paho.Client mockeado.

Invariantes testeadas:
1. Topic completo: <prefix>/<app_id>/<app_topic>
2. Sin conexión: new_cloud_client y publish fallan explícitamente
3. rc != success → CloudPublishError
4. Cliente liberado no publica
5. Callbacks de paho llegan a los listeners; un listener que falla no
   rompe el dispatch
"""
from types import SimpleNamespace
from unittest.mock import Mock, patch

import paho.mqtt.client as mqtt
import pytest

from tempsensor.cloud import (
    CloudClientListener,
    CloudConnectionError,
    CloudPublishError,
    MqttCloudService,
)


@pytest.fixture
def service():
    with patch("tempsensor.cloud.mqtt.mqtt.Client") as client_cls:
        svc = MqttCloudService(broker_host="localhost", topic_prefix="site")
        svc.mock_client = client_cls.return_value
        svc.mock_client.publish.return_value = SimpleNamespace(rc=mqtt.MQTT_ERR_SUCCESS, mid=7)
        yield svc


def connect(svc):
    svc._on_connect(svc.mock_client, None, None, Mock(is_failure=False))


@pytest.mark.unit
@pytest.mark.mqtt
class TestTopics:

    def test_full_topic(self, service):
        assert service.full_topic("TemperatureSensor", "data") == "site/TemperatureSensor/data"
        assert service.full_topic("TemperatureSensor", "/a/b/") == "site/TemperatureSensor/a/b"

    def test_full_topic_without_prefix(self):
        with patch("tempsensor.cloud.mqtt.mqtt.Client"):
            svc = MqttCloudService(broker_host="localhost", topic_prefix="")

        assert svc.full_topic("App", "data") == "App/data"


@pytest.mark.unit
@pytest.mark.mqtt
class TestCloudClientLifecycle:

    def test_new_client_requires_connection(self, service):
        with pytest.raises(CloudConnectionError):
            service.new_cloud_client("TemperatureSensor")

    def test_duplicate_app_id_rejected(self, service):
        connect(service)
        service.new_cloud_client("TemperatureSensor")

        with pytest.raises(CloudConnectionError):
            service.new_cloud_client("TemperatureSensor")

    def test_release_frees_app_id(self, service):
        connect(service)
        client = service.new_cloud_client("TemperatureSensor")

        client.release()

        assert client.released
        assert service.new_cloud_client("TemperatureSensor") is not client

    def test_connect_failure_returns_false(self, service):
        service.mock_client.connect.side_effect = OSError("refused")

        assert service.connect(timeout=0.1) is False


@pytest.mark.unit
@pytest.mark.mqtt
class TestPublish:

    def test_publish_uses_full_topic(self, service):
        connect(service)
        client = service.new_cloud_client("TemperatureSensor")

        mid = client.publish("data", b"Temperature(28-a):1.00C", 1, True, 1)

        assert mid == 7
        service.mock_client.publish.assert_called_once_with(
            "site/TemperatureSensor/data", b"Temperature(28-a):1.00C", qos=1, retain=True
        )

    def test_publish_not_connected_raises(self, service):
        connect(service)
        client = service.new_cloud_client("TemperatureSensor")
        service._on_disconnect(service.mock_client, None, None, Mock(), None)

        with pytest.raises(CloudPublishError):
            client.publish("data", b"x", 0, False, 1)

        service.mock_client.publish.assert_not_called()

    def test_publish_error_rc_raises(self, service):
        connect(service)
        client = service.new_cloud_client("TemperatureSensor")
        service.mock_client.publish.return_value = SimpleNamespace(rc=mqtt.MQTT_ERR_NO_CONN, mid=0)

        with pytest.raises(CloudPublishError) as exc_info:
            client.publish("data", b"x", 0, False, 1)

        assert exc_info.value.rc == mqtt.MQTT_ERR_NO_CONN
        assert exc_info.value.topic == "site/TemperatureSensor/data"

    def test_released_client_cannot_publish(self, service):
        connect(service)
        client = service.new_cloud_client("TemperatureSensor")
        client.release()

        with pytest.raises(CloudPublishError):
            client.publish("data", b"x", 0, False, 1)


@pytest.mark.unit
@pytest.mark.mqtt
class TestListenerDispatch:

    def make_client_with_listener(self, service):
        connect(service)
        client = service.new_cloud_client("TemperatureSensor")
        listener = Mock(spec=CloudClientListener)
        client.add_cloud_client_listener(listener)
        return client, listener

    def test_connection_events(self, service):
        client, listener = self.make_client_with_listener(service)

        service._on_disconnect(service.mock_client, None, None, Mock(), None)
        connect(service)

        listener.on_connection_lost.assert_called_once_with()
        listener.on_connection_established.assert_called_once_with()

    def test_publish_ack_qos1_published_and_confirmed(self, service):
        client, listener = self.make_client_with_listener(service)
        client.publish("data", b"x", 1, False, 1)

        service._on_publish(service.mock_client, None, 7, Mock(), None)

        listener.on_message_published.assert_called_once_with(7, "data")
        listener.on_message_confirmed.assert_called_once_with(7, "data")

    def test_publish_ack_qos0_only_published(self, service):
        client, listener = self.make_client_with_listener(service)
        client.publish("data", b"x", 0, False, 1)

        service._on_publish(service.mock_client, None, 7, Mock(), None)

        listener.on_message_published.assert_called_once_with(7, "data")
        listener.on_message_confirmed.assert_not_called()

    def test_inbound_message_routed_by_app_id(self, service):
        client, listener = self.make_client_with_listener(service)
        msg = SimpleNamespace(topic="site/TemperatureSensor/cmd/x", payload=b"hi", qos=1, retain=False)

        service._on_message(service.mock_client, None, msg)
        service._on_message(service.mock_client, None, SimpleNamespace(topic="other/x", payload=b"", qos=0, retain=False))

        listener.on_message_arrived.assert_called_once_with("tempsensor", "cmd/x", b"hi", 1, False)

    def test_failing_listener_does_not_break_dispatch(self, service, caplog):
        client, listener = self.make_client_with_listener(service)
        listener.on_connection_lost.side_effect = RuntimeError("listener bug")
        second = Mock(spec=CloudClientListener)
        client.add_cloud_client_listener(second)

        with caplog.at_level('ERROR'):
            service._on_disconnect(service.mock_client, None, None, Mock(), None)

        second.on_connection_lost.assert_called_once_with()
        assert any("listener bug" in record.message for record in caplog.records)

    def test_removed_listener_not_called(self, service):
        client, listener = self.make_client_with_listener(service)
        client.remove_cloud_client_listener(listener)

        service._on_disconnect(service.mock_client, None, None, Mock(), None)

        listener.on_connection_lost.assert_not_called()
