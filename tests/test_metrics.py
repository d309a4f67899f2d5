from unittest.mock import AsyncMock, Mock, patch

import pytest

from symbol.signon.app.metrics import (
    MetricsClient,
    NoOpMetricsClient,
    StatsdMetricsClient,
    create_metrics_client,
)


@pytest.fixture
def statsd():
    mock = Mock()
    mock.connect = AsyncMock()
    mock.close = AsyncMock()
    return mock


def test_metrics_client_is_abstract():
    with pytest.raises(TypeError):
        MetricsClient()


async def test_noop_client_accepts_everything():
    client = NoOpMetricsClient()
    client.increment("signon.oauth.token.count", 1, {"result": "success"})
    client.gauge("signon.health.error_score", 3)
    client.timer("signon.server.request.time", 0.01)
    await client.connect()
    await client.close()


def test_statsd_client_passes_tags(statsd):
    client = StatsdMetricsClient(statsd)

    client.increment("signon.oauth.token.count", 2, {"result": "invalid_grant"})
    client.gauge("signon.health.error_score", 5)
    client.timer("signon.server.request.time", 1.5, {"path": "/oauth/token"})

    statsd.increment.assert_called_once_with(
        "signon.oauth.token.count", 2, tag_dict={"result": "invalid_grant"}
    )
    statsd.gauge.assert_called_once_with(
        "signon.health.error_score", 5, tag_dict={}
    )
    statsd.timer.assert_called_once_with(
        "signon.server.request.time", 1.5, tag_dict={"path": "/oauth/token"}
    )


async def test_statsd_client_lifecycle(statsd):
    client = StatsdMetricsClient(statsd)

    await client.connect()
    statsd.close.side_effect = OSError("socket closed")
    await client.close()

    statsd.connect.assert_awaited_once()
    statsd.close.assert_awaited_once()


@patch("symbol.signon.app.metrics.TelegrafStatsdClient")
def test_factory_builds_statsd_client(statsd_class):
    client = create_metrics_client("Telegraf", host="telegraf", port=8125, debug=True)

    assert isinstance(client, StatsdMetricsClient)
    assert client.client is statsd_class.return_value
    statsd_class.assert_called_once_with(host="telegraf", port=8125, debug=True)


def test_factory_backends():
    assert isinstance(create_metrics_client("none"), NoOpMetricsClient)

    with pytest.raises(ValueError, match="Invalid metrics backend"):
        create_metrics_client("prometheus")
