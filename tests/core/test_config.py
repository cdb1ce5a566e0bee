import pytest

from tcp_server.config import (
    DEFAULT_BACKLOG,
    ServerConfig,
)


def test_defaults():
    config = ServerConfig()
    assert config.exclusive is True
    assert config.ipv6_only is False
    assert config.backlog == DEFAULT_BACKLOG == 511
    assert config.idle_timeout is None
    assert config.keepalive is False
    assert config.no_delay is True


@pytest.mark.parametrize("kwargs", [{"backlog": -1}, {"idle_timeout": -0.5}])
def test_invalid_values(kwargs):
    with pytest.raises(ValueError):
        ServerConfig(**kwargs)


def test_zero_idle_timeout_is_allowed():
    assert ServerConfig(idle_timeout=0).idle_timeout == 0
