"""Tests for tunnel options and cluster configuration."""

import pytest
from pydantic import ValidationError

from quickportal.config import config
from quickportal.models.enums import CertReloadPolicy, LocalTransport
from quickportal.models.tunnel import ClusterConfig, TunnelAssignment, TunnelOptions


def make_assignment(**overrides) -> TunnelAssignment:
    data = {
        "id": "foo",
        "url": "https://foo.example.com",
        "port": 41000,
        "max_conn_count": 4,
        "remote_host": "broker.test",
    }
    data.update(overrides)
    return TunnelAssignment.model_validate(data)


class TestTunnelOptionsValidation:
    """Tests for option validation done before contacting the broker."""

    def test_minimal_options(self) -> None:
        options = TunnelOptions(port=8000)

        assert options.host == config.HOST
        assert options.subdomain is None
        assert options.local_transport == LocalTransport.PLAIN
        assert options.local_retry_delay == 1.0
        assert options.cert_reload == CertReloadPolicy.EACH_ATTEMPT

    @pytest.mark.parametrize("port", [0, -1, 70000, "8000", 80.5, True])
    def test_port_must_be_positive_integer(self, port) -> None:
        with pytest.raises(ValidationError):
            TunnelOptions(port=port)

    def test_cert_without_key_rejected(self) -> None:
        with pytest.raises(ValidationError, match="together"):
            TunnelOptions(port=8443, local_https=True, local_cert="cert.pem")

    def test_cert_options_require_https(self) -> None:
        with pytest.raises(ValidationError, match="local_https"):
            TunnelOptions(port=8443, local_cert="cert.pem", local_key="key.pem")

    def test_allow_invalid_cert_requires_https(self) -> None:
        with pytest.raises(ValidationError, match="local_https"):
            TunnelOptions(port=8443, allow_invalid_cert=True)


class TestLocalTransportSelection:
    """Tests for deriving the local transport from TLS flags."""

    def test_https_without_material_verifies(self) -> None:
        options = TunnelOptions(port=8443, local_https=True)
        assert options.local_transport == LocalTransport.TLS_VERIFY

    def test_explicit_material(self) -> None:
        options = TunnelOptions(
            port=8443, local_https=True, local_cert="c.pem", local_key="k.pem"
        )
        assert options.local_transport == LocalTransport.TLS_CERT

    def test_ca_only(self) -> None:
        options = TunnelOptions(port=8443, local_https=True, local_ca="ca.pem")
        assert options.local_transport == LocalTransport.TLS_CERT

    def test_allow_invalid_cert_wins(self) -> None:
        """Test disabling validation takes precedence over cert material."""
        options = TunnelOptions(
            port=8443,
            local_https=True,
            local_cert="c.pem",
            local_key="k.pem",
            allow_invalid_cert=True,
        )
        assert options.local_transport == LocalTransport.TLS_NO_VERIFY


class TestClusterConfig:
    """Tests for combining an assignment with caller options."""

    def test_from_assignment(self) -> None:
        assignment = make_assignment(ip="10.0.0.5")
        options = TunnelOptions(port=3000, local_alias="127.0.0.1")

        cluster = ClusterConfig.from_assignment(assignment, options)

        assert cluster.remote_address == "10.0.0.5"
        assert cluster.remote_port == 41000
        assert cluster.local_port == 3000
        assert cluster.local_host == "127.0.0.1"
        assert cluster.rewrite_host == "127.0.0.1"
        assert cluster.local_scheme == "http"

    def test_no_alias_means_no_rewrite(self) -> None:
        options = TunnelOptions(port=80)
        cluster = ClusterConfig.from_assignment(make_assignment(), options)

        assert cluster.remote_address == "broker.test"
        assert cluster.local_host == "localhost"
        assert cluster.rewrite_host is None

    def test_secured_local_target(self) -> None:
        options = TunnelOptions(port=8443, local_https=True, allow_invalid_cert=True)
        cluster = ClusterConfig.from_assignment(make_assignment(), options)

        assert cluster.is_secured
        assert cluster.local_scheme == "https"
        assert cluster.local_transport == LocalTransport.TLS_NO_VERIFY

    def test_cluster_config_is_immutable(self) -> None:
        cluster = ClusterConfig(remote_host="h", remote_port=1, local_port=2)

        with pytest.raises(AttributeError):
            cluster.local_port = 3
