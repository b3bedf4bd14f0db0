"""Tests for the router configuration codec."""

from __future__ import annotations

import json

import pytest

from site_upgrade.models import SiteMetadata
from site_upgrade.site_config import ROUTER_CONFIG_KEY, RouterConfig, SiteConfigError

from conftest import router_config_map


class TestRouterConfig:
    def test_reads_site_metadata(self):
        config = RouterConfig.from_config_map(router_config_map("0.4.2"))
        assert config.site_metadata() == SiteMetadata(id="site-1", version="0.4.2")

    def test_round_trip_through_config_map(self):
        config_map = router_config_map("0.4.2")
        config = RouterConfig.from_config_map(config_map)
        config.set_site_metadata(SiteMetadata(id="site-1", version="0.6.0"))
        config.write_to_config_map(config_map)

        assert RouterConfig.from_config_map(config_map).site_metadata().version == "0.6.0"
        entities = json.loads(config_map["data"][ROUTER_CONFIG_KEY])
        assert [e[0] for e in entities] == ["router", "listener", "log"]

    def test_missing_metadata_attribute(self):
        config = RouterConfig([["router", {"id": "r"}]])
        assert config.site_metadata() == SiteMetadata()

    @pytest.mark.parametrize(
        "data",
        [{}, {ROUTER_CONFIG_KEY: "not json"}, {ROUTER_CONFIG_KEY: '{"router": {}}'}, {ROUTER_CONFIG_KEY: '[["router"]]'}],
    )
    def test_malformed_payload(self, data):
        with pytest.raises(SiteConfigError):
            RouterConfig.from_config_map({"metadata": {"name": "skupper-internal"}, "data": data})

    def test_no_router_entity(self):
        with pytest.raises(SiteConfigError):
            RouterConfig([["log", {"module": "DEFAULT"}]]).site_metadata()

    def test_malformed_metadata(self):
        with pytest.raises(SiteConfigError):
            RouterConfig([["router", {"metadata": "{broken"}]]).site_metadata()


class TestLogLevels:
    def test_existing_levels(self):
        config = RouterConfig.from_config_map(router_config_map("0.6.0"))
        assert config.log_levels() == {"DEFAULT": "info+"}

    def test_change_add_and_remove(self):
        config = RouterConfig.from_config_map(router_config_map("0.6.0"))
        assert not config.set_log_level("DEFAULT", "info+")
        assert config.set_log_level("DEFAULT", "debug+")
        assert config.set_log_level("ROUTER_CORE", "trace+")
        assert config.log_levels() == {"DEFAULT": "debug+", "ROUTER_CORE": "trace+"}
        assert config.set_log_level("ROUTER_CORE", "")
        assert not config.set_log_level("ROUTER_CORE", "")
        assert config.log_levels() == {"DEFAULT": "debug+"}
