"""
Import smoke tests for every package module.
"""
import importlib

import pytest


@pytest.mark.parametrize("module", [
    "translation_relay.bot.client",
    "translation_relay.cli.main",
    "translation_relay.config.loader",
    "translation_relay.core.message_filter",
    "translation_relay.core.planner",
    "translation_relay.core.quota",
    "translation_relay.core.relay",
    "translation_relay.core.render",
    "translation_relay.providers",
    "translation_relay.storage.repository",
    "translation_relay.storage.settings",
])
def test_module_imports(module):
    assert importlib.import_module(module) is not None


def test_gateway_exported():
    from translation_relay.providers import ProviderGateway
    assert ProviderGateway.__name__ == "ProviderGateway"
