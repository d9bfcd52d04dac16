from __future__ import annotations

import pytest

from saas_connectors.core.errors import ErrorTag, has_tag
from saas_connectors.core.registry import ProviderRegistry, ProviderStatus, RegistryLoadError, load_default_registry

CATALOGUE = """
- id: example
  name: Example CRM
  base_url: https://{{workspace}}.example.com/api
  modules:
    marketing: https://marketing.example.com
  capabilities: [read, write]
  status: beta
"""


def test_default_catalogue_lists_every_adapter():
    registry = load_default_registry()

    for provider_id in ("salesforce", "hubspot", "intercom", "dynamicscrm", "gitlab", "pipedrive", "getresponse", "quickbooks", "netsuite"):
        assert provider_id in registry
    assert registry.require("salesforce").modules["pardot"] == "https://pi.pardot.com"


def test_resolve_base_url_substitutes_workspace():
    descriptor = ProviderRegistry.from_text(CATALOGUE).require("example")

    assert descriptor.requires_workspace is True
    assert descriptor.resolve_base_url(workspace="acme") == "https://acme.example.com/api"
    assert descriptor.resolve_base_url("marketing") == "https://marketing.example.com"
    assert descriptor.supports("write")
    assert descriptor.status is ProviderStatus.BETA


def test_missing_workspace_and_unknown_module():
    descriptor = ProviderRegistry.from_text(CATALOGUE).require("example")

    with pytest.raises(Exception) as missing:
        descriptor.resolve_base_url()
    with pytest.raises(Exception) as unknown:
        descriptor.resolve_base_url("sales", "acme")

    assert has_tag(missing.value, ErrorTag.MISSING_EXPECTED_VALUES)
    assert has_tag(unknown.value, ErrorTag.NOT_IMPLEMENTED)


def test_unknown_provider_is_not_implemented():
    with pytest.raises(Exception) as excinfo:
        ProviderRegistry.from_text(CATALOGUE).require("zoho")

    assert has_tag(excinfo.value, ErrorTag.NOT_IMPLEMENTED)


@pytest.mark.parametrize(
    "text",
    [
        "id: not-a-list",
        "- name: Missing id and url",
        "- id: bad\n  base_url: ftp://example.com",
        "- id: bad\n  base_url: https://example.com\n  status: retired",
        "- [unclosed",
    ],
)
def test_invalid_catalogues(text):
    with pytest.raises(RegistryLoadError):
        ProviderRegistry.from_text(text)


def test_list_filters_by_status():
    registry = ProviderRegistry.from_text(CATALOGUE)

    assert [item.provider_id for item in registry.list(status=ProviderStatus.BETA)] == ["example"]
    assert registry.list(status=ProviderStatus.DEPRECATED) == []


def test_from_yaml_reads_file(tmp_path):
    path = tmp_path / "providers.yaml"
    path.write_text(CATALOGUE, encoding="utf-8")

    assert "example" in ProviderRegistry.from_yaml(path)
    with pytest.raises(RegistryLoadError):
        ProviderRegistry.from_yaml(tmp_path / "missing.yaml")
