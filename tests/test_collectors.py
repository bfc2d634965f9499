"""Tests for the directory collectors -- users, SKUs, roles, catalog and organization."""

import asyncio

import httpx
import pytest

from m365_license_lifecycle.collectors import (
    AdminRoleCollector,
    CatalogCollector,
    OrganizationCollector,
    SkuCollector,
    UserCollector,
    UserEnumerationError,
    normalize_user,
)
from m365_license_lifecycle.collectors.base import BaseCollector, CollectorResult


def _path(request):
    return request.url.path.replace("/v1.0/", "", 1)


class TestNormalizeUser:
    def test_plain_payload(self):
        user = normalize_user({
            "id": "1",
            "displayName": "Alice",
            "userPrincipalName": "alice@x.com",
            "mail": "alice@x.com",
            "accountEnabled": False,
            "userType": "Guest",
            "assignedLicenses": [{"skuId": "ABC"}, {"skuId": "abc"}, {"skuId": "DEF"}],
        })
        assert user.sku_ids == ("abc", "def")
        assert user.account_enabled is False
        assert user.user_type == "Guest"

    def test_additional_properties_bag(self):
        user = normalize_user({
            "id": "2",
            "additionalProperties": {
                "userPrincipalName": "bob@x.com",
                "assignedLicenses": [{"skuId": "XYZ"}],
            },
        })
        assert user.user_principal_name == "bob@x.com"
        assert user.sku_ids == ("xyz",)

    def test_missing_fields_defaulted(self):
        user = normalize_user({"id": "3", "userPrincipalName": "carol@x.com"})
        assert user.display_name == "carol@x.com"
        assert user.mail == ""
        assert user.sku_ids == ()
        assert user.account_enabled is True


class TestUserCollector:
    def test_enumerates_all_pages(self, engine_config, run_graph):
        def handler(request):
            if request.url.params.get("$skiptoken") == "p2":
                return httpx.Response(200, json={"value": [
                    {"id": "2", "userPrincipalName": "b@x.com", "assignedLicenses": []},
                ]})
            assert "assignedLicenses" in request.url.params["$select"]
            return httpx.Response(200, json={
                "value": [{"id": "1", "userPrincipalName": "a@x.com",
                           "assignedLicenses": [{"skuId": "s1"}]}],
                "@odata.nextLink": "https://graph.microsoft.com/v1.0/users?$skiptoken=p2",
            })

        result = run_graph(handler, lambda c: UserCollector(c, engine_config).execute())
        assert [u.user_principal_name for u in result.data["users"]] == ["a@x.com", "b@x.com"]

    def test_failure_is_fatal(self, engine_config, run_graph):
        def handler(request):
            return httpx.Response(403, json={"error": {"message": "Insufficient privileges"}})

        with pytest.raises(UserEnumerationError, match="Insufficient privileges"):
            run_graph(handler, lambda c: UserCollector(c, engine_config).execute())


class TestSkuCollector:
    def test_part_number_map(self, engine_config, run_graph):
        def handler(request):
            assert "$top" not in request.url.params
            return httpx.Response(200, json={"value": [
                {"skuId": "AAA-1", "skuPartNumber": "SPE_E3", "consumedUnits": 10,
                 "prepaidUnits": {"enabled": 25}},
                {"skuId": "", "skuPartNumber": "IGNORED"},
            ]})

        result = run_graph(handler, lambda c: SkuCollector(c, engine_config).execute())
        assert result.data["part_numbers"] == {"aaa-1": "SPE_E3"}
        assert result.data["subscriptions"][0]["enabledUnits"] == 25

    def test_permission_gap_degrades(self, engine_config, run_graph):
        def handler(request):
            return httpx.Response(403, json={"error": {"message": "Forbidden"}})

        result = run_graph(handler, lambda c: SkuCollector(c, engine_config).execute())
        assert result.data["part_numbers"] == {}
        assert any("Permission denied" in w for w in result.warnings)


class TestAdminRoleCollector:
    def test_members_keyed_by_id_and_upn(self, engine_config, run_graph):
        def handler(request):
            path = _path(request)
            if path == "directoryRoles":
                return httpx.Response(200, json={"value": [
                    {"id": "r1", "displayName": "Global Administrator"},
                    {"id": "r2", "displayName": "Exchange Administrator"},
                ]})
            if path == "directoryRoles/r1/members":
                return httpx.Response(200, json={"value": [
                    {"@odata.type": "#microsoft.graph.user", "id": "U1", "userPrincipalName": "Admin@x.com"},
                    {"@odata.type": "#microsoft.graph.servicePrincipal", "id": "sp1"},
                ]})
            if path == "directoryRoles/r2/members":
                return httpx.Response(200, json={"value": [
                    {"id": "u1", "userPrincipalName": "admin@x.com"},
                ]})
            return httpx.Response(404)

        result = run_graph(handler, lambda c: AdminRoleCollector(c, engine_config).execute())
        roles = result.data["roles"]
        assert roles["admin@x.com"] == ["Exchange Administrator", "Global Administrator"]
        assert roles["u1"] == roles["admin@x.com"]
        assert "sp1" not in roles

    def test_member_listing_failure_is_partial(self, engine_config, run_graph):
        def handler(request):
            path = _path(request)
            if path == "directoryRoles":
                return httpx.Response(200, json={"value": [{"id": "r1", "displayName": "Global Administrator"}]})
            return httpx.Response(403, json={"error": {"message": "Forbidden"}})

        result = run_graph(handler, lambda c: AdminRoleCollector(c, engine_config).execute())
        assert result.data["roles"] == {}
        assert result.warnings


class TestCatalogCollector:
    CSV = "Product_Display_Name,String_Id,GUID\nMicrosoft 365 E3,SPE_E3,05e9a617\n"

    def test_local_file(self, engine_config, tmp_path):
        path = tmp_path / "catalog.csv"
        path.write_text(self.CSV, encoding="utf-8")
        engine_config.catalog.local_path = str(path)
        result = asyncio.run(CatalogCollector(None, engine_config).execute())
        assert result.data["catalog"].friendly_name("SPE_E3") == "Microsoft 365 E3"

    def test_download(self, engine_config, run_graph):
        engine_config.catalog.download = True
        engine_config.catalog.url = "https://download.example.com/catalog.csv"

        def handler(request):
            assert request.url.host == "download.example.com"
            assert "Authorization" not in request.headers
            return httpx.Response(200, text=self.CSV)

        result = run_graph(handler, lambda c: CatalogCollector(c, engine_config).execute())
        assert len(result.data["catalog"]) == 1

    def test_download_failure_leaves_empty_catalog(self, engine_config, run_graph):
        engine_config.catalog.download = True

        def handler(request):
            return httpx.Response(500)

        result = run_graph(handler, lambda c: CatalogCollector(c, engine_config).execute())
        assert len(result.data["catalog"]) == 0
        assert any("raw SKU identifiers" in w for w in result.warnings)

    def test_disabled(self, engine_config):
        result = asyncio.run(CatalogCollector(None, engine_config).execute())
        assert result.metadata["skipped"]
        assert len(result.data["catalog"]) == 0


class TestOrganizationCollector:
    def test_default_domain(self, engine_config, run_graph):
        def handler(request):
            return httpx.Response(200, json={"value": [{
                "id": "tid",
                "displayName": "Contoso",
                "verifiedDomains": [
                    {"name": "contoso.onmicrosoft.com", "isDefault": False},
                    {"name": "contoso.com", "isDefault": True},
                ],
            }]})

        result = run_graph(handler, lambda c: OrganizationCollector(c, engine_config).execute())
        assert result.data["tenant"] == {
            "id": "tid", "displayName": "Contoso", "defaultDomain": "contoso.com",
        }


class TestBaseCollector:
    class _Broken(BaseCollector):
        name = "broken"

        async def collect(self, result):
            raise RuntimeError("kaboom")

    class _BrokenRequired(_Broken):
        required = True

    def test_optional_failure_becomes_warning(self, engine_config):
        result = asyncio.run(self._Broken(None, engine_config).execute())
        assert "kaboom" in result.warnings[0]
        assert result.metadata["duration_seconds"] >= 0

    def test_required_failure_propagates(self, engine_config):
        with pytest.raises(RuntimeError):
            asyncio.run(self._BrokenRequired(None, engine_config).execute())

    def test_result_to_dict_skips_objects(self):
        result = CollectorResult("x")
        result.add_data("names", ["a", "b"])
        result.add_data("lookup", object())
        assert result.to_dict()["data"] == {"names": ["a", "b"]}
        assert result.metadata["items_collected"] == 3
