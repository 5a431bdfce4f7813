"""Unit tests for authz/authority.py: HTTP and static authority clients."""
from __future__ import annotations

import io
import json
import socket
import urllib.error
from unittest.mock import MagicMock, patch

import pytest

from gcp_emulator_control_plane.authz.authority import (
    AuthorityClient,
    ConnectivityError,
    HttpAuthorityClient,
    StaticAuthorityClient,
)

_URLOPEN = "urllib.request.urlopen"

ALICE = "user:alice@example.com"
RESOURCE = "projects/test-project/secrets/db-password"
PERMISSION = "secretmanager.secrets.get"


def _response(payload: object) -> MagicMock:
    resp = MagicMock()
    resp.read.return_value = json.dumps(payload).encode("utf-8")
    resp.__enter__.return_value = resp
    resp.__exit__.return_value = False
    return resp


def _http_error(code: int) -> urllib.error.HTTPError:
    return urllib.error.HTTPError(
        "http://localhost:8080", code, "error", {}, io.BytesIO(b"")  # type: ignore[arg-type]
    )


@pytest.fixture()
def client() -> HttpAuthorityClient:
    return HttpAuthorityClient("http://localhost:8080/", timeout_seconds=2.0)


class TestHttpAuthorityClientRequests:
    def test_request_shape(self, client: HttpAuthorityClient) -> None:
        with patch(_URLOPEN, return_value=_response({"permissions": [PERMISSION]})) as urlopen:
            client.check_permission(ALICE, RESOURCE, PERMISSION)

        req = urlopen.call_args.args[0]
        assert req.full_url == (
            "http://localhost:8080/v1/projects/test-project/secrets/db-password:testIamPermissions"
        )
        assert req.get_method() == "POST"
        assert json.loads(req.data) == {"permissions": [PERMISSION]}
        headers = {k.lower(): v for k, v in req.header_items()}
        assert headers["x-emulator-principal"] == ALICE

    def test_default_timeout(self, client: HttpAuthorityClient) -> None:
        with patch(_URLOPEN, return_value=_response({"permissions": []})) as urlopen:
            client.check_permission(ALICE, RESOURCE, PERMISSION)
        assert urlopen.call_args.kwargs["timeout"] == 2.0

    def test_per_call_timeout(self, client: HttpAuthorityClient) -> None:
        with patch(_URLOPEN, return_value=_response({"permissions": []})) as urlopen:
            client.check_permission(ALICE, RESOURCE, PERMISSION, timeout=0.3)
        assert urlopen.call_args.kwargs["timeout"] == 0.3

    def test_base_url_normalised(self, client: HttpAuthorityClient) -> None:
        assert client.base_url == "http://localhost:8080"


class TestHttpAuthorityClientDecisions:
    def test_granted(self, client: HttpAuthorityClient) -> None:
        with patch(_URLOPEN, return_value=_response({"permissions": [PERMISSION]})):
            assert client.check_permission(ALICE, RESOURCE, PERMISSION) is True

    def test_not_in_list_is_denied(self, client: HttpAuthorityClient) -> None:
        with patch(_URLOPEN, return_value=_response({"permissions": ["other.perm.get"]})):
            assert client.check_permission(ALICE, RESOURCE, PERMISSION) is False

    def test_empty_object_is_denied(self, client: HttpAuthorityClient) -> None:
        with patch(_URLOPEN, return_value=_response({})):
            assert client.check_permission(ALICE, RESOURCE, PERMISSION) is False

    def test_http_403_is_denied(self, client: HttpAuthorityClient) -> None:
        with patch(_URLOPEN, side_effect=_http_error(403)):
            assert client.check_permission(ALICE, RESOURCE, PERMISSION) is False


class TestHttpAuthorityClientFailures:
    def test_http_500_is_connectivity_error(self, client: HttpAuthorityClient) -> None:
        with patch(_URLOPEN, side_effect=_http_error(500)):
            with pytest.raises(ConnectivityError, match="HTTP 500"):
                client.check_permission(ALICE, RESOURCE, PERMISSION)

    def test_refused_is_connectivity_error(self, client: HttpAuthorityClient) -> None:
        refused = urllib.error.URLError(ConnectionRefusedError(111, "Connection refused"))
        with patch(_URLOPEN, side_effect=refused):
            with pytest.raises(ConnectivityError) as exc_info:
                client.check_permission(ALICE, RESOURCE, PERMISSION)
        assert exc_info.value.cause is refused

    def test_timeout_is_connectivity_error(self, client: HttpAuthorityClient) -> None:
        with patch(_URLOPEN, side_effect=socket.timeout("timed out")):
            with pytest.raises(ConnectivityError):
                client.check_permission(ALICE, RESOURCE, PERMISSION)

    def test_malformed_json_is_connectivity_error(self, client: HttpAuthorityClient) -> None:
        resp = _response({})
        resp.read.return_value = b"<html>oops</html>"
        with patch(_URLOPEN, return_value=resp):
            with pytest.raises(ConnectivityError, match="malformed"):
                client.check_permission(ALICE, RESOURCE, PERMISSION)

    def test_non_list_permissions_is_connectivity_error(self, client: HttpAuthorityClient) -> None:
        with patch(_URLOPEN, return_value=_response({"permissions": "all"})):
            with pytest.raises(ConnectivityError):
                client.check_permission(ALICE, RESOURCE, PERMISSION)

    def test_connectivity_error_is_connection_error(self) -> None:
        assert issubclass(ConnectivityError, ConnectionError)


class TestStaticAuthorityClient:
    def test_exact_grant(self) -> None:
        client = StaticAuthorityClient([(ALICE, RESOURCE, PERMISSION)])
        assert client.check_permission(ALICE, RESOURCE, PERMISSION) is True
        assert client.check_permission(ALICE, RESOURCE, "secretmanager.secrets.delete") is False

    def test_wildcard_resource(self) -> None:
        client = StaticAuthorityClient([(ALICE, "*", PERMISSION)])
        assert client.check_permission(ALICE, "projects/other/secrets/x", PERMISSION) is True

    def test_satisfies_protocol(self) -> None:
        assert isinstance(StaticAuthorityClient(), AuthorityClient)
        assert isinstance(HttpAuthorityClient("http://localhost:8080"), AuthorityClient)
