from __future__ import annotations

import asyncio
from typing import Callable, List

import httpx
import pytest

from onetune.services.auth import AuthenticationRequiredError
from onetune.services.graph import GraphAPIError, GraphClient


def _client(app_config, handler: Callable[[httpx.Request], httpx.Response]) -> GraphClient:
    return GraphClient(app_config, lambda: "secret-token", transport=httpx.MockTransport(handler))


def test_list_children_of_root_selects_projection_and_sends_token(app_config) -> None:
    seen: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(
            200,
            json={
                "value": [
                    {"id": "1", "name": "Music", "folder": {"childCount": 2}, "parentReference": {"id": "root"}},
                    {"id": "2", "name": "mix.m3u", "file": {}, "size": 120, "parentReference": {"id": "root", "path": "/drive/root:"}},
                ]
            },
        )

    items = asyncio.run(_client(app_config, handler).list_children())

    request = seen[0]
    assert request.url.path == "/v1.0/me/drive/root/children"
    assert request.url.params["$select"] == "id,name,folder,file,size,parentReference"
    assert request.headers["Authorization"] == "Bearer secret-token"
    assert [item.name for item in items] == ["Music", "mix.m3u"]
    assert items[0].is_folder and not items[0].is_file
    assert items[1].is_playlist
    assert items[1].size == 120
    assert items[1].parent_path == "/drive/root:"


def test_list_children_follows_next_link(app_config) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.params.get("$skiptoken") == "page2":
            return httpx.Response(200, json={"value": [{"id": "b", "name": "B", "folder": {}}]})
        return httpx.Response(
            200,
            json={
                "value": [{"id": "a", "name": "A", "folder": {}}],
                "@odata.nextLink": "https://graph.microsoft.com/v1.0/me/drive/items/f1/children?$skiptoken=page2",
            },
        )

    items = asyncio.run(_client(app_config, handler).list_children("f1"))

    assert [item.id for item in items] == ["a", "b"]


def test_get_content_follows_redirect(app_config) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "graph.microsoft.com":
            return httpx.Response(302, headers={"Location": "https://files.example/raw/mix.m3u"})
        return httpx.Response(200, content=b"Song.mp3\n")

    content = asyncio.run(_client(app_config, handler).get_content("item-9"))

    assert content == b"Song.mp3\n"


def test_get_download_url_uses_item_by_path_endpoint(app_config) -> None:
    seen: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(
            200,
            json={"id": "x", "name": "My Song.mp3", "@microsoft.graph.downloadUrl": "https://dl.example/t"},
        )

    url = asyncio.run(_client(app_config, handler).get_download_url("/drive/root:/Music/My Song.mp3"))

    assert url == "https://dl.example/t"
    assert seen[0].url.raw_path.decode("ascii") == "/v1.0/me/drive/root:/Music/My%20Song.mp3"


def test_missing_download_url_is_an_api_error(app_config) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"id": "x", "name": "folder", "folder": {}})

    with pytest.raises(GraphAPIError):
        asyncio.run(_client(app_config, handler).get_download_url("/drive/root:/Music"))


def test_error_response_uses_graph_message(app_config) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404, json={"error": {"code": "itemNotFound", "message": "The resource could not be found."}})

    with pytest.raises(GraphAPIError) as excinfo:
        asyncio.run(_client(app_config, handler).get_item("missing"))

    assert excinfo.value.status_code == 404
    assert str(excinfo.value) == "The resource could not be found."


def test_unauthorized_response_requires_sign_in(app_config) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(401, json={"error": {"code": "InvalidAuthenticationToken", "message": "expired"}})

    with pytest.raises(AuthenticationRequiredError):
        asyncio.run(_client(app_config, handler).list_children())


def test_transport_failure_is_an_api_error(app_config) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("offline", request=request)

    with pytest.raises(GraphAPIError) as excinfo:
        asyncio.run(_client(app_config, handler).list_children())

    assert excinfo.value.status_code is None


def test_token_provider_failure_propagates(app_config) -> None:
    def refuse() -> str:
        raise AuthenticationRequiredError("Sign-in required")

    client = GraphClient(app_config, refuse, transport=httpx.MockTransport(lambda request: httpx.Response(200)))

    with pytest.raises(AuthenticationRequiredError):
        asyncio.run(client.list_children())
