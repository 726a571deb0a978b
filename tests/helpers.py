from typing import Any, Dict, Iterable, List, Optional, Tuple

import httpx

from ocesync.exceptions import MediaDownloadError
from ocesync.host.registry import NodeRegistry

SERVER = "https://oce.example.com"
CHANNEL = "ch-token"


def date_pair(value: str) -> Dict[str, str]:
    return {"value": value, "timezone": "UTC"}


def rendition(name: str, kind: str, asset_id: str, file_name: str) -> Dict[str, Any]:
    return {
        "name": name,
        "type": kind,
        "formats": [
            {
                "format": "jpg",
                "links": [
                    {
                        "href": f"{SERVER}/content/published/api/v1.1/assets/{asset_id}/{name}/{file_name}?format=jpg&type={kind}",
                        "rel": "self",
                    }
                ],
            }
        ],
    }


def native_url(asset_id: str, file_name: str) -> str:
    return f"{SERVER}/content/published/api/v1.1/assets/{asset_id}/native/{file_name}"


def raw_digital_asset(
    asset_id: str,
    file_name: str = "photo.jpg",
    updated: str = "2022-01-01T00:00:00Z",
    renditions: Optional[List[Dict[str, Any]]] = None,
) -> Dict[str, Any]:
    if renditions is None:
        renditions = [
            rendition("Banner", "customrendition", asset_id, file_name),
            rendition("Thumbnail", "responsiveimage", asset_id, file_name),
        ]
    return {
        "id": asset_id,
        "type": "DigitalAsset",
        "typeCategory": "DigitalAssetType",
        "name": file_name,
        "updatedDate": date_pair(updated),
        "createdDate": date_pair("2021-06-01T00:00:00Z"),
        "links": [{"href": f"{SERVER}/items/{asset_id}", "rel": "self"}],
        "fields": {
            "native": {
                "links": [
                    {"href": native_url(asset_id, file_name), "rel": "self"},
                    {"href": f"{SERVER}/download/{asset_id}", "rel": "canonical"},
                ]
            },
            "renditions": renditions,
            "mimeType": "image/jpeg",
        },
    }


def raw_content_item(item_id: str, item_type: str = "Blog-Post") -> Dict[str, Any]:
    return {
        "id": item_id,
        "type": item_type,
        "typeCategory": "ContentType",
        "name": f"Item {item_id}",
        "updatedDate": date_pair("2022-02-02T10:00:00Z"),
        "createdDate": date_pair("2022-01-01T10:00:00Z"),
        "links": [],
        "fields": {
            "title": "Hello",
            "published_on": date_pair("2022-02-01T00:00:00Z"),
            "milestones": [date_pair("2022-03-01T00:00:00Z"), date_pair("2022-04-01T00:00:00Z")],
            "summary": None,
        },
    }


class FakeCache:
    def __init__(self, initial: Optional[Dict[str, Dict[str, Any]]] = None) -> None:
        self.data: Dict[str, Dict[str, Any]] = dict(initial or {})
        self.sets: List[str] = []

    async def get(self, key: str) -> Optional[Dict[str, Any]]:
        value = self.data.get(key)
        return dict(value) if value is not None else None

    async def set(self, key: str, value: Dict[str, Any]) -> None:
        self.sets.append(key)
        self.data[key] = dict(value)


class FakeFetcher:
    def __init__(self, registry: NodeRegistry, fail_urls: Iterable[str] = ()) -> None:
        self.registry = registry
        self.fail_urls = set(fail_urls)
        self.calls: List[Tuple[str, Dict[str, str], str]] = []

    async def fetch(self, url: str, *, headers: Dict[str, str], name: str) -> Dict[str, Any]:
        self.calls.append((url, headers, name))
        if url in self.fail_urls:
            raise MediaDownloadError(f"download failed for {url}", url=url)
        node = {
            "id": self.registry.mint_id(f"file-{url}"),
            "children": [],
            "parent": None,
            "internal": {"type": "File"},
            "url": url,
            "name": name,
        }
        self.registry.register(node)
        return node


def mock_client(responder: Any, headers: Optional[Dict[str, str]] = None) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(responder), headers=headers or {})


def patch_client_with_responder(obj: Any, responder: Any) -> None:
    # Patch the private _client factory to return an AsyncClient with MockTransport
    headers = obj.headers() if hasattr(obj, "headers") else {}

    def _client() -> httpx.AsyncClient:
        return mock_client(responder, headers)

    setattr(obj, "_client", _client)
