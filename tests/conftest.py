from __future__ import annotations

import sys
from pathlib import Path
from typing import Dict, List, Optional

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from onetune.config import AppConfig
from onetune.services.auth import AuthenticationRequiredError
from onetune.services.graph import GraphAPIError
from onetune.services.models import DriveItem


@pytest.fixture()
def app_config(tmp_path: Path) -> AppConfig:
    return AppConfig.from_mapping(
        {
            "storage_root": "storage",
            "client_id": "00000000-test-client",
            "tenant": "common",
        },
        base_path=tmp_path,
        environ={},
    )


class FakeDrive:
    """In-memory stand-in for :class:`GraphClient`."""

    def __init__(self) -> None:
        self.children: Dict[Optional[str], List[DriveItem]] = {}
        self.items: Dict[str, DriveItem] = {}
        self.contents: Dict[str, bytes] = {}
        self.download_urls: Dict[str, str] = {}
        self.calls: List[tuple] = []
        self.require_login = False

    def add_item(self, item: DriveItem, *, folder: Optional[str] = None, content: bytes = b"") -> DriveItem:
        self.children.setdefault(folder, []).append(item)
        self.items[item.id] = item
        if content:
            self.contents[item.id] = content
        return item

    def _check_login(self) -> None:
        if self.require_login:
            raise AuthenticationRequiredError("Sign-in required")

    async def list_children(self, item_id: Optional[str] = None) -> List[DriveItem]:
        self.calls.append(("list_children", item_id))
        self._check_login()
        if item_id is not None and item_id not in self.children:
            raise GraphAPIError("Item not found", status_code=404)
        return list(self.children.get(item_id, []))

    async def get_item(self, item_id: str) -> DriveItem:
        self.calls.append(("get_item", item_id))
        self._check_login()
        try:
            return self.items[item_id]
        except KeyError:
            raise GraphAPIError("Item not found", status_code=404) from None

    async def get_content(self, item_id: str) -> bytes:
        self.calls.append(("get_content", item_id))
        self._check_login()
        return self.contents.get(item_id, b"")

    async def get_download_url(self, path: str) -> str:
        self.calls.append(("get_download_url", path))
        self._check_login()
        try:
            return self.download_urls[path]
        except KeyError:
            raise GraphAPIError(f"No download URL available for {path}", status_code=404) from None


class FakeAuthenticator:
    def __init__(self, *, account: Optional[str] = "listener@example.com") -> None:
        self.account = account
        self.signed_out = False
        self.completed: List[dict] = []

    def current_account(self) -> Optional[dict]:
        if self.account is None:
            return None
        return {"username": self.account}

    def begin_sign_in(self, redirect_uri: str) -> str:
        return f"https://login.example.test/authorize?redirect_uri={redirect_uri}"

    def complete_sign_in(self, query) -> dict:
        if query.get("state") != "expected":
            raise AuthenticationRequiredError("Unknown or expired sign-in attempt")
        self.completed.append(dict(query))
        return {"access_token": "token"}

    def sign_out(self, post_logout_redirect_uri: Optional[str] = None) -> str:
        self.signed_out = True
        self.account = None
        return "https://login.example.test/logout"

    def acquire_token(self) -> str:
        return "token"


@pytest.fixture()
def fake_drive() -> FakeDrive:
    return FakeDrive()


@pytest.fixture()
def fake_authenticator() -> FakeAuthenticator:
    return FakeAuthenticator()
