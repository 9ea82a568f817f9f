"""Tests für zapstore.catalog.social – Trust-Graph und Profil-Verzeichnis."""

from __future__ import annotations

import json
from collections.abc import Callable
from typing import Any

import httpx
import pytest
from coincurve import PrivateKey

from zapstore.catalog.events import KIND_PROFILE, NostrEvent
from zapstore.catalog.social import ProfileDirectory, SocialGraphClient, parse_profile
from zapstore.core.errors import ValidationFailure


def _hex(key: PrivateKey) -> str:
    return key.public_key_xonly.format().hex()


class TestParseProfile:
    def _event(self, content: str) -> NostrEvent:
        return NostrEvent(id="0" * 64, pubkey="a" * 64, created_at=1, kind=KIND_PROFILE, content=content)

    def test_fields(self) -> None:
        profile = parse_profile(self._event(json.dumps({"name": "alice", "display_name": "Alice", "nip05": "a@b.c"})))
        assert profile.name == "alice"
        assert profile.label == "Alice"
        assert profile.nip05 == "a@b.c"

    def test_camel_case_display_name(self) -> None:
        assert parse_profile(self._event('{"displayName": "Bob"}')).display_name == "Bob"

    @pytest.mark.parametrize("content", ["", "not json", "[1, 2]", '{"name": 5}'])
    def test_garbage_gives_empty_profile(self, content: str) -> None:
        profile = parse_profile(self._event(content))
        assert profile.label == ""
        assert profile.pubkey == "a" * 64


class TestSocialGraphClient:
    @pytest.mark.asyncio
    async def test_returns_mapping(self, network: Any) -> None:
        network.fwf = {"npub1abc": {"w": 1}}
        async with network.client() as client:
            result = await SocialGraphClient("https://graph.test/", client).follows_of_follows("npub1u", "npub1s")
        assert result == {"npub1abc": {"w": 1}}
        assert str(network.requests[0].url) == "https://graph.test/api/fwf/npub1u/npub1s"

    @pytest.mark.asyncio
    async def test_non_object_rejected(self) -> None:
        transport = httpx.MockTransport(lambda request: httpx.Response(200, json=["x"]))
        async with httpx.AsyncClient(transport=transport) as client:
            with pytest.raises(ValidationFailure):
                await SocialGraphClient("https://graph.test", client).follows_of_follows("a", "b")

    @pytest.mark.asyncio
    async def test_http_error_propagates(self) -> None:
        transport = httpx.MockTransport(lambda request: httpx.Response(500))
        async with httpx.AsyncClient(transport=transport) as client:
            with pytest.raises(httpx.HTTPStatusError):
                await SocialGraphClient("https://graph.test", client).follows_of_follows("a", "b")


class TestProfileDirectory:
    @pytest.mark.asyncio
    async def test_newest_profile_wins(self, network: Any, friend_key: PrivateKey) -> None:
        network.publish_profile(friend_key, "old", created_at=100)
        network.publish_profile(friend_key, "new", created_at=200)
        async with network.client() as client:
            profiles = await ProfileDirectory(["https://r1.test", "https://r2.test"], client).fetch([_hex(friend_key)])
        assert profiles[_hex(friend_key)].name == "new"
        assert len(network.requests) == 2

    @pytest.mark.asyncio
    async def test_missing_identity_absent(self, network: Any, friend_key: PrivateKey) -> None:
        async with network.client() as client:
            profiles = await ProfileDirectory(["https://r1.test"], client).fetch([_hex(friend_key)])
        assert profiles == {}

    @pytest.mark.asyncio
    async def test_empty_request_skips_network(self, network: Any) -> None:
        async with network.client() as client:
            assert await ProfileDirectory(["https://r1.test"], client).fetch([]) == {}
        assert network.requests == []

    @pytest.mark.asyncio
    async def test_failing_relay_degrades(
        self, friend_key: PrivateKey, make_event: Callable[..., dict[str, Any]],
    ) -> None:
        good = make_event(friend_key, KIND_PROFILE, [], json.dumps({"name": "friend"}))
        bad = make_event(friend_key, KIND_PROFILE, [], json.dumps({"name": "forged"}), created_at=2_000_000_000)
        bad["content"] = json.dumps({"name": "tampered"})

        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.host == "down.test":
                return httpx.Response(502)
            return httpx.Response(200, json=[good, bad])

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            directory = ProfileDirectory(["https://down.test", "https://up.test"], client)
            profiles = await directory.fetch([_hex(friend_key)])
        assert profiles[_hex(friend_key)].name == "friend"
