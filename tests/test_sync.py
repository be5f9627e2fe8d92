"""Tests for Redis cross-instance flag invalidation."""

import json

import pytest
from unittest.mock import AsyncMock

from featuregate.models import Subject
from featuregate.registry import FlagRegistry
from featuregate.service import FlagService
from featuregate.storage.memory import InMemoryFlagRepository
from featuregate.sync import CHANNEL, RedisFlagSync, RedisSyncConfig


def make_service(repo=None) -> FlagService:
    return FlagService(FlagRegistry(repo or InMemoryFlagRepository()))


class TestRedisSyncConfig:
    def test_default_config(self):
        config = RedisSyncConfig()
        assert config.channel == CHANNEL
        assert "localhost" in config.url


class TestPublish:
    async def test_local_change_published(self):
        service = make_service()
        client = AsyncMock()
        sync = RedisFlagSync(service, RedisSyncConfig(), client=client)

        flag = await service.create_flag("PHONE_DIALER")

        client.publish.assert_awaited_once()
        channel, raw = client.publish.await_args.args
        assert channel == CHANNEL
        payload = json.loads(raw)
        assert payload["source"] == sync.instance_id
        assert payload["flag_id"] == flag.id
        assert payload["type"] == "featuregate.flag.created"

    async def test_publish_failure_does_not_fail_write(self):
        service = make_service()
        client = AsyncMock()
        client.publish.side_effect = ConnectionError("redis down")
        RedisFlagSync(service, RedisSyncConfig(), client=client)

        flag = await service.create_flag("PHONE_DIALER")
        assert flag.name == "PHONE_DIALER"
        assert await service.is_feature_enabled("PHONE_DIALER", Subject(id="u1"))


class TestHandleMessage:
    async def test_peer_message_invalidates(self):
        repo = InMemoryFlagRepository()
        writer = make_service(repo)
        reader = make_service(repo)
        sync = RedisFlagSync(reader, RedisSyncConfig(), client=AsyncMock())
        subject = Subject(id="u1")

        assert await reader.is_feature_enabled("SHARED", subject) is False
        await writer.create_flag("SHARED")
        applied = sync.handle_message(json.dumps({"source": "other-instance", "flag_id": "x"}))
        assert applied is True
        assert await reader.is_feature_enabled("SHARED", subject) is True

    def test_own_message_ignored(self):
        sync = RedisFlagSync(make_service(), RedisSyncConfig(), client=AsyncMock())
        assert sync.handle_message(json.dumps({"source": sync.instance_id})) is False

    @pytest.mark.parametrize("raw", ["not json", b"\xff", "[1, 2]"])
    def test_malformed_message_ignored(self, raw):
        sync = RedisFlagSync(make_service(), RedisSyncConfig(), client=AsyncMock())
        assert sync.handle_message(raw) is False


class TestLifecycle:
    async def test_close_releases_client(self):
        client = AsyncMock()
        sync = RedisFlagSync(make_service(), RedisSyncConfig(), client=client)
        await sync.close()
        client.aclose.assert_awaited_once()

    async def test_close_stops_publishing(self):
        service = make_service()
        client = AsyncMock()
        sync = RedisFlagSync(service, RedisSyncConfig(), client=client)
        await sync.close()

        await service.create_flag("AFTER_CLOSE")
        client.publish.assert_not_awaited()
        assert sync._client is None
