"""Tests for the HTTP provider adapters and the mock adapter."""

import httpx
import pytest

from inbox_hub.config.settings import Settings
from inbox_hub.polling.retry import is_terminal_error
from inbox_hub.providers.base_adapter import (
    parse_iso_millis,
    strip_html,
    strip_prefix,
)
from inbox_hub.providers.chatwork_adapter import ChatworkAdapter
from inbox_hub.providers.errors import (
    AuthenticationError,
    ConfigurationError,
    TransientProviderError,
)
from inbox_hub.providers.garoon_adapter import GaroonAdapter
from inbox_hub.providers.gmail_adapter import GmailAdapter, extract_sender_name
from inbox_hub.providers.google_chat_adapter import GoogleChatAdapter
from inbox_hub.providers.mock_adapter import MockAdapter
from inbox_hub.providers.schemas import ProviderConfig, ProviderId
from inbox_hub.providers.slack_adapter import SlackAdapter
from inbox_hub.providers.teams_adapter import TeamsAdapter

# 2023-11-14T22:13:20Z
TS_SECONDS = 1_700_000_000
TS_ISO = "2023-11-14T22:13:20Z"


def _config(provider_id: ProviderId, **kwargs) -> ProviderConfig:
    return ProviderConfig(provider_id=provider_id, enabled=True, **kwargs)


def _transport(routes: dict[str, object], calls: list | None = None) -> httpx.MockTransport:
    """Route by URL path; a value is a JSON body or an httpx.Response."""

    def handler(request: httpx.Request) -> httpx.Response:
        if calls is not None:
            calls.append(request)
        body = routes.get(request.url.path)
        if body is None:
            return httpx.Response(404)
        if isinstance(body, httpx.Response):
            return body
        return httpx.Response(200, json=body)

    return httpx.MockTransport(handler)


class TestAdapterHelpers:
    """Tests for shared adapter helpers."""

    def test_parse_iso_millis(self):
        assert parse_iso_millis(TS_ISO) == TS_SECONDS * 1000
        assert parse_iso_millis("2023-11-14T22:13:20") == TS_SECONDS * 1000
        assert parse_iso_millis("not a date") is None
        assert parse_iso_millis(None) is None

    def test_strip_html(self):
        assert strip_html("<p>Hello  <b>there</b></p>\n") == "Hello there"

    def test_strip_prefix(self):
        assert strip_prefix("gmail-abc", "gmail-") == "abc"
        assert strip_prefix("abc", "gmail-") == "abc"

    def test_extract_sender_name(self):
        assert extract_sender_name('"Jane Doe" <jane@example.com>') == "Jane Doe"
        assert extract_sender_name("Ops <ops@example.com>") == "Ops"
        assert extract_sender_name("bot@example.com") == "bot@example.com"

    def test_update_config_rejects_other_provider(self):
        adapter = ChatworkAdapter(_config(ProviderId.CHATWORK))

        with pytest.raises(ValueError):
            adapter.update_config(_config(ProviderId.SLACK))


class TestChatworkAdapter:
    """Tests for ChatworkAdapter."""

    ROUTES = {
        "/v2/rooms": [
            {"room_id": 1, "name": "Dev", "unread_num": 2},
            {"room_id": 2, "name": "Quiet", "unread_num": 0},
        ],
        "/v2/rooms/1/messages": [
            {
                "message_id": "100",
                "account": {"name": "Aiko", "avatar_image_url": "https://img/a.png"},
                "body": "Review please",
                "send_time": TS_SECONDS,
            },
        ],
        "/v2/me": {"account_id": 1},
    }

    @pytest.mark.asyncio
    async def test_fetch_messages(self):
        calls = []
        adapter = ChatworkAdapter(
            _config(ProviderId.CHATWORK, api_token="cw-token"),
            transport=_transport(self.ROUTES, calls),
        )

        messages = await adapter.fetch_messages()

        assert len(messages) == 1
        message = messages[0]
        assert message.id == "chatwork-100"
        assert message.sender == "Aiko"
        assert message.sender_avatar == "https://img/a.png"
        assert message.timestamp == TS_SECONDS * 1000
        assert message.channel_name == "Dev"
        assert message.deep_link == "https://www.chatwork.com/#!rid1-100"
        assert all(r.headers["X-ChatWorkToken"] == "cw-token" for r in calls)
        # Rooms without unread messages are not read
        assert "/v2/rooms/2/messages" not in [r.url.path for r in calls]

    @pytest.mark.asyncio
    async def test_unread_count(self):
        adapter = ChatworkAdapter(
            _config(ProviderId.CHATWORK, api_token="t"), transport=_transport(self.ROUTES),
        )

        assert await adapter.get_unread_count() == 2

    @pytest.mark.asyncio
    async def test_missing_token(self):
        adapter = ChatworkAdapter(_config(ProviderId.CHATWORK))

        with pytest.raises(ConfigurationError) as exc_info:
            await adapter.fetch_messages()

        assert is_terminal_error(exc_info.value)

    @pytest.mark.asyncio
    async def test_forbidden(self):
        adapter = ChatworkAdapter(
            _config(ProviderId.CHATWORK, api_token="bad"),
            transport=_transport({"/v2/rooms": httpx.Response(403)}),
        )

        with pytest.raises(AuthenticationError, match="403"):
            await adapter.fetch_messages()

    @pytest.mark.asyncio
    async def test_connection(self):
        good = ChatworkAdapter(
            _config(ProviderId.CHATWORK, api_token="t"), transport=_transport(self.ROUTES),
        )
        missing = ChatworkAdapter(_config(ProviderId.CHATWORK))

        assert await good.test_connection() is True
        assert await missing.test_connection() is False


class TestSlackAdapter:
    """Tests for SlackAdapter."""

    ROUTES = {
        "/api/conversations.list": {
            "ok": True,
            "channels": [
                {"id": "C1", "name": "general", "is_member": True, "unread_count_display": 2},
                {"id": "C2", "name": "random", "is_member": False, "unread_count_display": 5},
                {"id": "C3", "name": "quiet", "is_member": True, "unread_count_display": 0},
            ],
        },
        "/api/conversations.history": {
            "ok": True,
            "messages": [
                {"type": "message", "user": "U1", "text": "Deploy done", "ts": "1700000000.000100"},
                {"type": "message", "username": "ci-bot", "text": "Build green", "ts": "1699999990.000000"},
                {"type": "channel_join", "user": "U2", "ts": "1699999980.000000"},
            ],
        },
        "/api/users.info": {"ok": True, "user": {"profile": {"display_name": "Ben"}}},
        "/api/auth.test": {"ok": True},
    }

    @pytest.mark.asyncio
    async def test_fetch_messages(self):
        calls = []
        adapter = SlackAdapter(
            _config(ProviderId.SLACK, api_token="xoxp-1"), transport=_transport(self.ROUTES, calls),
        )

        messages = await adapter.fetch_messages()

        assert [m.id for m in messages] == [
            "slack-C1-1700000000.000100",
            "slack-C1-1699999990.000000",
        ]
        assert messages[0].sender == "Ben"
        assert messages[1].sender == "ci-bot"
        assert messages[0].channel_name == "general"
        assert messages[0].deep_link == (
            "https://app.slack.com/client/T00000000/C1/p1700000000000100"
        )
        assert calls[0].headers["Authorization"] == "Bearer xoxp-1"
        history_calls = [r for r in calls if r.url.path == "/api/conversations.history"]
        assert [r.url.params["channel"] for r in history_calls] == ["C1"]

    @pytest.mark.asyncio
    async def test_user_names_cached(self):
        calls = []
        adapter = SlackAdapter(
            _config(ProviderId.SLACK, api_token="xoxp-1"), transport=_transport(self.ROUTES, calls),
        )

        await adapter.fetch_messages()
        await adapter.fetch_messages()

        assert len([r for r in calls if r.url.path == "/api/users.info"]) == 1

    @pytest.mark.asyncio
    async def test_invalid_auth_is_terminal(self):
        adapter = SlackAdapter(
            _config(ProviderId.SLACK, api_token="xoxp-bad"),
            transport=_transport(
                {"/api/conversations.list": {"ok": False, "error": "invalid_auth"}},
            ),
        )

        with pytest.raises(AuthenticationError) as exc_info:
            await adapter.fetch_messages()

        assert is_terminal_error(exc_info.value)

    @pytest.mark.asyncio
    async def test_rate_limited_is_transient(self):
        adapter = SlackAdapter(
            _config(ProviderId.SLACK, api_token="xoxp-1"),
            transport=_transport({"/api/conversations.list": {"ok": False, "error": "ratelimited"}}),
        )

        with pytest.raises(TransientProviderError):
            await adapter.fetch_messages()

    @pytest.mark.asyncio
    async def test_unread_count_counts_member_channels(self):
        adapter = SlackAdapter(
            _config(ProviderId.SLACK, api_token="xoxp-1"), transport=_transport(self.ROUTES),
        )

        assert await adapter.get_unread_count() == 2

    def test_deep_link_from_id(self):
        adapter = SlackAdapter(_config(ProviderId.SLACK))

        assert adapter.get_deep_link("slack-C9-1700000000.000100") == (
            "https://app.slack.com/client/T00000000/C9/p1700000000000100"
        )
        assert adapter.get_deep_link("garbage") == "https://app.slack.com/"


class TestGmailAdapter:
    """Tests for GmailAdapter."""

    BASE = "/gmail/v1/users/me"

    def _routes(self):
        return {
            f"{self.BASE}/messages": {"messages": [{"id": "a"}, {"id": "b"}]},
            f"{self.BASE}/messages/a": {
                "id": "a",
                "internalDate": str(TS_SECONDS * 1000),
                "labelIds": ["UNREAD", "INBOX"],
                "snippet": "ignored when subject exists",
                "payload": {
                    "headers": [
                        {"name": "From", "value": '"Jane Doe" <jane@example.com>'},
                        {"name": "Subject", "value": "Quarterly report"},
                    ],
                },
            },
            f"{self.BASE}/messages/b": httpx.Response(500),
            f"{self.BASE}/labels/UNREAD": {"messagesUnread": 12},
        }

    @pytest.mark.asyncio
    async def test_fetch_skips_unavailable_messages(self):
        calls = []
        adapter = GmailAdapter(
            _config(ProviderId.GMAIL, api_token="ya29"), transport=_transport(self._routes(), calls),
        )

        messages = await adapter.fetch_messages()

        assert len(messages) == 1
        message = messages[0]
        assert message.id == "gmail-a"
        assert message.sender == "Jane Doe"
        assert message.content == "Quarterly report"
        assert message.timestamp == TS_SECONDS * 1000
        assert message.is_unread is True
        assert message.deep_link == "https://mail.google.com/mail/u/0/#inbox/a"
        assert calls[0].url.params["q"] == "is:unread"

    @pytest.mark.asyncio
    async def test_no_unread(self):
        adapter = GmailAdapter(
            _config(ProviderId.GMAIL, api_token="ya29"),
            transport=_transport({f"{self.BASE}/messages": {"resultSizeEstimate": 0}}),
        )

        assert await adapter.fetch_messages() == []

    @pytest.mark.asyncio
    async def test_unread_count(self):
        adapter = GmailAdapter(
            _config(ProviderId.GMAIL, api_token="ya29"), transport=_transport(self._routes()),
        )

        assert await adapter.get_unread_count() == 12

    @pytest.mark.asyncio
    async def test_expired_token(self):
        adapter = GmailAdapter(
            _config(ProviderId.GMAIL, api_token="old"),
            transport=_transport({f"{self.BASE}/messages": httpx.Response(401)}),
        )

        with pytest.raises(AuthenticationError):
            await adapter.fetch_messages()


class TestGaroonAdapter:
    """Tests for GaroonAdapter."""

    PATH = "/g/api/v1/notification/items"

    def _adapter(self, calls=None, **config):
        routes = {
            self.PATH: {
                "notifications": [
                    {
                        "id": "1",
                        "creator": {"name": "Sato"},
                        "createdAt": TS_ISO,
                        "title": "Meeting moved",
                        "url": "/schedule/view?event=1",
                        "isRead": False,
                    },
                    {"id": "2", "title": "Old", "createdAt": TS_ISO, "isRead": True},
                ],
            },
        }
        return GaroonAdapter(
            _config(
                ProviderId.GAROON,
                base_url="https://garoon.example.com/g/",
                username="user",
                password="pass",
                **config,
            ),
            transport=_transport(routes, calls),
        )

    @pytest.mark.asyncio
    async def test_fetch_unread_notifications(self):
        calls = []
        adapter = self._adapter(calls)

        messages = await adapter.fetch_messages()

        assert [m.id for m in messages] == ["garoon-1"]
        assert messages[0].sender == "Sato"
        assert messages[0].content == "Meeting moved"
        assert messages[0].timestamp == TS_SECONDS * 1000
        assert messages[0].deep_link == "https://garoon.example.com/g/schedule/view?event=1"
        assert calls[0].headers["X-Cybozu-Authorization"] == "dXNlcjpwYXNz"
        assert "Authorization" not in calls[0].headers

    @pytest.mark.asyncio
    async def test_proxy_auth_header(self):
        calls = []
        adapter = self._adapter(calls, proxy_username="user", proxy_password="pass")

        await adapter.fetch_messages()

        assert calls[0].headers["Authorization"] == "Basic dXNlcjpwYXNz"

    @pytest.mark.asyncio
    async def test_unread_count(self):
        assert await self._adapter().get_unread_count() == 1

    @pytest.mark.asyncio
    async def test_missing_url(self):
        adapter = GaroonAdapter(_config(ProviderId.GAROON, username="u", password="p"))

        with pytest.raises(ConfigurationError, match="not configured"):
            await adapter.fetch_messages()

    def test_links(self):
        adapter = self._adapter()

        assert adapter.build_link("https://other.example.com/x") == "https://other.example.com/x"
        assert adapter.get_deep_link("garoon-1") == "https://garoon.example.com/g/"


class TestTeamsAdapter:
    """Tests for TeamsAdapter."""

    ROUTES = {
        "/v1.0/me/chats": {"value": [{"id": "19:abc", "topic": None}]},
        "/v1.0/me/chats/19:abc/messages": {
            "value": [
                {
                    "id": "m1",
                    "from": {"user": {"displayName": "Lee"}},
                    "body": {"content": "<p>Hello <b>there</b></p>"},
                    "createdDateTime": TS_ISO,
                },
                {"id": "m2", "from": {"application": {"displayName": "Bot"}}},
            ],
        },
        "/v1.0/me": {"id": "me"},
    }

    @pytest.mark.asyncio
    async def test_fetch_messages(self):
        adapter = TeamsAdapter(
            _config(ProviderId.TEAMS, api_token="graph"), transport=_transport(self.ROUTES),
        )

        messages = await adapter.fetch_messages()

        assert [m.id for m in messages] == ["teams-m1"]
        assert messages[0].content == "Hello there"
        assert messages[0].channel_name == "Chat"
        assert messages[0].deep_link == "https://teams.microsoft.com/l/chat/19:abc/0"

    @pytest.mark.asyncio
    async def test_401_is_terminal_then_refreshed_token_used(self):
        calls = []
        routes = {**self.ROUTES, "/v1.0/me/chats": httpx.Response(401)}
        adapter = TeamsAdapter(
            _config(ProviderId.TEAMS, api_token="expired"),
            transport=_transport(routes, calls),
        )

        with pytest.raises(AuthenticationError, match="401") as exc_info:
            await adapter.fetch_messages()
        assert exc_info.value.terminal is True

        adapter.update_config(_config(ProviderId.TEAMS, api_token="refreshed"))
        await adapter.test_connection()

        assert [r.headers["Authorization"] for r in calls] == [
            "Bearer expired", "Bearer refreshed",
        ]

    @pytest.mark.asyncio
    async def test_new_token_after_config_update(self):
        calls = []
        adapter = TeamsAdapter(
            _config(ProviderId.TEAMS, api_token="first"), transport=_transport(self.ROUTES, calls),
        )
        await adapter.test_connection()

        adapter.update_config(_config(ProviderId.TEAMS, api_token="second"))
        await adapter.test_connection()

        assert [r.headers["Authorization"] for r in calls] == ["Bearer first", "Bearer second"]

    @pytest.mark.asyncio
    async def test_missing_token(self):
        adapter = TeamsAdapter(_config(ProviderId.TEAMS))

        with pytest.raises(ConfigurationError):
            await adapter.fetch_messages()


class TestGoogleChatAdapter:
    """Tests for GoogleChatAdapter."""

    ROUTES = {
        "/v1/spaces": {"spaces": [{"name": "spaces/AAA", "displayName": "Team"}]},
        "/v1/spaces/AAA/messages": {
            "messages": [
                {
                    "name": "spaces/AAA/messages/m1",
                    "sender": {"displayName": "Kai", "type": "HUMAN"},
                    "text": "Lunch?",
                    "createTime": TS_ISO,
                },
                {"name": "spaces/AAA/messages/m2", "sender": {"type": "BOT"}, "text": "beep"},
            ],
        },
    }

    @pytest.mark.asyncio
    async def test_fetch_skips_bots(self):
        adapter = GoogleChatAdapter(
            _config(ProviderId.GOOGLE_CHAT, api_token="ya29"), transport=_transport(self.ROUTES),
        )

        messages = await adapter.fetch_messages()

        assert [m.id for m in messages] == ["gchat-spaces/AAA/messages/m1"]
        assert messages[0].channel_name == "Team"
        assert messages[0].deep_link == "https://chat.google.com/room/AAA"
        assert await adapter.get_unread_count() == 1

    @pytest.mark.asyncio
    async def test_consumer_account_is_terminal(self):
        adapter = GoogleChatAdapter(
            _config(ProviderId.GOOGLE_CHAT, api_token="ya29"),
            transport=_transport({}),
        )

        with pytest.raises(ConfigurationError) as exc_info:
            await adapter.fetch_messages()

        assert is_terminal_error(exc_info.value)


class TestMockAdapter:
    """Tests for MockAdapter."""

    @pytest.mark.asyncio
    async def test_ids_persist_between_fetches(self):
        adapter = MockAdapter(_config(ProviderId.SLACK), messages_per_fetch=3, new_per_fetch=1)

        first = await adapter.fetch_messages()
        second = await adapter.fetch_messages()

        assert {m.id for m in first} <= {m.id for m in second}
        assert len(second) == 2
        assert all(m.provider_id == ProviderId.SLACK for m in second)

    @pytest.mark.asyncio
    async def test_inbox_bounded(self):
        adapter = MockAdapter(_config(ProviderId.GMAIL), messages_per_fetch=3, new_per_fetch=2)
        for _ in range(5):
            messages = await adapter.fetch_messages()

        assert len(messages) == 3
        assert len(messages) <= adapter.max_messages

    @pytest.mark.asyncio
    async def test_cap_follows_settings(self, monkeypatch):
        adapter = MockAdapter(_config(ProviderId.SLACK), messages_per_fetch=25, new_per_fetch=25)
        assert len(await adapter.fetch_messages()) == 20

        monkeypatch.setattr(
            "inbox_hub.providers.base_adapter.get_settings",
            lambda: Settings(max_messages_per_provider=30),
        )

        assert adapter.max_messages == 30
        assert len(await adapter.fetch_messages()) == 25

    @pytest.mark.asyncio
    async def test_error_rate(self):
        adapter = MockAdapter(_config(ProviderId.TEAMS), error_rate=1.0)

        with pytest.raises(TransientProviderError):
            await adapter.fetch_messages()

    @pytest.mark.asyncio
    async def test_always_connected(self):
        assert await MockAdapter(_config(ProviderId.SLACK)).test_connection() is True
