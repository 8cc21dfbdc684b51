"""
Unit tests for persisted record types.

Tests cover:
- Version key parsing, formatting and succession
- Registry value encoding
- Announcement record format and attachment codec
"""

import json
from datetime import date

import pytest

from bulletin.announce_server.errors import (
    AttachmentError,
    ErrorKind,
    InvalidTextError,
    StoreError,
)
from bulletin.announce_server.records import (
    Announcement,
    JsonAttachmentCodec,
    RegistryEntry,
    VersionKey,
)


class TestVersionKey:
    """Tests for VersionKey."""

    def test_first_key_of_day(self):
        """First key of a day has sequence 1."""
        key = VersionKey.first("ANNOUNCE:", date(2026, 10, 19))

        assert str(key) == "ANNOUNCE:2026-10-19_1"
        assert key.client_id == "2026-10-19_1"

    def test_successor_same_day_increments(self):
        """Same-day successor increments the sequence."""
        key = VersionKey("ANNOUNCE:", "2026-10-19", 4)

        assert key.successor(date(2026, 10, 19)).sequence == 5

    def test_successor_new_day_resets(self):
        """A new day restarts the sequence at 1."""
        key = VersionKey("ANNOUNCE:", "2026-10-19", 4)

        nxt = key.successor(date(2026, 10, 20))

        assert nxt.date_sign == "2026-10-20"
        assert nxt.sequence == 1

    def test_parse_round_trips_format(self):
        """Parsing a formatted key gives the same key."""
        key = VersionKey.parse("ANNOUNCE:2026-10-19_12", "ANNOUNCE:")

        assert key == VersionKey("ANNOUNCE:", "2026-10-19", 12)

    @pytest.mark.parametrize(
        "raw",
        [
            "OTHER:2026-10-19_1",
            "ANNOUNCE:2026-10-19",
            "ANNOUNCE:2026-10-19_x",
            "ANNOUNCE:_3",
            "ANNOUNCE:2026-10-19_0",
        ],
    )
    def test_parse_rejects_malformed(self, raw):
        """Malformed keys raise StoreError."""
        with pytest.raises(StoreError):
            VersionKey.parse(raw, "ANNOUNCE:")

    def test_client_id_has_no_prefix(self):
        """Client id never contains the store prefix."""
        key = VersionKey("ANNOUNCE:", "2026-10-19", 2)

        assert "ANNOUNCE:" not in key.client_id


class TestRegistryEntry:
    """Tests for RegistryEntry."""

    def test_encode_layout(self):
        """Registry value is '<versionKey>,<expire>'."""
        entry = RegistryEntry(VersionKey("ANNOUNCE:", "2026-10-19", 1), 1761523200)

        assert entry.encode() == "ANNOUNCE:2026-10-19_1,1761523200"

    def test_decode(self):
        """Decoding reads key and expiry."""
        entry = RegistryEntry.decode("ANNOUNCE:2026-10-19_3,1761523200", "ANNOUNCE:")

        assert entry.version == "2026-10-19_3"
        assert entry.expire_at == 1761523200

    def test_decode_without_separator_fails(self):
        with pytest.raises(StoreError):
            RegistryEntry.decode("ANNOUNCE:2026-10-19_3", "ANNOUNCE:")

    def test_decode_bad_expiry_fails(self):
        with pytest.raises(StoreError, match="Malformed expiry"):
            RegistryEntry.decode("ANNOUNCE:2026-10-19_3,soon", "ANNOUNCE:")


class TestAnnouncementRecord:
    """Tests for Announcement serialization."""

    @pytest.fixture
    def codec(self):
        return JsonAttachmentCodec()

    def test_record_fields(self, codec):
        """Stored record uses id/title/content/attach/isHide."""
        announcement = Announcement(
            id="a1", title="Hello", content="World", attach={"gold": 100}
        )

        data = json.loads(announcement.to_record(codec))

        assert data == {
            "id": "a1",
            "title": "Hello",
            "content": "World",
            "attach": {"gold": 100},
            "isHide": 0,
        }

    def test_hidden_record_flag(self, codec):
        """Hidden announcements store isHide=1."""
        announcement = Announcement(id="a1", title="t", content="c").hide()

        assert json.loads(announcement.to_record(codec))["isHide"] == 1

    def test_hide_returns_copy(self):
        """hide() leaves the original untouched."""
        original = Announcement(id="a1", title="t", content="c")

        hidden = original.hide()

        assert hidden.hidden is True
        assert original.hidden is False
        assert hidden.id == original.id

    def test_from_record(self, codec):
        """Records written by other servers are read back."""
        raw = '{"id":"x","title":"T","content":"C","attach":null,"isHide":1}'

        announcement = Announcement.from_record(raw, codec)

        assert announcement == Announcement(id="x", title="T", content="C", hidden=True)

    def test_non_ascii_text_kept(self, codec):
        """Titles keep non-ASCII characters."""
        announcement = Announcement(id="a", title="公告", content="全服奖励")

        raw = announcement.to_record(codec)

        assert "公告" in raw
        assert Announcement.from_record(raw, codec).title == "公告"

    def test_corrupt_record_raises_store_error(self, codec):
        with pytest.raises(StoreError, match="Corrupt announcement record"):
            Announcement.from_record("{not json", codec)

    def test_missing_field_raises_store_error(self, codec):
        with pytest.raises(StoreError):
            Announcement.from_record('{"id":"x"}', codec)

    def test_unserializable_attachment_rejected(self, codec):
        """Attachments that JSON cannot represent raise AttachmentError."""
        announcement = Announcement(id="a", title="t", content="c", attach=object())

        with pytest.raises(AttachmentError):
            announcement.to_record(codec)

    def test_custom_codec_is_used(self):
        """A custom codec controls how attachments are stored."""

        class RewardCodec:
            def encode(self, value):
                return {"items": sorted(value)}

            def decode(self, data):
                return set(data["items"])

        codec = RewardCodec()
        announcement = Announcement(id="a", title="t", content="c", attach={"sword", "axe"})

        raw = announcement.to_record(codec)

        assert json.loads(raw)["attach"] == {"items": ["axe", "sword"]}
        assert Announcement.from_record(raw, codec).attach == {"sword", "axe"}

    @pytest.mark.parametrize(
        "title,content",
        [("\ud800", "c"), ("t", "before \udfff after")],
    )
    def test_lone_surrogate_rejected(self, codec, title, content):
        """Text that cannot be stored as UTF-8 raises InvalidTextError."""
        announcement = Announcement(id="a", title=title, content=content)

        with pytest.raises(InvalidTextError) as exc_info:
            announcement.to_record(codec)

        assert exc_info.value.kind is ErrorKind.INVALID_TEXT
        assert "position" in exc_info.value.details

    @pytest.mark.parametrize("value", [float("nan"), float("inf"), {"ratio": float("-inf")}])
    def test_non_finite_attachment_rejected(self, codec, value):
        """NaN and Infinity are not JSON and are not stored."""
        announcement = Announcement(id="a", title="t", content="c", attach=value)

        with pytest.raises(AttachmentError):
            announcement.to_record(codec)

    def test_custom_codec_returning_nan_rejected(self):
        class RatioCodec:
            def encode(self, value):
                return {"ratio": float("nan")}

            def decode(self, data):
                return data

        announcement = Announcement(id="a", title="t", content="c", attach="x")

        with pytest.raises(AttachmentError, match="non-JSON"):
            announcement.to_record(RatioCodec())
