"""Tests for HLS playlist rendering and generation."""

import logging

import pytest

from core.exceptions import NotFoundError
from services.playlist import partition_entries, render_playlist


class TestPartitionEntries:
    def test_numeric_order(self):
        init, segments = partition_entries(["chunk10.mp4", "chunk2.mp4", "chunk1.mp4"])
        assert init is None
        assert segments == ["chunk1.mp4", "chunk2.mp4", "chunk10.mp4"]

    def test_init_is_first_matching_entry(self):
        names = sorted(["init_0.mp4", "init_1.m4s", "chunk00000.mp4", "notes.txt", "init.txt"])
        init, segments = partition_entries(names)
        assert init == "init_0.mp4"
        assert segments == ["chunk00000.mp4"]

    def test_ignores_unrecognized_files(self):
        init, segments = partition_entries(
            ["playlist.m3u8", "segment_00001.mp4", "chunk3.txt", ".playlist.m3u8.abc.tmp"]
        )
        assert init is None
        assert segments == []


class TestRenderPlaylist:
    def test_header_only(self):
        text = render_playlist(4, 0, None, [])
        assert text == (
            "#EXTM3U\n"
            "#EXT-X-VERSION:7\n"
            "#EXT-X-PLAYLIST-TYPE:EVENT\n"
            "#EXT-X-TARGETDURATION:4\n"
            "#EXT-X-MEDIA-SEQUENCE:0\n"
            "\n"
        )

    def test_full_playlist(self):
        text = render_playlist(4.0, 3, "init_0.mp4", ["chunk00000.mp4", "chunk00001.mp4"], True)
        lines = text.splitlines()
        assert '#EXT-X-MAP:URI="init_0.mp4"' in lines
        assert lines.count("#EXTINF:4.000,") == 2
        assert lines[lines.index("#EXTINF:4.000,") + 1] == "chunk00000.mp4"
        assert "#EXT-X-MEDIA-SEQUENCE:3" in lines
        assert lines[-1] == "#EXT-X-ENDLIST"

    def test_fractional_duration(self):
        text = render_playlist(2.5, 0, None, ["chunk1.mp4"])
        assert "#EXT-X-TARGETDURATION:3\n" in text
        assert "#EXTINF:2.500,\n" in text


class TestPlaylistGenerator:
    @pytest.mark.asyncio
    async def test_new_session_has_no_segments(self, registry, generator):
        meta = registry.create_session(6)
        text = await generator.generate(meta.session_id, 0, False)
        assert "#EXT-X-TARGETDURATION:6\n" in text
        assert "#EXTINF" not in text
        assert "#EXT-X-ENDLIST" not in text

    @pytest.mark.asyncio
    async def test_idempotent(self, registry, generator, store, make_files):
        registry.create_session(4, requested_id="s")
        make_files(store.root / "s", "init_0.mp4", "chunk00001.mp4", "chunk00000.mp4")
        first = await generator.generate("s", 1, False)
        second = await generator.generate("s", 1, False)
        assert first == second

    @pytest.mark.asyncio
    async def test_orders_uploads_numerically(self, registry, generator, store, make_files):
        registry.create_session(4, requested_id="s")
        for index in (10, 2, 1):
            make_files(store.root / "s", f"chunk{index}.mp4")
        text = await generator.generate("s", 0, False)
        segments = [line for line in text.splitlines() if line.startswith("chunk")]
        assert segments == ["chunk1.mp4", "chunk2.mp4", "chunk10.mp4"]

    @pytest.mark.asyncio
    async def test_missing_directory_raises(self, generator):
        with pytest.raises(NotFoundError):
            await generator.generate("vanished", 0, False)

    @pytest.mark.asyncio
    async def test_unknown_session_uses_default_with_warning(
        self, generator, store, make_files, caplog
    ):
        make_files(store.root / "orphan", "chunk00000.mp4")
        with caplog.at_level(logging.WARNING, logger="services.playlist"):
            text = await generator.generate("orphan", 0, False)
        assert "#EXT-X-TARGETDURATION:5\n" in text
        assert "#EXTINF:5.000," in text
        assert "default segment duration" in caplog.text

    @pytest.mark.asyncio
    async def test_unknown_session_recovers_duration_from_playlist(
        self, generator, store, make_files
    ):
        session_dir = make_files(store.root / "orphan", "chunk00000.mp4")
        (session_dir / "playlist.m3u8").write_text(render_playlist(8, 0, None, ["chunk00000.mp4"]))
        text = await generator.generate("orphan", 0, True)
        assert "#EXT-X-TARGETDURATION:8\n" in text
        assert "#EXTINF:8.000," in text
