from __future__ import annotations

import pytest

from debridflix import downloads
from debridflix.cache import MemoryCache
from debridflix.config import AppConfig, UserConfig
from debridflix.errors import InvalidPasskeyError, NoDownloadAvailableError
from debridflix.types import DebridFile, TorrentInfos

TORRENT_BUFFER = b"d8:announce30:https://tracker/TOKEN/announcee"


class _FakeInfos:
    def __init__(self, infos: TorrentInfos) -> None:
        self.infos = infos
        self.by_id_calls = 0
        self.file_calls = 0

    async def get_infos_by_id(self, torrent_id: str) -> TorrentInfos:
        self.by_id_calls += 1
        return self.infos

    async def get_torrent_file(self, infos: TorrentInfos) -> bytes:
        self.file_calls += 1
        return TORRENT_BUFFER


class _FakeProvider:
    short_name = "RD"

    def __init__(self, files: list[DebridFile] | None = None) -> None:
        self.files = files if files is not None else [DebridFile(name="Movie.mkv", size=10, id="t:1")]
        self.calls: list[tuple[str, object]] = []

    def get_user_hash(self) -> str:
        return "userhash"

    async def get_files_from_magnet(self, magnet, info_hash):
        self.calls.append(("magnet", magnet))
        return self.files

    async def get_files_from_hash(self, info_hash):
        self.calls.append(("hash", info_hash))
        return self.files

    async def get_files_from_buffer(self, buffer, info_hash):
        self.calls.append(("buffer", buffer))
        return self.files

    async def get_download(self, file: DebridFile) -> str:
        self.calls.append(("download", file.id))
        return f"https://cdn.example/{file.id}"


def _resolver(infos: TorrentInfos, **app_overrides) -> downloads.DownloadResolver:
    return downloads.DownloadResolver(_FakeInfos(infos), MemoryCache(), AppConfig(**app_overrides))


@pytest.mark.asyncio
async def test_second_download_is_served_from_cache() -> None:
    resolver = _resolver(TorrentInfos(info_hash="abc", magnet_url="magnet:?xt=urn:btih:abc"))
    provider = _FakeProvider()

    first = await resolver.get_download(UserConfig(), "movie", "tt0111161", "42", provider)
    calls_after_first = list(provider.calls)
    second = await resolver.get_download(UserConfig(), "movie", "tt0111161", "42", provider)

    assert first == second == "https://cdn.example/t:1"
    assert provider.calls == calls_after_first
    assert resolver.torrent_infos.by_id_calls == 1
    assert await resolver.cache.get(downloads.download_cache_key("userhash", "tt0111161", "42")) == first


@pytest.mark.asyncio
async def test_largest_file_is_chosen_for_movies() -> None:
    files = [
        DebridFile(name="sample.mkv", size=10, id="t:1"),
        DebridFile(name="Movie.mkv", size=900, id="t:2"),
    ]
    resolver = _resolver(TorrentInfos(info_hash="abc", magnet_url="magnet:?xt=urn:btih:abc"))

    url = await resolver.get_download(UserConfig(), "movie", "tt0111161", "42", _FakeProvider(files))

    assert url == "https://cdn.example/t:2"


@pytest.mark.asyncio
async def test_episode_file_is_chosen_for_series() -> None:
    files = [
        DebridFile(name="Show.S02E01.mkv", size=900, id="t:1"),
        DebridFile(name="Show.S02E03.mkv", size=700, id="t:3"),
    ]
    resolver = _resolver(TorrentInfos(info_hash="abc", magnet_url="magnet:?xt=urn:btih:abc"))

    url = await resolver.get_download(UserConfig(), "series", "tt0903747:2:3", "42", _FakeProvider(files))

    assert url == "https://cdn.example/t:3"


@pytest.mark.asyncio
async def test_no_files_raises_and_releases_lock() -> None:
    resolver = _resolver(TorrentInfos(info_hash="abc", magnet_url="magnet:?xt=urn:btih:abc"))

    with pytest.raises(NoDownloadAvailableError):
        await resolver.get_download(UserConfig(), "movie", "tt0111161", "42", _FakeProvider(files=[]))

    assert len(resolver.locks) == 0


@pytest.mark.asyncio
async def test_buffer_is_uploaded_when_passkey_replacement_disabled() -> None:
    resolver = _resolver(TorrentInfos(info_hash="abc", private=True))
    provider = _FakeProvider()

    await resolver.get_debrid_files(UserConfig(), resolver.torrent_infos.infos, provider)

    assert provider.calls == [("buffer", TORRENT_BUFFER)]


@pytest.mark.asyncio
async def test_private_torrent_without_user_passkey_uses_hash() -> None:
    resolver = _resolver(TorrentInfos(info_hash="abc", private=True), replace_passkey="TOKEN")
    provider = _FakeProvider()

    await resolver.get_debrid_files(UserConfig(passkey=""), resolver.torrent_infos.infos, provider)

    assert provider.calls == [("hash", "abc")]


@pytest.mark.asyncio
async def test_public_torrent_without_user_passkey_uploads_unchanged() -> None:
    resolver = _resolver(TorrentInfos(info_hash="abc", private=False), replace_passkey="TOKEN")
    provider = _FakeProvider()

    await resolver.get_debrid_files(UserConfig(passkey=""), resolver.torrent_infos.infos, provider)

    assert provider.calls == [("buffer", TORRENT_BUFFER)]


@pytest.mark.asyncio
async def test_invalid_user_passkey_is_rejected() -> None:
    resolver = _resolver(
        TorrentInfos(info_hash="abc", private=True),
        replace_passkey="TOKEN",
        replace_passkey_pattern="^[a-z0-9]{32}$",
    )

    with pytest.raises(InvalidPasskeyError):
        await resolver.get_debrid_files(UserConfig(passkey="bad!"), resolver.torrent_infos.infos, _FakeProvider())


@pytest.mark.asyncio
async def test_valid_user_passkey_is_written_into_torrent(monkeypatch: pytest.MonkeyPatch) -> None:
    resolver = _resolver(TorrentInfos(info_hash="abc", private=True), replace_passkey="TOKEN")
    provider = _FakeProvider()
    replaced: list[tuple[bytes, str, str]] = []

    def _fake_replace(buffer: bytes, token: str, passkey: str) -> bytes:
        replaced.append((buffer, token, passkey))
        return b"rewritten"

    monkeypatch.setattr(downloads, "replace_passkey", _fake_replace)

    await resolver.get_debrid_files(UserConfig(passkey="abc123"), resolver.torrent_infos.infos, provider)

    assert replaced == [(TORRENT_BUFFER, "TOKEN", "abc123")]
    assert provider.calls == [("buffer", b"rewritten")]


@pytest.mark.asyncio
@pytest.mark.parametrize("passkey", ["abcé€", "abc def", "€"])
async def test_passkey_must_fully_match_and_be_latin1(passkey: str) -> None:
    resolver = _resolver(TorrentInfos(info_hash="abc", private=True), replace_passkey="TOKEN")
    provider = _FakeProvider()

    with pytest.raises(InvalidPasskeyError):
        await resolver.get_debrid_files(UserConfig(passkey=passkey), resolver.torrent_infos.infos, provider)

    assert provider.calls == []


@pytest.mark.asyncio
async def test_passkey_outside_latin1_is_rejected_even_when_pattern_allows_it() -> None:
    resolver = _resolver(
        TorrentInfos(info_hash="abc", private=True),
        replace_passkey="TOKEN",
        replace_passkey_pattern=".+",
    )

    with pytest.raises(InvalidPasskeyError):
        await resolver.get_debrid_files(UserConfig(passkey="pass€"), resolver.torrent_infos.infos, _FakeProvider())
