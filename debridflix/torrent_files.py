"""Raw .torrent helpers: magnet conversion and passkey rewriting."""

from __future__ import annotations

import hashlib
import re
from urllib.parse import quote

import bencodepy

from debridflix.errors import InvalidPasskeyError

_ANNOUNCE_LENGTH = re.compile(rb":announce(\d+):")


def magnet_from_hash(info_hash: str) -> str:
    return f"magnet:?xt=urn:btih:{info_hash}"


def info_hash_from_magnet(magnet: str) -> str:
    match = re.search(r"btih:([a-zA-Z0-9]+)", magnet or "", re.IGNORECASE)
    return match.group(1).lower() if match else ""


def _text(value: object) -> str:
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return str(value)


def torrent_buffer_to_magnet(buffer: bytes) -> str:
    """Build a magnet URI (hash, name, trackers) from a raw .torrent buffer."""
    try:
        torrent = bencodepy.decode(buffer)
    except bencodepy.BencodeDecodeError as exc:
        raise ValueError(f"Invalid torrent buffer: {exc}") from exc
    if not isinstance(torrent, dict) or b"info" not in torrent:
        raise ValueError("Invalid torrent buffer: missing info dictionary")

    info = torrent[b"info"]
    info_hash = hashlib.sha1(bencodepy.encode(info)).hexdigest()
    parts = [magnet_from_hash(info_hash)]

    name = info.get(b"name") if isinstance(info, dict) else None
    if name:
        parts.append(f"dn={quote(_text(name))}")

    trackers: list[str] = []
    if torrent.get(b"announce"):
        trackers.append(_text(torrent[b"announce"]))
    for tier in torrent.get(b"announce-list") or []:
        for tracker in tier if isinstance(tier, list) else [tier]:
            url = _text(tracker)
            if url not in trackers:
                trackers.append(url)
    parts.extend(f"tr={quote(url, safe='')}" for url in trackers)
    return "&".join(parts)


def replace_passkey(buffer: bytes, token_pattern: str, passkey: str) -> bytes:
    """Substitute the tracker passkey inside a raw .torrent buffer.

    The announce string is length-prefixed in bencode, so its prefix is
    rewritten by the size difference to keep the buffer decodable.
    """
    try:
        encoded_passkey = passkey.encode("latin-1")
    except UnicodeEncodeError as exc:
        raise InvalidPasskeyError(f"Invalid user passkey, not latin-1 encodable: {exc.reason}") from exc
    source = buffer
    target = re.sub(token_pattern.encode("latin-1"), lambda _m: encoded_passkey, source)
    diff_length = len(source) - len(target)
    announce_length = _ANNOUNCE_LENGTH.search(source)
    if diff_length and announce_length:
        new_length = int(announce_length.group(1)) - diff_length
        target = target.replace(
            announce_length.group(0),
            b":announce" + str(new_length).encode("ascii") + b":",
            1,
        )
    return target
