from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional


@dataclass(frozen=True)
class Stream:
    id: int
    name: str
    short_name: str
    url: str


# Stream urls, needs more :)
DEFAULT_STREAMS: Dict[int, Stream] = {
    s.id: s
    for s in (
        Stream(1, "Русские Песни", "RUSSIAN SONGS", "https://listen.rusongs.ru:8005/ru-mp3-128"),
        Stream(2, "Nebenwelten", "Nebenwelten", "https://stream.laut.fm/nebenwelten"),
        Stream(3, "Goa Base", "Goa Base", "https://goa-base.stream.laut.fm/goa-base"),
        Stream(4, "Hohenburg", "Radiohohenburg", "https://stream.laut.fm/radiohohenburg"),
        Stream(5, "SynthWay", "SynthWay Radio", "https://c24.radioboss.fm:18014/stream"),
        Stream(6, "Зайцев ФМ", "zaycev.fm (metal mp3 stream 256kb)", "https://zaycevfm.cdnvideo.ru/ZaycevFM_metal_256.mp3"),
        Stream(7, "7 Rays", "7 Rays", "https://7rays.stream.laut.fm/7rays"),
        Stream(8, "Ancient FM", "Ancient FM", "https://mediaserv73.live-streams.nl:18058/stream"),
        Stream(9, "Enigmatic Station", "Enigmatic robot", "https://myradio24.org/8226"),
        Stream(10, "Fly FM", "Radio FLYFM", "http://flyfm.net:8000/flyfm"),
    )
}


def parse_streams(raw: Mapping[Any, Any]) -> Dict[int, Stream]:
    """Build a catalog from ``{"<id>": {"name", "short_name", "url"}}``.

    Entries without a numeric id, a name or a url are skipped.
    """
    out: Dict[int, Stream] = {}
    for key, item in raw.items():
        try:
            sid = int(key)
        except (TypeError, ValueError):
            continue
        if not isinstance(item, Mapping):
            continue
        name = item.get("name")
        url = item.get("url")
        if not name or not url:
            continue
        out[sid] = Stream(
            id=sid,
            name=str(name),
            short_name=str(item.get("short_name") or name),
            url=str(url),
        )
    return out


def sorted_streams(catalog: Mapping[int, Stream]) -> List[Stream]:
    return [catalog[k] for k in sorted(catalog)]


def find_by_url(catalog: Mapping[int, Stream], url: str) -> Optional[Stream]:
    for stream in sorted_streams(catalog):
        if stream.url == url:
            return stream
    return None
