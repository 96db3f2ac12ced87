from mediasniffer.cli.main import build_m3u, outcome_records, parse_headers
from mediasniffer.core.models import MatchRecord, SniffFailure, SniffMultiSuccess, SniffSuccess

PLAY_URL = "https://site.example/watch?id=1"


def test_parse_headers_repeated_and_multiline():
    headers = parse_headers([
        "Referer: https://site.example/",
        "User-Agent: Custom/1.0\nCookie: a=1; b=2",
        "sem-dois-pontos",
        "Vazio:   ",
    ])
    assert headers == {
        "referer": "https://site.example/",
        "user-agent": "Custom/1.0",
        "cookie": "a=1; b=2",
    }


def test_parse_headers_keeps_colons_in_value():
    assert parse_headers(["Referer: https://a.example:8443/x"]) == {"referer": "https://a.example:8443/x"}


def test_outcome_records():
    success = SniffSuccess(play_url=PLAY_URL, elapsed_ms=10, url="https://cdn.example/a.m3u8")
    failure = SniffFailure(play_url=PLAY_URL, elapsed_ms=10)
    assert [r.url for r in outcome_records(success)] == ["https://cdn.example/a.m3u8"]
    assert outcome_records(failure) == []


def test_build_m3u_includes_vlc_header_options():
    outcome = SniffMultiSuccess(
        play_url=PLAY_URL,
        elapsed_ms=10000,
        urls=[
            MatchRecord("https://cdn.example/a.m3u8", {"referer": PLAY_URL, "user-agent": "UA"}),
            MatchRecord("https://cdn.example/b.mp4"),
        ],
    )
    playlist = build_m3u([outcome, SniffFailure(play_url=PLAY_URL, elapsed_ms=1)])
    lines = playlist.splitlines()
    assert lines[0] == "#EXTM3U"
    assert f"#EXTVLCOPT:http-referrer={PLAY_URL}" in lines
    assert "#EXTVLCOPT:http-user-agent=UA" in lines
    assert lines.index("https://cdn.example/a.m3u8") < lines.index("https://cdn.example/b.mp4")
    assert sum(1 for line in lines if line.startswith("#EXTINF")) == 2
