import hashlib
from dataclasses import replace

import pytest
import requests

from shichain.errors import ChecksumError, DownloadError
from shichain.fetcher import ArtifactFetcher, parse_sha256, xray_download_url
from shichain.settings import IRAN_DAT_URL
from tests.conftest import FakeRun, FakeSession

ARCHIVE = b"PK\x03\x04 not really a zip"
XRAY_URL = xray_download_url("v1.8.4", "64")


def dgst_for(content):
    return (
        f"MD5= {hashlib.md5(content).hexdigest()}\n"
        f"SHA1= {hashlib.sha1(content).hexdigest()}\n"
        f"SHA2-256= {hashlib.sha256(content).hexdigest()}\n"
        f"SHA2-512= {hashlib.sha512(content).hexdigest()}\n"
    ).encode()


def unzip_run(workdir_binary=True):
    """模拟 unzip，在 -d 目录下生成 xray 文件"""
    run = FakeRun()

    def fake(cmd, **kwargs):
        result = run(cmd, **kwargs)
        if cmd[0] == "unzip" and workdir_binary:
            target = cmd[cmd.index("-d") + 1]
            with open(f"{target}/xray", "wb") as f:
                f.write(b"\x7fELF")
        return result

    fake.calls = run.calls
    return fake


def test_download_url():
    assert XRAY_URL == "https://github.com/XTLS/Xray-core/releases/download/v1.8.4/Xray-linux-64.zip"


def test_parse_sha256_picks_256_line():
    text = dgst_for(ARCHIVE).decode()
    assert parse_sha256(text) == hashlib.sha256(ARCHIVE).hexdigest()
    assert parse_sha256("Not Found") is None


def test_fetch_xray_verifies_and_extracts(settings, tmp_path):
    session = FakeSession({XRAY_URL: ARCHIVE, XRAY_URL + ".dgst": dgst_for(ARCHIVE)})
    run = unzip_run()
    fetcher = ArtifactFetcher(settings, session=session, run=run)

    binary = fetcher.fetch_xray("64", tmp_path / "work")

    assert binary == tmp_path / "work" / "xray"
    assert (tmp_path / "work" / "Xray.zip").read_bytes() == ARCHIVE
    assert [url for url, _ in session.requests] == [XRAY_URL, XRAY_URL + ".dgst"]
    assert run.calls[0][:2] == ["unzip", "-q"]


def test_checksum_mismatch_stops_before_extract(settings, tmp_path):
    session = FakeSession({XRAY_URL: ARCHIVE, XRAY_URL + ".dgst": dgst_for(b"something else")})
    run = unzip_run()
    with pytest.raises(ChecksumError):
        ArtifactFetcher(settings, session=session, run=run).fetch_xray("64", tmp_path)
    assert run.calls == []


def test_missing_digest_is_checksum_error(settings, tmp_path):
    session = FakeSession({XRAY_URL: ARCHIVE})
    with pytest.raises(ChecksumError):
        ArtifactFetcher(settings, session=session, run=unzip_run()).fetch_xray("64", tmp_path)


def test_digest_body_not_found(settings, tmp_path):
    session = FakeSession({XRAY_URL: ARCHIVE, XRAY_URL + ".dgst": b"Not Found"})
    with pytest.raises(ChecksumError):
        ArtifactFetcher(settings, session=session, run=unzip_run()).fetch_xray("64", tmp_path)


def test_archive_without_binary(settings, tmp_path):
    session = FakeSession({XRAY_URL: ARCHIVE, XRAY_URL + ".dgst": dgst_for(ARCHIVE)})
    with pytest.raises(DownloadError) as exc:
        ArtifactFetcher(settings, session=session, run=unzip_run(False)).fetch_xray("64", tmp_path)
    assert not exc.value.retryable


def test_transport_failure_is_retryable(settings, tmp_path):
    session = FakeSession(error=requests.ConnectionError("connection reset"))
    with pytest.raises(DownloadError) as exc:
        ArtifactFetcher(settings, session=session).download(XRAY_URL, tmp_path / "x.zip")
    assert exc.value.retryable
    assert exc.value.url == XRAY_URL


def test_not_found_is_not_retryable(settings, tmp_path):
    with pytest.raises(DownloadError) as exc:
        ArtifactFetcher(settings, session=FakeSession()).download(XRAY_URL, tmp_path / "x.zip")
    assert not exc.value.retryable


def test_proxy_and_no_cache_header(settings, tmp_path):
    session = FakeSession({IRAN_DAT_URL: b"dat"})
    fetcher = ArtifactFetcher(replace(settings, proxy="http://127.0.0.1:8080"), session=session)
    fetcher.download(IRAN_DAT_URL, tmp_path / "iran.dat")
    _, kwargs = session.requests[0]
    assert kwargs["proxies"] == {"http": "http://127.0.0.1:8080", "https": "http://127.0.0.1:8080"}
    assert kwargs["headers"]["Cache-Control"] == "no-cache"


def test_no_proxy_by_default(settings, tmp_path):
    session = FakeSession({IRAN_DAT_URL: b"dat"})
    ArtifactFetcher(settings, session=session).download(IRAN_DAT_URL, tmp_path / "iran.dat")
    assert session.requests[0][1]["proxies"] is None


def test_domain_list_downloaded_once(settings):
    session = FakeSession({IRAN_DAT_URL: b"dat-bytes"})
    fetcher = ArtifactFetcher(settings, session=session)
    assert fetcher.fetch_domain_list().read_bytes() == b"dat-bytes"
    fetcher.fetch_domain_list()
    assert len(session.requests) == 1


def test_public_ip_falls_back(settings):
    fetcher = ArtifactFetcher(settings, session=FakeSession(error=requests.Timeout("slow")))
    assert fetcher.public_ip() == "<服务器IP>"
