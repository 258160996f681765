import hashlib
import logging
import re
import subprocess
from pathlib import Path

import requests

from shichain import ui
from shichain.errors import ChecksumError, DownloadError
from shichain.settings import IRAN_DAT_URL, PUBLIC_IP_URL, XRAY_DOWNLOAD_URL

logger = logging.getLogger(__name__)

CHUNK_SIZE = 8192
SHA256_LINE = re.compile(r"256=\s*([0-9a-fA-F]{64})")


def xray_download_url(version, arch):
    return XRAY_DOWNLOAD_URL.format(version=version, arch=arch)


def parse_sha256(digest_text):
    """从 .dgst 文件中取出 SHA2-256 一行的值"""
    match = SHA256_LINE.search(digest_text or "")
    return match.group(1).lower() if match else None


def sha256_of(path):
    digest = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(CHUNK_SIZE), b""):
            digest.update(chunk)
    return digest.hexdigest()


class ArtifactFetcher:
    """下载 Xray 发布包、域名列表等文件，可选走 HTTP 代理"""

    def __init__(self, settings, session=None, run=subprocess.run):
        self.settings = settings
        self.session = session or requests.Session()
        self.run = run

    def _get(self, url, stream=False, timeout=None):
        headers = {"Cache-Control": "no-cache"}
        try:
            response = self.session.get(
                url, headers=headers, stream=stream, timeout=timeout, proxies=self.settings.proxies
            )
            response.raise_for_status()
        except requests.HTTPError as e:
            status = e.response.status_code if e.response is not None else None
            raise DownloadError(url, f"下载失败 (HTTP {status})", retryable=status is None or status >= 500) from e
        except requests.RequestException as e:
            raise DownloadError(url, f"下载失败，请检查网络后重试 ({e})") from e
        return response

    def download(self, url, target):
        target = Path(target)
        ui.print_info(f"正在下载: {url}")
        response = self._get(url, stream=True)
        target.parent.mkdir(parents=True, exist_ok=True)
        try:
            with open(target, "wb") as f:
                for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                    if chunk:
                        f.write(chunk)
        except requests.RequestException as e:
            raise DownloadError(url, f"下载中断 ({e})") from e
        logger.info("downloaded %s -> %s", url, target)
        return target

    def fetch_text(self, url, timeout=None):
        return self._get(url, timeout=timeout).text

    def fetch_expected_sha256(self, url):
        digest_url = f"{url}.dgst"
        try:
            text = self.fetch_text(digest_url)
        except DownloadError as e:
            if not e.retryable:
                raise ChecksumError(f"该版本没有提供校验文件: {digest_url}") from e
            raise
        if text.strip() == "Not Found":
            raise ChecksumError(f"该版本没有提供校验文件: {digest_url}")
        expected = parse_sha256(text)
        if not expected:
            raise ChecksumError(f"无法解析校验文件: {digest_url}")
        return expected

    def verify(self, path, expected):
        actual = sha256_of(path)
        if actual != expected.lower():
            logger.error("sha256 mismatch for %s: expected=%s actual=%s", path, expected, actual)
            raise ChecksumError("SHA256 校验失败，请检查网络后重试")
        logger.info("sha256 verified for %s", path)

    def fetch_xray(self, arch, workdir):
        """下载并校验 Xray 压缩包，解压到 workdir，返回可执行文件路径"""
        workdir = Path(workdir)
        url = xray_download_url(self.settings.xray_version, arch)
        zip_path = self.download(url, workdir / "Xray.zip")
        self.verify(zip_path, self.fetch_expected_sha256(url))

        result = self.run(["unzip", "-q", "-o", str(zip_path), "-d", str(workdir)], check=False)
        if result.returncode != 0:
            raise DownloadError(url, "Xray 解压失败", retryable=False)
        binary = workdir / "xray"
        if not binary.is_file():
            raise DownloadError(url, "压缩包中找不到 xray 可执行文件", retryable=False)
        ui.print_ok(f"Xray 已解压到 {workdir}")
        return binary

    def fetch_domain_list(self):
        dat_path = self.settings.dat_path
        if dat_path.exists():
            logger.debug("domain list already present at %s", dat_path)
            return dat_path
        ui.print_info("正在下载 iran.dat")
        return self.download(IRAN_DAT_URL, dat_path)

    def public_ip(self):
        try:
            return self.fetch_text(PUBLIC_IP_URL, timeout=10).strip()
        except DownloadError as e:
            logger.warning("public ip lookup failed: %s", e)
            return "<服务器IP>"
