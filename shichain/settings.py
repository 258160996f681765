import os
from dataclasses import dataclass
from pathlib import Path

# ------------------ 全局配置 ------------------
XRAY_VERSION = "v1.8.4"
XRAY_DOWNLOAD_URL = "https://github.com/XTLS/Xray-core/releases/download/{version}/Xray-linux-{arch}.zip"
IRAN_DAT_URL = "https://github.com/MasterKia/iran-hosted-domains/releases/latest/download/iran.dat"
NAMIZUN_SETUP_URL = "https://raw.githubusercontent.com/malkemit/namizun/master/else/setup.sh"
BBR_SCRIPT_URL = "https://github.com/teddysun/across/raw/master/bbr.sh"
PUBLIC_IP_URL = "https://icanhazip.com"

SERVICE_NAME = "shichain"
SYSTEMD_DIR = Path("/etc/systemd/system")
DEBUG_LOG_NAME = "installer.log"


@dataclass(frozen=True)
class Settings:
    """运行期路径与参数，启动时从环境变量读取一次"""

    install_path: Path = Path("/etc/shichain")
    xray_path: Path = Path("/etc/shichain/xray")
    config_path: Path = Path("/etc/shichain/config.json")
    dat_path: Path = Path("/etc/shichain/iran.dat")
    log_path: Path = Path("/var/log/shichain")
    install_user: str = "nobody"
    proxy: str = ""
    systemd_dir: Path = SYSTEMD_DIR
    xray_version: str = XRAY_VERSION

    @classmethod
    def from_env(cls, environ=None, proxy=None):
        env = os.environ if environ is None else environ
        install_path = Path(env.get("INSTALL_PATH") or "/etc/shichain")
        return cls(
            install_path=install_path,
            xray_path=Path(env.get("XRAY_PATH") or install_path / "xray"),
            config_path=Path(env.get("CONFIG_PATH") or install_path / "config.json"),
            dat_path=Path(env.get("IRAN_DAT_FILE") or install_path / "iran.dat"),
            log_path=Path(env.get("LOG_PATH") or "/var/log/shichain"),
            install_user=env.get("INSTALL_USER") or "nobody",
            proxy=proxy if proxy is not None else env.get("PROXY", ""),
        )

    @property
    def unit_path(self):
        return self.systemd_dir / f"{SERVICE_NAME}.service"

    @property
    def access_log(self):
        return self.log_path / "access.log"

    @property
    def error_log(self):
        return self.log_path / "error.log"

    @property
    def debug_log(self):
        return self.log_path / DEBUG_LOG_NAME

    @property
    def proxies(self):
        if not self.proxy:
            return None
        return {"http": self.proxy, "https": self.proxy}
