import logging
import os
import pwd
import subprocess
import time
from dataclasses import dataclass
from pathlib import Path

from shichain import ui
from shichain.errors import ServiceError, UserLookupError
from shichain.settings import SERVICE_NAME

logger = logging.getLogger(__name__)

NET_CAPABILITIES = ("CAP_NET_ADMIN", "CAP_NET_BIND_SERVICE")

UNIT_TEMPLATE = """[Unit]
Description=ShiChain Service
Documentation=https://github.com/shinya-dono/shichain
After=network.target nss-lookup.target

[Service]
User={user}
{capability_bounding_set}
{ambient_capabilities}
{no_new_privileges}
Environment=XRAY_LOCATION_ASSET={asset_dir}
ExecStart={xray_path} run -config {config_path}
Restart=on-failure
RestartPreventExitStatus=23
LimitNPROC=10000
LimitNOFILE=1000000

[Install]
WantedBy=multi-user.target
"""


@dataclass(frozen=True)
class RunAsUser:
    name: str
    uid: int
    gid: int

    @classmethod
    def lookup(cls, name):
        try:
            entry = pwd.getpwnam(name)
        except KeyError as e:
            raise UserLookupError(f"用户 '{name}' 不存在") from e
        return cls(name=name, uid=entry.pw_uid, gid=entry.pw_gid)

    @property
    def is_root(self):
        return self.uid == 0


@dataclass(frozen=True)
class ServiceUnit:
    user: str
    xray_path: Path
    config_path: Path
    asset_dir: Path
    capabilities: tuple = NET_CAPABILITIES
    no_new_privileges: bool = True
    # 以 root 运行时不需要额外授权，相关行注释掉
    privileged: bool = False

    @classmethod
    def for_user(cls, run_as, settings):
        return cls(
            user=run_as.name,
            xray_path=settings.xray_path,
            config_path=settings.config_path,
            asset_dir=settings.dat_path.parent,
            privileged=run_as.is_root,
        )


def render_unit(unit):
    prefix = "#" if unit.privileged else ""
    caps = " ".join(unit.capabilities)
    return UNIT_TEMPLATE.format(
        user=unit.user,
        capability_bounding_set=f"{prefix}CapabilityBoundingSet={caps}",
        ambient_capabilities=f"{prefix}AmbientCapabilities={caps}",
        no_new_privileges=f"{prefix}NoNewPrivileges={'true' if unit.no_new_privileges else 'false'}",
        asset_dir=unit.asset_dir,
        xray_path=unit.xray_path,
        config_path=unit.config_path,
    )


class ServiceRegistrar:
    """写入 systemd 单元并管理 shichain 服务"""

    def __init__(self, settings, run=subprocess.run, sleep=time.sleep):
        self.settings = settings
        self.run = run
        self.sleep = sleep

    def _systemctl(self, *args, check=True, capture_output=False):
        cmd = ["systemctl", *args]
        logger.debug("run: %s", " ".join(cmd))
        result = self.run(cmd, check=False, capture_output=capture_output, text=True)
        if check and result.returncode != 0:
            raise ServiceError(f"命令执行失败: {' '.join(cmd)}")
        return result

    def register(self, unit):
        unit_path = self.settings.unit_path
        unit_path.parent.mkdir(parents=True, exist_ok=True)
        unit_path.write_text(render_unit(unit))
        os.chmod(unit_path, 0o644)
        logger.info("service unit written to %s", unit_path)
        # 必须先重载，新的单元才能被 systemd 识别
        self._systemctl("daemon-reload")
        self._systemctl("enable", SERVICE_NAME)
        ui.print_ok(f"systemd 服务已写入: {unit_path}")
        return unit_path

    def start(self, wait=1):
        if not self.settings.unit_path.exists():
            raise ServiceError(f"服务文件不存在: {self.settings.unit_path}")
        self._systemctl("start", SERVICE_NAME)
        self.sleep(wait)
        if not self.is_active():
            raise ServiceError("ShiChain 启动失败，请执行 journalctl -u shichain 查看日志")
        ui.print_ok("ShiChain 已启动")

    def is_active(self):
        return self._systemctl("-q", "is-active", SERVICE_NAME, check=False).returncode == 0

    def unregister(self):
        self._systemctl("stop", SERVICE_NAME, check=False)
        self._systemctl("disable", SERVICE_NAME, check=False)
        unit_path = self.settings.unit_path
        if unit_path.exists():
            unit_path.unlink()
            logger.info("service unit removed: %s", unit_path)
        self._systemctl("daemon-reload")
