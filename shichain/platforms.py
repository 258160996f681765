import logging
import platform
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path

from shichain.errors import UnsupportedPlatformError

logger = logging.getLogger(__name__)

# uname -m -> Xray 发布包架构标签
ARCH_TAGS = {
    "i386": "32",
    "i686": "32",
    "amd64": "64",
    "x86_64": "64",
    "armv5tel": "arm32-v5",
    "armv6l": "arm32-v6",
    "armv7": "arm32-v7a",
    "armv7l": "arm32-v7a",
    "armv8": "arm64-v8a",
    "aarch64": "arm64-v8a",
    "mips": "mips32",
    "mipsle": "mips32le",
    "mips64": "mips64",
    "mips64le": "mips64le",
    "ppc64": "ppc64",
    "ppc64le": "ppc64le",
    "riscv64": "riscv64",
    "s390x": "s390x",
}

# 需要 vfp 才能使用硬浮点包的架构
VFP_REQUIRED = {"armv6l", "armv7", "armv7l"}


@dataclass(frozen=True)
class PackageManager:
    name: str
    install: tuple
    remove: tuple

    def install_command(self, package):
        return [*self.install, package]

    def remove_command(self, package):
        return [*self.remove, package]


# 按优先级排列
PACKAGE_MANAGERS = (
    PackageManager("apt", ("apt", "-y", "--no-install-recommends", "install"), ("apt", "purge")),
    PackageManager("dnf", ("dnf", "-y", "install"), ("dnf", "remove")),
    PackageManager("yum", ("yum", "-y", "install"), ("yum", "remove")),
    PackageManager("zypper", ("zypper", "install", "-y", "--no-recommends"), ("zypper", "remove")),
    PackageManager("pacman", ("pacman", "-Syu", "--noconfirm"), ("pacman", "-Rsn")),
    PackageManager("emerge", ("emerge", "-qv"), ("emerge", "-Cv")),
)


@dataclass(frozen=True)
class PlatformInfo:
    arch: str
    package_manager: PackageManager


class PlatformDetector:
    """探测系统、架构、init 系统与包管理器；只读，不修改任何文件"""

    def __init__(self, root="/", system=None, machine=None, which=shutil.which, run=subprocess.run):
        self.root = Path(root)
        self._system = system
        self._machine = machine
        self.which = which
        self.run = run

    def _path(self, relative):
        return self.root / relative.lstrip("/")

    def _read(self, relative):
        try:
            return self._path(relative).read_text(errors="ignore")
        except OSError:
            return ""

    def detect(self):
        system = self._system or platform.system()
        if system != "Linux":
            raise UnsupportedPlatformError("os", f"不支持的操作系统: {system}")
        arch = self.detect_arch()
        if not self._path("/etc/os-release").is_file():
            raise UnsupportedPlatformError("os", "请不要使用过旧的 Linux 发行版 (缺少 /etc/os-release)")
        if not self.has_systemd():
            raise UnsupportedPlatformError("init", "仅支持使用 systemd 的 Linux 发行版")
        manager = self.detect_package_manager()
        logger.info("platform detected: arch=%s package_manager=%s", arch, manager.name)
        return PlatformInfo(arch=arch, package_manager=manager)

    def detect_arch(self):
        machine = self._machine or platform.machine()
        tag = ARCH_TAGS.get(machine)
        if tag is None:
            raise UnsupportedPlatformError("arch", f"不支持的架构: {machine}")
        if machine in VFP_REQUIRED and not self.has_vfp():
            tag = "arm32-v5"
        elif machine == "mips64" and self.is_little_endian():
            tag = "mips64le"
        return tag

    def has_vfp(self):
        for line in self._read("/proc/cpuinfo").splitlines():
            if line.lower().startswith("features"):
                _, _, flags = line.partition(":")
                if "vfp" in flags.split():
                    return True
        return False

    def is_little_endian(self):
        try:
            result = self.run(["lscpu"], capture_output=True, text=True, check=False)
        except FileNotFoundError:
            return False
        return "Little Endian" in (result.stdout or "")

    def has_systemd(self):
        in_container = self._path("/.dockerenv").exists() or any(
            word in self._read("/proc/1/cgroup") for word in ("docker", "lxc")
        )
        if in_container and self.which("systemctl"):
            return True
        if self._path("/run/systemd/system").is_dir():
            return True
        init = self._path("/sbin/init")
        if not init.exists():
            return False
        # /sbin/init -> /lib/systemd/systemd
        return "systemd" in init.resolve().name

    def detect_package_manager(self):
        for manager in PACKAGE_MANAGERS:
            if self.which(manager.name):
                return manager
        raise UnsupportedPlatformError("package-manager", "当前系统的包管理器不受支持")
