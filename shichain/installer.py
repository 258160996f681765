import logging
import os
import shutil
import subprocess
import tempfile
from pathlib import Path

from shichain import ui
from shichain.errors import ShiChainError
from shichain.fetcher import ArtifactFetcher
from shichain.packages import PackageInstaller
from shichain.platforms import PlatformDetector
from shichain.prompts import ParameterCollector
from shichain.service import RunAsUser, ServiceRegistrar, ServiceUnit
from shichain.settings import BBR_SCRIPT_URL, NAMIZUN_SETUP_URL, SERVICE_NAME
from shichain.share import build_vless_link, print_qr
from shichain.xray_config import render_config, write_config

logger = logging.getLogger(__name__)

ASIATECH_SOURCES = (
    "deb http://archive.ubuntu.asiatech.ir/ jammy main\n"
    "deb-src http://archive.ubuntu.asiatech.ir/ jammy main\n"
)

GEO_ASSETS = ("geoip.dat", "geosite.dat")

MENU = """
\t 1. 安装国内中转 [relay]
\t 2. 安装国外落地 [outbound]
\t 3. 安装 namizun

\t 0. 退出
"""


def _install_file(source, target, mode):
    """写到同目录临时文件再 rename 覆盖，正在运行的旧二进制不受影响 (避免 ETXTBSY)"""
    target = Path(target)
    target.parent.mkdir(parents=True, exist_ok=True)
    staged = target.with_name(target.name + ".new")
    shutil.copyfile(source, staged)
    os.chmod(staged, mode)
    os.replace(staged, target)


class ShiChainInstaller:
    def __init__(self, settings, detector=None, fetcher=None, registrar=None, run=subprocess.run,
                 reader=input, which=shutil.which, lookup_user=RunAsUser.lookup, geteuid=os.geteuid):
        self.settings = settings
        self.detector = detector or PlatformDetector(which=which, run=run)
        self.fetcher = fetcher or ArtifactFetcher(settings, run=run)
        self.registrar = registrar or ServiceRegistrar(settings, run=run)
        self.run = run
        self.reader = reader
        self.which = which
        self.lookup_user = lookup_user
        self.geteuid = geteuid
        self.platform = None
        self.run_as = None
        self.packages = None

    # ------------------ 前置检查 ------------------
    def require_root(self):
        if self.geteuid() != 0:
            raise ShiChainError("请使用 root 权限运行此脚本")

    def pre_checks(self):
        self.require_root()
        self.platform = self.detector.detect()
        self.run_as = self.lookup_user(self.settings.install_user)
        self.packages = PackageInstaller(self.platform.package_manager, which=self.which, run=self.run)
        self.packages.ensure("curl", "curl")
        self.packages.ensure("unzip", "unzip")
        logger.info("pre-checks passed: arch=%s user=%s uid=%s",
                    self.platform.arch, self.run_as.name, self.run_as.uid)

    # ------------------ 安装步骤 ------------------
    def install_xray(self):
        settings = self.settings
        workdir = None
        try:
            settings.install_path.mkdir(parents=True, exist_ok=True)
            settings.log_path.mkdir(parents=True, exist_ok=True)
            workdir = Path(tempfile.mkdtemp(prefix="shichain-"))
            binary = self.fetcher.fetch_xray(self.platform.arch, workdir)
            _install_file(binary, settings.xray_path, 0o755)

            # geoip:/geosite: 规则从 XRAY_LOCATION_ASSET 目录加载
            asset_dir = settings.dat_path.parent
            for name in GEO_ASSETS:
                source = workdir / name
                if not source.is_file():
                    raise ShiChainError(f"Xray 压缩包中缺少 {name}")
                _install_file(source, asset_dir / name, 0o644)
            self._chown_tree(settings.log_path)
        except OSError as e:
            raise ShiChainError(f"安装 Xray 失败: {e}") from e
        finally:
            if workdir is not None:
                shutil.rmtree(workdir, ignore_errors=True)
        ui.print_ok(f"Xray {settings.xray_version} 已安装到 {settings.xray_path}")

    def _chown_tree(self, root):
        uid, gid = self.run_as.uid, self.run_as.gid
        os.chown(root, uid, gid)
        for dirpath, dirnames, filenames in os.walk(root):
            for name in dirnames + filenames:
                os.chown(os.path.join(dirpath, name), uid, gid)

    def configure(self, params):
        config = render_config(params, self.settings)
        write_config(config, self.settings.config_path)
        ui.print_ok(f"配置文件已写入 {self.settings.config_path}")
        return config

    def register_and_start(self):
        unit = ServiceUnit.for_user(self.run_as, self.settings)
        self.registrar.register(unit)
        self.registrar.start()

    # ------------------ 安装流程 ------------------
    def install_relay(self, collector=None):
        collector = collector or ParameterCollector(reader=self.reader)
        self.install_xray()
        params = collector.relay()
        self.configure(params)
        self.fetcher.fetch_domain_list()
        self.register_and_start()

        link = build_vless_link(params.client_id, self.fetcher.public_ip(), params.port)
        ui.print_ok("ShiChain 安装成功!")
        ui.print_info("可以使用以下配置连接到 ShiChain:")
        print()
        ui.print_warn(link)
        print()
        self.packages.ensure("qrencode", "qrencode")
        ui.print_info("或者扫描下面的二维码:")
        print_qr(link, run=self.run)
        return params

    def install_outbound(self, collector=None):
        collector = collector or ParameterCollector(reader=self.reader)
        self.install_xray()
        params = collector.outbound()
        self.configure(params)
        self.register_and_start()

        ui.print_ok("ShiChain 安装成功!")
        ui.print_info("在中转服务器上填写以下信息:")
        ui.print_warn(f"host: {self.fetcher.public_ip()}")
        ui.print_warn(f"port: {params.port}")
        ui.print_warn(f"uuid: {params.client_id}")
        ui.print_warn(f"path: {params.path}")
        return params

    def _run_remote_script(self, url, name):
        with tempfile.TemporaryDirectory(prefix="shichain-") as tmpdir:
            script = self.fetcher.download(url, Path(tmpdir) / name)
            os.chmod(script, 0o755)
            result = self.run(["bash", str(script)], check=False)
        if result.returncode != 0:
            raise ShiChainError(f"{name} 执行失败 (exit {result.returncode})")

    def install_namizun(self):
        self._run_remote_script(NAMIZUN_SETUP_URL, "namizun-setup.sh")
        ui.print_ok("namizun 安装完成")

    def install_bbr(self):
        self._run_remote_script(BBR_SCRIPT_URL, "bbr.sh")
        ui.print_ok("BBR 安装完成")

    def fix_apt_sources(self, sources_list=Path("/etc/apt/sources.list")):
        """将 apt 源替换为 Asiatech 镜像 (Ubuntu jammy)"""
        if not ui.confirm(f"将覆盖 {sources_list}，是否继续?", reader=self.reader):
            ui.print_warn("已取消")
            return False
        sources_list.write_text(ASIATECH_SOURCES)
        for component in ("universe", "multiverse"):
            self.run(["add-apt-repository", component, "-y"], stdout=subprocess.DEVNULL, check=False)
        result = self.run(["apt", "update"], stdout=subprocess.DEVNULL, check=False)
        if result.returncode != 0:
            raise ShiChainError("apt update 执行失败")
        ui.print_ok("apt 源已修复")
        return True

    # ------------------ 状态 / 卸载 ------------------
    def status(self):
        settings = self.settings
        active = self.registrar.is_active()
        print(f"{SERVICE_NAME}: {'运行' if active else '未运行'}")
        for label, path in (
            ("xray", settings.xray_path),
            ("config", settings.config_path),
            ("iran.dat", settings.dat_path),
            ("service", settings.unit_path),
        ):
            mark = "✓" if path.exists() else "✗"
            print(f"  {mark} {label}: {path}")
        return active

    def uninstall(self):
        self.registrar.unregister()
        if self.settings.install_path.exists():
            shutil.rmtree(self.settings.install_path)
        ui.print_ok("卸载完成。日志目录保留在 " + str(self.settings.log_path))

    # ------------------ 菜单 ------------------
    def main_menu(self):
        """循环显示菜单，返回 0 表示正常退出"""
        while True:
            ui.print_banner()
            ui.print_info(MENU)
            option = self.reader("请选择: ").strip()
            if option == "0":
                return 0
            if option == "1":
                self.install_relay()
            elif option == "2":
                self.install_outbound()
            elif option == "3":
                self.install_namizun()
            else:
                ui.print_err("无效选项")
                continue
            ui.pause(reader=self.reader)

