import logging
import shutil
import subprocess

from shichain import ui
from shichain.errors import DependencyError

logger = logging.getLogger(__name__)


class PackageInstaller:
    def __init__(self, package_manager, which=shutil.which, run=subprocess.run):
        self.package_manager = package_manager
        self.which = which
        self.run = run

    def ensure(self, package, sentinel):
        """确保 sentinel 命令可用，缺失时通过包管理器安装 package"""
        if self.which(sentinel):
            logger.debug("%s already available, skip installing %s", sentinel, package)
            return False

        cmd = self.package_manager.install_command(package)
        logger.info("installing %s: %s", package, " ".join(cmd))
        result = self.run(cmd, stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL, check=False)
        if result.returncode != 0 or not self.which(sentinel):
            raise DependencyError(f"{package} 安装失败")
        ui.print_ok(f"{package} 已安装")
        return True
