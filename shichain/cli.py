import argparse
import logging
import sys

from shichain import __version__, ui
from shichain.errors import ShiChainError
from shichain.installer import ShiChainInstaller
from shichain.prompts import ParameterCollector
from shichain.settings import Settings

logger = logging.getLogger("shichain")

ACTIONS = ["menu", "relay", "outbound", "namizun", "bbr", "fix-apt", "status", "uninstall"]


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        prog="shichain",
        description="ShiChain: 安装 Xray 并配置 国内中转 -> 国外落地 隧道",
        epilog="路径可通过环境变量覆盖: INSTALL_PATH XRAY_PATH CONFIG_PATH IRAN_DAT_FILE LOG_PATH INSTALL_USER PROXY",
    )
    parser.add_argument("action", nargs="?", default="menu", choices=ACTIONS, help="操作类型 (默认: menu)")
    parser.add_argument("--port", "-p", type=int, help="本机入站端口")
    parser.add_argument("--uuid", "-u", help="本机入站 UUID")
    parser.add_argument("--host", help="落地服务器地址 (relay)")
    parser.add_argument("--upstream-port", type=int, dest="upstream_port", help="落地服务器端口 (relay)")
    parser.add_argument("--upstream-uuid", dest="upstream_uuid", help="落地服务器 UUID (relay)")
    parser.add_argument("--path", help="HTTP 伪装路径")
    parser.add_argument("--mux", type=int, help="mux 并发数，-1 为关闭 (relay)")
    parser.add_argument("--send-through", dest="send_through", help="出站源 IP (outbound)")
    parser.add_argument("--yes", "-y", action="store_true", help="未指定的参数直接使用默认值，不再提问")
    parser.add_argument("--proxy", help="下载时使用的 HTTP 代理，覆盖 PROXY 环境变量")
    parser.add_argument("--verbose", "-v", action="store_true", help="在终端输出调试日志")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser.parse_args(argv)


def setup_logging(settings, verbose=False):
    logger.setLevel(logging.DEBUG)
    fmt = logging.Formatter("[%(asctime)s] %(levelname)s %(name)s: %(message)s", "%Y-%m-%d %H:%M:%S")
    try:
        settings.log_path.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(settings.debug_log, encoding="utf-8")
    except OSError:
        handler = logging.NullHandler()
    handler.setFormatter(fmt)
    logger.addHandler(handler)
    if verbose:
        console = logging.StreamHandler(sys.stderr)
        console.setFormatter(fmt)
        logger.addHandler(console)


def collector_from_args(args):
    overrides = {
        "port": args.port,
        "uuid": args.uuid,
        "host": args.host,
        "upstream_port": args.upstream_port,
        "upstream_uuid": args.upstream_uuid,
        "path": args.path,
        "mux": args.mux,
        "send_through": args.send_through,
    }
    return ParameterCollector(overrides=overrides, assume_defaults=args.yes)


def dispatch(installer, args):
    action = args.action
    if action == "status":
        installer.status()
        return 0
    if action in ("bbr", "fix-apt", "uninstall"):
        installer.require_root()
        if action == "bbr":
            installer.install_bbr()
        elif action == "fix-apt":
            installer.fix_apt_sources()
        else:
            installer.uninstall()
        return 0

    if action == "relay" and args.yes and not args.host:
        raise ShiChainError("relay 模式使用 --yes 时必须指定 --host")
    installer.pre_checks()
    if action == "relay":
        installer.install_relay(collector_from_args(args))
    elif action == "outbound":
        installer.install_outbound(collector_from_args(args))
    elif action == "namizun":
        installer.install_namizun()
    else:
        return installer.main_menu()
    return 0


def main(argv=None):
    args = parse_args(argv)
    settings = Settings.from_env(proxy=args.proxy)
    setup_logging(settings, verbose=args.verbose)
    logger.debug("settings: %s", settings)

    installer = ShiChainInstaller(settings)
    try:
        code = dispatch(installer, args)
    except ShiChainError as e:
        logger.error("aborted: %s", e)
        ui.print_err(str(e))
        sys.exit(1)
    except (KeyboardInterrupt, EOFError):
        print()
        ui.print_warn("已中断")
        sys.exit(130)
    sys.exit(code)


if __name__ == "__main__":
    main()
