import os
import sys

RESET = "\033[0m"
RED = "\033[31m"
GREEN = "\033[32m"
YELLOW = "\033[33m"
BLUE = "\033[34m"

BANNER = r"""
 ███████╗██╗  ██╗██╗ ██████╗██╗  ██╗ █████╗ ██╗███╗   ██╗
 ██╔════╝██║  ██║██║██╔════╝██║  ██║██╔══██╗██║████╗  ██║
 ███████╗███████║██║██║     ███████║███████║██║██╔██╗ ██║
 ╚════██║██╔══██║██║██║     ██╔══██║██╔══██║██║██║╚██╗██║
 ███████║██║  ██║██║╚██████╗██║  ██║██║  ██║██║██║ ╚████║
 ╚══════╝╚═╝  ╚═╝╚═╝ ╚═════╝╚═╝  ╚═╝╚═╝  ╚═╝╚═╝╚═╝  ╚═══╝
"""


def _color(code, text):
    if not sys.stdout.isatty() or os.environ.get("NO_COLOR"):
        return text
    return f"{code}{text}{RESET}"


def print_info(text):
    print(_color(GREEN, text))


def print_ok(text):
    print(_color(GREEN, f"✓ {text}"))


def print_warn(text):
    print(_color(YELLOW, text))


def print_err(text):
    print(_color(RED, f"✗ {text}"), file=sys.stderr)


def print_banner():
    if sys.stdout.isatty():
        os.system("clear")
    for line in BANNER.strip("\n").splitlines():
        print(_color(GREEN, "\t" + line))
    print()
    print(_color(BLUE, "\tShiChain: Xray 中转 / 落地隧道一键安装助手"))


def ask(prompt, default=None, reader=input):
    """读取一行输入，直接回车时返回默认值"""
    hint = f" [{default}]" if default not in (None, "") else ""
    answer = reader(_color(GREEN, f"{prompt}{hint}: ")).strip()
    if not answer:
        return default
    return answer


def confirm(prompt, reader=input):
    answer = reader(_color(YELLOW, f"{prompt} [y/N]: ")).strip().lower()
    return answer in ("y", "yes")


def pause(reader=input):
    reader("按回车键继续...")
