import subprocess
from urllib.parse import quote, urlencode

from shichain.xray_config import CAMOUFLAGE_HOSTS

LINK_NAME = "ShiChain"


def build_vless_link(client_id, host, port, name=LINK_NAME):
    """生成中转节点的 vless:// 分享链接"""
    query = urlencode(
        {
            "encryption": "none",
            "security": "none",
            "type": "tcp",
            "headerType": "http",
            "host": ",".join(CAMOUFLAGE_HOSTS),
        },
        quote_via=quote,
        safe="",
    )
    if ":" in host and not host.startswith("["):
        host = f"[{host}]"
    return f"vless://{client_id}@{host}:{port}?{query}#{quote(name)}"


def print_qr(link, run=subprocess.run):
    run(["qrencode", "-t", "ansiutf8", link], check=False)
