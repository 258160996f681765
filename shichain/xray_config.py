"""
Xray 配置生成

两种角色：
- relay: 国内中转，VLESS 入站，VMess + HTTP 伪装出站到落地机
- outbound: 国外落地，VMess + HTTP 伪装入站，freedom 直连出站

render_* 均为纯函数，只返回 dict，写文件由 write_config 负责。
"""
import json
import logging
import os
import uuid
from dataclasses import dataclass, field
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_RELAY_PORT = 9921
DEFAULT_UPSTREAM_PORT = 21432
DEFAULT_UPSTREAM_UUID = "205b09fa-31a3-499b-8450-3114e83ad092"
DEFAULT_PATH = "/aVerySecretPath"
DEFAULT_MUX = -1
DEFAULT_SEND_THROUGH = "0.0.0.0"

CAMOUFLAGE_HOSTS = (
    "872r7f20.divarcdn.com",
    "872r7f20.snappfood.ir",
    "872r7f20.yjc.ir",
    "872r7f20.digikala.com",
    "872r7f20.tic.ir",
)
CAMOUFLAGE_USER_AGENTS = (
    "Mozilla/5.0 (Windows NT 10.0; WOW64) AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/55.0.2883.75 Safari/537.36",
    "Mozilla/5.0 (iPhone; CPU iPhone OS 10_0_2 like Mac OS X) AppleWebKit/601.1 (KHTML, like Gecko) "
    "CriOS/53.0.2785.109 Mobile/14A456 Safari/601.1.46",
)

INBOUND_TAG = "inbound-main"


def generate_uuid():
    return str(uuid.uuid4())


@dataclass(frozen=True)
class RelayParameters:
    upstream_host: str
    port: int = DEFAULT_RELAY_PORT
    client_id: str = field(default_factory=generate_uuid)
    upstream_port: int = DEFAULT_UPSTREAM_PORT
    upstream_id: str = DEFAULT_UPSTREAM_UUID
    upstream_path: str = DEFAULT_PATH
    mux: int = DEFAULT_MUX

    role = "relay"

    @property
    def mux_enabled(self):
        return self.mux != -1


@dataclass(frozen=True)
class OutboundParameters:
    port: int = DEFAULT_UPSTREAM_PORT
    client_id: str = DEFAULT_UPSTREAM_UUID
    path: str = DEFAULT_PATH
    send_through: str = DEFAULT_SEND_THROUGH

    role = "outbound"


def _log_section(log_path):
    log_path = Path(log_path)
    return {
        "access": str(log_path / "access.log"),
        "error": str(log_path / "error.log"),
        "loglevel": "warning",
    }


def _domain_rule(outbound_tag, *domains):
    return {"type": "field", "outboundTag": outbound_tag, "domain": list(domains)}


def relay_routing_rules(dat_name="iran.dat"):
    """按顺序匹配，命中第一条即生效；最后一条兜底走隧道"""
    return [
        {"type": "field", "inboundTag": ["api"], "outboundTag": "api"},
        {"type": "field", "outboundTag": "block", "ip": ["geoip:private"]},
        {"type": "field", "outboundTag": "block", "protocol": ["bittorrent"]},
        _domain_rule("out", "regexp:.ir$"),
        _domain_rule("out", f"ext:{dat_name}:ir"),
        _domain_rule("out", f"ext:{dat_name}:other"),
        _domain_rule("block", f"ext:{dat_name}:ads", "geosite:category-ads-all"),
        {"type": "field", "outboundTag": "proxy", "network": "udp,tcp"},
    ]


def render_relay_config(params, log_path, dat_name="iran.dat"):
    upstream_stream = {
        "network": "tcp",
        "tcpSettings": {
            "header": {
                "type": "http",
                "request": {
                    "version": "1.1",
                    "method": "GET",
                    "path": [params.upstream_path],
                    "headers": {
                        "Host": list(CAMOUFLAGE_HOSTS),
                        "User-Agent": list(CAMOUFLAGE_USER_AGENTS),
                        "Accept-Encoding": ["gzip, deflate"],
                        "Connection": ["keep-alive"],
                        "Pragma": "no-cache",
                    },
                },
            }
        },
    }
    return {
        "log": _log_section(log_path),
        "inbounds": [
            {
                "port": params.port,
                "protocol": "vless",
                "settings": {
                    "clients": [
                        {"id": params.client_id, "alterId": 0, "email": "t@t.tt", "flow": ""}
                    ],
                    "decryption": "none",
                },
                "streamSettings": {
                    "network": "tcp",
                    "tcpSettings": {"header": {"type": "http"}},
                },
                "tag": INBOUND_TAG,
            }
        ],
        "outbounds": [
            {"tag": "out", "protocol": "freedom", "settings": {}},
            {
                "tag": "proxy",
                "protocol": "vmess",
                "settings": {
                    "vnext": [
                        {
                            "address": params.upstream_host,
                            "port": params.upstream_port,
                            "users": [
                                {
                                    "id": params.upstream_id,
                                    "alterId": 0,
                                    "email": "t@t.tt",
                                    "security": "auto",
                                }
                            ],
                        }
                    ]
                },
                "streamSettings": upstream_stream,
                "mux": {"enabled": params.mux_enabled, "concurrency": params.mux},
            },
            {"tag": "block", "protocol": "blackhole", "settings": {}},
        ],
        "routing": {"rules": relay_routing_rules(dat_name)},
    }


def render_outbound_config(params, log_path):
    return {
        "log": _log_section(log_path),
        "routing": {
            "domainStrategy": "IPIfNonMatch",
            "rules": [
                {"type": "field", "outboundTag": "blocked", "protocol": ["bittorrent"]},
                {"type": "field", "inboundTag": INBOUND_TAG, "outboundTag": "out"},
            ],
        },
        "dns": None,
        "inbounds": [
            {
                "listen": None,
                "port": params.port,
                "protocol": "vmess",
                "settings": {
                    "clients": [{"alterId": 0, "email": "tfccjos", "id": params.client_id}],
                    "disableInsecureEncryption": False,
                },
                "streamSettings": {
                    "network": "tcp",
                    "security": "none",
                    "tcpSettings": {
                        "acceptProxyProtocol": False,
                        "header": {
                            "type": "http",
                            "request": {"method": "GET", "path": [params.path]},
                        },
                    },
                },
                "tag": INBOUND_TAG,
                "sniffing": {"enabled": False},
            }
        ],
        "outbounds": [
            {
                "tag": "out",
                "sendThrough": params.send_through,
                "protocol": "freedom",
                "streamSettings": {"sockopt": {"tcpFastOpen": True}},
                "settings": {"domainStrategy": "AsIs"},
            },
            {"tag": "blocked", "protocol": "blackhole", "settings": {}},
        ],
    }


def render_config(params, settings):
    if params.role == "relay":
        return render_relay_config(params, settings.log_path, settings.dat_path.name)
    return render_outbound_config(params, settings.log_path)


def dumps(config):
    return json.dumps(config, indent=2, ensure_ascii=False) + "\n"


def write_config(config, path):
    """覆盖写入配置文件，先写临时文件再替换"""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    tmp.write_text(dumps(config), encoding="utf-8")
    os.chmod(tmp, 0o644)
    tmp.replace(path)
    logger.info("xray config written to %s", path)
    return path
