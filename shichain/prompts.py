import ipaddress
import uuid

from shichain import ui
from shichain.errors import ShiChainError
from shichain.xray_config import (
    DEFAULT_MUX,
    DEFAULT_PATH,
    DEFAULT_RELAY_PORT,
    DEFAULT_SEND_THROUGH,
    DEFAULT_UPSTREAM_PORT,
    DEFAULT_UPSTREAM_UUID,
    OutboundParameters,
    RelayParameters,
    generate_uuid,
)


def validate_port(port):
    port = int(port)
    if not 1 <= port <= 65535:
        raise ValueError(f"端口超出范围: {port}")
    return port


def validate_path(path):
    if not path.startswith("/"):
        path = "/" + path
    return path


def validate_uuid(value):
    return str(uuid.UUID(value))


def validate_mux(value):
    mux = int(value)
    if mux != -1 and not 1 <= mux <= 1024:
        raise ValueError(f"mux 并发数只能是 -1 或 1-1024: {mux}")
    return mux


def validate_address(address):
    ipaddress.ip_address(address)
    return address


class ParameterCollector:
    """从命令行参数或交互输入收集安装参数

    overrides 中已给出的值不再提问；assume_defaults=True 时其余参数直接取默认值。
    """

    def __init__(self, overrides=None, assume_defaults=False, reader=input):
        self.overrides = {k: v for k, v in (overrides or {}).items() if v is not None}
        self.assume_defaults = assume_defaults
        self.reader = reader

    def _value(self, key, prompt, default, convert=str):
        if key in self.overrides:
            try:
                return convert(self.overrides[key])
            except ValueError as e:
                raise ShiChainError(f"参数 {key} 无效: {e}") from e
        if self.assume_defaults and default is not None:
            return convert(default)
        while True:
            raw = ui.ask(prompt, default, reader=self.reader)
            if raw is None:
                ui.print_err("该项不能为空")
                continue
            try:
                return convert(raw)
            except ValueError as e:
                ui.print_err(f"输入无效: {e}")

    def relay(self):
        port = self._value("port", "客户端连接端口", DEFAULT_RELAY_PORT, validate_port)
        local_id = generate_uuid()
        client_id = self._value("uuid", "中转服务器 UUID", local_id, validate_uuid)
        upstream_host = self._value("host", "落地服务器地址", None)
        upstream_port = self._value("upstream_port", "落地服务器端口", DEFAULT_UPSTREAM_PORT, validate_port)
        upstream_id = self._value("upstream_uuid", "落地服务器 UUID", DEFAULT_UPSTREAM_UUID, validate_uuid)
        upstream_path = self._value("path", "落地服务器路径", DEFAULT_PATH, validate_path)
        mux = self._value("mux", "mux 并发数 (-1 为关闭)", DEFAULT_MUX, validate_mux)
        return RelayParameters(
            upstream_host=upstream_host,
            port=port,
            client_id=client_id,
            upstream_port=upstream_port,
            upstream_id=upstream_id,
            upstream_path=upstream_path,
            mux=mux,
        )

    def outbound(self):
        return OutboundParameters(
            port=self._value("port", "入站端口", DEFAULT_UPSTREAM_PORT, validate_port),
            client_id=self._value("uuid", "入站 UUID", DEFAULT_UPSTREAM_UUID, validate_uuid),
            path=self._value("path", "入站路径", DEFAULT_PATH, validate_path),
            send_through=self._value("send_through", "出站源 IP", DEFAULT_SEND_THROUGH, validate_address),
        )
