import streamlit as st

from shichain import xray_config
from shichain.prompts import validate_address, validate_mux, validate_path, validate_port, validate_uuid
from shichain.service import RunAsUser, ServiceUnit, render_unit
from shichain.settings import Settings
from shichain.share import build_vless_link


def build_params(role, form):
    """把表单输入转换为安装参数，校验失败时抛出 ValueError"""
    if role == "relay":
        if not form["host"]:
            raise ValueError("落地服务器地址不能为空")
        return xray_config.RelayParameters(
            upstream_host=form["host"],
            port=validate_port(form["port"]),
            client_id=validate_uuid(form["uuid"] or xray_config.generate_uuid()),
            upstream_port=validate_port(form["upstream_port"]),
            upstream_id=validate_uuid(form["upstream_uuid"]),
            upstream_path=validate_path(form["path"]),
            mux=validate_mux(form["mux"]),
        )
    return xray_config.OutboundParameters(
        port=validate_port(form["port"]),
        client_id=validate_uuid(form["uuid"]),
        path=validate_path(form["path"]),
        send_through=validate_address(form["send_through"]),
    )


def main():
    st.title("ShiChain 配置生成器")
    st.markdown("""
    ### 功能说明
    在浏览器里生成 ShiChain 的 Xray 配置文件与 systemd 服务文件，只做预览和下载，不会修改当前主机。
    实际安装请在服务器上以 root 运行 `shichain`。
    """)

    settings = Settings.from_env()
    role = st.radio("角色", ["relay", "outbound"], format_func=lambda r: "国内中转" if r == "relay" else "国外落地")

    with st.form("params"):
        form = {}
        if role == "relay":
            form["port"] = st.number_input("客户端连接端口", 1, 65535, xray_config.DEFAULT_RELAY_PORT)
            form["uuid"] = st.text_input("中转服务器 UUID (留空自动生成)")
            form["host"] = st.text_input("落地服务器地址")
            form["upstream_port"] = st.number_input("落地服务器端口", 1, 65535, xray_config.DEFAULT_UPSTREAM_PORT)
            form["upstream_uuid"] = st.text_input("落地服务器 UUID", xray_config.DEFAULT_UPSTREAM_UUID)
            form["path"] = st.text_input("落地服务器路径", xray_config.DEFAULT_PATH)
            form["mux"] = st.number_input("mux 并发数 (-1 为关闭)", -1, 1024, xray_config.DEFAULT_MUX)
        else:
            form["port"] = st.number_input("入站端口", 1, 65535, xray_config.DEFAULT_UPSTREAM_PORT)
            form["uuid"] = st.text_input("入站 UUID", xray_config.DEFAULT_UPSTREAM_UUID)
            form["path"] = st.text_input("入站路径", xray_config.DEFAULT_PATH)
            form["send_through"] = st.text_input("出站源 IP", xray_config.DEFAULT_SEND_THROUGH)
        user = st.text_input("运行用户", settings.install_user)
        uid = st.number_input("用户 UID", 0, 2 ** 31, 65534)
        submitted = st.form_submit_button("生成配置")

    if not submitted:
        return

    try:
        params = build_params(role, form)
    except ValueError as e:
        st.error(f"✗ 参数错误: {e}")
        return

    config = xray_config.render_config(params, settings)
    config_text = xray_config.dumps(config)
    run_as = RunAsUser(name=user, uid=int(uid), gid=int(uid))
    unit_text = render_unit(ServiceUnit.for_user(run_as, settings))

    st.success("✓ 配置已生成")
    st.subheader(str(settings.config_path))
    st.code(config_text, language="json")
    st.download_button("下载 config.json", config_text, file_name="config.json", mime="application/json")

    st.subheader(str(settings.unit_path))
    st.code(unit_text, language="ini")
    st.download_button("下载 shichain.service", unit_text, file_name="shichain.service")

    if role == "relay":
        st.subheader("分享链接")
        st.code(build_vless_link(params.client_id, "<服务器IP>", params.port))


if __name__ == "__main__":
    main()
