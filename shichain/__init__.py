"""ShiChain: Xray 中转 / 落地一键安装工具"""

__version__ = "0.3.0"
