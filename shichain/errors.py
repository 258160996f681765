class ShiChainError(Exception):
    """安装流程中所有可预期错误的基类"""


class UnsupportedPlatformError(ShiChainError):
    def __init__(self, kind, message):
        super().__init__(message)
        self.kind = kind


class DependencyError(ShiChainError):
    pass


class DownloadError(ShiChainError):
    def __init__(self, url, message, retryable=True):
        super().__init__(f"{message}: {url}")
        self.url = url
        self.retryable = retryable


class ChecksumError(ShiChainError):
    pass


class UserLookupError(ShiChainError):
    pass


class ServiceError(ShiChainError):
    pass
