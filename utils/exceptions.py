"""
Custom Exceptions
自定义异常类
"""


class ReleaseEngineError(Exception):
    """发布引擎基础异常类"""

    def __init__(self, message: str, details: dict = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def __str__(self):
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class ConfigurationError(ReleaseEngineError):
    """配置错误 (缺少 API Key 或参数无效)"""
    pass


class ProviderError(ReleaseEngineError):
    """数据源错误 (日历、官方报告、网页抓取)"""

    def __init__(self, message: str, source: str = None, **kwargs):
        super().__init__(message, kwargs)
        self.source = source


class StoreError(ReleaseEngineError):
    """持久化写入失败, 本次修改未提交"""
    pass


class StepError(ReleaseEngineError):
    """流水线步骤无法完成 (缺少上游产物或字段)"""

    def __init__(self, message: str, step: str = None, **kwargs):
        super().__init__(message, kwargs)
        self.step = step


class LLMError(ReleaseEngineError):
    """LLM 调用失败或输出不可用"""

    def __init__(self, message: str, provider: str = None, **kwargs):
        super().__init__(message, kwargs)
        self.provider = provider


class DeliveryError(ReleaseEngineError):
    """消息推送失败"""

    def __init__(self, message: str, channel: str = None, **kwargs):
        super().__init__(message, kwargs)
        self.channel = channel
