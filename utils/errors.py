# utils/errors.py
"""
捕捉流水线的错误分类

只有 SessionUnavailable 会让调度器停止；其余错误都在单次 pass 的边界上
被捕获、记录，下一次 tick 正常进行。
"""


class CaptureError(Exception):
    """所有流水线错误的基类"""


class SessionUnavailable(CaptureError):
    """捕捉会话无法打开、已被关闭或被外部撤销（致命）"""


class AcquisitionFailure(CaptureError):
    """本次 tick 没有拿到可用的帧（暂时性）"""


class CodecError(AcquisitionFailure):
    """原始帧缓冲区格式错误，无法解码（暂时性）"""


class StorageError(CaptureError):
    """主目录和备用目录都写入失败（暂时性）"""
