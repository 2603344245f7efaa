# core/preprocess/deduplicator.py
from pathlib import Path
from typing import Optional, Union
from utils.logger import setup_logger

logger = setup_logger(__name__)

DEFAULT_CHUNK_SIZE = 8192

PathLike = Union[str, Path]


def files_identical(first: PathLike, second: PathLike, chunk_size: int = DEFAULT_CHUNK_SIZE) -> bool:
    """
    逐字节比较两个文件是否完全相同。
    大小不同直接返回 False；否则按固定大小分块读取比较，遇到第一个不同的块即返回 False。
    任一文件不存在或读取出错都返回 False（无法证明重复）。
    """
    first, second = Path(first), Path(second)

    try:
        if not first.is_file() or not second.is_file():
            return False
        if first.stat().st_size != second.stat().st_size:
            return False

        with open(first, "rb") as f1, open(second, "rb") as f2:
            while True:
                chunk1 = f1.read(chunk_size)
                chunk2 = f2.read(chunk_size)
                if len(chunk1) != len(chunk2):
                    return False
                if chunk1 != chunk2:
                    return False
                if not chunk1:
                    # 两个文件同时读到末尾
                    return True
    except OSError as e:
        logger.error(f"Error comparing {first} and {second}: {e}")
        return False


class Deduplicator:
    """
    只和上一张被接受的截图比较（不是全部历史）
    """

    def __init__(self, chunk_size: int = DEFAULT_CHUNK_SIZE):
        self.chunk_size = chunk_size

    def is_duplicate(self, candidate: PathLike, previous: Optional[PathLike]) -> bool:
        if previous is None:
            return False
        if Path(candidate) == Path(previous):
            # 同一个文件不能作为自己的对照
            return False
        duplicate = files_identical(candidate, previous, self.chunk_size)
        logger.debug(f"Dedup {candidate} vs {previous}: duplicate={duplicate}")
        return duplicate
