# core/storage/screenshot_storage.py
import datetime
import stat
from pathlib import Path
from threading import Lock
from typing import Dict, Optional
from utils.data_models import ImageArtifact, PersistResult, PersistStatus
from utils.errors import StorageError
from utils.logger import setup_logger
from core.preprocess.deduplicator import Deduplicator
from config import config

logger = setup_logger(__name__)

SCREENSHOT_DIR_NAME = "Screenshot"
NOMEDIA_FILENAME = ".nomedia"


class ScreenshotStorage:
    """
    按日期分目录的截图存储
    - 路径: <root>/Screenshot/YYYY/MM/DD/HH_MM_SS.png
    - 每个日期目录第一次创建时放一个 .nomedia 空文件，避免被媒体库索引
    - 主目录写入失败时，在备用目录下用相同的相对路径重试一次
    - 写入后与上一张被接受的截图逐字节比较，重复则删除刚写入的文件

    last_path（上一张被接受的截图）只由 worker 线程修改
    """

    def __init__(
        self,
        root: str = None,
        fallback_root: str = None,
        deduplicator: Optional[Deduplicator] = None,
    ):
        self.root = Path(root or config.SCREENSHOT_ROOT)
        fallback = fallback_root if fallback_root is not None else config.SCREENSHOT_FALLBACK_ROOT
        self.fallback_root = Path(fallback) if fallback else None
        self.deduplicator = deduplicator or Deduplicator(chunk_size=config.DEDUP_CHUNK_SIZE)

        self._last_path: Optional[Path] = None
        self._capture_count = 0
        self._count_lock = Lock()

        logger.info(f"ScreenshotStorage initialized at: {self.root}")
        if self.fallback_root is not None:
            logger.info(f"Fallback storage root: {self.fallback_root}")

    @property
    def last_path(self) -> Optional[str]:
        path = self._last_path
        return str(path) if path is not None else None

    @property
    def capture_count(self) -> int:
        with self._count_lock:
            return self._capture_count

    @staticmethod
    def build_destination(root, timestamp: datetime.datetime) -> Path:
        """<root>/Screenshot/YYYY/MM/DD/HH_MM_SS.png"""
        return (
            Path(root)
            / SCREENSHOT_DIR_NAME
            / f"{timestamp.year:04d}"
            / f"{timestamp.month:02d}"
            / f"{timestamp.day:02d}"
            / f"{timestamp.hour:02d}_{timestamp.minute:02d}_{timestamp.second:02d}.png"
        )

    def prepare_directory(self, directory) -> Path:
        """
        确保日期目录存在（已存在时不报错）
        只有本次调用真正创建了目录时才写入 .nomedia 标记文件
        """
        directory = Path(directory)
        if directory.is_dir():
            return directory

        try:
            directory.mkdir(parents=True, exist_ok=False)
            created = True
        except FileExistsError:
            if not directory.is_dir():
                raise
            created = False

        if created:
            logger.debug(f"Created directory: {directory}")
            nomedia = directory / NOMEDIA_FILENAME
            try:
                nomedia.touch(exist_ok=True)
            except OSError as e:
                logger.error(f"Failed to create {NOMEDIA_FILENAME} in {directory}: {e}")

        return directory

    @staticmethod
    def _unique_path(path: Path) -> Path:
        # 同一秒内的两次捕捉不能覆盖已经接受的文件
        if not path.exists():
            return path
        index = 1
        while True:
            candidate = path.with_name(f"{path.stem}_{index}{path.suffix}")
            if not candidate.exists():
                return candidate
            index += 1

    def _write(self, root: Path, timestamp: datetime.datetime, data: bytes) -> Path:
        destination = self.build_destination(root, timestamp)
        self.prepare_directory(destination.parent)
        destination = self._unique_path(destination)

        try:
            with open(destination, "xb") as f:
                f.write(data)
        except OSError:
            # 不留下写了一半的文件
            if destination.exists():
                try:
                    destination.unlink()
                except OSError as e:
                    logger.error(f"Failed to remove partial file {destination}: {e}")
            raise
        return destination

    def persist(self, artifact: ImageArtifact, timestamp: datetime.datetime = None) -> PersistResult:
        """
        编码并写入一张截图，然后和上一张比较去重

        Args:
            artifact: 解码后的截图
            timestamp: 捕捉时间（默认使用 artifact.timestamp，而不是写入时的时间）

        Returns:
            PersistResult，status 为 stored 或 duplicate

        Raises:
            StorageError: 主目录和备用目录都写入失败
        """
        timestamp = timestamp or artifact.timestamp
        data = artifact.encode()

        root_label = "primary"
        try:
            path = self._write(self.root, timestamp, data)
        except OSError as e:
            if self.fallback_root is None:
                raise StorageError(f"Failed to write screenshot under {self.root}: {e}") from e
            logger.warning(
                f"Primary storage {self.root} not writable ({e}), "
                f"retrying under {self.fallback_root}"
            )
            try:
                path = self._write(self.fallback_root, timestamp, data)
                root_label = "fallback"
            except OSError as fallback_error:
                raise StorageError(
                    f"Failed to write screenshot under {self.root} and "
                    f"{self.fallback_root}: {fallback_error}"
                ) from fallback_error

        logger.debug(f"Screenshot saved to: {path}")

        if self.deduplicator.is_duplicate(path, self._last_path):
            try:
                path.unlink()
                logger.info(f"Deleted duplicate screenshot: {path}")
            except OSError as e:
                logger.error(f"Failed to delete duplicate screenshot {path}: {e}")
            return PersistResult(status=PersistStatus.DUPLICATE, path=str(path), root=root_label)

        self._last_path = path
        with self._count_lock:
            self._capture_count += 1
        logger.info(f"Stored screenshot {path}")
        return PersistResult(status=PersistStatus.STORED, path=str(path), root=root_label)

    def restore_last_path(self, now: datetime.datetime = None) -> Optional[str]:
        """
        启动时从今天的目录中找到最新的一张截图作为去重基准，
        避免重启后再存一张与重启前最后一张相同的截图
        """
        now = now or datetime.datetime.now()
        latest: Optional[Path] = None
        latest_mtime = 0.0
        roots = [self.root] if self.fallback_root is None else [self.root, self.fallback_root]

        for root in roots:
            day_dir = self.build_destination(root, now).parent
            try:
                candidates = list(day_dir.glob("*.png"))
            except OSError as e:
                logger.warning(f"Failed to scan {day_dir}: {e}")
                continue
            for candidate in candidates:
                try:
                    st = candidate.stat()
                except OSError:
                    # 扫描后被删除
                    continue
                if not stat.S_ISREG(st.st_mode):
                    continue
                if latest is None or st.st_mtime > latest_mtime:
                    latest, latest_mtime = candidate, st.st_mtime

        if latest is not None:
            self._last_path = latest
            logger.info(f"Restored last screenshot: {latest}")
        return self.last_path

    def get_stats(self) -> Dict:
        """获取统计信息"""
        return {
            "capture_count": self.capture_count,
            "last_path": self.last_path,
            "storage_path": str(self.root),
            "fallback_path": str(self.fallback_root) if self.fallback_root else None,
        }
