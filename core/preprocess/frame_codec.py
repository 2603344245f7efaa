# core/preprocess/frame_codec.py
import numpy as np
from PIL import Image
from utils.data_models import RawFrame, ImageArtifact
from utils.errors import CodecError
from utils.logger import setup_logger

logger = setup_logger(__name__)

# 像素格式 -> (每像素字节数, 通道重排, PIL 模式)
PIXEL_FORMATS = {
    "RGBA": (4, [0, 1, 2, 3], "RGBA"),
    "BGRA": (4, [2, 1, 0, 3], "RGBA"),
    "BGRX": (4, [2, 1, 0], "RGB"),
    "RGB": (3, [0, 1, 2], "RGB"),
}


class FrameCodec:
    """
    把原始帧缓冲区转换为 ImageArtifact

    缓冲区每行实际占 row_stride 字节，其中可能包含行尾填充；
    可用宽度 = row_stride / pixel_stride，解码时只保留前 width 列
    """

    def _validate(self, frame: RawFrame):
        if frame.pixel_format not in PIXEL_FORMATS:
            raise CodecError(f"Unsupported pixel format: {frame.pixel_format}")
        expected_stride = PIXEL_FORMATS[frame.pixel_format][0]

        if not frame.data:
            raise CodecError("Frame buffer is empty")
        if frame.width <= 0 or frame.height <= 0:
            raise CodecError(f"Invalid frame size: {frame.width}x{frame.height}")
        if frame.pixel_stride != expected_stride:
            raise CodecError(
                f"Pixel stride {frame.pixel_stride} does not match "
                f"{frame.pixel_format} ({expected_stride} bytes)"
            )
        if frame.row_padding < 0:
            raise CodecError(
                f"Row stride {frame.row_stride} is smaller than "
                f"{frame.width} pixels * {frame.pixel_stride} bytes"
            )
        if frame.row_stride % frame.pixel_stride != 0:
            raise CodecError(
                f"Row stride {frame.row_stride} is not a multiple of "
                f"pixel stride {frame.pixel_stride}"
            )

        # 最后一行可以不带填充
        required = frame.row_stride * (frame.height - 1) + frame.width * frame.pixel_stride
        if len(frame.data) < required:
            raise CodecError(
                f"Frame buffer too short: {len(frame.data)} bytes, "
                f"{frame.width}x{frame.height} needs {required}"
            )

    def decode(self, frame: RawFrame) -> ImageArtifact:
        """
        解码一帧，相同的输入字节总是得到相同的像素

        Raises:
            CodecError: 缓冲区为空、尺寸无效或 stride 与尺寸不一致
        """
        self._validate(frame)
        _, channel_order, mode = PIXEL_FORMATS[frame.pixel_format]

        padded_width = frame.row_stride // frame.pixel_stride
        full_size = frame.row_stride * frame.height

        buffer = np.frombuffer(frame.data, dtype=np.uint8)
        if buffer.size < full_size:
            # 补齐最后一行缺失的填充字节
            buffer = np.concatenate([buffer, np.zeros(full_size - buffer.size, dtype=np.uint8)])
        else:
            buffer = buffer[:full_size]

        pixels = buffer.reshape(frame.height, padded_width, frame.pixel_stride)
        # 去掉行尾的填充列，并把通道顺序统一为 RGB(A)
        pixels = pixels[:, :frame.width, channel_order]
        image = Image.fromarray(np.ascontiguousarray(pixels))
        if image.mode != mode:
            image = image.convert(mode)

        if padded_width != frame.width:
            logger.debug(
                f"Removed row padding: buffer width {padded_width} -> {frame.width}"
            )

        return ImageArtifact(
            image=image,
            width=frame.width,
            height=frame.height,
            padded_width=padded_width,
            timestamp=frame.timestamp,
        )
