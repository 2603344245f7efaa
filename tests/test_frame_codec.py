"""
Frame codec tests: row padding removal, channel order, determinism and
malformed-buffer rejection.
"""

import numpy as np
import pytest

from core.preprocess.frame_codec import FrameCodec
from utils.data_models import RawFrame
from utils.errors import AcquisitionFailure, CodecError

from conftest import BASE_TIME, make_raw_frame


@pytest.fixture
def codec():
    return FrameCodec()


class TestRowPadding:

    def test_padding_columns_are_removed(self, codec):
        frame = make_raw_frame(color=(1, 2, 3, 255), width=3, height=2, padding_pixels=2)
        artifact = codec.decode(frame)

        assert artifact.image.size == (3, 2)
        assert artifact.width == 3
        assert artifact.height == 2
        assert artifact.padded_width == 5
        assert artifact.has_padding
        # No padding byte (0xEE) leaks into the image
        pixels = np.array(artifact.image)
        assert (pixels == [1, 2, 3, 255]).all()

    def test_unpadded_frame_reports_same_width(self, codec):
        artifact = codec.decode(make_raw_frame(width=4, height=4))
        assert artifact.padded_width == 4
        assert not artifact.has_padding

    def test_last_row_may_omit_padding(self, codec):
        frame = make_raw_frame(color=(9, 8, 7, 255), width=3, height=2, padding_pixels=1)
        # Drop the trailing padding of the final row
        frame.data = frame.data[:-4]
        artifact = codec.decode(frame)
        assert artifact.image.size == (3, 2)
        assert (np.array(artifact.image) == [9, 8, 7, 255]).all()

    def test_keeps_correct_columns(self, codec):
        width, height, padded = 3, 2, 4
        buffer = np.zeros((height, padded, 4), dtype=np.uint8)
        for x in range(width):
            buffer[:, x] = [x * 10, 0, 0, 255]
        buffer[:, width] = [200, 200, 200, 200]
        frame = RawFrame(
            data=buffer.tobytes(),
            width=width,
            height=height,
            pixel_stride=4,
            row_stride=padded * 4,
            pixel_format="RGBA",
            timestamp=BASE_TIME,
        )
        pixels = np.array(codec.decode(frame).image)
        assert pixels[0, :, 0].tolist() == [0, 10, 20]


class TestPixelFormats:

    def test_bgra_is_reordered_to_rgba(self, codec):
        frame = make_raw_frame(color=(10, 20, 30, 255), pixel_format="BGRA")
        artifact = codec.decode(frame)
        assert artifact.image.mode == "RGBA"
        assert artifact.image.getpixel((0, 0)) == (30, 20, 10, 255)

    def test_bgrx_drops_alpha(self, codec):
        frame = make_raw_frame(color=(10, 20, 30, 0), pixel_format="BGRX")
        artifact = codec.decode(frame)
        assert artifact.image.mode == "RGB"
        assert artifact.image.getpixel((0, 0)) == (30, 20, 10)

    def test_rgb_three_byte_pixels(self, codec):
        frame = make_raw_frame(color=(5, 6, 7), pixel_format="RGB", padding_pixels=1)
        artifact = codec.decode(frame)
        assert artifact.image.mode == "RGB"
        assert artifact.image.getpixel((7, 5)) == (5, 6, 7)


class TestDeterminism:

    def test_same_bytes_same_pixels(self, codec):
        first = codec.decode(make_raw_frame(padding_pixels=3))
        second = codec.decode(make_raw_frame(padding_pixels=3))
        assert first.image.tobytes() == second.image.tobytes()
        assert first.encode() == second.encode()

    def test_timestamp_is_carried_over(self, codec):
        artifact = codec.decode(make_raw_frame(timestamp=BASE_TIME))
        assert artifact.timestamp == BASE_TIME


class TestMalformedFrames:

    def test_missing_buffer(self, codec):
        frame = make_raw_frame()
        frame.data = None
        with pytest.raises(CodecError):
            codec.decode(frame)

    def test_empty_buffer(self, codec):
        frame = make_raw_frame()
        frame.data = b""
        with pytest.raises(CodecError):
            codec.decode(frame)

    def test_zero_sized_frame(self, codec):
        frame = make_raw_frame()
        frame.height = 0
        with pytest.raises(CodecError):
            codec.decode(frame)

    def test_stride_smaller_than_width(self, codec):
        frame = make_raw_frame(width=8)
        frame.row_stride = 7 * 4
        with pytest.raises(CodecError, match="smaller"):
            codec.decode(frame)

    def test_stride_not_multiple_of_pixel_size(self, codec):
        frame = make_raw_frame(width=8, padding_pixels=1)
        frame.row_stride = 8 * 4 + 2
        with pytest.raises(CodecError, match="multiple"):
            codec.decode(frame)

    def test_buffer_shorter_than_geometry(self, codec):
        frame = make_raw_frame(width=8, height=6)
        frame.data = frame.data[: len(frame.data) // 2]
        with pytest.raises(CodecError, match="too short"):
            codec.decode(frame)

    def test_pixel_stride_mismatch(self, codec):
        frame = make_raw_frame()
        frame.pixel_stride = 3
        with pytest.raises(CodecError):
            codec.decode(frame)

    def test_unsupported_format(self, codec):
        frame = make_raw_frame()
        frame.pixel_format = "YUV420"
        with pytest.raises(CodecError, match="Unsupported"):
            codec.decode(frame)

    def test_codec_error_is_an_acquisition_failure(self):
        assert issubclass(CodecError, AcquisitionFailure)
