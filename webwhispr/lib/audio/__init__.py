"""Audio processing and recording encoders."""

from .encoder import AudioEncoder, OggOpusEncoder, WavEncoder, create_encoder
from .processing import (
    AudioConfig,
    decode_audio,
    downmix,
    encode_wav,
    float32_to_int16,
    int16_to_float32,
    prepare_for_engine,
    resample,
    stereo_to_mono,
)

__all__ = [
    "AudioConfig",
    "AudioEncoder",
    "OggOpusEncoder",
    "WavEncoder",
    "create_encoder",
    "decode_audio",
    "downmix",
    "encode_wav",
    "float32_to_int16",
    "int16_to_float32",
    "prepare_for_engine",
    "resample",
    "stereo_to_mono",
]
