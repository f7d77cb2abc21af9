"""Constants for the WebWhispr dictation service."""

import os

# App identification
APP_ID = os.getenv("APP_ID", "webwhispr")
APP_VERSION = os.getenv("APP_VERSION", "1.0.0")
APP_HOST = os.getenv("APP_HOST", "127.0.0.1")
APP_PORT = int(os.getenv("APP_PORT", "23100"))

# Preferences (modelSize / language), persisted as JSON
PREFERENCES_PATH = os.getenv(
    "WEBWHISPR_PREFERENCES_PATH",
    os.path.join(os.path.expanduser("~"), ".config", "webwhispr", "preferences.json"),
)
DEFAULT_MODEL_SIZE = "small"
DEFAULT_LANGUAGE = "en"

# Transcription engine: "whisper" (local faster-whisper) or "modal" (Kyutai on Modal)
ENGINE_PROVIDER = os.getenv("WEBWHISPR_ENGINE", "whisper")
WHISPER_DEVICE = os.getenv("WHISPER_DEVICE", "cpu")
WHISPER_COMPUTE_TYPE = os.getenv("WHISPER_COMPUTE_TYPE", "int8")

# Audio configuration
CAPTURE_SAMPLE_RATE = 48000  # Microphone tracks are typically delivered at 48kHz
WHISPER_SAMPLE_RATE = 16000
KYUTAI_SAMPLE_RATE = 24000
MODAL_CHUNK_MS = 200  # Audio sent to Modal per WebSocket frame

# Microphone input via aiortc/ffmpeg
MIC_DEVICE = os.getenv("WEBWHISPR_MIC_DEVICE", "default")
MIC_FORMAT = os.getenv("WEBWHISPR_MIC_FORMAT", "pulse")
CAPTURE_FORMAT = os.getenv("WEBWHISPR_CAPTURE_FORMAT", "wav")  # "wav" or "ogg"

# Context lifecycle timeouts (seconds)
CONTEXT_HANDSHAKE_TIMEOUT = 2.0
CONTEXT_STOP_TIMEOUT = 5.0

# Session timeouts (seconds)
TRANSCRIPTION_TIMEOUT = float(os.getenv("WEBWHISPR_TRANSCRIPTION_TIMEOUT", "30"))
CAPTURE_FINALIZE_TIMEOUT = 5.0  # END_CAPTURE -> CAPTURE_READY/CAPTURE_FAILED
MAX_RECORDING_SECONDS = float(os.getenv("WEBWHISPR_MAX_RECORDING_SECONDS", "120"))
SWEEP_INTERVAL = 1.0
MODAL_CONNECT_TIMEOUT = 120  # Allow time for Modal cold start
MODAL_RECEIVE_TIMEOUT = 10.0

# Microphone permission test (from the settings surface)
MIC_TEST_SECONDS = 3.0

# Number of finished sessions kept for /api/v1/status
SESSION_HISTORY_SIZE = 20
