"""Decode compressed preview audio into a mono sample buffer."""

import asyncio
import logging
import os
import tempfile

import librosa
import numpy as np

from goodbai.domain.exceptions import AudioDecodeFailed
from goodbai.domain.ports import IAudioDecoder

logger = logging.getLogger(__name__)


class LibrosaAudioDecoder(IAudioDecoder):
    """Decodes MP3/AAC preview clips with librosa, resampled to a fixed rate.

    librosa needs a file path for compressed formats, so the bytes go through a
    temporary file. Decoding is CPU-bound and runs in a worker thread to keep the
    event loop free for progress events.
    """

    def __init__(self, sample_rate: int = 44100, suffix: str = ".mp3") -> None:
        self.sample_rate = sample_rate
        self.suffix = suffix

    async def decode(self, data: bytes) -> np.ndarray:
        if not data:
            raise AudioDecodeFailed("Empty audio payload")
        return await asyncio.to_thread(self._decode_sync, data)

    def _decode_sync(self, data: bytes) -> np.ndarray:
        with tempfile.NamedTemporaryFile(suffix=self.suffix, delete=False) as f:
            f.write(data)
            tmp = f.name
        try:
            samples, _ = librosa.load(tmp, sr=self.sample_rate, mono=True)
        except Exception as e:
            raise AudioDecodeFailed(f"Could not decode audio: {e}") from e
        finally:
            try:
                os.unlink(tmp)
            except OSError:
                logger.debug("Could not remove temp file %s", tmp)

        if samples.size == 0:
            raise AudioDecodeFailed("Decoded audio is empty")
        return np.asarray(samples, dtype=np.float32)
