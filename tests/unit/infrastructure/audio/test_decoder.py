"""Tests for the librosa audio decoder."""

import os

import numpy as np
import pytest

from goodbai.domain.exceptions import AudioDecodeFailed
from goodbai.infrastructure.audio.decoder import LibrosaAudioDecoder

LOAD_PATH = "goodbai.infrastructure.audio.decoder.librosa.load"


class TestLibrosaAudioDecoder:
    """Test decoding and temp file handling."""

    async def test_decode_returns_float32_mono(self, mocker):
        load = mocker.patch(LOAD_PATH, return_value=(np.ones(4410, dtype=np.float64), 44100))
        decoder = LibrosaAudioDecoder(sample_rate=44100)

        samples = await decoder.decode(b"ID3fake")

        assert samples.dtype == np.float32
        assert samples.shape == (4410,)
        tmp_path = load.call_args.args[0]
        assert load.call_args.kwargs == {"sr": 44100, "mono": True}
        assert not os.path.exists(tmp_path)

    async def test_empty_payload(self):
        with pytest.raises(AudioDecodeFailed):
            await LibrosaAudioDecoder().decode(b"")

    async def test_librosa_error_is_wrapped(self, mocker):
        load = mocker.patch(LOAD_PATH, side_effect=RuntimeError("no backend"))

        with pytest.raises(AudioDecodeFailed, match="no backend"):
            await LibrosaAudioDecoder().decode(b"garbage")

        assert not os.path.exists(load.call_args.args[0])

    async def test_empty_decode_result(self, mocker):
        mocker.patch(LOAD_PATH, return_value=(np.array([], dtype=np.float32), 44100))

        with pytest.raises(AudioDecodeFailed, match="empty"):
            await LibrosaAudioDecoder().decode(b"silence")
