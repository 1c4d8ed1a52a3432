"""Serialized access to the AI-music classifier."""

import asyncio
import logging
import math

import numpy as np

from goodbai.domain.exceptions import InferenceFailed
from goodbai.domain.ports import IClassifierRuntime, IClassifierSession

logger = logging.getLogger(__name__)

SAMPLE_RATE = 44100
WINDOW_SECONDS = 5
WINDOW_LENGTH = SAMPLE_RATE * WINDOW_SECONDS  # 220,500 samples


# Hey future me - this windowing MUST stay exactly like this. The model was evaluated on
# center crops; shifting the crop by even a few samples changes the score. Shorter clips are
# zero-padded with the odd extra sample going to the RIGHT (offset rounds down).
def extract_center_window(waveform: np.ndarray, target_length: int = WINDOW_LENGTH) -> np.ndarray:
    """Center-crop or symmetrically zero-pad a mono waveform to target_length."""
    samples = np.asarray(waveform, dtype=np.float32).reshape(-1)
    n = samples.shape[0]

    if n <= target_length:
        window = np.zeros(target_length, dtype=np.float32)
        offset = (target_length - n) // 2
        window[offset : offset + n] = samples
        return window

    start = (n - target_length) // 2
    return samples[start : start + target_length].copy()


class InferenceQueue:
    """Runs predictions one at a time over a lazily loaded classifier session.

    The session is NOT safe for concurrent use. predict() takes an asyncio.Lock, whose
    waiters are woken in FIFO order, so call n+1 starts only after call n finished
    (successfully or not). Loading is single-flight: callers arriving while the model
    loads share the same load task. A failed load is forgotten so the next call retries.
    """

    def __init__(self, runtime: IClassifierRuntime, window_length: int = WINDOW_LENGTH) -> None:
        self._runtime = runtime
        self._window_length = window_length
        self._session: IClassifierSession | None = None
        self._load_task: asyncio.Task[IClassifierSession] | None = None
        self._lock = asyncio.Lock()

    @property
    def window_length(self) -> int:
        return self._window_length

    def is_ready(self) -> bool:
        return self._session is not None

    async def warmup(self) -> None:
        """Load the model without running a prediction."""
        await self._get_session()

    async def _get_session(self) -> IClassifierSession:
        if self._session is not None:
            return self._session

        if self._load_task is None:
            self._load_task = asyncio.create_task(self._runtime.load())
        task = self._load_task
        try:
            session = await asyncio.shield(task)
        except asyncio.CancelledError:
            raise
        except Exception:
            if self._load_task is task:
                self._load_task = None
            raise

        self._session = session
        return session

    async def predict(self, waveform: np.ndarray) -> float:
        """Return P(AI-generated) for a mono waveform at the model's sample rate.

        Raises:
            InferenceFailed: If the classifier errors or returns an invalid probability
        """
        async with self._lock:
            session = await self._get_session()
            window = extract_center_window(waveform, self._window_length)
            try:
                prob = float(await session.run(window))
            except InferenceFailed:
                raise
            except Exception as e:
                raise InferenceFailed(f"Classifier run failed: {e}") from e

        if math.isnan(prob) or not 0.0 <= prob <= 1.0:
            raise InferenceFailed(f"Classifier returned invalid probability: {prob}")
        return prob
