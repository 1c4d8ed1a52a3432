"""ONNX Runtime adapter for the AI-music classifier."""

import asyncio
import logging
import math

import numpy as np
import onnxruntime as ort

from goodbai.config.settings import InferenceSettings
from goodbai.domain.exceptions import ConfigurationError, InferenceFailed
from goodbai.domain.ports import IClassifierRuntime, IClassifierSession

logger = logging.getLogger(__name__)


class OnnxClassifierSession(IClassifierSession):
    """Wraps an ort.InferenceSession taking a [1, window] float32 tensor."""

    def __init__(self, session: ort.InferenceSession, input_name: str, output_name: str) -> None:
        self._session = session
        self._input_name = input_name
        self._output_name = output_name

    async def run(self, window: np.ndarray) -> float:
        return await asyncio.to_thread(self._run_sync, window)

    def _run_sync(self, window: np.ndarray) -> float:
        tensor = np.asarray(window, dtype=np.float32).reshape(1, -1)
        try:
            outputs = self._session.run([self._output_name], {self._input_name: tensor})
        except Exception as e:
            raise InferenceFailed(f"Classifier run failed: {e}") from e

        prob = float(np.asarray(outputs[0]).reshape(-1)[0])
        if math.isnan(prob) or not 0.0 <= prob <= 1.0:
            raise InferenceFailed(f"Classifier returned invalid probability: {prob}")
        return prob


class OnnxClassifierRuntime(IClassifierRuntime):
    """Loads the classifier model from disk."""

    def __init__(self, settings: InferenceSettings) -> None:
        self.settings = settings

    async def load(self) -> IClassifierSession:
        model_path = self.settings.model_path
        if not model_path.is_file():
            raise ConfigurationError(f"Classifier model not found at {model_path}")
        session = await asyncio.to_thread(self._create_session)
        logger.info("Classifier model loaded from %s", model_path)
        return OnnxClassifierSession(
            session, self.settings.input_name, self.settings.output_name
        )

    def _create_session(self) -> ort.InferenceSession:
        options = ort.SessionOptions()
        options.intra_op_num_threads = self.settings.intra_op_num_threads
        options.graph_optimization_level = ort.GraphOptimizationLevel.ORT_ENABLE_ALL
        return ort.InferenceSession(
            str(self.settings.model_path),
            sess_options=options,
            providers=["CPUExecutionProvider"],
        )
