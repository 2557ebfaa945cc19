from __future__ import annotations

import logging
from typing import List, Optional

import numpy as np

from ..application.interfaces import AudioSource

logger = logging.getLogger(__name__)

# A source that falls this far behind is padded with silence.
MAX_LAG_SECONDS = 0.5


def mix(
    system_audio: Optional[AudioSource], mic_audio: Optional[AudioSource]
) -> Optional[AudioSource]:
    """Combine system and microphone audio into one track.

    Signals are summed without gain normalization, so two loud sources can
    exceed full scale.
    """
    sources = [source for source in (system_audio, mic_audio) if source is not None]
    if not sources:
        return None
    if len(sources) == 1:
        return sources[0]
    return MixedAudioSource(sources)


def _match_channels(block: np.ndarray, channels: int) -> np.ndarray:
    block = np.asarray(block, dtype=np.float32)
    if block.ndim == 1:
        block = block[:, np.newaxis]
    if block.shape[1] == channels:
        return block
    if block.shape[1] == 1:
        return np.repeat(block, channels, axis=1)
    if block.shape[1] > channels:
        return block[:, :channels]
    padding = np.zeros((block.shape[0], channels - block.shape[1]), dtype=np.float32)
    return np.hstack([block, padding])


class MixedAudioSource:
    def __init__(self, sources: List[AudioSource]) -> None:
        rates = {source.sample_rate for source in sources}
        if len(rates) != 1:
            raise ValueError(f"Cannot mix sources with sample rates {sorted(rates)}")
        self._sources = list(sources)
        self._sample_rate = rates.pop()
        self._channels = max(source.channels for source in sources)
        self._pending = [
            np.zeros((0, self._channels), dtype=np.float32) for _ in sources
        ]
        self._max_lag = int(self._sample_rate * MAX_LAG_SECONDS)

    @property
    def sample_rate(self) -> int:
        return self._sample_rate

    @property
    def channels(self) -> int:
        return self._channels

    @property
    def active(self) -> bool:
        return any(source.active for source in self._sources)

    def read(self) -> Optional[np.ndarray]:
        for index, source in enumerate(self._sources):
            block = source.read()
            if block is not None and len(block):
                self._pending[index] = np.concatenate(
                    [self._pending[index], _match_channels(block, self._channels)]
                )

        live = [
            index
            for index, source in enumerate(self._sources)
            if source.active or len(self._pending[index])
        ]
        if not live:
            return None
        lengths = [len(self._pending[index]) for index in live]
        frames = min(lengths)
        if frames == 0 and max(lengths) > self._max_lag:
            frames = max(lengths)
        if frames == 0:
            return None

        mixed = np.zeros((frames, self._channels), dtype=np.float32)
        for index in live:
            take = self._pending[index][:frames]
            mixed[: len(take)] += take
            self._pending[index] = self._pending[index][len(take) :]
        return mixed

    def stop(self) -> None:
        for source in self._sources:
            source.stop()
