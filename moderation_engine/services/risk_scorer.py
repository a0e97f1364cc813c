"""
Risk Scorer - pluggable detectors aggregated into a 0-100 risk score.

Detectors run concurrently with a bounded timeout. A detector that fails
or times out contributes a 0 signal and marks the result degraded; the
scorer itself never raises.
"""

import asyncio
import logging
import math
import time
from abc import ABC, abstractmethod
from typing import Dict, Iterable, List, Optional, Sequence

from moderation_engine.lib.clock import Clock, utcnow
from moderation_engine.lib.config import EngineSettings
from moderation_engine.lib.metrics import MetricsExporter
from moderation_engine.models.content import ContentSnapshot, ScoreResult
from moderation_engine.models.enums import Recommendation

logger = logging.getLogger(__name__)


class Detector(ABC):
    """One classifier producing a signal in [0, 1]."""
    name: str

    @abstractmethod
    async def detect(self, snapshot: ContentSnapshot) -> float: ...


class KeywordDetector(Detector):
    """
    Deterministic keyword classifier. Each distinct phrase found adds
    `step` to the signal. Stand-in for a hosted model endpoint.
    """

    def __init__(self, name: str, phrases: Iterable[str], step: float = 0.3):
        self.name = name
        self.phrases = tuple(p.lower() for p in phrases)
        self.step = step

    async def detect(self, snapshot: ContentSnapshot) -> float:
        if not snapshot.text:
            return 0.0
        text = snapshot.text.lower()
        hits = sum(1 for phrase in self.phrases if phrase in text)
        return min(1.0, hits * self.step)


def default_detectors() -> List[Detector]:
    return [
        KeywordDetector('toxicity', ['hate', 'stupid', 'idiot', 'moron', 'loser', 'people like you']),
        KeywordDetector('violence', ['kill', 'hurt', 'attack', 'shoot', 'bomb', 'destroy']),
        KeywordDetector('nudity', ['nude', 'explicit', 'nsfw', 'xxx']),
        KeywordDetector('spam', ['buy now', 'click here', 'free money', '$$$', 'limited time'], step=0.25),
        KeywordDetector('self_harm', ['kill myself', 'self harm', 'end it all', 'suicide'], step=0.45),
    ]


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


class RiskScorer:

    def __init__(self, settings: EngineSettings,
                 detectors: Optional[Sequence[Detector]] = None,
                 clock: Clock = utcnow):
        self.settings = settings
        self.detectors = list(detectors) if detectors is not None else default_detectors()
        self.clock = clock

    async def score(self, snapshot: ContentSnapshot) -> ScoreResult:
        """Run every detector and aggregate. Always returns a result."""
        start_time = time.time()
        outcomes = await asyncio.gather(*(self._run(d, snapshot) for d in self.detectors))

        signals: Dict[str, float] = {}
        failed: List[str] = []
        for detector, value in zip(self.detectors, outcomes):
            if value is None:
                failed.append(detector.name)
                signals[detector.name] = 0.0
            else:
                signals[detector.name] = value

        result = self.aggregate(signals, failed_detectors=failed)
        MetricsExporter.record_scoring(time.time() - start_time, result.degraded)
        if result.degraded:
            logger.warning(f"Degraded scoring, failed detectors: {', '.join(failed)}")
        return result

    async def _run(self, detector: Detector, snapshot: ContentSnapshot) -> Optional[float]:
        try:
            value = await asyncio.wait_for(
                detector.detect(snapshot), timeout=self.settings.scorer_timeout_seconds
            )
        except asyncio.TimeoutError:
            logger.warning(f"Detector {detector.name} timed out")
            return None
        except Exception as e:
            logger.warning(f"Detector {detector.name} failed: {e}")
            return None
        return min(1.0, max(0.0, float(value)))

    def aggregate(self, signals: Dict[str, float],
                  failed_detectors: Sequence[str] = ()) -> ScoreResult:
        """
        Pure aggregation. A signal at or above the hard threshold dominates
        (risk = 100 * max); otherwise the weighted mean is used.
        """
        clamped = {name: min(1.0, max(0.0, value)) for name, value in signals.items()}
        if not clamped:
            risk = 0
        else:
            peak = max(clamped.values())
            if peak >= self.settings.signal_hard_threshold:
                risk = round_half_up(100 * peak)
            else:
                weights = self.settings.signal_weights
                total_weight = sum(weights.get(name, 1.0) for name in clamped)
                if total_weight <= 0:
                    risk = 0
                else:
                    weighted = sum(value * weights.get(name, 1.0) for name, value in clamped.items())
                    risk = round_half_up(100 * weighted / total_weight)
        risk = min(100, max(0, risk))

        return ScoreResult(
            signals=clamped,
            risk_score=risk,
            recommendation=self.recommend(risk),
            degraded=bool(failed_detectors),
            failed_detectors=list(failed_detectors),
            scored_at=self.clock(),
        )

    def recommend(self, risk_score: int) -> Recommendation:
        if risk_score >= self.settings.remove_threshold:
            return Recommendation.REMOVE
        if risk_score >= self.settings.review_threshold:
            return Recommendation.REVIEW
        if risk_score >= self.settings.warn_threshold:
            return Recommendation.WARN
        return Recommendation.APPROVE
