"""Emotion Scorer

This module turns a frame of facial channel activations into a ranked emotion
list. Each emotion is described declaratively by a tuple of weighted channel
terms and scored by a single weighted-average routine, so extending the
vocabulary only means adding rows to the table.

Behavior:
    - Every emotion score is the weighted average of its term values, in [0, 1]
    - Channels a frame does not report read as 0
    - Neutral is 1 - max(all other scores), never scored from its own terms
    - Ranking is by descending score with ties broken by canonical emotion order
    - Secondary emotions are the non-primary emotions scoring above 0.3
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Tuple

import numpy as np

from biomirror.models.enums import EmotionType
from biomirror.config.config_loader import config


logger = logging.getLogger(__name__)


COMBINERS = ("mean", "inverse", "asymmetry")


class ScoringError(Exception):
    """Exception raised for an invalid scoring table"""
    pass


@dataclass(frozen=True)
class ChannelTerm:
    """One weighted term of an emotion's score

    Attributes:
        channels: Channel names the term reads
        weight: Relative weight of the term (> 0)
        combiner: How the channels are combined:
            ``mean`` averages them, ``inverse`` is 1 - mean and
            ``asymmetry`` is |first - second|
    """
    channels: Tuple[str, ...]
    weight: float
    combiner: str = "mean"

    def __post_init__(self):
        if self.combiner not in COMBINERS:
            raise ScoringError(f"Unknown combiner: {self.combiner}")
        if self.weight <= 0:
            raise ScoringError(f"Term weight must be positive, got {self.weight}")
        if not self.channels:
            raise ScoringError("Term must reference at least one channel")
        if self.combiner == "asymmetry" and len(self.channels) != 2:
            raise ScoringError("Asymmetry term needs exactly two channels")

    def value(self, channels: Mapping[str, float]) -> float:
        values = [channels.get(name, 0.0) for name in self.channels]
        if self.combiner == "asymmetry":
            return abs(values[0] - values[1])
        mean = sum(values) / len(values)
        if self.combiner == "inverse":
            return 1.0 - mean
        return mean


def _pair(stem: str) -> Tuple[str, str]:
    return (f"{stem}_left", f"{stem}_right")


def _term(weight: float, *channels: str, combiner: str = "mean") -> ChannelTerm:
    return ChannelTerm(channels=tuple(channels), weight=weight, combiner=combiner)


EMOTION_TERMS: Dict[EmotionType, Tuple[ChannelTerm, ...]] = {
    EmotionType.HAPPINESS: (
        _term(2.0, *_pair("mouth_smile")),
        _term(1.0, *_pair("cheek_squint")),
        _term(0.5, *_pair("mouth_dimple")),
    ),
    EmotionType.SADNESS: (
        _term(2.0, *_pair("mouth_frown")),
        _term(1.0, "brow_inner_up"),
        _term(0.5, *_pair("mouth_smile"), combiner="inverse"),
    ),
    EmotionType.ANGER: (
        _term(2.0, *_pair("brow_down")),
        _term(1.0, *_pair("nose_sneer")),
        _term(1.0, *_pair("eye_squint")),
        _term(0.5, *_pair("mouth_press")),
    ),
    EmotionType.FEAR: (
        _term(2.0, *_pair("eye_wide")),
        _term(1.5, "brow_inner_up"),
        _term(1.0, *_pair("brow_outer_up")),
        _term(0.5, *_pair("mouth_stretch")),
    ),
    EmotionType.SURPRISE: (
        _term(2.0, *_pair("eye_wide")),
        _term(1.5, *_pair("brow_outer_up")),
        _term(1.0, "brow_inner_up"),
        _term(1.0, "jaw_open"),
    ),
    EmotionType.DISGUST: (
        _term(2.0, *_pair("nose_sneer")),
        _term(1.0, "mouth_roll_upper"),
        _term(0.5, *_pair("brow_down")),
    ),
    EmotionType.CONTEMPT: (
        _term(2.0, *_pair("mouth_smile"), combiner="asymmetry"),
        _term(1.0, *_pair("mouth_dimple")),
        _term(0.5, *_pair("nose_sneer")),
    ),
    # Flattened affect: heavy lids, slack jaw, lowered gaze
    EmotionType.DISSOCIATION: (
        _term(1.5, *_pair("eye_blink")),
        _term(1.0, "jaw_open"),
        _term(1.0, *_pair("eye_look_down")),
    ),
    EmotionType.HYPERVIGILANCE: (
        _term(2.0, *_pair("eye_wide")),
        _term(1.0, *_pair("brow_down")),
        _term(0.5, *_pair("mouth_press")),
    ),
    EmotionType.FREEZE: (
        _term(1.5, *_pair("eye_wide")),
        _term(1.5, *_pair("mouth_press")),
        _term(1.0, "mouth_close"),
    ),
    EmotionType.CONFUSION: (
        _term(1.5, *_pair("brow_outer_up"), combiner="asymmetry"),
        _term(1.0, *_pair("brow_down")),
        _term(0.5, "mouth_pucker"),
    ),
    EmotionType.INTEREST: (
        _term(1.0, "brow_inner_up"),
        _term(1.0, *_pair("eye_wide")),
        _term(0.5, "jaw_open"),
    ),
    EmotionType.SHAME: (
        _term(2.0, *_pair("eye_look_down")),
        _term(1.0, *_pair("mouth_frown")),
        _term(0.5, *_pair("mouth_press")),
        _term(0.5, "brow_inner_up"),
    ),
    EmotionType.PRIDE: (
        _term(1.5, *_pair("mouth_smile")),
        _term(1.0, *_pair("mouth_press")),
        _term(0.5, *_pair("cheek_squint")),
    ),
}


def weighted_average(terms: Tuple[ChannelTerm, ...], channels: Mapping[str, float]) -> float:
    """Score one emotion from its terms.

    Args:
        terms: Weighted terms describing the emotion
        channels: Channel name -> activation

    Returns:
        Weighted average of the term values, clipped to [0, 1]
    """
    if not terms:
        return 0.0
    values = np.array([term.value(channels) for term in terms], dtype=float)
    weights = np.array([term.weight for term in terms], dtype=float)
    return float(np.clip(np.dot(values, weights) / weights.sum(), 0.0, 1.0))


def neutral_score(scores: Mapping[EmotionType, float]) -> float:
    """Neutral is the absence of expressiveness: 1 - max(other scores)"""
    others = [score for emotion, score in scores.items() if emotion is not EmotionType.NEUTRAL]
    if not others:
        return 1.0
    return float(np.clip(1.0 - max(others), 0.0, 1.0))


def rank(scores: Mapping[EmotionType, float]) -> List[Tuple[EmotionType, float]]:
    """Order scores by descending value, ties by canonical emotion order"""
    return sorted(scores.items(), key=lambda item: (-item[1], item[0].canonical_index))


class EmotionScorer:
    """Maps a frame's channel activations to a ranked emotion list.

    The scorer is stateless. It must only be called for frames with a tracked
    face; callers short-circuit no-face frames before scoring.

    Attributes:
        terms: Emotion -> weighted terms table
        secondary_threshold: Score a non-primary emotion must exceed to be
            reported as secondary
    """

    def __init__(
        self,
        terms: Optional[Mapping[EmotionType, Tuple[ChannelTerm, ...]]] = None,
        secondary_threshold: Optional[float] = None,
    ):
        self.terms = dict(EMOTION_TERMS if terms is None else terms)
        if EmotionType.NEUTRAL in self.terms:
            raise ScoringError("Neutral is derived from the other scores and cannot have terms")
        if secondary_threshold is None:
            secondary_threshold = config.get('scoring.secondary_threshold', 0.3)
        self.secondary_threshold = float(secondary_threshold)

        logger.info(f"EmotionScorer initialized with {len(self.terms)} scored emotions, "
                    f"secondary_threshold={self.secondary_threshold}")

    def score(self, channels: Mapping[str, float]) -> List[Tuple[EmotionType, float]]:
        """Score every emotion in the vocabulary.

        Args:
            channels: Canonical channel name -> activation in [0, 1]

        Returns:
            (emotion, score) pairs for the full vocabulary, best first
        """
        scores: Dict[EmotionType, float] = {
            emotion: weighted_average(self.terms.get(emotion, ()), channels)
            for emotion in EmotionType
            if emotion is not EmotionType.NEUTRAL
        }
        scores[EmotionType.NEUTRAL] = neutral_score(scores)
        return rank(scores)

    def split(
        self, ranked: List[Tuple[EmotionType, float]]
    ) -> Tuple[EmotionType, float, Dict[EmotionType, float]]:
        """Split a ranking into primary emotion, its score and the secondary emotions"""
        primary, primary_score = ranked[0]
        secondary = {
            emotion: score
            for emotion, score in ranked[1:]
            if score > self.secondary_threshold
        }
        return primary, primary_score, secondary
