"""Facial analysis: emotion scoring and micro-expression detection"""

from biomirror.analysis.scoring import EmotionScorer, ChannelTerm, EMOTION_TERMS, ScoringError
from biomirror.analysis.micro_expressions import MicroExpressionDetector
from biomirror.analysis.facial import EmotionalStateBuilder

__all__ = [
    'EmotionScorer',
    'ChannelTerm',
    'EMOTION_TERMS',
    'ScoringError',
    'MicroExpressionDetector',
    'EmotionalStateBuilder',
]
