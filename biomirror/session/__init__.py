"""Session orchestration, dissociation detection and metrics"""

from biomirror.session.dissociation import DissociationDetector, DissociationPhase
from biomirror.session.metrics import (
    InvariantViolation,
    MetricsFinalizedError,
    OrderingError,
    SessionMetricsAggregator,
)
from biomirror.session.therapeutic_session import SessionClosedError, TherapeuticSession

__all__ = [
    'DissociationDetector',
    'DissociationPhase',
    'InvariantViolation',
    'MetricsFinalizedError',
    'OrderingError',
    'SessionMetricsAggregator',
    'SessionClosedError',
    'TherapeuticSession',
]
