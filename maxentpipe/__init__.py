"""
maxentpipe: maximum-entropy (log-linear) classifiers over sparse text features.

Events are indexed into a deduplicated integer training matrix, trained with
Generalized Iterative Scaling or a quasi-Newton (L-BFGS / OWL-QN) optimizer,
and decoded into label sequences with beam search.
"""

__version__ = "1.0.0"

from maxentpipe.beam_search import BeamSearch, Sequence
from maxentpipe.config import TrainingConfig
from maxentpipe.event import Event, FileEventSource
from maxentpipe.indexer import IndexedTrainingSet, OnePassIndexer, TwoPassIndexer
from maxentpipe.model import MaxentModel
from maxentpipe.trainer_registry import train

__all__ = [
    'BeamSearch',
    'Event',
    'FileEventSource',
    'IndexedTrainingSet',
    'MaxentModel',
    'OnePassIndexer',
    'Sequence',
    'TrainingConfig',
    'TwoPassIndexer',
    'train',
    '__version__',
]
