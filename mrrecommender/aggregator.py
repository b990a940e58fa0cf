##########################################################################
## aggregator.py
##
## Stage 4: sum the partial scores of every (user, item) and normalize
## them into a weighted average rating.
##
##   input:  user:item \t contribution,weight
##   output: user \t item:score        (score > score_threshold only)

import logging
import math

from .mapreduce import MapReduce
from .records import parsePartialScore, roundHalfUp

logger = logging.getLogger(__name__)


class AggregatorMR(MapReduce):

    def __init__(self, data, num_map_tasks=4, num_reduce_tasks=3, use_combiner=False,
                 score_threshold=0.0, precision=3):
        super().__init__(data, num_map_tasks, num_reduce_tasks, use_combiner)
        self.score_threshold = score_threshold
        self.precision = precision

    def map(self, k, v):
        try:
            key, partial = parsePartialScore(v)
        except ValueError:
            self.incrementCounter('malformed_records')
            return []
        return [(key, partial)]

    def reduce(self, k, vs):
        user, item = k
        # fsum is exact, so the result does not depend on the order of vs
        try:
            contribution = math.fsum(c for c, _ in vs)
        except OverflowError:
            contribution = math.inf
        weight = sum(w for _, w in vs)
        if weight <= 0:
            logger.warning("zero weight sum for user %s item %s, skipped", user, item)
            self.incrementCounter('zero_weight_keys')
            return []
        score = roundHalfUp(contribution / weight, self.precision)
        if score > self.score_threshold:
            return [(user, (item, score))]
        self.incrementCounter('below_threshold')
        return []

    def formatOutput(self, k, v):
        return "%s\t%s:%r" % (k, v[0], v[1])
