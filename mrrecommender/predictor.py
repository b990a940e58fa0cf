##########################################################################
## predictor.py
##
## Stage 3: the broadcast join of the co-occurrence matrix with the raw
## ratings. Both inputs are keyed by item:
##
##   co-occurrence  itemA:itemB \t weight  ->  itemB, EDGE(itemA, weight)
##   ratings        user,item,rating       ->  item,  RATING(user, rating)
##
## For the join item B, every (A, weight) edge meets every (user, rating)
## of B and contributes weight * rating to the prediction of A for that
## user, unless the user already rated A. The already-rated lookup is the
## user vector dataset from stage 1, loaded whole by every reduce task
## before its first reduce call.
##
##   output: user:itemA \t contribution,weight

import logging
from types import MappingProxyType

from .datasets import readUserVectors
from .mapreduce import MapReduce
from .records import (
    RecordKind, edge, parseCoOccurrence, parseRating, rating,
)

logger = logging.getLogger(__name__)

# input record tags, one per input dataset
COOCCURRENCE = 'cooccurrence'
RATINGS = 'ratings'

EMPTY = frozenset()


class SeenItems(object):
    """Read-only snapshot of the items each user has rated.

    Built once and never mutated afterwards, so every reduce task can
    read it without coordination. Users missing from the snapshot are
    treated as having rated nothing.
    """

    def __init__(self, seen):
        self._seen = MappingProxyType(dict(seen))

    @classmethod
    def load(cls, path):
        return cls(readUserVectors(path))

    def __reduce__(self):
        # mapping proxies do not pickle
        return (SeenItems, (dict(self._seen),))

    def __contains__(self, user):
        return user in self._seen

    def __len__(self):
        return len(self._seen)

    def itemsFor(self, user):
        return self._seen.get(user, EMPTY)


class PredictorMR(MapReduce):

    def __init__(self, data, num_map_tasks=4, num_reduce_tasks=3, use_combiner=False,
                 user_vectors_path=None, seen_items=None):
        super().__init__(data, num_map_tasks, num_reduce_tasks, use_combiner)
        if user_vectors_path is None and seen_items is None:
            raise ValueError("PredictorMR needs user_vectors_path or seen_items")
        self.user_vectors_path = user_vectors_path
        if seen_items is not None and not isinstance(seen_items, SeenItems):
            seen_items = SeenItems(seen_items)
        self.seen_items = seen_items

    def map(self, k, v):
        # k tags which input dataset the line comes from
        if k == COOCCURRENCE:
            try:
                itemA, itemB, weight = parseCoOccurrence(v)
            except ValueError:
                self.incrementCounter('malformed_records')
                return []
            return [(itemB, edge(itemA, weight))]
        if k == RATINGS:
            event = parseRating(v)
            if event is None:
                self.incrementCounter('malformed_ratings')
                return []
            return [(event.item, rating(event.user, event.rating))]
        raise ValueError("unknown input tag %r" % (k,))

    def setupReduce(self):
        if self.user_vectors_path is not None:
            self.seen_items = SeenItems.load(self.user_vectors_path)
            logger.debug("loaded %d user vectors from %s", len(self.seen_items), self.user_vectors_path)

    def reduce(self, k, vs):
        edges = []
        ratingsByUser = dict()
        for record in vs:
            if record.kind == RecordKind.EDGE:
                edges.append((record.ident, record.value))
            else:
                ratingsByUser.setdefault(record.ident, []).append(record.value)

        kvs = []
        for user in sorted(ratingsByUser):
            # duplicate ratings of the join item by one user are averaged
            ratings = ratingsByUser[user]
            r = sum(ratings) / len(ratings)
            # counted per (join item, user); one unknown user shows up once per item they rated
            if user not in self.seen_items:
                self.incrementCounter('missing_user_lookups')
            seen = self.seen_items.itemsFor(user)
            for itemA, weight in edges:
                # also drops the self-pair: a rater of k has always seen k
                if itemA in seen:
                    continue
                kvs.append(((user, itemA), (weight * r, weight)))
        return kvs

    def formatOutput(self, k, v):
        return "%s:%s\t%r,%d" % (k[0], k[1], v[0], v[1])
