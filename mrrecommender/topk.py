##########################################################################
## topk.py
##
## Stage 5: keep the k best predicted items of every user.
##
##   input:  user \t item:score
##   output: user \t item:score,item:score,...   (best first)

from .boundedheap import BoundedMinHeap
from .mapreduce import MapReduce
from .records import Recommendation, formatRecommendations, parseScore


def compareRecommendations(a, b):
    # lower score ranks lower; on equal scores the larger item id ranks lower
    if a.score != b.score:
        return -1 if a.score < b.score else 1
    if a.item != b.item:
        return -1 if a.item > b.item else 1
    return 0


def topK(recommendations, k):
    heap = BoundedMinHeap(k, compareRecommendations)
    for rec in recommendations:
        heap.push(rec)
    # the heap drains worst first
    ranked = heap.drain()
    ranked.reverse()
    return ranked


class TopKMR(MapReduce):

    def __init__(self, data, num_map_tasks=4, num_reduce_tasks=3, use_combiner=False, k=5):
        super().__init__(data, num_map_tasks, num_reduce_tasks, use_combiner)
        if k < 0:
            raise ValueError("k must be >= 0, got %r" % (k,))
        self.k = k

    def map(self, k, v):
        try:
            user, rec = parseScore(v)
        except ValueError:
            self.incrementCounter('malformed_records')
            return []
        return [(user, rec)]

    def reduce(self, k, vs):
        return [(k, topK((Recommendation(*v) for v in vs), self.k))]

    def formatOutput(self, k, v):
        return "%s\t%s" % (k, formatRecommendations(v))
