##########################################################################
## cooccurrence.py
##
## Stage 2: build the item-item co-occurrence matrix. Every user
## contributes 1 to each ordered pair of items they rated, the pair of
## an item with itself included, so weight(a, b) is the number of users
## who rated both a and b and weight(a, a) the number of raters of a.
##
##   input:  user \t item:rating,item:rating,...
##   output: itemA:itemB \t weight

import numpy as np
from scipy import sparse

from .mapreduce import MapReduce
from .records import parseCoOccurrence, parseUserVector


class CoOccurrenceMR(MapReduce):

    def __init__(self, data, num_map_tasks=4, num_reduce_tasks=3, use_combiner=True, min_support=0):
        super().__init__(data, num_map_tasks, num_reduce_tasks, use_combiner)
        self.min_support = min_support

    def map(self, k, v):
        try:
            _, itemRatings = parseUserVector(v)
        except ValueError:
            self.incrementCounter('malformed_records')
            return []
        # a user rating the same item twice still counts once per pair
        items = sorted(set(item for item, _ in itemRatings))
        return [((itemA, itemB), 1) for itemA in items for itemB in items]

    def combine(self, k, vs):
        return [(k, sum(vs))]

    def reduce(self, k, vs):
        weight = sum(vs)
        if weight > self.min_support:
            return [(k, weight)]
        self.incrementCounter('below_support')
        return []

    def formatOutput(self, k, v):
        return "%s:%s\t%d" % (k[0], k[1], v)


##########################################################################
##########################################################################
# Invariant check on the finished matrix

def createSparseMatrix(lines):
    # returns the weights as a square sparse matrix plus the item -> index map
    pairs = [parseCoOccurrence(line) for line in lines]
    items = sorted(set(a for a, _, _ in pairs) | set(b for _, b, _ in pairs))
    index = {item: i for i, item in enumerate(items)}
    rows = np.array([index[a] for a, _, _ in pairs], dtype=np.int64)
    cols = np.array([index[b] for _, b, _ in pairs], dtype=np.int64)
    weights = np.array([w for _, _, w in pairs], dtype=np.int64)
    matrix = sparse.coo_matrix((weights, (rows, cols)), shape=(len(items), len(items)))
    return matrix, index


def isSymmetric(matrix):
    m = matrix.tocsr()
    return (m != m.T).nnz == 0
