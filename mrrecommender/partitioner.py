##########################################################################
## partitioner.py
##
## Stage 1: divide the raw ratings by user.
##
##   input:  user,item,rating
##   output: user \t item:rating,item:rating,...

from .mapreduce import MapReduce
from .records import formatItemRatings, parseRating


class PartitionByUserMR(MapReduce):

    def map(self, k, v):
        event = parseRating(v)
        if event is None:
            self.incrementCounter('malformed_ratings')
            return []
        return [(event.user, (event.item, event.rating))]

    def reduce(self, k, vs):
        # duplicates of one (user, item) are kept as given
        return [(k, formatItemRatings(vs))]
