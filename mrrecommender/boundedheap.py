##########################################################################
## boundedheap.py
##
## A min-heap that keeps at most `capacity` values. Ordering comes from
## an explicit comparator (cmp(a, b) < 0 when a ranks below b), so the
## smallest value is evicted whenever a push overflows the capacity.

import heapq
from functools import cmp_to_key


class BoundedMinHeap(object):

    def __init__(self, capacity, compare):
        if capacity < 0:
            raise ValueError("capacity must be >= 0, got %r" % (capacity,))
        self.capacity = capacity
        self._key = cmp_to_key(compare)
        self._heap = []

    def __len__(self):
        return len(self._heap)

    def push(self, value):
        heapq.heappush(self._heap, self._key(value))
        if len(self._heap) > self.capacity:
            heapq.heappop(self._heap)

    def peek(self):
        return self._heap[0].obj

    def drain(self):
        # empties the heap, smallest value first
        out = []
        while self._heap:
            out.append(heapq.heappop(self._heap).obj)
        return out
