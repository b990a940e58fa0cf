##########################################################################
## mapreduce.py
##
## Implements a basic version of MapReduce that runs each map task and
## each reduce task in its own process on a single machine. Every stage
## of the recommender pipeline is a MapReduce subclass that only defines
## its map and reduce methods; this module is the backend that splits
## the input, shuffles the keyed records and collects reducer output.
##
## Map tasks send (reduce_task_num, (k, v)) messages to a shared
## "namenode" list; each reduce task receives every message for the
## keys assigned to it by partitionFunction and calls reduce once per
## key with all of that key's values.


##Data Science Imports:
import numpy as np
import mmh3

##IO, Process Imports:
import logging
import multiprocessing
from abc import ABCMeta, abstractmethod
from collections import Counter, namedtuple
from pprint import pformat

logger = logging.getLogger(__name__)


class StageError(Exception):
    """A stage could not complete; the whole pipeline run fails."""


# parts: one sorted list of output lines per reduce task
JobResult = namedtuple('JobResult', ['parts', 'counters'])


def getContext():
    # fork keeps job objects (and their side lookups) without pickling them
    if 'fork' in multiprocessing.get_all_start_methods():
        return multiprocessing.get_context('fork')
    return multiprocessing.get_context()


##########################################################################
##########################################################################
# MapReduceSystem:

class MapReduce(metaclass=ABCMeta):

    def __init__(self, data, num_map_tasks=4, num_reduce_tasks=3, use_combiner=False):
        if num_map_tasks < 1 or num_reduce_tasks < 1:
            raise ValueError("need at least one map task and one reduce task")
        self.data = data  # the "file": list of all key value pairs
        self.num_map_tasks = num_map_tasks  # how many processes to spawn as map tasks
        self.num_reduce_tasks = num_reduce_tasks  # " " " as reduce tasks
        self.use_combiner = use_combiner  # whether or not to use a combiner within map task
        self.counters = Counter()

    ###########################################################
    # programmer methods (to be overridden by inheriting class)

    @abstractmethod
    def map(self, k, v):
        # returns a list of (k, v) pairs to emit
        pass

    @abstractmethod
    def reduce(self, k, vs):
        # called once per key with all of its values; returns a list of (k, v) pairs
        pass

    def combine(self, k, vs):
        # map-side pre-aggregation; None means the job has no combiner
        return None

    def setupReduce(self):
        # runs once at the start of every reduce task, before any reduce call
        pass

    def formatOutput(self, k, v):
        return "%s\t%s" % (k, v)

    def incrementCounter(self, name, amount=1):
        self.counters[name] += amount

    ###########################################################
    # System Code: What the map reduce backend handles

    def mapChunk(self, data_chunk, combiner=False):
        # runs the mappers on each record within the data_chunk
        mapped_kvs = []  # stored keys and values resulting from a map
        for (k, v) in data_chunk:
            mapped_kvs.extend(self.map(k, v))

        if combiner:
            combined = []
            for k, vs in self.groupByKey(mapped_kvs).items():
                fromC = self.combine(k, vs)
                if fromC is None:
                    combined.extend((k, v) for v in vs)
                else:
                    combined.extend(fromC)
            mapped_kvs = combined
        return mapped_kvs

    def mapTask(self, data_chunk, namenode_m2r, namenode_counters, combiner=False):
        self.counters = Counter()
        mapped_kvs = self.mapChunk(data_chunk, combiner)
        # assign each kv pair to a reducer task, one message batch per task
        namenode_m2r.extend([(self.partitionFunction(k), (k, v)) for (k, v) in mapped_kvs])
        namenode_counters.append(dict(self.counters))

    def partitionFunction(self, k):
        # given a key returns the reduce task to send it
        return mmh3.hash(str(k)) % self.num_reduce_tasks

    @staticmethod
    def groupByKey(kvs):
        vsPerK = dict()
        for (k, v) in kvs:
            try:
                vsPerK[k].append(v)
            except KeyError:
                vsPerK[k] = [v]
        return vsPerK

    def reduceGroups(self, vsPerK):
        # keys in sorted order and values sorted per key, so reruns are identical
        lines = []
        for k in sorted(vsPerK):
            for (outK, outV) in self.reduce(k, sorted(vsPerK[k])):
                lines.append(self.formatOutput(outK, outV))
        return sorted(lines)

    def reduceTask(self, task_num, kvs, namenode_fromR, namenode_counters):
        self.counters = Counter()
        self.setupReduce()
        namenode_fromR.append((task_num, self.reduceGroups(self.groupByKey(kvs))))
        namenode_counters.append(dict(self.counters))

    def chunks(self):
        # divide up the data into contiguous chunks according to num_map_tasks
        noOfMap = self.num_map_tasks
        st = 0
        remaining = len(self.data)
        while noOfMap > 0:
            size = int(np.ceil(remaining / noOfMap))
            yield self.data[st: st + size]
            st += size
            remaining -= size
            noOfMap -= 1

    def runProcesses(self, processes, phase):
        for p in processes:
            p.start()
        # barrier: every task of this phase finishes before the next phase starts
        for p in processes:
            p.join()
        failed = [i for i, p in enumerate(processes) if p.exitcode != 0]
        if failed:
            raise StageError("%s: %s task(s) %s failed" % (type(self).__name__, phase, failed))

    def runSystem(self):
        # runs the full map-reduce system processes on mrObject
        name = type(self).__name__
        ctx = getContext()
        with ctx.Manager() as manager:
            # the following lists are shared by all processes in order to simulate the communication
            namenode_m2r = manager.list()  # [(reduce_task_num, (k, v)), ...]
            namenode_fromR = manager.list()  # [(reduce_task_num, [line, ...]), ...]
            namenode_counters = manager.list()

            logger.info("%s: %d input records, %d map tasks, %d reduce tasks",
                        name, len(self.data), self.num_map_tasks, self.num_reduce_tasks)
            mapProcesses = [ctx.Process(target=self.mapTask,
                                        args=(chunk, namenode_m2r, namenode_counters, self.use_combiner))
                            for chunk in self.chunks()]
            self.runProcesses(mapProcesses, "map")
            shuffled = list(namenode_m2r)
            if logger.isEnabledFor(logging.DEBUG):
                logger.debug("%s namenode_m2r after map tasks complete:\n%s", name, pformat(sorted(shuffled)))

            # "send" each key-value pair to its assigned reducer
            to_reduce_task = [[] for i in range(self.num_reduce_tasks)]
            for task_num, kv in shuffled:
                to_reduce_task[task_num].append(kv)

            reduceProcesses = [ctx.Process(target=self.reduceTask,
                                           args=(i, kvs, namenode_fromR, namenode_counters))
                               for i, kvs in enumerate(to_reduce_task)]
            self.runProcesses(reduceProcesses, "reduce")

            parts = [[] for i in range(self.num_reduce_tasks)]
            for task_num, lines in namenode_fromR:
                parts[task_num] = lines
            counters = Counter()
            for c in namenode_counters:
                counters.update(c)

        if logger.isEnabledFor(logging.DEBUG):
            logger.debug("%s namenode_fromR after reduce tasks complete:\n%s", name, pformat(parts))
        logger.info("%s: %d map output records, %d output lines, counters %s",
                    name, len(shuffled), sum(len(p) for p in parts), dict(counters))
        return JobResult(parts, counters)
