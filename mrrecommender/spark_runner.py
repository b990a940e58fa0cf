##########################################################################
## spark_runner.py
##
## Runs the same MapReduce job classes on a Spark cluster instead of the
## local process simulator. The map phase is one mapPartitions pass per
## input slice, the shuffle is groupByKey with the murmur3 partition
## function, and every reduce partition calls setupReduce once before
## reducing its keys, just like a local reduce task.

import copy
import logging
from collections import Counter

import mmh3
from pyspark import SparkConf, SparkContext

from .mapreduce import JobResult

logger = logging.getLogger(__name__)


def createContext(app_name="mrrecommender", master="local[*]"):
    conf = SparkConf().setAppName(app_name).setMaster(master)
    sc = SparkContext.getOrCreate(conf=conf)
    sc.setLogLevel("WARN")
    return sc


def keyHash(k):
    return mmh3.hash(str(k))


def runOnSpark(sc, mrObject):
    name = type(mrObject).__name__
    # the input travels as an RDD, not inside the pickled job
    job = copy.copy(mrObject)
    job.data = []
    combiner = job.use_combiner

    def mapPartition(records):
        job.counters = Counter()
        kvs = job.mapChunk(list(records), combiner)
        yield kvs, dict(job.counters)

    def reducePartition(task_num, groups):
        job.counters = Counter()
        job.setupReduce()
        vsPerK = {k: list(vs) for k, vs in groups}
        yield task_num, job.reduceGroups(vsPerK), dict(job.counters)

    logger.info("%s: %d input records on spark, %d map slices, %d reduce partitions",
                name, len(mrObject.data), job.num_map_tasks, job.num_reduce_tasks)
    mapped = sc.parallelize(mrObject.data, job.num_map_tasks).mapPartitions(mapPartition).cache()
    try:
        counters = Counter()
        for c in mapped.map(lambda r: r[1]).collect():
            counters.update(c)

        reduced = mapped.flatMap(lambda r: r[0]) \
            .groupByKey(job.num_reduce_tasks, keyHash) \
            .mapPartitionsWithIndex(reducePartition) \
            .collect()
    finally:
        mapped.unpersist()

    parts = [[] for i in range(job.num_reduce_tasks)]
    for task_num, lines, c in reduced:
        parts[task_num] = lines
        counters.update(c)
    logger.info("%s: %d output lines, counters %s", name, sum(len(p) for p in parts), dict(counters))
    return JobResult(parts, counters)
