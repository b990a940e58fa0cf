##########################################################################
## driver.py
##
## Chains the five MapReduce jobs into the recommender pipeline:
##
##   raw ratings -> user vectors -> co-occurrence -> partial scores
##               -> scores -> top-k recommendations
##
## Each stage reads the datasets written by the stages before it and
## writes its own before the next stage starts. A failed run can be
## resumed from the failed stage since every stage only depends on its
## (unchanged) input datasets and the configuration.

import argparse
import logging
import os
import sys
from dataclasses import dataclass

from .aggregator import AggregatorMR
from .cooccurrence import CoOccurrenceMR, createSparseMatrix, isSymmetric
from .datasets import partFiles, readRecords, writeParts
from .mapreduce import StageError
from .partitioner import PartitionByUserMR
from .predictor import COOCCURRENCE, RATINGS, PredictorMR
from .topk import TopKMR

logger = logging.getLogger(__name__)

STAGES = ('partition', 'cooccurrence', 'predict', 'aggregate', 'topk')


@dataclass
class PipelineConfig:
    input_path: str
    user_vectors_path: str
    cooccurrence_path: str
    partial_scores_path: str
    scores_path: str
    output_path: str
    k: int = 5
    min_support: int = 0
    score_threshold: float = 0.0
    num_map_tasks: int = 4
    num_reduce_tasks: int = 3
    use_combiner: bool = True

    @classmethod
    def fromWorkDir(cls, input_path, work_dir, output_path, **kwargs):
        return cls(input_path=input_path,
                   user_vectors_path=os.path.join(work_dir, "user_vectors"),
                   cooccurrence_path=os.path.join(work_dir, "cooccurrence"),
                   partial_scores_path=os.path.join(work_dir, "partial_scores"),
                   scores_path=os.path.join(work_dir, "scores"),
                   output_path=output_path,
                   **kwargs)

    def validate(self):
        if self.k < 0:
            raise ValueError("k must be >= 0, got %r" % (self.k,))
        if self.min_support < 0:
            raise ValueError("min_support must be >= 0, got %r" % (self.min_support,))
        if self.num_map_tasks < 1 or self.num_reduce_tasks < 1:
            raise ValueError("need at least one map task and one reduce task")


def readDerived(path, tag=None):
    # datasets written by an earlier stage must be complete
    return readRecords(path, tag=tag, requireSuccess=True)


def runLocal(mrObject):
    return mrObject.runSystem()


class Pipeline(object):

    def __init__(self, config, runner=runLocal):
        config.validate()
        self.config = config
        self.runner = runner
        self.counters = dict()  # stage name -> Counter

    def tasks(self):
        return dict(num_map_tasks=self.config.num_map_tasks,
                    num_reduce_tasks=self.config.num_reduce_tasks)

    def runJob(self, stage, mrObject, output_path):
        logger.info("stage %s: starting", stage)
        result = self.runner(mrObject)
        writeParts(output_path, result.parts)
        self.counters[stage] = result.counters
        for name, count in sorted(result.counters.items()):
            logger.info("stage %s: %s = %d", stage, name, count)
        return result

    ###########################################################
    # stages

    def partition(self):
        c = self.config
        job = PartitionByUserMR(readRecords(c.input_path), **self.tasks())
        return self.runJob('partition', job, c.user_vectors_path)

    def cooccurrence(self):
        c = self.config
        job = CoOccurrenceMR(readDerived(c.user_vectors_path), use_combiner=c.use_combiner,
                             min_support=c.min_support, **self.tasks())
        result = self.runJob('cooccurrence', job, c.cooccurrence_path)
        self.checkSymmetry(result)
        return result

    def checkSymmetry(self, result):
        lines = [line for part in result.parts for line in part]
        if not lines:
            logger.warning("co-occurrence matrix is empty")
            return
        matrix, index = createSparseMatrix(lines)
        if not isSymmetric(matrix):
            raise StageError("co-occurrence matrix is not symmetric (%d items)" % len(index))
        logger.info("co-occurrence matrix: %d items, %d pairs, symmetric", len(index), matrix.nnz)

    def predict(self):
        c = self.config
        # reduce tasks load the user vectors themselves, so check them up front
        partFiles(c.user_vectors_path, requireSuccess=True)
        data = readDerived(c.cooccurrence_path, tag=COOCCURRENCE) + readRecords(c.input_path, tag=RATINGS)
        job = PredictorMR(data, user_vectors_path=c.user_vectors_path, **self.tasks())
        return self.runJob('predict', job, c.partial_scores_path)

    def aggregate(self):
        c = self.config
        job = AggregatorMR(readDerived(c.partial_scores_path), score_threshold=c.score_threshold,
                           **self.tasks())
        result = self.runJob('aggregate', job, c.scores_path)
        if result.counters['zero_weight_keys']:
            logger.warning("%d (user, item) keys had a zero weight sum",
                           result.counters['zero_weight_keys'])
        return result

    def topk(self):
        c = self.config
        job = TopKMR(readDerived(c.scores_path), k=c.k, **self.tasks())
        return self.runJob('topk', job, c.output_path)

    def run(self, start_stage=STAGES[0]):
        if start_stage not in STAGES:
            raise ValueError("unknown stage %r, expected one of %s" % (start_stage, ", ".join(STAGES)))
        for stage in STAGES[STAGES.index(start_stage):]:
            try:
                getattr(self, stage)()
            except StageError:
                logger.error("stage %s failed; rerun with --start-stage %s", stage, stage)
                raise
        return self.counters


def runPipeline(config, start_stage=STAGES[0], runner=runLocal):
    return Pipeline(config, runner).run(start_stage)


##########################################################################
##########################################################################
# Command line

def buildParser():
    parser = argparse.ArgumentParser(
        prog="mrrecommender",
        description="Item-based collaborative filtering as a chain of MapReduce jobs.")
    parser.add_argument("--input", required=True, help="raw ratings file or directory (user,item,rating)")
    parser.add_argument("--output", required=True, help="directory for the top-k recommendation lists")
    parser.add_argument("--work-dir", default=None,
                        help="directory for the intermediate datasets (default: <output>_work)")
    parser.add_argument("--user-vectors", default=None, help="override the user vector dataset location")
    parser.add_argument("--cooccurrence", default=None, help="override the co-occurrence dataset location")
    parser.add_argument("--partial-scores", default=None, help="override the partial score dataset location")
    parser.add_argument("--scores", default=None, help="override the aggregated score dataset location")
    parser.add_argument("-k", type=int, default=5, help="recommendations per user")
    parser.add_argument("--min-support", type=int, default=0,
                        help="keep item pairs rated together by more than this many users")
    parser.add_argument("--score-threshold", type=float, default=0.0,
                        help="keep predicted scores strictly above this value")
    parser.add_argument("--map-tasks", type=int, default=4)
    parser.add_argument("--reduce-tasks", type=int, default=3)
    parser.add_argument("--no-combiner", action="store_true", help="disable map-side combining")
    parser.add_argument("--start-stage", choices=STAGES, default=STAGES[0],
                        help="resume a failed run from this stage")
    parser.add_argument("--runner", choices=("local", "spark"), default="local")
    parser.add_argument("--spark-master", default="local[*]")
    parser.add_argument("--log-level", default="INFO",
                        choices=("DEBUG", "INFO", "WARNING", "ERROR"))
    return parser


def configFromArgs(args):
    work_dir = args.work_dir or args.output.rstrip(os.sep) + "_work"
    config = PipelineConfig.fromWorkDir(
        args.input, work_dir, args.output,
        k=args.k, min_support=args.min_support, score_threshold=args.score_threshold,
        num_map_tasks=args.map_tasks, num_reduce_tasks=args.reduce_tasks,
        use_combiner=not args.no_combiner)
    overrides = {'user_vectors_path': args.user_vectors, 'cooccurrence_path': args.cooccurrence,
                 'partial_scores_path': args.partial_scores, 'scores_path': args.scores}
    for field, value in overrides.items():
        if value is not None:
            setattr(config, field, value)
    return config


def main(argv=None):
    args = buildParser().parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')

    try:
        config = configFromArgs(args)
        config.validate()
    except ValueError as e:
        logger.error("invalid configuration: %s", e)
        return 2

    runner = runLocal
    if args.runner == "spark":
        from .spark_runner import createContext, runOnSpark
        sc = createContext(master=args.spark_master)
        runner = lambda mrObject: runOnSpark(sc, mrObject)

    try:
        runPipeline(config, start_stage=args.start_stage, runner=runner)
    except StageError as e:
        logger.error("pipeline failed: %s", e)
        return 1
    logger.info("recommendations written to %s", config.output_path)
    return 0


if __name__ == "__main__":
    sys.exit(main())
