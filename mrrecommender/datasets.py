##########################################################################
## datasets.py
##
## Reading and writing the flat files between stages. A dataset is a
## directory of part-r-NNNNN files (one per reduce task) finished by an
## empty _SUCCESS marker; the raw ratings may also be a single file.

import logging
import os

from .mapreduce import StageError
from .records import parseUserVector

logger = logging.getLogger(__name__)

SUCCESS_MARKER = "_SUCCESS"


def partFiles(path, requireSuccess=False):
    if os.path.isfile(path):
        return [path]
    if not os.path.isdir(path):
        raise StageError("dataset not found: %s" % path)
    if requireSuccess and not os.path.exists(os.path.join(path, SUCCESS_MARKER)):
        raise StageError("dataset %s has no %s marker; rerun the stage that writes it"
                         % (path, SUCCESS_MARKER))
    return [os.path.join(path, name) for name in sorted(os.listdir(path))
            if not name.startswith(('_', '.'))]


def readRecords(path, tag=None, requireSuccess=False):
    # returns [(key, line), ...]: key is the character offset inside its file
    # (TextInputFormat style) or `tag` when one is given. Datasets written by
    # a stage pass requireSuccess so an unfinished one is never consumed.
    records = []
    for fileName in partFiles(path, requireSuccess):
        try:
            with open(fileName, 'r', encoding='utf-8') as f:
                offset = 0
                for line in f:
                    if line.strip():
                        records.append((offset if tag is None else tag, line.rstrip('\r\n')))
                    offset += len(line)
        except OSError as e:
            raise StageError("cannot read %s: %s" % (fileName, e)) from e
    logger.debug("read %d records from %s", len(records), path)
    return records


def writeParts(path, parts):
    os.makedirs(path, exist_ok=True)
    # clear output of an earlier (possibly failed) run of this stage
    for name in os.listdir(path):
        if name.startswith('part-') or name == SUCCESS_MARKER:
            os.remove(os.path.join(path, name))
    for task_num, lines in enumerate(parts):
        with open(os.path.join(path, "part-r-%05d" % task_num), 'w', encoding='utf-8') as f:
            for line in lines:
                f.write(line + "\n")
    open(os.path.join(path, SUCCESS_MARKER), 'w').close()
    logger.info("wrote %d lines in %d parts to %s", sum(len(p) for p in parts), len(parts), path)


def readUserVectors(path):
    # user -> frozenset of rated items, for the predictor's exclusion lookup
    seen = dict()
    for _, line in readRecords(path, requireSuccess=True):
        try:
            user, itemRatings = parseUserVector(line)
        except ValueError as e:
            raise StageError("corrupt user vector dataset %s: %s" % (path, e)) from e
        seen[user] = frozenset(item for item, _ in itemRatings)
    return seen
