import os
import random

import pytest

from mrrecommender.driver import PipelineConfig

# the worked example: two users sharing item 10
EXAMPLE_RATINGS = [
    "1,10,5.0",
    "1,20,3.0",
    "2,10,4.0",
    "2,30,5.0",
]

# three users over items a, b, c; u1 can only get c, u3 only a
ABC_RATINGS = [
    "u1,a,5",
    "u1,b,3",
    "u2,a,4",
    "u2,b,2",
    "u2,c,5",
    "u3,b,1",
    "u3,c,4",
]


def writeLines(path, lines):
    with open(path, 'w') as f:
        for line in lines:
            f.write(line + "\n")
    return str(path)


def randomRatings(seed=7, users=30, items=15):
    rng = random.Random(seed)
    lines = []
    for u in range(users):
        for i in rng.sample(range(items), rng.randint(1, 6)):
            lines.append("user%d,item%02d,%d" % (u, i, rng.randint(1, 5)))
    return lines


def outputLines(result):
    return sorted(line for part in result.parts for line in part)


def readDataset(path):
    lines = []
    for name in sorted(os.listdir(path)):
        if name.startswith('part-'):
            with open(os.path.join(path, name)) as f:
                lines.extend(line.rstrip("\n") for line in f)
    return sorted(lines)


@pytest.fixture
def makeConfig(tmp_path):
    def make(lines, name="run", **kwargs):
        base = tmp_path / name
        base.mkdir()
        input_path = writeLines(base / "ratings.csv", lines)
        kwargs.setdefault('num_map_tasks', 2)
        kwargs.setdefault('num_reduce_tasks', 2)
        return PipelineConfig.fromWorkDir(input_path, str(base / "work"), str(base / "out"), **kwargs)
    return make
