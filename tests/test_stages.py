import pytest

from mrrecommender.aggregator import AggregatorMR
from mrrecommender.cooccurrence import CoOccurrenceMR, createSparseMatrix, isSymmetric
from mrrecommender.mapreduce import StageError
from mrrecommender.partitioner import PartitionByUserMR
from mrrecommender.predictor import COOCCURRENCE, RATINGS, PredictorMR, SeenItems

from conftest import ABC_RATINGS, EXAMPLE_RATINGS, outputLines


def tagged(tag, lines):
    return [(tag, line) for line in lines]


###########################################################
# partitioner

def test_partition_by_user():
    result = PartitionByUserMR(list(enumerate(EXAMPLE_RATINGS)), 2, 2).runSystem()
    assert outputLines(result) == ["1\t10:5.0,20:3.0", "2\t10:4.0,30:5.0"]


def test_partition_counts_malformed_rows():
    lines = EXAMPLE_RATINGS + ["1,40", "oops", "2,50,x"]
    result = PartitionByUserMR(list(enumerate(lines)), 2, 2).runSystem()
    assert len(outputLines(result)) == 2
    assert result.counters['malformed_ratings'] == 3


def test_partition_keeps_duplicates():
    result = PartitionByUserMR(list(enumerate(["1,10,5", "1,10,3"])), 1, 1).runSystem()
    assert outputLines(result) == ["1\t10:3.0,10:5.0"]


###########################################################
# co-occurrence

USER_VECTORS = ["1\t10:5.0,20:3.0", "2\t10:4.0,30:5.0"]


def test_cooccurrence_matrix():
    result = CoOccurrenceMR(list(enumerate(USER_VECTORS)), 2, 2).runSystem()
    assert outputLines(result) == [
        "10:10\t2", "10:20\t1", "10:30\t1",
        "20:10\t1", "20:20\t1",
        "30:10\t1", "30:30\t1",
    ]


def test_cooccurrence_min_support():
    result = CoOccurrenceMR(list(enumerate(USER_VECTORS)), 2, 2, min_support=1).runSystem()
    assert outputLines(result) == ["10:10\t2"]
    assert result.counters['below_support'] == 6


def test_cooccurrence_combiner_matches_plain_run():
    data = list(enumerate(USER_VECTORS * 3))
    plain = CoOccurrenceMR(data, 1, 2, use_combiner=False).runSystem()
    combined = CoOccurrenceMR(data, 1, 2, use_combiner=True).runSystem()
    assert outputLines(plain) == outputLines(combined)
    assert "10:10\t6" in outputLines(plain)


def test_cooccurrence_counts_duplicate_items_once():
    result = CoOccurrenceMR([(0, "1\t10:5.0,10:3.0")], 1, 1).runSystem()
    assert outputLines(result) == ["10:10\t1"]


def test_sparse_symmetry_check():
    matrix, index = createSparseMatrix(["a:a\t2", "a:b\t1", "b:a\t1", "b:b\t1"])
    assert sorted(index) == ["a", "b"]
    assert matrix.toarray().tolist() == [[2, 1], [1, 1]]
    assert isSymmetric(matrix)
    matrix, _ = createSparseMatrix(["a:b\t1", "b:a\t2"])
    assert not isSymmetric(matrix)


###########################################################
# predictor

EXAMPLE_COOCCURRENCE = ["10:10\t2", "10:20\t1", "20:10\t1", "20:20\t1",
                        "10:30\t1", "30:10\t1", "30:30\t1"]


def predictorData(cooccurrence, ratings):
    return tagged(COOCCURRENCE, cooccurrence) + tagged(RATINGS, ratings)


def test_predictor_excludes_seen_items(tmp_path):
    vectors = tmp_path / "user_vectors"
    vectors.mkdir()
    (vectors / "part-r-00000").write_text("\n".join(USER_VECTORS) + "\n")
    (vectors / "_SUCCESS").write_text("")
    job = PredictorMR(predictorData(EXAMPLE_COOCCURRENCE, EXAMPLE_RATINGS), 2, 2,
                      user_vectors_path=str(vectors))
    assert outputLines(job.runSystem()) == ["1:30\t5.0,1", "2:20\t4.0,1"]


def test_predictor_weights_contributions():
    seen = {"u1": {"a", "b"}, "u2": {"a", "b", "c"}, "u3": {"b", "c"}}
    cooccurrence = ["a:a\t2", "b:b\t3", "c:c\t2", "a:b\t2", "b:a\t2",
                    "a:c\t1", "c:a\t1", "b:c\t2", "c:b\t2"]
    job = PredictorMR(predictorData(cooccurrence, ABC_RATINGS), 2, 3, seen_items=seen)
    assert outputLines(job.runSystem()) == [
        "u1:c\t5.0,1", "u1:c\t6.0,2",
        "u3:a\t2.0,2", "u3:a\t4.0,1",
    ]


def test_predictor_treats_missing_user_vector_as_empty():
    job = PredictorMR(predictorData(["10:10\t1", "20:10\t1"], ["9,10,4"]), 1, 1, seen_items={})
    result = job.runSystem()
    # nothing is known about user 9, so even item 10 itself is a candidate
    assert outputLines(result) == ["9:10\t4.0,1", "9:20\t4.0,1"]
    assert result.counters['missing_user_lookups'] == 1


def test_predictor_averages_duplicate_ratings():
    job = PredictorMR(predictorData(["20:10\t1"], ["9,10,4", "9,10,2"]), 1, 1,
                      seen_items={"9": {"10"}})
    assert outputLines(job.runSystem()) == ["9:20\t3.0,1"]


def test_predictor_counts_each_lookup_of_an_unknown_user():
    cooccurrence = ["10:10\t1", "20:20\t1", "10:20\t1", "20:10\t1"]
    job = PredictorMR(predictorData(cooccurrence, ["9,10,4", "9,20,2"]), 1, 2, seen_items={})
    assert job.runSystem().counters['missing_user_lookups'] == 2


def test_unfinished_user_vectors_fail_the_reduce_task(tmp_path):
    vectors = tmp_path / "user_vectors"
    vectors.mkdir()
    (vectors / "part-r-00000").write_text("\n".join(USER_VECTORS) + "\n")
    job = PredictorMR(predictorData(EXAMPLE_COOCCURRENCE, EXAMPLE_RATINGS), 1, 1,
                      user_vectors_path=str(vectors))
    with pytest.raises(StageError):
        job.runSystem()


def test_seen_items_snapshot():
    seen = SeenItems({"u1": frozenset(["a"])})
    assert "u1" in seen
    assert seen.itemsFor("u1") == frozenset(["a"])
    assert seen.itemsFor("nobody") == frozenset()
    assert len(seen) == 1


###########################################################
# aggregator

def test_aggregator_normalizes_and_rounds():
    data = list(enumerate(["u1:c\t6.0,2", "u1:c\t5.0,1", "u3:a\t2.0,2", "u3:a\t4.0,1"]))
    assert outputLines(AggregatorMR(data, 2, 2).runSystem()) == ["u1\tc:3.667", "u3\ta:2.0"]


def test_aggregator_threshold_is_exclusive():
    data = list(enumerate(["u1:c\t6.0,2", "u1:c\t5.0,1", "u3:a\t2.0,2", "u3:a\t4.0,1"]))
    result = AggregatorMR(data, 2, 2, score_threshold=2.0).runSystem()
    assert outputLines(result) == ["u1\tc:3.667"]
    assert result.counters['below_threshold'] == 1


def test_aggregator_skips_zero_weight():
    data = list(enumerate(["u1:c\t0.0,0", "u2:c\t3.0,1", "bad line"]))
    result = AggregatorMR(data, 1, 1).runSystem()
    assert outputLines(result) == ["u2\tc:3.0"]
    assert result.counters['zero_weight_keys'] == 1
    assert result.counters['malformed_records'] == 1
