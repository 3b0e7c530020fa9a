import pytest

from coverage_rag.retrieval import hybrid_score, normalize_scores


def test_empty_input():
    assert normalize_scores({}) == {}


def test_min_max_mapping():
    out = normalize_scores({1: 2.0, 2: 4.0, 3: 3.0})
    assert out[1] == 0.0
    assert out[2] == 1.0
    assert out[3] == pytest.approx(0.5)


def test_equal_scores_map_to_one():
    assert normalize_scores({5: 0.3, 6: 0.3}) == {5: 1.0, 6: 1.0}
    assert normalize_scores({9: -2.0}) == {9: 1.0}


def test_negative_scores_are_rescaled():
    out = normalize_scores({1: -1.0, 2: 1.0})
    assert out == {1: 0.0, 2: 1.0}


@pytest.mark.parametrize("sem,lex", [(0.9, 0.2), (0.2, 0.9)])
def test_hybrid_score_monotonic_in_alpha(sem, lex):
    values = [hybrid_score(a / 10, sem, lex) for a in range(11)]
    pairs = list(zip(values, values[1:]))
    if sem > lex:
        assert all(x <= y for x, y in pairs)
    else:
        assert all(x >= y for x, y in pairs)
    assert values[0] == pytest.approx(lex)
    assert values[-1] == pytest.approx(sem)
