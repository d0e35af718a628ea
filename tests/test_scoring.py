from types import SimpleNamespace

from rejap.scoring import PASSING_SCORE, score_answers


def _questions(keys):
    return [SimpleNamespace(id=i + 1, question=f"q{i + 1}", correct_answer=k) for i, k in enumerate(keys)]


KEYS = ["犬", "猫", "水", "食べる", "飲む"]


def test_three_of_five_is_not_a_pass():
    result = score_answers(_questions(KEYS), ["犬", "猫", "水", "猫", "犬"])
    assert result.score == 0.6
    assert result.passed is False
    assert result.correct_count == 3
    assert [r.correct for r in result.per_question] == [True, True, True, False, False]


def test_all_correct_passes():
    result = score_answers(_questions(KEYS), list(KEYS))
    assert result.score == 1.0
    assert result.passed is True
    assert result.incorrect == []


def test_four_of_five_meets_passing_score_exactly():
    result = score_answers(_questions(KEYS), ["犬", "猫", "水", "食べる", "x"])
    assert result.score == PASSING_SCORE
    assert result.passed is True


def test_matching_is_positional_not_by_id():
    questions = _questions(["A", "B"])
    # Correct keys submitted in swapped order are both wrong
    result = score_answers(questions, ["B", "A"])
    assert result.correct_count == 0
    assert [r.question_id for r in result.per_question] == [1, 2]


def test_comparison_is_exact_and_case_sensitive():
    result = score_answers(_questions(["Dog", "cat"]), ["dog", "cat "])
    assert result.correct_count == 0


def test_no_questions_scores_zero():
    result = score_answers([], ["A"])
    assert result.score == 0.0
    assert result.passed is False
    assert result.total_questions == 0


def test_missing_answers_count_as_wrong_and_extra_answers_are_ignored():
    short = score_answers(_questions(["A", "B", "C"]), ["A"])
    assert short.total_questions == 3
    assert short.per_question[1].user_answer is None
    assert short.correct_count == 1

    long = score_answers(_questions(["A"]), ["A", "B", "C"])
    assert long.total_questions == 1
    assert long.score == 1.0


def test_scoring_is_deterministic():
    questions = _questions(KEYS)
    answers = ["犬", "x", "水", "x", "飲む"]
    first = score_answers(questions, answers)
    second = score_answers(questions, answers)
    assert (first.score, first.passed) == (second.score, second.passed)
    assert first.per_question[0].snapshot() == {
        "questionId": 1,
        "userAnswer": "犬",
        "correctAnswer": "犬",
        "correct": True,
    }
