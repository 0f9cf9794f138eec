from datetime import date, datetime, timezone

import pytest

from stages.errors import EvaluationLocked, Forbidden, InvalidTransition, ValidationError
from stages.lifecycle import (
    apply_evaluation_changes,
    can_transition,
    comment_request,
    compute_overall_score,
    ensure_deletable,
    evaluation_stats,
    transition_request,
)
from stages.models import Demande, Evaluation, Stagiaire
from stages.policy import Principal

RH = Principal("r1", "rh@example.com", "rh", True)
TUTOR = Principal("t1", "tutor@example.com", "tutor", True)
INTERN = Principal("i1", "intern@example.com", "intern", True)

NOW = datetime(2024, 3, 1, 9, 30, tzinfo=timezone.utc)


def _demande(status="pending"):
    return Demande(
        id="d1",
        status=status,
        tutor_id="t1",
        stagiaire=Stagiaire(id="s1", user_id="i1", tutor_id="t1"),
    )


def _evaluation(status="draft", **scores):
    values = dict(technical=10, interpersonal=10, autonomy=10, punctuality=10, motivation=10)
    values.update(scores)
    return Evaluation(
        id="e1",
        evaluator_id="t1",
        status=status,
        type="mid_term",
        period_start=date(2024, 1, 1),
        period_end=date(2024, 3, 31),
        stagiaire=Stagiaire(id="s1", user_id="i1", tutor_id="t1"),
        overall_score=10,
        **values,
    )


class TestRequestTransitions:
    def test_pending_can_be_decided(self):
        assert can_transition("pending", "approved")
        assert can_transition("pending", "rejected")
        assert not can_transition("pending", "pending")

    @pytest.mark.parametrize("current", ["approved", "rejected"])
    @pytest.mark.parametrize("target", ["pending", "approved", "rejected"])
    def test_decided_requests_are_terminal(self, current, target):
        assert not can_transition(current, target)

    def test_approve_sets_responder_and_timestamp(self):
        demande = transition_request(RH, _demande(), "approved", now=NOW)
        assert demande.status == "approved"
        assert demande.responder_id == "r1"
        assert demande.responded_at == NOW
        assert demande.response_comment is None

    def test_reject_with_comment(self):
        demande = transition_request(RH, _demande(), "rejected", comment="Dates incompatibles", now=NOW)
        assert demande.status == "rejected"
        assert demande.response_comment == "Dates incompatibles"

    def test_second_decision_is_rejected(self):
        demande = _demande(status="approved")
        with pytest.raises(InvalidTransition):
            transition_request(RH, demande, "rejected")
        assert demande.status == "approved"

    def test_unknown_status(self):
        with pytest.raises(ValidationError) as exc:
            transition_request(RH, _demande(), "archived")
        assert exc.value.field == "status"

    def test_tutor_cannot_decide(self):
        with pytest.raises(Forbidden):
            transition_request(TUTOR, _demande(), "approved")

    def test_tutor_can_comment_without_status_change(self):
        demande = comment_request(TUTOR, _demande(), "Vu avec le stagiaire")
        assert demande.status == "pending"
        assert demande.response_comment == "Vu avec le stagiaire"

    def test_intern_cannot_comment(self):
        with pytest.raises(Forbidden):
            comment_request(INTERN, _demande(), "ok ?")


class TestOverallScore:
    def test_mean_of_five_scores(self):
        scores = dict(technical=14, interpersonal=12, autonomy=16, punctuality=18, motivation=10)
        assert compute_overall_score(scores) == 14.0

    def test_rounds_half_up(self):
        # 50.25 / 5 = 10.05
        scores = dict(technical=10.25, interpersonal=10, autonomy=10, punctuality=10, motivation=10)
        assert compute_overall_score(scores) == 10.1

    def test_rounds_to_one_decimal(self):
        scores = dict(technical=15, interpersonal=13, autonomy=12, punctuality=17, motivation=14)
        assert compute_overall_score(scores) == 14.2


class TestEvaluationChanges:
    def test_update_recomputes_overall_score(self):
        ev = _evaluation(technical=14, interpersonal=12, autonomy=16, punctuality=18, motivation=10)
        apply_evaluation_changes(TUTOR, ev, {"technical": 20})
        assert ev.technical == 20
        assert ev.overall_score == 15.2

    def test_finalize_then_locked(self):
        ev = _evaluation()
        apply_evaluation_changes(TUTOR, ev, {"status": "finalized"})
        assert ev.status == "finalized"
        with pytest.raises(EvaluationLocked):
            apply_evaluation_changes(TUTOR, ev, {"comments": "trop tard"})
        with pytest.raises(EvaluationLocked):
            apply_evaluation_changes(RH, ev, {"status": "draft"})

    def test_period_must_be_ordered(self):
        ev = _evaluation()
        with pytest.raises(ValidationError) as exc:
            apply_evaluation_changes(TUTOR, ev, {"period_end": date(2023, 12, 1)})
        assert exc.value.field == "period_end"

    def test_intern_cannot_update(self):
        with pytest.raises(Forbidden):
            apply_evaluation_changes(INTERN, _evaluation(), {"technical": 20})

    def test_finalized_deletion_reserved_to_staff(self):
        ev = _evaluation(status="finalized")
        with pytest.raises(EvaluationLocked):
            ensure_deletable(TUTOR, ev)
        ensure_deletable(RH, ev)
        ensure_deletable(TUTOR, _evaluation(status="draft"))


def test_evaluation_stats():
    rows = [
        _evaluation(status="finalized"),
        _evaluation(status="draft"),
        _evaluation(status="draft"),
    ]
    rows[0].overall_score = 17.0
    rows[1].overall_score = 12.5
    rows[2].overall_score = 0
    rows[2].type = "final"

    stats = evaluation_stats(rows)
    assert stats["total"] == 3
    assert stats["by_status"] == {"finalized": 1, "draft": 2}
    assert stats["by_type"] == {"mid_term": 2, "final": 1}
    assert stats["average_score"] == 14.75
    assert stats["score_distribution"] == {"excellent": 1, "good": 1}


def test_evaluation_stats_empty():
    stats = evaluation_stats([])
    assert stats["total"] == 0
    assert stats["average_score"] == 0.0
