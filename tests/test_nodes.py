"""
Unit tests — tests individual node logic using static mocks.

The scripted oracle and static evidence retriever from tests/mocks replace
the LLM and the evidence service. No network calls are made.
"""

import pytest

from biologic_agent.config import EngineConfig
from biologic_agent.dose_stepper import NO_ASSESSMENT, assess
from biologic_agent.errors import InputError, OracleError, PlanNotFoundError
from biologic_agent.formulary_store import DEFAULT_FORMULARY_CSV, FormularyStore
from biologic_agent.models import (
    Contraindication,
    FormularyDrug,
    PARequirement,
    PatientTherapyState,
    Proposal,
    Quadrant,
    RecommendationType,
    Severity,
)
from biologic_agent.quadrant import Classification
from tests.mocks.evidence_api import StaticEvidenceRetriever
from tests.mocks.oracle import ScriptedOracle

CONFIG = EngineConfig()


# ── Test State Factory ──────────────────────────────────────────────────────


def make_drug(name, generic, drug_class, tier, cost, pa="Yes") -> FormularyDrug:
    return FormularyDrug(
        drug_name=name,
        generic_name=generic,
        drug_class=drug_class,
        tier=tier,
        requires_pa=pa,
        annual_cost=cost,
        copays={1: 240.0, 2: 900.0, 3: 1800.0},
        approved_indications=("psoriasis", "psoriatic arthritis"),
    )


CYLTEZO = make_drug("Cyltezo", "adalimumab-adbm", "TNF inhibitor", 1, 42000.0, pa="No")
TREMFYA = make_drug("Tremfya", "guselkumab", "IL-23 inhibitor", 1, 88000.0)
COSENTYX = make_drug("Cosentyx", "secukinumab", "IL-17A inhibitor", 2, 76000.0)
SKYRIZI = make_drug("Skyrizi", "risankizumab", "IL-23 inhibitor", 2, 90000.0)
TALTZ = make_drug("Taltz", "ixekizumab", "IL-17A inhibitor", 3, 80000.0)
HUMIRA = make_drug("Humira", "adalimumab", "TNF inhibitor", 3, 84000.0)

SAFE = [CYLTEZO, TREMFYA, COSENTYX, SKYRIZI, HUMIRA, TALTZ]


def make_patient(**overrides) -> PatientTherapyState:
    base = {
        "patient_id": "pt-test",
        "diagnosis": "psoriasis",
        "current_therapy": {"drug_name": "Humira", "generic_name": "adalimumab", "dose": "40 mg",
                            "frequency": "every 2 weeks"},
        "severity_score": 2,
        "months_stable": 9,
    }
    base.update(overrides)
    return PatientTherapyState(**base)


def make_state(**overrides) -> dict:
    """Factory for a mid-pipeline DecisionState: stable on tier-3 Humira."""
    base = {
        "patient": make_patient(),
        "contraindications": [],
        "plan_id": "COMM-PPO-01",
        "current_drug": HUMIRA,
        "indicated_drugs": SAFE,
        "available_tiers": [1, 2, 3],
        "safe_drugs": SAFE,
        "contraindicated_drugs": [],
        "oracle_candidates": [d for d in SAFE if d is not HUMIRA],
        "classification": Classification(
            quadrant=Quadrant.STABLE_SUBOPTIMAL,
            is_stable=True,
            is_formulary_optimal=False,
            current_tier=3,
            lowest_tier=1,
        ),
        "dose_assessment": assess("Humira", "every 2 weeks", "adalimumab"),
        "evidence": [],
        "proposals": [],
        "validated": [],
        "recommendations": [],
    }
    base.update(overrides)
    return base


def proposal(rec_type, drug_name=None, rank=None, **fields) -> Proposal:
    return Proposal(type=rec_type, drug_name=drug_name, rank=rank, **fields)


# ── Validator Tests ─────────────────────────────────────────────────────────


class TestValidator:
    def test_raw_dicts_are_coerced(self):
        from biologic_agent.nodes import validator

        state = {
            "patient": {"diagnosis": "psoriasis", "severity_score": 3},
            "contraindications": [{"type": "heart failure"}],
            "plan_id": " COMM-PPO-01 ",
        }
        result = validator.run(state)
        assert isinstance(result["patient"], PatientTherapyState)
        assert result["contraindications"][0].type == "HEART_FAILURE"
        assert result["plan_id"] == "COMM-PPO-01"
        assert result["recommendations"] == []

    def test_missing_patient_raises(self):
        from biologic_agent.nodes import validator

        with pytest.raises(InputError, match="patient is required"):
            validator.run({"plan_id": "COMM-PPO-01"})

    def test_missing_plan_raises(self):
        from biologic_agent.nodes import validator

        with pytest.raises(InputError, match="plan_id is required"):
            validator.run({"patient": make_patient(), "plan_id": "  "})

    def test_invalid_patient_raises_input_error(self):
        from biologic_agent.nodes import validator

        with pytest.raises(InputError, match="Invalid decision request"):
            validator.run({"patient": {"diagnosis": "psoriasis", "severity_score": 99}, "plan_id": "X"})


# ── Formulary / Candidate / Classifier / Dosing Tests ───────────────────────


class TestFormularyNode:
    @pytest.fixture
    def store(self):
        return FormularyStore.from_csv(DEFAULT_FORMULARY_CSV)

    def test_loads_snapshot_and_filters_indications(self, store):
        from biologic_agent.nodes import formulary

        result = formulary.run(make_state(), formulary_store=store)
        assert result["current_drug"].drug_name == "Humira"
        names = {d.drug_name for d in result["indicated_drugs"]}
        assert "Dupixent" not in names
        assert "Rinvoq" not in names
        assert {"Humira", "Cyltezo", "Wezlana", "Sotyktu"} <= names
        assert result["available_tiers"] == [1, 2, 3]

    def test_off_formulary_current_drug(self, store):
        from biologic_agent.nodes import formulary

        patient = make_patient(current_therapy={"drug_name": "Mysterymab", "frequency": "every 4 weeks"})
        result = formulary.run(make_state(patient=patient), formulary_store=store)
        assert result["current_drug"] is None

    def test_unknown_plan(self, store):
        from biologic_agent.nodes import formulary

        with pytest.raises(PlanNotFoundError):
            formulary.run(make_state(plan_id="NOPE"), formulary_store=store)


class TestCandidateGen:
    def test_oracle_view_excludes_current_and_contraindicated(self):
        from biologic_agent.nodes import candidate_gen

        state = make_state(contraindications=[Contraindication(type="HEART_FAILURE")])
        result = candidate_gen.run(state, engine_config=CONFIG)
        assert [d.drug_name for d in result["oracle_candidates"]] == ["Tremfya", "Cosentyx", "Skyrizi", "Taltz"]
        assert {c.drug.drug_name for c in result["contraindicated_drugs"]} == {"Cyltezo", "Humira"}

    def test_candidate_limit(self):
        from biologic_agent.nodes import candidate_gen

        result = candidate_gen.run(make_state(), engine_config=EngineConfig(max_oracle_candidates=2))
        assert [d.drug_name for d in result["oracle_candidates"]] == ["Cyltezo", "Tremfya"]

    def test_everything_contraindicated_is_not_an_error(self):
        from biologic_agent.nodes import candidate_gen

        state = make_state(contraindications=[Contraindication(type="ACTIVE_INFECTION")])
        result = candidate_gen.run(state, engine_config=CONFIG)
        assert result["safe_drugs"] == []
        assert result["oracle_candidates"] == []
        assert len(result["contraindicated_drugs"]) == len(SAFE)
        assert result["current_blocked"] is True

    def test_current_drug_blocked_only_by_absolute_finding(self):
        from biologic_agent.nodes import candidate_gen

        assert candidate_gen.run(make_state(), engine_config=CONFIG)["current_blocked"] is False
        blocked = make_state(contraindications=[Contraindication(type="HEART_FAILURE")])
        assert candidate_gen.run(blocked, engine_config=CONFIG)["current_blocked"] is True
        relative = make_state(contraindications=[Contraindication(type="LYMPHOMA")])
        assert candidate_gen.run(relative, engine_config=CONFIG)["current_blocked"] is False

    def test_off_formulary_current_drug_is_screened(self):
        from biologic_agent.nodes import candidate_gen

        state = make_state(
            current_drug=None,
            indicated_drugs=[d for d in SAFE if d is not HUMIRA],
            contraindications=[Contraindication(type="HEART_FAILURE")],
        )
        result = candidate_gen.run(state, engine_config=CONFIG)
        assert result["current_blocked"] is True
        assert "Humira" not in {c.drug.drug_name for c in result["contraindicated_drugs"]}

    def test_brand_only_intake_matches_class_rules(self):
        from biologic_agent.nodes import candidate_gen

        state = make_state(
            patient=make_patient(current_therapy={"drug_name": "Enbrel", "frequency": "weekly"}),
            current_drug=None,
            contraindications=[Contraindication(type="HEART_FAILURE")],
        )
        assert candidate_gen.run(state, engine_config=CONFIG)["current_blocked"] is True

    def test_unrecognised_current_drug_still_meets_general_rules(self):
        from biologic_agent.nodes import candidate_gen

        patient = make_patient(current_therapy={"drug_name": "Experimab", "frequency": "every 4 weeks"})
        infection = make_state(
            patient=patient, current_drug=None, contraindications=[Contraindication(type="ACTIVE_INFECTION")]
        )
        assert candidate_gen.run(infection, engine_config=CONFIG)["current_blocked"] is True
        heart = make_state(
            patient=patient, current_drug=None, contraindications=[Contraindication(type="HEART_FAILURE")]
        )
        assert candidate_gen.run(heart, engine_config=CONFIG)["current_blocked"] is False

    def test_non_indicated_current_drug_is_screened(self):
        from biologic_agent.nodes import candidate_gen

        state = make_state(
            indicated_drugs=[d for d in SAFE if d is not HUMIRA],
            contraindications=[Contraindication(type="HEART_FAILURE")],
        )
        result = candidate_gen.run(state, engine_config=CONFIG)
        assert result["current_blocked"] is True
        assert [c.drug.drug_name for c in result["contraindicated_drugs"]] == ["Cyltezo", "Humira"]
        assert result["contraindicated_drugs"][1].severity is Severity.ABSOLUTE


class TestClassifierAndDosing:
    def test_classifier(self):
        from biologic_agent.nodes import classifier

        result = classifier.run(make_state(), engine_config=CONFIG)
        assert result["classification"].quadrant is Quadrant.STABLE_SUBOPTIMAL

    def test_dosing_uses_formulary_generic_when_intake_has_none(self):
        from biologic_agent.nodes import dosing

        patient = make_patient(current_therapy={"drug_name": "Cyltezo", "frequency": "every 2 weeks"})
        result = dosing.run(make_state(patient=patient, current_drug=CYLTEZO))
        assert result["dose_assessment"].can_reduce
        assert str(result["dose_assessment"].next_interval) == "every 3 weeks"

    def test_dosing_without_therapy(self):
        from biologic_agent.nodes import dosing

        result = dosing.run(make_state(patient=make_patient(current_therapy=None), current_drug=None))
        assert result["dose_assessment"] is NO_ASSESSMENT


# ── Evidence Tests ──────────────────────────────────────────────────────────


class TestEvidence:
    def test_brand_and_generic_queried_and_deduplicated(self):
        from biologic_agent.nodes import evidence

        retriever = StaticEvidenceRetriever()
        result = evidence.run(make_state(), retriever=retriever, engine_config=CONFIG)
        assert sorted(q[0] for q in retriever.queries) == ["Humira", "adalimumab"]
        citations = [f.citation for f in result["evidence"]]
        assert len(citations) == len(set(citations)) == 2

    def test_skipped_when_dose_reduction_not_permitted(self):
        from biologic_agent.nodes import evidence

        retriever = StaticEvidenceRetriever()
        classification = Classification(Quadrant.UNSTABLE_SUBOPTIMAL, False, False, 3, 1)
        result = evidence.run(make_state(classification=classification), retriever=retriever, engine_config=CONFIG)
        assert result["evidence"] == []
        assert retriever.queries == []

    def test_skipped_without_retriever(self):
        from biologic_agent.nodes import evidence

        assert evidence.run(make_state(), retriever=None, engine_config=CONFIG) == {"evidence": []}

    def test_failed_query_contributes_nothing(self):
        from biologic_agent.nodes import evidence

        retriever = StaticEvidenceRetriever(fail_for=["adalimumab"])
        result = evidence.run(make_state(), retriever=retriever, engine_config=CONFIG)
        assert [f.citation for f in result["evidence"]] == ["Atalay S, et al. JAMA Dermatol. 2020"]

    def test_evidence_capped(self):
        from biologic_agent.nodes import evidence

        result = evidence.run(make_state(), retriever=StaticEvidenceRetriever(),
                              engine_config=EngineConfig(evidence_limit=1))
        assert len(result["evidence"]) == 1


# ── Ranker Tests ────────────────────────────────────────────────────────────


class TestRanker:
    def test_oracle_sees_screened_candidates_only(self):
        from biologic_agent.nodes import ranker

        oracle = ScriptedOracle([proposal(RecommendationType.CONTINUE_CURRENT, "Humira")])
        result = ranker.run(make_state(oracle_candidates=[TREMFYA]), oracle=oracle, engine_config=CONFIG)
        assert len(result["proposals"]) == 1
        context = oracle.last_context
        assert context.candidates == [TREMFYA]
        assert context.quadrant is Quadrant.STABLE_SUBOPTIMAL
        assert context.current_brand == "Humira"
        assert context.max_recommendations == 3

    def test_oracle_error_propagates(self):
        from biologic_agent.nodes import ranker

        oracle = ScriptedOracle(error=OracleError("model overloaded"))
        with pytest.raises(OracleError, match="model overloaded"):
            ranker.run(make_state(), oracle=oracle, engine_config=CONFIG)


# ── Sanitizer Tests ─────────────────────────────────────────────────────────


def sanitize(proposals, **state_overrides):
    from biologic_agent.nodes import sanitizer

    state = make_state(proposals=proposals, **state_overrides)
    return sanitizer.run(state, engine_config=CONFIG)["validated"]


def summary(validated):
    return [(v.type, v.proposal.drug_name) for v in validated]


STABLE_OPTIMAL_ON_CYLTEZO = {
    "patient": make_patient(
        current_therapy={"drug_name": "Cyltezo", "generic_name": "adalimumab-adbm", "dose": "40 mg",
                         "frequency": "every 2 weeks"}
    ),
    "current_drug": CYLTEZO,
    "classification": Classification(Quadrant.STABLE_OPTIMAL, True, True, 1, 1),
    "dose_assessment": assess("Cyltezo", "every 2 weeks", "adalimumab-adbm"),
}

UNSTABLE_OPTIMAL_ON_CYLTEZO = dict(
    STABLE_OPTIMAL_ON_CYLTEZO,
    classification=Classification(Quadrant.UNSTABLE_OPTIMAL, False, True, 1, 1),
)


class TestSanitizerRejections:
    def test_placeholder_rejected(self):
        result = sanitize([
            proposal(RecommendationType.SWITCH_TO_PREFERRED, "No tier 1 option available", rank=1),
            proposal(RecommendationType.SWITCH_TO_BIOSIMILAR, "Cyltezo", rank=2),
        ])
        assert summary(result) == [(RecommendationType.SWITCH_TO_BIOSIMILAR, "Cyltezo")]

    def test_current_drug_as_switch_rejected(self):
        result = sanitize([
            proposal(RecommendationType.SWITCH_TO_PREFERRED, "Humira", rank=1),
            proposal(RecommendationType.THERAPEUTIC_SWITCH, "adalimumab", rank=2),
            proposal(RecommendationType.SWITCH_TO_BIOSIMILAR, "Cyltezo", rank=3),
        ])
        assert summary(result) == [(RecommendationType.SWITCH_TO_BIOSIMILAR, "Cyltezo")]

    def test_target_outside_safe_set_rejected(self):
        result = sanitize(
            [
                proposal(RecommendationType.SWITCH_TO_BIOSIMILAR, "Cyltezo", rank=1),
                proposal(RecommendationType.SWITCH_TO_PREFERRED, "Tremfya", rank=2),
            ],
            safe_drugs=[TREMFYA, HUMIRA],
        )
        assert summary(result) == [(RecommendationType.SWITCH_TO_PREFERRED, "Tremfya")]

    def test_unknown_target_rejected(self):
        result = sanitize([
            proposal(RecommendationType.THERAPEUTIC_SWITCH, "Imaginarumab", rank=1),
            proposal(RecommendationType.SWITCH_TO_PREFERRED, "Cosentyx", rank=2),
        ])
        assert summary(result) == [(RecommendationType.SWITCH_TO_PREFERRED, "Cosentyx")]

    def test_generic_name_resolves_to_formulary_drug(self):
        result = sanitize([proposal(RecommendationType.SWITCH_TO_PREFERRED, "guselkumab", rank=1)])
        assert summary(result) == [(RecommendationType.SWITCH_TO_PREFERRED, "Tremfya")]
        assert result[0].target is TREMFYA

    def test_duplicates_keep_first_in_rank_order(self):
        result = sanitize([
            proposal(RecommendationType.OPTIMIZE_CURRENT, "Humira", rank=4),
            proposal(RecommendationType.SWITCH_TO_BIOSIMILAR, "Cyltezo", rank=1),
            proposal(RecommendationType.SWITCH_TO_BIOSIMILAR, "cyltezo", rank=2),
            proposal(RecommendationType.CONTINUE_CURRENT, "Humira", rank=3),
        ])
        assert summary(result) == [
            (RecommendationType.SWITCH_TO_BIOSIMILAR, "Cyltezo"),
            (RecommendationType.CONTINUE_CURRENT, "Humira"),
        ]

    def test_zero_valid_proposals_is_oracle_error(self):
        with pytest.raises(OracleError, match="no valid recommendations"):
            sanitize([
                proposal(RecommendationType.SWITCH_TO_PREFERRED, "N/A"),
                proposal(RecommendationType.SWITCH_TO_PREFERRED, "Humira"),
            ])

    def test_empty_proposal_list_is_oracle_error(self):
        with pytest.raises(OracleError):
            sanitize([])

    def test_contraindicated_current_drug_cannot_be_kept(self):
        result = sanitize(
            [
                proposal(RecommendationType.CONTINUE_CURRENT, "Humira", rank=1),
                proposal(RecommendationType.DOSE_REDUCTION, "Humira", rank=2, new_frequency="every 3 weeks"),
                proposal(RecommendationType.THERAPEUTIC_SWITCH, "Cosentyx", rank=3),
            ],
            current_blocked=True,
        )
        assert summary(result) == [(RecommendationType.THERAPEUTIC_SWITCH, "Cosentyx")]

    def test_short_duration_does_not_add_continue_for_contraindicated_drug(self):
        result = sanitize(
            [proposal(RecommendationType.SWITCH_TO_PREFERRED, "Tremfya", rank=1)],
            current_blocked=True,
            classification=Classification(Quadrant.STABLE_SHORT_DURATION, True, False, 3, 1, 3),
        )
        assert summary(result) == [(RecommendationType.SWITCH_TO_PREFERRED, "Tremfya")]


class TestSanitizerDoseReduction:
    def test_rejected_in_unstable_quadrant(self):
        classification = Classification(Quadrant.UNSTABLE_SUBOPTIMAL, False, False, 3, 1)
        result = sanitize(
            [
                proposal(RecommendationType.DOSE_REDUCTION, "Humira", rank=1, new_frequency="every 3 weeks"),
                proposal(RecommendationType.SWITCH_TO_BIOSIMILAR, "Cyltezo", rank=2),
            ],
            classification=classification,
        )
        assert [v.type for v in result] == [RecommendationType.SWITCH_TO_BIOSIMILAR]

    def test_rejected_at_fifty_percent(self):
        overrides = dict(STABLE_OPTIMAL_ON_CYLTEZO, dose_assessment=assess("Cyltezo", "every 4 weeks", "adalimumab"))
        result = sanitize(
            [
                proposal(RecommendationType.DOSE_REDUCTION, "Cyltezo", rank=1, new_frequency="every 6 weeks"),
                proposal(RecommendationType.CONTINUE_CURRENT, "Cyltezo", rank=2),
            ],
            **overrides,
        )
        assert [v.type for v in result] == [RecommendationType.CONTINUE_CURRENT]

    @pytest.mark.parametrize("frequency", ["every 2 weeks", "weekly", "Q10D"])
    def test_non_lengthening_interval_rejected(self, frequency):
        result = sanitize(
            [
                proposal(RecommendationType.DOSE_REDUCTION, "Cyltezo", rank=1, new_frequency=frequency),
                proposal(RecommendationType.CONTINUE_CURRENT, "Cyltezo", rank=2),
            ],
            **STABLE_OPTIMAL_ON_CYLTEZO,
        )
        assert [v.type for v in result] == [RecommendationType.CONTINUE_CURRENT]

    @pytest.mark.parametrize("frequency", ["every 4 weeks", "every 8 weeks", "extend the interval", None])
    def test_wrong_or_unparseable_step_replaced_with_next_step(self, frequency):
        result = sanitize(
            [proposal(RecommendationType.DOSE_REDUCTION, "Cyltezo", rank=1, new_frequency=frequency)],
            **STABLE_OPTIMAL_ON_CYLTEZO,
        )
        assert result[0].type is RecommendationType.DOSE_REDUCTION
        assert result[0].proposal.new_frequency == "every 3 weeks"

    def test_correct_step_kept_verbatim(self):
        result = sanitize(
            [proposal(RecommendationType.DOSE_REDUCTION, "Cyltezo", rank=1, new_frequency="Q3W")],
            **STABLE_OPTIMAL_ON_CYLTEZO,
        )
        assert result[0].proposal.new_frequency == "Q3W"
        assert result[0].proposal.new_dose == "40 mg"


class TestSanitizerNormalization:
    def test_current_drug_types_pinned_to_brand(self):
        result = sanitize([
            proposal(RecommendationType.SWITCH_TO_BIOSIMILAR, "Cyltezo", rank=1),
            proposal(RecommendationType.CONTINUE_CURRENT, "adalimumab", rank=2),
        ])
        assert result[1].proposal.drug_name == "Humira"
        assert result[1].target is HUMIRA

    def test_initiate_while_on_therapy_becomes_switch(self):
        result = sanitize([
            proposal(RecommendationType.INITIATE_BIOLOGIC, "Cyltezo", rank=1),
            proposal(RecommendationType.INITIATE_BIOLOGIC, "Cosentyx", rank=2),
        ])
        assert [v.type for v in result] == [
            RecommendationType.SWITCH_TO_BIOSIMILAR,
            RecommendationType.SWITCH_TO_PREFERRED,
        ]

    def test_mislabelled_biosimilar_relabelled(self):
        result = sanitize([proposal(RecommendationType.SWITCH_TO_BIOSIMILAR, "Tremfya", rank=1)])
        assert result[0].type is RecommendationType.SWITCH_TO_PREFERRED

    def test_lower_tier_therapeutic_switch_keeps_label(self):
        result = sanitize([proposal(RecommendationType.THERAPEUTIC_SWITCH, "Tremfya", rank=1)])
        assert result[0].type is RecommendationType.THERAPEUTIC_SWITCH

    def test_listed_biosimilar_of_current_brand(self):
        novosimilar = FormularyDrug(
            drug_name="Novosimilar",
            drug_class="TNF inhibitor",
            tier=1,
            requires_pa="No",
            annual_cost=30000.0,
            biosimilar_of="Humira",
        )
        result = sanitize(
            [proposal(RecommendationType.SWITCH_TO_PREFERRED, "Novosimilar", rank=1)],
            safe_drugs=SAFE + [novosimilar],
        )
        assert summary(result) == [(RecommendationType.SWITCH_TO_BIOSIMILAR, "Novosimilar")]

    def test_not_on_biologic_only_initiates(self):
        result = sanitize(
            [
                proposal(RecommendationType.CONTINUE_CURRENT, None, rank=1),
                proposal(RecommendationType.SWITCH_TO_PREFERRED, "Tremfya", rank=2),
                proposal(RecommendationType.DOSE_REDUCTION, None, rank=3),
            ],
            patient=make_patient(current_therapy=None),
            current_drug=None,
            classification=Classification(Quadrant.NOT_ON_BIOLOGIC, False, False, None, 1),
            dose_assessment=NO_ASSESSMENT,
        )
        assert summary(result) == [(RecommendationType.INITIATE_BIOLOGIC, "Tremfya")]

    def test_label_dosing_filled_for_missing_or_per_label(self):
        result = sanitize([
            proposal(RecommendationType.SWITCH_TO_PREFERRED, "Tremfya", rank=1, new_dose="per label"),
        ])
        assert result[0].proposal.new_dose == "100 mg"
        assert result[0].proposal.new_frequency == "at weeks 0, 4, then every 8 weeks"

    def test_oracle_dosing_kept_when_given(self):
        result = sanitize([
            proposal(RecommendationType.SWITCH_TO_PREFERRED, "Tremfya", rank=1, new_dose="100 mg",
                     new_frequency="every 8 weeks"),
        ])
        assert result[0].proposal.new_frequency == "every 8 weeks"


class TestSanitizerPolicy:
    def test_tier_improving_switch_moved_to_top(self):
        result = sanitize([
            proposal(RecommendationType.DOSE_REDUCTION, "Humira", rank=1, new_frequency="every 3 weeks"),
            proposal(RecommendationType.SWITCH_TO_PREFERRED, "Cosentyx", rank=2),
        ])
        assert summary(result) == [
            (RecommendationType.SWITCH_TO_PREFERRED, "Cosentyx"),
            (RecommendationType.DOSE_REDUCTION, "Humira"),
        ]
        assert [v.proposal.rank for v in result] == [1, 2]

    def test_tier_improving_switch_synthesized_when_missing(self):
        result = sanitize([proposal(RecommendationType.CONTINUE_CURRENT, "Humira", rank=1)])
        assert summary(result) == [
            (RecommendationType.SWITCH_TO_BIOSIMILAR, "Cyltezo"),
            (RecommendationType.CONTINUE_CURRENT, "Humira"),
        ]
        assert result[0].target is CYLTEZO

    def test_no_synthesis_without_lower_tier_alternative(self):
        result = sanitize(
            [proposal(RecommendationType.CONTINUE_CURRENT, "Humira", rank=1)],
            safe_drugs=[HUMIRA, TALTZ],
        )
        assert summary(result) == [(RecommendationType.CONTINUE_CURRENT, "Humira")]

    def test_short_duration_puts_continue_first(self):
        classification = Classification(Quadrant.STABLE_SHORT_DURATION, True, False, 3, 1, 3)
        result = sanitize(
            [
                proposal(RecommendationType.SWITCH_TO_BIOSIMILAR, "Cyltezo", rank=1),
                proposal(RecommendationType.CONTINUE_CURRENT, "Humira", rank=2),
            ],
            classification=classification,
        )
        assert [v.type for v in result] == [
            RecommendationType.CONTINUE_CURRENT,
            RecommendationType.SWITCH_TO_BIOSIMILAR,
        ]

    def test_short_duration_synthesizes_continue(self):
        classification = Classification(Quadrant.STABLE_SHORT_DURATION, True, False, 3, 1, 3)
        result = sanitize(
            [proposal(RecommendationType.SWITCH_TO_BIOSIMILAR, "Cyltezo", rank=1)],
            classification=classification,
        )
        assert result[0].type is RecommendationType.CONTINUE_CURRENT
        assert result[0].proposal.new_frequency == "every 2 weeks"
        assert result[1].type is RecommendationType.SWITCH_TO_BIOSIMILAR

    def test_capped_at_three_and_renumbered(self):
        result = sanitize(
            [
                proposal(RecommendationType.THERAPEUTIC_SWITCH, "Tremfya", rank=5),
                proposal(RecommendationType.THERAPEUTIC_SWITCH, "Cosentyx", rank=6),
                proposal(RecommendationType.THERAPEUTIC_SWITCH, "Skyrizi", rank=7),
                proposal(RecommendationType.THERAPEUTIC_SWITCH, "Taltz", rank=8),
                proposal(RecommendationType.OPTIMIZE_CURRENT, "Cyltezo", rank=9),
            ],
            **UNSTABLE_OPTIMAL_ON_CYLTEZO,
        )
        assert [v.proposal.rank for v in result] == [1, 2, 3]
        assert [v.proposal.drug_name for v in result] == ["Tremfya", "Cosentyx", "Skyrizi"]


# ── Pricing Tests ───────────────────────────────────────────────────────────


class TestPricing:
    def _price(self, proposals, **overrides):
        from biologic_agent.nodes import pricing, sanitizer

        state = make_state(proposals=proposals, **overrides)
        state["validated"] = sanitizer.run(state, engine_config=CONFIG)["validated"]
        return pricing.run(state, engine_config=CONFIG)["recommendations"]

    def test_switch_priced_against_current(self):
        from tests.mocks.evidence_api import FAKE_FINDINGS

        recs = self._price(
            [
                proposal(RecommendationType.SWITCH_TO_BIOSIMILAR, "Cyltezo", rank=1),
                proposal(RecommendationType.DOSE_REDUCTION, "Humira", rank=2, new_frequency="every 3 weeks"),
            ],
            evidence=FAKE_FINDINGS["adalimumab"],
        )
        switch, reduction = recs
        assert switch.rank == 1
        assert switch.tier == 1
        assert switch.requires_pa is PARequirement.NO
        assert switch.generic_name == "adalimumab-adbm"
        assert switch.cost.annual_savings == 42000
        assert switch.evidence == []

        assert reduction.rank == 2
        assert reduction.tier == 3
        assert reduction.requires_pa is PARequirement.YES
        assert reduction.cost.recommended_annual_cost == 63000
        assert len(reduction.evidence) == 2

    def test_blank_pa_reported_as_unknown(self):
        skyrizi = make_drug("Skyrizi", "risankizumab", "IL-23 inhibitor", 2, 90000.0, pa=None)
        safe = [CYLTEZO, TREMFYA, COSENTYX, skyrizi, HUMIRA, TALTZ]
        recs = self._price(
            [proposal(RecommendationType.SWITCH_TO_PREFERRED, "Skyrizi", rank=1)],
            safe_drugs=safe,
            oracle_candidates=[d for d in safe if d is not HUMIRA],
        )
        assert recs[0].drug_name == "Skyrizi"
        assert recs[0].requires_pa is PARequirement.UNKNOWN

    def test_off_formulary_current_drug(self):
        patient = make_patient(current_therapy={"drug_name": "Mysterymab", "generic_name": "mysterymab",
                                                "frequency": "every 4 weeks"})
        recs = self._price(
            [proposal(RecommendationType.SWITCH_TO_PREFERRED, "Cosentyx", rank=1)],
            patient=patient,
            current_drug=None,
            dose_assessment=assess("Mysterymab", "every 4 weeks"),
        )
        assert recs[0].cost.current_annual_cost is None
        assert recs[0].cost.recommended_annual_cost == 76000
        assert recs[0].cost.savings_percent is None
