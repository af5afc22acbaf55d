"""Encoding of the atomicity proof rules.

Every rule is emitted as one statement sequence framed by section comments.
Before a proof obligation is emitted, a transformer is registered with the
error backtranslator that maps a backend failure at exactly that obligation
to a rule-specific diagnostic.
"""

from __future__ import annotations

import logging
from typing import Optional

from atomica import ivl
from atomica.ast_nodes import MakeAtomic, OpenRegion, RuleStatement, UpdateRegion, UseAtomic
from atomica.errors import InternalError
from atomica.failures import (
    AssertFailed, AssertionFalse, ExhaleFailed, FailureReason, FoldFailed, InsufficientPermission,
    UnfoldFailed, VerificationFailure,
)
from atomica.regions import RegionPredicateDetails
from atomica.reporting import (
    AdditionalErrorClarification, IllegalRegionStateChangeError, InsufficientDiamondResourcePermissionError,
    InsufficientGuardPermissionError, InsufficientRegionPermissionError,
    InsufficientTrackingResourcePermissionError, MakeAtomicError, OpenRegionError, UpdateRegionError,
    UseAtomicError,
)

logger = logging.getLogger(__name__)

LOOP_INVARIANT_HINT = "A common source of this problem are insufficient loop invariants"


class RuleTranslator:

    def on_failure(
        self,
        kind: type[VerificationFailure],
        node: ivl.IvlNode,
        build,
        reason_kind: Optional[type[FailureReason]] = None,
        reason_node: Optional[ivl.IvlNode] = None,
    ) -> None:
        """Register a transformer for failures of the given kind at node."""
        def matches(failure: VerificationFailure) -> bool:
            if not isinstance(failure, kind) or not failure.caused_by(node):
                return False
            if reason_kind is not None and not isinstance(failure.reason, reason_kind):
                return False
            return reason_node is None or failure.reason.caused_by(reason_node)

        self.backtranslator.add_error_transformer(matches, build)

    def rule_details(self, stmt: RuleStatement) -> RegionPredicateDetails:
        details = self.regions.details(stmt.region_predicate)
        if details.out_arg is not None:
            raise InternalError(
                "Using-clauses expect region assertions without out-arguments, but got "
                f"{stmt.region_predicate}",
                stmt.region_predicate.location)
        return details

    def with_section_comments(self, stmt: RuleStatement, stmts: list[ivl.Stmt]) -> ivl.Seqn:
        if not self.context.section_comments:
            return ivl.Seqn(stmts).with_source(stmt)
        return ivl.Seqn([
            ivl.Comment(f"------- {stmt.statement_name} BEGIN -------"),
            *stmts,
            ivl.Comment(f"------- {stmt.statement_name} END -------"),
        ]).with_source(stmt)

    # -----------------------------------------------------------------------
    # make-atomic
    # -----------------------------------------------------------------------

    def translate_make_atomic(self, stmt: MakeAtomic) -> ivl.Stmt:
        details = self.rule_details(stmt)
        region = details.region
        region_id_use = details.region_id
        in_args = [self.translate_exp(a) for a in details.in_args]
        region_id = in_args[0]
        guard = self.regions.guard_of(stmt.guard).declaration

        inhale_diamond = ivl.Inhale(self.diamond_access(region_id)).with_source(stmt.guard)

        exhale_guard = ivl.Exhale(self.guard_access_if_not_duplicable(stmt.guard)).with_source(stmt.guard)
        self.on_failure(
            ExhaleFailed, exhale_guard,
            lambda f: MakeAtomicError(stmt, InsufficientGuardPermissionError(stmt.guard)))

        havoc_before = self.stabilize_single_instance(region, in_args)

        body = self.translate_stmt(stmt.body)

        step_from = self.step_from_location(region_id, region).with_source(region_id_use)
        step_from_allowed = ivl.BinExp(
            "in", step_from, self.atomicity_context(region, region_id)).with_source(stmt)
        check_from = ivl.Assert(step_from_allowed).with_source(stmt)
        self.on_failure(
            AssertFailed, check_from,
            lambda f: MakeAtomicError(stmt)
            .due_to(InsufficientTrackingResourcePermissionError(stmt.region_predicate, region_id_use))
            .due_to(AdditionalErrorClarification(
                "The tracking resource is only available after a region update", region_id_use)),
            reason_kind=InsufficientPermission, reason_node=step_from)
        self.on_failure(
            AssertFailed, check_from,
            lambda f: MakeAtomicError(stmt)
            .due_to(IllegalRegionStateChangeError(stmt.body))
            .due_to(AdditionalErrorClarification(
                "In particular, it cannot be shown that the region is transitioned from a state "
                "that is compatible with the procedure's interference specification",
                region_id_use))
            .due_to(AdditionalErrorClarification(LOOP_INVARIANT_HINT, region_id_use)),
            reason_kind=AssertionFalse, reason_node=step_from_allowed)

        step_to_reachable = ivl.BinExp(
            "in",
            self.step_to_location(region_id, region),
            self.guard_closure(guard, region, in_args, self.step_from_location(region_id, region)),
        ).with_source(stmt)
        check_to = ivl.Assert(step_to_reachable).with_source(stmt)
        self.on_failure(
            AssertFailed, check_to,
            lambda f: MakeAtomicError(stmt)
            .due_to(IllegalRegionStateChangeError(stmt.guard))
            .due_to(AdditionalErrorClarification(
                "In particular, it cannot be shown that the region is transitioned to a state "
                f"that the guard {stmt.guard} permits",
                region_id_use))
            .due_to(AdditionalErrorClarification(LOOP_INVARIANT_HINT, region_id_use)))

        havoc_after = self.stabilize_single_instance(region, in_args)

        current_state = self.region_state(region, in_args)
        assume_current_state_is_step_to = ivl.Inhale(
            ivl.BinExp("==", current_state, self.step_to_location(region_id, region)))
        assume_old_state_was_step_from = ivl.Inhale(
            ivl.BinExp("==", ivl.Old(self.region_state(region, in_args)),
                       self.step_from_location(region_id, region)))

        inhale_guard = ivl.Inhale(self.guard_access_if_not_duplicable(stmt.guard))

        exhale_tracking_resource = ivl.Exhale(ivl.conjoin(
            self.step_from_access(region_id, region).with_source(stmt.region_predicate),
            self.step_to_access(region_id, region).with_source(stmt.region_predicate),
        )).with_source(stmt.region_predicate)
        self.on_failure(
            ExhaleFailed, exhale_tracking_resource,
            lambda f: MakeAtomicError(stmt)
            .due_to(InsufficientTrackingResourcePermissionError(stmt.region_predicate, region_id_use))
            .due_to(AdditionalErrorClarification(LOOP_INVARIANT_HINT, region_id_use)))

        return self.with_section_comments(stmt, [
            inhale_diamond,
            exhale_guard,
            *havoc_before,
            body,
            check_from,
            check_to,
            *havoc_after,
            assume_current_state_is_step_to,
            assume_old_state_was_step_from,
            inhale_guard,
            exhale_tracking_resource,
        ])

    # -----------------------------------------------------------------------
    # update-region
    # -----------------------------------------------------------------------

    def translate_update_region(self, stmt: UpdateRegion) -> ivl.Stmt:
        details = self.rule_details(stmt)
        region = details.region
        region_id_use = details.region_id
        in_args = [self.translate_exp(a) for a in details.in_args]
        region_id = in_args[0]

        exhale_diamond = ivl.Exhale(self.diamond_access(region_id)).with_source(stmt.region_predicate)
        self.on_failure(
            ExhaleFailed, exhale_diamond,
            lambda f: UpdateRegionError(
                stmt, InsufficientDiamondResourcePermissionError(stmt.region_predicate, region_id_use)))

        label = self.context.fresh_label("pre_region_update")

        unfold = ivl.Unfold(self.region_predicate_access(region, in_args)).with_source(stmt.region_predicate)
        self.on_failure(
            UnfoldFailed, unfold,
            lambda f: UpdateRegionError(stmt, InsufficientRegionPermissionError(stmt.region_predicate)))

        # The body may read the state of any other region instance
        stabilize = self.stabilize_regions(self.analyser.program.regions)

        body = self.translate_stmt(stmt.body)

        fold = ivl.Fold(self.region_predicate_access(region, in_args)).with_source(stmt.region_predicate)
        self.on_failure(
            FoldFailed, fold,
            lambda f: UpdateRegionError(stmt, self.backtranslator.translate_reason(f.reason)))

        def old_state() -> ivl.Exp:
            return ivl.LabelledOld(self.region_state(region, in_args), label.name)

        state_changed = ivl.BinExp("!=", self.region_state(region, in_args), old_state())

        obtain_tracking_resource = ivl.Seqn([
            ivl.Inhale(ivl.conjoin(self.step_from_access(region_id, region),
                                   self.step_to_access(region_id, region))),
            ivl.FieldAssign(self.step_from_location(region_id, region), old_state()),
            ivl.FieldAssign(self.step_to_location(region_id, region), self.region_state(region, in_args)),
        ])
        keep_diamond = ivl.Seqn([ivl.Inhale(self.diamond_access(region_id))])

        return self.with_section_comments(stmt, [
            exhale_diamond,
            label,
            unfold,
            *stabilize,
            body,
            fold,
            ivl.If(state_changed, obtain_tracking_resource, keep_diamond),
        ])

    # -----------------------------------------------------------------------
    # use-atomic
    # -----------------------------------------------------------------------

    def translate_use_atomic(self, stmt: UseAtomic) -> ivl.Stmt:
        details = self.rule_details(stmt)
        region = details.region
        in_args = [self.translate_exp(a) for a in details.in_args]
        guard = self.regions.guard_of(stmt.guard).declaration

        label = self.context.fresh_label("pre_use_atomic")

        unfold = ivl.Unfold(self.region_predicate_access(region, in_args)).with_source(stmt.region_predicate)
        self.on_failure(
            UnfoldFailed, unfold,
            lambda f: UseAtomicError(stmt, InsufficientRegionPermissionError(stmt.region_predicate)))

        with self.context.opened(region, tuple(in_args), label):
            exhale_guard = ivl.Exhale(self.guard_access_if_not_duplicable(stmt.guard)).with_source(stmt.guard)
            self.on_failure(
                ExhaleFailed, exhale_guard,
                lambda f: UseAtomicError(stmt, InsufficientGuardPermissionError(stmt.guard)))

            others = [r for r in self.analyser.program.regions if r is not region]
            stabilize = [*self.stabilize_regions(others), *self.stabilize_region_instances(region)]

            inhale_guard = ivl.Inhale(self.guard_access_if_not_duplicable(stmt.guard))

            body = self.translate_stmt(stmt.body)

        fold = ivl.Fold(self.region_predicate_access(region, in_args)).with_source(stmt.region_predicate)
        self.on_failure(
            FoldFailed, fold,
            lambda f: UseAtomicError(stmt)
            .due_to(IllegalRegionStateChangeError(stmt.region_predicate))
            .due_to(AdditionalErrorClarification(
                "In particular, closing the region at the end of the use-atomic block might fail",
                stmt.region_predicate))
            .due_to(self.backtranslator.translate_reason(f.reason)))

        state_change_permitted = ivl.Exhale(ivl.BinExp(
            "in",
            self.region_state(region, in_args),
            self.guard_closure(
                guard, region, in_args,
                ivl.LabelledOld(self.region_state(region, in_args), label.name)),
        )).with_source(stmt.region_predicate)
        self.on_failure(
            ExhaleFailed, state_change_permitted,
            lambda f: UseAtomicError(stmt, IllegalRegionStateChangeError(stmt.body)))

        return self.with_section_comments(stmt, [
            label,
            unfold,
            exhale_guard,
            *stabilize,
            inhale_guard,
            body,
            fold,
            state_change_permitted,
        ])

    # -----------------------------------------------------------------------
    # open-region
    # -----------------------------------------------------------------------

    def translate_open_region(self, stmt: OpenRegion) -> ivl.Stmt:
        details = self.rule_details(stmt)
        region = details.region
        in_args = [self.translate_exp(a) for a in details.in_args]

        label = self.context.fresh_label("pre_open_region")

        unfold = ivl.Unfold(self.region_predicate_access(region, in_args)).with_source(stmt.region_predicate)
        self.on_failure(
            UnfoldFailed, unfold,
            lambda f: OpenRegionError(stmt, InsufficientRegionPermissionError(stmt.region_predicate)))

        with self.context.opened(region, tuple(in_args), label):
            body = self.translate_stmt(stmt.body)

        fold = ivl.Fold(self.region_predicate_access(region, in_args)).with_source(stmt.region_predicate)
        self.on_failure(
            FoldFailed, fold,
            lambda f: OpenRegionError(stmt, self.backtranslator.translate_reason(f.reason)))

        state_unchanged = ivl.Assert(ivl.BinExp(
            "==",
            self.region_state(region, in_args),
            ivl.LabelledOld(self.region_state(region, in_args), label.name),
        )).with_source(stmt)
        self.on_failure(
            AssertFailed, state_unchanged,
            lambda f: OpenRegionError(stmt, IllegalRegionStateChangeError(stmt.body)))

        return self.with_section_comments(stmt, [
            label,
            unfold,
            body,
            fold,
            state_unchanged,
        ])
