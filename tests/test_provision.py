"""Tests for the create/normalize and delete orchestrators."""

import json
import threading

import pytest

from ghcli.errors import ErrorKind, GhCliError, error_chain
from ghcli.models import (
    RepositoryDescriptor,
    RepositoryIdentity,
    RuleName,
    RuleOutcome,
    RuleSet,
    RunOutcome,
    TeamPermission,
)
from ghcli.provision import Provisioner
from ghcli.rules import DEFAULT_LABELS, Services


def _error(kind: ErrorKind = ErrorKind.REMOTE_ERROR, message: str = "boom") -> GhCliError:
    return GhCliError(kind, message)


class TestCreate:
    def test_full_run_calls_every_endpoint(
        self, services: Services, identity: RepositoryIdentity, full_rules: RuleSet
    ) -> None:
        run = Provisioner(services).create(identity, RepositoryDescriptor(), full_rules)

        gh = services.github
        assert run.outcome is RunOutcome.SUCCESS
        assert run.first_error is None
        assert run.repository is not None
        assert {r.rule for r in run.results} == set(RuleName)
        assert all(r.outcome is RuleOutcome.APPLIED for r in run.results)
        gh.create_repository.assert_called_once()
        assert gh.add_team.call_count == 2
        assert gh.add_collaborator.call_count == 1
        assert gh.create_label.call_count == 2
        assert gh.delete_label.call_count == len(DEFAULT_LABELS)
        assert gh.create_webhook.call_count == 1
        assert gh.set_branch_protection.call_count == 1
        gh.add_approval_policy_file.assert_called_once()
        services.pullapprove.register.assert_called_once_with("my-service", "acme")
        services.merge_check.enable.assert_called_once_with(1296269)
        gh.get_repository.assert_not_called()

    def test_disabled_rules_make_no_calls(self, services: Services, identity: RepositoryIdentity) -> None:
        rules = RuleSet(enabled=frozenset({RuleName.TEAMS}), teams=[TeamPermission(id=1)])

        run = Provisioner(services).create(identity, RepositoryDescriptor(), rules)

        assert [r.rule for r in run.results] == [RuleName.TEAMS]
        services.github.create_label.assert_not_called()
        services.github.set_branch_protection.assert_not_called()
        services.pullapprove.register.assert_not_called()
        services.merge_check.enable.assert_not_called()

    def test_no_enabled_rules(self, services: Services, identity: RepositoryIdentity) -> None:
        run = Provisioner(services).create(identity, RepositoryDescriptor(), RuleSet())
        assert run.results == []
        assert run.outcome is RunOutcome.SUCCESS

    def test_create_failure_aborts_before_rules(
        self, services: Services, identity: RepositoryIdentity, full_rules: RuleSet
    ) -> None:
        services.github.create_repository.side_effect = _error(ErrorKind.QUOTA_EXCEEDED, "limit exceeded")

        with pytest.raises(GhCliError) as exc_info:
            Provisioner(services).create(identity, RepositoryDescriptor(), full_rules)

        assert exc_info.value.kind is ErrorKind.QUOTA_EXCEEDED
        assert error_chain(exc_info.value) == "could not create repository: limit exceeded"
        services.github.add_team.assert_not_called()
        services.merge_check.enable.assert_not_called()

    def test_rerun_normalizes_existing_repository(
        self, services: Services, identity: RepositoryIdentity, full_rules: RuleSet
    ) -> None:
        gh = services.github
        gh.create_repository.side_effect = _error(ErrorKind.ALREADY_EXISTS)
        gh.add_approval_policy_file.side_effect = _error(ErrorKind.ALREADY_EXISTS)
        gh.create_label.side_effect = _error(ErrorKind.ALREADY_EXISTS)
        gh.delete_label.side_effect = _error(ErrorKind.NOT_FOUND)
        gh.create_webhook.side_effect = _error(ErrorKind.ALREADY_EXISTS)
        services.merge_check.enable.side_effect = _error(ErrorKind.ALREADY_ENABLED)

        run = Provisioner(services).create(identity, RepositoryDescriptor(), full_rules)

        assert run.outcome is RunOutcome.SUCCESS
        assert run.repository is None
        gh.get_repository.assert_called_once_with("acme", "my-service")
        satisfied = {r.rule for r in run.results if r.outcome is RuleOutcome.ALREADY_SATISFIED}
        assert satisfied == {RuleName.PULLAPPROVE, RuleName.MERGE_CHECK, RuleName.LABELS, RuleName.WEBHOOKS}
        services.pullapprove.register.assert_not_called()

    def test_failing_rule_does_not_stop_siblings(
        self, services: Services, identity: RepositoryIdentity, full_rules: RuleSet
    ) -> None:
        services.github.add_team.side_effect = _error(ErrorKind.REMOTE_ERROR, "team gone")

        run = Provisioner(services).create(identity, RepositoryDescriptor(), full_rules)

        assert run.outcome is RunOutcome.FAILED
        assert run.result_for(RuleName.TEAMS).outcome is RuleOutcome.FAILED
        # both teams were attempted, and every other rule still ran
        assert services.github.add_team.call_count == 2
        assert services.github.set_branch_protection.call_count == 1
        assert services.merge_check.enable.call_count == 1
        others = [r for r in run.results if r.rule is not RuleName.TEAMS]
        assert all(r.outcome is RuleOutcome.APPLIED for r in others)

        error = run.first_error
        assert error is not None
        assert error.kind is ErrorKind.REMOTE_ERROR
        assert error_chain(error) == "could not apply teams (team 1): team gone"

    def test_reports_one_error_when_several_rules_fail(
        self, services: Services, identity: RepositoryIdentity, full_rules: RuleSet
    ) -> None:
        services.github.add_team.side_effect = _error(message="teams down")
        services.github.set_branch_protection.side_effect = _error(message="protection down")

        run = Provisioner(services).create(identity, RepositoryDescriptor(), full_rules)

        failed = {r.rule for r in run.results if r.outcome is RuleOutcome.FAILED}
        assert failed == {RuleName.TEAMS, RuleName.BRANCH_PROTECTIONS}
        assert run.first_error is not None
        assert run.first_error.message in {
            "could not apply teams (team 1)",
            "could not apply branch-protections (branch master)",
        }

    def test_crashing_rule_keeps_sibling_results(
        self, services: Services, identity: RepositoryIdentity, full_rules: RuleSet
    ) -> None:
        services.github.create_repository.side_effect = _error(ErrorKind.ALREADY_EXISTS)
        services.github.get_repository.side_effect = json.JSONDecodeError("Expecting value", "<html>", 0)

        run = Provisioner(services).create(identity, RepositoryDescriptor(), full_rules)

        assert {r.rule for r in run.results} == set(RuleName)
        merge_check = run.result_for(RuleName.MERGE_CHECK)
        assert merge_check.outcome is RuleOutcome.FAILED
        assert merge_check.error.kind is ErrorKind.REMOTE_ERROR
        assert isinstance(merge_check.error.__cause__, json.JSONDecodeError)
        assert run.result_for(RuleName.TEAMS).outcome is RuleOutcome.APPLIED
        assert services.github.add_team.call_count == 2

    def test_rules_run_concurrently(self, services: Services, identity: RepositoryIdentity) -> None:
        rules = RuleSet(
            enabled=frozenset({RuleName.TEAMS, RuleName.BRANCH_PROTECTIONS}),
            teams=[TeamPermission(id=1)],
            branch_protections={"master": []},
        )
        barrier = threading.Barrier(2, timeout=5)
        services.github.add_team.side_effect = lambda *args: barrier.wait()
        services.github.set_branch_protection.side_effect = lambda *args: barrier.wait()

        run = Provisioner(services).create(identity, RepositoryDescriptor(), rules)

        # a sequential run would time out on the barrier
        assert run.outcome is RunOutcome.SUCCESS


class TestDelete:
    def test_disables_merge_check_then_deletes(self, services: Services, identity: RepositoryIdentity) -> None:
        Provisioner(services).delete(identity)
        services.merge_check.disable.assert_called_once_with(1296269)
        services.github.delete_repository.assert_called_once_with("acme", "my-service")

    def test_already_not_enabled_is_absorbed(self, services: Services, identity: RepositoryIdentity) -> None:
        services.merge_check.disable.side_effect = _error(ErrorKind.ALREADY_NOT_ENABLED)
        Provisioner(services).delete(identity)
        services.github.delete_repository.assert_called_once()

    def test_merge_check_failure_keeps_repository(self, services: Services, identity: RepositoryIdentity) -> None:
        services.merge_check.disable.side_effect = _error(ErrorKind.SERVER_ERROR, "zappr down")

        with pytest.raises(GhCliError) as exc_info:
            Provisioner(services).delete(identity)

        assert error_chain(exc_info.value) == "could not disable the merge check: zappr down"
        services.github.delete_repository.assert_not_called()

    def test_missing_repository(self, services: Services, identity: RepositoryIdentity) -> None:
        services.github.get_repository.side_effect = _error(ErrorKind.NOT_FOUND)

        with pytest.raises(GhCliError, match="does not exist") as exc_info:
            Provisioner(services).delete(identity)

        assert exc_info.value.kind is ErrorKind.NOT_FOUND
        services.merge_check.disable.assert_not_called()

    def test_delete_failure(self, services: Services, identity: RepositoryIdentity) -> None:
        services.github.delete_repository.side_effect = _error(ErrorKind.REMOTE_ERROR, "403 forbidden")
        with pytest.raises(GhCliError, match="could not delete repository"):
            Provisioner(services).delete(identity)

    def test_without_merge_check_client(self, services: Services, identity: RepositoryIdentity) -> None:
        Provisioner(Services(github=services.github)).delete(identity)
        services.github.delete_repository.assert_called_once()
