"""Repository provisioning and decommissioning.

``Provisioner.create`` runs in four stages:

1. create the repository; ``ALREADY_EXISTS`` switches to normalizing the
   existing repo, any other failure aborts before a single rule runs;
2. start one thread per enabled rule;
3. wait for every rule. A failed rule never cancels its siblings, so one run
   applies as much configuration as it can and a re-run only has to fix
   the rest;
4. return a ``RunResult`` whose ``first_error`` is the first failure seen.

Nothing is rolled back: every rule is idempotent and safe to leave applied.
"""

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed

from ghcli.errors import ErrorKind, GhCliError
from ghcli.models import (
    Repository,
    RepositoryDescriptor,
    RepositoryIdentity,
    RuleName,
    RuleOutcome,
    RuleResult,
    RuleSet,
    RunResult,
)
from ghcli.rules import ABSORBED, APPLIERS, RuleContext, Services

logger = logging.getLogger(__name__)


class Provisioner:
    def __init__(self, services: Services) -> None:
        self._services = services

    def create(self, identity: RepositoryIdentity, descriptor: RepositoryDescriptor, rules: RuleSet) -> RunResult:
        logger.info("Creating repository %s...", identity.full_name)
        repository = self._create_or_normalize(identity, descriptor)

        ctx = RuleContext(identity=identity, rules=rules, repository=repository)
        enabled = rules.enabled_rules()
        results: list[RuleResult] = []
        if enabled:
            with ThreadPoolExecutor(max_workers=len(enabled), thread_name_prefix="rule") as pool:
                futures = {pool.submit(self._run_rule, rule, ctx): rule for rule in enabled}
                for future in as_completed(futures):
                    results.append(future.result())

        run = RunResult(identity=identity, repository=repository, results=results)
        failed = [r for r in results if r.outcome is RuleOutcome.FAILED]
        if len(failed) > 1:
            logger.error(
                "%d rules failed (%s); reporting the first",
                len(failed),
                ", ".join(r.rule.value for r in failed),
            )
        if not failed:
            if repository is not None:
                logger.info("Repository created! Here is how to access it %s", repository.html_url or identity.full_name)
            else:
                logger.info("Repository normalized!")
        return run

    def _create_or_normalize(self, identity: RepositoryIdentity, descriptor: RepositoryDescriptor) -> Repository | None:
        try:
            return self._services.github.create_repository(identity.organization, identity.name, descriptor)
        except GhCliError as exc:
            if exc.kind is ErrorKind.ALREADY_EXISTS:
                logger.info("Repository already exists. Trying to normalize it...")
                return None
            raise GhCliError(exc.kind, "could not create repository", exc.status_code) from exc

    def _run_rule(self, rule: RuleName, ctx: RuleContext) -> RuleResult:
        logger.info("Applying %s...", rule.value)
        try:
            failures = APPLIERS[rule](self._services, ctx)
        except Exception as exc:
            # a crashed rule is reported like any failed one so the join always completes
            logger.exception("%s: unexpected error", rule.value)
            error = GhCliError(
                ErrorKind.REMOTE_ERROR, f"could not apply {rule.value} (unexpected {type(exc).__name__})"
            )
            error.__cause__ = exc
            return RuleResult(rule=rule, outcome=RuleOutcome.FAILED, error=error)
        if not failures.failed:
            return RuleResult(rule=rule, outcome=RuleOutcome.APPLIED)

        fatal = failures.unabsorbed(ABSORBED[rule])
        for failure in failures:
            if failure not in fatal:
                logger.debug("%s: %s already applied, skipped (%s)", rule.value, failure.item, failure.error)
        if not fatal:
            return RuleResult(rule=rule, outcome=RuleOutcome.ALREADY_SATISFIED)

        for failure in fatal:
            logger.error("%s: %s failed: %s", rule.value, failure.item, failure.error)
        first = fatal[0]
        error = GhCliError(first.error.kind, f"could not apply {rule.value} ({first.item})", first.error.status_code)
        error.__cause__ = first.error
        return RuleResult(rule=rule, outcome=RuleOutcome.FAILED, error=error)

    def delete(self, identity: RepositoryIdentity) -> None:
        """Disable the merge check and delete the repository, stopping at the first failure."""
        org, name = identity.organization, identity.name

        logger.debug("Fetching repo details from GitHub")
        try:
            repository = self._services.github.get_repository(org, name)
        except GhCliError as exc:
            if exc.kind is ErrorKind.NOT_FOUND:
                raise GhCliError(
                    ErrorKind.NOT_FOUND, "github repo does not exist or you do not have access", exc.status_code
                ) from exc
            raise GhCliError(exc.kind, "information required to disable the merge check was not found") from exc

        if self._services.merge_check is not None:
            logger.debug("Disabling merge check on repo...")
            try:
                self._services.merge_check.disable(repository.id)
                logger.debug("Merge check disabled")
            except GhCliError as exc:
                if exc.kind is not ErrorKind.ALREADY_NOT_ENABLED:
                    raise GhCliError(exc.kind, "could not disable the merge check", exc.status_code) from exc
                logger.debug("Merge check already not enabled, moving on...")

        try:
            self._services.github.delete_repository(org, name)
        except GhCliError as exc:
            raise GhCliError(exc.kind, "could not delete repository", exc.status_code) from exc
        logger.info("Repository %s deleted!", name)
