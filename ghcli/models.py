"""Shared pydantic models: the contract between the CLI, orchestrators and providers."""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from ghcli.errors import GhCliError


class RepositoryIdentity(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    organization: str

    @property
    def full_name(self) -> str:
        return f"{self.organization}/{self.name}"


class RepositoryDescriptor(BaseModel):
    """Attributes written once when the repository is created."""

    model_config = ConfigDict(frozen=True)

    description: str = ""
    private: bool = True
    has_issues: bool = True
    has_wiki: bool = False
    has_pages: bool = False
    auto_init: bool = True


class Repository(BaseModel):
    """The subset of GitHub's repository payload the tool reads."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: int
    name: str
    full_name: str | None = None
    private: bool = True
    html_url: str | None = None
    clone_url: str | None = None
    pushed_at: datetime | None = None  # None for repos that were never pushed to


class Collaborator(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    id: int
    login: str


class Release(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    tag_name: str
    html_url: str | None = None


# ---------------------------------------------------------------------------
# Rule options
# ---------------------------------------------------------------------------


class TeamPermission(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    permission: str = "push"  # pull | triage | push | maintain | admin


class CollaboratorPermission(BaseModel):
    model_config = ConfigDict(frozen=True)

    username: str
    permission: str = "push"


class Label(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    color: str  # hex without the leading '#'


class LabelsOptions(BaseModel):
    model_config = ConfigDict(frozen=True)

    remove_default_labels: bool = True
    labels: list[Label] = []


class Webhook(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: str = "web"
    config: dict[str, Any] = {}


class PullApproveOptions(BaseModel):
    model_config = ConfigDict(frozen=True)

    filename: str = ".pullapprove.yml"
    protected_branch_name: str = "master"


class MergeCheckOptions(BaseModel):
    model_config = ConfigDict(frozen=True)

    use_app_credentials: bool = True


class RuleName(str, Enum):
    PULLAPPROVE = "pullapprove"
    MERGE_CHECK = "merge-check"
    TEAMS = "teams"
    COLLABORATORS = "collaborators"
    LABELS = "labels"
    WEBHOOKS = "webhooks"
    BRANCH_PROTECTIONS = "branch-protections"


class RuleSet(BaseModel):
    """Enabled rules plus every rule's options. Read-only during a run."""

    model_config = ConfigDict(frozen=True)

    enabled: frozenset[RuleName] = frozenset()
    pullapprove: PullApproveOptions = PullApproveOptions()
    merge_check: MergeCheckOptions = MergeCheckOptions()
    teams: list[TeamPermission] = []
    collaborators: list[CollaboratorPermission] = []
    labels: LabelsOptions = LabelsOptions()
    webhooks: list[Webhook] = []
    branch_protections: dict[str, list[str]] = {}  # branch -> required status contexts

    def is_enabled(self, rule: RuleName) -> bool:
        return rule in self.enabled

    def enabled_rules(self) -> list[RuleName]:
        """Enabled rules in declaration order."""
        return [rule for rule in RuleName if rule in self.enabled]


# ---------------------------------------------------------------------------
# Run results
# ---------------------------------------------------------------------------


class RuleOutcome(str, Enum):
    APPLIED = "applied"
    ALREADY_SATISFIED = "already_satisfied"
    FAILED = "failed"


class RuleResult(BaseModel):
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    rule: RuleName
    outcome: RuleOutcome
    error: GhCliError | None = None


class RunOutcome(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"


class RunResult(BaseModel):
    """Per-rule results of one provisioning run, in completion order."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    identity: RepositoryIdentity
    repository: Repository | None = None  # None when the repo already existed
    results: list[RuleResult] = Field(default_factory=list)

    @property
    def outcome(self) -> RunOutcome:
        if any(r.outcome is RuleOutcome.FAILED for r in self.results):
            return RunOutcome.FAILED
        return RunOutcome.SUCCESS

    @property
    def first_error(self) -> GhCliError | None:
        for result in self.results:
            if result.outcome is RuleOutcome.FAILED:
                return result.error
        return None

    def result_for(self, rule: RuleName) -> RuleResult | None:
        return next((r for r in self.results if r.rule is rule), None)
