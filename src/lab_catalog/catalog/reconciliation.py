"""
Reconciliation Engine - NBU/version membership editing.

The remote store only offers pairwise associate/disassociate calls on the
NBU/version join. The engine turns a desired membership set into the minimal
call set:

1. to_add = desired - current, to_remove = current - desired
2. Empty diff: update the local detail snapshot, issue zero remote calls
3. Otherwise fan out every call concurrently; each failure is captured per
   call and never cancels its siblings
4. Bucket failures into association and disassociation errors
5. Always invalidate the analysis aggregate and the version detail cache and
   reload both from the server, since partial failure makes the assumed
   state unreliable
6. Report the membership the server holds after resync, plus any warning

Version creation and reconciliation are not transactional: a version created
before a failed reconciliation is kept, partially associated, for retry.
"""

import inspect
from collections.abc import Awaitable, Iterable
from dataclasses import dataclass
from enum import Enum

import structlog

from lab_catalog.catalog.analysis_service import AnalysisService
from lab_catalog.catalog.nbu_version_service import NbuVersionService
from lab_catalog.core.errors import AggregationError, CatalogError
from lab_catalog.core.fanout import gather_settled
from lab_catalog.gateway.client import CatalogGateway
from lab_catalog.models.entities import NomenclatureVersion

logger = structlog.get_logger(__name__)

ASSOCIATE = "associate"
DISASSOCIATE = "disassociate"

VersionRef = int | NomenclatureVersion | Awaitable[NomenclatureVersion]


class ReconcileStatus(Enum):
    UNCHANGED = "unchanged"
    SUCCEEDED = "succeeded"
    SUCCEEDED_WITH_WARNINGS = "succeeded_with_warnings"


@dataclass(frozen=True)
class MembershipDiff:
    """Minimal edit between two membership sets; the buckets are disjoint by construction."""

    to_add: frozenset[int]
    to_remove: frozenset[int]

    @classmethod
    def compute(cls, desired: Iterable[int], current: Iterable[int]) -> "MembershipDiff":
        desired_ids = frozenset(desired)
        current_ids = frozenset(current)
        return cls(to_add=desired_ids - current_ids, to_remove=current_ids - desired_ids)

    @property
    def is_empty(self) -> bool:
        return not self.to_add and not self.to_remove

    @property
    def call_count(self) -> int:
        return len(self.to_add) + len(self.to_remove)


@dataclass(frozen=True)
class ReconcileOutcome:
    """
    Result of one reconciliation.

    Attributes:
        version_id: Version whose membership was edited
        diff: Calls that were planned
        membership: NBU ids linked to the version after resync (server truth),
            or the desired set on the zero-call path
        association_errors: One message per failed associate call
        disassociation_errors: One message per failed disassociate call
    """

    version_id: int
    diff: MembershipDiff
    membership: frozenset[int]
    association_errors: tuple[str, ...] = ()
    disassociation_errors: tuple[str, ...] = ()

    @property
    def status(self) -> ReconcileStatus:
        if self.diff.is_empty:
            return ReconcileStatus.UNCHANGED
        if self.association_errors or self.disassociation_errors:
            return ReconcileStatus.SUCCEEDED_WITH_WARNINGS
        return ReconcileStatus.SUCCEEDED

    @property
    def warning(self) -> AggregationError | None:
        if self.status is not ReconcileStatus.SUCCEEDED_WITH_WARNINGS:
            return None
        return AggregationError(self.association_errors, self.disassociation_errors)

    def raise_for_warnings(self) -> None:
        """Raise the aggregated warning, if any call failed."""
        warning = self.warning
        if warning is not None:
            raise warning


def _failure_message(action: str, nbu_id: int, version_id: int, error: Exception) -> str:
    reason = error.user_message if isinstance(error, CatalogError) else str(error)
    verb = "associate" if action == ASSOCIATE else "disassociate"
    return f"Could not {verb} NBU {nbu_id} with version {version_id}: {reason}"


class ReconciliationEngine:
    """The only component that edits the remote NBU/version join."""

    def __init__(self, gateway: CatalogGateway, analyses: AnalysisService, versions: NbuVersionService) -> None:
        self.gateway = gateway
        self.analyses = analyses
        self.versions = versions

    async def _resolve_version_id(self, version: VersionRef) -> int:
        if inspect.isawaitable(version):
            # A version still being created: its id exists only once creation settles
            version = await version
        version_id = version.id if isinstance(version, NomenclatureVersion) else version
        if isinstance(version_id, bool) or not isinstance(version_id, int) or version_id <= 0:
            raise ValueError(f"Cannot reconcile membership of a version without a remote id (got {version_id!r})")
        return version_id

    async def reconcile(
        self,
        version: VersionRef,
        desired: Iterable[int],
        current: Iterable[int] | None = None,
        ub: float = 0.0,
    ) -> ReconcileOutcome:
        """
        Bring a version's NBU membership to the desired set.

        Args:
            version: Version id, version, or an awaitable producing the version
                (for example a pending create_version call)
            desired: NBU ids that should end up linked
            current: NBU ids known to be linked (default: read from the detail cache)
            ub: UB coefficient sent with every associate call

        Returns:
            ReconcileOutcome; failed calls are reported as warnings, not raised

        Raises:
            RemoteError: The post-fan-out resync itself failed; when some calls
                had already failed, its __cause__ is the AggregationError
                carrying their messages
        """
        version_id = await self._resolve_version_id(version)
        desired_ids = frozenset(desired)
        current_ids = frozenset(current) if current is not None else await self.versions.associated_nbu_ids(version_id)
        diff = MembershipDiff.compute(desired_ids, current_ids)

        if diff.is_empty:
            self.versions.set_membership(version_id, desired_ids)
            logger.debug("reconcile_unchanged", version_id=version_id, members=len(desired_ids))
            return ReconcileOutcome(version_id=version_id, diff=diff, membership=desired_ids)

        logger.info(
            "reconcile_plan",
            version_id=version_id,
            to_add=sorted(diff.to_add),
            to_remove=sorted(diff.to_remove),
            ub=ub,
        )
        operations = [
            ((ASSOCIATE, nbu_id), self.gateway.associate(nbu_id, version_id, ub)) for nbu_id in sorted(diff.to_add)
        ]
        operations += [
            ((DISASSOCIATE, nbu_id), self.gateway.disassociate(nbu_id, version_id))
            for nbu_id in sorted(diff.to_remove)
        ]
        outcomes = await gather_settled(operations)

        association_errors: list[str] = []
        disassociation_errors: list[str] = []
        for outcome in outcomes:
            if outcome.ok:
                continue
            action, nbu_id = outcome.key
            logger.warning(
                "reconcile_call_failed",
                action=action,
                nbu_id=nbu_id,
                version_id=version_id,
                error=str(outcome.error),
            )
            bucket = association_errors if action == ASSOCIATE else disassociation_errors
            bucket.append(_failure_message(action, nbu_id, version_id, outcome.error))

        try:
            membership = await self._resync(version_id)
        except Exception as e:
            if association_errors or disassociation_errors:
                raise e from AggregationError(association_errors, disassociation_errors)
            raise
        result = ReconcileOutcome(
            version_id=version_id,
            diff=diff,
            membership=membership,
            association_errors=tuple(association_errors),
            disassociation_errors=tuple(disassociation_errors),
        )

        log = logger.warning if result.status is ReconcileStatus.SUCCEEDED_WITH_WARNINGS else logger.info
        log(
            "reconcile_completed",
            version_id=version_id,
            status=result.status.value,
            calls=diff.call_count,
            failed=len(association_errors) + len(disassociation_errors),
            members=len(membership),
        )
        return result

    async def create_and_reconcile(
        self,
        draft: NomenclatureVersion,
        desired: Iterable[int],
        ub: float = 0.0,
    ) -> tuple[NomenclatureVersion, ReconcileOutcome]:
        """
        Create a version, then link the desired NBUs to it.

        The created version is kept even when reconciliation reports failures.
        """
        created = await self.versions.create_version(draft)
        outcome = await self.reconcile(created, desired, current=frozenset(), ub=ub)
        return created, outcome

    async def _resync(self, version_id: int) -> frozenset[int]:
        """Invalidate both membership views and reload them from the server."""
        self.analyses.invalidate()
        self.versions.invalidate_details()

        outcomes = await gather_settled(
            [
                ("analyses", self.analyses.get_all()),
                ("version_details", self.versions.prefetch_details()),
            ]
        )
        for outcome in outcomes:
            if not outcome.ok:
                logger.error("reconcile_resync_failed", version_id=version_id, view=outcome.key, error=str(outcome.error))
                raise outcome.error

        return outcomes[1].value.members(version_id)
