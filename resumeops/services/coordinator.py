"""Cross-entity workflow sagas.

A saga is a named list of steps run in response to one audit event (its
trigger). Each step is recorded in ``workflow_steps`` under the key
``<saga>:<trigger id>:<step>``; running a saga again for the same trigger
skips steps that already completed or were skipped, so a crash part way
through is repaired by running it again. Failed steps stay failed until
``resume_failed`` picks them up. The triggering operation has already
committed by the time a saga runs and is never undone by it.

The state machines decide whether a move is legal; the policies here decide
when to ask for one.
"""

from __future__ import annotations

import logging
from collections import deque
from typing import Awaitable, Callable

from sqlalchemy.ext.asyncio import AsyncSession

from resumeops.db import crud
from resumeops.models import AuditEntry, Order, Payment, Revision, WorkflowStep
from resumeops.services import audit, order_workflow
from resumeops.states import (
    AuditAction, EntityType, OrderStatus, PaymentStatus, RevisionStatus, ORDER_TRANSITIONS,
)

logger = logging.getLogger(__name__)

STEP_COMPLETED = "completed"
STEP_SKIPPED = "skipped"
STEP_FAILED = "failed"

# Automatic order moves never pass through a terminal state on the way.
_AVOID = {OrderStatus.CANCELLED, OrderStatus.REFUNDED}

# Revision status reached -> (saga, order target)
REVISION_POLICIES: dict[RevisionStatus, tuple[str, OrderStatus]] = {
    RevisionStatus.IN_PROGRESS: ("revision_started", OrderStatus.IN_REVISION),
    RevisionStatus.COMPLETED: ("revision_completed", OrderStatus.CLIENT_REVIEW),
    RevisionStatus.APPROVED: ("revision_approved", OrderStatus.COMPLETED),
    RevisionStatus.REJECTED: ("revision_rejected", OrderStatus.REVISION_REQUESTED),
}

Step = tuple[str, Callable[[], Awaitable[str]]]


class StepSkipped(Exception):
    """Raised by a step that has nothing to do; recorded as skipped."""


def order_path(current: str, target: str) -> list[OrderStatus] | None:
    """Shortest list of statuses leading from ``current`` to ``target``.

    Returns [] when already there and None when no legal path exists.
    """
    start, goal = OrderStatus(current), OrderStatus(target)
    if start is goal:
        return []
    previous: dict[OrderStatus, OrderStatus] = {start: start}
    queue = deque([start])
    while queue:
        node = queue.popleft()
        for nxt in sorted(ORDER_TRANSITIONS[node], key=lambda s: s.value):
            if nxt in previous or (nxt in _AVOID and nxt is not goal):
                continue
            previous[nxt] = node
            if nxt is goal:
                path = [goal]
                while previous[path[-1]] is not start:
                    path.append(previous[path[-1]])
                return list(reversed(path))
            queue.append(nxt)
    return None


class WorkflowCoordinator:
    """Runs the workflow policies against one session on behalf of an actor."""

    def __init__(self, db: AsyncSession, actor_id: str = "system"):
        self.db = db
        self.actor_id = actor_id
        self._touched: list = []

    # ── Public policies ──────────────────────────────────

    async def order_created(self, order: Order) -> list[WorkflowStep]:
        return await self._trigger("order_created", EntityType.ORDER, order.id, AuditAction.CREATED)

    async def payment_confirmed(self, payment: Payment) -> list[WorkflowStep]:
        return await self._trigger("payment_confirmed", EntityType.PAYMENT, payment.id, AuditAction.CONFIRMED)

    async def payment_refunded(self, payment: Payment) -> list[WorkflowStep]:
        return await self._trigger("payment_refunded", EntityType.PAYMENT, payment.id, AuditAction.REFUNDED)

    async def revision_requested(self, revision: Revision) -> list[WorkflowStep]:
        return await self._trigger("revision_requested", EntityType.REVISION, revision.id, AuditAction.CREATED)

    async def revision_status_changed(self, revision: Revision) -> list[WorkflowStep]:
        """Run the policy for the revision's current status, if it has one."""
        policy = REVISION_POLICIES.get(RevisionStatus(revision.status))
        if policy is None:
            return []
        return await self._trigger(policy[0], EntityType.REVISION, revision.id)

    async def resume_failed(self) -> int:
        """Re-run every saga that has a failed step. Returns how many were re-run."""
        # Read the ledger up front; a failing re-run rolls back and expires these rows
        pending: list[tuple[str, str]] = []
        for step in await crud.list_failed_workflow_steps(self.db):
            if (step.saga, step.trigger_id) not in pending:
                pending.append((step.saga, step.trigger_id))
        for saga, trigger_id in pending:
            entry = await self.db.get(AuditEntry, trigger_id)
            if entry is None:
                logger.warning("Trigger %s for saga %s no longer exists", trigger_id, saga)
                continue
            logger.info("Resuming saga %s for trigger %s", saga, trigger_id)
            await self.run(saga, entry)
        return len(pending)

    # ── Saga runner ──────────────────────────────────────

    async def _trigger(
        self, saga: str, entity_type: EntityType, entity_id: str, action: AuditAction | None = None,
    ) -> list[WorkflowStep]:
        entry = await audit.latest_entry(self.db, entity_type, entity_id, action)
        if entry is None:
            logger.warning("No audit event to trigger %s for %s %s", saga, entity_type.value, entity_id)
            return []
        return await self.run(saga, entry)

    async def run(self, saga: str, entry: AuditEntry) -> list[WorkflowStep]:
        builder = getattr(self, f"_steps_{saga}", None)
        if builder is None:
            raise ValueError(f"Unknown saga: {saga}")
        steps: list[Step] = await builder(entry.entity_id)
        results = []
        for name, action in steps:
            key = f"{saga}:{entry.id}:{name}"
            done = await crud.get_workflow_step(self.db, key)
            if done is not None and done.status in (STEP_COMPLETED, STEP_SKIPPED):
                results.append(done)
                continue
            ledger = dict(
                saga=saga, trigger_type=entry.entity_type, trigger_id=entry.id, step=name, actor_id=self.actor_id,
            )
            try:
                detail = await action()
            except StepSkipped as exc:
                logger.info("Workflow step %s skipped: %s", key, exc)
                results.append(await crud.save_workflow_step(self.db, key, status=STEP_SKIPPED, detail=str(exc), **ledger))
                continue
            except Exception as exc:
                logger.exception("Workflow step %s failed", key)
                await self._recover()
                results.append(await crud.save_workflow_step(self.db, key, status=STEP_FAILED, detail=str(exc), **ledger))
                break
            results.append(await crud.save_workflow_step(self.db, key, status=STEP_COMPLETED, detail=detail, **ledger))
        return results

    async def _recover(self) -> None:
        """Drop the failed step's pending work and reload what the saga read."""
        await self.db.rollback()
        for obj in self._touched:
            await self.db.refresh(obj)

    async def _load(self, loader, entity_id: str):
        obj = await loader(self.db, entity_id)
        if obj not in self._touched:
            self._touched.append(obj)
        return obj

    async def _advance_order(
        self, order_id: str, target: OrderStatus, reason: str, only_from: OrderStatus | None = None,
    ) -> str:
        order = await self._load(crud.require_order, order_id)
        if only_from is not None and order.status != only_from.value:
            raise StepSkipped(f"order {order.order_number} is {order.status}, not {only_from.value}")
        path = order_path(order.status, target)
        if path is None:
            raise StepSkipped(f"no legal path for order {order.order_number} from {order.status} to {target.value}")
        if not path:
            raise StepSkipped(f"order {order.order_number} already {target.value}")
        start = order.status
        for i, status in enumerate(path):
            note = reason if i == len(path) - 1 else None
            await order_workflow.transition(self.db, order, status, self.actor_id, note=note)
        return f"order {order.order_number} moved {start} -> {' -> '.join(s.value for s in path)}"

    # ── Step builders, one per saga ──────────────────────

    async def _steps_order_created(self, order_id: str) -> list[Step]:
        async def chat_room() -> str:
            order = await self._load(crud.require_order, order_id)
            room = await crud.create_chat_room(self.db, order)
            return f"chat room {room.room_code}"

        return [("chat_room", chat_room)]

    async def _steps_payment_confirmed(self, payment_id: str) -> list[Step]:
        payment = await self._load(crud.require_payment, payment_id)

        async def advance_order() -> str:
            return await self._advance_order(
                payment.order_id, OrderStatus.IN_PROGRESS,
                f"Payment {payment.payment_number} confirmed", only_from=OrderStatus.PAYMENT_PENDING,
            )

        return [("advance_order", advance_order)]

    async def _steps_payment_refunded(self, payment_id: str) -> list[Step]:
        payment = await self._load(crud.require_payment, payment_id)

        async def refund_order() -> str:
            if payment.status != PaymentStatus.REFUNDED.value:
                raise StepSkipped(f"payment {payment.payment_number} is {payment.status}")
            return await self._advance_order(
                payment.order_id, OrderStatus.REFUNDED,
                f"Payment {payment.payment_number} fully refunded", only_from=OrderStatus.DELIVERED,
            )

        return [("refund_order", refund_order)]

    async def _revision_steps(self, revision_id: str, target: OrderStatus, verb: str) -> list[Step]:
        revision = await self._load(crud.require_revision, revision_id)

        async def advance_order() -> str:
            return await self._advance_order(
                revision.order_id, target, f"Revision #{revision.revision_number} {verb}",
            )

        return [("advance_order", advance_order)]

    async def _steps_revision_requested(self, revision_id: str) -> list[Step]:
        return await self._revision_steps(revision_id, OrderStatus.REVISION_REQUESTED, "requested")

    async def _steps_revision_started(self, revision_id: str) -> list[Step]:
        return await self._revision_steps(revision_id, OrderStatus.IN_REVISION, "started")

    async def _steps_revision_completed(self, revision_id: str) -> list[Step]:
        return await self._revision_steps(revision_id, OrderStatus.CLIENT_REVIEW, "completed")

    async def _steps_revision_approved(self, revision_id: str) -> list[Step]:
        return await self._revision_steps(revision_id, OrderStatus.COMPLETED, "approved by client")

    async def _steps_revision_rejected(self, revision_id: str) -> list[Step]:
        return await self._revision_steps(revision_id, OrderStatus.REVISION_REQUESTED, "rejected by client")
