"""Hierarchical weighted progress with per-node serialized aggregation."""

import threading
from collections import deque
from typing import Callable, List, Optional

from common.types import ProgressEntry, ProgressSnapshot

SnapshotListener = Callable[[ProgressSnapshot], None]


class ProgressNode:
    """
    One unit of work in a ProgressTree.

    Each node owns a mailbox of (completed, total) deltas. Whoever posts a
    delta tries to become the node's drainer; the drainer applies every
    queued delta, releases the node and only then forwards the combined delta
    to the parent. A node is never locked while another node is, so siblings
    can report from any task or thread and nesting depth cannot deadlock.
    """

    def __init__(self, tree: 'ProgressTree', parent: Optional['ProgressNode'], label: str, initial_total: int):
        if initial_total < 0:
            raise ValueError("initial_total must be non-negative")
        self.tree = tree
        self.parent = parent
        self.label = label
        self.annotation: Optional[str] = None
        self.children: List['ProgressNode'] = []
        self._total = initial_total
        self._completed = 0
        self._finished = False
        self._mailbox: deque = deque()
        self._drain_lock = threading.Lock()
        self._state_lock = threading.Lock()

    @property
    def total(self) -> int:
        return self._total

    @property
    def completed(self) -> int:
        return self._completed

    @property
    def finished(self) -> bool:
        return self._finished

    @property
    def fraction(self) -> float:
        if self._total <= 0:
            return 1.0 if self._finished else 0.0
        return min(1.0, self._completed / self._total)

    def _post(self, completed_delta: int, total_delta: int) -> None:
        self._mailbox.append((completed_delta, total_delta))
        while self._mailbox and self._drain_lock.acquire(blocking=False):
            completed_sum = total_sum = 0
            try:
                while self._mailbox:
                    completed, total = self._mailbox.popleft()
                    completed_sum += completed
                    total_sum += total
                total = self._total + total_sum
                completed = self._completed + completed_sum
                if completed > total:
                    total_sum += completed - total
                    total = completed
                self._total = total
                self._completed = completed
            finally:
                self._drain_lock.release()
            if self.parent is not None and (completed_sum or total_sum):
                self.parent._post(completed_sum, total_sum)

    def add_to_total(self, amount: int) -> None:
        """Grow this node's total weight. Totals never shrink."""
        if amount < 0:
            raise ValueError("total weight can only grow")
        if amount:
            self._post(0, amount)
            self.tree._publish(self)

    def advance(self, label: Optional[str], amount: int) -> None:
        """
        Record `amount` of completed weight, growing the total first if the
        new completed weight would exceed it.
        """
        if amount < 0:
            raise ValueError("advance amount must be non-negative")
        with self._state_lock:
            if self._finished:
                return
            if label is not None:
                self.label = label
            # Pending mailbox deltas are included so concurrent advances cannot overshoot.
            overshoot = self._projected_completed() + amount - self._projected_total()
            if overshoot > 0:
                self._post(0, overshoot)
            self._post(amount, 0)
        self.tree._publish(self)

    def create_child(self, initial_total: int, label: str = '') -> 'ProgressNode':
        """
        Create a child whose weight is expected to be part of this node's total.

        If it is not, this node's total grows as the child's progress arrives.
        """
        child = ProgressNode(self.tree, self, label, initial_total)
        with self._state_lock:
            self.children.append(child)
        return child

    def complete(self, annotation: Optional[str] = None) -> None:
        """
        Finalize this node, counting any remaining weight as completed.

        Safe to call more than once; only the first call has an effect.
        """
        with self._state_lock:
            if self._finished:
                return
            self._finished = True
            if annotation is not None:
                self.annotation = annotation
            remaining = self._projected_total() - self._projected_completed()
            if remaining > 0:
                self._post(remaining, 0)
        self.tree._publish(self)

    def _projected_total(self) -> int:
        return self._total + sum(total for _, total in list(self._mailbox))

    def _projected_completed(self) -> int:
        return self._completed + sum(completed for completed, _ in list(self._mailbox))

    def path(self) -> List['ProgressNode']:
        nodes = []
        node: Optional[ProgressNode] = self
        while node is not None:
            nodes.append(node)
            node = node.parent
        nodes.reverse()
        return nodes


class ProgressTree:
    """Owner of the root node; publishes a snapshot on every change."""

    def __init__(self, listener: Optional[SnapshotListener] = None):
        self.listener = listener
        self.root: Optional[ProgressNode] = None

    def start(self, label: str, initial_total: int) -> ProgressNode:
        self.root = ProgressNode(self, None, label, initial_total)
        self._publish(self.root)
        return self.root

    def snapshot(self, node: Optional[ProgressNode] = None) -> ProgressSnapshot:
        """Snapshot of the path from the root down to `node`."""
        node = node or self.root
        if node is None:
            raise RuntimeError("progress tree has not been started")
        return ProgressSnapshot(entries=tuple(
            ProgressEntry(
                label=n.label,
                completed=n.completed,
                total=n.total,
                annotation=n.annotation,
            )
            for n in node.path()
        ))

    def _publish(self, node: ProgressNode) -> None:
        if self.listener is not None:
            self.listener(self.snapshot(node))
