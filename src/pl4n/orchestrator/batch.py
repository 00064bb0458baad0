"""
Agent fan-out - run one phase's agent calls concurrently behind a barrier.

Every call settles (success, failure or timeout) before ``execute``
returns. A failed or timed-out call never cancels its siblings.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, Generic, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


class BatchStatus(str, Enum):
	"""Outcome of one phase's fan-out."""
	COMPLETED = "completed"
	PARTIAL_FAILURE = "partial_failure"
	FAILED = "failed"


@dataclass
class BatchItem(Generic[T]):
	"""One agent call: the agent id and the call's input."""
	id: str
	data: T


@dataclass
class BatchResult(Generic[R]):
	"""Settled result of one agent call."""
	item_id: str
	success: bool
	result: Optional[R] = None
	error: Optional[str] = None
	timed_out: bool = False


@dataclass
class BatchSummary(Generic[R]):
	"""All settled results, in the order the items were given."""
	status: BatchStatus
	results: list[BatchResult[R]] = field(default_factory=list)

	@property
	def succeeded(self) -> list[BatchResult[R]]:
		return [r for r in self.results if r.success]

	@property
	def failed(self) -> list[BatchResult[R]]:
		return [r for r in self.results if not r.success]


class BatchProcessor(Generic[T, R]):
	"""
	Runs agent calls concurrently with a per-call wall-clock bound.

	Uses asyncio.Semaphore to limit concurrency; ``timeout`` applies to each
	call independently.
	"""

	def __init__(self, timeout: Optional[float] = None, max_concurrency: int = 8):
		"""
		Initialize the processor.

		Args:
			timeout: Seconds allowed per call; None for no bound
			max_concurrency: Maximum number of calls in flight
		"""
		self.timeout = timeout
		self.max_concurrency = max_concurrency

	async def execute(
		self,
		items: list[BatchItem[T]],
		handler: Callable[[BatchItem[T]], Awaitable[R]],
	) -> BatchSummary[R]:
		"""
		Run ``handler`` for every item and wait for all of them to settle.

		Args:
			items: Calls to make
			handler: Async function performing one call

		Returns:
			BatchSummary with one result per item
		"""
		if not items:
			return BatchSummary(status=BatchStatus.COMPLETED, results=[])

		semaphore = asyncio.Semaphore(self.max_concurrency)

		async def process_item(item: BatchItem[T]) -> BatchResult[R]:
			async with semaphore:
				try:
					if self.timeout is None:
						value = await handler(item)
					else:
						value = await asyncio.wait_for(handler(item), timeout=self.timeout)
					return BatchResult(item_id=item.id, success=True, result=value)
				except asyncio.TimeoutError:
					logger.warning(f"Agent call {item.id} timed out after {self.timeout}s")
					return BatchResult(
						item_id=item.id,
						success=False,
						error=f"timeout after {self.timeout:g} seconds",
						timed_out=True,
					)
				except Exception as e:
					logger.warning(f"Agent call {item.id} failed: {e}")
					return BatchResult(item_id=item.id, success=False, error=str(e) or type(e).__name__)

		# Fan out, then wait at the barrier
		results = await asyncio.gather(*(process_item(item) for item in items))

		succeeded = sum(1 for r in results if r.success)
		if succeeded == len(results):
			status = BatchStatus.COMPLETED
		elif succeeded == 0:
			status = BatchStatus.FAILED
		else:
			status = BatchStatus.PARTIAL_FAILURE

		return BatchSummary(status=status, results=list(results))
