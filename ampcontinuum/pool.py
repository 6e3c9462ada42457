"""
Object pools shared across concurrently tracked paths.

Trackers, compiled systems and solution buffers are expensive to build, and
every path needs one for as long as it is being tracked. A :class:`Pool`
hands out exclusive :class:`PooledHandle` objects and takes the instances
back when a path is done, so later paths reuse them instead of building
their own.
"""

import threading
from typing import Callable, Generic, List, Optional, TypeVar

import numpy as np

from ampcontinuum.precision import DoublePrecision

T = TypeVar('T')


class PoolExhaustedError(RuntimeError):
    """Raised when a bounded pool has no instance free before the timeout."""


class PooledHandle(Generic[T]):
    """Exclusive ownership of one pooled instance.

    Handles cannot be copied. Once released, the handle no longer gives
    access to the instance. Used as a context manager, the handle yields the
    instance and releases it on exit.
    """

    __slots__ = ('_pool', '_obj', '_live')

    def __init__(self, pool: "Pool[T]", obj: T):
        self._pool = pool
        self._obj = obj
        self._live = True

    @property
    def obj(self) -> T:
        if not self._live:
            raise RuntimeError("pooled handle used after release")
        return self._obj

    @property
    def released(self) -> bool:
        return not self._live

    def release(self):
        self._pool.release(self)

    def __enter__(self) -> T:
        return self.obj

    def __exit__(self, exc_type, exc, tb):
        if self._live:
            self.release()
        return False

    def __copy__(self):
        raise TypeError("PooledHandle cannot be copied")

    def __deepcopy__(self, memo):
        raise TypeError("PooledHandle cannot be copied")

    def __reduce__(self):
        raise TypeError("PooledHandle cannot be pickled")

    def __repr__(self) -> str:
        state = "released" if not self._live else type(self._obj).__name__
        return f"PooledHandle({state})"


class Pool(Generic[T]):
    """Thread-safe pool of reusable instances.

    Args:
        factory: Builds a new instance when none is idle
        max_size: Cap on live instances; ``acquire`` waits when it is reached.
            None lets the pool grow with demand.
        reset: Called on each instance as it is released. An instance whose
            reset raises is discarded rather than reused.

    Instances are built only when none is idle, so at any time
    ``constructed - discarded <= peak_outstanding``.
    """

    def __init__(self,
                 factory: Callable[[], T],
                 max_size: Optional[int] = None,
                 reset: Optional[Callable[[T], None]] = None):
        if max_size is not None and max_size < 1:
            raise ValueError("max_size must be positive")
        self.factory = factory
        self.max_size = max_size
        self.reset = reset
        self._cond = threading.Condition()
        self._idle: List[T] = []
        self._live_count = 0
        self._constructed = 0
        self._outstanding = 0
        self._peak_outstanding = 0
        self._discarded = 0

    def _available(self) -> bool:
        return bool(self._idle) or self.max_size is None or self._live_count < self.max_size

    def acquire(self, timeout: Optional[float] = None) -> PooledHandle[T]:
        """Check out an instance, reusing an idle one when possible.

        Raises:
            PoolExhaustedError: If the pool is bounded and nothing frees up
                within ``timeout`` seconds.
        """
        with self._cond:
            if not self._cond.wait_for(self._available, timeout):
                raise PoolExhaustedError(
                    f"no instance released within {timeout}s (max_size={self.max_size})")
            obj = self._idle.pop() if self._idle else None
            if obj is None:
                self._live_count += 1
                self._constructed += 1
            self._outstanding += 1
            self._peak_outstanding = max(self._peak_outstanding, self._outstanding)

        if obj is None:
            try:
                obj = self.factory()
            except BaseException:
                with self._cond:
                    self._live_count -= 1
                    self._constructed -= 1
                    self._outstanding -= 1
                    self._cond.notify()
                raise
        return PooledHandle(self, obj)

    def release(self, handle: PooledHandle[T]):
        """Return the handle's instance to the pool and invalidate the handle."""
        if handle._pool is not self:
            raise ValueError("handle belongs to a different pool")
        with self._cond:
            if not handle._live:
                raise ValueError("handle was already released")
            handle._live = False
            obj, handle._obj = handle._obj, None

        try:
            if self.reset is not None:
                self.reset(obj)
        except BaseException:
            # The instance is in an unknown state: drop it
            with self._cond:
                self._live_count -= 1
                self._discarded += 1
                self._outstanding -= 1
                self._cond.notify()
            raise

        with self._cond:
            self._idle.append(obj)
            self._outstanding -= 1
            self._cond.notify()

    @property
    def constructed(self) -> int:
        """Number of instances built by the factory so far."""
        with self._cond:
            return self._constructed

    @property
    def discarded(self) -> int:
        """Number of instances dropped because their reset failed."""
        with self._cond:
            return self._discarded

    @property
    def outstanding(self) -> int:
        with self._cond:
            return self._outstanding

    @property
    def idle_count(self) -> int:
        with self._cond:
            return len(self._idle)

    @property
    def peak_outstanding(self) -> int:
        """Largest number of handles that were ever live at the same time."""
        with self._cond:
            return self._peak_outstanding

    def __repr__(self) -> str:
        return (f"Pool(constructed={self._constructed}, outstanding={self._outstanding}, "
                f"idle={len(self._idle)}, max_size={self.max_size})")


def point_pool(dimension: int, precision=None, max_size: Optional[int] = None) -> Pool[np.ndarray]:
    """Pool of solution-vector buffers, zeroed when released."""
    precision = precision or DoublePrecision()

    def _zero(buffer: np.ndarray):
        buffer[:] = precision.zeros(dimension)

    return Pool(lambda: precision.zeros(dimension), max_size=max_size, reset=_zero)
