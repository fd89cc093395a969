import asyncio
import logging
from collections.abc import AsyncIterator, Hashable, Sequence
from contextlib import asynccontextmanager

from road_cam.app.protocols import ControlChannel, DebugOverlay, FeatureQuery
from road_cam.domain.entities.geography import Bounds, FeatureFilter, RoadSegment, SourceLayer
from road_cam.domain.mechanics.mechanics_geometry import bounds_ahead
from road_cam.errors import FollowCancelled, NoDataError, QueryContextError
from road_cam.runtime.resources import CapabilityCache

log = logging.getLogger(__name__)


class QueryContext:
    """
    Helper query session for one follow run.

    Wraps the spatial query collaborator with the region and detail level the
    chaining logic needs, and guarantees the collaborator is handed back in its
    base state: `session()` restores the base detail level, releases the helper
    and clears the debug overlay however the run ends.
    """

    def __init__(
        self,
        query: FeatureQuery,
        layer: SourceLayer,
        flt: FeatureFilter,
        *,
        base_detail_level: float = 18.0,
        settle_delay_ms: float = 200.0,
        control: ControlChannel | None = None,
        overlay: DebugOverlay | None = None,
    ):
        self.query, self.layer, self.flt = query, layer, flt
        self.base_detail_level = base_detail_level
        self.settle_delay_ms = settle_delay_ms
        self.control, self.overlay = control, overlay
        self.region: Bounds | None = None
        self.queries = 0

    # --------------- Lifecycle -----------------------------

    @classmethod
    @asynccontextmanager
    async def session(
        cls,
        query: FeatureQuery,
        *,
        kind: str,
        flt: FeatureFilter,
        initial_region: Bounds,
        capabilities: CapabilityCache,
        handle: Hashable,
        base_detail_level: float = 18.0,
        settle_delay_ms: float = 200.0,
        control: ControlChannel | None = None,
        overlay: DebugOverlay | None = None,
    ) -> AsyncIterator["QueryContext"]:
        """
        Open the helper around `initial_region`.
        Raises NoDataError when the map has no source for `kind` and
        QueryContextError when the helper cannot be set up at all.
        """
        try:
            layer = capabilities.get(handle, query).layer_for(kind)
        except (NoDataError, FollowCancelled):
            raise
        except Exception as exc:
            raise QueryContextError(f"helper query introspection failed: {exc}") from exc

        ctx = cls(
            query,
            layer,
            flt,
            base_detail_level=base_detail_level,
            settle_delay_ms=settle_delay_ms,
            control=control,
            overlay=overlay,
        )
        try:
            await query.preload(initial_region, detail_level=base_detail_level)
        except FollowCancelled:
            ctx._release()
            raise
        except Exception as exc:
            ctx._release()
            raise QueryContextError(f"helper query preload failed: {exc}") from exc
        ctx.region = initial_region

        try:
            yield ctx
        finally:
            await ctx.close()

    async def close(self) -> None:
        try:
            if self.query.detail_level != self.base_detail_level:
                await self.query.preload(self.region, detail_level=self.base_detail_level)
        except Exception:
            log.warning("could not restore helper detail level", exc_info=True)
        finally:
            self._release()

    def _release(self) -> None:
        try:
            self.query.release()
        finally:
            if self.overlay is not None:
                self.overlay.clear()

    # --------------- Queries -------------------------------

    def _check(self) -> None:
        if self.control is not None:
            self.control.check_cancelled()

    @property
    def detail_level(self) -> float:
        return self.query.detail_level

    def features(self) -> list[RoadSegment]:
        self._check()
        self.queries += 1
        found = self.query.query_features(self.layer.source_id, self.layer.layer, self.flt)
        return [s for s in found if self.flt.accepts(s)]

    async def _settle(self) -> None:
        if self.settle_delay_ms > 0:
            await asyncio.sleep(self.settle_delay_ms / 1000.0)

    async def reposition_ahead(self, point: Sequence[float], bearing_deg: float, reach_deg: float) -> None:
        """Load the box covering `point` and `reach_deg` ahead; failures are logged, not raised."""
        region = bounds_ahead(point, bearing_deg, reach_deg)
        self._check()
        try:
            await self.query.preload(region)
        except FollowCancelled:
            raise
        except Exception:
            log.warning("helper reposition failed at %s", tuple(point), exc_info=True)
            return
        self.region = region
        await self._settle()

    async def set_detail_level(self, level: float) -> None:
        self._check()
        await self.query.preload(self.region, detail_level=level)
        await self._settle()

    async def restore_detail_level(self) -> None:
        try:
            if self.query.detail_level != self.base_detail_level:
                await self.query.preload(self.region, detail_level=self.base_detail_level)
        except FollowCancelled:
            raise
        except Exception:
            log.warning("could not restore helper detail level", exc_info=True)
