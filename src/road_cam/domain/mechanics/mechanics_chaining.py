"""
Segment chaining: deciding what to follow once the current segment runs out.

The graduated fallback, in order:
  1. direct connection among freshly loaded features ahead,
  2. the same query at coarser detail levels,
  3. cardinal search around the endpoint,
  4. exploration: cardinal search from points stepped forward along the bearing,
  5. a synthetic straight continuation (policy switch),
and otherwise a dead end.
"""

import logging
from collections.abc import Sequence

from road_cam.app.protocols import ControlChannel
from road_cam.config.models import ChainingModel, VehicleProfileModel
from road_cam.domain.entities.motion import Candidate, ChainState, PathCursor
from road_cam.domain.mechanics.mechanics_discovery import (
    cardinal_search,
    exploration_points,
    find_initial_segment,
    synthetic_segment,
)
from road_cam.domain.mechanics.mechanics_geometry import bearing, offset
from road_cam.domain.mechanics.mechanics_scoring import best_continuation, first_connected
from road_cam.errors import FollowCancelled
from road_cam.services.query_context import QueryContext

log = logging.getLogger(__name__)


def travel_bearing(cursor: PathCursor) -> float:
    """Heading along the last two points of the cursor, or its last known bearing."""
    if len(cursor.coords) >= 2:
        return bearing(cursor.coords[-2], cursor.coords[-1])
    return cursor.bearing


class SegmentChainer:
    def __init__(
        self,
        ctx: QueryContext,
        profile: VehicleProfileModel,
        cfg: ChainingModel,
        *,
        control: ControlChannel | None = None,
    ):
        self.ctx, self.profile, self.cfg, self.control = ctx, profile, cfg, control
        self.state = ChainState.SEEKING_INITIAL
        self.history: list[ChainState] = [self.state]

    def _move(self, to: ChainState) -> None:
        self.state = self.state.transition(to)
        self.history.append(to)

    def _check(self) -> None:
        if self.control is not None:
            self.control.check_cancelled()

    # ------------------------------------------------------------

    async def initial(self, start: Sequence[float], facing_bearing: float) -> Candidate | None:
        """Choose the first segment around `start`; None (dead end) when nothing is there."""
        cand = find_initial_segment(
            self.ctx.features(),
            start,
            facing_bearing,
            ray_length_deg=self.cfg.ray_length_deg,
            checkpoint=self.control.check_cancelled if self.control else None,
            check_every=self.cfg.cancel_check_every,
        )
        self._move(ChainState.FOLLOWING if cand is not None else ChainState.DEAD_END)
        return cand

    async def advance(self, cursor: PathCursor) -> Candidate | None:
        """
        Run the graduated fallback from the cursor's endpoint.
        Returns the accepted candidate (state back to FOLLOWING) or None (DEAD_END,
        with the cursor's used-segment history cleared).
        """
        self._move(ChainState.END_OF_SEGMENT)
        end = cursor.endpoint
        heading = travel_bearing(cursor)
        used = cursor.used_segment_ids

        cand = await self._direct(cursor, end, heading)
        if cand is None:
            cand = await self._coarser(end, heading, used)
        if cand is None:
            radius = min(self.cfg.cardinal_radius_cap_deg, self.profile.search_radius_deg)
            cand = self._cardinal(cursor, end, heading, radius)
        if cand is None and self.profile.supports_exploration:
            cand = self._explore(cursor, end, heading)
            if cand is None and self.cfg.synthetic_fallback:
                cand = self._synthetic(cursor, end, heading)

        if cand is None:
            log.info("dead end after %d segments at %s", cursor.segment_count, end)
            self._move(ChainState.DEAD_END)
            cursor.forget_history()
            return None
        self._move(cand.source)
        self._move(ChainState.FOLLOWING)
        return cand

    # ------------------------------------------------------------

    async def _direct(self, cursor: PathCursor, end, heading: float) -> Candidate | None:
        if self.cfg.reposition_ahead:
            await self.ctx.reposition_ahead(end, heading, self.profile.search_radius_deg)
        return best_continuation(
            self.ctx.features(),
            end,
            heading,
            cursor.identity,
            cursor.used_segment_ids,
            self.cfg.scoring,
        )

    async def _coarser(self, end, heading: float, used) -> Candidate | None:
        if not self.cfg.retry_detail_levels or self.ctx.detail_level != self.cfg.base_detail_level:
            return None
        try:
            for level in self.cfg.retry_detail_levels:
                try:
                    await self.ctx.set_detail_level(level)
                except FollowCancelled:
                    raise
                except Exception:
                    log.warning("detail level %s unavailable, skipping coarser retry", level, exc_info=True)
                    return None
                cand = first_connected(self.ctx.features(), end, heading, used, self.cfg.scoring)
                if cand is not None:
                    log.debug("connection found at detail level %s", level)
                    return cand
            return None
        finally:
            await self.ctx.restore_detail_level()

    def _prefer(self, cursor: PathCursor) -> tuple[str, ...]:
        cls = cursor.road_class or cursor.origin_class
        return (cls,) if cls else ()

    def _cardinal(self, cursor: PathCursor, origin, heading: float, radius_deg: float) -> Candidate | None:
        return cardinal_search(
            self.ctx.features(),
            origin,
            heading,
            cursor.used_segment_ids,
            radius_deg=radius_deg,
            prefer_classes=self._prefer(cursor),
            direction_penalty=self.cfg.cardinal_direction_penalty,
            preferred_factor=self.cfg.preferred_class_factor,
            max_jump_km=self.cfg.max_jump_km,
            checkpoint=self.control.check_cancelled if self.control else None,
            check_every=self.cfg.cancel_check_every,
        )

    def _explore(self, cursor: PathCursor, end, heading: float) -> Candidate | None:
        step = self.cfg.exploration_step_deg
        radius = self.profile.search_radius_deg * self.cfg.exploration_radius_factor
        for i in range(1, self.cfg.exploration_max_steps + 1):
            self._check()
            ahead = offset(end, heading, step * i)
            found = self._cardinal(cursor, ahead, heading, radius)
            if found is not None:
                return found.with_prefix(exploration_points(end, heading, step, i), ChainState.EXPLORATION)
        return None

    def _synthetic(self, cursor: PathCursor, end, heading: float) -> Candidate:
        reach = self.cfg.exploration_step_deg * self.cfg.exploration_max_steps
        seg = synthetic_segment(end, heading, reach, self.cfg.synthetic_points, cursor.segment_count)
        log.debug("no road within %.4f deg ahead, synthesizing %s", reach, seg.id)
        return Candidate(segment=seg, coords=seg.coordinates, source=ChainState.SYNTHETIC)
