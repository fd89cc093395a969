import pytest

from road_cam.domain.entities.geography import RoadSegment
from road_cam.domain.entities.motion import Candidate, ChainState, PathCursor, RouteIdentity
from road_cam.errors import ChainStateError


def test_found_states():
    assert {s for s in ChainState if s.found} == {
        ChainState.DIRECT_CONNECTION,
        ChainState.CARDINAL_SEARCH,
        ChainState.EXPLORATION,
        ChainState.SYNTHETIC,
    }


def test_normal_cycle_is_legal():
    s = ChainState.SEEKING_INITIAL
    path = (ChainState.FOLLOWING, ChainState.END_OF_SEGMENT, ChainState.CARDINAL_SEARCH, ChainState.FOLLOWING)
    for nxt in path:
        s = s.transition(nxt)
    assert s is ChainState.FOLLOWING


@pytest.mark.parametrize(
    "src,dst",
    [
        (ChainState.FOLLOWING, ChainState.DIRECT_CONNECTION),
        (ChainState.SEEKING_INITIAL, ChainState.END_OF_SEGMENT),
        (ChainState.DEAD_END, ChainState.FOLLOWING),
        (ChainState.SYNTHETIC, ChainState.END_OF_SEGMENT),
    ],
)
def test_illegal_transitions_raise(src, dst):
    assert not src.can_transition(dst)
    with pytest.raises(ChainStateError) as ei:
        src.transition(dst)
    assert ei.value.to_payload()["error_code"] == "ILLEGAL_CHAIN_TRANSITION"


def _cand(seg):
    return Candidate(segment=seg, coords=seg.coordinates, source=ChainState.DIRECT_CONNECTION)


def test_cursor_tracks_identity_and_history():
    road = RoadSegment("r1", [(0, 0), (0.001, 0)], {"class": "primary", "name": "High St", "ref": "A1"})
    cur = PathCursor.start(_cand(road), road.coordinates, 90.0)
    assert cur.identity == RouteIdentity("A1", "High St", "primary")
    assert cur.used_segment_ids == {"r1"}
    assert cur.segment_count == 1

    cur.advance()
    cur.advance()
    assert cur.exhausted
    assert cur.total_points_visited == 2

    fake = RoadSegment("synthetic-1", [(0.001, 0), (0.002, 0)], {"class": "aerial"}, synthetic=True)
    cur.load(_cand(fake), fake.coordinates)
    assert cur.identity == RouteIdentity()
    assert "synthetic-1" not in cur.used_segment_ids
    assert cur.synthetic_count == 1
    assert cur.origin_class == "primary"

    cur.forget_history()
    assert cur.used_segment_ids == set()
