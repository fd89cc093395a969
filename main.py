# main.py
import asyncio
import sys

from road_cam.app.build import build
from road_cam.domain.entities.geography import RoadSegment
from road_cam.io.memory_backends import (
    FunctionElevation,
    InMemoryFeatureIndex,
    MemoryOverlay,
    RecordingCamera,
    ScriptedControl,
)
from road_cam.sim.clock import VirtualClock


def grid_network(blocks: int = 6, spacing_deg: float = 0.002) -> list[RoadSegment]:
    """Manhattan-style grid around (0, 0): named avenues run north, streets run east."""
    segs = []
    for i in range(blocks + 1):
        x = y = i * spacing_deg
        for j in range(blocks):
            a, b = j * spacing_deg, (j + 1) * spacing_deg
            street = {"class": "secondary", "name": f"{i} Street"}
            avenue = {"class": "primary", "name": f"Avenue {i}", "ref": f"A{i}"}
            segs.append(RoadSegment(f"st{i}-{j}", [(a, y), (a + spacing_deg / 2, y), (b, y)], street))
            segs.append(RoadSegment(f"av{i}-{j}", [(x, a), (x, b)], avenue))
    return segs


def run(duration_s: float = 60.0, vehicle: str = "car"):
    clock = VirtualClock()
    camera = RecordingCamera((0.0001, 0.0001), bearing=90.0, clock=clock)
    app = build(
        {
            "name": "grid-demo",
            "vehicle": vehicle,
            "duration_ms": duration_s * 1000.0,
            "clock": {"kind": "virtual"},
            "chaining": {"settle_delay_ms": 0},
        },
        query=InMemoryFeatureIndex(grid_network()),
        camera_host=camera,
        control=ScriptedControl(),
        terrain=FunctionElevation(lambda lng, lat: 50.0 + 20000.0 * lat),
        overlay=MemoryOverlay(),
        clock=clock,
    )
    return asyncio.run(app.run())


if __name__ == "__main__":
    print(run(vehicle=sys.argv[1] if len(sys.argv) > 1 else "car"))
