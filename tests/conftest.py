import math

import awkward as ak
import numpy as np
import pytest
import uproot


def jet(pt, eta, phi=0.0, pid=21):
    """Massless particle from (pt, eta, phi) as (pid, E, px, py, pz)."""
    px = pt * math.cos(phi)
    py = pt * math.sin(phi)
    pz = pt * math.sinh(eta)
    E = math.sqrt(px * px + py * py + pz * pz)
    return (pid, E, px, py, pz)


def higgs(px=0.0, py=0.0, pz=0.0, E=125.0):
    return (25, E, px, py, pz)


def make_events(particles, weights, entry_start=0):
    """particles: one list of (pid, E, px, py, pz) per event."""
    cols = {k: [[p[i] for p in ev] for ev in particles] for i, k in enumerate(["pid", "E", "px", "py", "pz"])}
    return ak.zip({
        "pid": ak.values_astype(ak.Array(cols["pid"]), np.int32),
        "E": ak.Array(cols["E"]),
        "px": ak.Array(cols["px"]),
        "py": ak.Array(cols["py"]),
        "pz": ak.Array(cols["pz"]),
        "weight": np.asarray(weights, dtype=np.float64),
        "entry": np.arange(entry_start, entry_start + len(particles), dtype=np.int64),
    }, depth_limit=1)


def write_ntuple(path, particles, weights, tree_name="t3"):
    cols = {k: [[p[i] for p in ev] for ev in particles] for i, k in enumerate(["kf", "E", "px", "py", "pz"])}
    with uproot.recreate(path) as f:
        f[tree_name] = {
            "nparticle": np.array([len(ev) for ev in particles], dtype=np.int32),
            "kf": ak.values_astype(ak.Array(cols["kf"]), np.int32),
            "E": ak.values_astype(ak.Array(cols["E"]), np.float32),
            "px": ak.values_astype(ak.Array(cols["px"]), np.float32),
            "py": ak.values_astype(ak.Array(cols["py"]), np.float32),
            "pz": ak.values_astype(ak.Array(cols["pz"]), np.float32),
            "weight2": np.asarray(weights, dtype=np.float64),
        }
    return str(path)


@pytest.fixture
def random_sample():
    rng = np.random.default_rng(1234)
    particles, weights = [], []
    for i in range(200):
        ev = []
        if i % 10 != 0:
            ev.append(higgs(px=rng.normal(0, 80), py=rng.normal(0, 80), pz=rng.normal(0, 200), E=400.0))
        for _ in range(rng.integers(0, 7)):
            ev.append(jet(rng.exponential(40.0), rng.uniform(-6, 6), rng.uniform(-math.pi, math.pi)))
        rng.shuffle(ev)
        particles.append(ev)
        weights.append(rng.uniform(0.1, 3.0))
    return particles, weights
