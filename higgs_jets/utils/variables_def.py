import awkward as ak
import numpy as np
import vector

vector.register_awkward()

def make_vector(parts):
    return vector.zip({
        "px": parts.px,
        "py": parts.py,
        "pz": parts.pz,
        "E": parts.E
    })

def make_particles(events, pid_field="pid"):
    '''
    Zips the per-particle branches of each event into one jagged collection
    of Momentum4D records carrying the PID as an extra field.
    '''
    p4 = make_vector(events)
    return ak.with_field(p4, events[pid_field], "pid")

def last_candidate(cands):
    '''
    Last entry of each event's list, None for empty lists.
    Mirrors a single slot that is overwritten on every match.
    '''
    idx = ak.local_index(cands, axis=1)
    return ak.firsts(cands[idx == ak.num(cands, axis=1) - 1])

def eta_cut_mask(eta, eta_max, symmetric=False):
    if symmetric:
        return np.abs(eta) <= eta_max
    # only the positive side is checked
    return eta <= eta_max
