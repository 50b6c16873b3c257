import sys
import numpy as np
import awkward as ak
import hist
from hist import Hist
from boost_histogram import storage
from coffea import processor
from coffea.analysis_tools import Weights

from higgs_jets import analysis_config as cfg
from higgs_jets.utils.variables_def import (
    make_particles,
    last_candidate,
    eta_cut_mask)

#----------------------------------------------------------------------------------------------------------------------------------------------

def _stats(x, title=""):
    xv = np.asarray(ak.to_numpy(ak.flatten(x, axis=None)), dtype=float)
    xv = xv[np.isfinite(xv)]
    lab = f"[{title}]" if title else ""
    if xv.size == 0:
        print(f"{lab} empty")
        return
    print(f"{lab} n={xv.size}  min={xv.min():.4g}  q50={np.median(xv):.4g}  mean={xv.mean():.4g}  max={xv.max():.4g}")

#----------------------------------------------------------------------------------------------------------------------------------------------

class HJets_Processor(processor.ProcessorABC):
    """
    Higgs pT, per-position jet pT and jet multiplicity histograms.

    Expects event records with fields pid, E, px, py, pz (jagged, one entry
    per particle), weight and, optionally, entry (global index in the chain,
    used for diagnostics).
    """
    def __init__(self, max_jets=cfg.MAX_TRACKED_JETS, jet_pt_min=cfg.jet_cuts["pt_min"],
                 jet_eta_max=cfg.jet_cuts["eta_max"], symmetric_eta=False,
                 higgs_pdgid=cfg.HIGGS_PDGID, verbose=False):
        if max_jets < 0:
            raise ValueError(f"max_jets must be non-negative, got {max_jets}")
        self.max_jets      = int(max_jets)
        self.jet_pt_min    = jet_pt_min
        self.jet_eta_max   = jet_eta_max
        self.symmetric_eta = symmetric_eta
        self.higgs_pdgid   = higgs_pdgid
        self.verbose       = verbose

        nbins, xmin, xmax = cfg.pt_binning
        nj = self.max_jets

        self._histograms = {
            "H_pT": Hist.new.Reg(nbins, xmin, xmax, name="pT", label="Higgs pT [GeV]").Weight(),
            "Njets_excl": Hist.new.Reg(nj + 1, -0.5, nj + 0.5, name="njets", label="Number of jets").Weight(),
            "Njets_incl": Hist.new.Reg(nj + 1, -0.5, nj + 0.5, name="njets", label="Number of jets (inclusive)").Weight(),

            "cutflow": hist.Hist(
                hist.axis.StrCategory(["raw", "no_higgs", "multi_higgs", "has_higgs"], name="cut"),
                storage=storage.Double()
            ),
        }
        for i in range(1, nj + 1):
            self._histograms[f"jet{i}_pT"] = Hist.new.Reg(nbins, xmin, xmax, name="pT", label=f"jet {i} pT [GeV]").Weight()

    @property
    def histograms(self):
        return self._histograms

    @property
    def jet_hist_names(self):
        return [f"jet{i}_pT" for i in range(1, self.max_jets + 1)]

#----------------------------------------------------------------------------------------------------------------------------------------------

    def classify(self, events):
        """
        Split particles into the Higgs candidate (last PID match, None if
        absent) and the jets (everything else, in source order).
        Returns (higgs, jets, n_higgs_candidates).
        """
        parts = make_particles(events)
        is_higgs = parts.pid == self.higgs_pdgid

        higgs = last_candidate(parts[is_higgs])
        jets = parts[~is_higgs]
        return higgs, jets, ak.sum(is_higgs, axis=1)

    def select_jets(self, jets):
        """
        Per-jet pass mask: pT >= pt_min and eta <= eta_max
        (|eta| <= eta_max with symmetric_eta).
        """
        pt_pass = jets.pt >= self.jet_pt_min
        eta_pass = eta_cut_mask(jets.eta, self.jet_eta_max, symmetric=self.symmetric_eta)
        return pt_pass & eta_pass

#----------------------------------------------------------------------------------------------------------------------------------------------

    def _fill(self, output, name, x, w):
        """Fill one histogram and keep ROOT's bookkeeping: raw entries and in-range sum w*x, w*x^2."""
        x = np.asarray(x, dtype=np.float64)
        w = np.asarray(w, dtype=np.float64)
        output[name].fill(x, weight=w)
        output["entries"][name] += len(x)

        edges = output[name].axes[0].edges
        inside = (x >= edges[0]) & (x < edges[-1])
        wx = w[inside] * x[inside]
        output["moments"][name] += np.array([wx.sum(), (wx * x[inside]).sum()])

    def process(self, events):
        output = {key: h.copy() for key, h in self._histograms.items()}
        filled = [key for key in self._histograms if key != "cutflow"]
        output["entries"] = {key: 0 for key in filled}
        output["moments"] = {key: np.zeros(2) for key in filled}

        n = len(events)
        if "entry" in ak.fields(events):
            entry = ak.to_numpy(events.entry)
        else:
            entry = np.arange(n)

        output["cutflow"].fill(cut="raw", weight=n)
        if n == 0:
            return output

        higgs, jets, n_higgs = self.classify(events)
        n_higgs = ak.to_numpy(n_higgs)

        # --- events without a Higgs: report and drop ---
        no_higgs = n_higgs == 0
        for ent in entry[no_higgs]:
            print(f"[WARNING] No Higgs in entry {ent}", file=sys.stderr)
        output["cutflow"].fill(cut="no_higgs", weight=int(np.sum(no_higgs)))

        multi = n_higgs > 1
        for ent, nh in zip(entry[multi], n_higgs[multi]):
            print(f"[WARNING] {nh} Higgs candidates in entry {ent}; using the last one", file=sys.stderr)
        output["cutflow"].fill(cut="multi_higgs", weight=int(np.sum(multi)))

        has_higgs = ~no_higgs
        n_sel = int(np.sum(has_higgs))
        output["cutflow"].fill(cut="has_higgs", weight=n_sel)
        if n_sel == 0:
            return output

        weights = Weights(n_sel)
        weights.add("event", np.asarray(ak.to_numpy(events.weight[has_higgs]), dtype=np.float64))
        w = weights.weight()

        higgs = ak.drop_none(higgs[has_higgs])
        jets = jets[has_higgs]

        # --- Higgs pT ---
        H_pT = ak.to_numpy(higgs.pt)
        self._fill(output, "H_pT", H_pT, w)

        # --- jets ---
        jet_pass = self.select_jets(jets)
        jet_pt = jets.pt
        jet_idx = ak.local_index(jet_pt, axis=1)
        w_jet = ak.broadcast_arrays(w, jet_pt)[0]

        if self.verbose:
            _stats(H_pT, "H_pT")
            _stats(jet_pt, "jet_pT")
            _stats(jets.eta, "jet_eta")

        # per-jet histograms are indexed by source position, not by pass rank
        for j, name in enumerate(self.jet_hist_names):
            sel = jet_pass & (jet_idx == j)
            self._fill(output, name, ak.to_numpy(ak.flatten(jet_pt[sel])), ak.to_numpy(ak.flatten(w_jet[sel])))

        # jets beyond max_jets still count here
        n_jets = ak.to_numpy(ak.sum(jet_pass, axis=1)).astype(np.int64)
        self._fill(output, "Njets_excl", n_jets, w)

        # bin k of Njets_incl collects every event with at least k jets
        for k in range(int(n_jets.max()) + 1):
            atleast = n_jets >= k
            self._fill(output, "Njets_incl", np.full(int(atleast.sum()), k), w[atleast])

        return output

    def postprocess(self, accumulator):
        # the inclusive histogram gets several fills per event; its raw entry count is meaningless
        entries = accumulator.get("entries")
        if entries is not None and "Njets_excl" in entries:
            entries["Njets_incl"] = entries["Njets_excl"]
        return accumulator
