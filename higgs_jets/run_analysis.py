"""
Higgs + jets histogramming
--------------------------
Reads the particle ntuples (default tree 't3') from a chain of ROOT files,
fills Higgs pT, per-position jet pT and jet multiplicity histograms
and writes them as TH1D to the output file.

Usage:
  hjets-analysis output.root ntuple.root [ntuple2.root ...]
  hjets-analysis output.root ntuple.root --symmetric-eta --max-jets 5
"""
import os
import sys
import argparse
import numpy as np
import awkward as ak
import uproot
from coffea import processor

from higgs_jets import analysis_config as cfg
from higgs_jets.HJets_processor import HJets_Processor
from higgs_jets.utils.hist_writer import write_hists

#----------------------------------------------------------------------------------------------------------------------------------------------

def open_tree(path, tree_name=cfg.tree_name):
    """
    Open one input file and return (file, tree).
    Raises OSError if the file cannot be opened, KeyError if the tree is missing.
    """
    try:
        f = uproot.open(path)
    except Exception as e:
        raise OSError(f"cannot open input file {path}: {e}") from e
    if tree_name not in f:
        f.close()
        raise KeyError(f"tree '{tree_name}' not found in {path}")
    return f, f[tree_name]

#----------------------------------------------------------------------------------------------------------------------------------------------

def build_chain(paths, tree_name=cfg.tree_name):
    """Check every input up front; returns [(path, n_entries)]."""
    chain = []
    for path in paths:
        f, tree = open_tree(path, tree_name)
        chain.append((path, tree.num_entries))
        f.close()
    return chain

#----------------------------------------------------------------------------------------------------------------------------------------------

def load_events(arrays, branches=cfg.branches_to_read, entry_start=0):
    """
    Rename the raw branch arrays of one chunk to the processor field names
    and attach the global entry index.
    """
    n = len(arrays)
    fields = {key: arrays[br] for key, br in branches.items() if key != "nparticle"}
    # kinematics in double precision
    for key in ("E", "px", "py", "pz"):
        fields[key] = ak.values_astype(fields[key], np.float64)
    fields["entry"] = np.arange(entry_start, entry_start + n, dtype=np.int64)
    events = ak.zip(fields, depth_limit=1)

    if branches.get("nparticle") in ak.fields(arrays):
        nparticle = ak.to_numpy(arrays[branches["nparticle"]])
        njagged = ak.to_numpy(ak.num(events.pid, axis=1))
        bad = nparticle != njagged
        if np.any(bad):
            print(f"[WARNING] {int(np.sum(bad))} entries with nparticle != len({branches['pid']}); using the array length")
    return events

#----------------------------------------------------------------------------------------------------------------------------------------------

def iterate_events(paths, tree_name=cfg.tree_name, branches=cfg.branches_to_read, step_size=cfg.chunk_size):
    """Yield event chunks over the whole chain, in order, with global entry numbers."""
    offset = 0
    for i, path in enumerate(paths, 1):
        f, tree = open_tree(path, tree_name)
        print(f"[INFO] Processing file {i}/{len(paths)}: {path} ({tree.num_entries} entries)")
        with f:
            for arrays in tree.iterate(list(branches.values()), step_size=step_size, library="ak"):
                events = load_events(arrays, branches, entry_start=offset)
                offset += len(events)
                yield events

#----------------------------------------------------------------------------------------------------------------------------------------------

def run(paths, processor_instance, tree_name=cfg.tree_name, branches=cfg.branches_to_read, step_size=cfg.chunk_size):
    outputs = [processor_instance.process(events)
               for events in iterate_events(paths, tree_name, branches, step_size)]
    if not outputs:
        outputs = [processor_instance.process(ak.Array([]))]
    return processor_instance.postprocess(processor.accumulate(outputs))

#----------------------------------------------------------------------------------------------------------------------------------------------

def print_cutflow(cutflow):
    print("[INFO] Cutflow:")
    for cut, count in zip(cutflow.axes[0], cutflow.values()):
        print(f"  {cut:12} {int(count)}")

#----------------------------------------------------------------------------------------------------------------------------------------------

def make_parser():
    parser = argparse.ArgumentParser(description="Fill Higgs pT and jet multiplicity histograms from particle ntuples")
    parser.add_argument("output", type=str, help="Histogram output ROOT file")
    parser.add_argument("inputs", type=str, nargs="+", help="Input ntuple ROOT files (chained in order)")
    parser.add_argument("--tree", type=str, default=cfg.tree_name, help="Name of the TTree inside the input files")
    parser.add_argument("--weight-branch", type=str, default=cfg.branches_to_read["weight"], help="Event weight branch")
    parser.add_argument("--max-jets", type=int, default=cfg.MAX_TRACKED_JETS, help="Number of jets with their own pT histogram")
    parser.add_argument("--jet-pt-min", type=float, default=cfg.jet_cuts["pt_min"])
    parser.add_argument("--jet-eta-max", type=float, default=cfg.jet_cuts["eta_max"])
    parser.add_argument("--symmetric-eta", action="store_true",
                        help="Cut on |eta| instead of the signed eta (default reproduces the one-sided cut)")
    parser.add_argument("--chunk-size", type=int, default=cfg.chunk_size, help="Entries read per chunk")
    parser.add_argument("--verbose", action="store_true")
    return parser

#----------------------------------------------------------------------------------------------------------------------------------------------

def main(argv=None):
    args = make_parser().parse_args(argv)

    branches = dict(cfg.branches_to_read)
    branches["weight"] = args.weight_branch

    print("[INFO] Input files:")
    for path in args.inputs:
        print(f"  {path}")
    try:
        chain = build_chain(args.inputs, args.tree)
    except (OSError, KeyError) as e:
        print(f"[ERROR] {e}")
        sys.exit(1)

    nentries = sum(n for _, n in chain)
    print(f"[INFO] nentries = {nentries}")

    try:
        processor_instance = HJets_Processor(
            max_jets=args.max_jets,
            jet_pt_min=args.jet_pt_min,
            jet_eta_max=args.jet_eta_max,
            symmetric_eta=args.symmetric_eta,
            verbose=args.verbose,
        )
    except ValueError as e:
        print(f"[ERROR] {e}")
        sys.exit(1)

    # open output before the event loop
    out_dir = os.path.dirname(os.path.abspath(args.output))
    if not os.path.isdir(out_dir):
        print(f"[ERROR] Cannot create output file {args.output}: directory {out_dir} does not exist")
        sys.exit(1)
    try:
        rootfile = uproot.recreate(args.output)
    except Exception as e:
        print(f"[ERROR] Cannot create output file {args.output}: {e}")
        sys.exit(1)

    with rootfile:
        print(f"[INFO] Output file: {args.output}")
        output = run(args.inputs, processor_instance, args.tree, branches, args.chunk_size)
        print_cutflow(output["cutflow"])
        written = write_hists(rootfile, output, output["entries"], output["moments"])

    print(f"[INFO] Wrote {len(written)} histograms with Sumw2 to {args.output}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
