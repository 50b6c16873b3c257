tree_name = "t3"

# processor field -> ntuple branch
branches_to_read = {
    "nparticle": "nparticle",
    "pid":       "kf",
    "E":         "E",
    "px":        "px",
    "py":        "py",
    "pz":        "pz",
    "weight":    "weight2",
}

HIGGS_PDGID = 25

# jets are rejected for pt < pt_min or eta > eta_max
jet_cuts = {
    "pt_min":  30.,
    "eta_max": 4.4,
}

# jets with their own pT histogram, by position in the event
MAX_TRACKED_JETS = 4

# (nbins, xmin, xmax) for all pT spectra
pt_binning = (100, 0., 1.5e3)

chunk_size = 100_000
