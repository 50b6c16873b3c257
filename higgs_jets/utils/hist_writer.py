import numpy as np
import hist as _hist
from uproot.writing import identify as upid

# ------------------ Uproot TH1D writer with Sumw2 ------------------

NUMERIC_AXES = (_hist.axis.Regular, _hist.axis.Variable, _hist.axis.Integer)

#----------------------------------------------------------------------------------------------------------------------------------------------

def to_TH1D(name, h, entries=None, moments=None, title=""):
    """
    Convert a 1D numeric-axis 'hist.Hist' to an uproot TH1D model.

    Underflow/overflow are carried into ROOT bins 0 and nb+1.
    fEntries is taken from `entries` when given (raw fill count),
    otherwise the effective number of entries sumw^2/sumw2 is used.
    `moments` = (sum w*x, sum w*x^2) over in-range fills gives ROOT the exact
    mean/RMS; without it they are estimated from bin centres.
    """
    if h.ndim != 1 or not isinstance(h.axes[0], NUMERIC_AXES):
        raise ValueError(f"{name}: only 1D numeric histograms can be written as TH1D")

    ax = h.axes[0]
    xedges = np.asarray(ax.edges, dtype=np.float64)
    nb = len(xedges) - 1

    counts = h.values(flow=True)
    vari = h.variances(flow=True)
    if vari is None:
        vari = counts

    data = np.zeros(nb + 2, dtype=np.float64)
    sumw2 = np.zeros(nb + 2, dtype=np.float64)
    # axes without under/overflow have nothing to put in bins 0/nb+1
    lo = 0 if ax.traits.underflow else 1
    data[lo:lo + len(counts)] = counts
    sumw2[lo:lo + len(counts)] = vari

    inner = data[1:-1]
    fTsumw  = float(inner.sum())
    fTsumw2 = float(sumw2[1:-1].sum())
    if moments is not None:
        fTsumwx, fTsumwx2 = (float(m) for m in moments)
    else:
        xcent = 0.5 * (xedges[:-1] + xedges[1:])
        fTsumwx  = float((inner * xcent).sum())
        fTsumwx2 = float((inner * xcent * xcent).sum())
    if entries is None:
        entries = float(data.sum()**2 / max(sumw2.sum(), 1e-12))

    xbins = xedges if isinstance(ax, _hist.axis.Variable) else np.array([], dtype=np.float64)
    xaxis = upid.to_TAxis("xaxis", ax.label or "", nb, float(xedges[0]), float(xedges[-1]), xbins)
    yaxis = upid.to_TAxis("yaxis", "", 1, 0.0, 1.0)
    zaxis = upid.to_TAxis("zaxis", "", 1, 0.0, 1.0)

    return upid.to_TH1x(
        fName=name, fTitle=title, data=data, fEntries=float(entries),
        fTsumw=fTsumw, fTsumw2=fTsumw2, fTsumwx=fTsumwx, fTsumwx2=fTsumwx2,
        fSumw2=sumw2, fXaxis=xaxis, fYaxis=yaxis, fZaxis=zaxis,
    )

#----------------------------------------------------------------------------------------------------------------------------------------------

def write_hists(rootfile, hists, entries=None, moments=None):
    """
    Write every numeric 1D histogram in `hists` to an open uproot file.
    Empty histograms are written too; categorical ones (cutflow) are skipped.
    """
    entries = entries or {}
    moments = moments or {}
    written = []
    for name, h in hists.items():
        if not isinstance(h, _hist.Hist):
            continue
        if h.ndim != 1 or not isinstance(h.axes[0], NUMERIC_AXES):
            continue
        rootfile[name] = to_TH1D(name, h, entries.get(name), moments.get(name))
        written.append(name)
    return written
