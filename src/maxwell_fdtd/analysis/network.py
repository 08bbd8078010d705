"""Scattering-parameter containers and network helpers.

S-parameters are filled one column per run: the excited port i gives
S_ji = b_j / a_i for every port j. Runs exciting different ports are
combined with :meth:`SParameters.merge`.

Example:
    >>> s = result.frequency.s_parameters
    >>> s11_db = s.db(0, 0)
    >>> f_res = find_resonance(s.frequencies, s.matrix[:, 0, 0])
    >>> lo, hi = bandwidth(s.frequencies, s.matrix[:, 0, 0], threshold_db=-10)
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING

import numpy as np
from numpy.typing import NDArray
from scipy.signal import find_peaks

if TYPE_CHECKING:
    from maxwell_fdtd.core.monitors import PortWaves


def to_db(values: NDArray[np.complexfloating] | NDArray[np.floating]) -> NDArray[np.float64]:
    """Magnitude in decibels, 20·log10|x|."""
    with np.errstate(divide="ignore"):
        return 20.0 * np.log10(np.abs(values))


def vswr(reflection: NDArray[np.complexfloating]) -> NDArray[np.float64]:
    """Voltage standing wave ratio from a reflection coefficient."""
    mag = np.abs(reflection)
    with np.errstate(divide="ignore", invalid="ignore"):
        return np.where(mag < 1.0, (1.0 + mag) / (1.0 - mag), np.inf)


def input_impedance(
    reflection: NDArray[np.complexfloating],
    reference_impedance: float | NDArray = 50.0,
) -> NDArray[np.complex128]:
    """Impedance Z0·(1 + Γ)/(1 − Γ) seen through a reflection coefficient."""
    gamma = np.asarray(reflection, dtype=np.complex128)
    with np.errstate(divide="ignore", invalid="ignore"):
        return reference_impedance * (1.0 + gamma) / (1.0 - gamma)


def find_resonance(
    frequencies: NDArray[np.floating],
    reflection: NDArray[np.complexfloating],
    min_depth_db: float = 3.0,
) -> float | None:
    """Frequency of the deepest return-loss dip.

    The dip is refined with a parabola through the three samples around
    the minimum of |Γ| in dB.

    Args:
        frequencies: Frequencies in Hz
        reflection: Reflection coefficient per frequency
        min_depth_db: Minimum prominence of a dip to count

    Returns:
        Resonance frequency in Hz, or None if no dip is found
    """
    freqs = np.asarray(frequencies, dtype=np.float64)
    level = np.maximum(to_db(reflection), -300.0)
    valid = np.isfinite(level)
    if valid.sum() < 3:
        return None
    depth = -np.where(valid, level, np.nanmax(level[valid]))
    peaks, props = find_peaks(depth, prominence=min_depth_db)
    if len(peaks) == 0:
        return None
    best = peaks[np.argmax(props["prominences"])]
    if 0 < best < len(freqs) - 1:
        y0, y1, y2 = depth[best - 1 : best + 2]
        denom = y0 - 2 * y1 + y2
        if denom != 0:
            shift = 0.5 * (y0 - y2) / denom
            step = 0.5 * (freqs[best + 1] - freqs[best - 1])
            return float(freqs[best] + shift * step)
    return float(freqs[best])


def bandwidth(
    frequencies: NDArray[np.floating],
    reflection: NDArray[np.complexfloating],
    threshold_db: float = -10.0,
) -> tuple[float, float] | None:
    """Contiguous band around the resonance where |Γ| is below a threshold.

    Band edges are linearly interpolated between samples.

    Returns:
        (f_low, f_high) in Hz, or None if no sample is below the threshold
    """
    freqs = np.asarray(frequencies, dtype=np.float64)
    level = to_db(reflection)
    below = np.nan_to_num(level, nan=np.inf) < threshold_db
    if not below.any():
        return None
    centre = int(np.nanargmin(level))
    lo = centre
    while lo > 0 and below[lo - 1]:
        lo -= 1
    hi = centre
    while hi < len(freqs) - 1 and below[hi + 1]:
        hi += 1

    def crossing(i: int, j: int) -> float:
        # Linear interpolation of the threshold crossing between samples i and j
        li, lj = level[i], level[j]
        if not np.isfinite(li) or not np.isfinite(lj) or li == lj:
            return float(freqs[i])
        t = (threshold_db - li) / (lj - li)
        return float(freqs[i] + t * (freqs[j] - freqs[i]))

    f_low = crossing(lo - 1, lo) if lo > 0 else float(freqs[lo])
    f_high = crossing(hi, hi + 1) if hi < len(freqs) - 1 else float(freqs[hi])
    return f_low, f_high


@dataclass(frozen=True)
class SParameters:
    """Scattering matrix over frequency.

    Attributes:
        frequencies: Frequencies in Hz, shape (nf,)
        matrix: S-matrix, shape (nf, nports, nports); columns not yet
            simulated hold NaN
        port_names: Port names in matrix order
        reference_impedance: Reference impedance per port, shape (nf, nports)
    """

    frequencies: NDArray[np.float64]
    matrix: NDArray[np.complex128]
    port_names: tuple[str, ...]
    reference_impedance: NDArray[np.complex128]

    def __post_init__(self):
        matrix = np.array(self.matrix, dtype=np.complex128)
        freqs = np.array(self.frequencies, dtype=np.float64)
        n = len(self.port_names)
        if matrix.shape != (len(freqs), n, n):
            raise ValueError(
                f"S-matrix shape {matrix.shape} does not match "
                f"{len(freqs)} frequencies and {n} ports"
            )
        z = np.broadcast_to(np.asarray(self.reference_impedance, dtype=np.complex128), (len(freqs), n))
        for name, value in (("frequencies", freqs), ("matrix", matrix), ("reference_impedance", np.array(z))):
            value.flags.writeable = False
            object.__setattr__(self, name, value)
        object.__setattr__(self, "port_names", tuple(self.port_names))

    @classmethod
    def from_port_waves(
        cls,
        frequencies: NDArray[np.floating],
        port_waves: Mapping[str, PortWaves],
    ) -> SParameters:
        """One S-matrix column from a run with a single excited port."""
        names = tuple(port_waves)
        excited = [i for i, name in enumerate(names) if port_waves[name].excited]
        if len(excited) != 1:
            raise ValueError(f"Exactly one excited port is required, found {len(excited)}")
        col = excited[0]
        nf = len(frequencies)
        matrix = np.full((nf, len(names), len(names)), np.nan, dtype=np.complex128)
        a = port_waves[names[col]].a
        with np.errstate(divide="ignore", invalid="ignore"):
            for row, name in enumerate(names):
                matrix[:, row, col] = port_waves[name].b / a
        z = np.stack([port_waves[name].reference_impedance for name in names], axis=1)
        return cls(frequencies, matrix, names, z)

    @property
    def num_ports(self) -> int:
        return len(self.port_names)

    def port_index(self, port: int | str) -> int:
        if isinstance(port, str):
            try:
                return self.port_names.index(port)
            except ValueError:
                raise KeyError(f"Unknown port '{port}', have {self.port_names}") from None
        return int(port)

    def __getitem__(self, key: tuple[int | str, int | str]) -> NDArray[np.complex128]:
        i, j = key
        return self.matrix[:, self.port_index(i), self.port_index(j)]

    def db(self, i: int | str, j: int | str) -> NDArray[np.float64]:
        """|S_ij| in dB."""
        return to_db(self[i, j])

    def merge(self, other: SParameters) -> SParameters:
        """Combine columns from another run over the same ports and frequencies.

        Columns present (non-NaN) in ``other`` replace the same columns here.
        """
        if other.port_names != self.port_names:
            raise ValueError(f"Port mismatch: {self.port_names} vs {other.port_names}")
        if not np.allclose(other.frequencies, self.frequencies):
            raise ValueError("Frequency grids differ")
        matrix = np.array(self.matrix)
        filled = ~np.all(np.isnan(other.matrix), axis=(0, 1))
        matrix[:, :, filled] = other.matrix[:, :, filled]
        return SParameters(self.frequencies, matrix, self.port_names, self.reference_impedance)

    def is_reciprocal(self, tol: float = 0.05) -> bool:
        """True if |S_ij − S_ji| ≤ tol wherever both entries are known."""
        diff = np.abs(self.matrix - np.swapaxes(self.matrix, 1, 2))
        known = np.isfinite(diff)
        return bool(np.all(diff[known] <= tol))

    def passivity_margin(self) -> float:
        """1 − largest singular value of S over frequency.

        Negative values mean the network generates power. Only
        frequencies with a fully known matrix are checked; NaN when none
        is. Columns from a single run bound the margin by their norms.
        """
        matrix = self.matrix
        complete = np.all(np.isfinite(matrix), axis=(1, 2))
        if complete.any():
            sigma = np.linalg.svd(matrix[complete], compute_uv=False)
            return float(1.0 - np.max(sigma))
        norms = []
        for col in range(self.num_ports):
            column = matrix[:, :, col]
            ok = np.all(np.isfinite(column), axis=1)
            if ok.any():
                norms.append(np.max(np.linalg.norm(column[ok], axis=1)))
        if not norms:
            return float("nan")
        return float(1.0 - max(norms))

    def vswr(self, port: int | str = 0) -> NDArray[np.float64]:
        return vswr(self[port, port])

    def input_impedance(self, port: int | str = 0) -> NDArray[np.complex128]:
        idx = self.port_index(port)
        return input_impedance(self.matrix[:, idx, idx], self.reference_impedance[:, idx])

    def subset(self, ports: Sequence[int | str]) -> SParameters:
        """S-matrix restricted to some ports."""
        idx = [self.port_index(p) for p in ports]
        return SParameters(
            self.frequencies,
            self.matrix[:, idx][:, :, idx],
            tuple(self.port_names[i] for i in idx),
            self.reference_impedance[:, idx],
        )

    def __repr__(self) -> str:
        return (
            f"SParameters(ports={self.port_names}, {len(self.frequencies)} frequencies "
            f"{self.frequencies[0] / 1e9:.3g}-{self.frequencies[-1] / 1e9:.3g} GHz)"
        )
