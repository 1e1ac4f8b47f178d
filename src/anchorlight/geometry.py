"""
Anchorlight Geometry - Rigid Poses

Poses are 4x4 homogeneous transforms (numpy). Rotations enter and leave
as Rodrigues vectors through OpenCV, which is how marker trackers report
them (rvec, tvec).

    anchor_pose.compose(offset)  ->  world pose of an attached visual
"""

from typing import Sequence, Tuple

import numpy as np
import cv2


class Pose:
    """Immutable rigid transform (rotation + translation)."""

    __slots__ = ("_matrix",)

    def __init__(self, matrix: np.ndarray):
        matrix = np.asarray(matrix, dtype=np.float64)
        if matrix.shape != (4, 4):
            raise ValueError(f"Pose matrix must be 4x4, got {matrix.shape}")
        self._matrix = matrix.copy()
        self._matrix.setflags(write=False)

    @classmethod
    def identity(cls) -> "Pose":
        return cls(np.eye(4))

    @classmethod
    def from_rvec_tvec(
        cls,
        rvec: Sequence[float] = (0.0, 0.0, 0.0),
        tvec: Sequence[float] = (0.0, 0.0, 0.0)
    ) -> "Pose":
        """
        Build a pose from a Rodrigues rotation vector and a translation.

        Args:
            rvec: Axis-angle rotation (radians), length 3
            tvec: Translation, length 3
        """
        rvec = np.asarray(rvec, dtype=np.float64).reshape(3, 1)
        tvec = np.asarray(tvec, dtype=np.float64).reshape(3)
        R, _ = cv2.Rodrigues(rvec)
        T = np.eye(4, dtype=np.float64)
        T[:3, :3] = R
        T[:3, 3] = tvec
        return cls(T)

    @classmethod
    def from_position(cls, x: float, y: float, z: float) -> "Pose":
        return cls.from_rvec_tvec(tvec=(x, y, z))

    @property
    def matrix(self) -> np.ndarray:
        return self._matrix

    @property
    def position(self) -> Tuple[float, float, float]:
        x, y, z = self._matrix[:3, 3]
        return (float(x), float(y), float(z))

    @property
    def rotation(self) -> np.ndarray:
        return self._matrix[:3, :3].copy()

    @property
    def rvec(self) -> Tuple[float, float, float]:
        r, _ = cv2.Rodrigues(self.rotation)
        return (float(r[0, 0]), float(r[1, 0]), float(r[2, 0]))

    def compose(self, local: "Pose") -> "Pose":
        """Express `local` (relative to this frame) in this pose's parent frame."""
        return Pose(self._matrix @ local.matrix)

    def inverse(self) -> "Pose":
        R = self._matrix[:3, :3]
        t = self._matrix[:3, 3]
        T = np.eye(4, dtype=np.float64)
        T[:3, :3] = R.T
        T[:3, 3] = -R.T @ t
        return Pose(T)

    def is_close(self, other: "Pose", atol: float = 1e-6) -> bool:
        return bool(np.allclose(self._matrix, other.matrix, atol=atol))

    def __repr__(self) -> str:
        x, y, z = self.position
        return f"Pose(position=({x:.3f}, {y:.3f}, {z:.3f}), rvec={tuple(round(v, 3) for v in self.rvec)})"
