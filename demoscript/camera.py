"""Fixed orbiting camera feeding the model/view/projection uniforms.

Every frame the model turns around the vertical axis with time while the
viewer stays on the +Z axis looking at the origin. Matrices are uploaded in
column-major order, as OpenGL expects them.
"""

from dataclasses import dataclass
from typing import Tuple

import numpy as np

from demoscript.errors import ExecutionError

EYE = (0.0, 0.0, 5.0)
CENTER = (0.0, 0.0, 0.0)
UP = (0.0, 1.0, 0.0)
FIELD_OF_VIEW = 0.5  # radians, vertical
NEAR_CLIP = 0.01
FAR_CLIP = 20.0
ROTATION_SPEED = 0.5  # radians per second

MVP_UNIFORM = "u_ModelViewProjectionMatrix"
MV_UNIFORM = "u_ModelViewMatrix"
MV_INV_TRANSP_UNIFORM = "u_ModelViewInvTranspMatrix"


def _normalize(vec):
    return vec / np.sqrt(np.sum(vec * vec))


def look_at(eye, center, up) -> np.ndarray:
    eye = np.asarray(eye, dtype=float)
    forward = _normalize(np.asarray(center, dtype=float) - eye)
    side = _normalize(np.cross(forward, np.asarray(up, dtype=float)))
    upward = np.cross(side, forward)

    matrix = np.eye(4)
    matrix[0, :3] = side
    matrix[1, :3] = upward
    matrix[2, :3] = -forward
    matrix[0, 3] = -np.dot(side, eye)
    matrix[1, 3] = -np.dot(upward, eye)
    matrix[2, 3] = np.dot(forward, eye)
    return matrix


def perspective(fovy: float, aspect: float, near: float, far: float) -> np.ndarray:
    focal = 1.0 / np.tan(fovy / 2.0)
    matrix = np.zeros((4, 4))
    with np.errstate(divide="ignore", invalid="ignore"):
        matrix[0, 0] = focal / np.float64(aspect)
    matrix[1, 1] = focal
    matrix[2, 2] = (far + near) / (near - far)
    matrix[2, 3] = 2.0 * far * near / (near - far)
    matrix[3, 2] = -1.0
    return matrix


def rotate(angle: float, axis) -> np.ndarray:
    x, y, z = _normalize(np.asarray(axis, dtype=float))
    c, s = np.cos(angle), np.sin(angle)
    t = 1.0 - c
    matrix = np.eye(4)
    matrix[:3, :3] = (
        (t * x * x + c, t * x * y - s * z, t * x * z + s * y),
        (t * x * y + s * z, t * y * y + c, t * y * z - s * x),
        (t * x * z - s * y, t * y * z + s * x, t * z * z + c),
    )
    return matrix


def as_gl_matrix(matrix: np.ndarray) -> Tuple[float, ...]:
    return tuple(matrix.ravel(order="F").tolist())


@dataclass(frozen=True, eq=False)
class CameraMatrices:
    model_view_projection: np.ndarray
    model_view: np.ndarray
    model_view_inv_transp: np.ndarray

    def uniforms(self) -> Tuple[Tuple[str, Tuple[float, ...]], ...]:
        return (
            (MVP_UNIFORM, as_gl_matrix(self.model_view_projection)),
            (MV_UNIFORM, as_gl_matrix(self.model_view)),
            (MV_INV_TRANSP_UNIFORM, as_gl_matrix(self.model_view_inv_transp)),
        )


def frame_camera(width: float, height: float, time: float) -> CameraMatrices:
    """Build the camera matrices for a frame of ``width`` x ``height`` at ``time``."""
    with np.errstate(divide="ignore", invalid="ignore"):
        aspect = np.float64(width) / np.float64(height)
    view = look_at(EYE, CENTER, UP)
    projection = perspective(FIELD_OF_VIEW, aspect, NEAR_CLIP, FAR_CLIP)
    model = rotate(time * ROTATION_SPEED, UP)

    model_view = view @ model
    try:
        inv_transp = np.linalg.inv(model_view).T
    except np.linalg.LinAlgError as exc:
        raise ExecutionError("Model-View matrix is non-invertible") from exc
    return CameraMatrices(projection @ model_view, model_view, inv_transp)
