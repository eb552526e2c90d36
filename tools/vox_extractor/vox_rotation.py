"""Rotation decoding for VOX transform nodes.

A transform frame stores its rotation as a packed signed permutation
matrix ("_r" attribute):

    bit | value
    0-1 | column of the non-zero entry in row 0
    2-3 | column of the non-zero entry in row 1
    4   | sign of row 0 (0: +1, 1: -1)
    5   | sign of row 1
    6   | sign of row 2

Row 2 uses whichever column is left. For example

     0 -1  0
     1  0  0
     0  0  1

packs to 0b0010001, stored in the file as the string "17".

Quaternions are (x, y, z, w) tuples in a left-handed, Y-up space. Euler
angles are in degrees and follow the Z, then X, then Y application order.
"""
import math
from typing import List, Sequence, Tuple

from .vox_types import IDENTITY_ROTATION, Quaternion

Vector = Tuple[float, float, float]
Matrix3 = Tuple[Tuple[int, int, int], Tuple[int, int, int], Tuple[int, int, int]]

IDENTITY = IDENTITY_ROTATION


def _resolve_columns(first: int, second: int) -> List[int]:
    """Turn the two packed column indices into a full permutation.

    Out-of-range or repeated indices take the lowest free column, which
    makes every 7-bit value decodable (0 decodes to the identity).
    """
    free = [0, 1, 2]
    columns = []
    for index in (first, second):
        if index not in free:
            index = free[0]
        free.remove(index)
        columns.append(index)
    columns.append(free[0])
    return columns


def decode_rotation_matrix(value: int) -> Matrix3:
    """Decode a packed rotation into its three matrix rows."""
    value &= 0x7F
    columns = _resolve_columns(value & 0b11, (value >> 2) & 0b11)
    signs = [-1 if (value >> bit) & 1 else 1 for bit in (4, 5, 6)]

    rows = []
    for column, sign in zip(columns, signs):
        row = [0, 0, 0]
        row[column] = sign
        rows.append(tuple(row))
    return tuple(rows)


def decode_rotation(value: int) -> Quaternion:
    """Decode a packed rotation into a quaternion.

    Row 2 is used as forward and row 1 as up, then the Y and Z Euler
    angles are swapped because VOX files are Z-up (x, z, y storage order).
    """
    rows = decode_rotation_matrix(value)
    look = look_rotation(rows[2], rows[1])
    x, y, z = quaternion_to_euler(look)
    return euler_to_quaternion(x, z, y)


def _normalize(v: Sequence[float]) -> Vector:
    length = math.sqrt(v[0] * v[0] + v[1] * v[1] + v[2] * v[2])
    if length == 0:
        return (0.0, 0.0, 0.0)
    return (v[0] / length, v[1] / length, v[2] / length)


def _cross(a: Sequence[float], b: Sequence[float]) -> Vector:
    return (
        a[1] * b[2] - a[2] * b[1],
        a[2] * b[0] - a[0] * b[2],
        a[0] * b[1] - a[1] * b[0],
    )


def _matrix_to_quaternion(m: Sequence[Sequence[float]]) -> Quaternion:
    """Convert a 3x3 rotation matrix (row-major) to a quaternion."""
    trace = m[0][0] + m[1][1] + m[2][2]
    if trace > 0:
        s = math.sqrt(trace + 1.0) * 2
        w = 0.25 * s
        x = (m[2][1] - m[1][2]) / s
        y = (m[0][2] - m[2][0]) / s
        z = (m[1][0] - m[0][1]) / s
    elif m[0][0] > m[1][1] and m[0][0] > m[2][2]:
        s = math.sqrt(1.0 + m[0][0] - m[1][1] - m[2][2]) * 2
        w = (m[2][1] - m[1][2]) / s
        x = 0.25 * s
        y = (m[0][1] + m[1][0]) / s
        z = (m[0][2] + m[2][0]) / s
    elif m[1][1] > m[2][2]:
        s = math.sqrt(1.0 + m[1][1] - m[0][0] - m[2][2]) * 2
        w = (m[0][2] - m[2][0]) / s
        x = (m[0][1] + m[1][0]) / s
        y = 0.25 * s
        z = (m[1][2] + m[2][1]) / s
    else:
        s = math.sqrt(1.0 + m[2][2] - m[0][0] - m[1][1]) * 2
        w = (m[1][0] - m[0][1]) / s
        x = (m[0][2] + m[2][0]) / s
        y = (m[1][2] + m[2][1]) / s
        z = 0.25 * s
    return (x, y, z, w)


def _quaternion_to_matrix(q: Quaternion) -> Tuple[Vector, Vector, Vector]:
    x, y, z, w = q
    return (
        (1 - 2 * (y * y + z * z), 2 * (x * y - z * w), 2 * (x * z + y * w)),
        (2 * (x * y + z * w), 1 - 2 * (x * x + z * z), 2 * (y * z - x * w)),
        (2 * (x * z - y * w), 2 * (y * z + x * w), 1 - 2 * (x * x + y * y)),
    )


def look_rotation(forward: Sequence[float], up: Sequence[float]) -> Quaternion:
    """Rotation that maps +Z onto forward and +Y as close to up as possible."""
    f = _normalize(forward)
    r = _normalize(_cross(up, f))
    if r == (0.0, 0.0, 0.0):
        # up is parallel to forward; any perpendicular axis will do
        r = _normalize(_cross((1.0, 0.0, 0.0) if abs(f[0]) < 0.9 else (0.0, 1.0, 0.0), f))
    u = _cross(f, r)
    matrix = (
        (r[0], u[0], f[0]),
        (r[1], u[1], f[1]),
        (r[2], u[2], f[2]),
    )
    return _matrix_to_quaternion(matrix)


def quaternion_to_euler(q: Quaternion) -> Vector:
    """Euler angles in degrees, each normalised to [0, 360)."""
    m = _quaternion_to_matrix(q)
    sin_x = max(-1.0, min(1.0, -m[1][2]))
    x = math.asin(sin_x)
    if abs(sin_x) < 0.9999999:
        y = math.atan2(m[0][2], m[2][2])
        z = math.atan2(m[1][0], m[1][1])
    else:
        # Gimbal lock: fold all of the roll into Y
        y = math.atan2(-m[2][0], m[0][0])
        z = 0.0
    return tuple(math.degrees(angle) % 360.0 for angle in (x, y, z))


def euler_to_quaternion(x: float, y: float, z: float) -> Quaternion:
    """Quaternion for a rotation of z degrees around Z, then x around X, then y around Y."""
    qx = _axis_angle((1.0, 0.0, 0.0), x)
    qy = _axis_angle((0.0, 1.0, 0.0), y)
    qz = _axis_angle((0.0, 0.0, 1.0), z)
    return multiply(multiply(qy, qx), qz)


def _axis_angle(axis: Vector, degrees: float) -> Quaternion:
    half = math.radians(degrees) / 2
    s = math.sin(half)
    return (axis[0] * s, axis[1] * s, axis[2] * s, math.cos(half))


def multiply(a: Quaternion, b: Quaternion) -> Quaternion:
    """Hamilton product a * b (apply b first)."""
    ax, ay, az, aw = a
    bx, by, bz, bw = b
    return (
        aw * bx + ax * bw + ay * bz - az * by,
        aw * by - ax * bz + ay * bw + az * bx,
        aw * bz + ax * by - ay * bx + az * bw,
        aw * bw - ax * bx - ay * by - az * bz,
    )


def rotate_vector(q: Quaternion, v: Sequence[float]) -> Vector:
    """Rotate a 3D vector by a unit quaternion."""
    x, y, z, w = q
    # t = 2 * cross(q.xyz, v)
    tx = 2 * (y * v[2] - z * v[1])
    ty = 2 * (z * v[0] - x * v[2])
    tz = 2 * (x * v[1] - y * v[0])
    return (
        v[0] + w * tx + (y * tz - z * ty),
        v[1] + w * ty + (z * tx - x * tz),
        v[2] + w * tz + (x * ty - y * tx),
    )
