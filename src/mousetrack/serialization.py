"""
JSON-friendly encoding of numpy arrays used in tracking logs
"""

import base64
from typing import Optional

import numpy as np


def encode_array(array: Optional[np.ndarray]) -> Optional[dict]:
    """Encode an array as a dict with dtype, shape and base64 payload."""
    if array is None:
        return None
    array = np.ascontiguousarray(array)
    if array.dtype == bool:
        payload = np.packbits(array, axis=None)
    else:
        payload = array
    return {
        'dtype': str(array.dtype),
        'shape': list(array.shape),
        'data': base64.b64encode(payload.tobytes()).decode('ascii'),
    }


def decode_array(encoded: Optional[dict]) -> Optional[np.ndarray]:
    """Inverse of encode_array."""
    if encoded is None:
        return None
    dtype = np.dtype(encoded['dtype'])
    shape = tuple(encoded['shape'])
    raw = base64.b64decode(encoded['data'])
    if dtype == bool:
        count = int(np.prod(shape))
        bits = np.unpackbits(np.frombuffer(raw, dtype=np.uint8), count=count)
        return bits.astype(bool).reshape(shape)
    return np.frombuffer(raw, dtype=dtype).reshape(shape).copy()


def to_jsonable(values) -> list:
    """Convert an array-like to nested lists of floats (NaN kept as NaN)."""
    return np.asarray(values, dtype=float).tolist()
