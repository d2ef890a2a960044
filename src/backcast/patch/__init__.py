from backcast.patch.engine import PatchSet, apply, deserialize, diff, is_empty, serialize
from backcast.patch.fingerprint import FINGERPRINT_LENGTH, fingerprint_content

__all__ = [
    "FINGERPRINT_LENGTH",
    "PatchSet",
    "apply",
    "deserialize",
    "diff",
    "fingerprint_content",
    "is_empty",
    "serialize",
]
