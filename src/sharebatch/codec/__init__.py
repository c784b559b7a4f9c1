"""
Batch codec.

Encodes pending requests into a multipart/mixed batch body and decodes the
multipart response back into per-request parts.
"""

from sharebatch.codec.encoder import BatchEncoder, ensure_homogeneous
from sharebatch.codec.decoder import BatchDecoder, DecoderState, ParsedPart

__all__ = [
    "BatchEncoder",
    "ensure_homogeneous",
    "BatchDecoder",
    "DecoderState",
    "ParsedPart",
]
